from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from paymaster.database import get_db
from paymaster.schemas.loan import (
    LoanActivationRequest,
    LoanPolicyResult,
    LoanResponse,
    LoanSchedulePreviewRequest,
    LoanSchedulePreviewResponse,
)
from paymaster.services import loan_service

router = APIRouter(prefix="/loans", tags=["loans"])


@router.post("/schedule-preview", response_model=LoanSchedulePreviewResponse)
def preview_schedule(request: LoanSchedulePreviewRequest):
    """Amortization schedule for the given terms. Returns 422 when the payment never reduces principal."""
    return loan_service.preview_loan_schedule(
        amount=request.amount,
        monthly_payment=request.monthly_payment,
        start_date=request.start_date,
        interest_rate=request.interest_rate,
        end_date=request.end_date,
    )


@router.get("/{loan_id}/validation", response_model=LoanPolicyResult)
def validate_loan(loan_id: str, strict: bool = False, db: Session = Depends(get_db)):
    return loan_service.validate_loan(db, loan_id, strict=strict)


@router.post("/{loan_id}/activate", response_model=LoanResponse)
def activate_loan(
    loan_id: str,
    request: Optional[LoanActivationRequest] = None,
    db: Session = Depends(get_db),
):
    return loan_service.activate_loan(db, loan_id, strict=request.strict if request else True)
