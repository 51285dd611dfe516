"""
Payroll Router

Handles HTTP endpoints for payroll runs.
All business logic is delegated to the payroll service layer.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional

from paymaster.database import get_db
from paymaster.schemas.payroll import (
    LoanUndoResponse,
    PayrollGenerateRequest,
    PayrollGenerateResponse,
    PayrollPreviewRequest,
    PayrollRecalculateRequest,
    PayrollRunResponse,
    ScenarioPreview,
)
from paymaster.services import payroll_service


router = APIRouter(prefix="/payroll", tags=["payroll"])


@router.get("/", response_model=List[PayrollRunResponse])
def list_payroll_runs(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return payroll_service.list_payroll_runs(db, skip=skip, limit=limit)


@router.get("/{run_id}", response_model=PayrollRunResponse)
def get_payroll_run(run_id: str, db: Session = Depends(get_db)):
    return payroll_service.get_payroll_run(db, run_id)


@router.post("/preview", response_model=List[ScenarioPreview])
def preview_payroll(request: PayrollPreviewRequest, db: Session = Depends(get_db)):
    """
    Compare scenarios for a period without creating a run.
    The baseline scenario is always returned first.
    """
    return payroll_service.preview_payroll(db, request)


@router.post("/generate", response_model=PayrollGenerateResponse, status_code=status.HTTP_201_CREATED)
def generate_payroll(request: PayrollGenerateRequest, db: Session = Depends(get_db)):
    """
    Generate a payroll run for a period.

    Returns 409 if a run already covers any day of the period; resubmitting
    the same request will not succeed.
    """
    return payroll_service.generate_payroll_run(db, request)


@router.post("/{run_id}/recalculate", response_model=PayrollRunResponse)
def recalculate_payroll(
    run_id: str,
    request: Optional[PayrollRecalculateRequest] = None,
    db: Session = Depends(get_db),
):
    attendance_days = request.attendance_days if request else None
    return payroll_service.recalculate_payroll_run(db, run_id, attendance_days)


@router.post("/{run_id}/undo-loans", response_model=LoanUndoResponse)
def undo_loan_deductions(run_id: str, db: Session = Depends(get_db)):
    return payroll_service.undo_loan_deductions(db, run_id)


@router.delete("/{run_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payroll_run(run_id: str, db: Session = Depends(get_db)):
    payroll_service.delete_payroll_run(db, run_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
