"""
Loan Service Layer

Schedule previews, policy checks over stored loans, and activation. Activation
is the only write path: it validates, generates the amortization schedule and
stores it in one transaction.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from paymaster.core.exceptions import LoanActivationError, LoanPolicyViolationError, NotFoundError
from paymaster.models.loan import Loan, LoanAmortizationInstallment, LoanPayment, LoanStatus
from paymaster.schemas.loan import (
    ApprovalStageSnapshot,
    LoanDocumentSnapshot,
    LoanPolicyResult,
    LoanTerms,
    ScheduledInstallment,
)
from paymaster.services.amortization import generate_amortization_schedule
from paymaster.services.loan_policy import validate_loan_policies

logger = logging.getLogger(__name__)

ACTIVATABLE_STATUSES = (LoanStatus.PENDING.value, LoanStatus.APPROVED.value)


def preview_loan_schedule(
    amount: float,
    monthly_payment: float,
    start_date: date,
    interest_rate: Optional[float] = None,
    end_date: Optional[date] = None,
) -> Dict[str, Any]:
    """Schedule for the given terms plus its totals. Nothing is stored."""
    schedule = generate_amortization_schedule(amount, monthly_payment, start_date, interest_rate, end_date)
    return {
        "installments": schedule,
        "installment_count": len(schedule),
        "total_payment": round(sum(i.payment_amount for i in schedule), 2),
        "total_interest": round(sum(i.interest_amount for i in schedule), 2),
        "final_due_date": schedule[-1].due_date if schedule else None,
    }


def _get_loan(db: Session, loan_id: str) -> Loan:
    loan = (
        db.query(Loan)
        .options(
            selectinload(Loan.installments),
            selectinload(Loan.approval_stages),
            selectinload(Loan.documents),
        )
        .filter(Loan.id == loan_id)
        .first()
    )
    if loan is None:
        raise NotFoundError(f"Loan {loan_id} not found")
    return loan


def _check_policies(loan: Loan, strict: bool) -> LoanPolicyResult:
    return validate_loan_policies(
        LoanTerms.model_validate(loan),
        approval_stages=[ApprovalStageSnapshot.model_validate(s) for s in loan.approval_stages],
        documents=[LoanDocumentSnapshot.model_validate(d) for d in loan.documents],
        employee_salary=loan.employee.monthly_salary if loan.employee else None,
        existing_schedule=[ScheduledInstallment.model_validate(i) for i in loan.installments],
        strict=strict,
    )


def validate_loan(db: Session, loan_id: str, strict: bool = False) -> LoanPolicyResult:
    return _check_policies(_get_loan(db, loan_id), strict)


def activate_loan(db: Session, loan_id: str, strict: bool = True) -> Loan:
    """
    Validate a loan, store its amortization schedule and mark it active.

    Raises LoanPolicyViolationError when the loan breaks policy and
    InsufficientPaymentError when the payment never reduces principal. Either
    leaves the loan untouched. Only pending or approved loans that payroll has
    never deducted from can be activated; anything else raises
    LoanActivationError.
    """
    loan = _get_loan(db, loan_id)
    if loan.status not in ACTIVATABLE_STATUSES:
        logger.warning(f"Loan {loan_id} activation refused", extra={"status": loan.status})
        raise LoanActivationError(loan_id, f"status is {loan.status}")
    if db.query(LoanPayment).filter(LoanPayment.loan_id == loan_id).count():
        raise LoanActivationError(loan_id, "payroll has already deducted from this loan")

    result = _check_policies(loan, strict)
    if not result.is_compliant:
        logger.warning(f"Loan {loan_id} failed policy checks", extra={"violations": result.violations})
        raise LoanPolicyViolationError(loan_id, result.violations, result.warnings)

    schedule: List[ScheduledInstallment] = generate_amortization_schedule(
        loan.amount,
        loan.monthly_deduction,
        loan.start_date,
        loan.interest_rate,
        loan.end_date,
    )

    try:
        loan.installments.clear()
        db.flush()
        for item in schedule:
            loan.installments.append(LoanAmortizationInstallment(
                installment_number=item.installment_number,
                due_date=item.due_date,
                principal_amount=item.principal_amount,
                interest_amount=item.interest_amount,
                payment_amount=item.payment_amount,
                remaining_balance=item.remaining_balance,
            ))
        loan.status = LoanStatus.ACTIVE.value
        loan.remaining_amount = loan.amount
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"Loan activation rolled back for loan {loan_id}")
        raise
    db.refresh(loan)

    logger.info(
        f"Loan {loan_id} activated",
        extra={"installments": len(schedule), "warnings": result.warnings},
    )
    return loan
