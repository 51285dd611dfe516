"""
Reversal of a payroll run's loan effects.

Planning is pure: it checks that every refund is safe and describes the
balance, status and installment changes. The payroll service applies the
plan and deletes the payment rows in one transaction.
"""
from typing import AbstractSet, Dict, Mapping, Sequence

from paymaster.core.exceptions import LoanPaymentUndoError
from paymaster.models.loan import InstallmentStatus, LoanStatus
from paymaster.schemas.loan import InstallmentUpdate, LoanPaymentRecord, LoanRestore, LoanUndoPlan
from paymaster.schemas.payroll import LoanSnapshot

PAID_OFF_THRESHOLD = 0.01


def plan_loan_payment_undo(
    payroll_run_id: str,
    payments: Sequence[LoanPaymentRecord],
    loans_by_id: Mapping[str, LoanSnapshot],
    later_paid_loan_ids: AbstractSet[str] = frozenset(),
) -> LoanUndoPlan:
    """
    Raises LoanPaymentUndoError if a loan is gone, if a later run has already
    deducted from it (a blind refund would double count), or if the refund
    would lift the remaining amount above the principal.
    """
    refunds: Dict[str, float] = {}
    for payment in payments:
        if payment.payroll_run_id != payroll_run_id:
            continue
        refunds[payment.loan_id] = refunds.get(payment.loan_id, 0.0) + payment.amount

    restores = []
    installment_updates = []
    for loan_id in sorted(refunds):
        refund = round(refunds[loan_id], 2)
        loan = loans_by_id.get(loan_id)
        if loan is None:
            raise LoanPaymentUndoError(loan_id, "loan no longer exists")
        if loan_id in later_paid_loan_ids:
            raise LoanPaymentUndoError(loan_id, "a later payroll run has deducted from this loan")

        restored = round(loan.remaining_amount + refund, 2)
        if restored > loan.amount + PAID_OFF_THRESHOLD:
            raise LoanPaymentUndoError(loan_id, "refund would exceed the loan principal")

        status_after = loan.status
        if loan.status == LoanStatus.COMPLETED and restored > PAID_OFF_THRESHOLD:
            status_after = LoanStatus.ACTIVE

        restores.append(LoanRestore(
            loan_id=loan_id,
            refunded=refund,
            remaining_after=restored,
            status_after=status_after,
        ))
        installment_updates.extend(
            InstallmentUpdate(
                loan_id=loan_id,
                installment_number=i.installment_number,
                status=InstallmentStatus.PENDING,
            )
            for i in loan.installments
            if i.status == InstallmentStatus.PAID and i.payroll_run_id == payroll_run_id
        )

    return LoanUndoPlan(
        payroll_run_id=payroll_run_id,
        restores=restores,
        installment_updates=installment_updates,
        payment_ids=[p.id for p in payments if p.payroll_run_id == payroll_run_id],
    )
