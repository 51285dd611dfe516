"""
Loan Payment Allocator

Distributes one employee's computed loan deduction across that employee's
loans in a fixed order and works out the resulting balance, status and
installment changes. Nothing is written here: the allocator returns plans and
the payroll service applies them inside the run transaction.
"""
import math
from collections import OrderedDict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from paymaster.models.loan import InstallmentStatus, LoanStatus
from paymaster.models.vacation_request import VacationStatus
from paymaster.schemas.loan import InstallmentUpdate, LoanAllocation, LoanPaymentPlan
from paymaster.schemas.payroll import LoanSnapshot, SkipOverrides, VacationSnapshot
from paymaster.services.amortization import (
    installments_due_in_period,
    scheduled_amount_for_period,
)

DEDUCTIBLE_LOAN_STATUSES = frozenset({LoanStatus.ACTIVE, LoanStatus.APPROVED})
SCHEDULE_MATCH_TOLERANCE = 0.05
PAID_OFF_THRESHOLD = 0.01


def is_loan_eligible(loan: LoanSnapshot, skip: Optional[SkipOverrides] = None) -> bool:
    if skip is not None and loan.id in skip.loan_ids:
        return False
    return loan.status in DEDUCTIBLE_LOAN_STATUSES and loan.remaining_amount > 0


def _allocation_key(loan: LoanSnapshot) -> Tuple[float, float, str]:
    start = loan.start_date.toordinal() if loan.start_date else math.inf
    created = loan.created_at.timestamp() if loan.created_at else math.inf
    return (start, created, loan.id)


def sort_loans_for_allocation(loans: Iterable[LoanSnapshot]) -> List[LoanSnapshot]:
    """Oldest start date first, then oldest creation time, then id."""
    return sorted(loans, key=_allocation_key)


def should_pause_loans_for_leave(
    vacations: Iterable[VacationSnapshot],
    period_start: date,
    period_end: date,
) -> bool:
    return any(
        v.status == VacationStatus.APPROVED
        and v.pause_loans
        and v.start_date <= period_end
        and v.end_date >= period_start
        for v in vacations
    )


def prepare_loan_snapshots(
    loans: Sequence[LoanSnapshot],
    vacations: Sequence[VacationSnapshot],
    period_start: date,
    period_end: date,
) -> List[LoanSnapshot]:
    """
    Fill in each scheduled loan's due amount for the period.

    Loans without installments keep ``scheduled_due_amount=None`` and are
    collected at their flat monthly deduction. A scheduled loan with nothing
    due in the period is owed 0. Installments previously paused count again
    unless a pause-loans leave still covers the period, in which case the loan
    is flagged ``paused_for_leave`` and nothing is collected.
    """
    prepared = []
    for loan in loans:
        if not loan.installments:
            prepared.append(loan)
            continue

        employee_vacations = [v for v in vacations if v.employee_id == loan.employee_id]
        due = installments_due_in_period(loan.installments, period_start, period_end)
        paused = bool(due) and should_pause_loans_for_leave(employee_vacations, period_start, period_end)
        scheduled = scheduled_amount_for_period(
            loan.installments,
            period_start,
            period_end,
            statuses=frozenset({InstallmentStatus.PENDING, InstallmentStatus.PAUSED}),
        )
        prepared.append(loan.model_copy(update={
            "scheduled_due_amount": 0.0 if paused or scheduled is None else scheduled,
            "paused_for_leave": paused,
        }))
    return prepared


def _installment_updates(
    loan: LoanSnapshot,
    pause: bool,
    period_start: date,
    period_end: date,
) -> List[InstallmentUpdate]:
    if pause:
        return [
            InstallmentUpdate(
                loan_id=loan.id,
                installment_number=i.installment_number,
                status=InstallmentStatus.PAUSED,
            )
            for i in installments_due_in_period(loan.installments, period_start, period_end)
            if i.status == InstallmentStatus.PENDING
        ]
    return [
        InstallmentUpdate(
            loan_id=loan.id,
            installment_number=i.installment_number,
            status=InstallmentStatus.PENDING,
        )
        for i in loan.installments
        if i.status == InstallmentStatus.PAUSED
    ]


def allocate_loan_deduction(
    employee_id: str,
    total_deduction: float,
    loans: Sequence[LoanSnapshot],
    vacations: Sequence[VacationSnapshot],
    payroll_run_id: str,
    period_start: date,
    period_end: date,
    applied_date: date,
    skip: Optional[SkipOverrides] = None,
) -> LoanAllocation:
    """
    Spread ``total_deduction`` over the employee's eligible loans.

    Each loan takes ``min(remaining, scheduled-else-cap, budget)``. Installments
    due in the period are marked paid only when the amount applied matches
    their scheduled total within 0.05, never on a partial payment.
    Pause/resume follows the employee's approved pause-loans leave and runs
    whether or not any money was withheld.
    """
    budget = round(max(0.0, total_deduction), 2)
    requested = budget
    employee_loans = sort_loans_for_allocation(
        loan for loan in loans
        if loan.employee_id == employee_id and is_loan_eligible(loan, skip)
    )
    pause = should_pause_loans_for_leave(
        [v for v in vacations if v.employee_id == employee_id],
        period_start,
        period_end,
    )

    payments: List[LoanPaymentPlan] = []
    # Keyed by (loan, installment) so a later decision replaces an earlier one
    updates: "OrderedDict[Tuple[str, int], InstallmentUpdate]" = OrderedDict()

    for loan in employee_loans:
        for update in _installment_updates(loan, pause, period_start, period_end):
            updates[(update.loan_id, update.installment_number)] = update

        if budget <= 0:
            continue
        due = installments_due_in_period(loan.installments, period_start, period_end)
        if pause and due:
            continue

        target = loan.scheduled_due_amount if loan.scheduled_due_amount is not None else loan.monthly_deduction
        applied = round(min(loan.remaining_amount, target, budget), 2)
        if applied <= 0:
            continue

        remaining_after = round(max(0.0, loan.remaining_amount - applied), 2)
        completed = remaining_after <= PAID_OFF_THRESHOLD
        payments.append(LoanPaymentPlan(
            loan_id=loan.id,
            employee_id=employee_id,
            payroll_run_id=payroll_run_id,
            amount=applied,
            applied_date=applied_date,
            remaining_after=remaining_after,
            status_after=LoanStatus.COMPLETED if completed else LoanStatus.ACTIVE,
        ))
        budget = round(budget - applied, 2)

        collectable = [
            i for i in due
            if i.status in (InstallmentStatus.PENDING, InstallmentStatus.PAUSED)
        ]
        scheduled_total = sum(i.payment_amount for i in collectable)
        if collectable and abs(applied - scheduled_total) <= SCHEDULE_MATCH_TOLERANCE:
            for i in collectable:
                updates[(loan.id, i.installment_number)] = InstallmentUpdate(
                    loan_id=loan.id,
                    installment_number=i.installment_number,
                    status=InstallmentStatus.PAID,
                    payroll_run_id=payroll_run_id,
                    paid_date=applied_date,
                )

    return LoanAllocation(
        employee_id=employee_id,
        requested=requested,
        applied=round(requested - budget, 2),
        payments=payments,
        installment_updates=list(updates.values()),
    )


def group_loans_by_employee(loans: Iterable[LoanSnapshot]) -> Dict[str, List[LoanSnapshot]]:
    grouped: Dict[str, List[LoanSnapshot]] = {}
    for loan in loans:
        grouped.setdefault(loan.employee_id, []).append(loan)
    return grouped
