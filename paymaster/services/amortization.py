"""
Amortization Schedule Generator

Turns a principal, a flat monthly payment and an optional annual rate into an
ordered list of installments. Pure functions only: no database access, no
logging.
"""
import calendar
from datetime import date
from typing import AbstractSet, Iterable, List, Optional

from paymaster.core.exceptions import InsufficientPaymentError
from paymaster.models.loan import InstallmentStatus
from paymaster.schemas.loan import ScheduledInstallment
from paymaster.schemas.payroll import InstallmentSnapshot

MAX_INSTALLMENTS = 600  # 50 years of monthly payments
PAID_OFF_THRESHOLD = 0.01


def add_months(start: date, months: int) -> date:
    """
    Advance by calendar months, clamping the day to the target month's last day
    (Jan 31 + 1 month -> Feb 28/29).
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


def generate_amortization_schedule(
    amount: float,
    monthly_payment: float,
    start_date: date,
    interest_rate: Optional[float] = None,
    end_date: Optional[date] = None,
) -> List[ScheduledInstallment]:
    """
    Build the installment list for a loan.

    The first installment falls due on ``start_date``. When ``end_date`` is
    given and the next due date would pass it, a single balloon installment
    pays off the remaining balance plus that month's interest.

    Raises:
        InsufficientPaymentError: the payment does not cover the interest,
            so the balance would never decrease.
    """
    principal = max(0.0, float(amount or 0))
    payment = max(0.0, float(monthly_payment or 0))
    annual_rate = float(interest_rate or 0)
    monthly_rate = annual_rate / 12 / 100 if annual_rate > 0 else 0.0

    if principal <= 0 or payment <= 0:
        return []

    schedule: List[ScheduledInstallment] = []
    balance = principal
    installment = 1

    while balance > PAID_OFF_THRESHOLD and installment <= MAX_INSTALLMENTS:
        due_date = add_months(start_date, installment - 1)
        interest = balance * monthly_rate

        if end_date is not None and due_date > end_date:
            schedule.append(ScheduledInstallment(
                installment_number=installment,
                due_date=due_date,
                principal_amount=round(balance, 2),
                interest_amount=round(interest, 2),
                payment_amount=round(balance + interest, 2),
                remaining_balance=0.0,
            ))
            break

        principal_portion = payment - interest
        if principal_portion <= 0:
            raise InsufficientPaymentError(payment, interest)
        if principal_portion > balance:
            principal_portion = balance

        balance = max(0.0, balance - principal_portion)
        schedule.append(ScheduledInstallment(
            installment_number=installment,
            due_date=due_date,
            principal_amount=round(principal_portion, 2),
            interest_amount=round(interest, 2),
            payment_amount=round(principal_portion + interest, 2),
            remaining_balance=round(balance, 2) if balance > PAID_OFF_THRESHOLD else 0.0,
        ))
        installment += 1

    return schedule


def installments_due_in_period(
    installments: Iterable[InstallmentSnapshot],
    period_start: date,
    period_end: date,
) -> List[InstallmentSnapshot]:
    return sorted(
        (i for i in installments if period_start <= i.due_date <= period_end),
        key=lambda i: i.installment_number,
    )


def scheduled_amount_for_period(
    installments: Iterable[InstallmentSnapshot],
    period_start: date,
    period_end: date,
    statuses: AbstractSet[InstallmentStatus] = frozenset({InstallmentStatus.PENDING}),
) -> Optional[float]:
    """
    Sum of installment payments due inside the period whose status is in
    ``statuses`` (pending only by default).

    Returns None when the loan has no installment in the period at all, so
    the caller falls back to the loan's flat monthly deduction.
    """
    due = installments_due_in_period(installments, period_start, period_end)
    if not due:
        return None
    return round(
        sum(i.payment_amount for i in due if i.status in statuses),
        2,
    )
