"""
Employee Payroll Calculator

Computes one employee's pay breakdown for a period. The function is pure:
identical inputs always produce an identical EmployeePayroll, which keeps
preview, generate and recalculate in agreement.
"""
import re
from datetime import date
from typing import Dict, List, Optional, Sequence

from paymaster.core.exceptions import PayrollValidationError
from paymaster.models.employee_event import EventCategory, EventStatus, RecurrenceType, classify_event
from paymaster.models.vacation_request import VacationStatus
from paymaster.schemas.payroll import (
    DeductionConfig,
    EmployeePayroll,
    EmployeeSnapshot,
    EventSnapshot,
    LoanSnapshot,
    SkipOverrides,
    VacationSnapshot,
)
from paymaster.services.amortization import installments_due_in_period
from paymaster.services.loan_allocation import is_loan_eligible

SCHEDULE_MISMATCH_TOLERANCE = 0.05

_ALLOWANCE_WORD = re.compile(r"\ballowances?\b")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def inclusive_overlap_days(start_a: date, end_a: date, start_b: date, end_b: date) -> int:
    start = max(start_a, start_b)
    end = min(end_a, end_b)
    return (end - start).days + 1 if start <= end else 0


def normalize_allowance_key(title: str) -> str:
    """'Housing Allowance' -> 'housing', 'Car / Fuel allowance' -> 'car_fuel'."""
    key = _ALLOWANCE_WORD.sub(" ", (title or "").lower())
    key = _NON_ALNUM.sub("_", key).strip("_")
    return key or "allowance"


def working_days_for(employee: EmployeeSnapshot, period_start: date, period_end: date) -> int:
    """The employee's standard working days, else every calendar day of the period."""
    if employee.standard_working_days:
        return employee.standard_working_days
    return (period_end - period_start).days + 1


def _in_period(day: date, period_start: date, period_end: date) -> bool:
    return period_start <= day <= period_end


def _payroll_events(
    events: Sequence[EventSnapshot],
    employee_id: str,
    skip: SkipOverrides,
) -> List[EventSnapshot]:
    return [
        e for e in events
        if e.employee_id == employee_id
        and e.id not in skip.event_ids
        and e.status == EventStatus.ACTIVE
        and e.affects_payroll
        and classify_event(e.event_type) != EventCategory.NON_PAYROLL
    ]


def _recurring_allowance_applies(event: EventSnapshot, period_start: date, period_end: date) -> bool:
    if event.recurrence_type != RecurrenceType.MONTHLY:
        return False
    if _in_period(event.event_date, period_start, period_end):
        # Already counted as an in-period occurrence
        return False
    if event.event_date > period_end:
        return False
    return event.recurrence_end_date is None or event.recurrence_end_date >= period_start


def calculate_employee_payroll(
    employee: EmployeeSnapshot,
    loans: Sequence[LoanSnapshot],
    vacations: Sequence[VacationSnapshot],
    events: Sequence[EventSnapshot],
    period_start: date,
    period_end: date,
    working_days: int,
    attendance_days: Optional[int] = None,
    deduction_config: Optional[DeductionConfig] = None,
    skip_overrides: Optional[SkipOverrides] = None,
    currency: str = "KWD",
) -> EmployeePayroll:
    """
    Calculate pay for one employee.

    Statutory amounts are taken as-is from ``deduction_config`` (zero when not
    supplied). Employees who are not active earn no base pay and have no loan
    deduction for the whole period. Net pay never goes below zero: deductions
    are honoured in the order statutory, other, loan, and whatever gross pay
    cannot cover is dropped, so that ``gross - deductions == net`` always holds.
    """
    if working_days <= 0:
        raise PayrollValidationError(
            "Working days must be greater than zero",
            details={"employee_id": employee.id, "working_days": working_days},
        )

    config = deduction_config or DeductionConfig()
    skip = skip_overrides or SkipOverrides()

    # 1. Vacation days
    vacation_days = sum(
        inclusive_overlap_days(v.start_date, v.end_date, period_start, period_end)
        for v in vacations
        if v.employee_id == employee.id
        and v.status == VacationStatus.APPROVED
        and v.id not in skip.vacation_ids
    )

    # 2-3. Working days and base salary
    base_working = min(working_days, attendance_days) if attendance_days is not None else working_days
    actual_working_days = max(0, base_working - vacation_days)
    base_salary = (
        round(employee.monthly_salary * actual_working_days / working_days, 2)
        if employee.is_active
        else 0.0
    )

    # 4. Loan deduction
    notes: List[str] = []
    scheduled_loan_deduction = 0.0
    if employee.is_active:
        for loan in loans:
            if loan.employee_id != employee.id or not is_loan_eligible(loan, skip):
                continue
            if loan.paused_for_leave:
                notes.append(f"Loan {loan.id} installments paused for leave.")
                continue
            due = loan.monthly_deduction
            if loan.scheduled_due_amount is not None:
                due = loan.scheduled_due_amount
                has_due = bool(installments_due_in_period(loan.installments, period_start, period_end))
                if has_due and abs(loan.scheduled_due_amount - loan.monthly_deduction) > SCHEDULE_MISMATCH_TOLERANCE:
                    notes.append(
                        f"Loan {loan.id}: scheduled {loan.scheduled_due_amount:.2f} differs "
                        f"from monthly deduction {loan.monthly_deduction:.2f}."
                    )
            scheduled_loan_deduction += min(loan.remaining_amount, max(0.0, due))

    # 5-7. Events
    payroll_events = _payroll_events(events, employee.id, skip)
    allowances: Dict[str, float] = {}
    earnings = 0.0
    event_deductions = 0.0
    for event in payroll_events:
        category = classify_event(event.event_type)
        in_period = _in_period(event.event_date, period_start, period_end)
        if category == EventCategory.ALLOWANCE:
            if in_period or _recurring_allowance_applies(event, period_start, period_end):
                key = normalize_allowance_key(event.title)
                allowances[key] = round(allowances.get(key, 0.0) + event.amount, 2)
        elif not in_period:
            continue
        elif category in (EventCategory.EARNING, EventCategory.OVERTIME):
            earnings += event.amount
        elif category == EventCategory.DEDUCTION:
            event_deductions += event.amount

    bonus_amount = round(earnings + sum(allowances.values()), 2)

    # 8. Gross, deductions and net
    gross_pay = round(base_salary + bonus_amount, 2)
    coverable = max(0.0, gross_pay)

    def withhold(amount: float) -> float:
        nonlocal coverable
        taken = round(min(max(0.0, amount), coverable), 2)
        coverable = round(coverable - taken, 2)
        return taken

    tax_deduction = withhold(config.tax_deduction)
    social_security_deduction = withhold(config.social_security_deduction)
    health_insurance_deduction = withhold(config.health_insurance_deduction)
    other_deductions = withhold(event_deductions)
    loan_deduction = withhold(scheduled_loan_deduction)

    total_deductions = (
        tax_deduction + social_security_deduction + health_insurance_deduction
        + loan_deduction + other_deductions
    )
    net_pay = round(max(0.0, gross_pay - total_deductions), 2)

    # 9. Adjustment reason
    reasons: List[str] = []
    if vacation_days > 0:
        reasons.append(f"{vacation_days} vacation days.")
    if loan_deduction > 0:
        reasons.append(f"Loan deduction: {loan_deduction:.2f} {currency}.")
    reasons.extend(notes)

    return EmployeePayroll(
        employee_id=employee.id,
        gross_pay=gross_pay,
        base_salary=base_salary,
        bonus_amount=bonus_amount,
        allowances=allowances,
        working_days=working_days,
        actual_working_days=actual_working_days,
        vacation_days=vacation_days,
        tax_deduction=tax_deduction,
        social_security_deduction=social_security_deduction,
        health_insurance_deduction=health_insurance_deduction,
        loan_deduction=loan_deduction,
        other_deductions=other_deductions,
        net_pay=net_pay,
        adjustment_reason=" ".join(reasons) or None,
    )
