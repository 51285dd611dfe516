"""
Payroll Service Layer

Loads period inputs from the database, runs the pure calculation engine and
persists the outcome. Every write path (generate, recalculate, undo, delete)
runs inside a single transaction: any failure rolls the session back and
re-raises, so a run is never left half-applied.

Architecture:
- Router -> Service (this module) -> engine modules (pure) -> Models
- The engine never sees a Session; it works on snapshots built here
"""
import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from sqlalchemy.orm import Session, selectinload

from paymaster.core.config import settings
from paymaster.core.exceptions import NotFoundError, PayrollPeriodConflictError, PayrollValidationError
from paymaster.models.employee import Employee, EmployeeStatus, new_id
from paymaster.models.employee_event import EmployeeEvent, RecurrenceType
from paymaster.models.loan import Loan, LoanAmortizationInstallment, LoanPayment
from paymaster.models.notification import Notification
from paymaster.models.payroll import (
    PayrollCalendar,
    PayrollEntry,
    PayrollFrequency,
    PayrollRun,
    PayrollRunStatus,
)
from paymaster.models.vacation_request import VacationRequest, VacationStatus
from paymaster.schemas.loan import InstallmentUpdate, LoanPaymentRecord, LoanUndoPlan
from paymaster.schemas.payroll import (
    DeductionConfig,
    EmployeePayroll,
    EmployeeSnapshot,
    EventSnapshot,
    LoanSnapshot,
    PayrollGenerateRequest,
    PayrollPreviewRequest,
    PayrollSnapshot,
    ScenarioPreview,
    SkipOverrides,
    VacationSnapshot,
)
from paymaster.services.loan_allocation import DEDUCTIBLE_LOAN_STATUSES, allocate_loan_deduction
from paymaster.services.loan_undo import plan_loan_payment_undo
from paymaster.services.notification import NotificationService
from paymaster.services.payroll_exports import normalize_export_requests
from paymaster.services.payroll_scenarios import (
    calculate_payroll_entries,
    preview_scenarios,
    resolve_toggles,
    scenario_inputs_for,
)
from paymaster.services.payroll_totals import calculate_totals

logger = logging.getLogger(__name__)

LOADED_VACATION_STATUSES = (VacationStatus.APPROVED.value, VacationStatus.PENDING.value)


# --- Inputs ---

def default_deduction_config() -> DeductionConfig:
    return DeductionConfig(
        tax_deduction=settings.payroll.tax_deduction,
        social_security_deduction=settings.payroll.social_security_deduction,
        health_insurance_deduction=settings.payroll.health_insurance_deduction,
    )


def _validate_period(start_date: date, end_date: date, period: Optional[str] = None, require_label: bool = False):
    if require_label and not (period or "").strip():
        raise PayrollValidationError("Period label is required", details={"field": "period"})
    if start_date > end_date:
        raise PayrollValidationError(
            "Start date must not be after end date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )


def load_payroll_snapshot(
    db: Session,
    start_date: date,
    end_date: date,
    deduction_config: Optional[DeductionConfig] = None,
    attendance_days: Optional[Mapping[str, int]] = None,
) -> PayrollSnapshot:
    """
    Read everything one period needs: active employees, their deductible
    loans with installments, leave overlapping the period and payroll events
    (in-period ones plus monthly recurring ones started before the period end).
    """
    employees = (
        db.query(Employee)
        .filter(Employee.status == EmployeeStatus.ACTIVE.value)
        .order_by(Employee.created_at, Employee.id)
        .all()
    )
    employee_ids = [e.id for e in employees]

    loans: List[Loan] = []
    vacations: List[VacationRequest] = []
    events: List[EmployeeEvent] = []
    if employee_ids:
        loans = (
            db.query(Loan)
            .options(selectinload(Loan.installments))
            .filter(
                Loan.employee_id.in_(employee_ids),
                Loan.status.in_([s.value for s in DEDUCTIBLE_LOAN_STATUSES]),
                Loan.remaining_amount > 0,
            )
            .all()
        )
        vacations = (
            db.query(VacationRequest)
            .filter(
                VacationRequest.employee_id.in_(employee_ids),
                VacationRequest.status.in_(LOADED_VACATION_STATUSES),
                VacationRequest.start_date <= end_date,
                VacationRequest.end_date >= start_date,
            )
            .all()
        )
        events = (
            db.query(EmployeeEvent)
            .filter(
                EmployeeEvent.employee_id.in_(employee_ids),
                EmployeeEvent.event_date <= end_date,
                (EmployeeEvent.event_date >= start_date)
                | (EmployeeEvent.recurrence_type == RecurrenceType.MONTHLY.value),
            )
            .order_by(EmployeeEvent.event_date, EmployeeEvent.id)
            .all()
        )

    return PayrollSnapshot(
        period_start=start_date,
        period_end=end_date,
        employees=[EmployeeSnapshot.model_validate(e) for e in employees],
        loans=[LoanSnapshot.model_validate(l) for l in loans],
        vacations=[VacationSnapshot.model_validate(v) for v in vacations],
        events=[EventSnapshot.model_validate(e) for e in events],
        attendance_days=dict(attendance_days or {}),
        deduction_config=deduction_config or default_deduction_config(),
    )


def find_overlapping_run(
    db: Session,
    start_date: date,
    end_date: date,
    calendar_id: Optional[str] = None,
    exclude_run_id: Optional[str] = None,
) -> Optional[PayrollRun]:
    """
    First run whose inclusive date range overlaps the given one.

    This is a read-then-insert check; two concurrent generate requests for
    the same period can both pass it.
    """
    query = db.query(PayrollRun).filter(
        PayrollRun.start_date <= end_date,
        PayrollRun.end_date >= start_date,
    )
    if calendar_id:
        query = query.filter(PayrollRun.calendar_id == calendar_id)
    if exclude_run_id:
        query = query.filter(PayrollRun.id != exclude_run_id)
    return query.order_by(PayrollRun.start_date).first()


def resolve_run_toggles(
    db: Session,
    calendar_id: Optional[str] = None,
    frequency: Optional[str] = None,
    request_toggles: Optional[Mapping[str, bool]] = None,
) -> Dict[str, bool]:
    """
    Built-in defaults, then the frequency's configured defaults, then the
    calendar's overrides, then the request. The attendance toggle starts from
    the ``use_attendance_for_deductions`` setting.
    """
    calendar = None
    if calendar_id:
        calendar = db.get(PayrollCalendar, calendar_id)
        if calendar is None:
            raise NotFoundError(f"Payroll calendar {calendar_id} not found")

    frequency = frequency or (calendar.frequency if calendar else None) or settings.payroll.default_frequency
    if frequency not in {f.value for f in PayrollFrequency}:
        raise PayrollValidationError(
            f"Unknown payroll frequency: {frequency}",
            details={"supported": [f.value for f in PayrollFrequency]},
        )

    frequency_defaults = {"attendance": settings.payroll.use_attendance_for_deductions}
    frequency_defaults.update(settings.payroll.frequency_scenario_defaults.get(frequency, {}))
    return resolve_toggles(
        frequency_defaults,
        calendar.scenario_overrides if calendar else None,
        request_toggles,
    )


# --- Preview ---

def preview_payroll(db: Session, request: PayrollPreviewRequest) -> List[ScenarioPreview]:
    """Evaluate the requested scenarios for a period without writing anything."""
    _validate_period(request.start_date, request.end_date)
    toggles = resolve_run_toggles(db, request.calendar_id, request.frequency, request.toggles)
    snapshot = load_payroll_snapshot(
        db, request.start_date, request.end_date, request.deductions, request.attendance_days
    )
    return preview_scenarios(
        snapshot, request.scenarios, toggles, request.skip, settings.payroll.currency
    )


# --- Persistence helpers ---

def _add_entries(run: PayrollRun, entries: Sequence[EmployeePayroll]):
    for entry in entries:
        run.entries.append(PayrollEntry(
            employee_id=entry.employee_id,
            gross_pay=entry.gross_pay,
            base_salary=entry.base_salary,
            bonus_amount=entry.bonus_amount,
            allowances=dict(entry.allowances),
            working_days=entry.working_days,
            actual_working_days=entry.actual_working_days,
            vacation_days=entry.vacation_days,
            tax_deduction=entry.tax_deduction,
            social_security_deduction=entry.social_security_deduction,
            health_insurance_deduction=entry.health_insurance_deduction,
            loan_deduction=entry.loan_deduction,
            other_deductions=entry.other_deductions,
            net_pay=entry.net_pay,
            adjustment_reason=entry.adjustment_reason,
        ))


def _apply_installment_updates(db: Session, updates: Sequence[InstallmentUpdate]):
    for update in updates:
        installment = (
            db.query(LoanAmortizationInstallment)
            .filter(
                LoanAmortizationInstallment.loan_id == update.loan_id,
                LoanAmortizationInstallment.installment_number == update.installment_number,
            )
            .one()
        )
        installment.status = update.status.value
        installment.payroll_run_id = update.payroll_run_id
        installment.paid_date = update.paid_date


def _apply_loan_deductions(
    db: Session,
    run: PayrollRun,
    entries: Sequence[EmployeePayroll],
    loans: Sequence[LoanSnapshot],
    vacations: Sequence[VacationSnapshot],
    skip: SkipOverrides,
) -> float:
    """Allocate each entry's loan deduction and write payments, balances and installments."""
    applied_total = 0.0
    for entry in entries:
        allocation = allocate_loan_deduction(
            employee_id=entry.employee_id,
            total_deduction=entry.loan_deduction,
            loans=loans,
            vacations=vacations,
            payroll_run_id=run.id,
            period_start=run.start_date,
            period_end=run.end_date,
            applied_date=run.end_date,
            skip=skip,
        )
        if allocation.unapplied > 0.01:
            logger.warning(
                f"Loan deduction not fully allocated for employee {entry.employee_id}",
                extra={"payroll_run_id": run.id, "unapplied": allocation.unapplied},
            )

        for payment in allocation.payments:
            db.add(LoanPayment(
                loan_id=payment.loan_id,
                payroll_run_id=payment.payroll_run_id,
                employee_id=payment.employee_id,
                amount=payment.amount,
                applied_date=payment.applied_date,
                source=payment.source,
            ))
            loan = db.get(Loan, payment.loan_id)
            loan.remaining_amount = payment.remaining_after
            loan.status = payment.status_after.value
        _apply_installment_updates(db, allocation.installment_updates)
        applied_total += allocation.applied
    return round(applied_total, 2)


def _store_calculation_inputs(
    deductions: DeductionConfig,
    attendance_days: Optional[Mapping[str, int]],
    skip: SkipOverrides,
    frequency: Optional[str],
) -> Dict[str, Any]:
    return {
        "deductions": deductions.model_dump(),
        "attendance_days": dict(attendance_days or {}),
        "skip": {
            "vacation_ids": sorted(skip.vacation_ids),
            "loan_ids": sorted(skip.loan_ids),
            "event_ids": sorted(skip.event_ids),
        },
        "frequency": frequency,
    }


def _calculate_and_apply(
    db: Session,
    run: PayrollRun,
    deductions: DeductionConfig,
    attendance_days: Optional[Mapping[str, int]],
    toggles: Mapping[str, bool],
    skip: SkipOverrides,
) -> List[EmployeePayroll]:
    """Snapshot, calculate, write entries and loan effects, then total the run."""
    snapshot = load_payroll_snapshot(db, run.start_date, run.end_date, deductions, attendance_days)
    currency = settings.payroll.currency
    entries = calculate_payroll_entries(snapshot, toggles, skip, currency)
    inputs = scenario_inputs_for(snapshot, toggles, skip)

    _add_entries(run, entries)
    _apply_loan_deductions(db, run, entries, inputs.loans, inputs.vacations, skip)

    totals = calculate_totals(entries)
    run.gross_amount = totals.gross_amount
    run.total_deductions = totals.total_deductions
    run.net_amount = totals.net_amount
    run.status = PayrollRunStatus.COMPLETED.value

    NotificationService.notify_payroll_run(
        db, entries, run.id, run.period, run.end_date, inputs.attendance_days, currency
    )
    return entries


# --- Generate / recalculate ---

def generate_payroll_run(db: Session, request: PayrollGenerateRequest) -> Dict[str, Any]:
    """
    Create a payroll run for a period.

    Raises PayrollValidationError for a malformed request and
    PayrollPeriodConflictError when a run already covers the period. Run,
    entries, loan payments, loan balances, installments and notifications
    are committed together or not at all.
    """
    _validate_period(request.start_date, request.end_date, request.period, require_label=True)

    existing = find_overlapping_run(db, request.start_date, request.end_date, request.calendar_id)
    if existing is not None:
        logger.warning(
            f"Payroll period conflict for {request.period}",
            extra={"existing_run_id": existing.id},
        )
        raise PayrollPeriodConflictError(existing.id, existing.period)

    toggles = resolve_run_toggles(db, request.calendar_id, request.frequency, request.toggles)
    deductions = request.deductions or default_deduction_config()
    run_id = new_id()
    exports = normalize_export_requests(request.exports, request.period, run_id)

    run = PayrollRun(
        id=run_id,
        period=request.period.strip(),
        start_date=request.start_date,
        end_date=request.end_date,
        calendar_id=request.calendar_id,
        status=PayrollRunStatus.DRAFT.value,
        scenario_key=request.scenario_key,
        scenario_toggles=toggles,
        calculation_inputs=_store_calculation_inputs(
            deductions, request.attendance_days, request.skip, request.frequency
        ),
    )
    try:
        db.add(run)
        db.flush()
        entries = _calculate_and_apply(db, run, deductions, request.attendance_days, toggles, request.skip)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"Payroll generation rolled back for {request.period}")
        raise
    db.refresh(run)

    logger.info(
        f"Payroll run {run.id} generated for {run.period}",
        extra={"entries": len(entries), "net_amount": run.net_amount},
    )
    return {"run": run, "exports": exports}


def recalculate_payroll_run(
    db: Session,
    run_id: str,
    attendance_days: Optional[Mapping[str, int]] = None,
) -> PayrollRun:
    """
    Recompute a run from current inputs with the toggles it was generated
    with. Its loan effects are undone and re-applied in the same transaction,
    so recalculating an unchanged period is a no-op.
    """
    run = get_payroll_run(db, run_id)
    stored = run.calculation_inputs or {}
    deductions = DeductionConfig(**stored.get("deductions", {}))
    skip = SkipOverrides(**stored.get("skip", {}))
    if attendance_days is None:
        attendance_days = stored.get("attendance_days") or {}
    toggles = dict(run.scenario_toggles or {})

    try:
        _undo_loan_effects(db, run)
        run.entries.clear()
        db.query(Notification).filter(Notification.payroll_run_id == run.id).delete(synchronize_session=False)
        db.flush()

        run.calculation_inputs = _store_calculation_inputs(
            deductions, attendance_days, skip, stored.get("frequency")
        )
        _calculate_and_apply(db, run, deductions, attendance_days, toggles, skip)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"Payroll recalculation rolled back for run {run_id}")
        raise
    db.refresh(run)

    logger.info(f"Payroll run {run.id} recalculated", extra={"net_amount": run.net_amount})
    return run


# --- Undo / delete ---

def _later_paid_loan_ids(db: Session, run: PayrollRun, loan_ids: Set[str]) -> Set[str]:
    if not loan_ids:
        return set()
    rows = (
        db.query(LoanPayment.loan_id)
        .join(PayrollRun, LoanPayment.payroll_run_id == PayrollRun.id)
        .filter(
            LoanPayment.loan_id.in_(loan_ids),
            PayrollRun.id != run.id,
            PayrollRun.start_date >= run.start_date,
        )
        .distinct()
        .all()
    )
    return {row[0] for row in rows}


def _undo_loan_effects(db: Session, run: PayrollRun) -> LoanUndoPlan:
    """Plan and stage the reversal of a run's loan payments. Does not commit."""
    payments = db.query(LoanPayment).filter(LoanPayment.payroll_run_id == run.id).all()
    loan_ids = {p.loan_id for p in payments}
    loans = (
        db.query(Loan)
        .options(selectinload(Loan.installments))
        .filter(Loan.id.in_(loan_ids))
        .all()
        if loan_ids else []
    )
    plan = plan_loan_payment_undo(
        run.id,
        [LoanPaymentRecord.model_validate(p) for p in payments],
        {l.id: LoanSnapshot.model_validate(l) for l in loans},
        _later_paid_loan_ids(db, run, loan_ids),
    )

    for restore in plan.restores:
        loan = db.get(Loan, restore.loan_id)
        loan.remaining_amount = restore.remaining_after
        loan.status = restore.status_after.value
    _apply_installment_updates(db, plan.installment_updates)
    if plan.payment_ids:
        db.query(LoanPayment).filter(LoanPayment.id.in_(plan.payment_ids)).delete(synchronize_session=False)
    return plan


def undo_loan_deductions(db: Session, run_id: str) -> Dict[str, Any]:
    """
    Give back every loan deduction a run made. Raises LoanPaymentUndoError
    (and changes nothing) when any of the run's payments cannot be reversed.
    """
    run = get_payroll_run(db, run_id)
    try:
        plan = _undo_loan_effects(db, run)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"Loan deduction undo rolled back for run {run_id}")
        raise

    refunded = round(sum(r.refunded for r in plan.restores), 2)
    logger.info(
        f"Loan deductions undone for run {run_id}",
        extra={"loans_restored": len(plan.restores), "refunded": refunded},
    )
    return {
        "payroll_run_id": run_id,
        "loans_restored": len(plan.restores),
        "payments_removed": len(plan.payment_ids),
        "refunded": refunded,
    }


def delete_payroll_run(db: Session, run_id: str) -> None:
    """Undo the run's loan deductions, then delete it with its entries."""
    run = get_payroll_run(db, run_id)
    try:
        _undo_loan_effects(db, run)
        db.query(Notification).filter(Notification.payroll_run_id == run.id).update(
            {Notification.payroll_run_id: None}, synchronize_session=False
        )
        db.delete(run)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"Payroll run delete rolled back for run {run_id}")
        raise
    logger.info(f"Payroll run {run_id} deleted")


# --- Queries ---

def get_payroll_run(db: Session, run_id: str) -> PayrollRun:
    run = db.get(PayrollRun, run_id)
    if run is None:
        raise NotFoundError(f"Payroll run {run_id} not found")
    return run


def list_payroll_runs(db: Session, skip: int = 0, limit: int = 100) -> List[PayrollRun]:
    return (
        db.query(PayrollRun)
        .order_by(PayrollRun.start_date.desc(), PayrollRun.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
