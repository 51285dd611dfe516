import pytest
from datetime import date

from paymaster.core.exceptions import (
    LoanPaymentUndoError,
    NotFoundError,
    PayrollInvariantError,
    PayrollPeriodConflictError,
    PayrollValidationError,
)
from paymaster.models import (
    Loan, LoanAmortizationInstallment, LoanPayment, Notification, PayrollCalendar, PayrollEntry, PayrollRun,
)
from paymaster.schemas.payroll import ExportRequest, PayrollGenerateRequest, PayrollPreviewRequest, SkipOverrides
from paymaster.services import payroll_service


def _generate(db, period="Jan 2024", start=date(2024, 1, 1), end=date(2024, 1, 31), **kwargs):
    request = PayrollGenerateRequest(period=period, start_date=start, end_date=end, **kwargs)
    return payroll_service.generate_payroll_run(db, request)


def test_generate_persists_run_entries_and_loan_payments(db_session, make_employee, make_loan, make_vacation):
    employee = make_employee()
    loan = make_loan(employee, amount=600, monthly_deduction=100)
    make_vacation(employee, date(2024, 1, 10), date(2024, 1, 11))

    result = _generate(db_session)
    run = result["run"]

    assert run.status == "completed"
    assert run.gross_amount == 2800.0
    assert run.total_deductions == 100.0
    assert run.net_amount == 2700.0
    [entry] = run.entries
    assert entry.employee_id == employee.id
    assert entry.loan_deduction == 100.0

    db_session.refresh(loan)
    assert loan.remaining_amount == 500.0
    [payment] = db_session.query(LoanPayment).all()
    assert payment.payroll_run_id == run.id
    assert payment.amount == 100.0
    assert payment.applied_date == date(2024, 1, 31)

    types = {n.type for n in db_session.query(Notification).all()}
    assert types == {"vacation_deduction", "loan_deduction"}


def test_generate_pays_scheduled_installments(db_session, make_employee, make_loan):
    employee = make_employee()
    loan = make_loan(employee, amount=300, monthly_deduction=150, start_date=date(2024, 1, 1), schedule=True)

    run = _generate(db_session)["run"]

    installments = (
        db_session.query(LoanAmortizationInstallment)
        .filter_by(loan_id=loan.id)
        .order_by(LoanAmortizationInstallment.installment_number)
        .all()
    )
    assert installments[0].status == "paid"
    assert installments[0].payroll_run_id == run.id
    assert installments[1].status == "pending"


def test_generate_returns_normalized_exports(db_session, make_employee):
    make_employee()
    result = _generate(db_session, exports=[ExportRequest(type="bank"), ExportRequest(type="GL")])
    assert [(e.type, e.format) for e in result["exports"]] == [("bank", "csv"), ("gl", "xlsx")]
    assert all(e.filename.startswith("payroll-jan-2024-") for e in result["exports"])


def test_overlapping_period_is_rejected(db_session, make_employee):
    make_employee()
    first = _generate(db_session)["run"]

    with pytest.raises(PayrollPeriodConflictError) as exc_info:
        _generate(db_session, period="Mid Jan", start=date(2024, 1, 31), end=date(2024, 2, 15))
    assert exc_info.value.existing_run_id == first.id
    assert db_session.query(PayrollRun).count() == 1


def test_runs_on_different_calendars_may_overlap(db_session, make_employee):
    make_employee()
    weekly = PayrollCalendar(name="Weekly", frequency="weekly")
    monthly = PayrollCalendar(name="Monthly", frequency="monthly")
    db_session.add_all([weekly, monthly])
    db_session.commit()

    _generate(db_session, calendar_id=monthly.id)
    run = _generate(db_session, period="Week 1", end=date(2024, 1, 7), calendar_id=weekly.id)["run"]
    # Weekly frequency defaults switch allowances and statutory deductions off
    assert run.scenario_toggles["statutory"] is False


def test_invalid_requests_are_rejected_before_calculation(db_session, make_employee):
    make_employee()
    with pytest.raises(PayrollValidationError):
        _generate(db_session, period="  ")
    with pytest.raises(PayrollValidationError):
        _generate(db_session, start=date(2024, 2, 1), end=date(2024, 1, 1))
    with pytest.raises(PayrollValidationError):
        _generate(db_session, exports=[ExportRequest(type="payslips")])
    assert db_session.query(PayrollRun).count() == 0


def test_invariant_failure_rolls_back_everything(db_session, make_employee, make_loan, monkeypatch):
    employee = make_employee()
    loan = make_loan(employee, amount=600, monthly_deduction=100)

    def broken_totals(entries):
        raise PayrollInvariantError(1.0, 0.0, 0.0)

    monkeypatch.setattr(payroll_service, "calculate_totals", broken_totals)
    with pytest.raises(PayrollInvariantError):
        _generate(db_session)

    assert db_session.query(PayrollRun).count() == 0
    assert db_session.query(PayrollEntry).count() == 0
    assert db_session.query(LoanPayment).count() == 0
    assert db_session.query(Notification).count() == 0
    db_session.refresh(loan)
    assert loan.remaining_amount == 600.0


def test_generate_undo_delete_round_trip(db_session, make_employee, make_loan):
    employee = make_employee()
    loan = make_loan(employee, amount=100, monthly_deduction=100, start_date=date(2024, 1, 1), schedule=True)

    run = _generate(db_session)["run"]
    run_id = run.id
    db_session.refresh(loan)
    assert loan.status == "completed"
    assert loan.remaining_amount == 0.0

    summary = payroll_service.undo_loan_deductions(db_session, run_id)
    assert summary["refunded"] == 100.0
    assert summary["payments_removed"] == 1
    db_session.refresh(loan)
    assert loan.status == "active"
    assert loan.remaining_amount == 100.0
    assert loan.installments[0].status == "pending"
    assert loan.installments[0].payroll_run_id is None

    payroll_service.delete_payroll_run(db_session, run_id)
    assert db_session.query(PayrollRun).count() == 0
    assert db_session.query(PayrollEntry).count() == 0
    db_session.refresh(loan)
    assert loan.remaining_amount == 100.0


def test_undo_restores_sub_cent_remainder_exactly(db_session, make_employee, make_loan):
    employee = make_employee()
    loan = make_loan(employee, amount=200, monthly_deduction=100, remaining_amount=100.01)

    run_id = _generate(db_session)["run"].id
    db_session.refresh(loan)
    assert loan.status == "completed"
    assert loan.remaining_amount == 0.01

    payroll_service.undo_loan_deductions(db_session, run_id)
    db_session.refresh(loan)
    assert loan.status == "active"
    assert loan.remaining_amount == 100.01


def test_delete_undoes_loan_deductions(db_session, make_employee, make_loan):
    employee = make_employee()
    loan = make_loan(employee, amount=600, monthly_deduction=100)
    run_id = _generate(db_session)["run"].id

    payroll_service.delete_payroll_run(db_session, run_id)

    db_session.refresh(loan)
    assert loan.remaining_amount == 600.0
    assert db_session.query(LoanPayment).count() == 0
    # Notifications outlive the run
    assert db_session.query(Notification).filter(Notification.payroll_run_id.is_(None)).count() == 1


def test_undo_refused_after_later_run_paid_same_loan(db_session, make_employee, make_loan):
    employee = make_employee()
    loan = make_loan(employee, amount=600, monthly_deduction=100)
    january = _generate(db_session)["run"]
    _generate(db_session, period="Feb 2024", start=date(2024, 2, 1), end=date(2024, 2, 29))

    with pytest.raises(LoanPaymentUndoError) as exc_info:
        payroll_service.undo_loan_deductions(db_session, january.id)
    assert exc_info.value.loan_id == loan.id

    with pytest.raises(LoanPaymentUndoError):
        payroll_service.delete_payroll_run(db_session, january.id)

    db_session.refresh(loan)
    assert loan.remaining_amount == 400.0
    assert db_session.query(PayrollRun).count() == 2
    assert db_session.query(LoanPayment).count() == 2


def test_recalculate_is_idempotent(db_session, make_employee, make_loan):
    employee = make_employee()
    loan = make_loan(employee, amount=600, monthly_deduction=100, start_date=date(2024, 1, 1), schedule=False)
    run_id = _generate(db_session)["run"].id

    first = payroll_service.recalculate_payroll_run(db_session, run_id)
    first_net = first.net_amount
    second = payroll_service.recalculate_payroll_run(db_session, run_id)

    assert second.net_amount == first_net == 2900.0
    assert len(second.entries) == 1
    assert db_session.query(LoanPayment).count() == 1
    db_session.refresh(loan)
    assert loan.remaining_amount == 500.0


def test_recalculate_picks_up_changed_inputs(db_session, make_employee, make_event):
    employee = make_employee()
    run_id = _generate(db_session)["run"].id
    make_event(employee, "bonus", 200, date(2024, 1, 20))

    run = payroll_service.recalculate_payroll_run(db_session, run_id, attendance_days={employee.id: 27})

    [entry] = run.entries
    assert entry.actual_working_days == 27
    assert entry.bonus_amount == 200.0
    assert run.gross_amount == 2900.0
    assert run.calculation_inputs["attendance_days"] == {employee.id: 27}
    variance = db_session.query(Notification).filter_by(type="attendance_variance").one()
    assert variance.payroll_run_id == run_id


def test_stored_skip_overrides_are_replayed(db_session, make_employee, make_loan):
    employee = make_employee()
    loan = make_loan(employee, amount=600, monthly_deduction=100)
    run_id = _generate(db_session, skip=SkipOverrides(loan_ids=frozenset({loan.id})))["run"].id

    run = payroll_service.recalculate_payroll_run(db_session, run_id)
    assert run.entries[0].loan_deduction == 0.0
    assert db_session.query(LoanPayment).count() == 0


def test_preview_writes_nothing(db_session, make_employee, make_loan):
    employee = make_employee()
    make_loan(employee, amount=600, monthly_deduction=100)

    previews = payroll_service.preview_payroll(db_session, PayrollPreviewRequest(
        start_date=date(2024, 1, 1), end_date=date(2024, 1, 31),
    ))
    assert previews[0].scenario_key == "baseline"
    assert previews[0].totals.net_amount == 2900.0
    assert db_session.query(PayrollRun).count() == 0
    assert db_session.query(LoanPayment).count() == 0


def test_inactive_employees_are_left_out(db_session, make_employee):
    make_employee()
    make_employee(status="terminated")
    run = _generate(db_session)["run"]
    assert len(run.entries) == 1


def test_unknown_run_and_calendar(db_session):
    with pytest.raises(NotFoundError):
        payroll_service.get_payroll_run(db_session, "missing")
    with pytest.raises(NotFoundError):
        payroll_service.resolve_run_toggles(db_session, calendar_id="missing")
    with pytest.raises(PayrollValidationError):
        payroll_service.resolve_run_toggles(db_session, frequency="fortnightly")


def test_list_runs_newest_period_first(db_session, make_employee):
    make_employee()
    _generate(db_session)
    _generate(db_session, period="Feb 2024", start=date(2024, 2, 1), end=date(2024, 2, 29))
    assert [r.period for r in payroll_service.list_payroll_runs(db_session)] == ["Feb 2024", "Jan 2024"]
