from datetime import date, datetime

from paymaster.models.loan import InstallmentStatus, LoanStatus
from paymaster.schemas.payroll import InstallmentSnapshot, LoanSnapshot, SkipOverrides, VacationSnapshot
from paymaster.services.loan_allocation import (
    allocate_loan_deduction,
    prepare_loan_snapshots,
    sort_loans_for_allocation,
)

START = date(2024, 1, 1)
END = date(2024, 1, 31)


def _loan(loan_id, remaining=500, monthly=100, start=date(2023, 6, 1), **overrides):
    data = dict(
        id=loan_id, employee_id="emp-1", amount=max(remaining, 500), remaining_amount=remaining,
        monthly_deduction=monthly, status="active", start_date=start,
    )
    data.update(overrides)
    return LoanSnapshot(**data)


def _installment(number, due, amount=100, status=InstallmentStatus.PENDING):
    return InstallmentSnapshot(
        installment_number=number, due_date=due, principal_amount=amount,
        payment_amount=amount, remaining_balance=0, status=status,
    )


def _allocate(total, loans, vacations=(), skip=None):
    return allocate_loan_deduction(
        employee_id="emp-1",
        total_deduction=total,
        loans=loans,
        vacations=list(vacations),
        payroll_run_id="run-1",
        period_start=START,
        period_end=END,
        applied_date=END,
        skip=skip,
    )


def test_sort_order_start_date_then_created_then_id():
    loans = [
        _loan("c", start=date(2023, 6, 1), created_at=datetime(2023, 5, 2)),
        _loan("b", start=date(2023, 6, 1), created_at=datetime(2023, 5, 1)),
        _loan("a", start=date(2023, 7, 1)),
        _loan("z", start=None),
        _loan("d", start=date(2023, 6, 1), created_at=datetime(2023, 5, 1)),
    ]
    assert [l.id for l in sort_loans_for_allocation(loans)] == ["b", "d", "c", "a", "z"]


def test_budget_is_spread_oldest_first():
    loans = [_loan("new", start=date(2023, 9, 1)), _loan("old", start=date(2023, 1, 1))]
    allocation = _allocate(150, loans)
    assert [(p.loan_id, p.amount) for p in allocation.payments] == [("old", 100.0), ("new", 50.0)]
    assert allocation.applied == 150.0
    assert allocation.unapplied == 0.0


def test_loan_completes_when_paid_off():
    allocation = _allocate(100, [_loan("only", remaining=60)])
    payment = allocation.payments[0]
    assert payment.amount == 60.0
    assert payment.remaining_after == 0.0
    assert payment.status_after == LoanStatus.COMPLETED
    assert allocation.unapplied == 40.0


def test_completed_loan_keeps_sub_cent_remainder():
    allocation = _allocate(100, [_loan("only", remaining=100.01)])
    payment = allocation.payments[0]
    assert payment.amount == 100.0
    assert payment.remaining_after == 0.01
    assert payment.status_after == LoanStatus.COMPLETED


def test_legacy_approved_loan_becomes_active():
    allocation = _allocate(100, [_loan("legacy", status="approved")])
    assert allocation.payments[0].status_after == LoanStatus.ACTIVE


def test_skipped_and_ineligible_loans_get_nothing():
    loans = [_loan("skipped"), _loan("pending", status="pending"), _loan("done", remaining=0)]
    allocation = _allocate(300, loans, skip=SkipOverrides(loan_ids=frozenset({"skipped"})))
    assert allocation.payments == []
    assert allocation.applied == 0.0


def test_zero_budget_makes_no_payments():
    assert _allocate(0, [_loan("a")]).payments == []


def test_matching_installment_is_marked_paid():
    loan = _loan("sched", installments=[_installment(1, date(2023, 12, 1), status=InstallmentStatus.PAID),
                                        _installment(2, date(2024, 1, 1))])
    [prepared] = prepare_loan_snapshots([loan], [], START, END)
    allocation = _allocate(100, [prepared])
    assert allocation.payments[0].amount == 100.0
    [update] = allocation.installment_updates
    assert update.installment_number == 2
    assert update.status == InstallmentStatus.PAID
    assert update.payroll_run_id == "run-1"
    assert update.paid_date == END


def test_partial_payment_leaves_installment_pending():
    loan = _loan("sched", installments=[_installment(1, date(2024, 1, 1))])
    [prepared] = prepare_loan_snapshots([loan], [], START, END)
    allocation = _allocate(40, [prepared])
    assert allocation.payments[0].amount == 40.0
    assert allocation.installment_updates == []


def test_scheduled_loan_with_nothing_due_is_not_collected():
    loan = _loan("future", installments=[_installment(1, date(2024, 3, 1))])
    [prepared] = prepare_loan_snapshots([loan], [], START, END)
    assert prepared.scheduled_due_amount == 0.0
    assert _allocate(100, [prepared]).payments == []


def test_pause_for_leave_marks_installments_paused():
    loan = _loan("sched", installments=[_installment(1, date(2024, 1, 1))])
    leave = VacationSnapshot(id="v", employee_id="emp-1", start_date=date(2024, 1, 10),
                             end_date=date(2024, 1, 12), status="approved", pause_loans=True)
    [prepared] = prepare_loan_snapshots([loan], [leave], START, END)
    assert prepared.paused_for_leave

    allocation = _allocate(100, [prepared], vacations=[leave])
    assert allocation.payments == []
    assert [(u.installment_number, u.status) for u in allocation.installment_updates] == [
        (1, InstallmentStatus.PAUSED)
    ]


def test_paused_installments_resume_and_are_collected():
    loan = _loan("sched", installments=[
        _installment(1, date(2023, 12, 1), status=InstallmentStatus.PAUSED),
        _installment(2, date(2024, 1, 1)),
    ])
    [prepared] = prepare_loan_snapshots([loan], [], START, END)
    # Only January's installment is in the period; December's resumes to pending
    assert prepared.scheduled_due_amount == 100.0

    allocation = _allocate(100, [prepared])
    updates = {u.installment_number: u.status for u in allocation.installment_updates}
    assert updates == {1: InstallmentStatus.PENDING, 2: InstallmentStatus.PAID}
