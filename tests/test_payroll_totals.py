import pytest

from paymaster.core.exceptions import PayrollInvariantError
from paymaster.schemas.payroll import EmployeePayroll
from paymaster.services.payroll_totals import calculate_totals


def _entry(employee_id, gross, loan, net, **overrides):
    data = dict(
        employee_id=employee_id, gross_pay=gross, base_salary=gross, bonus_amount=0,
        working_days=30, actual_working_days=30, vacation_days=0,
        loan_deduction=loan, net_pay=net,
    )
    data.update(overrides)
    return EmployeePayroll(**data)


def test_totals_sum_entries():
    totals = calculate_totals([
        _entry("a", 2800, 100, 2700),
        _entry("b", 1500.55, 0, 1490.55, tax_deduction=10),
    ])
    assert totals.gross_amount == 4300.55
    assert totals.total_deductions == 110.0
    assert totals.net_amount == 4190.55


def test_empty_run_totals_are_zero():
    totals = calculate_totals([])
    assert (totals.gross_amount, totals.total_deductions, totals.net_amount) == (0, 0, 0)


def test_unbalanced_entries_raise():
    with pytest.raises(PayrollInvariantError) as exc_info:
        calculate_totals([_entry("a", 1000, 100, 950)])
    assert exc_info.value.message == "Totals do not balance"
    assert exc_info.value.status_code == 500
