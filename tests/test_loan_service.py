import pytest
from datetime import date

from paymaster.core.exceptions import LoanActivationError, LoanPolicyViolationError, NotFoundError
from paymaster.models import LoanApprovalStage, LoanDocument, LoanPayment
from paymaster.schemas.payroll import PayrollGenerateRequest
from paymaster.services import loan_service, payroll_service


def _add_paperwork(db, loan, stage_status="approved"):
    db.add(LoanApprovalStage(loan_id=loan.id, stage_name="Manager", stage_order=1, status=stage_status))
    db.add(LoanDocument(loan_id=loan.id, title="Signed agreement"))
    db.commit()


def test_preview_schedule_totals():
    preview = loan_service.preview_loan_schedule(1000, 100, date(2024, 1, 1), interest_rate=12)
    assert preview["installment_count"] == len(preview["installments"])
    assert preview["total_interest"] > 0
    assert preview["total_payment"] == pytest.approx(1000 + preview["total_interest"], abs=0.1)
    assert preview["final_due_date"] == preview["installments"][-1].due_date


def test_activate_stores_schedule(db_session, make_employee, make_loan):
    loan = make_loan(make_employee(), amount=450, monthly_deduction=150, status="pending", remaining_amount=0)
    _add_paperwork(db_session, loan)

    activated = loan_service.activate_loan(db_session, loan.id)

    assert activated.status == "active"
    assert activated.remaining_amount == 450.0
    assert [i.installment_number for i in activated.installments] == [1, 2, 3]
    assert all(i.status == "pending" for i in activated.installments)


def test_activate_refuses_policy_violation(db_session, make_employee, make_loan):
    loan = make_loan(make_employee(), status="pending")
    _add_paperwork(db_session, loan, stage_status="pending")

    with pytest.raises(LoanPolicyViolationError) as exc_info:
        loan_service.activate_loan(db_session, loan.id)
    assert 'Approval stage "Manager" is not approved (pending).' in exc_info.value.violations

    db_session.refresh(loan)
    assert loan.status == "pending"
    assert loan.installments == []


def test_activate_refuses_payment_below_interest(db_session, make_employee, make_loan):
    loan = make_loan(make_employee(monthly_salary=100000), amount=100000, monthly_deduction=500,
                     interest_rate=12, status="pending")

    with pytest.raises(LoanPolicyViolationError) as exc_info:
        loan_service.activate_loan(db_session, loan.id, strict=False)
    assert exc_info.value.violations == [
        "Monthly deduction must exceed the interest portion to reduce principal."
    ]
    db_session.refresh(loan)
    assert loan.status == "pending"


def test_validate_loan_returns_findings(db_session, make_employee, make_loan):
    loan = make_loan(make_employee(monthly_salary=1000), monthly_deduction=400)
    result = loan_service.validate_loan(db_session, loan.id)
    assert result.is_compliant
    assert result.warnings == ["Monthly deduction exceeds 35% of employee salary."]


def test_unknown_loan(db_session):
    with pytest.raises(NotFoundError):
        loan_service.validate_loan(db_session, "missing")


def test_activate_refuses_loan_already_deducted_by_payroll(db_session, make_employee, make_loan):
    loan = make_loan(make_employee(), amount=600, monthly_deduction=100, status="pending")
    _add_paperwork(db_session, loan)
    loan_service.activate_loan(db_session, loan.id)
    payroll_service.generate_payroll_run(db_session, PayrollGenerateRequest(
        period="Jan 2024", start_date=date(2024, 1, 1), end_date=date(2024, 1, 31),
    ))
    db_session.refresh(loan)
    assert loan.remaining_amount == 500.0

    with pytest.raises(LoanActivationError):
        loan_service.activate_loan(db_session, loan.id)

    db_session.refresh(loan)
    assert loan.remaining_amount == 500.0
    assert loan.installments[0].status == "paid"
    assert db_session.query(LoanPayment).filter_by(loan_id=loan.id).count() == 1


def test_activate_refuses_legacy_approved_loan_after_payroll(db_session, make_employee, make_loan):
    loan = make_loan(make_employee(), amount=600, monthly_deduction=100, status="approved")
    _add_paperwork(db_session, loan)
    payroll_service.generate_payroll_run(db_session, PayrollGenerateRequest(
        period="Jan 2024", start_date=date(2024, 1, 1), end_date=date(2024, 1, 31),
    ))

    with pytest.raises(LoanActivationError) as exc_info:
        loan_service.activate_loan(db_session, loan.id)
    assert exc_info.value.status_code == 409


@pytest.mark.parametrize("status", ["active", "completed", "cancelled"])
def test_activate_refuses_loan_past_pending(db_session, make_employee, make_loan, status):
    loan = make_loan(make_employee(), amount=600, monthly_deduction=100, status=status, remaining_amount=250)
    _add_paperwork(db_session, loan)

    with pytest.raises(LoanActivationError) as exc_info:
        loan_service.activate_loan(db_session, loan.id)
    assert exc_info.value.details["reason"] == f"status is {status}"

    db_session.refresh(loan)
    assert loan.status == status
    assert loan.remaining_amount == 250
