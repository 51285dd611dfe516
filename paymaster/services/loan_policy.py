from typing import List, Optional, Sequence

from paymaster.schemas.loan import (
    ApprovalStageSnapshot,
    LoanDocumentSnapshot,
    LoanPolicyResult,
    LoanTerms,
    ScheduledInstallment,
)

MAX_DEDUCTION_RATIO = 0.5
WARN_DEDUCTION_RATIO = 0.35


def validate_loan_policies(
    loan: LoanTerms,
    approval_stages: Optional[Sequence[ApprovalStageSnapshot]] = None,
    documents: Optional[Sequence[LoanDocumentSnapshot]] = None,
    employee_salary: Optional[float] = None,
    existing_schedule: Optional[Sequence[ScheduledInstallment]] = None,
    strict: bool = False,
) -> LoanPolicyResult:
    """
    Check a loan against affordability, approval and documentation rules.

    Violations block activation; warnings are advisory. The caller decides
    what to do with either.
    """
    violations: List[str] = []
    warnings: List[str] = []

    amount = float(loan.amount or 0)
    payment = float(loan.monthly_deduction or 0)
    rate = float(loan.interest_rate or 0)

    if amount <= 0:
        violations.append("Loan amount must be greater than zero.")
    if payment <= 0:
        violations.append("Monthly deduction must be greater than zero.")

    if loan.end_date is not None and loan.start_date > loan.end_date:
        violations.append("Start date must be before the end date.")

    if rate > 0 and payment <= amount * (rate / 12 / 100):
        violations.append("Monthly deduction must exceed the interest portion to reduce principal.")

    if employee_salary is not None and employee_salary > 0:
        ratio = payment / employee_salary
        if ratio > MAX_DEDUCTION_RATIO:
            violations.append("Monthly deduction exceeds 50% of employee salary.")
        elif ratio > WARN_DEDUCTION_RATIO:
            warnings.append("Monthly deduction exceeds 35% of employee salary.")

    if strict:
        pending_stage = next(
            (s for s in approval_stages or [] if s.status != "approved"),
            None,
        )
        if pending_stage is not None:
            violations.append(
                f'Approval stage "{pending_stage.stage_name}" is not approved ({pending_stage.status}).'
            )
        if not documents:
            violations.append("At least one supporting document must be uploaded before activation.")

    if existing_schedule:
        total_scheduled = sum(entry.payment_amount for entry in existing_schedule)
        if total_scheduled + 0.01 < amount:
            warnings.append("Amortization schedule does not cover the full loan amount.")

    return LoanPolicyResult(
        is_compliant=not violations,
        violations=violations,
        warnings=warnings,
    )
