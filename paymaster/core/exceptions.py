from typing import Any, Dict, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class PayrollValidationError(AppException):
    """Malformed period or missing input, rejected before calculation starts."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="PAYROLL_VALIDATION_FAILED",
            details=details
        )

class NotFoundError(AppException):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND"
        )

class InsufficientPaymentError(AppException):
    """The monthly payment does not cover the interest, so the loan never amortizes."""
    def __init__(self, monthly_payment: float, interest: float):
        self.monthly_payment = monthly_payment
        self.interest = interest
        super().__init__(
            message="Monthly payment is insufficient to cover interest; adjust policy or payment amount.",
            status_code=422,
            error_code="INSUFFICIENT_PAYMENT",
            details={"monthly_payment": monthly_payment, "interest": round(interest, 2)}
        )

class LoanPolicyViolationError(AppException):
    def __init__(self, loan_id: str, violations: list, warnings: Optional[list] = None):
        self.loan_id = loan_id
        self.violations = violations
        super().__init__(
            message=f"Loan {loan_id} violates lending policy: {'; '.join(violations)}",
            status_code=422,
            error_code="LOAN_POLICY_VIOLATION",
            details={"loan_id": loan_id, "violations": violations, "warnings": warnings or []}
        )

class LoanActivationError(AppException):
    """The loan is past activation: it is already running or payroll has deducted from it."""
    def __init__(self, loan_id: str, reason: str):
        self.loan_id = loan_id
        self.reason = reason
        super().__init__(
            message=f"Loan {loan_id} cannot be activated: {reason}",
            status_code=409,
            error_code="LOAN_ACTIVATION_REFUSED",
            details={"loan_id": loan_id, "reason": reason}
        )

class PayrollPeriodConflictError(AppException):
    """An existing run already covers part of the requested period. Not retryable."""
    def __init__(self, existing_run_id: str, period: str):
        self.existing_run_id = existing_run_id
        super().__init__(
            message="Payroll run already exists for this period",
            status_code=409,
            error_code="PAYROLL_PERIOD_CONFLICT",
            details={"existing_run_id": existing_run_id, "existing_period": period}
        )

class LoanPaymentUndoError(AppException):
    def __init__(self, loan_id: str, reason: str):
        self.loan_id = loan_id
        self.reason = reason
        super().__init__(
            message=f"Cannot undo payments for loan {loan_id}: {reason}",
            status_code=409,
            error_code="LOAN_PAYMENT_UNDO_FAILED",
            details={"loan_id": loan_id, "reason": reason}
        )

class PayrollInvariantError(AppException):
    """
    Totals failed to balance. This is an engine defect, never a user error;
    the enclosing transaction must be rolled back.
    """
    def __init__(self, gross: float, deductions: float, net: float):
        super().__init__(
            message="Totals do not balance",
            status_code=500,
            error_code="PAYROLL_INVARIANT_FAILED",
            details={"gross": gross, "deductions": deductions, "net": net}
        )
