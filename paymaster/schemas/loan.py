from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from paymaster.models.loan import InstallmentStatus, LoanStatus


class LoanTerms(BaseModel):
    """The loan fields the lending policy is checked against."""
    model_config = ConfigDict(from_attributes=True)

    amount: float
    monthly_deduction: float
    interest_rate: Optional[float] = None
    start_date: date
    end_date: Optional[date] = None
    status: LoanStatus = LoanStatus.PENDING


class ApprovalStageSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stage_name: str
    status: str


class LoanDocumentSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    title: str
    document_url: Optional[str] = None


class ScheduledInstallment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    installment_number: int
    due_date: date
    principal_amount: float
    interest_amount: float
    payment_amount: float
    remaining_balance: float


class LoanPolicyResult(BaseModel):
    is_compliant: bool
    violations: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class InstallmentUpdate(BaseModel):
    loan_id: str
    installment_number: int
    status: InstallmentStatus
    payroll_run_id: Optional[str] = None
    paid_date: Optional[date] = None


class LoanPaymentPlan(BaseModel):
    loan_id: str
    employee_id: str
    payroll_run_id: str
    amount: float
    applied_date: date
    source: str = "payroll"
    remaining_after: float
    status_after: LoanStatus


class LoanAllocation(BaseModel):
    employee_id: str
    requested: float
    applied: float
    payments: List[LoanPaymentPlan] = Field(default_factory=list)
    installment_updates: List[InstallmentUpdate] = Field(default_factory=list)

    @property
    def unapplied(self) -> float:
        return round(self.requested - self.applied, 2)


class LoanRestore(BaseModel):
    loan_id: str
    refunded: float
    remaining_after: float
    status_after: LoanStatus


class LoanUndoPlan(BaseModel):
    payroll_run_id: str
    restores: List[LoanRestore] = Field(default_factory=list)
    installment_updates: List[InstallmentUpdate] = Field(default_factory=list)
    payment_ids: List[str] = Field(default_factory=list)


class LoanSchedulePreviewRequest(BaseModel):
    amount: float
    monthly_payment: float
    interest_rate: Optional[float] = None
    start_date: date
    end_date: Optional[date] = None


class LoanActivationRequest(BaseModel):
    strict: bool = True


class LoanPaymentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    loan_id: str
    payroll_run_id: str
    employee_id: str
    amount: float
    applied_date: date
    source: str = "payroll"


class LoanSchedulePreviewResponse(BaseModel):
    installments: List[ScheduledInstallment]
    installment_count: int
    total_payment: float
    total_interest: float
    final_due_date: Optional[date] = None


class LoanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    employee_id: str
    amount: float
    remaining_amount: float
    monthly_deduction: float
    interest_rate: Optional[float] = None
    start_date: date
    end_date: Optional[date] = None
    status: LoanStatus
    installments: List[ScheduledInstallment] = Field(default_factory=list)
