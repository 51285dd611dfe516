"""
Payroll snapshot and result schemas.

Snapshots are frozen and validate straight from ORM rows
(``from_attributes=True``), so the calculation engine never touches a
session. Everything the engine returns is a plain pydantic model as well.
"""
from datetime import date, datetime
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from paymaster.models.employee import EmployeeStatus
from paymaster.models.employee_event import EventStatus, EventType, RecurrenceType
from paymaster.models.loan import InstallmentStatus, LoanStatus
from paymaster.models.vacation_request import VacationStatus

SNAPSHOT_CONFIG = ConfigDict(from_attributes=True, frozen=True)


# --- Snapshots (engine inputs) ---

class EmployeeSnapshot(BaseModel):
    model_config = SNAPSHOT_CONFIG

    id: str
    monthly_salary: float
    standard_working_days: Optional[int] = None
    status: EmployeeStatus = EmployeeStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == EmployeeStatus.ACTIVE


class InstallmentSnapshot(BaseModel):
    model_config = SNAPSHOT_CONFIG

    id: Optional[str] = None
    loan_id: Optional[str] = None
    installment_number: int
    due_date: date
    principal_amount: float
    interest_amount: float = 0.0
    payment_amount: float
    remaining_balance: float
    status: InstallmentStatus = InstallmentStatus.PENDING
    payroll_run_id: Optional[str] = None


class LoanSnapshot(BaseModel):
    model_config = SNAPSHOT_CONFIG

    id: str
    employee_id: str
    amount: float
    remaining_amount: float
    monthly_deduction: float
    interest_rate: Optional[float] = None
    status: LoanStatus
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: Optional[datetime] = None
    # Amount the amortization schedule expects for the current period; wins over the flat cap
    scheduled_due_amount: Optional[float] = None
    # Set when an approved "pause loans" leave covers this period
    paused_for_leave: bool = False
    installments: List[InstallmentSnapshot] = Field(default_factory=list)


class VacationSnapshot(BaseModel):
    model_config = SNAPSHOT_CONFIG

    id: str
    employee_id: str
    start_date: date
    end_date: date
    status: VacationStatus
    leave_type: str = "annual"
    pause_loans: bool = False


class EventSnapshot(BaseModel):
    model_config = SNAPSHOT_CONFIG

    id: str
    employee_id: str
    event_type: EventType
    title: str = ""
    amount: float = 0.0
    event_date: date
    recurrence_type: RecurrenceType = RecurrenceType.NONE
    recurrence_end_date: Optional[date] = None
    affects_payroll: bool = True
    status: EventStatus = EventStatus.ACTIVE


class DeductionConfig(BaseModel):
    """Flat statutory deduction amounts; each defaults to zero."""
    model_config = ConfigDict(frozen=True)

    tax_deduction: float = 0.0
    social_security_deduction: float = 0.0
    health_insurance_deduction: float = 0.0


class SkipOverrides(BaseModel):
    """Ad hoc record exclusions applied regardless of scenario toggles."""
    model_config = ConfigDict(frozen=True)

    vacation_ids: FrozenSet[str] = frozenset()
    loan_ids: FrozenSet[str] = frozenset()
    event_ids: FrozenSet[str] = frozenset()


class PayrollSnapshot(BaseModel):
    """Everything needed to calculate one period, loaded up front."""
    model_config = ConfigDict(frozen=True)

    period_start: date
    period_end: date
    employees: List[EmployeeSnapshot] = Field(default_factory=list)
    loans: List[LoanSnapshot] = Field(default_factory=list)
    vacations: List[VacationSnapshot] = Field(default_factory=list)
    events: List[EventSnapshot] = Field(default_factory=list)
    attendance_days: Dict[str, int] = Field(default_factory=dict)
    deduction_config: DeductionConfig = DeductionConfig()

    @model_validator(mode="after")
    def check_period(self):
        if self.period_start > self.period_end:
            raise ValueError("period_start must not be after period_end")
        return self


# --- Results ---

class EmployeePayroll(BaseModel):
    employee_id: str
    gross_pay: float
    base_salary: float
    bonus_amount: float
    allowances: Dict[str, float] = Field(default_factory=dict)
    working_days: int
    actual_working_days: int
    vacation_days: int
    tax_deduction: float = 0.0
    social_security_deduction: float = 0.0
    health_insurance_deduction: float = 0.0
    loan_deduction: float = 0.0
    other_deductions: float = 0.0
    net_pay: float
    adjustment_reason: Optional[str] = None

    @property
    def total_deductions(self) -> float:
        return (
            self.tax_deduction
            + self.social_security_deduction
            + self.health_insurance_deduction
            + self.loan_deduction
            + self.other_deductions
        )


class PayrollTotals(BaseModel):
    gross_amount: float
    total_deductions: float
    net_amount: float


class EmployeeImpact(BaseModel):
    employee_id: str
    gross_pay: float
    total_deductions: float
    net_pay: float
    net_delta: float
    loan_deduction: float
    adjustment_reason: Optional[str] = None


class ScenarioPreview(BaseModel):
    scenario_key: str
    label: Optional[str] = None
    toggles: Dict[str, bool]
    totals: PayrollTotals
    employees: List[EmployeeImpact]


# --- API payloads ---

class ScenarioDefinition(BaseModel):
    key: str
    label: Optional[str] = None
    toggles: Dict[str, bool] = Field(default_factory=dict)


class ExportRequest(BaseModel):
    type: str  # bank, gl, statutory
    format: Optional[str] = None
    filename: Optional[str] = None


class PayrollPeriodRequest(BaseModel):
    start_date: date
    end_date: date
    calendar_id: Optional[str] = None
    frequency: Optional[str] = None
    toggles: Dict[str, bool] = Field(default_factory=dict)
    deductions: Optional[DeductionConfig] = None
    attendance_days: Optional[Dict[str, int]] = None
    skip: SkipOverrides = SkipOverrides()


class PayrollPreviewRequest(PayrollPeriodRequest):
    scenarios: List[ScenarioDefinition] = Field(default_factory=list)


class PayrollGenerateRequest(PayrollPeriodRequest):
    period: str
    scenario_key: str = "baseline"
    exports: List[ExportRequest] = Field(default_factory=list)


class PayrollRecalculateRequest(BaseModel):
    attendance_days: Optional[Dict[str, int]] = None


class PayrollEntryResponse(BaseModel):
    id: str
    employee_id: str
    gross_pay: float
    base_salary: float
    bonus_amount: float
    allowances: Optional[Dict[str, float]] = None
    working_days: int
    actual_working_days: int
    vacation_days: int
    tax_deduction: float
    social_security_deduction: float
    health_insurance_deduction: float
    loan_deduction: float
    other_deductions: float
    net_pay: float
    adjustment_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PayrollRunResponse(BaseModel):
    id: str
    period: str
    start_date: date
    end_date: date
    calendar_id: Optional[str] = None
    gross_amount: float
    total_deductions: float
    net_amount: float
    status: str
    scenario_key: Optional[str] = None
    scenario_toggles: Optional[Dict[str, bool]] = None
    entries: List[PayrollEntryResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class PayrollGenerateResponse(BaseModel):
    run: PayrollRunResponse
    exports: List[ExportRequest] = Field(default_factory=list)


class LoanUndoResponse(BaseModel):
    payroll_run_id: str
    loans_restored: int
    payments_removed: int
    refunded: float
