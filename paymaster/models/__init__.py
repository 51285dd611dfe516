# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    employee, loan, vacation_request, employee_event,
    payroll, notification
)

# Explicit class exports for cleaner imports
from .employee import Employee, EmployeeStatus
from .loan import (
    Loan, LoanAmortizationInstallment, LoanPayment,
    LoanApprovalStage, LoanDocument, LoanStatus, InstallmentStatus,
)
from .vacation_request import VacationRequest, VacationStatus
from .employee_event import EmployeeEvent, EventType, EventStatus, RecurrenceType
from .payroll import PayrollCalendar, PayrollRun, PayrollEntry, PayrollRunStatus, PayrollFrequency
from .notification import Notification

__all__ = [
    "Employee",
    "EmployeeStatus",
    "Loan",
    "LoanAmortizationInstallment",
    "LoanPayment",
    "LoanApprovalStage",
    "LoanDocument",
    "LoanStatus",
    "InstallmentStatus",
    "VacationRequest",
    "VacationStatus",
    "EmployeeEvent",
    "EventType",
    "EventStatus",
    "RecurrenceType",
    "PayrollCalendar",
    "PayrollRun",
    "PayrollEntry",
    "PayrollRunStatus",
    "PayrollFrequency",
    "Notification",
]
