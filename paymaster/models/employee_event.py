from sqlalchemy import Column, String, Float, Date, Boolean, ForeignKey, DateTime, Text
from sqlalchemy.sql import func
from paymaster.database import Base
from paymaster.models.employee import new_id
import enum
from types import MappingProxyType

class EventType(str, enum.Enum):
    BONUS = "bonus"
    COMMISSION = "commission"
    DEDUCTION = "deduction"
    ALLOWANCE = "allowance"
    OVERTIME = "overtime"
    PENALTY = "penalty"
    VACATION = "vacation"
    EMPLOYEE_ADDED = "employee_added"
    EMPLOYEE_UPDATE = "employee_update"
    DOCUMENT_UPDATE = "document_update"
    ASSET_ASSIGNMENT = "asset_assignment"
    ASSET_UPDATE = "asset_update"
    ASSET_REMOVAL = "asset_removal"
    WORKFLOW = "workflow"

class EventStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    PROCESSED = "processed"

class RecurrenceType(str, enum.Enum):
    NONE = "none"
    MONTHLY = "monthly"

class EmployeeEvent(Base):
    __tablename__ = "employee_events"

    id = Column(String(36), primary_key=True, default=new_id)
    employee_id = Column(String(36), ForeignKey("employees.id"), index=True, nullable=False)
    event_type = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Float, default=0.0)
    event_date = Column(Date, nullable=False, index=True)
    recurrence_type = Column(String, default=RecurrenceType.NONE.value, nullable=False)
    recurrence_end_date = Column(Date, nullable=True)
    affects_payroll = Column(Boolean, default=True, nullable=False)
    status = Column(String, default=EventStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class EventCategory(str, enum.Enum):
    EARNING = "earning"
    OVERTIME = "overtime"
    ALLOWANCE = "allowance"
    DEDUCTION = "deduction"
    NON_PAYROLL = "non_payroll"

# Every EventType must appear here; classify_event raises KeyError otherwise
EVENT_CATEGORIES = MappingProxyType({
    EventType.BONUS: EventCategory.EARNING,
    EventType.COMMISSION: EventCategory.EARNING,
    EventType.OVERTIME: EventCategory.OVERTIME,
    EventType.ALLOWANCE: EventCategory.ALLOWANCE,
    EventType.DEDUCTION: EventCategory.DEDUCTION,
    EventType.PENALTY: EventCategory.DEDUCTION,
    EventType.VACATION: EventCategory.NON_PAYROLL,
    EventType.EMPLOYEE_ADDED: EventCategory.NON_PAYROLL,
    EventType.EMPLOYEE_UPDATE: EventCategory.NON_PAYROLL,
    EventType.DOCUMENT_UPDATE: EventCategory.NON_PAYROLL,
    EventType.ASSET_ASSIGNMENT: EventCategory.NON_PAYROLL,
    EventType.ASSET_UPDATE: EventCategory.NON_PAYROLL,
    EventType.ASSET_REMOVAL: EventCategory.NON_PAYROLL,
    EventType.WORKFLOW: EventCategory.NON_PAYROLL,
})

def classify_event(event_type: EventType) -> EventCategory:
    return EVENT_CATEGORIES[EventType(event_type)]
