from sqlalchemy import Column, String, Date, Boolean, ForeignKey, DateTime
from sqlalchemy.sql import func
from paymaster.database import Base
from paymaster.models.employee import new_id
import enum

class VacationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class VacationRequest(Base):
    __tablename__ = "vacation_requests"

    id = Column(String(36), primary_key=True, default=new_id)
    employee_id = Column(String(36), ForeignKey("employees.id"), index=True, nullable=False)
    leave_type = Column(String, default="annual")  # annual, sick, emergency, unpaid
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(String, nullable=True)
    status = Column(String, default=VacationStatus.PENDING.value)  # Using String to store enum value for simplicity with SQLite
    # Suspends loan installments falling inside the leave
    pause_loans = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
