import enum
import uuid

from sqlalchemy import Column, Integer, String, Float, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from paymaster.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class EmployeeStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ON_LEAVE = "on_leave"
    TERMINATED = "terminated"


class Employee(Base):
    __tablename__ = "employees"

    id = Column(String(36), primary_key=True, default=new_id)
    employee_code = Column(String, unique=True, index=True, nullable=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=True)
    monthly_salary = Column(Float, nullable=False, default=0.0)
    standard_working_days = Column(Integer, nullable=True, default=26)
    status = Column(String, default=EmployeeStatus.ACTIVE.value, index=True)  # Store enum value as string
    bank_name = Column(String, nullable=True)
    iban = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    loans = relationship("Loan", back_populates="employee", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Employee {self.employee_code or self.id} ({self.status})>"
