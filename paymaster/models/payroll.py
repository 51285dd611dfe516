from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from paymaster.database import Base
from paymaster.models.employee import new_id
import enum

class PayrollRunStatus(str, enum.Enum):
    DRAFT = "draft"
    COMPLETED = "completed"

class PayrollFrequency(str, enum.Enum):
    MONTHLY = "monthly"
    SEMI_MONTHLY = "semi_monthly"
    BIWEEKLY = "biweekly"
    WEEKLY = "weekly"

class PayrollCalendar(Base):
    __tablename__ = "payroll_calendars"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False, unique=True)
    frequency = Column(String, default=PayrollFrequency.MONTHLY.value, nullable=False)
    # Scenario toggle overrides layered over the frequency defaults
    scenario_overrides = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    runs = relationship("PayrollRun", back_populates="calendar")

class PayrollRun(Base):
    __tablename__ = "payroll_runs"

    id = Column(String(36), primary_key=True, default=new_id)
    period = Column(String, nullable=False)  # e.g. "Jan 2024"
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)
    calendar_id = Column(String(36), ForeignKey("payroll_calendars.id"), nullable=True, index=True)
    gross_amount = Column(Float, default=0.0)
    total_deductions = Column(Float, default=0.0)
    net_amount = Column(Float, default=0.0)
    status = Column(String, default=PayrollRunStatus.DRAFT.value)
    scenario_key = Column(String, default="baseline")
    scenario_toggles = Column(JSON, default=dict)
    # Deduction config and skip sets used, so recalculation can replay them
    calculation_inputs = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    calendar = relationship("PayrollCalendar", back_populates="runs")
    entries = relationship("PayrollEntry", back_populates="payroll_run", cascade="all, delete-orphan")
    loan_payments = relationship("LoanPayment", back_populates="payroll_run")

class PayrollEntry(Base):
    __tablename__ = "payroll_entries"

    id = Column(String(36), primary_key=True, default=new_id)
    payroll_run_id = Column(String(36), ForeignKey("payroll_runs.id"), nullable=False, index=True)
    employee_id = Column(String(36), ForeignKey("employees.id"), nullable=False, index=True)
    gross_pay = Column(Float, nullable=False)
    base_salary = Column(Float, nullable=False)
    bonus_amount = Column(Float, default=0.0)
    allowances = Column(JSON, default=dict)
    working_days = Column(Integer, nullable=False)
    actual_working_days = Column(Integer, nullable=False)
    vacation_days = Column(Integer, default=0)
    tax_deduction = Column(Float, default=0.0)
    social_security_deduction = Column(Float, default=0.0)
    health_insurance_deduction = Column(Float, default=0.0)
    loan_deduction = Column(Float, default=0.0)
    other_deductions = Column(Float, default=0.0)
    net_pay = Column(Float, nullable=False)
    adjustment_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    payroll_run = relationship("PayrollRun", back_populates="entries")
