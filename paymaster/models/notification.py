from sqlalchemy import Column, String, DateTime, Date, ForeignKey, Text
from sqlalchemy.sql import func
from paymaster.database import Base
from paymaster.models.employee import new_id

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    employee_id = Column(String(36), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    payroll_run_id = Column(String(36), ForeignKey("payroll_runs.id", ondelete="SET NULL"), nullable=True, index=True)
    type = Column(String(50), nullable=False)  # vacation_deduction, loan_deduction, attendance_variance
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(20), default="medium")  # low, medium, high, critical
    status = Column(String(20), default="unread", index=True)
    expiry_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
