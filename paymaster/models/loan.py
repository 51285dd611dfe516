"""
Loan models: the loan itself, its amortization installments, the payments
applied by payroll runs, and the approval/documentation trail checked before
activation.
"""
from sqlalchemy import (
    Column, Integer, String, Float, Date, DateTime, ForeignKey, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum

from paymaster.database import Base
from paymaster.models.employee import new_id


class LoanStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"  # legacy; deducted like ACTIVE
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InstallmentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    PAUSED = "paused"
    SKIPPED = "skipped"


class ApprovalStageStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Loan(Base):
    __tablename__ = "loans"

    id = Column(String(36), primary_key=True, default=new_id)
    employee_id = Column(String(36), ForeignKey("employees.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    remaining_amount = Column(Float, nullable=False)
    monthly_deduction = Column(Float, nullable=False)
    interest_rate = Column(Float, nullable=True, default=0.0)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    status = Column(String, default=LoanStatus.PENDING.value, index=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    employee = relationship("Employee", back_populates="loans")
    installments = relationship(
        "LoanAmortizationInstallment",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="LoanAmortizationInstallment.installment_number",
    )
    payments = relationship("LoanPayment", back_populates="loan")
    approval_stages = relationship(
        "LoanApprovalStage",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="LoanApprovalStage.stage_order",
    )
    documents = relationship("LoanDocument", back_populates="loan", cascade="all, delete-orphan")


class LoanAmortizationInstallment(Base):
    __tablename__ = "loan_amortization_installments"
    __table_args__ = (
        UniqueConstraint("loan_id", "installment_number", name="uq_installment_loan_number"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    loan_id = Column(String(36), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    principal_amount = Column(Float, nullable=False)
    interest_amount = Column(Float, nullable=False, default=0.0)
    payment_amount = Column(Float, nullable=False)
    remaining_balance = Column(Float, nullable=False)
    status = Column(String, default=InstallmentStatus.PENDING.value)
    # Stamped when a payroll run pays the installment
    payroll_run_id = Column(String(36), ForeignKey("payroll_runs.id"), nullable=True)
    paid_date = Column(Date, nullable=True)

    loan = relationship("Loan", back_populates="installments")


class LoanPayment(Base):
    __tablename__ = "loan_payments"

    id = Column(String(36), primary_key=True, default=new_id)
    loan_id = Column(String(36), ForeignKey("loans.id"), nullable=False, index=True)
    payroll_run_id = Column(String(36), ForeignKey("payroll_runs.id"), nullable=False, index=True)
    employee_id = Column(String(36), ForeignKey("employees.id"), nullable=False)
    amount = Column(Float, nullable=False)
    applied_date = Column(Date, nullable=False)
    source = Column(String, default="payroll", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    loan = relationship("Loan", back_populates="payments")
    payroll_run = relationship("PayrollRun", back_populates="loan_payments")


class LoanApprovalStage(Base):
    __tablename__ = "loan_approval_stages"

    id = Column(String(36), primary_key=True, default=new_id)
    loan_id = Column(String(36), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    stage_name = Column(String, nullable=False)
    stage_order = Column(Integer, default=0)
    status = Column(String, default=ApprovalStageStatus.PENDING.value)
    notes = Column(Text, nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)

    loan = relationship("Loan", back_populates="approval_stages")


class LoanDocument(Base):
    __tablename__ = "loan_documents"

    id = Column(String(36), primary_key=True, default=new_id)
    loan_id = Column(String(36), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    document_url = Column(String, nullable=True)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now())

    loan = relationship("Loan", back_populates="documents")
