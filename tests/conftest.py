import pytest
import os
from datetime import date
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["PAYROLL_USE_ATTENDANCE"] = "true"
os.environ["PAYROLL_CURRENCY"] = "KWD"

from paymaster.database import Base, get_db
from paymaster.main import app
from paymaster.models import (
    Employee, EmployeeEvent, Loan, LoanAmortizationInstallment, VacationRequest,
)
from paymaster.services.amortization import generate_amortization_schedule
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture(scope="function")
def db_session():
    """
    A session per test. Services commit and roll back on their own, so rows
    are cleared table by table afterwards instead of rolling back a wrapper
    transaction.
    """
    session = TestingSessionLocal()

    yield session

    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()

@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

@pytest.fixture(scope="function")
def make_employee(db_session):
    """Factory for committed employees."""
    counter = {"n": 0}

    def _make(monthly_salary=3000.0, standard_working_days=30, status="active", **kwargs):
        counter["n"] += 1
        employee = Employee(
            employee_code=kwargs.pop("employee_code", f"EMP{counter['n']:03d}"),
            first_name=kwargs.pop("first_name", f"Employee{counter['n']}"),
            monthly_salary=monthly_salary,
            standard_working_days=standard_working_days,
            status=status,
            **kwargs,
        )
        db_session.add(employee)
        db_session.commit()
        return employee
    return _make

@pytest.fixture(scope="function")
def make_loan(db_session):
    """
    Factory for committed loans. With ``schedule=True`` the amortization
    installments are generated and stored as well.
    """
    def _make(employee, amount=600.0, monthly_deduction=150.0, start_date=date(2024, 1, 1),
              status="active", remaining_amount=None, interest_rate=0.0, schedule=False, **kwargs):
        loan = Loan(
            employee_id=employee.id,
            amount=amount,
            remaining_amount=amount if remaining_amount is None else remaining_amount,
            monthly_deduction=monthly_deduction,
            interest_rate=interest_rate,
            start_date=start_date,
            status=status,
            **kwargs,
        )
        if schedule:
            for item in generate_amortization_schedule(amount, monthly_deduction, start_date, interest_rate):
                loan.installments.append(LoanAmortizationInstallment(
                    installment_number=item.installment_number,
                    due_date=item.due_date,
                    principal_amount=item.principal_amount,
                    interest_amount=item.interest_amount,
                    payment_amount=item.payment_amount,
                    remaining_balance=item.remaining_balance,
                ))
        db_session.add(loan)
        db_session.commit()
        return loan
    return _make

@pytest.fixture(scope="function")
def make_vacation(db_session):
    def _make(employee, start_date, end_date, status="approved", pause_loans=False):
        vacation = VacationRequest(
            employee_id=employee.id,
            start_date=start_date,
            end_date=end_date,
            status=status,
            pause_loans=pause_loans,
        )
        db_session.add(vacation)
        db_session.commit()
        return vacation
    return _make

@pytest.fixture(scope="function")
def make_event(db_session):
    def _make(employee, event_type, amount, event_date, title=None, **kwargs):
        event = EmployeeEvent(
            employee_id=employee.id,
            event_type=event_type,
            title=title or event_type.replace("_", " ").title(),
            amount=amount,
            event_date=event_date,
            **kwargs,
        )
        db_session.add(event)
        db_session.commit()
        return event
    return _make
