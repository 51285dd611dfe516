from datetime import date
from typing import List, Mapping, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy.orm import Session

from paymaster.models.notification import Notification
from paymaster.schemas.payroll import EmployeePayroll


class NotificationRequest(BaseModel):
    employee_id: str
    type: str
    title: str
    message: str
    priority: str = "medium"
    expiry_date: Optional[date] = None


def build_payroll_notifications(
    entries: Sequence[EmployeePayroll],
    period: str,
    period_end: date,
    attendance_days: Optional[Mapping[str, int]] = None,
    currency: str = "KWD",
) -> List[NotificationRequest]:
    """
    Notifications an employee should see after a run: vacation days deducted,
    loan repayment withheld, and attendance below the scheduled working days.
    """
    attendance = attendance_days or {}
    requests = []
    for entry in entries:
        if entry.vacation_days > 0:
            requests.append(NotificationRequest(
                employee_id=entry.employee_id,
                type="vacation_deduction",
                title="Vacation Deduction Applied",
                message=f"{entry.vacation_days} vacation days deducted from {period} payroll",
                expiry_date=period_end,
            ))
        if entry.loan_deduction > 0:
            requests.append(NotificationRequest(
                employee_id=entry.employee_id,
                type="loan_deduction",
                title="Loan Deduction Applied",
                message=f"{entry.loan_deduction:.2f} {currency} deducted for loan repayment in {period}",
                priority="low",
                expiry_date=period_end,
            ))
        attended = attendance.get(entry.employee_id)
        if attended is not None and attended < entry.working_days:
            requests.append(NotificationRequest(
                employee_id=entry.employee_id,
                type="attendance_variance",
                title="Attendance Variance",
                message=(
                    f"{entry.working_days - attended} fewer days attended than the "
                    f"{entry.working_days} scheduled in {period}"
                ),
                priority="high",
                expiry_date=period_end,
            ))
    return requests


class NotificationService:
    @staticmethod
    def add_notifications(
        db: Session,
        requests: Sequence[NotificationRequest],
        payroll_run_id: Optional[str] = None,
    ) -> List[Notification]:
        """
        Stage notification rows on the session. The caller owns the
        transaction, so nothing is committed here.
        """
        rows = [
            Notification(
                employee_id=r.employee_id,
                payroll_run_id=payroll_run_id,
                type=r.type,
                title=r.title,
                message=r.message,
                priority=r.priority,
                expiry_date=r.expiry_date,
            )
            for r in requests
        ]
        db.add_all(rows)
        return rows

    @staticmethod
    def notify_payroll_run(
        db: Session,
        entries: Sequence[EmployeePayroll],
        payroll_run_id: str,
        period: str,
        period_end: date,
        attendance_days: Optional[Mapping[str, int]] = None,
        currency: str = "KWD",
    ) -> List[Notification]:
        requests = build_payroll_notifications(entries, period, period_end, attendance_days, currency)
        return NotificationService.add_notifications(db, requests, payroll_run_id)
