from typing import Iterable

from paymaster.core.exceptions import PayrollInvariantError
from paymaster.schemas.payroll import EmployeePayroll, PayrollTotals

BALANCE_TOLERANCE = 0.01


def calculate_totals(entries: Iterable[EmployeePayroll]) -> PayrollTotals:
    """
    Sum entries into run totals.

    Raises PayrollInvariantError when gross - deductions != net (beyond one
    cent). That can only mean a calculator bug; callers must roll back.
    """
    gross = 0.0
    deductions = 0.0
    net = 0.0
    for entry in entries:
        gross += entry.gross_pay
        deductions += entry.total_deductions
        net += entry.net_pay

    gross, deductions, net = round(gross, 2), round(deductions, 2), round(net, 2)
    if abs(round(gross - deductions - net, 2)) > BALANCE_TOLERANCE:
        raise PayrollInvariantError(gross, deductions, net)

    return PayrollTotals(gross_amount=gross, total_deductions=deductions, net_amount=net)
