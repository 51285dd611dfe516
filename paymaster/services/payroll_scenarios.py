"""
Scenario Resolver

A scenario is a named set of boolean toggles over input categories. Toggles
are resolved in layers (built-in defaults, payroll frequency defaults,
calendar overrides, request toggles; later wins) and then applied to a
snapshot to decide which loans, events, attendance data and statutory amounts
the calculator sees. Skip overrides exclude individual records on top of
whatever the toggles say.
"""
import enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from paymaster.models.employee_event import EventCategory, classify_event
from paymaster.schemas.payroll import (
    DeductionConfig,
    EmployeeImpact,
    EmployeePayroll,
    EventSnapshot,
    LoanSnapshot,
    PayrollSnapshot,
    ScenarioDefinition,
    ScenarioPreview,
    SkipOverrides,
    VacationSnapshot,
)
from paymaster.services.loan_allocation import group_loans_by_employee, prepare_loan_snapshots
from paymaster.services.payroll_calculator import calculate_employee_payroll, working_days_for
from paymaster.services.payroll_totals import calculate_totals


class ScenarioToggle(str, enum.Enum):
    ATTENDANCE = "attendance"
    LOANS = "loans"
    BONUSES = "bonuses"
    ALLOWANCES = "allowances"
    STATUTORY = "statutory"
    OVERTIME = "overtime"


BUILTIN_TOGGLES: Mapping[str, bool] = MappingProxyType({t.value: True for t in ScenarioToggle})
BASELINE_SCENARIO = "baseline"


class ScenarioInputs(BaseModel):
    """Calculator inputs after toggles and skip overrides are applied."""
    model_config = ConfigDict(frozen=True)

    loans: List[LoanSnapshot]
    vacations: List[VacationSnapshot]
    events: List[EventSnapshot]
    attendance_days: Dict[str, int]
    deduction_config: DeductionConfig


def resolve_toggles(
    frequency_defaults: Optional[Mapping[str, bool]] = None,
    calendar_overrides: Optional[Mapping[str, bool]] = None,
    request_toggles: Optional[Mapping[str, bool]] = None,
) -> Dict[str, bool]:
    """Layer the toggle maps over the built-in defaults. Unknown keys are kept."""
    resolved = dict(BUILTIN_TOGGLES)
    for layer in (frequency_defaults, calendar_overrides, request_toggles):
        if layer:
            resolved.update({str(k): bool(v) for k, v in layer.items()})
    return resolved


def _enabled(toggles: Mapping[str, bool], toggle: ScenarioToggle) -> bool:
    return toggles.get(toggle.value, True)


def _event_allowed(event: EventSnapshot, toggles: Mapping[str, bool]) -> bool:
    category = classify_event(event.event_type)
    if category == EventCategory.ALLOWANCE:
        return _enabled(toggles, ScenarioToggle.ALLOWANCES)
    if category == EventCategory.EARNING:
        return _enabled(toggles, ScenarioToggle.BONUSES)
    if category == EventCategory.OVERTIME:
        return _enabled(toggles, ScenarioToggle.OVERTIME)
    return True


def apply_scenario(
    toggles: Mapping[str, bool],
    loans: Sequence[LoanSnapshot],
    vacations: Sequence[VacationSnapshot],
    events: Sequence[EventSnapshot],
    attendance_days: Optional[Mapping[str, int]] = None,
    deduction_config: Optional[DeductionConfig] = None,
    skip_overrides: Optional[SkipOverrides] = None,
) -> ScenarioInputs:
    skip = skip_overrides or SkipOverrides()
    config = deduction_config or DeductionConfig()

    if not _enabled(toggles, ScenarioToggle.STATUTORY):
        config = DeductionConfig()

    scenario_loans = (
        [l for l in loans if l.id not in skip.loan_ids]
        if _enabled(toggles, ScenarioToggle.LOANS)
        else []
    )
    return ScenarioInputs(
        loans=scenario_loans,
        vacations=[v for v in vacations if v.id not in skip.vacation_ids],
        events=[e for e in events if e.id not in skip.event_ids and _event_allowed(e, toggles)],
        attendance_days=dict(attendance_days or {}) if _enabled(toggles, ScenarioToggle.ATTENDANCE) else {},
        deduction_config=config,
    )


def scenario_inputs_for(
    snapshot: PayrollSnapshot,
    toggles: Optional[Mapping[str, bool]] = None,
    skip_overrides: Optional[SkipOverrides] = None,
) -> ScenarioInputs:
    """apply_scenario over a snapshot, with loan due amounts prepared for its period."""
    inputs = apply_scenario(
        toggles if toggles is not None else BUILTIN_TOGGLES,
        snapshot.loans,
        snapshot.vacations,
        snapshot.events,
        snapshot.attendance_days,
        snapshot.deduction_config,
        skip_overrides,
    )
    prepared = prepare_loan_snapshots(inputs.loans, inputs.vacations, snapshot.period_start, snapshot.period_end)
    return inputs.model_copy(update={"loans": prepared})


def calculate_payroll_entries(
    snapshot: PayrollSnapshot,
    toggles: Optional[Mapping[str, bool]] = None,
    skip_overrides: Optional[SkipOverrides] = None,
    currency: str = "KWD",
) -> List[EmployeePayroll]:
    """Run the calculator for every employee in snapshot order."""
    skip = skip_overrides or SkipOverrides()
    inputs = scenario_inputs_for(snapshot, toggles, skip)

    loans_by_employee = group_loans_by_employee(inputs.loans)
    vacations_by_employee: Dict[str, List[VacationSnapshot]] = {}
    for vacation in inputs.vacations:
        vacations_by_employee.setdefault(vacation.employee_id, []).append(vacation)
    events_by_employee: Dict[str, List[EventSnapshot]] = {}
    for event in inputs.events:
        events_by_employee.setdefault(event.employee_id, []).append(event)

    return [
        calculate_employee_payroll(
            employee=employee,
            loans=loans_by_employee.get(employee.id, []),
            vacations=vacations_by_employee.get(employee.id, []),
            events=events_by_employee.get(employee.id, []),
            period_start=snapshot.period_start,
            period_end=snapshot.period_end,
            working_days=working_days_for(employee, snapshot.period_start, snapshot.period_end),
            attendance_days=inputs.attendance_days.get(employee.id),
            deduction_config=inputs.deduction_config,
            skip_overrides=skip,
            currency=currency,
        )
        for employee in snapshot.employees
    ]


def preview_scenarios(
    snapshot: PayrollSnapshot,
    scenarios: Sequence[ScenarioDefinition],
    base_toggles: Optional[Mapping[str, bool]] = None,
    skip_overrides: Optional[SkipOverrides] = None,
    currency: str = "KWD",
) -> List[ScenarioPreview]:
    """
    Evaluate each scenario against the same snapshot.

    Scenario toggles are layered over ``base_toggles``; the first preview is
    always the baseline itself so net deltas have a reference point.
    Nothing is persisted.
    """
    baseline_toggles = dict(base_toggles) if base_toggles is not None else dict(BUILTIN_TOGGLES)
    baseline = calculate_payroll_entries(snapshot, baseline_toggles, skip_overrides, currency)
    baseline_net = {e.employee_id: e.net_pay for e in baseline}

    def build(key: str, label: Optional[str], toggles: Dict[str, bool], entries: List[EmployeePayroll]) -> ScenarioPreview:
        return ScenarioPreview(
            scenario_key=key,
            label=label,
            toggles=toggles,
            totals=calculate_totals(entries),
            employees=[
                EmployeeImpact(
                    employee_id=e.employee_id,
                    gross_pay=e.gross_pay,
                    total_deductions=round(e.total_deductions, 2),
                    net_pay=e.net_pay,
                    net_delta=round(e.net_pay - baseline_net.get(e.employee_id, 0.0), 2),
                    loan_deduction=e.loan_deduction,
                    adjustment_reason=e.adjustment_reason,
                )
                for e in entries
            ],
        )

    previews = [build(BASELINE_SCENARIO, "Baseline", baseline_toggles, baseline)]
    for scenario in scenarios:
        if scenario.key == BASELINE_SCENARIO:
            continue
        toggles = resolve_toggles(baseline_toggles, None, scenario.toggles)
        entries = calculate_payroll_entries(snapshot, toggles, skip_overrides, currency)
        previews.append(build(scenario.key, scenario.label, toggles, entries))
    return previews
