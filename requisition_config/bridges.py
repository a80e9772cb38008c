"""
Config -> Kernel Bridges.

Functions that turn a WorkflowConfiguration into kernel objects.  They
live here because the kernel must never import ``requisition_config``.

Usage:
    from requisition_config.bridges import build_sla_clock, build_roles

    config = get_active_config()
    sla_clock = build_sla_clock(config)
"""

from __future__ import annotations

from requisition_config.schema import WorkflowConfiguration
from requisition_kernel.domain.requisition import Gate, Priority, WorkflowRoles
from requisition_kernel.domain.sla import BusinessCalendar, SLAClock, SlaBudget


def build_business_calendar(config: WorkflowConfiguration) -> BusinessCalendar:
    return BusinessCalendar(
        timezone_name=config.calendar.timezone,
        holidays=frozenset(config.calendar.holidays),
        weekend_days=frozenset(config.calendar.weekend_days),
    )


def build_sla_clock(config: WorkflowConfiguration) -> SLAClock:
    """Build the SLAClock from the calendar and per-gate budgets."""
    budgets = {}
    for gate in Gate:
        budget = config.budget_for(gate.value)
        budgets[gate] = SlaBudget(
            gate=gate,
            days_by_priority={
                Priority.NORMAL: budget.normal_days,
                Priority.ALTA: budget.alta_days,
            },
        )
    return SLAClock(build_business_calendar(config), budgets)


def build_roles(config: WorkflowConfiguration) -> WorkflowRoles:
    return WorkflowRoles(
        validator=config.roles.validator,
        management=config.roles.management,
    )
