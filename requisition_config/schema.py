"""
Workflow configuration schema.

Frozen dataclasses for the human-authored YAML configuration set.  The
loader parses YAML into these types; bridges turn them into kernel
objects (SLAClock, WorkflowRoles).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

# ---------------------------------------------------------------------------
# Calendar and SLA
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CalendarDef:
    """Business calendar: local timezone, weekend days (Mon=0), holidays."""

    timezone: str
    weekend_days: tuple[int, ...] = (5, 6)
    holidays: tuple[date, ...] = ()


@dataclass(frozen=True)
class SlaBudgetDef:
    """Business days allowed at one gate, per priority."""

    gate: str
    normal_days: int
    alta_days: int


# ---------------------------------------------------------------------------
# Roles, numbering, concurrency
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RolesDef:
    validator: str
    management: str


@dataclass(frozen=True)
class NumberingDef:
    requisition_format: str = "REQ-{seq:03d}"


@dataclass(frozen=True)
class ConcurrencyDef:
    # Extra attempts after a lost race; 0 disables retrying
    conflict_retries: int = 1


# ---------------------------------------------------------------------------
# Configuration set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkflowConfiguration:
    """Complete, validated workflow configuration."""

    config_id: str
    version: int
    calendar: CalendarDef
    sla_budgets: tuple[SlaBudgetDef, ...]
    roles: RolesDef
    numbering: NumberingDef = field(default_factory=NumberingDef)
    concurrency: ConcurrencyDef = field(default_factory=ConcurrencyDef)
    checksum: str = ""

    def budget_for(self, gate: str) -> SlaBudgetDef:
        for budget in self.sla_budgets:
            if budget.gate == gate:
                return budget
        raise KeyError(f"No SLA budget configured for gate '{gate}'")
