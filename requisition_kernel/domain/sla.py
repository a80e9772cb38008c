"""
SLA deadlines in business days (``requisition_kernel.domain.sla``).

Responsibility
--------------
Computes the deadline for a gate from the moment a requisition enters it,
and derives ``is_overdue`` / ``days_overdue`` / ``days_remaining`` at read
time.  Deadlines are never persisted with derived flags; only the deadline
instant is stored.

Architecture position
---------------------
**Kernel domain layer** -- pure.  The calendar (timezone, weekend days,
holidays) and the per-gate budgets are injected; ``requisition_config``
builds them from YAML.

Invariants enforced
-------------------
* A deadline lands on a business day at the same local time-of-day as the
  entry instant.
* ``now == deadline`` is not overdue and has 0 days remaining.
* Business days between two instants count the local dates ``d`` with
  ``start < d <= end`` that are neither weekend days nor holidays.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Mapping
from zoneinfo import ZoneInfo

from requisition_kernel.domain.requisition import Gate, Priority

SATURDAY = 5
SUNDAY = 6


@dataclass(frozen=True)
class BusinessCalendar:
    """Working-day calendar evaluated in a fixed local timezone."""

    timezone_name: str = "UTC"
    holidays: frozenset[date] = frozenset()
    weekend_days: frozenset[int] = frozenset({SATURDAY, SUNDAY})

    def __post_init__(self) -> None:
        if len(self.weekend_days) >= 7:
            raise ValueError("Calendar must have at least one working weekday")
        if any(d < 0 or d > 6 for d in self.weekend_days):
            raise ValueError(f"Weekend days must be 0..6, got {sorted(self.weekend_days)}")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone_name)

    def local_date(self, instant: datetime) -> date:
        return instant.astimezone(self.tz).date()

    def is_business_day(self, day: date) -> bool:
        return day.weekday() not in self.weekend_days and day not in self.holidays

    def add_business_days(self, start: date, days: int) -> date:
        """Return the ``days``-th business day strictly after ``start``."""
        if days < 0:
            raise ValueError(f"Business day offset must be >= 0, got {days}")
        current = start
        remaining = days
        while remaining > 0:
            current += timedelta(days=1)
            if self.is_business_day(current):
                remaining -= 1
        return current

    def business_days_between(self, start: date, end: date) -> int:
        """Count business dates in ``(start, end]``.  Zero if ``end <= start``."""
        count = 0
        current = start
        while current < end:
            current += timedelta(days=1)
            if self.is_business_day(current):
                count += 1
        return count


@dataclass(frozen=True)
class SlaStatus:
    """Derived SLA fields for one requisition at one instant."""

    is_overdue: bool
    days_overdue: int
    days_remaining: int


NO_SLA = SlaStatus(is_overdue=False, days_overdue=0, days_remaining=0)


@dataclass(frozen=True)
class SlaBudget:
    """Business days allowed at one gate, by priority."""

    gate: Gate
    days_by_priority: Mapping[Priority, int] = field(default_factory=dict)

    def days_for(self, priority: Priority) -> int:
        try:
            return self.days_by_priority[priority]
        except KeyError:
            return self.days_by_priority[Priority.NORMAL]


class SLAClock:
    """
    Business-day SLA calculator.

    Contract:
        ``deadline`` maps (entry instant, gate, priority) to an aware UTC
        deadline.  ``status`` compares a deadline with ``now`` using the
        same calendar.

    Non-goals:
        - Does NOT read the current time; callers pass ``now`` from a Clock.
        - Does NOT persist anything.
    """

    def __init__(
        self,
        calendar: BusinessCalendar,
        budgets: Mapping[Gate, SlaBudget],
    ) -> None:
        missing = [g.value for g in Gate if g not in budgets]
        if missing:
            raise ValueError(f"SLA budgets missing for gates: {missing}")
        self._calendar = calendar
        self._budgets = dict(budgets)

    @property
    def calendar(self) -> BusinessCalendar:
        return self._calendar

    def budget_days(self, gate: Gate, priority: Priority = Priority.NORMAL) -> int:
        return self._budgets[gate].days_for(priority)

    def deadline(
        self,
        entered_at: datetime,
        gate: Gate,
        priority: Priority = Priority.NORMAL,
    ) -> datetime:
        """Deadline for clearing ``gate``, entered at ``entered_at``."""
        if entered_at.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {entered_at!r}")
        tz = self._calendar.tz
        local = entered_at.astimezone(tz)
        target = self._calendar.add_business_days(
            local.date(), self.budget_days(gate, priority),
        )
        due = datetime.combine(target, local.time(), tzinfo=tz)
        return due.astimezone(timezone.utc)

    def status(self, deadline: datetime | None, now: datetime) -> SlaStatus:
        """Overdue / remaining business days of ``deadline`` as seen at ``now``."""
        if deadline is None:
            return NO_SLA
        deadline_day = self._calendar.local_date(deadline)
        today = self._calendar.local_date(now)
        if now > deadline:
            return SlaStatus(
                is_overdue=True,
                days_overdue=self._calendar.business_days_between(deadline_day, today),
                days_remaining=0,
            )
        return SlaStatus(
            is_overdue=False,
            days_overdue=0,
            days_remaining=self._calendar.business_days_between(today, deadline_day),
        )
