"""
Tests for business-day SLA deadlines (requisition_kernel/domain/sla.py).

Covers:
- BusinessCalendar: weekends, holidays, counting (start, end]
- SLAClock.deadline: same local time, priority budgets, timezone
- SLAClock.status: boundary at the deadline instant, overdue and
  remaining business days
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from requisition_kernel.domain.requisition import Gate, Priority
from requisition_kernel.domain.sla import (
    NO_SLA,
    BusinessCalendar,
    SLAClock,
    SlaBudget,
)

MONDAY = datetime(2024, 1, 8, 12, 0, tzinfo=timezone.utc)
FRIDAY = datetime(2024, 1, 12, 12, 0, tzinfo=timezone.utc)


def make_clock(calendar=None, normal=2, alta=1):
    budgets = {
        gate: SlaBudget(gate, {Priority.NORMAL: normal, Priority.ALTA: alta})
        for gate in Gate
    }
    return SLAClock(calendar or BusinessCalendar(), budgets)


class TestBusinessCalendar:

    def test_weekends_are_not_business_days(self):
        cal = BusinessCalendar()
        assert cal.is_business_day(date(2024, 1, 12))
        assert not cal.is_business_day(date(2024, 1, 13))
        assert not cal.is_business_day(date(2024, 1, 14))

    def test_holidays_are_not_business_days(self):
        cal = BusinessCalendar(holidays=frozenset({date(2024, 1, 9)}))
        assert not cal.is_business_day(date(2024, 1, 9))

    def test_add_business_days_skips_weekend(self):
        cal = BusinessCalendar()
        assert cal.add_business_days(date(2024, 1, 12), 1) == date(2024, 1, 15)
        assert cal.add_business_days(date(2024, 1, 12), 2) == date(2024, 1, 16)

    def test_add_business_days_from_a_weekend(self):
        cal = BusinessCalendar()
        assert cal.add_business_days(date(2024, 1, 13), 1) == date(2024, 1, 15)

    def test_add_zero_business_days_is_identity(self):
        cal = BusinessCalendar()
        assert cal.add_business_days(date(2024, 1, 13), 0) == date(2024, 1, 13)

    def test_negative_offset_rejected(self):
        with pytest.raises(ValueError):
            BusinessCalendar().add_business_days(date(2024, 1, 8), -1)

    def test_business_days_between_is_half_open(self):
        cal = BusinessCalendar()
        assert cal.business_days_between(date(2024, 1, 8), date(2024, 1, 8)) == 0
        assert cal.business_days_between(date(2024, 1, 8), date(2024, 1, 9)) == 1
        assert cal.business_days_between(date(2024, 1, 12), date(2024, 1, 15)) == 1
        assert cal.business_days_between(date(2024, 1, 15), date(2024, 1, 12)) == 0

    def test_invalid_weekend_days(self):
        with pytest.raises(ValueError):
            BusinessCalendar(weekend_days=frozenset({7}))
        with pytest.raises(ValueError):
            BusinessCalendar(weekend_days=frozenset(range(7)))


class TestDeadline:

    def test_keeps_time_of_day(self):
        clock = make_clock()
        assert clock.deadline(MONDAY, Gate.REVIEW) == datetime(
            2024, 1, 10, 12, 0, tzinfo=timezone.utc,
        )

    def test_skips_weekend(self):
        clock = make_clock()
        assert clock.deadline(FRIDAY, Gate.REVIEW) == datetime(
            2024, 1, 16, 12, 0, tzinfo=timezone.utc,
        )

    def test_skips_holiday(self):
        cal = BusinessCalendar(holidays=frozenset({date(2024, 1, 9)}))
        clock = make_clock(cal)
        assert clock.deadline(MONDAY, Gate.REVIEW) == datetime(
            2024, 1, 11, 12, 0, tzinfo=timezone.utc,
        )

    def test_alta_priority_uses_shorter_budget(self):
        clock = make_clock(normal=3, alta=1)
        assert clock.deadline(MONDAY, Gate.MANAGEMENT, Priority.ALTA) == datetime(
            2024, 1, 9, 12, 0, tzinfo=timezone.utc,
        )

    def test_missing_priority_falls_back_to_normal(self):
        budgets = {gate: SlaBudget(gate, {Priority.NORMAL: 2}) for gate in Gate}
        clock = SLAClock(BusinessCalendar(), budgets)
        assert clock.budget_days(Gate.REVIEW, Priority.ALTA) == 2

    def test_local_timezone_decides_the_business_date(self):
        # Saturday 02:00 UTC is still Friday evening in Bogota
        entered = datetime(2024, 1, 13, 2, 0, tzinfo=timezone.utc)
        bogota = make_clock(BusinessCalendar(timezone_name="America/Bogota"))
        utc = make_clock()
        assert bogota.deadline(entered, Gate.REVIEW) == datetime(
            2024, 1, 17, 2, 0, tzinfo=timezone.utc,
        )
        assert utc.deadline(entered, Gate.REVIEW) == datetime(
            2024, 1, 16, 2, 0, tzinfo=timezone.utc,
        )

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValueError):
            make_clock().deadline(datetime(2024, 1, 8, 12, 0), Gate.REVIEW)

    def test_every_gate_needs_a_budget(self):
        with pytest.raises(ValueError, match="management"):
            SLAClock(
                BusinessCalendar(),
                {g: SlaBudget(g, {Priority.NORMAL: 1}) for g in Gate if g != Gate.MANAGEMENT},
            )


class TestStatus:

    def test_no_deadline_means_no_sla(self):
        assert make_clock().status(None, MONDAY) == NO_SLA

    def test_at_deadline_is_not_overdue(self):
        clock = make_clock()
        deadline = clock.deadline(MONDAY, Gate.REVIEW)
        status = clock.status(deadline, deadline)
        assert not status.is_overdue
        assert status.days_overdue == 0
        assert status.days_remaining == 0

    def test_one_business_day_late(self):
        clock = make_clock()
        deadline = clock.deadline(MONDAY, Gate.REVIEW)
        status = clock.status(deadline, deadline + timedelta(days=1))
        assert status.is_overdue
        assert status.days_overdue == 1
        assert status.days_remaining == 0

    def test_late_over_a_weekend_counts_business_days(self):
        clock = make_clock()
        status = clock.status(FRIDAY, FRIDAY + timedelta(days=3, hours=1))
        assert status.is_overdue
        assert status.days_overdue == 1

    def test_just_past_deadline_is_overdue_same_day(self):
        clock = make_clock()
        status = clock.status(MONDAY, MONDAY + timedelta(seconds=1))
        assert status.is_overdue
        assert status.days_overdue == 0

    def test_remaining_business_days(self):
        clock = make_clock()
        deadline = clock.deadline(FRIDAY, Gate.REVIEW)
        status = clock.status(deadline, FRIDAY)
        assert not status.is_overdue
        assert status.days_remaining == 2
