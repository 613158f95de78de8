"""Leave coverage: which instants a day's approvals justify, and how many
hours each approval contributes to a specific calendar day."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable

from attendance_engine.domain import DurationUnit, LeaveApproval
from attendance_engine.services.clock import at_time, minutes_between


@dataclass(frozen=True, slots=True)
class WorkWindow:
    work_start: time
    work_end: time
    lunch_start: time
    lunch_end: time


@dataclass(frozen=True, slots=True)
class Coverage:
    covered: bool
    leave_type: str | None = None


NOT_COVERED = Coverage(covered=False)


def _usable_range(approval: LeaveApproval) -> tuple[datetime, datetime] | None:
    """The approval's start and end, or None when it cannot contribute anything."""
    if approval.duration <= 0 or approval.start is None or approval.end is None:
        return None
    return approval.start, approval.end


def _covers(approval: LeaveApproval, start: datetime, end: datetime, instant: datetime) -> bool:
    if approval.duration_unit == DurationUnit.DAY:
        return start.date() <= instant.date() <= end.date()
    return start <= instant <= end


def is_covered(instant: datetime, approvals: Iterable[LeaveApproval]) -> Coverage:
    for approval in approvals:
        span = _usable_range(approval)
        if span is None:
            continue
        start, end = span
        if _covers(approval, start, end, instant):
            return Coverage(covered=True, leave_type=approval.leave_type)
    return NOT_COVERED


def _overlap_minutes(start: datetime, end: datetime, window_start: datetime, window_end: datetime) -> float:
    latest_start = max(start, window_start)
    earliest_end = min(end, window_end)
    if earliest_end <= latest_start:
        return 0.0
    return minutes_between(latest_start, earliest_end)


def _boundary_hours(
    day: date,
    segment_start: datetime,
    segment_end: datetime,
    *,
    daily_hours: float,
    window: WorkWindow,
) -> float:
    work_start = at_time(day, window.work_start)
    work_end = at_time(day, window.work_end)
    start = max(segment_start, work_start)
    end = min(segment_end, work_end)
    if end <= start:
        return 0.0

    minutes = minutes_between(start, end)
    minutes -= _overlap_minutes(start, end, at_time(day, window.lunch_start), at_time(day, window.lunch_end))
    return max(0.0, min(minutes / 60, daily_hours))


def _hour_unit_hours(
    approval: LeaveApproval,
    start: datetime,
    end: datetime,
    day: date,
    *,
    daily_hours: float,
    window: WorkWindow,
) -> float:
    start_day = start.date()
    end_day = end.date()
    if not start_day <= day <= end_day:
        return 0.0
    if approval.duration <= daily_hours:
        return approval.duration

    if day == start_day:
        return _boundary_hours(day, start, end, daily_hours=daily_hours, window=window)
    if day == end_day:
        return _boundary_hours(
            day,
            datetime.combine(day, time.min),
            end,
            daily_hours=daily_hours,
            window=window,
        )
    return daily_hours


def _day_unit_hours(approval: LeaveApproval, start: datetime, end: datetime, day: date, *, daily_hours: float) -> float:
    start_day = start.date()
    end_day = end.date()
    if not start_day <= day <= end_day:
        return 0.0

    span_days = (end_day - start_day).days + 1
    if span_days == 1:
        return min(approval.duration, 1.0) * daily_hours
    if day == end_day and approval.duration < span_days:
        # The shortfall against the calendar span is taken off the last day.
        remaining = approval.duration - (span_days - 1)
        return max(0.0, min(remaining, 1.0)) * daily_hours
    return daily_hours


def hours_on_date(
    approval: LeaveApproval,
    day: date,
    daily_hours: float,
    window: WorkWindow,
) -> float:
    """Leave hours ``approval`` contributes to ``day``.

    Never negative and never more than ``daily_hours`` for a multi-day
    approval. A zero duration or a missing start or end contributes nothing.
    """
    span = _usable_range(approval)
    if span is None:
        return 0.0
    start, end = span
    if approval.duration_unit == DurationUnit.DAY:
        return _day_unit_hours(approval, start, end, day, daily_hours=daily_hours)
    return max(0.0, _hour_unit_hours(approval, start, end, day, daily_hours=daily_hours, window=window))


def daily_leave_hours(
    approvals: Iterable[LeaveApproval],
    day: date,
    daily_hours: float,
    window: WorkWindow,
) -> float:
    return sum(hours_on_date(approval, day, daily_hours, window) for approval in approvals)


def is_full_day_leave(
    approvals: Iterable[LeaveApproval],
    day: date,
    daily_hours: float,
    window: WorkWindow,
) -> bool:
    return daily_leave_hours(approvals, day, daily_hours, window) >= daily_hours


def leave_end_instant(approval: LeaveApproval) -> datetime | None:
    """End of the approval as an instant; a day-only end covers its whole day."""
    if approval.end is None:
        return None
    return _end_instant(approval, approval.end)


def _end_instant(approval: LeaveApproval, end: datetime) -> datetime:
    if approval.duration_unit == DurationUnit.DAY and end.time() == time.min:
        return datetime.combine(end.date() + timedelta(days=1), time.min)
    return end


def covering_approval(approvals: Iterable[LeaveApproval], check_in: datetime) -> LeaveApproval | None:
    """The approval started by ``check_in`` on its day that ends last."""
    latest: datetime | None = None
    chosen: LeaveApproval | None = None
    day_start = datetime.combine(check_in.date(), time.min)
    for approval in approvals:
        span = _usable_range(approval)
        if span is None:
            continue
        start, end = span
        if start > check_in or end < day_start:
            continue
        end = _end_instant(approval, end)
        if latest is None or end > latest:
            latest = end
            chosen = approval
    return chosen
