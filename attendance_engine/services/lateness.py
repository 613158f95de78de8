from __future__ import annotations

import math
from datetime import datetime

from attendance_engine.domain import CheckType, LeaveApproval, PunchRecord, TimeResult
from attendance_engine.services.clock import at_clock, at_time, parse_clock
from attendance_engine.services.leave_coverage import leave_end_instant
from attendance_engine.services.rule_config import RuleConfig


def _is_late_on_duty(record: PunchRecord) -> bool:
    return record.check_type == CheckType.ON_DUTY and record.time_result == TimeResult.LATE


def is_after_grace_checkout(off_duty: PunchRecord | None, config: RuleConfig) -> bool:
    """True when an off-duty punch lands at or after the night grace clock of its work day."""
    if off_duty is None or off_duty.user_check_time is None:
        return False
    return off_duty.user_check_time >= at_time(off_duty.work_date, config.late_grace_checkout_time)


def _threshold_from_late_rules(
    record: PunchRecord,
    previous_off_duty: PunchRecord | None,
    config: RuleConfig,
) -> datetime:
    default = at_time(record.work_date, config.work_start_time)
    if previous_off_duty is None or previous_off_duty.user_check_time is None:
        return default

    for rule in config.late_rules:
        checkout = parse_clock(rule.previous_day_checkout_time)
        threshold = parse_clock(rule.late_threshold_time)
        if checkout is None or threshold is None:
            continue
        if previous_off_duty.user_check_time >= at_clock(previous_off_duty.work_date, *checkout):
            return at_clock(record.work_date, *threshold)
    return default


def late_minutes(
    record: PunchRecord | None,
    *,
    config: RuleConfig,
    leave_detail: LeaveApproval | None = None,
    previous_off_duty: PunchRecord | None = None,
    yesterday_approval_after_grace: bool = False,
    is_first_workday_of_month: bool = False,
    is_first_day_on_job: bool = False,
) -> int:
    """Minutes an on-duty punch is late after every threshold adjustment.

    The threshold is chosen in priority order: night grace after a late
    checkout, the first workday of the month, the ordered late rules (or the
    work start when none matches). A leave that ends after the threshold
    moves it to the leave end, never earlier than the afternoon start. An
    approval-sourced late checkout yesterday resets it to the grace clock,
    and an employee's first day is never late.
    """
    if record is None or record.user_check_time is None or not _is_late_on_duty(record):
        return 0
    check_in = record.user_check_time
    if is_first_day_on_job:
        return 0

    day = record.work_date
    grace_threshold = at_time(day, config.late_grace_threshold_time)

    if is_after_grace_checkout(previous_off_duty, config):
        threshold = grace_threshold
    elif is_first_workday_of_month:
        threshold = grace_threshold
    else:
        threshold = _threshold_from_late_rules(record, previous_off_duty, config)

    if leave_detail is not None:
        leave_end = leave_end_instant(leave_detail)
        if leave_end is not None and leave_end > threshold:
            threshold = max(leave_end, at_time(day, config.lunch_end_time))

    if yesterday_approval_after_grace:
        threshold = grace_threshold

    elapsed = (check_in - threshold).total_seconds() / 60
    return max(0, math.floor(elapsed))
