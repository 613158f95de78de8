from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING, Iterable

from attendance_engine.domain import CheckType, DailyAttendanceStatus, LeaveCategory
from attendance_engine.services.rule_config import FullAttendanceRule, RuleConfig

if TYPE_CHECKING:
    from attendance_engine.services.monthly_stats import EmployeeMonthlyStats

logger = logging.getLogger("attendance_engine.full_attendance")

_COUNT_ONLY_TYPES = ("late", "missing", "absenteeism")


def _rule_value(rule: FullAttendanceRule, stats: EmployeeMonthlyStats) -> float | None:
    if rule.type in _COUNT_ONLY_TYPES:
        if rule.unit != "count":
            return 0.0
        if rule.type == "late":
            return float(stats.late_count)
        if rule.type == "missing":
            return float(stats.missing)
        return float(stats.absenteeism)

    try:
        category = LeaveCategory(rule.type)
    except ValueError:
        return None
    categories = [category]
    if category == LeaveCategory.SICK:
        categories.append(LeaveCategory.SERIOUS_SICK)
    if rule.unit == "count":
        return float(sum(stats.leave_counts.get(c.value, 0) for c in categories))
    return sum(stats.leave_hours.get(c.value, 0.0) for c in categories)


def _fallback_eligibility(stats: EmployeeMonthlyStats, config: RuleConfig) -> bool:
    if stats.late_count > 0 or stats.missing > 0 or stats.absenteeism > 0:
        return False
    taken = {category for category, count in stats.leave_counts.items() if count > 0}
    if not taken:
        return True
    return config.full_attendance_allow_adjustment and taken == {LeaveCategory.COMP_TIME.value}


def is_full_attendance(stats: EmployeeMonthlyStats, config: RuleConfig) -> bool:
    """Eligibility from the month's final tallies, before the last-workday checks."""
    if not config.full_attendance_rules:
        return _fallback_eligibility(stats, config)

    for rule in config.full_attendance_rules:
        if not rule.enabled:
            continue
        actual = _rule_value(rule, stats)
        if actual is None:
            logger.warning(
                "full_attendance_rule_type_unknown",
                extra={"company_id": config.company_id, "rule_type": rule.type},
            )
            continue
        if actual > rule.threshold:
            return False
    return True


def _has_signed_off_duty(day: DailyAttendanceStatus) -> bool:
    return any(r.check_type == CheckType.OFF_DUTY and r.is_signed for r in day.records)


def apply_full_attendance_overrides(
    eligible: bool,
    days: Iterable[DailyAttendanceStatus],
    *,
    last_workday: date | None,
) -> bool:
    if not eligible or last_workday is None:
        return eligible

    by_date = {day.work_date: day for day in days if day.records}
    last_day = by_date.get(last_workday)
    if last_day is None or not _has_signed_off_duty(last_day):
        return False

    # An employee whose records stop before the last workday is treated as
    # having left mid-month unless an approval bridges the remaining days.
    last_punch_day = max(by_date)
    if last_punch_day < last_workday:
        bridged = any(
            day.proc_inst_ids
            for work_date, day in by_date.items()
            if last_punch_day < work_date <= last_workday
        )
        if not bridged:
            return False
    return True


def full_attendance_bonus(eligible: bool, config: RuleConfig) -> float:
    if not eligible or not config.full_attendance_enabled:
        return 0.0
    return max(0.0, config.full_attendance_bonus)
