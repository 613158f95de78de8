from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextvars import copy_context
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Sequence

from attendance_engine.domain import (
    ATTENDANCE_REDUCING_CATEGORIES,
    LEAVE_TYPE_CATEGORIES,
    CheckType,
    DailyAttendanceStatus,
    EmployeeMonth,
    LeaveApproval,
    LeaveCategory,
    PunchRecord,
    SourceType,
    TimeResult,
)
from attendance_engine.logging_utils import bind_log_context
from attendance_engine.services.clock import at_time
from attendance_engine.services.daily_status import build_daily_statuses, effective_off_duty, effective_on_duty
from attendance_engine.services.exemption import apply_exemption
from attendance_engine.services.full_attendance import (
    apply_full_attendance_overrides,
    full_attendance_bonus,
    is_full_attendance,
)
from attendance_engine.services.holiday_calendar import HolidayCalendar
from attendance_engine.services.lateness import is_after_grace_checkout, late_minutes
from attendance_engine.services.leave_coverage import (
    WorkWindow,
    covering_approval,
    daily_leave_hours,
    hours_on_date,
    is_covered,
)
from attendance_engine.services.overtime import calculate_overtime
from attendance_engine.services.penalty import performance_penalty
from attendance_engine.services.rule_config import RuleConfig

logger = logging.getLogger("attendance_engine.monthly_stats")

FLAG_APPROVAL_NOT_FOUND = "APPROVAL_NOT_FOUND"
FLAG_EVALUATION_FAILED = "EVALUATION_FAILED"

# Missing on-duty punches only count when scheduled in the morning.
MORNING_SHIFT_LAST_HOUR = 10


def _empty_counts() -> dict[str, int]:
    return {category.value: 0 for category in LeaveCategory}


def _empty_hours() -> dict[str, float]:
    return {category.value: 0.0 for category in LeaveCategory}


@dataclass
class CheckpointTally:
    minutes: float = 0.0
    count: int = 0


@dataclass
class EmployeeMonthlyStats:
    """Tallies for one employee and month; created empty, folded per day, finalized once."""

    user_id: str
    year: int
    month: int
    name: str | None = None

    leave_counts: dict[str, int] = field(default_factory=_empty_counts)
    leave_hours: dict[str, float] = field(default_factory=_empty_hours)

    late_count: int = 0
    late_minutes: int = 0
    exempted_late_minutes: int = 0
    exemption_used: int = 0
    missing: int = 0
    absenteeism: int = 0
    performance_penalty: float = 0.0

    overtime_total_minutes: float = 0.0
    overtime_checkpoints: dict[str, CheckpointTally] = field(default_factory=dict)
    # category -> display label, e.g. "病假<=24小时 16小时"
    leave_display: dict[str, str] = field(default_factory=dict)

    should_attendance_days: int = 0
    actual_attendance_days: int = 0
    is_full_attendance: bool = False
    full_attendance_bonus: float = 0.0
    flags: list[str] = field(default_factory=list)

    def flag(self, name: str) -> None:
        if name not in self.flags:
            self.flags.append(name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "year": self.year,
            "month": self.month,
            "leave_counts": dict(self.leave_counts),
            "leave_hours": {key: round(value, 2) for key, value in self.leave_hours.items()},
            "late_count": self.late_count,
            "late_minutes": self.late_minutes,
            "exempted_late_minutes": self.exempted_late_minutes,
            "exemption_used": self.exemption_used,
            "missing": self.missing,
            "absenteeism": self.absenteeism,
            "performance_penalty": self.performance_penalty,
            "overtime_total_minutes": self.overtime_total_minutes,
            "overtime_checkpoints": {
                key: {"minutes": tally.minutes, "count": tally.count}
                for key, tally in self.overtime_checkpoints.items()
            },
            "leave_display": dict(self.leave_display),
            "should_attendance_days": self.should_attendance_days,
            "actual_attendance_days": self.actual_attendance_days,
            "is_full_attendance": self.is_full_attendance,
            "full_attendance_bonus": self.full_attendance_bonus,
            "flags": list(self.flags),
        }


@dataclass(frozen=True, slots=True)
class EvaluationContext:
    year: int
    month: int
    as_of: date

    def contains(self, day: date) -> bool:
        return day.year == self.year and day.month == self.month


@dataclass(frozen=True, slots=True)
class FoldCarry:
    """State that crosses day boundaries within one employee's month."""

    exemption_used: int = 0
    last_signed_off_duty: PunchRecord | None = None
    # Day of the latest approval-sourced off-duty at or after the grace checkout.
    approval_grace_day: date | None = None


def work_window(config: RuleConfig) -> WorkWindow:
    return WorkWindow(
        work_start=config.work_start_time,
        work_end=config.work_end_time,
        lunch_start=config.lunch_start_time,
        lunch_end=config.lunch_end_time,
    )


def sick_split_hours(config: RuleConfig) -> float:
    rule = config.leave_display_rule("病假")
    if rule is not None and rule.short_term_hours > 0:
        return rule.short_term_hours
    return 3 * config.daily_work_hours


def format_leave_display(leave_type: str, hours: float, config: RuleConfig) -> str:
    shown = f"{round(hours, 2):g}"
    rule = config.leave_display_rule(leave_type)
    if rule is None:
        return f"{leave_type} {shown}小时"
    label = rule.short_term_label if hours <= rule.short_term_hours else rule.long_term_label
    return f"{label} {shown}小时"


def _leave_type_name(category: LeaveCategory) -> str:
    if category == LeaveCategory.SERIOUS_SICK:
        return "病假"
    for name, mapped in LEAVE_TYPE_CATEGORIES.items():
        if mapped == category:
            return name
    return category.value


def should_attendance_days(config: RuleConfig, *, total_workdays: int, holidays_count: int) -> int:
    rules = config.attendance_days_rules
    if not rules.enabled:
        return total_workdays
    method = rules.should_attendance_calc_method
    if method == "fixed":
        if rules.fixed_should_attendance_days is not None and rules.fixed_should_attendance_days > 0:
            return rules.fixed_should_attendance_days
        return total_workdays
    if method == "workdays" and rules.include_holidays_in_should:
        return total_workdays + holidays_count
    return total_workdays


def actual_attendance_days(stats: EmployeeMonthlyStats, *, workdays_elapsed: int, daily_hours: float) -> int:
    """Elapsed workdays minus leave days, each leave category rounded up on its own."""
    if daily_hours <= 0:
        return max(0, workdays_elapsed)
    leave_days = 0
    for category in ATTENDANCE_REDUCING_CATEGORIES:
        hours = round(stats.leave_hours.get(category.value, 0.0), 2)
        if hours > 0:
            leave_days += math.ceil(hours / daily_hours)
    return max(0, workdays_elapsed - leave_days)


def _day_approvals(
    day: DailyAttendanceStatus,
    approvals: dict[str, LeaveApproval],
    stats: EmployeeMonthlyStats,
) -> list[LeaveApproval]:
    resolved: list[LeaveApproval] = []
    for proc_inst_id in day.proc_inst_ids:
        approval = approvals.get(proc_inst_id)
        if approval is None:
            logger.warning(
                "leave_approval_not_found",
                extra={"user_id": stats.user_id, "proc_inst_id": proc_inst_id, "work_date": day.work_date.isoformat()},
            )
            stats.flag(FLAG_APPROVAL_NOT_FOUND)
            continue
        resolved.append(approval)
    return resolved


def _tally_leave(
    stats: EmployeeMonthlyStats,
    day: date,
    approvals: list[LeaveApproval],
    *,
    config: RuleConfig,
    window: WorkWindow,
) -> None:
    for approval in approvals:
        category = approval.category
        if category is None:
            logger.warning(
                "leave_type_unknown",
                extra={"user_id": stats.user_id, "leave_type": approval.leave_type, "proc_inst_id": approval.proc_inst_id},
            )
            continue
        if category == LeaveCategory.SICK and approval.total_hours(config.daily_work_hours) > sick_split_hours(config):
            category = LeaveCategory.SERIOUS_SICK
        hours = hours_on_date(approval, day, config.daily_work_hours, window)
        stats.leave_counts[category.value] += 1
        stats.leave_hours[category.value] = round(stats.leave_hours[category.value] + hours, 2)


def _missing_sides(day: DailyAttendanceStatus) -> tuple[bool, bool]:
    missing_on = any(
        r.check_type == CheckType.ON_DUTY
        and r.time_result == TimeResult.NOT_SIGNED
        and (r.base_check_time is None or r.base_check_time.hour <= MORNING_SHIFT_LAST_HOUR)
        for r in day.records
    )
    missing_off = any(
        r.check_type == CheckType.OFF_DUTY and r.time_result == TimeResult.NOT_SIGNED for r in day.records
    )
    return missing_on, missing_off


def fold_day(
    carry: FoldCarry,
    stats: EmployeeMonthlyStats,
    day: DailyAttendanceStatus,
    *,
    employee: EmployeeMonth,
    config: RuleConfig,
    calendar: HolidayCalendar,
    context: EvaluationContext,
) -> FoldCarry:
    """Fold one day into ``stats`` and return the carry for the next day."""
    work_date = day.work_date
    window = work_window(config)
    is_workday = calendar.is_workday(work_date)

    approvals = _day_approvals(day, employee.approvals, stats)
    _tally_leave(stats, work_date, approvals, config=config, window=window)
    full_day_leave = daily_leave_hours(approvals, work_date, config.daily_work_hours, window) >= config.daily_work_hours

    exemption_used = carry.exemption_used
    on_duty = effective_on_duty(day.records)
    if (
        on_duty is not None
        and on_duty.user_check_time is not None
        and on_duty.time_result == TimeResult.LATE
        and not full_day_leave
    ):
        minutes = late_minutes(
            on_duty,
            config=config,
            leave_detail=covering_approval(approvals, on_duty.user_check_time),
            previous_off_duty=carry.last_signed_off_duty,
            yesterday_approval_after_grace=carry.approval_grace_day == work_date - timedelta(days=1),
            is_first_workday_of_month=calendar.first_workday(work_date.year, work_date.month) == work_date,
            is_first_day_on_job=employee.hired_on == work_date,
        )
        if minutes > 0:
            stats.late_count += 1
            stats.late_minutes += minutes
            exemption = apply_exemption(minutes, exemption_used, is_workday=is_workday, config=config)
            stats.exempted_late_minutes += exemption.exempted_minutes
            exemption_used = exemption.exemption_used
            stats.exemption_used = exemption_used

    missing_on, missing_off = _missing_sides(day)
    on_covered = missing_on and is_covered(at_time(work_date, config.work_start_time), approvals).covered
    off_covered = missing_off and is_covered(at_time(work_date, config.work_end_time), approvals).covered
    uncovered_on = missing_on and not on_covered
    uncovered_off = missing_off and not off_covered

    if uncovered_on and uncovered_off and is_workday and not full_day_leave:
        stats.absenteeism += 1
    if not full_day_leave and work_date != context.as_of:
        stats.missing += int(uncovered_on) + int(uncovered_off)

    off_duty = effective_off_duty(day.records)
    if off_duty is not None:
        overtime = calculate_overtime(off_duty.user_check_time, work_date, config.overtime_checkpoints)
        stats.overtime_total_minutes = round(stats.overtime_total_minutes + overtime.total_minutes, 2)
        for key, credited in overtime.checkpoints.items():
            tally = stats.overtime_checkpoints.setdefault(key, CheckpointTally())
            tally.minutes = round(tally.minutes + credited.minutes, 2)
            tally.count += credited.count

    approval_grace_day = carry.approval_grace_day
    if any(
        r.check_type == CheckType.OFF_DUTY and r.source_type == SourceType.APPROVAL and is_after_grace_checkout(r, config)
        for r in day.records
    ):
        approval_grace_day = work_date

    return FoldCarry(
        exemption_used=exemption_used,
        last_signed_off_duty=off_duty or carry.last_signed_off_duty,
        approval_grace_day=approval_grace_day,
    )


def evaluate_employee_month(
    employee: EmployeeMonth,
    *,
    config: RuleConfig,
    calendar: HolidayCalendar,
    context: EvaluationContext,
) -> EmployeeMonthlyStats:
    calendar = calendar.with_overrides(config.swap_days)
    stats = EmployeeMonthlyStats(user_id=employee.user_id, year=context.year, month=context.month, name=employee.name)

    summary = calendar.workday_summary(
        context.year,
        context.month,
        as_of=context.as_of,
        hired_on=employee.hired_on,
    )
    stats.should_attendance_days = should_attendance_days(
        config,
        total_workdays=summary.total_workdays,
        holidays_count=summary.holidays_count,
    )

    days = build_daily_statuses(p for p in employee.punches if context.contains(p.work_date))
    carry = FoldCarry()
    for day in days:
        carry = fold_day(carry, stats, day, employee=employee, config=config, calendar=calendar, context=context)

    stats.actual_attendance_days = actual_attendance_days(
        stats,
        workdays_elapsed=summary.workdays_elapsed,
        daily_hours=config.daily_work_hours,
    )
    stats.performance_penalty = performance_penalty(stats.exempted_late_minutes, config)
    stats.leave_display = {
        key: format_leave_display(_leave_type_name(LeaveCategory(key)), hours, config)
        for key, hours in stats.leave_hours.items()
        if hours > 0
    }

    eligible = is_full_attendance(stats, config)
    eligible = apply_full_attendance_overrides(
        eligible,
        days,
        last_workday=calendar.last_workday(context.year, context.month),
    )
    stats.is_full_attendance = eligible
    stats.full_attendance_bonus = full_attendance_bonus(eligible, config)
    return stats


def _failed_stats(employee: EmployeeMonth, context: EvaluationContext) -> EmployeeMonthlyStats:
    stats = EmployeeMonthlyStats(user_id=employee.user_id, year=context.year, month=context.month, name=employee.name)
    stats.flag(FLAG_EVALUATION_FAILED)
    return stats


def _evaluate_in_log_context(employee: EmployeeMonth, **kwargs: Any) -> EmployeeMonthlyStats:
    bind_log_context(user_id=employee.user_id)
    return evaluate_employee_month(employee, **kwargs)


def evaluate_company_month(
    employees: Sequence[EmployeeMonth],
    *,
    config: RuleConfig,
    calendar: HolidayCalendar,
    context: EvaluationContext,
    max_workers: int = 8,
) -> list[EmployeeMonthlyStats]:
    """Evaluate every employee independently; results keep the input order.

    An employee whose ingestion or evaluation failed gets empty stats flagged
    ``EVALUATION_FAILED`` and the batch carries on.
    """
    if not employees:
        return []

    results: list[EmployeeMonthlyStats | None] = [None] * len(employees)
    for index, employee in enumerate(employees):
        if employee.ingestion_failed:
            results[index] = _failed_stats(employee, context)

    workers = max(1, min(max_workers, len(employees)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_index = {
            executor.submit(
                copy_context().run,
                _evaluate_in_log_context,
                employee,
                config=config,
                calendar=calendar,
                context=context,
            ): index
            for index, employee in enumerate(employees)
            if not employee.ingestion_failed
        }
        for future in as_completed(future_to_index):
            index = future_to_index[future]
            employee = employees[index]
            try:
                results[index] = future.result()
            except Exception:
                logger.exception(
                    "employee_evaluation_failed",
                    extra={"company_id": config.company_id, "user_id": employee.user_id},
                )
                results[index] = _failed_stats(employee, context)

    logger.info(
        "company_month_evaluated",
        extra={
            "company_id": config.company_id,
            "year": context.year,
            "month": context.month,
            "employee_count": len(employees),
        },
    )
    return [stats for stats in results if stats is not None]
