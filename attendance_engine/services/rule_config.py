from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, time
from typing import Any, Literal

from attendance_engine.services.clock import clock_to_time, normalize_clock

logger = logging.getLogger("attendance_engine.rule_config")

PenaltyMode = Literal["unlimited", "capped"]
CappedPenaltyType = Literal["ladder", "fixedCap"]
UnlimitedCalcType = Literal["perMinute", "fixed"]
ShouldAttendanceMethod = Literal["workdays", "fixed", "custom"]
RuleUnit = Literal["count", "hours"]

UNBOUNDED_PENALTY_MAX_MINUTES = 999
FULL_ATTENDANCE_RULE_TYPES = (
    "late",
    "missing",
    "absenteeism",
    "annual",
    "sick",
    "personal",
    "bereavement",
    "paternity",
    "maternity",
    "parental",
    "marriage",
    "trip",
    "compTime",
)


@dataclass(frozen=True, slots=True)
class LateRule:
    previous_day_checkout_time: str
    late_threshold_time: str
    description: str = ""


@dataclass(frozen=True, slots=True)
class PenaltyRule:
    min_minutes: int
    max_minutes: int
    penalty: float
    description: str = ""

    def matches(self, minutes: float) -> bool:
        if minutes < self.min_minutes:
            return False
        return self.max_minutes == UNBOUNDED_PENALTY_MAX_MINUTES or minutes < self.max_minutes


@dataclass(frozen=True, slots=True)
class FullAttendanceRule:
    type: str
    enabled: bool
    threshold: float
    unit: RuleUnit
    display_name: str = ""


@dataclass(frozen=True, slots=True)
class LeaveDisplayRule:
    leave_type: str
    short_term_hours: float
    short_term_label: str
    long_term_label: str


@dataclass(frozen=True, slots=True)
class AttendanceDaysRules:
    enabled: bool = True
    should_attendance_calc_method: ShouldAttendanceMethod = "workdays"
    fixed_should_attendance_days: int | None = None
    include_holidays_in_should: bool = True


@dataclass(frozen=True, slots=True)
class RuleConfig:
    """Resolved, immutable rule snapshot for one company and one evaluation run."""

    company_id: str
    version: int = 1

    work_start_time: time = time(9, 0)
    work_end_time: time = time(18, 30)
    lunch_start_time: time = time(12, 0)
    lunch_end_time: time = time(13, 30)
    daily_work_hours: float = 8.0

    late_rules: tuple[LateRule, ...] = ()
    late_exemption_count: int = 3
    late_exemption_minutes: int = 15
    late_exemption_enabled: bool = True

    # Previous-day checkout at or after this clock grants the grace threshold next morning.
    late_grace_checkout_time: time = time(20, 30)
    late_grace_threshold_time: time = time(9, 30)

    performance_penalty_enabled: bool = True
    performance_penalty_mode: PenaltyMode = "capped"
    capped_penalty_type: CappedPenaltyType = "ladder"
    capped_penalty_per_minute: float = 5.0
    unlimited_penalty_calc_type: UnlimitedCalcType = "perMinute"
    unlimited_penalty_per_minute: float = 5.0
    unlimited_penalty_fixed_amount: float = 50.0
    max_performance_penalty: float = 250.0
    performance_penalty_rules: tuple[PenaltyRule, ...] = ()

    full_attendance_enabled: bool = True
    full_attendance_bonus: float = 200.0
    full_attendance_allow_adjustment: bool = True
    full_attendance_rules: tuple[FullAttendanceRule, ...] = ()

    leave_display_rules: tuple[LeaveDisplayRule, ...] = ()
    attendance_days_rules: AttendanceDaysRules = field(default_factory=AttendanceDaysRules)
    overtime_checkpoints: tuple[str, ...] = ("19:30", "20:30", "22:00", "24:00")
    # date -> True when the company works that day, False when it is off.
    swap_days: dict[date, bool] = field(default_factory=dict)

    def standard_work_hours(self) -> float:
        def _minutes(value: time) -> int:
            return value.hour * 60 + value.minute

        work_minutes = (_minutes(self.work_end_time) - _minutes(self.work_start_time)) - (
            _minutes(self.lunch_end_time) - _minutes(self.lunch_start_time)
        )
        return max(0, work_minutes) / 60

    def leave_display_rule(self, leave_type: str) -> LeaveDisplayRule | None:
        for rule in self.leave_display_rules:
            if rule.leave_type == leave_type:
                return rule
        return None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for key, value in list(payload.items()):
            if isinstance(value, time):
                payload[key] = value.strftime("%H:%M")
        payload["swap_days"] = {day.isoformat(): is_workday for day, is_workday in self.swap_days.items()}
        return payload


def default_late_rules() -> tuple[LateRule, ...]:
    return (
        LateRule("18:30", "09:01", "前一天18:30打卡，9:01算迟到"),
        LateRule("20:30", "09:31", "前一天20:30打卡，9:31算迟到"),
        LateRule("24:00", "13:31", "前一天24:00打卡，13:31算迟到"),
    )


def default_penalty_rules() -> tuple[PenaltyRule, ...]:
    return (
        PenaltyRule(0, 5, 50, "0-5分钟扣50元"),
        PenaltyRule(5, 15, 100, "5-15分钟扣100元"),
        PenaltyRule(15, 30, 150, "15-30分钟扣150元"),
        PenaltyRule(30, 45, 200, "30-45分钟扣200元"),
        PenaltyRule(45, UNBOUNDED_PENALTY_MAX_MINUTES, 250, "大于45分钟扣250元"),
    )


def default_full_attendance_rules() -> tuple[FullAttendanceRule, ...]:
    return (
        FullAttendanceRule("trip", False, 0, "hours", "出差"),
        FullAttendanceRule("compTime", False, 0, "hours", "调休"),
        FullAttendanceRule("late", True, 0, "count", "迟到"),
        FullAttendanceRule("missing", True, 0, "count", "缺卡"),
        FullAttendanceRule("absenteeism", True, 0, "count", "旷工"),
        FullAttendanceRule("annual", True, 0, "hours", "年假"),
        FullAttendanceRule("sick", True, 0, "hours", "病假"),
        FullAttendanceRule("personal", True, 0, "hours", "事假"),
        FullAttendanceRule("bereavement", True, 0, "hours", "丧假"),
        FullAttendanceRule("paternity", True, 0, "hours", "陪产假"),
        FullAttendanceRule("maternity", True, 0, "hours", "产假"),
        FullAttendanceRule("parental", True, 0, "hours", "育儿假"),
        FullAttendanceRule("marriage", True, 0, "hours", "婚假"),
    )


def default_sick_display_rule(daily_work_hours: float) -> LeaveDisplayRule:
    # Three working days of sick leave separate short-term from long-term.
    limit = round(3 * daily_work_hours, 2)
    label = f"{limit:g}"
    return LeaveDisplayRule("病假", limit, f"病假<={label}小时", f"病假>{label}小时")


def default_rule_config(company_id: str, *, daily_work_hours: float = 8.0) -> RuleConfig:
    return RuleConfig(
        company_id=company_id,
        daily_work_hours=daily_work_hours,
        late_rules=default_late_rules(),
        performance_penalty_rules=default_penalty_rules(),
        full_attendance_rules=default_full_attendance_rules(),
        leave_display_rules=(default_sick_display_rule(daily_work_hours),),
    )


def _clock_or_default(value: Any, default: time) -> time:
    if value is None:
        return default
    if isinstance(value, time):
        return value
    return clock_to_time(str(value), default)


def _clock_text(value: Any, default: str) -> str:
    if value is None:
        return default
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return normalize_clock(str(value)) or default


def _float_or(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _bool_or(value: Any, default: bool) -> bool:
    if value is None:
        return default
    return bool(value)


def _int_or(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _detail(row: Any, name: str) -> Any:
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def rule_config_from_rows(
    config_row: Any,
    detail_rows: list[Any],
    special_date_rows: list[Any] | None = None,
) -> RuleConfig:
    """Build a ``RuleConfig`` from the config row and its child rule rows.

    Child rows are grouped by ``rule_type`` and ordered by ``sort_order``.
    Missing groups fall back to the company defaults so that a partially
    filled configuration still evaluates the documented policy.
    """
    company_id = str(_detail(config_row, "company_id"))
    defaults = default_rule_config(company_id)

    grouped: dict[str, list[Any]] = {}
    for row in sorted(detail_rows, key=lambda item: (_detail(item, "sort_order") or 0, _detail(item, "id") or 0)):
        grouped.setdefault(str(_detail(row, "rule_type")), []).append(row)

    late_rules = tuple(
        LateRule(
            previous_day_checkout_time=_clock_text(_detail(row, "time_start"), "18:00"),
            late_threshold_time=_clock_text(_detail(row, "time_end"), "09:01"),
            description=_detail(row, "description") or "",
        )
        for row in grouped.get("late", [])
    )
    penalty_rules = tuple(
        PenaltyRule(
            min_minutes=int(_detail(row, "min_value") or 0),
            max_minutes=int(
                _detail(row, "max_value")
                if _detail(row, "max_value") is not None
                else UNBOUNDED_PENALTY_MAX_MINUTES
            ),
            penalty=_float_or(_detail(row, "amount"), 0.0),
            description=_detail(row, "description") or "",
        )
        for row in grouped.get("penalty", [])
    )
    full_attendance_rules = tuple(
        FullAttendanceRule(
            type=_detail(row, "rule_key") or "personal",
            enabled=_bool_or(_detail(row, "enabled"), True),
            threshold=_float_or(_detail(row, "threshold_hours"), 0.0),
            unit=_detail(row, "unit") or "count",
            display_name=_detail(row, "rule_name") or "",
        )
        for row in grouped.get("full_attend", [])
    )
    leave_display_rules = tuple(
        LeaveDisplayRule(
            leave_type=_detail(row, "rule_key") or "",
            short_term_hours=_float_or(_detail(row, "threshold_hours"), 24.0),
            short_term_label=_detail(row, "label_short") or "",
            long_term_label=_detail(row, "label_long") or "",
        )
        for row in grouped.get("leave_display", [])
    )

    grace_checkout = defaults.late_grace_checkout_time
    grace_threshold = defaults.late_grace_threshold_time
    cross_day_rows = grouped.get("cross_day", [])
    if cross_day_rows and _detail(config_row, "cross_day_enabled") is not False:
        grace_checkout = _clock_or_default(_detail(cross_day_rows[0], "time_start"), grace_checkout)
        grace_threshold = _clock_or_default(_detail(cross_day_rows[0], "time_end"), grace_threshold)

    checkpoints_raw = _detail(config_row, "overtime_checkpoints")
    if isinstance(checkpoints_raw, (list, tuple)):
        checkpoints = tuple(str(item) for item in checkpoints_raw)
    else:
        checkpoints = defaults.overtime_checkpoints

    swap_days: dict[date, bool] = {}
    for row in special_date_rows or []:
        if _detail(row, "date_type") not in (None, "swap"):
            continue
        target = _detail(row, "target_date")
        if isinstance(target, str):
            try:
                target = date.fromisoformat(target[:10])
            except ValueError:
                logger.warning("rule_swap_day_unparsable", extra={"company_id": company_id, "value": target})
                continue
        if isinstance(target, date):
            swap_days[target] = (_detail(row, "swap_type") or "workday") == "workday"

    daily_work_hours = _float_or(_detail(config_row, "daily_work_hours"), defaults.daily_work_hours)
    if daily_work_hours <= 0:
        daily_work_hours = defaults.daily_work_hours
    fixed_days = _detail(config_row, "fixed_should_days")

    return RuleConfig(
        company_id=company_id,
        version=_int_or(_detail(config_row, "version"), 1),
        work_start_time=_clock_or_default(_detail(config_row, "work_start_time"), defaults.work_start_time),
        work_end_time=_clock_or_default(_detail(config_row, "work_end_time"), defaults.work_end_time),
        lunch_start_time=_clock_or_default(_detail(config_row, "lunch_start_time"), defaults.lunch_start_time),
        lunch_end_time=_clock_or_default(_detail(config_row, "lunch_end_time"), defaults.lunch_end_time),
        daily_work_hours=daily_work_hours,
        late_rules=late_rules or defaults.late_rules,
        late_exemption_count=_int_or(_detail(config_row, "late_exemption_count"), defaults.late_exemption_count),
        late_exemption_minutes=_int_or(_detail(config_row, "late_exemption_minutes"), defaults.late_exemption_minutes),
        late_exemption_enabled=_bool_or(_detail(config_row, "late_exemption_enabled"), True),
        late_grace_checkout_time=grace_checkout,
        late_grace_threshold_time=grace_threshold,
        performance_penalty_enabled=_bool_or(_detail(config_row, "perf_penalty_enabled"), True),
        performance_penalty_mode=_detail(config_row, "perf_penalty_mode") or "capped",
        capped_penalty_type=_detail(config_row, "capped_penalty_type") or "ladder",
        capped_penalty_per_minute=_float_or(_detail(config_row, "capped_per_minute"), 5.0),
        unlimited_penalty_calc_type=_detail(config_row, "unlimited_calc_type") or "perMinute",
        unlimited_penalty_per_minute=_float_or(_detail(config_row, "unlimited_per_minute"), 5.0),
        unlimited_penalty_fixed_amount=_float_or(_detail(config_row, "unlimited_fixed_amount"), 50.0),
        max_performance_penalty=_float_or(_detail(config_row, "max_perf_penalty"), 250.0),
        performance_penalty_rules=penalty_rules or defaults.performance_penalty_rules,
        full_attendance_enabled=_bool_or(_detail(config_row, "full_attend_enabled"), True),
        full_attendance_bonus=_float_or(_detail(config_row, "full_attend_bonus"), defaults.full_attendance_bonus),
        full_attendance_allow_adjustment=_bool_or(_detail(config_row, "full_attend_allow_adj"), True),
        full_attendance_rules=full_attendance_rules or defaults.full_attendance_rules,
        leave_display_rules=leave_display_rules or (default_sick_display_rule(daily_work_hours),),
        attendance_days_rules=AttendanceDaysRules(
            enabled=_bool_or(_detail(config_row, "attend_days_enabled"), True),
            should_attendance_calc_method=_detail(config_row, "should_attend_calc") or "workdays",
            fixed_should_attendance_days=int(fixed_days) if fixed_days is not None else None,
            include_holidays_in_should=_bool_or(_detail(config_row, "include_holidays_in_should"), True),
        ),
        overtime_checkpoints=checkpoints,
        swap_days=swap_days,
    )
