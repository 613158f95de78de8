"""Normalizes raw platform payloads into the engine's domain values.

Every alias and wire format is resolved here once, so the calculation
modules only ever see ``PunchRecord``, ``LeaveApproval`` and
``HolidayCalendar`` values with naive local wall-clock datetimes.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from typing import Any, Mapping, Sequence
from zoneinfo import ZoneInfo

from attendance_engine.domain import (
    CheckType,
    DurationUnit,
    EmployeeMonth,
    LeaveApproval,
    PunchRecord,
    SourceType,
    TimeResult,
)
from attendance_engine.schemas import EmployeeMonthIn, RawApprovalIn, RawPunchIn
from attendance_engine.services.holiday_calendar import HolidayCalendar

logger = logging.getLogger("attendance_engine.ingestion")

_SOURCE_TYPES = {
    "APPROVE": SourceType.APPROVAL,
    "APPROVAL": SourceType.APPROVAL,
    "MANUAL_EDIT": SourceType.MANUAL,
    "MANUAL": SourceType.MANUAL,
    "USER": SourceType.MANUAL,
}


def resolve_timezone(name: str | None) -> ZoneInfo:
    raw_name = (name or "").strip() or "Asia/Shanghai"
    try:
        return ZoneInfo(raw_name)
    except Exception:
        logger.warning("attendance_timezone_invalid", extra={"timezone": raw_name})
        return ZoneInfo("Asia/Shanghai")


def to_local_datetime(value: Any, tz: ZoneInfo) -> datetime | None:
    """Epoch milliseconds, ISO text or datetimes to a naive local datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value
        return value.astimezone(tz).replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.warning("datetime_unparsable", extra={"value": str(value)})
            return None
        return moment.astimezone(tz).replace(tzinfo=None)

    raw = str(value).strip()
    if raw.isdigit():
        return to_local_datetime(int(raw), tz)
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00").replace("/", "-"))
    except ValueError:
        logger.warning("datetime_unparsable", extra={"value": raw})
        return None
    return to_local_datetime(parsed, tz)


def to_local_date(value: Any, tz: ZoneInfo) -> date | None:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    moment = to_local_datetime(value, tz)
    return moment.date() if moment is not None else None


def _parse_check_type(value: str) -> CheckType | None:
    normalized = (value or "").strip().lower().replace("_", "")
    if normalized == "onduty":
        return CheckType.ON_DUTY
    if normalized == "offduty":
        return CheckType.OFF_DUTY
    return None


def _parse_time_result(value: str | None) -> TimeResult:
    try:
        return TimeResult(value or "Normal")
    except ValueError:
        logger.warning("time_result_unknown", extra={"time_result": value})
        return TimeResult.NORMAL


def _parse_source_type(value: str | None) -> SourceType:
    if not value:
        return SourceType.MACHINE
    return _SOURCE_TYPES.get(value.strip().upper(), SourceType.MACHINE)


def punch_from_raw(raw: RawPunchIn | Mapping[str, Any], *, tz: ZoneInfo) -> PunchRecord | None:
    punch = raw if isinstance(raw, RawPunchIn) else RawPunchIn.model_validate(raw)
    check_type = _parse_check_type(punch.check_type)
    work_date = to_local_date(punch.work_date, tz)
    if check_type is None or work_date is None:
        logger.warning(
            "punch_skipped",
            extra={"check_type": punch.check_type, "work_date": str(punch.work_date)},
        )
        return None

    return PunchRecord(
        check_type=check_type,
        work_date=work_date,
        user_check_time=to_local_datetime(punch.user_check_time, tz),
        base_check_time=to_local_datetime(punch.base_check_time, tz),
        time_result=_parse_time_result(punch.time_result),
        source_type=_parse_source_type(punch.source_type),
        proc_inst_id=punch.proc_inst_id or None,
        location_result=punch.location_result or "Normal",
    )


def _parse_duration(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        duration = float(value)
    except (TypeError, ValueError):
        logger.warning("leave_duration_unparsable", extra={"value": str(value)})
        return 0.0
    return max(0.0, duration)


def _parse_duration_unit(value: str | None) -> DurationUnit:
    text = (value or "").lower()
    if "day" in text or "天" in text:
        return DurationUnit.DAY
    return DurationUnit.HOUR


def approval_from_raw(
    proc_inst_id: str,
    raw: RawApprovalIn | Mapping[str, Any],
    *,
    tz: ZoneInfo,
) -> LeaveApproval:
    approval = raw if isinstance(raw, RawApprovalIn) else RawApprovalIn.model_validate(raw)
    form = RawApprovalIn.model_validate(approval.form_values) if approval.form_values else RawApprovalIn()

    leave_type = form.leave_type or approval.leave_type or approval.biz_type or form.biz_type or ""
    start = to_local_datetime(form.start if form.start is not None else approval.start, tz)
    end = to_local_datetime(form.end if form.end is not None else approval.end, tz)
    if start is not None and end is not None and end < start:
        logger.warning("leave_range_inverted", extra={"proc_inst_id": proc_inst_id})
        start, end = None, None

    return LeaveApproval(
        proc_inst_id=approval.proc_inst_id or proc_inst_id,
        leave_type=leave_type.strip(),
        start=start,
        end=end,
        duration=_parse_duration(form.duration if form.duration is not None else approval.duration),
        duration_unit=_parse_duration_unit(form.duration_unit or approval.duration_unit),
    )


def _holiday_flag(value: Any) -> bool | None:
    if isinstance(value, Mapping):
        value = value.get("holiday")
    if isinstance(value, bool):
        return value
    return None


def holiday_calendar_from_raw(raw: Mapping[str, Any] | None) -> HolidayCalendar:
    """Accepts ``{"MM-DD": bool}`` or ``{"MM-DD": {"holiday": bool}}``, optionally nested under ``holiday``."""
    if not raw:
        return HolidayCalendar()
    source = raw.get("holiday") if isinstance(raw.get("holiday"), Mapping) else raw

    entries: dict[str, bool] = {}
    for key, value in source.items():
        flag = _holiday_flag(value)
        if flag is None:
            logger.warning("holiday_entry_skipped", extra={"key": str(key)})
            continue
        day_key = str(key)[-5:]
        if len(day_key) != 5 or day_key[2] != "-":
            logger.warning("holiday_entry_skipped", extra={"key": str(key)})
            continue
        entries[day_key] = flag
    return HolidayCalendar(entries=entries)


def employee_month_from_raw(raw: EmployeeMonthIn | Mapping[str, Any], *, tz: ZoneInfo) -> EmployeeMonth:
    employee = raw if isinstance(raw, EmployeeMonthIn) else EmployeeMonthIn.model_validate(raw)
    punches = tuple(
        punch for punch in (punch_from_raw(item, tz=tz) for item in employee.punches) if punch is not None
    )
    approvals = {
        proc_inst_id: approval_from_raw(proc_inst_id, item, tz=tz)
        for proc_inst_id, item in employee.approvals.items()
    }
    return EmployeeMonth(
        user_id=employee.user_id,
        punches=punches,
        approvals=approvals,
        name=employee.name,
        hired_on=to_local_date(employee.hired_on, tz),
    )


def employee_months_from_raw(
    items: Sequence[EmployeeMonthIn | Mapping[str, Any]],
    *,
    tz: ZoneInfo,
) -> list[EmployeeMonth]:
    """Normalize a batch, keeping order; an employee that fails is marked ``ingestion_failed``."""
    employees: list[EmployeeMonth] = []
    for item in items:
        try:
            employees.append(employee_month_from_raw(item, tz=tz))
        except Exception:
            user_id, name = _employee_identity(item)
            logger.exception("employee_ingestion_failed", extra={"user_id": user_id})
            employees.append(EmployeeMonth(user_id=user_id, punches=(), name=name, ingestion_failed=True))
    return employees


def _employee_identity(item: EmployeeMonthIn | Mapping[str, Any]) -> tuple[str, str | None]:
    if isinstance(item, EmployeeMonthIn):
        return item.user_id, item.name
    user_id = item.get("userid") or item.get("userId") or item.get("user_id") or ""
    return str(user_id), item.get("name")
