from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from typing import Iterable

from attendance_engine.domain import (
    CheckType,
    DailyAttendanceStatus,
    DailyStatus,
    PunchRecord,
    SourceType,
    TimeResult,
)


def _sort_key(record: PunchRecord) -> tuple[int, datetime]:
    moment = record.user_check_time or record.base_check_time or datetime.combine(record.work_date, datetime.min.time())
    return (0 if record.check_type == CheckType.ON_DUTY else 1, moment)


def effective_on_duty(records: Iterable[PunchRecord]) -> PunchRecord | None:
    signed = [r for r in records if r.check_type == CheckType.ON_DUTY and r.is_signed]
    if not signed:
        return None
    return min(signed, key=lambda r: r.user_check_time)


def effective_off_duty(records: Iterable[PunchRecord]) -> PunchRecord | None:
    signed = [r for r in records if r.check_type == CheckType.OFF_DUTY and r.is_signed]
    if not signed:
        return None
    return max(signed, key=lambda r: r.user_check_time)


def _status_for(records: tuple[PunchRecord, ...], on_duty: PunchRecord | None, off_duty: PunchRecord | None) -> DailyStatus:
    if not records:
        return DailyStatus.NO_RECORD
    if on_duty is None or off_duty is None:
        return DailyStatus.INCOMPLETE
    if any(r.time_result != TimeResult.NORMAL for r in (on_duty, off_duty)):
        return DailyStatus.ABNORMAL
    return DailyStatus.NORMAL


def build_daily_status(work_date: date, records: Iterable[PunchRecord]) -> DailyAttendanceStatus:
    ordered = tuple(sorted(records, key=_sort_key))
    on_duty = effective_on_duty(ordered)
    off_duty = effective_off_duty(ordered)
    status = _status_for(ordered, on_duty, off_duty)
    return DailyAttendanceStatus(
        work_date=work_date,
        status=status,
        records=ordered,
        on_duty_time=on_duty.user_check_time if on_duty else None,
        off_duty_time=off_duty.user_check_time if off_duty else None,
        has_abnormality=status != DailyStatus.NORMAL,
        has_on_duty_approval=any(
            r.check_type == CheckType.ON_DUTY and r.source_type == SourceType.APPROVAL for r in ordered
        ),
        has_off_duty_approval=any(
            r.check_type == CheckType.OFF_DUTY and r.source_type == SourceType.APPROVAL for r in ordered
        ),
    )


def build_daily_statuses(punches: Iterable[PunchRecord]) -> list[DailyAttendanceStatus]:
    """Group punches by work date, ascending, one status per day that has records."""
    by_day: dict[date, list[PunchRecord]] = defaultdict(list)
    for punch in punches:
        by_day[punch.work_date].append(punch)
    return [build_daily_status(day, by_day[day]) for day in sorted(by_day)]
