from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable

from attendance_engine.services.clock import at_clock, minutes_between, parse_clock

logger = logging.getLogger("attendance_engine.overtime")


@dataclass(frozen=True, slots=True)
class CheckpointOvertime:
    minutes: float
    count: int


@dataclass(frozen=True, slots=True)
class OvertimeResult:
    total_minutes: float = 0.0
    checkpoints: dict[str, CheckpointOvertime] = field(default_factory=dict)


def checkpoint_key(hour: int, minute: int) -> str:
    return f"{hour:02d}_{minute:02d}"


def checkpoint_instant(work_date: date, hour: int, minute: int) -> datetime:
    # Midnight checkpoints always refer to the end of the work day.
    if hour in (0, 24):
        return at_clock(work_date, 24, minute)
    return at_clock(work_date, hour, minute)


def calculate_overtime(
    off_duty_time: datetime | None,
    work_date: date,
    checkpoints: Iterable[str],
) -> OvertimeResult:
    """Credit minutes past each checkpoint independently.

    Every checkpoint the off-duty punch reaches gets its own elapsed minutes
    (two decimals) and a count of one; the total adds the same minutes once
    per credited checkpoint.
    """
    if off_duty_time is None:
        return OvertimeResult()

    credited: dict[str, CheckpointOvertime] = {}
    total = 0.0
    for raw in checkpoints:
        parsed = parse_clock(raw)
        if parsed is None:
            logger.warning("overtime_checkpoint_unparsable", extra={"checkpoint": raw})
            continue
        hour, minute = parsed
        instant = checkpoint_instant(work_date, hour, minute)
        if off_duty_time < instant:
            continue
        minutes = round(minutes_between(instant, off_duty_time), 2)
        key = checkpoint_key(hour, minute)
        previous = credited.get(key)
        if previous is not None:
            minutes = round(previous.minutes + minutes, 2)
            credited[key] = CheckpointOvertime(minutes=minutes, count=previous.count + 1)
        else:
            credited[key] = CheckpointOvertime(minutes=minutes, count=1)
        total += minutes_between(instant, off_duty_time)

    return OvertimeResult(total_minutes=round(total, 2), checkpoints=credited)
