from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime


class CheckType(str, enum.Enum):
    ON_DUTY = "OnDuty"
    OFF_DUTY = "OffDuty"


class TimeResult(str, enum.Enum):
    NORMAL = "Normal"
    LATE = "Late"
    EARLY = "Early"
    NOT_SIGNED = "NotSigned"
    SERIOUS_LATE = "SeriousLate"
    ABSENTEEISM = "Absenteeism"


class SourceType(str, enum.Enum):
    MACHINE = "machine"
    APPROVAL = "approval"
    MANUAL = "manual"


class DurationUnit(str, enum.Enum):
    HOUR = "hour"
    DAY = "day"


class DailyStatus(str, enum.Enum):
    NORMAL = "normal"
    ABNORMAL = "abnormal"
    INCOMPLETE = "incomplete"
    NO_RECORD = "noRecord"


class LeaveCategory(str, enum.Enum):
    ANNUAL = "annual"
    SICK = "sick"
    SERIOUS_SICK = "seriousSick"
    PERSONAL = "personal"
    TRIP = "trip"
    COMP_TIME = "compTime"
    BEREAVEMENT = "bereavement"
    PATERNITY = "paternity"
    MATERNITY = "maternity"
    PARENTAL = "parental"
    MARRIAGE = "marriage"


LEAVE_TYPE_CATEGORIES: dict[str, LeaveCategory] = {
    "年假": LeaveCategory.ANNUAL,
    "病假": LeaveCategory.SICK,
    "事假": LeaveCategory.PERSONAL,
    "出差": LeaveCategory.TRIP,
    "外出": LeaveCategory.TRIP,
    "调休": LeaveCategory.COMP_TIME,
    "丧假": LeaveCategory.BEREAVEMENT,
    "陪产假": LeaveCategory.PATERNITY,
    "产假": LeaveCategory.MATERNITY,
    "育儿假": LeaveCategory.PARENTAL,
    "婚假": LeaveCategory.MARRIAGE,
}

# Leave categories whose hours reduce the actual attendance day count.
ATTENDANCE_REDUCING_CATEGORIES: tuple[LeaveCategory, ...] = (
    LeaveCategory.SICK,
    LeaveCategory.SERIOUS_SICK,
    LeaveCategory.PERSONAL,
    LeaveCategory.ANNUAL,
    LeaveCategory.BEREAVEMENT,
    LeaveCategory.MATERNITY,
    LeaveCategory.PATERNITY,
    LeaveCategory.PARENTAL,
    LeaveCategory.MARRIAGE,
)


def leave_category_for(leave_type: str | None) -> LeaveCategory | None:
    if not leave_type:
        return None
    normalized = leave_type.strip()
    category = LEAVE_TYPE_CATEGORIES.get(normalized)
    if category is not None:
        return category
    try:
        return LeaveCategory(normalized)
    except ValueError:
        return None


@dataclass(frozen=True, slots=True)
class PunchRecord:
    check_type: CheckType
    work_date: date
    user_check_time: datetime | None
    base_check_time: datetime | None
    time_result: TimeResult
    source_type: SourceType = SourceType.MACHINE
    proc_inst_id: str | None = None
    location_result: str = "Normal"

    @property
    def is_signed(self) -> bool:
        return self.user_check_time is not None and self.time_result != TimeResult.NOT_SIGNED


@dataclass(frozen=True, slots=True)
class LeaveApproval:
    proc_inst_id: str
    leave_type: str
    start: datetime | None
    end: datetime | None
    duration: float
    duration_unit: DurationUnit

    @property
    def category(self) -> LeaveCategory | None:
        return leave_category_for(self.leave_type)

    def total_hours(self, daily_hours: float) -> float:
        if self.duration <= 0:
            return 0.0
        if self.duration_unit == DurationUnit.DAY:
            return self.duration * daily_hours
        return self.duration


@dataclass(frozen=True, slots=True)
class DailyAttendanceStatus:
    work_date: date
    status: DailyStatus
    records: tuple[PunchRecord, ...]
    on_duty_time: datetime | None
    off_duty_time: datetime | None
    has_abnormality: bool
    has_on_duty_approval: bool = False
    has_off_duty_approval: bool = False

    @property
    def proc_inst_ids(self) -> list[str]:
        seen: list[str] = []
        for record in self.records:
            if record.proc_inst_id and record.proc_inst_id not in seen:
                seen.append(record.proc_inst_id)
        return seen


@dataclass(frozen=True, slots=True)
class EmployeeMonth:
    """One employee's already-fetched inputs for a month."""

    user_id: str
    punches: tuple[PunchRecord, ...]
    approvals: dict[str, LeaveApproval] = field(default_factory=dict)
    name: str | None = None
    hired_on: date | None = None
    ingestion_failed: bool = False
