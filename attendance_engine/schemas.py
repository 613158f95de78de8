from datetime import date, datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from attendance_engine.services.clock import normalize_clock


def _clock_field(value: Any) -> Any:
    if value is None:
        return value
    normalized = normalize_clock(str(value))
    if normalized is None:
        raise ValueError(f"Invalid clock value: {value}")
    return normalized


class RawPunchIn(BaseModel):
    """A punch as delivered by the workforce platform, field names as sent."""

    check_type: str = Field(validation_alias=AliasChoices("checkType", "check_type"))
    work_date: Any = Field(validation_alias=AliasChoices("workDate", "work_date"))
    user_check_time: Any = Field(default=None, validation_alias=AliasChoices("userCheckTime", "user_check_time"))
    base_check_time: Any = Field(default=None, validation_alias=AliasChoices("baseCheckTime", "base_check_time"))
    time_result: str = Field(default="Normal", validation_alias=AliasChoices("timeResult", "time_result"))
    source_type: str | None = Field(default=None, validation_alias=AliasChoices("sourceType", "source_type"))
    proc_inst_id: str | None = Field(default=None, validation_alias=AliasChoices("procInstId", "proc_inst_id"))
    location_result: str | None = Field(
        default=None,
        validation_alias=AliasChoices("locationResult", "location_result"),
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RawApprovalIn(BaseModel):
    """A leave approval; values may sit at the top level or under ``formValues``."""

    proc_inst_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("procInstId", "processInstanceId", "proc_inst_id"),
    )
    biz_type: str | None = Field(default=None, validation_alias=AliasChoices("bizType", "biz_type"))
    leave_type: str | None = Field(default=None, validation_alias=AliasChoices("leaveType", "leave_type"))
    start: Any = Field(default=None, validation_alias=AliasChoices("start", "startTime", "start_time"))
    end: Any = Field(default=None, validation_alias=AliasChoices("end", "endTime", "end_time"))
    duration: Any = None
    duration_unit: str | None = Field(
        default=None,
        validation_alias=AliasChoices("durationUnit", "unit", "duration_unit"),
    )
    form_values: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("formValues", "form_values"),
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EmployeeMonthIn(BaseModel):
    user_id: str = Field(validation_alias=AliasChoices("userid", "userId", "user_id"))
    name: str | None = None
    hired_on: Any = Field(default=None, validation_alias=AliasChoices("hiredDate", "hired_date", "hired_on"))
    punches: list[RawPunchIn] = Field(default_factory=list)
    approvals: dict[str, RawApprovalIn] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("user_id", mode="before")
    @classmethod
    def _coerce_user_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


class MonthlyStatsRequest(BaseModel):
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)
    as_of: date | None = None
    holidays: dict[str, Any] = Field(default_factory=dict)
    employees: list[EmployeeMonthIn] = Field(default_factory=list)


class CheckpointOvertimeRead(BaseModel):
    minutes: float
    count: int


class EmployeeMonthlyStatsRead(BaseModel):
    user_id: str
    name: str | None = None
    year: int
    month: int
    leave_counts: dict[str, int]
    leave_hours: dict[str, float]
    late_count: int
    late_minutes: int
    exempted_late_minutes: int
    exemption_used: int
    missing: int
    absenteeism: int
    performance_penalty: float
    overtime_total_minutes: float
    overtime_checkpoints: dict[str, CheckpointOvertimeRead]
    leave_display: dict[str, str] = Field(default_factory=dict)
    should_attendance_days: int
    actual_attendance_days: int
    is_full_attendance: bool
    full_attendance_bonus: float
    flags: list[str] = Field(default_factory=list)


class MonthlyStatsResponse(BaseModel):
    company_id: str
    rule_version: int
    year: int
    month: int
    as_of: date
    results: list[EmployeeMonthlyStatsRead]


class LateRuleSchema(BaseModel):
    previous_day_checkout_time: str
    late_threshold_time: str
    description: str = ""

    @field_validator("previous_day_checkout_time", "late_threshold_time", mode="before")
    @classmethod
    def _normalize_clock(cls, value: Any) -> Any:
        return _clock_field(value)


class PenaltyRuleSchema(BaseModel):
    min_minutes: int = Field(ge=0)
    max_minutes: int = Field(ge=0)
    penalty: float = Field(ge=0)
    description: str = ""

    @model_validator(mode="after")
    def _validate_range(self) -> "PenaltyRuleSchema":
        if self.max_minutes <= self.min_minutes:
            raise ValueError("max_minutes must be greater than min_minutes.")
        return self


class FullAttendanceRuleSchema(BaseModel):
    type: str
    enabled: bool = True
    threshold: float = Field(default=0, ge=0)
    unit: Literal["count", "hours"] = "count"
    display_name: str = ""


class LeaveDisplayRuleSchema(BaseModel):
    leave_type: str
    short_term_hours: float = Field(gt=0)
    short_term_label: str
    long_term_label: str


class AttendanceDaysRulesSchema(BaseModel):
    enabled: bool = True
    should_attendance_calc_method: Literal["workdays", "fixed", "custom"] = "workdays"
    fixed_should_attendance_days: int | None = Field(default=None, ge=0, le=31)
    include_holidays_in_should: bool = True


class SwapDaySchema(BaseModel):
    target_date: date
    is_workday: bool
    reason: str | None = None


class RuleConfigPayload(BaseModel):
    work_start_time: str = "09:00"
    work_end_time: str = "18:30"
    lunch_start_time: str = "12:00"
    lunch_end_time: str = "13:30"
    daily_work_hours: float = Field(default=8.0, gt=0, le=24)

    late_rules: list[LateRuleSchema] = Field(default_factory=list)
    late_exemption_count: int = Field(default=3, ge=0)
    late_exemption_minutes: int = Field(default=15, ge=0)
    late_exemption_enabled: bool = True
    late_grace_checkout_time: str = "20:30"
    late_grace_threshold_time: str = "09:30"

    performance_penalty_enabled: bool = True
    performance_penalty_mode: Literal["unlimited", "capped"] = "capped"
    capped_penalty_type: Literal["ladder", "fixedCap"] = "ladder"
    capped_penalty_per_minute: float = Field(default=5.0, ge=0)
    unlimited_penalty_calc_type: Literal["perMinute", "fixed"] = "perMinute"
    unlimited_penalty_per_minute: float = Field(default=5.0, ge=0)
    unlimited_penalty_fixed_amount: float = Field(default=50.0, ge=0)
    max_performance_penalty: float = Field(default=250.0, ge=0)
    performance_penalty_rules: list[PenaltyRuleSchema] = Field(default_factory=list)

    full_attendance_enabled: bool = True
    full_attendance_bonus: float = Field(default=200.0, ge=0)
    full_attendance_allow_adjustment: bool = True
    full_attendance_rules: list[FullAttendanceRuleSchema] = Field(default_factory=list)

    leave_display_rules: list[LeaveDisplayRuleSchema] = Field(default_factory=list)
    attendance_days_rules: AttendanceDaysRulesSchema = Field(default_factory=AttendanceDaysRulesSchema)
    overtime_checkpoints: list[str] = Field(default_factory=lambda: ["19:30", "20:30", "22:00", "24:00"])
    swap_days: list[SwapDaySchema] = Field(default_factory=list)

    @field_validator(
        "work_start_time",
        "work_end_time",
        "lunch_start_time",
        "lunch_end_time",
        "late_grace_checkout_time",
        "late_grace_threshold_time",
        mode="before",
    )
    @classmethod
    def _normalize_clock(cls, value: Any) -> Any:
        return _clock_field(value)

    @field_validator("overtime_checkpoints", mode="before")
    @classmethod
    def _normalize_checkpoints(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [_clock_field(item) for item in value]


class RuleConfigRead(RuleConfigPayload):
    company_id: str
    version: int


class RuleConfigUpdateRequest(RuleConfigPayload):
    change_reason: str | None = Field(default=None, max_length=1000)
    updated_by: str | None = Field(default=None, max_length=100)


class RuleRollbackRequest(BaseModel):
    history_id: int = Field(ge=1)
    change_reason: str | None = Field(default=None, max_length=1000)
    changed_by: str | None = Field(default=None, max_length=100)


class RuleChangeLogRead(BaseModel):
    id: int
    company_id: str
    change_type: str
    version: int
    change_reason: str | None = None
    diff: str | None = None
    changed_by: str | None = None
    changed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RuleChangeLogPage(BaseModel):
    items: list[RuleChangeLogRead]
    total: int
    page: int
    size: int
