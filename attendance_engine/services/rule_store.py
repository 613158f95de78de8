from __future__ import annotations

import difflib
import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from attendance_engine.errors import RuleConfigNotLoadedError, RuleHistoryNotFoundError
from attendance_engine.models import (
    AttRuleChangeLog,
    AttRuleConfig,
    AttRuleDetail,
    AttRuleSpecialDate,
    RuleChangeType,
    RuleDetailType,
)
from attendance_engine.schemas import (
    AttendanceDaysRulesSchema,
    FullAttendanceRuleSchema,
    LateRuleSchema,
    LeaveDisplayRuleSchema,
    PenaltyRuleSchema,
    RuleConfigPayload,
    RuleConfigRead,
    SwapDaySchema,
)
from attendance_engine.services.rule_config import RuleConfig, rule_config_from_rows

logger = logging.getLogger("attendance_engine.rule_store")


def _active_config_row(db: Session, company_id: str) -> AttRuleConfig | None:
    return db.scalar(
        select(AttRuleConfig)
        .options(selectinload(AttRuleConfig.details), selectinload(AttRuleConfig.special_dates))
        .where(AttRuleConfig.company_id == company_id, AttRuleConfig.is_active.is_(True))
        .order_by(AttRuleConfig.id.desc())
        .limit(1)
    )


def _config_from_row(row: AttRuleConfig) -> RuleConfig:
    return rule_config_from_rows(row, list(row.details), list(row.special_dates))


def load_rule_config(db: Session, company_id: str) -> RuleConfig:
    row = _active_config_row(db, company_id)
    if row is None:
        raise RuleConfigNotLoadedError(company_id)
    return _config_from_row(row)


def rule_config_to_schema(config: RuleConfig) -> RuleConfigRead:
    return RuleConfigRead(
        company_id=config.company_id,
        version=config.version,
        work_start_time=config.work_start_time.strftime("%H:%M"),
        work_end_time=config.work_end_time.strftime("%H:%M"),
        lunch_start_time=config.lunch_start_time.strftime("%H:%M"),
        lunch_end_time=config.lunch_end_time.strftime("%H:%M"),
        daily_work_hours=config.daily_work_hours,
        late_rules=[
            LateRuleSchema(
                previous_day_checkout_time=rule.previous_day_checkout_time,
                late_threshold_time=rule.late_threshold_time,
                description=rule.description,
            )
            for rule in config.late_rules
        ],
        late_exemption_count=config.late_exemption_count,
        late_exemption_minutes=config.late_exemption_minutes,
        late_exemption_enabled=config.late_exemption_enabled,
        late_grace_checkout_time=config.late_grace_checkout_time.strftime("%H:%M"),
        late_grace_threshold_time=config.late_grace_threshold_time.strftime("%H:%M"),
        performance_penalty_enabled=config.performance_penalty_enabled,
        performance_penalty_mode=config.performance_penalty_mode,
        capped_penalty_type=config.capped_penalty_type,
        capped_penalty_per_minute=config.capped_penalty_per_minute,
        unlimited_penalty_calc_type=config.unlimited_penalty_calc_type,
        unlimited_penalty_per_minute=config.unlimited_penalty_per_minute,
        unlimited_penalty_fixed_amount=config.unlimited_penalty_fixed_amount,
        max_performance_penalty=config.max_performance_penalty,
        performance_penalty_rules=[
            PenaltyRuleSchema(
                min_minutes=rule.min_minutes,
                max_minutes=rule.max_minutes,
                penalty=rule.penalty,
                description=rule.description,
            )
            for rule in config.performance_penalty_rules
        ],
        full_attendance_enabled=config.full_attendance_enabled,
        full_attendance_bonus=config.full_attendance_bonus,
        full_attendance_allow_adjustment=config.full_attendance_allow_adjustment,
        full_attendance_rules=[
            FullAttendanceRuleSchema(
                type=rule.type,
                enabled=rule.enabled,
                threshold=rule.threshold,
                unit=rule.unit,
                display_name=rule.display_name,
            )
            for rule in config.full_attendance_rules
        ],
        leave_display_rules=[
            LeaveDisplayRuleSchema(
                leave_type=rule.leave_type,
                short_term_hours=rule.short_term_hours,
                short_term_label=rule.short_term_label,
                long_term_label=rule.long_term_label,
            )
            for rule in config.leave_display_rules
        ],
        attendance_days_rules=AttendanceDaysRulesSchema(
            enabled=config.attendance_days_rules.enabled,
            should_attendance_calc_method=config.attendance_days_rules.should_attendance_calc_method,
            fixed_should_attendance_days=config.attendance_days_rules.fixed_should_attendance_days,
            include_holidays_in_should=config.attendance_days_rules.include_holidays_in_should,
        ),
        overtime_checkpoints=list(config.overtime_checkpoints),
        swap_days=[
            SwapDaySchema(target_date=day, is_workday=is_workday)
            for day, is_workday in sorted(config.swap_days.items())
        ],
    )


def get_full_config(db: Session, company_id: str) -> RuleConfigRead:
    return rule_config_to_schema(load_rule_config(db, company_id))


def render_config_diff(before: RuleConfig | None, after: RuleConfig) -> str:
    """Unified diff between two resolved configurations, as stored in the change log."""

    def _lines(config: RuleConfig | None) -> list[str]:
        if config is None:
            return []
        return json.dumps(config.to_dict(), indent=2, sort_keys=True, ensure_ascii=False).splitlines()

    return "\n".join(
        difflib.unified_diff(
            _lines(before),
            _lines(after),
            fromfile=f"v{before.version}" if before is not None else "empty",
            tofile=f"v{after.version}",
            lineterm="",
        )
    )


def _detail_rows(payload: RuleConfigPayload) -> list[AttRuleDetail]:
    rows: list[AttRuleDetail] = []
    for index, rule in enumerate(payload.late_rules):
        rows.append(
            AttRuleDetail(
                rule_type=RuleDetailType.LATE.value,
                sort_order=index,
                time_start=rule.previous_day_checkout_time,
                time_end=rule.late_threshold_time,
                description=rule.description or None,
            )
        )
    for index, rule in enumerate(payload.performance_penalty_rules):
        rows.append(
            AttRuleDetail(
                rule_type=RuleDetailType.PENALTY.value,
                sort_order=index,
                min_value=rule.min_minutes,
                max_value=rule.max_minutes,
                amount=rule.penalty,
                description=rule.description or None,
            )
        )
    for index, rule in enumerate(payload.full_attendance_rules):
        rows.append(
            AttRuleDetail(
                rule_type=RuleDetailType.FULL_ATTEND.value,
                sort_order=index,
                rule_key=rule.type,
                rule_name=rule.display_name or None,
                enabled=rule.enabled,
                threshold_hours=rule.threshold,
                unit=rule.unit,
            )
        )
    for index, rule in enumerate(payload.leave_display_rules):
        rows.append(
            AttRuleDetail(
                rule_type=RuleDetailType.LEAVE_DISPLAY.value,
                sort_order=index,
                rule_key=rule.leave_type,
                threshold_hours=rule.short_term_hours,
                label_short=rule.short_term_label,
                label_long=rule.long_term_label,
            )
        )
    rows.append(
        AttRuleDetail(
            rule_type=RuleDetailType.CROSS_DAY.value,
            sort_order=0,
            time_start=payload.late_grace_checkout_time,
            time_end=payload.late_grace_threshold_time,
        )
    )
    return rows


def _apply_payload(row: AttRuleConfig, payload: RuleConfigPayload) -> None:
    row.work_start_time = payload.work_start_time
    row.work_end_time = payload.work_end_time
    row.lunch_start_time = payload.lunch_start_time
    row.lunch_end_time = payload.lunch_end_time
    row.daily_work_hours = payload.daily_work_hours

    row.late_exemption_enabled = payload.late_exemption_enabled
    row.late_exemption_count = payload.late_exemption_count
    row.late_exemption_minutes = payload.late_exemption_minutes

    row.perf_penalty_enabled = payload.performance_penalty_enabled
    row.perf_penalty_mode = payload.performance_penalty_mode
    row.capped_penalty_type = payload.capped_penalty_type
    row.capped_per_minute = payload.capped_penalty_per_minute
    row.unlimited_calc_type = payload.unlimited_penalty_calc_type
    row.unlimited_per_minute = payload.unlimited_penalty_per_minute
    row.unlimited_fixed_amount = payload.unlimited_penalty_fixed_amount
    row.max_perf_penalty = payload.max_performance_penalty

    row.full_attend_enabled = payload.full_attendance_enabled
    row.full_attend_bonus = payload.full_attendance_bonus
    row.full_attend_allow_adj = payload.full_attendance_allow_adjustment

    days = payload.attendance_days_rules
    row.attend_days_enabled = days.enabled
    row.should_attend_calc = days.should_attendance_calc_method
    row.fixed_should_days = days.fixed_should_attendance_days
    row.include_holidays_in_should = days.include_holidays_in_should

    row.overtime_checkpoints = list(payload.overtime_checkpoints)
    row.cross_day_enabled = True

    row.details = _detail_rows(payload)
    row.special_dates = [
        AttRuleSpecialDate(
            date_type="swap",
            target_date=swap.target_date,
            swap_type="workday" if swap.is_workday else "holiday",
            reason=swap.reason,
        )
        for swap in payload.swap_days
    ]


def _write_change_log(
    db: Session,
    row: AttRuleConfig,
    *,
    change_type: RuleChangeType,
    before: RuleConfig | None,
    after: RuleConfig,
    change_reason: str | None,
    changed_by: str | None,
) -> AttRuleChangeLog:
    entry = AttRuleChangeLog(
        config_id=row.id,
        company_id=row.company_id,
        change_type=change_type.value,
        version=after.version,
        diff=render_config_diff(before, after),
        snapshot=rule_config_to_schema(before).model_dump(mode="json") if before is not None else {},
        change_reason=change_reason,
        changed_by=changed_by,
        changed_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    return entry


def _store_payload(
    db: Session,
    company_id: str,
    payload: RuleConfigPayload,
    *,
    change_type: RuleChangeType,
    changed_by: str | None,
    change_reason: str | None,
) -> RuleConfig:
    row = _active_config_row(db, company_id)
    before: RuleConfig | None = None
    if row is None:
        row = AttRuleConfig(company_id=company_id, version=1, is_active=True, created_by=changed_by)
        db.add(row)
        change_type = RuleChangeType.CREATE
    else:
        before = _config_from_row(row)
        row.version = before.version + 1

    _apply_payload(row, payload)
    row.updated_by = changed_by
    row.updated_at = datetime.now(timezone.utc)
    db.flush()

    after = _config_from_row(row)
    _write_change_log(
        db,
        row,
        change_type=change_type,
        before=before,
        after=after,
        change_reason=change_reason,
        changed_by=changed_by,
    )
    db.commit()

    logger.info(
        "rule_config_saved",
        extra={
            "company_id": company_id,
            "change_type": change_type.value,
            "version": after.version,
            "changed_by": changed_by,
        },
    )
    return after


def update_rule_config(
    db: Session,
    company_id: str,
    payload: RuleConfigPayload,
    *,
    updated_by: str | None = None,
    change_reason: str | None = None,
) -> RuleConfig:
    return _store_payload(
        db,
        company_id,
        payload,
        change_type=RuleChangeType.UPDATE,
        changed_by=updated_by,
        change_reason=change_reason,
    )


def list_change_history(
    db: Session,
    company_id: str,
    *,
    page: int = 1,
    size: int = 20,
) -> tuple[list[AttRuleChangeLog], int]:
    safe_page = max(1, page)
    safe_size = max(1, min(size, 100))
    total = db.scalar(
        select(func.count()).select_from(AttRuleChangeLog).where(AttRuleChangeLog.company_id == company_id)
    )
    items = list(
        db.scalars(
            select(AttRuleChangeLog)
            .where(AttRuleChangeLog.company_id == company_id)
            .order_by(AttRuleChangeLog.changed_at.desc(), AttRuleChangeLog.id.desc())
            .offset((safe_page - 1) * safe_size)
            .limit(safe_size)
        ).all()
    )
    return items, int(total or 0)


def rollback_rule_config(
    db: Session,
    company_id: str,
    history_id: int,
    *,
    changed_by: str | None = None,
    change_reason: str | None = None,
) -> RuleConfig:
    """Restore the configuration captured before change ``history_id`` as a new version."""
    entry = db.scalar(
        select(AttRuleChangeLog).where(
            AttRuleChangeLog.id == history_id,
            AttRuleChangeLog.company_id == company_id,
        )
    )
    snapshot: dict[str, Any] = entry.snapshot if entry is not None else {}
    if entry is None or not snapshot:
        raise RuleHistoryNotFoundError(company_id, history_id)
    if _active_config_row(db, company_id) is None:
        raise RuleConfigNotLoadedError(company_id)

    payload = RuleConfigPayload.model_validate(snapshot)
    return _store_payload(
        db,
        company_id,
        payload,
        change_type=RuleChangeType.ROLLBACK,
        changed_by=changed_by,
        change_reason=change_reason or f"rollback to change {history_id}",
    )
