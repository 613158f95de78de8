from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from attendance_engine.db import Base


class RuleDetailType(str, enum.Enum):
    LATE = "late"
    PENALTY = "penalty"
    FULL_ATTEND = "full_attend"
    LEAVE_DISPLAY = "leave_display"
    CROSS_DAY = "cross_day"


class RuleChangeType(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ROLLBACK = "rollback"


class AttRuleConfig(Base):
    __tablename__ = "att_rule_config"
    __table_args__ = (
        Index(
            "uq_att_rule_config_active_company",
            "company_id",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    rule_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Clock columns are stored as "HH:MM" text so that "24:00" survives a round trip.
    work_start_time: Mapped[str] = mapped_column(String(8), nullable=False, server_default=text("'09:00'"))
    work_end_time: Mapped[str] = mapped_column(String(8), nullable=False, server_default=text("'18:30'"))
    lunch_start_time: Mapped[str] = mapped_column(String(8), nullable=False, server_default=text("'12:00'"))
    lunch_end_time: Mapped[str] = mapped_column(String(8), nullable=False, server_default=text("'13:30'"))

    late_exemption_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    late_exemption_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("3"))
    late_exemption_minutes: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("15"))

    perf_penalty_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    perf_penalty_mode: Mapped[str] = mapped_column(String(20), nullable=False, server_default=text("'capped'"))
    unlimited_calc_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        server_default=text("'perMinute'"),
    )
    unlimited_per_minute: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("5"))
    unlimited_fixed_amount: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("50"))
    capped_penalty_type: Mapped[str] = mapped_column(String(20), nullable=False, server_default=text("'ladder'"))
    capped_per_minute: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("5"))
    max_perf_penalty: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("250"))

    full_attend_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    full_attend_bonus: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("200"))
    full_attend_allow_adj: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))

    attend_days_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    should_attend_calc: Mapped[str] = mapped_column(String(20), nullable=False, server_default=text("'workdays'"))
    fixed_should_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    include_holidays_in_should: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("true"),
    )
    daily_work_hours: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("8"))

    overtime_checkpoints: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'[\"19:30\", \"20:30\", \"22:00\", \"24:00\"]'::jsonb"),
    )
    cross_day_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))

    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    details: Mapped[list[AttRuleDetail]] = relationship(
        back_populates="config",
        cascade="all, delete-orphan",
        order_by="AttRuleDetail.sort_order",
    )
    special_dates: Mapped[list[AttRuleSpecialDate]] = relationship(
        back_populates="config",
        cascade="all, delete-orphan",
    )


class AttRuleDetail(Base):
    __tablename__ = "att_rule_detail"
    __table_args__ = (
        CheckConstraint(
            "rule_type IN ('late', 'penalty', 'full_attend', 'leave_display', 'cross_day')",
            name="ck_att_rule_detail_rule_type",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    config_id: Mapped[int] = mapped_column(
        ForeignKey("att_rule_config.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rule_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    rule_key: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rule_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    time_start: Mapped[str | None] = mapped_column(String(8), nullable=True)
    time_end: Mapped[str | None] = mapped_column(String(8), nullable=True)
    min_value: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_value: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    threshold_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    label_short: Mapped[str | None] = mapped_column(String(100), nullable=True)
    label_long: Mapped[str | None] = mapped_column(String(100), nullable=True)

    config: Mapped[AttRuleConfig] = relationship(back_populates="details")


class AttRuleSpecialDate(Base):
    __tablename__ = "att_rule_special_date"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    config_id: Mapped[int] = mapped_column(
        ForeignKey("att_rule_config.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date_type: Mapped[str] = mapped_column(String(20), nullable=False, server_default=text("'swap'"))
    target_date: Mapped[date] = mapped_column(Date, nullable=False)
    swap_type: Mapped[str] = mapped_column(String(20), nullable=False, server_default=text("'workday'"))
    reason: Mapped[str | None] = mapped_column(String(200), nullable=True)

    config: Mapped[AttRuleConfig] = relationship(back_populates="special_dates")


class AttRuleChangeLog(Base):
    __tablename__ = "att_rule_change_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    config_id: Mapped[int | None] = mapped_column(
        ForeignKey("att_rule_config.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    company_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    change_type: Mapped[str] = mapped_column(String(20), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    diff: Mapped[str | None] = mapped_column(Text, nullable=True)
    snapshot: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    change_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    changed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
