"""Rule configuration, rule detail, special date and change log tables

Revision ID: 0001_rule_config_tables
Revises:
Create Date: 2026-10-12 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_rule_config_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "att_rule_config",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.String(length=50), nullable=False),
        sa.Column("rule_name", sa.String(length=100), nullable=True),
        sa.Column("work_start_time", sa.String(length=8), nullable=False, server_default=sa.text("'09:00'")),
        sa.Column("work_end_time", sa.String(length=8), nullable=False, server_default=sa.text("'18:30'")),
        sa.Column("lunch_start_time", sa.String(length=8), nullable=False, server_default=sa.text("'12:00'")),
        sa.Column("lunch_end_time", sa.String(length=8), nullable=False, server_default=sa.text("'13:30'")),
        sa.Column("late_exemption_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("late_exemption_count", sa.Integer(), nullable=False, server_default=sa.text("3")),
        sa.Column("late_exemption_minutes", sa.Integer(), nullable=False, server_default=sa.text("15")),
        sa.Column("perf_penalty_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("perf_penalty_mode", sa.String(length=20), nullable=False, server_default=sa.text("'capped'")),
        sa.Column("unlimited_calc_type", sa.String(length=20), nullable=False, server_default=sa.text("'perMinute'")),
        sa.Column("unlimited_per_minute", sa.Float(), nullable=False, server_default=sa.text("5")),
        sa.Column("unlimited_fixed_amount", sa.Float(), nullable=False, server_default=sa.text("50")),
        sa.Column("capped_penalty_type", sa.String(length=20), nullable=False, server_default=sa.text("'ladder'")),
        sa.Column("capped_per_minute", sa.Float(), nullable=False, server_default=sa.text("5")),
        sa.Column("max_perf_penalty", sa.Float(), nullable=False, server_default=sa.text("250")),
        sa.Column("full_attend_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("full_attend_bonus", sa.Float(), nullable=False, server_default=sa.text("200")),
        sa.Column("full_attend_allow_adj", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("attend_days_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("should_attend_calc", sa.String(length=20), nullable=False, server_default=sa.text("'workdays'")),
        sa.Column("fixed_should_days", sa.Integer(), nullable=True),
        sa.Column(
            "overtime_checkpoints",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[\"19:30\", \"20:30\", \"22:00\", \"24:00\"]'::jsonb"),
        ),
        sa.Column("cross_day_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_by", sa.String(length=100), nullable=True),
        sa.Column("updated_by", sa.String(length=100), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_att_rule_config_company_id", "att_rule_config", ["company_id"])
    op.create_index(
        "uq_att_rule_config_active_company",
        "att_rule_config",
        ["company_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "att_rule_detail",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "config_id",
            sa.Integer(),
            sa.ForeignKey("att_rule_config.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rule_type", sa.String(length=30), nullable=False),
        sa.Column("rule_key", sa.String(length=50), nullable=True),
        sa.Column("rule_name", sa.String(length=100), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("time_start", sa.String(length=8), nullable=True),
        sa.Column("time_end", sa.String(length=8), nullable=True),
        sa.Column("min_value", sa.Integer(), nullable=True),
        sa.Column("max_value", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Float(), nullable=True),
        sa.Column("threshold_hours", sa.Float(), nullable=True),
        sa.Column("unit", sa.String(length=20), nullable=True),
        sa.Column("label_short", sa.String(length=100), nullable=True),
        sa.Column("label_long", sa.String(length=100), nullable=True),
        sa.CheckConstraint(
            "rule_type IN ('late', 'penalty', 'full_attend', 'leave_display', 'cross_day')",
            name="ck_att_rule_detail_rule_type",
        ),
    )
    op.create_index("ix_att_rule_detail_config_id", "att_rule_detail", ["config_id"])
    op.create_index("ix_att_rule_detail_rule_type", "att_rule_detail", ["rule_type"])

    op.create_table(
        "att_rule_special_date",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "config_id",
            sa.Integer(),
            sa.ForeignKey("att_rule_config.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date_type", sa.String(length=20), nullable=False, server_default=sa.text("'swap'")),
        sa.Column("target_date", sa.Date(), nullable=False),
        sa.Column("swap_type", sa.String(length=20), nullable=False, server_default=sa.text("'workday'")),
        sa.Column("reason", sa.String(length=200), nullable=True),
    )
    op.create_index("ix_att_rule_special_date_config_id", "att_rule_special_date", ["config_id"])

    op.create_table(
        "att_rule_change_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "config_id",
            sa.Integer(),
            sa.ForeignKey("att_rule_config.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("company_id", sa.String(length=50), nullable=False),
        sa.Column("change_type", sa.String(length=20), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("diff", sa.Text(), nullable=True),
        sa.Column(
            "snapshot",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("change_reason", sa.String(length=1000), nullable=True),
        sa.Column("changed_by", sa.String(length=100), nullable=True),
        sa.Column(
            "changed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_att_rule_change_log_config_id", "att_rule_change_log", ["config_id"])
    op.create_index("ix_att_rule_change_log_company_id", "att_rule_change_log", ["company_id"])


def downgrade() -> None:
    op.drop_index("ix_att_rule_change_log_company_id", table_name="att_rule_change_log")
    op.drop_index("ix_att_rule_change_log_config_id", table_name="att_rule_change_log")
    op.drop_table("att_rule_change_log")

    op.drop_index("ix_att_rule_special_date_config_id", table_name="att_rule_special_date")
    op.drop_table("att_rule_special_date")

    op.drop_index("ix_att_rule_detail_rule_type", table_name="att_rule_detail")
    op.drop_index("ix_att_rule_detail_config_id", table_name="att_rule_detail")
    op.drop_table("att_rule_detail")

    op.drop_index("uq_att_rule_config_active_company", table_name="att_rule_config")
    op.drop_index("ix_att_rule_config_company_id", table_name="att_rule_config")
    op.drop_table("att_rule_config")
