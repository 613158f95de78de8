"""Add should-attendance holiday flag and daily work hours to rule config

Revision ID: 0002_attendance_days_rules
Revises: 0001_rule_config_tables
Create Date: 2026-10-14 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0002_attendance_days_rules"
down_revision: Union[str, None] = "0001_rule_config_tables"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "att_rule_config",
        sa.Column(
            "include_holidays_in_should",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
    )
    op.add_column(
        "att_rule_config",
        sa.Column(
            "daily_work_hours",
            sa.Float(),
            nullable=False,
            server_default=sa.text("8"),
        ),
    )


def downgrade() -> None:
    op.drop_column("att_rule_config", "daily_work_hours")
    op.drop_column("att_rule_config", "include_holidays_in_should")
