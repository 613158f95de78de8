from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

EXPECTED_ALEMBIC_HEAD = "0002_attendance_days_rules"

REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "att_rule_config": {
        "id",
        "company_id",
        "version",
        "is_active",
        "overtime_checkpoints",
        "include_holidays_in_should",
        "daily_work_hours",
    },
    "att_rule_detail": {"id", "config_id", "rule_type", "sort_order"},
    "att_rule_special_date": {"id", "config_id", "target_date", "swap_type"},
    "att_rule_change_log": {"id", "company_id", "change_type", "diff", "snapshot"},
    "alembic_version": {"version_num"},
}


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
        }


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    """Check that the rule tables and the expected migration head are in place."""
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        try:
            column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except Exception as exc:  # pragma: no cover - depends on the live database
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue

        missing_columns = sorted(item for item in required_columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
            version = str(row).strip() if row is not None else ""
            if not version:
                issues.append("ALEMBIC_VERSION_EMPTY")
            elif version != EXPECTED_ALEMBIC_HEAD:
                warnings.append(f"ALEMBIC_VERSION_MISMATCH:{version}:{EXPECTED_ALEMBIC_HEAD}")
    except Exception as exc:  # pragma: no cover - depends on the live database
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )
