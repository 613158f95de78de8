#!/usr/bin/env python
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, text

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from attendance_engine.services.schema_guard import EXPECTED_ALEMBIC_HEAD
from attendance_engine.settings import get_settings

RULE_TABLES = ("att_rule_config", "att_rule_detail", "att_rule_special_date", "att_rule_change_log")


def run() -> dict:
    database_url = get_settings().database_url
    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    with engine.connect() as conn:
        tables = set(
            conn.execute(
                text(
                    """
                    select table_name
                    from information_schema.tables
                    where table_schema='public'
                    """
                )
            ).scalars()
        )

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_ALEMBIC_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_ALEMBIC_HEAD, "current": current_versions},
        )

        missing = [table for table in RULE_TABLES if table not in tables]
        add("missing_rule_tables", "fail" if missing else "ok", {"tables": missing})
        if missing:
            return report

        companies_without_rules = conn.execute(
            text(
                """
                select distinct l.company_id
                from att_rule_change_log l
                left join att_rule_config c on c.company_id = l.company_id and c.is_active = true
                where c.id is null
                """
            )
        ).scalars().all()
        add(
            "company_without_active_rules",
            "warn" if companies_without_rules else "ok",
            {"company_ids": list(companies_without_rules)},
        )

        configs_without_details = conn.execute(
            text(
                """
                select c.company_id
                from att_rule_config c
                left join att_rule_detail d on d.config_id = c.id
                where c.is_active = true
                group by c.company_id
                having count(d.id) = 0
                """
            )
        ).scalars().all()
        add(
            "active_config_without_rule_rows",
            "warn" if configs_without_details else "ok",
            {"company_ids": list(configs_without_details)},
        )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
