#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from attendance_engine.db import SessionLocal
from attendance_engine.logging_utils import setup_json_logging
from attendance_engine.schemas import RuleConfigPayload
from attendance_engine.services.rule_config import default_rule_config
from attendance_engine.services.rule_store import rule_config_to_schema, update_rule_config

logger = logging.getLogger("attendance_engine.seed")

# company id -> standard daily working hours
DEFAULT_COMPANIES: dict[str, float] = {
    "eyewind": 8.0,
    "hydodo": 8.5,
}


def _parse_company(raw: str) -> tuple[str, float]:
    company_id, _, hours = raw.partition(":")
    return company_id.strip(), float(hours) if hours else 8.0


def run(companies: dict[str, float]) -> list[dict]:
    seeded: list[dict] = []
    with SessionLocal() as db:
        for company_id, daily_hours in companies.items():
            defaults = default_rule_config(company_id, daily_work_hours=daily_hours)
            payload = RuleConfigPayload.model_validate(rule_config_to_schema(defaults).model_dump())
            saved = update_rule_config(
                db,
                company_id,
                payload,
                updated_by="seed",
                change_reason="default rule configuration",
            )
            logger.info("rule_config_seeded", extra={"company_id": company_id, "version": saved.version})
            seeded.append({"company_id": company_id, "version": saved.version})
    return seeded


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed default attendance rules per company.")
    parser.add_argument(
        "--company",
        action="append",
        default=[],
        help="company_id[:daily_hours], repeatable; defaults to the built-in companies",
    )
    args = parser.parse_args()
    setup_json_logging()
    targets = dict(_parse_company(item) for item in args.company) if args.company else DEFAULT_COMPANIES
    print(json.dumps(run(targets), ensure_ascii=False, indent=2))
