from __future__ import annotations

import logging

from attendance_engine.services.rule_config import RuleConfig

logger = logging.getLogger("attendance_engine.penalty")

# (inclusive upper bound in minutes, amount); anything beyond the last step pays the maximum.
_FALLBACK_LADDER: tuple[tuple[int, float], ...] = (
    (5, 50.0),
    (15, 100.0),
    (30, 150.0),
    (45, 200.0),
)


def _fallback_penalty(minutes: float, maximum: float) -> float:
    for upper, amount in _FALLBACK_LADDER:
        if minutes <= upper:
            return min(amount, maximum)
    return maximum


def _ladder_penalty(minutes: float, config: RuleConfig) -> float:
    maximum = max(0.0, config.max_performance_penalty)
    for rule in config.performance_penalty_rules:
        if rule.matches(minutes):
            return max(0.0, min(rule.penalty, maximum))
    return _fallback_penalty(minutes, maximum)


def performance_penalty(billable_minutes: float, config: RuleConfig) -> float:
    """Penalty amount for a month's billable late minutes."""
    if billable_minutes <= 0 or not config.performance_penalty_enabled:
        return 0.0

    if config.performance_penalty_mode == "unlimited":
        if config.unlimited_penalty_calc_type == "fixed":
            return max(0.0, config.unlimited_penalty_fixed_amount)
        return max(0.0, round(billable_minutes * config.unlimited_penalty_per_minute, 2))

    if config.performance_penalty_mode != "capped":
        logger.warning(
            "penalty_mode_unknown",
            extra={"company_id": config.company_id, "mode": config.performance_penalty_mode},
        )

    if config.capped_penalty_type == "fixedCap":
        amount = round(billable_minutes * config.capped_penalty_per_minute, 2)
        return max(0.0, min(amount, config.max_performance_penalty))
    return _ladder_penalty(billable_minutes, config)
