from __future__ import annotations

from dataclasses import dataclass

from attendance_engine.services.rule_config import RuleConfig


@dataclass(frozen=True, slots=True)
class ExemptionResult:
    # Minutes still billable after forgiveness, fed to the penalty calculation.
    exempted_minutes: int
    exemption_used: int


def apply_exemption(
    late_minutes: int,
    exemption_used: int,
    *,
    is_workday: bool,
    config: RuleConfig,
) -> ExemptionResult:
    if late_minutes <= 0:
        return ExemptionResult(exempted_minutes=0, exemption_used=exemption_used)
    if not config.late_exemption_enabled or exemption_used >= config.late_exemption_count:
        return ExemptionResult(exempted_minutes=late_minutes, exemption_used=exemption_used)

    threshold = config.late_exemption_minutes
    if is_workday and late_minutes <= threshold:
        return ExemptionResult(exempted_minutes=0, exemption_used=exemption_used + 1)
    if late_minutes > threshold:
        return ExemptionResult(exempted_minutes=late_minutes - threshold, exemption_used=exemption_used + 1)
    return ExemptionResult(exempted_minutes=late_minutes, exemption_used=exemption_used)
