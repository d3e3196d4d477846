"""Domain-level validation rules for the device scoring policy."""

from __future__ import annotations

from dataclasses import dataclass

from rentalops.utils.config import Settings


@dataclass(frozen=True)
class ScoringPolicy:
    utilization_weight: float = 0.7
    rest_weight: float = 0.3
    lookback_horizon: float = 30.0
    rest_cap_days: float = 7.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringPolicy":
        return cls(
            utilization_weight=settings.scoring_utilization_weight,
            rest_weight=settings.scoring_rest_weight,
            lookback_horizon=settings.scoring_lookback_horizon,
            rest_cap_days=settings.scoring_rest_cap_days,
        )


DEFAULT_SCORING_POLICY = ScoringPolicy()


def validate_scoring_policy(policy: ScoringPolicy) -> None:
    if policy.utilization_weight < 0.0:
        raise ValueError("utilization_weight must be >= 0")
    if policy.rest_weight < 0.0:
        raise ValueError("rest_weight must be >= 0")
    if policy.lookback_horizon <= 0.0:
        raise ValueError("lookback_horizon must be > 0")
    if policy.rest_cap_days <= 0.0:
        raise ValueError("rest_cap_days must be > 0")
