"""Tests for scoring policy validation logic.

Covers every validation branch in validate_scoring_policy().
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from rentalops.domain.constraints import (
    DEFAULT_SCORING_POLICY,
    ScoringPolicy,
    validate_scoring_policy,
)
from rentalops.utils.config import get_settings


def valid_policy(**overrides) -> ScoringPolicy:
    """Return a valid baseline ScoringPolicy, optionally overriding fields."""
    defaults = {
        "utilization_weight": 0.7,
        "rest_weight": 0.3,
        "lookback_horizon": 30.0,
        "rest_cap_days": 7.0,
    }
    defaults.update(overrides)
    return ScoringPolicy(**defaults)


# --- Baseline pass ---

def test_valid_policy_passes() -> None:
    """A fully valid policy must not raise."""
    validate_scoring_policy(valid_policy())


def test_default_policy_matches_documented_weights() -> None:
    assert DEFAULT_SCORING_POLICY == valid_policy()


def test_policy_from_settings_reads_scoring_fields() -> None:
    settings = replace(
        get_settings(),
        scoring_utilization_weight=0.5,
        scoring_rest_weight=0.5,
        scoring_lookback_horizon=14.0,
        scoring_rest_cap_days=3.0,
    )
    assert ScoringPolicy.from_settings(settings) == valid_policy(
        utilization_weight=0.5,
        rest_weight=0.5,
        lookback_horizon=14.0,
        rest_cap_days=3.0,
    )


# --- weights ---

def test_negative_utilization_weight_raises() -> None:
    with pytest.raises(ValueError):
        validate_scoring_policy(valid_policy(utilization_weight=-0.1))


def test_negative_rest_weight_raises() -> None:
    with pytest.raises(ValueError):
        validate_scoring_policy(valid_policy(rest_weight=-0.1))


def test_zero_weights_pass() -> None:
    """Exact lower boundary must pass."""
    validate_scoring_policy(valid_policy(utilization_weight=0.0, rest_weight=0.0))


# --- lookback_horizon ---

def test_lookback_horizon_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_scoring_policy(valid_policy(lookback_horizon=0.0))


def test_lookback_horizon_negative_raises() -> None:
    with pytest.raises(ValueError):
        validate_scoring_policy(valid_policy(lookback_horizon=-30.0))


# --- rest_cap_days ---

def test_rest_cap_days_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_scoring_policy(valid_policy(rest_cap_days=0.0))


def test_rest_cap_days_negative_raises() -> None:
    with pytest.raises(ValueError):
        validate_scoring_policy(valid_policy(rest_cap_days=-1.0))
