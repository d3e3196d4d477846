"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path


_PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    app_name: str = "RentalOps Allocation API"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    database_path: Path = _PROJECT_ROOT / "data" / "rentalops.db"

    # Device scorer policy
    scoring_utilization_weight: float = 0.7
    scoring_rest_weight: float = 0.3
    scoring_lookback_horizon: float = 30.0
    scoring_rest_cap_days: float = 7.0

    # Availability window
    window_default_days: int = 1
    window_max_extension_days: int = 90

    # Device catalog cache
    device_catalog_cache_ttl_seconds: float = 300.0

    # Synthetic seed
    synthetic_random_seed: int = 42
    synthetic_devices_per_category: int = 3
    synthetic_reservation_days: int = 21
    synthetic_reservations_per_day: int = 4
    synthetic_categories: tuple[str, ...] = field(
        default=("GP13", "GP12", "POCKET3", "S24", "INSTA360", "STROLLER")
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from RENTALOPS_* environment variables."""
    defaults = Settings()
    return Settings(
        app_name=_env_str("RENTALOPS_APP_NAME", defaults.app_name),
        app_version=_env_str("RENTALOPS_APP_VERSION", defaults.app_version),
        log_level=_env_str("RENTALOPS_LOG_LEVEL", defaults.log_level),
        database_path=Path(
            _env_str("RENTALOPS_DATABASE_PATH", str(defaults.database_path))
        ),
        scoring_utilization_weight=_env_float(
            "RENTALOPS_SCORING_UTILIZATION_WEIGHT",
            defaults.scoring_utilization_weight,
        ),
        scoring_rest_weight=_env_float(
            "RENTALOPS_SCORING_REST_WEIGHT",
            defaults.scoring_rest_weight,
        ),
        scoring_lookback_horizon=_env_float(
            "RENTALOPS_SCORING_LOOKBACK_HORIZON",
            defaults.scoring_lookback_horizon,
        ),
        scoring_rest_cap_days=_env_float(
            "RENTALOPS_SCORING_REST_CAP_DAYS",
            defaults.scoring_rest_cap_days,
        ),
        window_default_days=_env_int(
            "RENTALOPS_WINDOW_DEFAULT_DAYS",
            defaults.window_default_days,
        ),
        window_max_extension_days=_env_int(
            "RENTALOPS_WINDOW_MAX_EXTENSION_DAYS",
            defaults.window_max_extension_days,
        ),
        device_catalog_cache_ttl_seconds=_env_float(
            "RENTALOPS_DEVICE_CATALOG_CACHE_TTL_SECONDS",
            defaults.device_catalog_cache_ttl_seconds,
        ),
        synthetic_random_seed=_env_int(
            "RENTALOPS_SYNTHETIC_RANDOM_SEED",
            defaults.synthetic_random_seed,
        ),
        synthetic_devices_per_category=_env_int(
            "RENTALOPS_SYNTHETIC_DEVICES_PER_CATEGORY",
            defaults.synthetic_devices_per_category,
        ),
        synthetic_reservation_days=_env_int(
            "RENTALOPS_SYNTHETIC_RESERVATION_DAYS",
            defaults.synthetic_reservation_days,
        ),
        synthetic_reservations_per_day=_env_int(
            "RENTALOPS_SYNTHETIC_RESERVATIONS_PER_DAY",
            defaults.synthetic_reservations_per_day,
        ),
    )
