"""Device scoring: pick the best same-category device for a reservation."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional, Sequence

from rentalops.domain.constraints import DEFAULT_SCORING_POLICY, ScoringPolicy
from rentalops.domain.models import (
    NO_CANDIDATE,
    AssignmentResult,
    DeviceScore,
    Found,
    Reservation,
    UsageInterval,
    UtilizationLedger,
)
from rentalops.utils.logger import get_logger


logger = get_logger(__name__)

_NEVER_USED = datetime(1970, 1, 1)
_SECONDS_PER_DAY = 86400.0


def _start_of(day: date) -> datetime:
    if isinstance(day, datetime):
        return day
    return datetime.combine(day, time.min)


def _history(ledger: UtilizationLedger, device_tag: str) -> Sequence[UsageInterval]:
    return ledger.get(device_tag) or ()


def score_device(
    device_tag: str,
    intervals: Sequence[UsageInterval],
    *,
    now: datetime,
    policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
) -> DeviceScore:
    """Score one device; lower total_score is a better pick."""
    utilization_rate = len(intervals) / policy.lookback_horizon

    if intervals:
        last_used = max(_start_of(interval.return_date) for interval in intervals)
    else:
        last_used = _NEVER_USED

    days_since_last_use = (now - last_used).total_seconds() / _SECONDS_PER_DAY
    # A return date after `now` (booked future use) counts as just returned.
    maintenance_score = min(max(days_since_last_use, 0.0) / policy.rest_cap_days, 1.0)

    total_score = (
        policy.utilization_weight * utilization_rate
        + policy.rest_weight * (1.0 - maintenance_score)
    )
    return DeviceScore(
        device_tag=device_tag,
        utilization_rate=utilization_rate,
        maintenance_score=maintenance_score,
        total_score=total_score,
    )


def score_devices(
    available_devices: Sequence[str],
    ledger: UtilizationLedger,
    *,
    now: datetime,
    policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
) -> list[DeviceScore]:
    """Return candidates ranked by ascending total_score.

    `sorted` is stable, so equal scores keep the candidate input order.
    """
    scores = [
        score_device(tag, _history(ledger, tag), now=now, policy=policy)
        for tag in available_devices
    ]
    return sorted(scores, key=lambda score: score.total_score)


def find_optimal_device(
    reservation: Reservation,
    available_devices: Sequence[str],
    ledger: UtilizationLedger,
    *,
    now: Optional[datetime] = None,
    policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
) -> AssignmentResult:
    """Choose the least-utilized, most-rested device among `available_devices`."""
    if not available_devices:
        return NO_CANDIDATE

    ranked = score_devices(
        available_devices,
        ledger,
        now=now or datetime.now(),
        policy=policy,
    )
    best = ranked[0]
    logger.debug(
        "Device scored | reservation_id=%s | device_tag=%s | total_score=%.6f | candidates=%s",
        reservation.reservation_id,
        best.device_tag,
        best.total_score,
        len(ranked),
    )
    return Found(device_tag=best.device_tag)


def overlaps(reservation: Reservation, interval: UsageInterval) -> bool:
    return (
        reservation.pickup_date <= interval.return_date
        and reservation.return_date >= interval.pickup_date
    )


def filter_conflicting_devices(
    reservation: Reservation,
    available_devices: Sequence[str],
    ledger: UtilizationLedger,
) -> list[str]:
    """Drop devices whose usage history overlaps the reservation period."""
    return [
        tag
        for tag in available_devices
        if not any(overlaps(reservation, interval) for interval in _history(ledger, tag))
    ]
