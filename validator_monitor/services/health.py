"""Validator health scoring.

The score is a fixed weighted heuristic over fields the provider already
supplies. Weights are constants, not user settings: changing them changes
every historical score.
"""

from decimal import ROUND_HALF_UP, Decimal

from ..core.types import HealthBand, ValidatorRecord, parse_number

REFERENCE_STAKE_ETH = 32.0
LOW_INCOME_MARGIN_ETH = 0.1

EFFECTIVENESS_WEIGHT = 0.4
SLASHED_PENALTY = 30
LOW_INCOME_PENALTY = 15
MISS_RATE_THRESHOLD = 99
MISS_RATE_FACTOR = 0.3
MISS_RATE_WEIGHT = 0.3

# A drop larger than this (and below the user's threshold) raises an alert
ALERT_DROP_POINTS = 10


def calculate_health_score(effectiveness: float, balance_eth: float) -> int:
    """Score a validator from 0 to 100.

    1. Effectiveness below 100% costs 0.4 points per missing percent.
    2. Balance under the 32 ETH stake costs a flat 30 (likely slashed);
       under 32.1 ETH costs a flat 15 (low income).
    3. Effectiveness below 99% also costs an estimated miss rate of
       ``(100 - effectiveness) * 0.3``, weighted by 0.3. This is a proxy, not a
       measured miss rate, and it deliberately overlaps with step 1.

    The result is clamped to [0, 100] and rounded half away from zero.
    """
    score = 100.0

    if effectiveness < 100:
        score -= (100 - effectiveness) * EFFECTIVENESS_WEIGHT

    if balance_eth < REFERENCE_STAKE_ETH:
        score -= SLASHED_PENALTY
    elif balance_eth < REFERENCE_STAKE_ETH + LOW_INCOME_MARGIN_ETH:
        score -= LOW_INCOME_PENALTY

    if effectiveness < MISS_RATE_THRESHOLD:
        estimated_miss_rate = (100 - effectiveness) * MISS_RATE_FACTOR
        score -= estimated_miss_rate * MISS_RATE_WEIGHT

    score = max(0.0, min(100.0, score))
    return int(Decimal(score).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def score_record(record: ValidatorRecord) -> int:
    """Score a record from its display fields.

    Unparsable effectiveness counts as 0%. Unparsable or zero balance counts
    as the 32 ETH stake, so a validator with no balance data is not treated
    as slashed.
    """
    effectiveness = parse_number(record.effectiveness) or 0.0
    balance = parse_number(record.balance) or REFERENCE_STAKE_ETH
    return calculate_health_score(effectiveness, balance)


def rescore(record: ValidatorRecord) -> int:
    """Recompute and cache the health score on the record."""
    record.health_score = score_record(record)
    return record.health_score


def health_band(score: int) -> HealthBand:
    if score >= 95:
        return HealthBand(key="excellent", label="Excellent")
    if score >= 85:
        return HealthBand(key="good", label="Good")
    if score >= 70:
        return HealthBand(key="warning", label="Warning")
    return HealthBand(key="critical", label="Critical")


def should_alert(old_score: int, new_score: int, threshold: int) -> bool:
    """A health drop alert fires below the threshold after a drop of more than 10 points."""
    return new_score < threshold and new_score < old_score - ALERT_DROP_POINTS
