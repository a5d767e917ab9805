"""Map Beaconcha.in validator payloads onto the fixed stats record.

The API is not consistent about field names across versions, so each
concept lists its known aliases in priority order. Add new aliases here;
call sites only ever ask for the concept.
"""

import logging
import math
from typing import Any, Mapping, Sequence

from pydantic import ValidationError

from ..core.errors import NotFoundError, ProviderError
from ..core.types import ValidatorStats, to_fixed

logger = logging.getLogger(__name__)

GWEI_PER_ETH = 1e9
REFERENCE_STAKE_ETH = 32

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "balance": ("balance", "currentbalance"),
    "effective_balance": ("effectivebalance", "balance"),
    "attestations": ("attestationscount", "attestations", "attestation_count"),
    "missed_attestations": ("missedattestations", "attestations_missed", "attester_slashings"),
    "proposals": ("proposalscount", "proposals", "proposal_count", "executedproposals"),
    "validator_index": ("validatorindex", "index"),
    "status": ("status",),
}


def first_present(data: Mapping[str, Any], keys: Sequence[str], default: Any = None) -> Any:
    """Return the first value under ``keys`` that is present and not None."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def field(data: Mapping[str, Any], concept: str, default: Any = None) -> Any:
    """Resolve a logical concept through its alias list."""
    return first_present(data, FIELD_ALIASES[concept], default)


def gwei_to_eth(value: Any) -> float:
    """Convert a gwei amount (number or numeric string) to ETH; NaN if unparsable or not finite."""
    if isinstance(value, bool):
        return math.nan
    try:
        raw = value if isinstance(value, (int, float)) else str(value).strip()
        eth = float(raw) / GWEI_PER_ETH
    except (TypeError, ValueError, OverflowError):
        return math.nan
    return eth if math.isfinite(eth) else math.nan


def as_count(value: Any) -> int:
    """Whole count from a number or numeric string; 0 if unparsable or not finite."""
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    return int(number) if math.isfinite(number) else 0


def format_balance(balance_eth: float) -> str:
    if not math.isfinite(balance_eth):
        return "N/A"
    return f"{to_fixed(balance_eth, 4)} ETH"


def format_effectiveness(effective_eth: float) -> str:
    """Effective balance against the 32 ETH stake, capped at 100%."""
    if not math.isfinite(effective_eth) or effective_eth <= 0:
        return "N/A"
    ratio = min(100.0, (effective_eth / REFERENCE_STAKE_ETH) * 100)
    return f"{to_fixed(ratio, 1)}%"


def format_uptime(total: int, missed: int, status: str) -> str:
    if total > 0:
        return f"{to_fixed(((total - missed) / total) * 100, 2)}%"
    if status.lower().startswith("active"):
        # Active with no attestations yet: newly activated
        return "100.00%"
    return "N/A"


def _build_stats(payload: Mapping[str, Any]) -> ValidatorStats:
    status = str(field(payload, "status", "unknown") or "unknown")

    balance_eth = gwei_to_eth(field(payload, "balance"))
    effective_eth = gwei_to_eth(field(payload, "effective_balance"))

    attestations = as_count(field(payload, "attestations", 0))
    missed = as_count(field(payload, "missed_attestations", 0))
    proposals = as_count(field(payload, "proposals", 0))

    return ValidatorStats(
        balance=format_balance(balance_eth),
        status=status,
        effectiveness=format_effectiveness(effective_eth),
        attestations=attestations,
        proposals=proposals,
        uptime=format_uptime(attestations, missed, status),
    )


def normalize_validator(payload: Mapping[str, Any] | None, identifier: str) -> ValidatorStats:
    """Build a stats fragment from one validator's ``data`` object.

    Raises:
        NotFoundError: the provider returned no payload for ``identifier``.
        ProviderError: the payload could not be coerced into stats.
    """
    if not payload:
        raise NotFoundError(f"Validator {identifier} not found on beaconcha.in")

    try:
        stats = _build_stats(payload)
    except (TypeError, ValueError, OverflowError, ValidationError) as e:
        raise ProviderError(f"Malformed validator payload for {identifier}: {e}") from e
    logger.debug(f"Normalized validator {identifier}: {stats.model_dump()}")
    return stats
