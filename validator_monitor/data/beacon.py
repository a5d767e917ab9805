"""Beaconcha.in API client."""

import json
import logging
import math
from typing import Any, Callable, TypeVar
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ..core.config import get_settings
from ..core.errors import NotFoundError, ProviderError
from ..core.types import (
    AttestationEntry,
    AttestationSummary,
    IncomeSummary,
    ProposalEntry,
    ProposalSummary,
    ValidatorStats,
    to_fixed,
)
from .cache import TTLCache
from .normalizer import (
    GWEI_PER_ETH,
    REFERENCE_STAKE_ETH,
    as_count,
    field,
    first_present,
    gwei_to_eth,
    normalize_validator,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Rough per-proposal reward used when the API gives no amount
ESTIMATED_PROPOSAL_REWARD_ETH = 0.05
ESTIMATED_PROPOSAL_REWARD_GWEI = 50_000_000

ATTESTATION_WINDOW = 100
RECENT_ATTESTATIONS = 20
PROPOSAL_WINDOW = 50
RECENT_PROPOSALS = 10


def _first(body: Any) -> dict | None:
    """Pick the validator object out of a ``data`` field (object or list)."""
    data = body.get("data") if isinstance(body, dict) else None
    if isinstance(data, list):
        data = data[0] if data else None
    return data if isinstance(data, dict) and data else None


def _all(body: Any) -> list[dict]:
    data = body.get("data") if isinstance(body, dict) else None
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return [item for item in data if isinstance(item, dict)]


def _eth_text(gwei: Any) -> str:
    eth = gwei_to_eth(gwei)
    return to_fixed(eth if math.isfinite(eth) else 0.0, 4)


def _as_int(value: Any) -> int | None:
    """Epoch or slot number; None when missing or not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return int(number) if math.isfinite(number) else None


def _miss_status(miss_rate: float) -> str:
    if miss_rate < 1:
        return "excellent"
    if miss_rate < 2:
        return "good"
    return "warning"


def _summarize(summarizer: Callable[[list[dict]], T], entries: list[dict], identifier: str) -> T:
    try:
        return summarizer(entries)
    except (TypeError, ValueError, OverflowError, ValidationError) as e:
        raise ProviderError(f"Malformed detail payload for {identifier}: {e}") from e


class BeaconchainProvider:
    """Fetches validator data from Beaconcha.in for one network."""

    def __init__(
        self,
        network: str = "mainnet",
        api_key: str = "",
        client: httpx.AsyncClient | None = None,
        cache: TTLCache | None = None,
    ):
        settings = get_settings()
        self.network = network
        self.base_url = settings.api_url_for(network).rstrip("/")
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)
        self._owns_client = client is None
        self.cache = cache or TTLCache(settings.cache_ttl_seconds)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "BeaconchainProvider":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _headers(self) -> dict[str, str]:
        # Header name is `apikey` per https://docs.beaconcha.in/api/overview
        return {"apikey": self.api_key} if self.api_key else {}

    async def _get(self, identifier: str, suffix: str = "") -> Any:
        url = f"{self.base_url}/validator/{quote(identifier, safe='')}{suffix}"
        try:
            response = await self._client.get(url, headers=self._headers())
        except httpx.RequestError as e:
            raise ProviderError(f"Request to beaconcha.in failed: {e}") from e
        except RuntimeError as e:
            # The client was closed by a provider swap while this request was queued
            if not self._client.is_closed:
                raise
            raise ProviderError("Request to beaconcha.in cancelled: client closed") from e

        if response.status_code == 404:
            raise NotFoundError(f"Validator {identifier} not found on beaconcha.in")

        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            if response.is_error:
                raise ProviderError(f"HTTP {response.status_code} from beaconcha.in") from e
            raise ProviderError(f"Malformed response from beaconcha.in: {e}") from e

        if response.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            raise ProviderError(message or f"HTTP {response.status_code} from beaconcha.in")

        if not isinstance(body, dict):
            raise ProviderError("Malformed response from beaconcha.in: expected an object")

        status = body.get("status")
        if isinstance(status, str) and status.upper().startswith("ERROR"):
            raise ProviderError(status)

        logger.debug(f"beaconcha.in {url}: {body}")
        return body

    async def get_validator(self, identifier: str) -> dict:
        """Raw validator object for an index or public key."""
        identifier = str(identifier).strip()
        data = _first(await self._get(identifier))
        if data is None:
            raise NotFoundError(f"Validator {identifier} not found on beaconcha.in")
        return data

    async def fetch_stats(self, identifier: str) -> ValidatorStats:
        """Fresh, uncached stats for one validator."""
        identifier = str(identifier).strip()
        return normalize_validator(await self.get_validator(identifier), identifier)

    def _cache_key(self, kind: str, identifier: str) -> str:
        return f"{self.network}:{kind}:{identifier}"

    async def get_income(self, identifier: str) -> IncomeSummary:
        """Income breakdown, estimated from balance when the income endpoint is unavailable."""
        identifier = str(identifier).strip()
        key = self._cache_key("income", identifier)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            data = _first(await self._get(identifier, "/income"))
        except (NotFoundError, ProviderError) as e:
            logger.debug(f"Income endpoint unavailable for {identifier}: {e}")
            data = None

        if data is not None:
            summary = IncomeSummary(
                total=_eth_text(first_present(data, ("total_income", "total"), 0)),
                attestations=_eth_text(first_present(data, ("attestation_income", "attestations"), 0)),
                proposals=_eth_text(first_present(data, ("proposal_income", "proposals"), 0)),
                sync_committee=_eth_text(first_present(data, ("sync_committee_income", "sync"), 0)),
            )
        else:
            validator = await self.get_validator(identifier)
            balance_eth = gwei_to_eth(field(validator, "balance", 0))
            if not math.isfinite(balance_eth):
                balance_eth = 0.0
            estimated_income = max(0.0, balance_eth - REFERENCE_STAKE_ETH)
            proposal_income = as_count(field(validator, "proposals", 0)) * ESTIMATED_PROPOSAL_REWARD_ETH
            summary = IncomeSummary(
                total=to_fixed(estimated_income, 4),
                attestations=to_fixed(max(0.0, estimated_income - proposal_income), 4),
                proposals=to_fixed(proposal_income, 4),
                sync_committee="0.0000",
                note="Estimated from balance",
            )

        self.cache.set(key, summary)
        return summary

    async def get_attestations(self, identifier: str) -> AttestationSummary:
        """Recent attestation performance, falling back to lifetime totals."""
        identifier = str(identifier).strip()
        key = self._cache_key("attestations", identifier)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        attestations = _all(await self._get(identifier, "/attestations"))
        if attestations:
            summary = _summarize(self._summarize_attestations, attestations[:ATTESTATION_WINDOW], identifier)
        else:
            validator = await self.get_validator(identifier)
            total = as_count(field(validator, "attestations", 0))
            missed = as_count(field(validator, "missed_attestations", 0))
            miss_rate = missed / total * 100 if total > 0 else 0.0
            summary = AttestationSummary(
                total=total,
                successful=total - missed,
                missed=missed,
                miss_rate=to_fixed(miss_rate, 2),
                last_missed="Unknown" if missed > 0 else "Never",
                status=_miss_status(miss_rate),
            )

        self.cache.set(key, summary)
        return summary

    @staticmethod
    def _summarize_attestations(attestations: list[dict]) -> AttestationSummary:
        missed = 0
        successful = 0
        last_missed_epoch = None
        recent: list[AttestationEntry] = []

        for att in attestations:
            status = att.get("status") or att.get("inclusionslot")
            is_missed = status == 0 or status == "missed" or att.get("missed") is True
            epoch = _as_int(first_present(att, ("epoch", "attestation_epoch")))
            if is_missed:
                missed += 1
                if last_missed_epoch is None:
                    last_missed_epoch = epoch
            else:
                successful += 1
            recent.append(
                AttestationEntry(
                    epoch=epoch,
                    slot=_as_int(first_present(att, ("slot", "attestation_slot"))),
                    status="missed" if is_missed else "success",
                )
            )

        total = missed + successful
        miss_rate = missed / total * 100 if total > 0 else 0.0
        return AttestationSummary(
            total=total,
            successful=successful,
            missed=missed,
            miss_rate=to_fixed(miss_rate, 2),
            recent=recent[:RECENT_ATTESTATIONS],
            last_missed=f"Epoch {last_missed_epoch}" if last_missed_epoch is not None else "Never",
            status=_miss_status(miss_rate),
        )

    async def get_proposals(self, identifier: str) -> ProposalSummary:
        """Block proposal history, falling back to the proposal count."""
        identifier = str(identifier).strip()
        key = self._cache_key("proposals", identifier)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        proposals = _all(await self._get(identifier, "/proposals"))
        if proposals:
            summary = _summarize(self._summarize_proposals, proposals[:PROPOSAL_WINDOW], identifier)
        else:
            validator = await self.get_validator(identifier)
            count = as_count(field(validator, "proposals", 0))
            estimated = count * ESTIMATED_PROPOSAL_REWARD_ETH
            summary = ProposalSummary(
                total=count,
                total_rewards=to_fixed(estimated, 4),
                avg_reward=to_fixed(estimated / count, 4) if count > 0 else "0.0000",
                last_proposal="Unknown" if count > 0 else "Never",
                status="has_proposed" if count > 0 else "waiting",
            )

        self.cache.set(key, summary)
        return summary

    @staticmethod
    def _summarize_proposals(proposals: list[dict]) -> ProposalSummary:
        total_rewards = 0.0
        entries: list[ProposalEntry] = []
        last_slot = None

        for prop in proposals:
            slot = _as_int(first_present(prop, ("slot", "exec_block_number")))
            proposed = prop.get("status") in (1, "1", "proposed")
            reward_gwei = prop.get("proposerreward") or ESTIMATED_PROPOSAL_REWARD_GWEI
            reward_eth = as_count(reward_gwei) / GWEI_PER_ETH

            if proposed:
                total_rewards += reward_eth
                if slot is not None and (last_slot is None or slot > last_slot):
                    last_slot = slot

            entries.append(
                ProposalEntry(
                    slot=slot,
                    epoch=_as_int(prop.get("epoch")),
                    status="proposed" if proposed else "missed",
                    reward=to_fixed(reward_eth, 4),
                )
            )

        avg = to_fixed(total_rewards / len(entries), 4) if entries else "0.0000"
        return ProposalSummary(
            total=len(entries),
            total_rewards=to_fixed(total_rewards, 4),
            avg_reward=avg,
            proposals=entries[:RECENT_PROPOSALS],
            last_proposal=f"Slot {last_slot}" if last_slot is not None else "Never",
            status="has_proposed" if entries else "waiting",
        )
