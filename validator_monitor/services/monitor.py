"""Main service: owns the application state and wires provider, stores and scheduler."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

import httpx

from ..core.config import get_settings, is_valid_network
from ..core.errors import MonitorError, PersistenceError, Result
from ..core.state import AppState
from ..core.types import (
    AppSettings,
    AttestationSummary,
    DashboardSnapshot,
    IncomeSummary,
    ProposalSummary,
    RefreshReport,
    ValidatorRecord,
    ValidatorStats,
)
from ..data.beacon import BeaconchainProvider
from ..data.database import SettingsStore, default_app_settings
from ..data.storage import ValidatorStore
from .dashboard import update_dashboard
from .health import rescore
from .scheduler import AlertSink, RefreshScheduler, Sleep

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ValidatorMonitor:
    """
    Controller for one session.

    Every public operation returns a ``Result``; provider and persistence
    errors never escape. Saves go through a single lock and always write the
    current in-memory set, so concurrent edits and refreshes never write a
    stale copy (last write wins, but no write loses an earlier edit).
    """

    def __init__(
        self,
        validator_store: ValidatorStore | None = None,
        settings_store: SettingsStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.state = AppState(network=get_settings().default_network)
        self.validator_store = validator_store or ValidatorStore()
        self.settings_store = settings_store or SettingsStore()
        self._http_client = http_client
        self.provider = self._make_provider("")
        self.scheduler = RefreshScheduler(
            self.state,
            fetch_stats=lambda index: self.provider.fetch_stats(index),
            persist=self._persist,
            sleep=sleep,
        )
        self._save_lock = asyncio.Lock()

    def _make_provider(self, api_key: str) -> BeaconchainProvider:
        return BeaconchainProvider(self.state.network, api_key, client=self._http_client)

    async def _swap_provider(self, api_key: str) -> None:
        old = self.provider
        self.provider = self._make_provider(api_key)
        await old.aclose()

    async def _guard(self, operation: Callable[[], Awaitable[T]]) -> Result[T]:
        try:
            return Result.ok(await operation())
        except MonitorError as e:
            return Result.fail(e)

    async def _persist(self) -> None:
        async with self._save_lock:
            self.validator_store.save(self.state.network, self.state.validators)

    # Lifecycle

    async def load(self) -> Result[list[ValidatorRecord]]:
        """Load network, API key, preferences and the saved validator set."""
        try:
            network = await self.settings_store.get_network()
            api_key = await self.settings_store.get_api_key()
            app_settings = await self.settings_store.load_app_settings()
        except PersistenceError as e:
            logger.error(f"Settings unavailable, using defaults: {e.message}")
            network = self.state.network
            api_key = get_settings().beaconchain_api_key
            app_settings = default_app_settings()

        app_settings.api_key = api_key
        self.state.network = network
        self.state.settings = app_settings
        await self._swap_provider(api_key)
        return await self._load_validators()

    async def _load_validators(self) -> Result[list[ValidatorRecord]]:
        try:
            validators = self.validator_store.load(self.state.network)
        except PersistenceError as e:
            logger.error(e.message)
            self.state.validators = []
            update_dashboard(self.state)
            return Result.fail(e)

        for validator in validators:
            rescore(validator)
        self.state.validators = validators
        self.state.previous_snapshot = None
        update_dashboard(self.state)
        logger.info(f"Loaded {len(validators)} validators on {self.state.network}")
        return Result.ok(list(validators))

    def start(self, interval_ms: int | None = None) -> None:
        self.scheduler.start(interval_ms)

    def stop(self) -> None:
        self.scheduler.stop()

    async def close(self) -> None:
        self.stop()
        await self.provider.aclose()

    async def __aenter__(self) -> "ValidatorMonitor":
        await self.load()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def add_alert_sink(self, sink: AlertSink) -> None:
        self.scheduler.add_alert_sink(sink)

    # Validators

    @property
    def validators(self) -> list[ValidatorRecord]:
        return self.state.validators

    async def fetch_stats(self, index: str) -> Result[ValidatorStats]:
        return await self._guard(lambda: self.provider.fetch_stats(index))

    def _next_id(self) -> int:
        now_ms = int(time.time() * 1000)
        existing = max((v.id for v in self.state.validators), default=0)
        return max(now_ms, existing + 1)

    async def add_validator(self, index: str, name: str | None = None) -> Result[ValidatorRecord]:
        """Track a validator after a successful initial fetch.

        A provider failure is returned as-is and nothing is created. A failed
        save still keeps the validator in memory.
        """
        index = str(index).strip()
        if not index:
            return Result.fail("Please enter a validator index or public key")

        fetched = await self.fetch_stats(index)
        if not fetched.success:
            return Result.fail(fetched.error or "Failed to fetch validator stats", fetched.kind)

        record = ValidatorRecord(
            id=self._next_id(),
            index=index,
            name=(name or "").strip() or f"Validator {len(self.state.validators) + 1}",
        )
        record.apply_stats(fetched.data)
        rescore(record)
        self.state.validators.append(record)
        logger.info(f"Added validator {record.index} as {record.name!r}")

        saved = await self.save()
        update_dashboard(self.state)
        if not saved.success:
            return Result(success=False, data=record, error=saved.error, kind=saved.kind)
        return Result.ok(record)

    async def rename_validator(self, validator_id: int, name: str) -> Result[ValidatorRecord]:
        name = name.strip()
        if not name:
            return Result.fail("Please enter a name")
        record = self.state.find(validator_id)
        if record is None:
            return Result.fail(f"No validator with id {validator_id}", "not_found")

        record.name = name
        saved = await self.save()
        update_dashboard(self.state)
        if not saved.success:
            return Result(success=False, data=record, error=saved.error, kind=saved.kind)
        return Result.ok(record)

    async def remove_validator(self, validator_id: int) -> Result[ValidatorRecord]:
        """Stop tracking a validator. Confirmation is the caller's job."""
        record = self.state.find(validator_id)
        if record is None:
            return Result.fail(f"No validator with id {validator_id}", "not_found")

        self.state.validators.remove(record)
        logger.info(f"Removed validator {record.index}")
        saved = await self.save()
        update_dashboard(self.state)
        if not saved.success:
            return Result(success=False, data=record, error=saved.error, kind=saved.kind)
        return Result.ok(record)

    async def save(self) -> Result[None]:
        return await self._guard(self._persist)

    async def refresh_all(self) -> RefreshReport:
        return await self.scheduler.run_cycle()

    def dashboard(self) -> DashboardSnapshot:
        return self.state.dashboard

    # Detail lookups

    def _lookup(self, validator_id: int) -> ValidatorRecord | None:
        return self.state.find(validator_id)

    async def get_income(self, validator_id: int) -> Result[IncomeSummary]:
        record = self._lookup(validator_id)
        if record is None:
            return Result.fail(f"No validator with id {validator_id}", "not_found")
        return await self._guard(lambda: self.provider.get_income(record.index))

    async def get_attestations(self, validator_id: int) -> Result[AttestationSummary]:
        record = self._lookup(validator_id)
        if record is None:
            return Result.fail(f"No validator with id {validator_id}", "not_found")
        return await self._guard(lambda: self.provider.get_attestations(record.index))

    async def get_proposals(self, validator_id: int) -> Result[ProposalSummary]:
        record = self._lookup(validator_id)
        if record is None:
            return Result.fail(f"No validator with id {validator_id}", "not_found")
        return await self._guard(lambda: self.provider.get_proposals(record.index))

    # Settings

    async def set_network(self, network: str) -> Result[list[ValidatorRecord]]:
        """Switch networks and load that network's validator set."""
        if not is_valid_network(network):
            return Result.fail(f"Unknown network {network!r}")
        try:
            await self.settings_store.set_network(network)
        except PersistenceError as e:
            return Result.fail(e)

        self.state.network = network
        await self._swap_provider(self.state.settings.api_key)
        return await self._load_validators()

    async def set_api_key(self, api_key: str) -> Result[None]:
        api_key = api_key.strip()
        try:
            await self.settings_store.set_api_key(api_key)
        except PersistenceError as e:
            return Result.fail(e)
        self.state.settings.api_key = api_key
        await self._swap_provider(api_key)
        return Result.ok()

    async def save_settings(self, app_settings: AppSettings) -> Result[AppSettings]:
        """Persist preferences and re-arm auto-refresh with the new interval."""
        try:
            await self.settings_store.save_app_settings(app_settings)
        except PersistenceError as e:
            return Result.fail(e)

        key_changed = app_settings.api_key != self.state.settings.api_key
        self.state.settings = app_settings
        if key_changed:
            await self._swap_provider(app_settings.api_key)
        if self.scheduler.is_running:
            self.scheduler.start(app_settings.refresh_interval)
        logger.info("Settings saved")
        return Result.ok(app_settings)

    async def reset_settings(self) -> Result[AppSettings]:
        """Restore default preferences and clear the stored API key."""
        return await self.save_settings(default_app_settings())

    async def toggle_theme(self) -> Result[AppSettings]:
        updated = self.state.settings.model_copy(deep=True)
        updated.display.theme = "light" if updated.display.theme == "dark" else "dark"
        return await self.save_settings(updated)
