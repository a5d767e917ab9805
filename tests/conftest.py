"""Shared fixtures: isolated data directory, fake Beaconcha.in transport, fake clock."""

import asyncio
import json

import httpx
import pytest

from validator_monitor.core.config import get_settings
from validator_monitor.core.types import ValidatorRecord
from validator_monitor.data.database import SettingsStore
from validator_monitor.data.storage import ValidatorStore
from validator_monitor.services.monitor import ValidatorMonitor

GWEI = 1_000_000_000


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every store at a temp dir and ignore the developer's environment."""
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("BEACONCHAIN_API_KEY", "")
    monkeypatch.setenv("DEFAULT_NETWORK", "mainnet")
    monkeypatch.delenv("DEFAULT_REFRESH_INTERVAL_MS", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def validator_payload(**overrides) -> dict:
    """A Beaconcha.in /validator/{id} ``data`` object."""
    payload = {
        "validatorindex": 123456,
        "status": "active_online",
        "balance": 32_500_000_000,
        "effectivebalance": 32 * GWEI,
        "attestationscount": 1000,
        "missedattestations": 5,
        "proposalscount": 2,
    }
    payload.update(overrides)
    return payload


def make_record(validator_id: int = 1, index: str = "100", **fields) -> ValidatorRecord:
    defaults = {
        "name": f"Validator {validator_id}",
        "balance": "32.5000 ETH",
        "status": "active_ongoing",
        "effectiveness": "100.0%",
        "uptime": "99.50%",
        "attestations": 1000,
        "proposals": 1,
        "healthScore": 100,
    }
    defaults.update(fields)
    return ValidatorRecord(id=validator_id, index=index, **defaults)


class FakeBeaconchain:
    """Routes requests by validator identifier and path suffix to canned responses."""

    def __init__(self):
        self.routes: dict[str, object] = {}
        self.requests: list[httpx.Request] = []

    def add(self, path: str, response) -> None:
        """``response`` is a payload dict, an ``httpx.Response`` or an exception."""
        self.routes[path] = response

    def validator(self, identifier: str, **overrides) -> None:
        self.add(f"/api/v1/validator/{identifier}", {"status": "OK", "data": validator_payload(**overrides)})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get(request.url.path)
        if response is None:
            return httpx.Response(200, json={"status": "OK", "data": None})
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def beaconchain():
    return FakeBeaconchain()


@pytest.fixture
async def http_client(beaconchain):
    client = beaconchain.client()
    yield client
    await client.aclose()


@pytest.fixture
def validator_store(tmp_path):
    return ValidatorStore(tmp_path / "data")


@pytest.fixture
def settings_store(tmp_path):
    return SettingsStore(tmp_path / "data" / "settings.db")


class FakeClock:
    """Injectable sleep: each sleep blocks until the test calls ``advance``."""

    def __init__(self):
        self.sleeps: list[float] = []
        self._waiters: list[asyncio.Future] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    async def advance(self) -> None:
        await settle()
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
        await settle()


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def monitor(validator_store, settings_store, http_client, clock):
    monitor = ValidatorMonitor(
        validator_store=validator_store,
        settings_store=settings_store,
        http_client=http_client,
        sleep=clock.sleep,
    )
    await monitor.load()
    yield monitor
    await monitor.close()


def read_saved(validator_store: ValidatorStore, network: str = "mainnet") -> dict:
    return json.loads(validator_store.path_for(network).read_text())
