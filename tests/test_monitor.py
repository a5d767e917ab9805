"""Tests for the monitor controller."""

import pytest

from conftest import GWEI, make_record, read_saved
from validator_monitor.core.errors import PersistenceError
from validator_monitor.core.types import AppSettings
from validator_monitor.services.monitor import ValidatorMonitor


class TestAddValidator:
    async def test_adds_after_successful_fetch(self, monitor, beaconchain, validator_store):
        beaconchain.validator("123456")

        result = await monitor.add_validator("123456", "Main")

        assert result.success
        record = result.data
        assert record.name == "Main"
        assert record.balance == "32.5000 ETH"
        assert record.health_score == 100
        assert monitor.validators == [record]
        saved = read_saved(validator_store)
        assert saved["validators"][0]["index"] == "123456"
        assert monitor.dashboard().validator_count == 1

    async def test_default_name_uses_position(self, monitor, beaconchain):
        beaconchain.validator("1")
        beaconchain.validator("2")
        await monitor.add_validator("1")
        result = await monitor.add_validator("2", "   ")
        assert result.data.name == "Validator 2"

    async def test_ids_are_unique_and_increasing(self, monitor, beaconchain):
        beaconchain.validator("1")
        beaconchain.validator("2")
        first = (await monitor.add_validator("1")).data
        second = (await monitor.add_validator("2")).data
        assert second.id > first.id

    async def test_blank_index_rejected(self, monitor, beaconchain):
        result = await monitor.add_validator("   ")
        assert not result.success
        assert result.kind == "invalid_input"
        assert beaconchain.requests == []

    async def test_overflowing_balance_is_added_without_balance(self, monitor, beaconchain):
        beaconchain.validator("7", balance=10**400)

        result = await monitor.add_validator("7")

        assert result.success
        assert result.data.balance == "N/A"

    async def test_unknown_validator_is_not_added(self, monitor, validator_store):
        result = await monitor.add_validator("999")
        assert not result.success
        assert result.kind == "not_found"
        assert monitor.validators == []
        assert not validator_store.path_for("mainnet").exists()

    async def test_failed_save_keeps_validator_in_memory(self, monitor, beaconchain, monkeypatch):
        beaconchain.validator("1")

        def broken_save(network, validators):
            raise PersistenceError("disk full")

        monkeypatch.setattr(monitor.validator_store, "save", broken_save)
        result = await monitor.add_validator("1")

        assert not result.success
        assert result.kind == "persistence_error"
        assert result.data is not None
        assert len(monitor.validators) == 1


@pytest.fixture
async def tracked(monitor, beaconchain):
    beaconchain.validator("1")
    beaconchain.validator("2")
    first = (await monitor.add_validator("1", "One")).data
    second = (await monitor.add_validator("2", "Two")).data
    return first, second


class TestEditValidators:
    async def test_rename(self, monitor, tracked, validator_store):
        first, _ = tracked
        result = await monitor.rename_validator(first.id, "  Renamed ")
        assert result.success
        assert result.data.name == "Renamed"
        assert read_saved(validator_store)["validators"][0]["name"] == "Renamed"

    async def test_rename_rejects_blank(self, monitor, tracked):
        first, _ = tracked
        result = await monitor.rename_validator(first.id, "  ")
        assert not result.success
        assert first.name == "One"

    async def test_rename_unknown(self, monitor, tracked):
        result = await monitor.rename_validator(42, "x")
        assert result.kind == "not_found"

    async def test_remove(self, monitor, tracked, validator_store):
        first, second = tracked
        result = await monitor.remove_validator(first.id)
        assert result.success
        assert monitor.validators == [second]
        assert [v["id"] for v in read_saved(validator_store)["validators"]] == [second.id]
        assert monitor.dashboard().validator_count == 1

    async def test_remove_unknown(self, monitor, tracked):
        result = await monitor.remove_validator(42)
        assert result.kind == "not_found"
        assert len(monitor.validators) == 2

    async def test_remove_last_resets_dashboard(self, monitor, tracked):
        for record in tracked:
            await monitor.remove_validator(record.id)
        assert monitor.dashboard().validator_count == 0
        assert monitor.state.previous_snapshot is None


class TestLoad:
    async def test_loads_and_rescores_saved_set(self, validator_store, settings_store, http_client):
        validator_store.save(
            "mainnet",
            [make_record(1, "100", balance="31.0000 ETH", healthScore=100)],
        )
        monitor = ValidatorMonitor(validator_store, settings_store, http_client)

        result = await monitor.load()

        assert result.success
        assert monitor.validators[0].health_score == 70
        assert monitor.dashboard().validator_count == 1
        await monitor.close()

    async def test_corrupt_file_starts_empty(self, validator_store, settings_store, http_client):
        path = validator_store.path_for("mainnet")
        path.parent.mkdir(parents=True)
        path.write_text("garbage")
        monitor = ValidatorMonitor(validator_store, settings_store, http_client)

        result = await monitor.load()

        assert not result.success
        assert result.kind == "persistence_error"
        assert monitor.validators == []
        await monitor.close()

    async def test_context_manager(self, validator_store, settings_store, http_client):
        validator_store.save("mainnet", [make_record()])
        async with ValidatorMonitor(validator_store, settings_store, http_client) as monitor:
            assert len(monitor.validators) == 1


class TestRefresh:
    async def test_refresh_all_updates_and_persists(self, monitor, beaconchain, validator_store):
        beaconchain.validator("1")
        await monitor.add_validator("1")
        beaconchain.validator("1", balance=33 * GWEI)

        report = await monitor.refresh_all()

        assert len(report.updated) == 1
        assert monitor.validators[0].balance == "33.0000 ETH"
        assert read_saved(validator_store)["validators"][0]["balance"] == "33.0000 ETH"
        assert monitor.dashboard().balance_trend.text == "+0.5000 ETH"
        assert monitor.state.last_refresh is not None

    async def test_alert_sink(self, monitor, beaconchain):
        beaconchain.validator("1")
        await monitor.add_validator("1")
        alerts = []
        monitor.add_alert_sink(alerts.append)

        beaconchain.validator("1", balance=31 * GWEI, effectivebalance=16 * GWEI)
        await monitor.refresh_all()

        assert len(alerts) == 1
        assert alerts[0].new_score < 85

    async def test_timer_refreshes(self, monitor, beaconchain, clock):
        beaconchain.validator("1")
        await monitor.add_validator("1")
        requests = len(beaconchain.requests)

        monitor.start(1000)
        await clock.advance()
        monitor.stop()

        assert len(beaconchain.requests) == requests + 1


class TestDetails:
    async def test_detail_lookups(self, monitor, beaconchain):
        beaconchain.validator("1", proposalscount=2)
        record = (await monitor.add_validator("1")).data

        income = await monitor.get_income(record.id)
        proposals = await monitor.get_proposals(record.id)
        attestations = await monitor.get_attestations(record.id)

        assert income.success and income.data.note == "Estimated from balance"
        assert proposals.data.total == 2
        assert attestations.data.total == 1000

    async def test_non_numeric_attestation_epoch(self, monitor, beaconchain):
        beaconchain.validator("1")
        record = (await monitor.add_validator("1")).data
        beaconchain.add(
            "/api/v1/validator/1/attestations",
            {"status": "OK", "data": [{"epoch": "n/a", "status": 0, "inclusionslot": 0}]},
        )

        result = await monitor.get_attestations(record.id)

        assert result.success
        assert result.data.missed == 1
        assert result.data.recent[0].epoch is None

    async def test_malformed_detail_is_provider_error(self, monitor, beaconchain, monkeypatch):
        beaconchain.validator("1")
        record = (await monitor.add_validator("1")).data
        beaconchain.add("/api/v1/validator/1/proposals", {"status": "OK", "data": [{"slot": 1}]})

        def broken(proposals):
            raise ValueError("unexpected entry")

        monkeypatch.setattr(monitor.provider, "_summarize_proposals", broken)
        result = await monitor.get_proposals(record.id)

        assert not result.success
        assert result.kind == "provider_error"

    async def test_unknown_validator(self, monitor):
        result = await monitor.get_income(42)
        assert result.kind == "not_found"


class TestSettings:
    async def test_switch_network_loads_its_set(self, monitor, validator_store, settings_store):
        validator_store.save("holesky", [make_record(9, "900")])

        result = await monitor.set_network("holesky")

        assert result.success
        assert monitor.state.network == "holesky"
        assert [v.id for v in monitor.validators] == [9]
        assert monitor.provider.network == "holesky"
        assert await settings_store.get_network() == "holesky"

    async def test_unknown_network(self, monitor):
        result = await monitor.set_network("ropsten")
        assert not result.success
        assert monitor.state.network == "mainnet"

    async def test_api_key_reaches_requests(self, monitor, beaconchain, settings_store):
        beaconchain.validator("1")
        await monitor.set_api_key("secret")
        await monitor.fetch_stats("1")
        assert beaconchain.requests[-1].headers["apikey"] == "secret"
        assert await settings_store.get_api_key() == "secret"

    async def test_save_settings_rearms_timer(self, monitor, clock):
        monitor.start()
        settings = AppSettings(refresh_interval=60_000)

        result = await monitor.save_settings(settings)

        assert result.success
        assert monitor.scheduler.interval_ms == 60_000
        monitor.stop()

    async def test_save_settings_does_not_start_timer(self, monitor):
        await monitor.save_settings(AppSettings(refresh_interval=60_000))
        assert not monitor.scheduler.is_running

    async def test_settings_survive_reload(self, monitor, validator_store, settings_store, http_client):
        settings = AppSettings()
        settings.notifications.health_threshold = 70
        await monitor.save_settings(settings)

        reloaded = ValidatorMonitor(validator_store, settings_store, http_client)
        await reloaded.load()

        assert reloaded.state.settings.notifications.health_threshold == 70
        await reloaded.close()

    async def test_api_key_stored_once(self, monitor, settings_store):
        await monitor.save_settings(AppSettings(api_key="secret"))

        blob = await settings_store.get("app_settings")

        assert "api_key" not in blob
        assert await settings_store.get_api_key() == "secret"

    async def test_swap_during_refresh_is_recorded_as_failure(self, validator_store, settings_store, monkeypatch):
        monitor = ValidatorMonitor(validator_store, settings_store)
        await monitor.load()
        monitor.state.validators = [make_record(1, "100"), make_record(2, "200")]

        async def fetch_then_swap(index):
            await monitor.set_api_key("rotated")
            return await old_provider.fetch_stats(index)

        old_provider = monitor.provider
        monkeypatch.setattr(monitor.scheduler, "_fetch_stats", fetch_then_swap)

        report = await monitor.refresh_all()

        assert [f.kind for f in report.failures] == ["provider_error", "provider_error"]
        assert "client closed" in report.failures[0].error
        assert report.updated == []
        await monitor.close()

    async def test_reset_settings(self, monitor):
        settings = AppSettings(api_key="secret")
        settings.display.theme = "light"
        await monitor.save_settings(settings)

        result = await monitor.reset_settings()

        assert result.data == AppSettings()
        assert monitor.state.settings.api_key == ""
        assert monitor.provider.api_key == ""

    async def test_toggle_theme(self, monitor):
        result = await monitor.toggle_theme()
        assert result.data.display.theme == "light"
        result = await monitor.toggle_theme()
        assert result.data.display.theme == "dark"
