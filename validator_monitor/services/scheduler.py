"""Periodic refresh of every tracked validator."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

from ..core.errors import MonitorError, PersistenceError
from ..core.state import AppState
from ..core.types import HealthAlert, RefreshFailure, RefreshReport, ValidatorStats
from .dashboard import update_dashboard
from .health import health_band, rescore, should_alert

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]
AlertSink = Callable[[HealthAlert], None]
CycleListener = Callable[[RefreshReport], None]


class PeriodicTask:
    """
    Runs an async callback every ``interval`` seconds.

    At most one timer is armed: ``start`` always tears down the previous one.
    ``stop`` prevents further ticks but lets a tick that is already running
    finish; in-flight network calls are not aborted. ``sleep`` is injectable
    so tests can drive ticks with a fake clock.
    """

    def __init__(self, callback: Callable[[], Awaitable[Any]], sleep: Sleep = asyncio.sleep):
        self._callback = callback
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._ticking: set[asyncio.Task] = set()
        self.interval: float | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None

    def start(self, interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.stop()
        self.interval = interval
        self._task = asyncio.get_running_loop().create_task(self._run(interval))

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        if task not in self._ticking:
            task.cancel()

    async def _run(self, interval: float) -> None:
        me = asyncio.current_task()
        while self._task is me:
            await self._sleep(interval)
            if self._task is not me:
                break
            self._ticking.add(me)
            try:
                await self._callback()
            except Exception:
                logger.exception("Periodic callback failed")
            finally:
                self._ticking.discard(me)


class RefreshScheduler:
    """Fetches fresh stats for the whole tracked set on a fixed interval."""

    def __init__(
        self,
        state: AppState,
        fetch_stats: Callable[[str], Awaitable[ValidatorStats]],
        persist: Callable[[], Awaitable[None]],
        sleep: Sleep = asyncio.sleep,
    ):
        self.state = state
        self._fetch_stats = fetch_stats
        self._persist = persist
        self._alert_sinks: list[AlertSink] = []
        self._cycle_listeners: list[CycleListener] = []
        self._timer = PeriodicTask(self.run_cycle, sleep=sleep)
        self.last_report: RefreshReport | None = None

    @property
    def is_running(self) -> bool:
        return self._timer.is_running

    @property
    def interval_ms(self) -> int | None:
        return int(self._timer.interval * 1000) if self._timer.interval else None

    def add_alert_sink(self, sink: AlertSink) -> None:
        self._alert_sinks.append(sink)

    def add_cycle_listener(self, listener: CycleListener) -> None:
        self._cycle_listeners.append(listener)

    def start(self, interval_ms: int | None = None) -> None:
        """Arm (or re-arm) the timer; defaults to the user's refresh interval."""
        interval_ms = interval_ms or self.state.settings.refresh_interval
        self._timer.start(interval_ms / 1000)
        logger.info(f"Auto-refresh every {interval_ms / 1000:.0f}s")

    def stop(self) -> None:
        if self._timer.is_running:
            logger.info("Auto-refresh stopped")
        self._timer.stop()

    def _emit(self, alert: HealthAlert) -> None:
        logger.warning(f"Health alert: {alert.message}")
        for sink in self._alert_sinks:
            sink(alert)

    async def run_cycle(self) -> RefreshReport:
        """Refresh every tracked validator, one at a time, in tracked order.

        A failed fetch is logged and skipped. The set is persisted once, and
        only when at least one validator was updated.
        """
        report = RefreshReport()
        notifications = self.state.settings.notifications

        # Iterate a copy: a validator removed mid-cycle must not come back
        for validator in list(self.state.validators):
            report.attempted.append(validator.id)
            try:
                stats = await self._fetch_stats(validator.index)
            except MonitorError as e:
                logger.warning(f"Error refreshing validator {validator.index}: {e.message}")
                report.failures.append(
                    RefreshFailure(
                        validator_id=validator.id,
                        index=validator.index,
                        error=e.message,
                        kind=e.kind,
                    )
                )
                continue
            except Exception as e:
                logger.exception(f"Unexpected error refreshing validator {validator.index}")
                report.failures.append(
                    RefreshFailure(
                        validator_id=validator.id,
                        index=validator.index,
                        error=str(e),
                        kind="provider_error",
                    )
                )
                continue

            old_score = validator.health_score or 100
            validator.apply_stats(stats)
            new_score = rescore(validator)

            if notifications.health_drop and should_alert(
                old_score, new_score, notifications.health_threshold
            ):
                alert = HealthAlert(
                    validator_id=validator.id,
                    index=validator.index,
                    name=validator.name,
                    old_score=old_score,
                    new_score=new_score,
                    band=health_band(new_score),
                )
                report.alerts.append(alert)
                self._emit(alert)

            report.updated.append(validator.id)

        if report.updated:
            try:
                await self._persist()
                report.persisted = True
            except PersistenceError as e:
                logger.error(f"Refreshed validators could not be saved: {e.message}")
                report.persistence_error = e.message
            report.dashboard = update_dashboard(self.state)
            self.state.last_refresh = datetime.now()

        logger.info(
            f"Refresh cycle: {len(report.updated)}/{len(report.attempted)} validators updated"
        )
        self.last_report = report
        for listener in self._cycle_listeners:
            listener(report)
        return report
