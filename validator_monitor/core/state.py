"""In-memory application state owned by the monitor controller."""

from dataclasses import dataclass, field
from datetime import datetime

from .types import AppSettings, DashboardSnapshot, ValidatorRecord


@dataclass
class AppState:
    """Everything the session mutates.

    ``validators`` is the source of truth for the session even when the
    durable copy fails to update.
    """

    network: str = "mainnet"
    validators: list[ValidatorRecord] = field(default_factory=list)
    settings: AppSettings = field(default_factory=AppSettings)
    previous_snapshot: DashboardSnapshot | None = None
    dashboard: DashboardSnapshot = field(default_factory=DashboardSnapshot)
    last_refresh: datetime | None = None

    def find(self, validator_id: int) -> ValidatorRecord | None:
        return next((v for v in self.validators if v.id == validator_id), None)
