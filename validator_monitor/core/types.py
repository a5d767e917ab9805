"""Data models for the validator monitor."""

import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TrendDirection = Literal["positive", "negative", "neutral"]
StatusCategory = Literal["active", "pending", "exited", "withdrawing", "inactive"]

_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_number(value: object) -> float | None:
    """Read the leading number of a display value such as ``"32.5000 ETH"``.

    Returns None when nothing numeric leads the value.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER.match(str(value))
    if match is None:
        return None
    return float(match.group(1))


def to_fixed(value: float, digits: int) -> str:
    """Fixed-point text with ties rounded away from zero on the exact binary value."""
    quantum = Decimal(1).scaleb(-digits)
    return str(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


class ValidatorStats(BaseModel):
    """Normalized stats fragment produced from one provider payload."""

    balance: str
    status: str
    effectiveness: str
    attestations: int = 0
    proposals: int = 0
    uptime: str


class ValidatorRecord(BaseModel):
    """One tracked validator, as persisted in ``validators_<network>.json``."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    index: str
    name: str
    balance: str = "N/A"
    status: str = "unknown"
    effectiveness: str = "N/A"
    uptime: str = "N/A"
    attestations: int = 0
    proposals: int = 0
    health_score: int = Field(default=0, alias="healthScore")

    @field_validator("index", mode="before")
    @classmethod
    def _index_as_text(cls, value: object) -> str:
        return str(value).strip()

    def apply_stats(self, stats: ValidatorStats) -> None:
        """Overwrite every normalized field with fresh provider data."""
        self.balance = stats.balance
        self.status = stats.status
        self.effectiveness = stats.effectiveness
        self.uptime = stats.uptime
        self.attestations = stats.attestations
        self.proposals = stats.proposals

    @property
    def balance_eth(self) -> float | None:
        return parse_number(self.balance)

    @property
    def effectiveness_pct(self) -> float | None:
        return parse_number(self.effectiveness)

    @property
    def uptime_pct(self) -> float | None:
        return parse_number(self.uptime)

    @property
    def is_active(self) -> bool:
        return self.status.lower().startswith("active")

    @property
    def status_category(self) -> StatusCategory:
        # Beaconcha.in statuses: active_ongoing, active_exiting, active_slashed,
        # pending_initialized, pending_queued, exited_unslashed, exited_slashed,
        # withdrawal_possible, withdrawal_done
        if self.status.startswith("active_"):
            return "active"
        if self.status.startswith("pending_"):
            return "pending"
        if self.status.startswith("exited_"):
            return "exited"
        if self.status.startswith("withdrawal_"):
            return "withdrawing"
        return "inactive"

    @property
    def display_name(self) -> str:
        return self.name or f"#{self.index}"

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True)


class HealthBand(BaseModel):
    """Display band for a health score."""

    key: Literal["excellent", "good", "warning", "critical"]
    label: str


class HealthAlert(BaseModel):
    """Raised when a refresh drops a validator's health sharply."""

    validator_id: int
    index: str
    name: str
    old_score: int
    new_score: int
    band: HealthBand
    raised_at: datetime = Field(default_factory=datetime.now)

    @property
    def message(self) -> str:
        return (
            f"{self.name or self.index}: health dropped from {self.old_score} "
            f"to {self.new_score} ({self.band.label})"
        )


class Trend(BaseModel):
    """A trend line under a dashboard stat."""

    text: str
    direction: TrendDirection = "neutral"
    delta: float | None = None


class DashboardSnapshot(BaseModel):
    """Fleet-wide aggregate over the tracked validator set."""

    validator_count: int = 0
    total_balance: float = 0.0
    active_count: int = 0
    offline_count: int = 0
    avg_effectiveness: float = 0.0
    avg_uptime: float = 0.0
    min_uptime: float | None = None
    max_uptime: float | None = None
    uptime_samples: int = 0

    best_validator_id: int | None = None
    best_validator_name: str | None = None
    best_effectiveness: float | None = None

    balance_trend: Trend = Trend(text="No data")
    active_trend: Trend = Trend(text="0 offline")
    effectiveness_trend: Trend = Trend(text="No data")
    uptime_trend: Trend = Trend(text="No data")


class NotificationSettings(BaseModel):
    health_drop: bool = True
    health_threshold: int = Field(default=85, ge=0, le=100)
    offline: bool = True
    proposal: bool = True
    miss_rate: bool = True
    miss_rate_threshold: float = Field(default=2.0, ge=0)
    balance_drop: bool = False


class DisplaySettings(BaseModel):
    detailed_stats: bool = True
    compact_mode: bool = False
    theme: Literal["dark", "light"] = "dark"


class AppSettings(BaseModel):
    """User preferences, changed only through explicit save/reset."""

    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    display: DisplaySettings = Field(default_factory=DisplaySettings)
    refresh_interval: int = Field(default=300_000, gt=0)  # milliseconds
    api_key: str = ""


class IncomeSummary(BaseModel):
    """Income breakdown in ETH, formatted to 4 decimals."""

    total: str
    attestations: str
    proposals: str
    sync_committee: str
    daily_average: str = "N/A"
    note: str | None = None


class AttestationEntry(BaseModel):
    epoch: int | None = None
    slot: int | None = None
    status: Literal["success", "missed"]


class AttestationSummary(BaseModel):
    total: int
    successful: int
    missed: int
    miss_rate: str
    recent: list[AttestationEntry] = []
    last_missed: str
    status: str


class ProposalEntry(BaseModel):
    slot: int | None = None
    epoch: int | None = None
    status: Literal["proposed", "missed"]
    reward: str


class ProposalSummary(BaseModel):
    total: int
    total_rewards: str
    avg_reward: str
    proposals: list[ProposalEntry] = []
    last_proposal: str
    status: str


class RefreshFailure(BaseModel):
    validator_id: int
    index: str
    error: str
    kind: str


class RefreshReport(BaseModel):
    """Outcome of one refresh cycle."""

    attempted: list[int] = []
    updated: list[int] = []
    failures: list[RefreshFailure] = []
    alerts: list[HealthAlert] = []
    persisted: bool = False
    persistence_error: str | None = None
    dashboard: DashboardSnapshot | None = None
