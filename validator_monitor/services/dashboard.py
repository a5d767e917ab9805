"""Fleet-wide dashboard aggregates and trend lines."""

from datetime import datetime

from ..core.state import AppState
from ..core.types import DashboardSnapshot, Trend, ValidatorRecord, to_fixed

# Rough average daily income per validator, shown before there is history
ESTIMATED_DAILY_INCOME_ETH = 0.0113

BALANCE_EPSILON = 0.0001
EFFECTIVENESS_EPSILON = 0.05


def _signed(value: float, digits: int, unit: str) -> str:
    text = to_fixed(value, digits)
    return f"+{text}{unit}" if value > 0 else f"{text}{unit}"


def balance_trend(total_balance: float, count: int, previous: DashboardSnapshot | None) -> Trend:
    if previous is None:
        estimate = count * ESTIMATED_DAILY_INCOME_ETH
        return Trend(text=f"Est. ~{to_fixed(estimate, 4)} ETH/day", direction="positive")

    delta = total_balance - previous.total_balance
    if abs(delta) < BALANCE_EPSILON:
        return Trend(text="No change", direction="neutral", delta=0.0)
    return Trend(
        text=_signed(delta, 4, " ETH"),
        direction="positive" if delta > 0 else "negative",
        delta=delta,
    )


def active_trend(offline_count: int) -> Trend:
    if offline_count == 0:
        return Trend(text="All online", direction="positive")
    return Trend(text=f"{offline_count} offline", direction="negative")


def effectiveness_trend(avg_effectiveness: float, previous: DashboardSnapshot | None) -> Trend:
    if previous is None:
        if avg_effectiveness >= 99.5:
            return Trend(text="Excellent", direction="positive")
        if avg_effectiveness >= 98:
            return Trend(text="Good", direction="positive")
        if avg_effectiveness >= 95:
            return Trend(text="Fair", direction="neutral")
        return Trend(text="Needs attention", direction="negative")

    delta = avg_effectiveness - previous.avg_effectiveness
    if abs(delta) < EFFECTIVENESS_EPSILON:
        return Trend(text="Stable", direction="neutral", delta=0.0)
    return Trend(
        text=_signed(delta, 1, "%"),
        direction="positive" if delta > 0 else "negative",
        delta=delta,
    )


def _uptime_direction(lowest: float) -> str:
    if lowest >= 99:
        return "positive"
    if lowest >= 95:
        return "neutral"
    return "negative"


def uptime_trend(uptimes: list[float]) -> Trend:
    if len(uptimes) > 1:
        lowest, highest = min(uptimes), max(uptimes)
        return Trend(
            text=f"Range: {to_fixed(lowest, 1)}-{to_fixed(highest, 1)}%",
            direction=_uptime_direction(lowest),
        )
    if len(uptimes) == 1:
        return Trend(text=f"Current: {to_fixed(uptimes[0], 1)}%", direction=_uptime_direction(uptimes[0]))
    return Trend(text="No data", direction="neutral")


def calculate_dashboard(
    validators: list[ValidatorRecord], previous: DashboardSnapshot | None = None
) -> DashboardSnapshot:
    """Aggregate the tracked set.

    Averages divide by the whole set, so a validator without a parseable
    value pulls the average down. Min/max uptime only consider parseable
    values. The best validator is the first with the highest effectiveness.
    """
    if not validators:
        return DashboardSnapshot()

    total_balance = 0.0
    total_effectiveness = 0.0
    total_uptime = 0.0
    active_count = 0
    uptimes: list[float] = []
    best: ValidatorRecord | None = None
    best_effectiveness = -1.0

    for validator in validators:
        balance = validator.balance_eth
        if balance is not None:
            total_balance += balance

        if validator.is_active:
            active_count += 1

        effectiveness = validator.effectiveness_pct
        if effectiveness is not None:
            total_effectiveness += effectiveness
            if effectiveness > best_effectiveness:
                best_effectiveness = effectiveness
                best = validator

        uptime = validator.uptime_pct
        if uptime is not None:
            total_uptime += uptime
            uptimes.append(uptime)

    count = len(validators)
    avg_effectiveness = total_effectiveness / count
    offline_count = count - active_count

    return DashboardSnapshot(
        validator_count=count,
        total_balance=total_balance,
        active_count=active_count,
        offline_count=offline_count,
        avg_effectiveness=avg_effectiveness,
        avg_uptime=total_uptime / count,
        min_uptime=min(uptimes) if uptimes else None,
        max_uptime=max(uptimes) if uptimes else None,
        uptime_samples=len(uptimes),
        best_validator_id=best.id if best is not None else None,
        best_validator_name=best.display_name if best is not None else None,
        best_effectiveness=best_effectiveness if best is not None else None,
        balance_trend=balance_trend(total_balance, count, previous),
        active_trend=active_trend(offline_count),
        effectiveness_trend=effectiveness_trend(avg_effectiveness, previous),
        uptime_trend=uptime_trend(uptimes),
    )


def update_dashboard(state: AppState) -> DashboardSnapshot:
    """Recompute the dashboard and keep it as the previous snapshot.

    An empty set resets the previous snapshot so the next fleet starts fresh.
    """
    snapshot = calculate_dashboard(state.validators, state.previous_snapshot)
    state.previous_snapshot = snapshot if state.validators else None
    state.dashboard = snapshot
    return snapshot


def last_refresh_label(last_refresh: datetime | None, now: datetime | None = None) -> str:
    if last_refresh is None:
        return "Never"
    minutes = int(((now or datetime.now()) - last_refresh).total_seconds() // 60)
    if minutes >= 60:
        return f"{minutes // 60}h ago"
    if minutes > 0:
        return f"{minutes}m ago"
    return "Just now"
