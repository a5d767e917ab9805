"""Tests for health scoring and banding."""

import pytest

from conftest import make_record
from validator_monitor.services.health import (
    calculate_health_score,
    health_band,
    rescore,
    score_record,
    should_alert,
)


class TestCalculateHealthScore:
    def test_no_penalty_at_low_income_boundary(self):
        assert calculate_health_score(100, 32.1) == 100

    def test_effectiveness_and_miss_rate_penalties(self):
        # 100 - 20 (effectiveness) - 4.5 (miss-rate proxy) = 75.5
        assert calculate_health_score(50, 32.5) == 76

    def test_half_rounds_away_from_zero(self):
        # 100 - 20 - 15 - 4.5 = 60.5; banker's rounding would give 60
        assert calculate_health_score(50, 32.05) == 61

    def test_balance_below_stake_costs_thirty(self):
        assert calculate_health_score(100, 31.5) == 70
        assert calculate_health_score(50, 31.5) == 46

    def test_exactly_32_is_low_income_not_slashed(self):
        assert calculate_health_score(100, 32.0) == 85

    def test_low_income_band(self):
        assert calculate_health_score(100, 32.05) == 85

    def test_miss_rate_proxy_only_below_99(self):
        # 99.5: only 0.2 effectiveness penalty
        assert calculate_health_score(99.5, 33) == 100
        # 98: 0.8 + (2 * 0.3 * 0.3) = 0.98
        assert calculate_health_score(98, 33) == 99

    def test_clamped_to_range(self):
        assert calculate_health_score(-200, 10) == 0
        assert calculate_health_score(150, 40) == 100

    @pytest.mark.parametrize("effectiveness", [0, 12.5, 50, 87.3, 98.9, 99, 100])
    @pytest.mark.parametrize("balance", [0.0, 16, 31.99, 32, 32.09, 32.1, 35])
    def test_always_integer_in_range_and_deterministic(self, effectiveness, balance):
        score = calculate_health_score(effectiveness, balance)
        assert isinstance(score, int)
        assert 0 <= score <= 100
        assert score == calculate_health_score(effectiveness, balance)


class TestScoreRecord:
    def test_parses_display_values(self):
        record = make_record(effectiveness="50.0%", balance="32.5000 ETH")
        assert score_record(record) == 76

    def test_unparsable_effectiveness_counts_as_zero(self):
        # 100 - 40 - 0 (balance 32.5) - 9
        record = make_record(effectiveness="N/A", balance="32.5000 ETH")
        assert score_record(record) == 51

    def test_missing_balance_counts_as_stake(self):
        # 32 ETH is below 32.1: low income, not slashed
        for balance in ("N/A", "0.0000 ETH"):
            record = make_record(effectiveness="100.0%", balance=balance)
            assert score_record(record) == 85

    def test_rescore_caches_on_record(self):
        record = make_record(effectiveness="100.0%", balance="31.0000 ETH", healthScore=100)
        assert rescore(record) == 70
        assert record.health_score == 70


class TestHealthBand:
    @pytest.mark.parametrize(
        "score, key, label",
        [
            (100, "excellent", "Excellent"),
            (95, "excellent", "Excellent"),
            (94, "good", "Good"),
            (85, "good", "Good"),
            (84, "warning", "Warning"),
            (70, "warning", "Warning"),
            (69, "critical", "Critical"),
            (0, "critical", "Critical"),
        ],
    )
    def test_bands(self, score, key, label):
        band = health_band(score)
        assert band.key == key
        assert band.label == label


class TestShouldAlert:
    def test_large_drop_below_threshold(self):
        assert should_alert(100, 80, threshold=85)
        assert should_alert(91, 80, threshold=85)

    def test_drop_must_exceed_ten_points(self):
        assert not should_alert(90, 80, threshold=85)
        assert not should_alert(88, 80, threshold=85)

    def test_score_above_threshold_never_alerts(self):
        assert not should_alert(100, 86, threshold=85)
