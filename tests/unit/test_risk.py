"""
Unit tests for RiskPolicy.

Tests verify:
- Entry time-window gating
- Fee breakeven price move
"""

import math

import pytest

from updown.services.risk import RiskPolicy
from tests.fixtures.config import make_settings


class TestTimeWindow:
    """Tests for check_time_window."""

    @pytest.mark.parametrize("ms", [0, 5_000, 60_000])
    def test_blocks_inside_sell_window(self, risk_policy, ms):
        check = risk_policy.check_time_window(ms)
        assert check.can_trade is False
        assert "forced-exit window" in check.reason

    def test_allows_outside_sell_window(self, risk_policy):
        check = risk_policy.check_time_window(60_001)
        assert check.can_trade is True

    def test_no_upper_limit_by_default(self, risk_policy):
        assert risk_policy.check_time_window(3_600_000).can_trade is True

    def test_blocks_too_early(self):
        policy = RiskPolicy(make_settings(max_time_to_start_ms=300_000))

        assert policy.check_time_window(300_000).can_trade is True
        check = policy.check_time_window(300_001)
        assert check.can_trade is False
        assert "too early" in check.reason


class TestMinPriceMove:
    """Tests for calculate_min_price_move."""

    def test_no_fees_equals_target(self, risk_policy):
        assert risk_policy.calculate_min_price_move(45.0, 2.0, 5) == pytest.approx(2.0)

    def test_fees_on_both_legs(self):
        policy = RiskPolicy(make_settings(fee_rate=0.02))

        move = policy.calculate_min_price_move(45.0, 2.0, 5)

        # Net of fees on entry and exit the move clears the target
        fees = 0.02 * (45.0 + 45.0 + move)
        assert move - fees == pytest.approx(2.0)

    def test_zero_size_is_unreachable(self, risk_policy):
        assert math.isinf(risk_policy.calculate_min_price_move(45.0, 2.0, 0))
