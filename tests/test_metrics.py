"""
Unit tests for Performance Metrics Calculator.

Known inputs/outputs for every reported metric.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import numpy as np
import pytest

from tickreplay.core.metrics_types import PROFIT_FACTOR_UNBOUNDED
from tickreplay.core.models import EquitySample, Side, TradeEntry
from tickreplay.services.metrics import MetricsCalculator

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def curve(values, step=timedelta(minutes=1)):
    return [
        EquitySample(timestamp=T0 + i * step, total_value=Decimal(str(v)))
        for i, v in enumerate(values)
    ]


def closing(pnl, commission="1"):
    return TradeEntry(
        timestamp=T0,
        symbol="BTCUSDT",
        side=Side.SELL,
        quantity=Decimal("1"),
        price=Decimal("100"),
        commission=Decimal(commission),
        realized_pnl=Decimal(str(pnl)),
    )


def opening(commission="1"):
    return TradeEntry(
        timestamp=T0,
        symbol="BTCUSDT",
        side=Side.BUY,
        quantity=Decimal("1"),
        price=Decimal("100"),
        commission=Decimal(commission),
    )


class TestReturns:
    def test_total_return(self):
        calc = MetricsCalculator()
        metrics = calc.calculate(curve([10000, 10500, 11000]), [], Decimal("10000"))
        assert metrics.total_return == Decimal("0.1")
        assert metrics.return_percentage == Decimal("10.0")

    def test_empty_curve(self):
        metrics = MetricsCalculator().calculate([], [], Decimal("10000"))
        assert metrics.total_return == Decimal("0")
        assert metrics.volatility == 0.0
        assert metrics.sharpe_ratio == 0.0
        assert metrics.max_drawdown == Decimal("0")
        assert metrics.total_trades == 0
        assert metrics.profit_factor is None

    def test_returns_prefixed_by_initial_capital(self):
        returns = MetricsCalculator.calculate_returns(
            [Decimal("110"), Decimal("99")], Decimal("100")
        )
        assert returns == pytest.approx([0.1, -0.1])


class TestRiskAdjusted:
    def test_volatility_is_sample_std(self):
        returns = np.array([0.01, -0.02, 0.03, 0.0])
        assert MetricsCalculator.calculate_volatility(returns) == pytest.approx(
            float(np.std(returns, ddof=1))
        )

    def test_sharpe_zero_for_flat_curve(self):
        metrics = MetricsCalculator().calculate(
            curve([100, 100, 100]), [], Decimal("100")
        )
        assert metrics.sharpe_ratio == 0.0

    def test_sharpe_annualized_by_spacing(self):
        calc = MetricsCalculator()
        samples = curve([101, 100, 103, 104], step=timedelta(hours=1))
        returns = calc.calculate_returns([s.total_value for s in samples], Decimal("100"))

        expected = np.mean(returns) / np.std(returns, ddof=1) * np.sqrt(365 * 24)
        metrics = calc.calculate(samples, [], Decimal("100"))
        assert metrics.sharpe_ratio == pytest.approx(expected)

    def test_periods_per_year_fallbacks(self):
        calc = MetricsCalculator()
        same_instant = [
            EquitySample(timestamp=T0, total_value=Decimal("1")),
            EquitySample(timestamp=T0, total_value=Decimal("1")),
            EquitySample(timestamp=T0, total_value=Decimal("1")),
            EquitySample(timestamp=T0 + timedelta(seconds=30), total_value=Decimal("1")),
        ]
        # median spacing is 0, mean spacing is 10s
        assert calc.periods_per_year(same_instant) == pytest.approx(365 * 24 * 360)
        assert calc.periods_per_year(same_instant[:2]) == 1.0
        assert calc.periods_per_year([]) == 1.0


class TestDrawdown:
    def test_max_drawdown(self):
        dd = MetricsCalculator.calculate_max_drawdown(
            [Decimal(v) for v in (100, 120, 90, 110, 60, 130)], Decimal("100")
        )
        assert dd == Decimal("0.5")

    def test_monotonic_curve_has_no_drawdown(self):
        dd = MetricsCalculator.calculate_max_drawdown(
            [Decimal(v) for v in (100, 100, 101, 150)], Decimal("100")
        )
        assert dd == Decimal("0")

    def test_drawdown_from_initial_capital(self):
        dd = MetricsCalculator.calculate_max_drawdown([Decimal("75")], Decimal("100"))
        assert dd == Decimal("0.25")


class TestTradeStatistics:
    def test_win_rate_and_profit_factor(self):
        ledger = [opening(), closing("30"), opening(), closing("-10"), opening(), closing("20")]
        metrics = MetricsCalculator().calculate(curve([100]), ledger, Decimal("100"))

        assert metrics.total_trades == 6
        assert metrics.winning_trades == 2
        assert metrics.losing_trades == 1
        assert metrics.win_rate == Decimal("2") / Decimal("3")
        assert metrics.profit_factor == Decimal("5")
        assert metrics.total_pnl == Decimal("40")
        assert metrics.total_commission == Decimal("6")

    def test_profit_factor_without_losses_is_unbounded(self):
        assert MetricsCalculator.calculate_profit_factor([Decimal("5")]) == (
            PROFIT_FACTOR_UNBOUNDED
        )

    def test_profit_factor_undefined(self):
        assert MetricsCalculator.calculate_profit_factor([]) is None
        assert MetricsCalculator.calculate_profit_factor([Decimal("0")]) is None

    def test_only_losses(self):
        assert MetricsCalculator.calculate_profit_factor([Decimal("-5")]) == Decimal("0")

    def test_to_dict_renders_sentinel(self):
        metrics = MetricsCalculator().calculate(
            curve([120]), [opening(), closing("20")], Decimal("100")
        )
        payload = metrics.to_dict()
        assert payload["profit_factor"] == "Infinity"
        assert payload["total_return"] == "0.2"
        assert payload["win_rate"] == "1"
