"""
Performance Metrics Calculator Service.

Pure functions of (equity curve, trade ledger, initial capital). Exact ratios
stay in Decimal; the statistical parts (volatility, Sharpe) go through numpy.
"""

from decimal import Decimal
from typing import Optional, Sequence

import numpy as np

from tickreplay.core.constants import SECONDS_PER_YEAR
from tickreplay.core.metrics_types import PROFIT_FACTOR_UNBOUNDED, PerformanceMetrics
from tickreplay.core.models import EquitySample, TradeEntry

_ZERO = Decimal("0")


class MetricsCalculator:
    """
    Calculate backtest performance metrics.

    Returns are per equity sample in decimal form (0.01 = 1%). Annualization
    assumes a 24/7 market and derives the sampling frequency from the curve's
    own timestamps.
    """

    SECONDS_PER_YEAR = SECONDS_PER_YEAR

    def calculate(
        self,
        equity_curve: Sequence[EquitySample],
        ledger: Sequence[TradeEntry],
        initial_capital: Decimal,
    ) -> PerformanceMetrics:
        values = [sample.total_value for sample in equity_curve]
        returns = self.calculate_returns(values, initial_capital)

        closed = [entry.realized_pnl for entry in ledger if entry.realized_pnl is not None]
        winners = [pnl for pnl in closed if pnl > 0]
        losers = [pnl for pnl in closed if pnl < 0]

        volatility = self.calculate_volatility(returns)
        return PerformanceMetrics(
            total_return=self.calculate_total_return(values, initial_capital),
            volatility=volatility,
            sharpe_ratio=self.calculate_sharpe(
                returns, self.periods_per_year(equity_curve)
            ),
            max_drawdown=self.calculate_max_drawdown(values, initial_capital),
            win_rate=Decimal(len(winners)) / Decimal(len(closed)) if closed else _ZERO,
            profit_factor=self.calculate_profit_factor(closed),
            total_trades=len(ledger),
            winning_trades=len(winners),
            losing_trades=len(losers),
            total_commission=sum((entry.commission for entry in ledger), _ZERO),
            total_pnl=sum(closed, _ZERO),
        )

    # ========================================================================
    # RETURNS
    # ========================================================================

    @staticmethod
    def calculate_total_return(
        values: Sequence[Decimal], initial_capital: Decimal
    ) -> Decimal:
        if not values:
            return _ZERO
        return values[-1] / initial_capital - 1

    @staticmethod
    def calculate_returns(
        values: Sequence[Decimal], initial_capital: Decimal
    ) -> np.ndarray:
        """Simple returns between consecutive samples, starting from initial capital."""
        if not values:
            return np.array([], dtype=float)
        series = np.array([float(initial_capital)] + [float(v) for v in values])
        return np.diff(series) / series[:-1]

    # ========================================================================
    # RISK-ADJUSTED
    # ========================================================================

    @staticmethod
    def calculate_volatility(returns: np.ndarray) -> float:
        if len(returns) < 2:
            return 0.0
        return float(np.std(returns, ddof=1))

    def periods_per_year(self, equity_curve: Sequence[EquitySample]) -> float:
        """
        Samples per year implied by the curve's spacing.

        Median spacing first (robust to gaps), then mean spacing; 1.0 when the
        curve carries no usable time information.
        """
        if len(equity_curve) < 2:
            return 1.0
        stamps = np.array([sample.timestamp.timestamp() for sample in equity_curve])
        spacing = np.diff(stamps)

        for candidate in (float(np.median(spacing)), float(np.mean(spacing))):
            if candidate > 0:
                return self.SECONDS_PER_YEAR / candidate
        return 1.0

    def calculate_sharpe(self, returns: np.ndarray, periods_per_year: float) -> float:
        if len(returns) < 2:
            return 0.0
        std = float(np.std(returns, ddof=1))
        if std == 0 or not np.isfinite(std):
            return 0.0
        return float(np.mean(returns) / std * np.sqrt(periods_per_year))

    # ========================================================================
    # DRAWDOWN
    # ========================================================================

    @staticmethod
    def calculate_max_drawdown(
        values: Sequence[Decimal], initial_capital: Decimal
    ) -> Decimal:
        """Largest peak-to-trough decline as a positive fraction of the peak."""
        peak = initial_capital
        max_dd = _ZERO
        for value in values:
            if value > peak:
                peak = value
            elif peak > 0:
                drawdown = (peak - value) / peak
                if drawdown > max_dd:
                    max_dd = drawdown
        return max_dd

    # ========================================================================
    # TRADE STATISTICS
    # ========================================================================

    @staticmethod
    def calculate_profit_factor(realized: Sequence[Decimal]) -> Optional[Decimal]:
        """
        Gross gains over gross losses.

        Infinity when there are gains and no losses; None when there is
        nothing to compare (no closed trades, or only break-even ones).
        """
        gains = sum((pnl for pnl in realized if pnl > 0), _ZERO)
        losses = abs(sum((pnl for pnl in realized if pnl < 0), _ZERO))
        if losses == 0:
            return PROFIT_FACTOR_UNBOUNDED if gains > 0 else None
        return gains / losses
