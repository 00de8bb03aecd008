"""
Performance Metrics Type Definitions.

Dataclasses for the metrics reported with every backtest result.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from tickreplay.core.serialization import decimal_str

PROFIT_FACTOR_UNBOUNDED = Decimal("Infinity")


@dataclass(frozen=True)
class PerformanceMetrics:
    """Metrics computed once from a finalized equity curve and trade ledger."""

    total_return: Decimal  # final_equity / initial_capital - 1
    volatility: float  # sample std of per-sample returns
    sharpe_ratio: float  # annualized by sample frequency
    max_drawdown: Decimal  # largest peak-to-trough decline, >= 0
    win_rate: Decimal  # winning / closed trades
    profit_factor: Optional[Decimal]  # Infinity when no losers, None when undefined
    total_trades: int
    winning_trades: int
    losing_trades: int
    total_commission: Decimal
    total_pnl: Decimal  # realized P&L net of commissions

    @property
    def return_percentage(self) -> Decimal:
        return self.total_return * 100

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "total_return": decimal_str(self.total_return),
            "return_percentage": decimal_str(self.return_percentage),
            "volatility": repr(self.volatility),
            "sharpe_ratio": repr(self.sharpe_ratio),
            "max_drawdown": decimal_str(self.max_drawdown),
            "win_rate": decimal_str(self.win_rate),
            "profit_factor": decimal_str(self.profit_factor),
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "total_commission": decimal_str(self.total_commission),
            "total_pnl": decimal_str(self.total_pnl),
        }
