from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Tuple

from tickreplay.core.metrics_types import PerformanceMetrics
from tickreplay.core.models import EquitySample, Position, TradeEntry
from tickreplay.core.serialization import decimal_str


@dataclass(frozen=True)
class BacktestResult:
    """Outcome of one finalized run. Built once, never mutated."""

    strategy_id: str
    strategy_name: str
    symbol: str
    data_source: str  # "tick" or "OHLC-<interval>"
    initial_capital: Decimal
    final_value: Decimal
    final_position: Position
    trades: Tuple[TradeEntry, ...]
    equity_curve: Tuple[EquitySample, ...]
    metrics: PerformanceMetrics
    records_processed: int

    @property
    def total_trades(self) -> int:
        return self.metrics.total_trades

    def to_dict(self) -> Dict[str, Any]:
        """Wire form: every monetary or ratio field as a decimal string."""
        return {
            "strategy_id": self.strategy_id,
            "strategy_name": self.strategy_name,
            "symbol": self.symbol,
            "data_source": self.data_source,
            "initial_capital": decimal_str(self.initial_capital),
            "final_value": decimal_str(self.final_value),
            "final_position": {
                "symbol": self.final_position.symbol,
                "quantity": decimal_str(self.final_position.quantity),
                "average_entry_price": decimal_str(
                    self.final_position.average_entry_price
                ),
            },
            "records_processed": self.records_processed,
            "metrics": self.metrics.to_dict(),
            "trades": [
                {
                    "timestamp": entry.timestamp.isoformat(),
                    "symbol": entry.symbol,
                    "side": entry.side.value,
                    "quantity": decimal_str(entry.quantity),
                    "price": decimal_str(entry.price),
                    "commission": decimal_str(entry.commission),
                    "realized_pnl": decimal_str(entry.realized_pnl),
                }
                for entry in self.trades
            ],
            "equity_curve": [
                {
                    "timestamp": sample.timestamp.isoformat(),
                    "total_value": decimal_str(sample.total_value),
                }
                for sample in self.equity_curve
            ],
        }
