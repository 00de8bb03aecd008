import logging
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from typing import List, Optional, Tuple

from tickreplay.core.models import EquitySample, Position, Side, Signal, TradeEntry

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


class Portfolio:
    """Simulated single-symbol, long-only portfolio.

    Tracks cash, the open position and the equity curve. Converts signals into
    fills under a fixed sizing policy.

    **Fill policy**:
    - BUY while flat: buy the largest whole quantity whose cost plus commission
      fits in cash.
    - SELL while long: close the whole position.
    - Anything else (BUY while long, SELL while flat, HOLD): no fill.

    Attributes:
        cash (Decimal): Available cash, never negative.
        ledger (List[TradeEntry]): Every fill, in order.
        equity_curve (List[EquitySample]): One sample per processed record.
    """

    def __init__(self, symbol: str, initial_capital: Decimal):
        if initial_capital <= 0:
            raise ValueError("initial_capital must be positive")
        self.symbol = symbol
        self.initial_capital = Decimal(initial_capital)
        self.cash = self.initial_capital
        self.quantity = _ZERO
        self.average_entry_price = _ZERO
        self.entry_commission = _ZERO
        self.last_price: Optional[Decimal] = None
        self.ledger: List[TradeEntry] = []
        self.equity_curve: List[EquitySample] = []
        self._frozen = False

    # =================================================================
    # Fills
    # =================================================================

    def apply_fill(
        self,
        signal: Signal,
        price: Decimal,
        timestamp: datetime,
        commission_rate: Decimal,
    ) -> Optional[TradeEntry]:
        """
        Execute ``signal`` at ``price``.

        Returns the ledger entry for the fill, or None when the signal is
        translated to Hold.
        """
        self._check_mutable()
        if signal is Signal.BUY and self.quantity == 0:
            return self._open(price, timestamp, commission_rate)
        if signal is Signal.SELL and self.quantity > 0:
            return self._close(price, timestamp, commission_rate)
        if signal is Signal.SELL:
            logger.debug(f"Portfolio: SELL while flat on {self.symbol} ignored (no shorting)")
        return None

    def _open(
        self, price: Decimal, timestamp: datetime, commission_rate: Decimal
    ) -> Optional[TradeEntry]:
        unit_cost = price * (1 + commission_rate)
        quantity = (self.cash / unit_cost).to_integral_value(rounding=ROUND_FLOOR)
        if quantity <= 0:
            logger.warning(
                f"⚠️ PORTFOLIO: Calculated Qty is 0 for {self.symbol} "
                f"(Cash={self.cash} Price={price}), holding"
            )
            return None

        notional = quantity * price
        commission = commission_rate * notional
        if notional + commission > self.cash:
            logger.warning(f"⚠️ PORTFOLIO: Fill would overdraw cash on {self.symbol}, holding")
            return None

        self.cash -= notional + commission
        self.quantity = quantity
        self.average_entry_price = price
        self.entry_commission = commission
        self.last_price = price

        entry = TradeEntry(
            timestamp=timestamp,
            symbol=self.symbol,
            side=Side.BUY,
            quantity=quantity,
            price=price,
            commission=commission,
        )
        self.ledger.append(entry)
        logger.debug(f"Filled: BUY {quantity} {self.symbol} @ {price}. Cash: {self.cash}")
        return entry

    def _close(
        self, price: Decimal, timestamp: datetime, commission_rate: Decimal
    ) -> TradeEntry:
        quantity = self.quantity
        notional = quantity * price
        commission = commission_rate * notional
        realized = (
            (price - self.average_entry_price) * quantity
            - (self.entry_commission + commission)
        )

        self.cash += notional - commission
        self.quantity = _ZERO
        self.average_entry_price = _ZERO
        self.entry_commission = _ZERO
        self.last_price = price

        entry = TradeEntry(
            timestamp=timestamp,
            symbol=self.symbol,
            side=Side.SELL,
            quantity=quantity,
            price=price,
            commission=commission,
            realized_pnl=realized,
        )
        self.ledger.append(entry)
        logger.debug(
            f"Filled: SELL {quantity} {self.symbol} @ {price}. "
            f"PnL: {realized} Cash: {self.cash}"
        )
        return entry

    # =================================================================
    # Valuation
    # =================================================================

    def mark(self, price: Decimal) -> None:
        self._check_mutable()
        self.last_price = price

    def record_equity(self, timestamp: datetime) -> EquitySample:
        self._check_mutable()
        sample = EquitySample(timestamp=timestamp, total_value=self.equity)
        self.equity_curve.append(sample)
        return sample

    @property
    def market_value(self) -> Decimal:
        if self.quantity == 0 or self.last_price is None:
            return _ZERO
        return self.quantity * self.last_price

    @property
    def equity(self) -> Decimal:
        return self.cash + self.market_value

    @property
    def unrealized_pnl(self) -> Decimal:
        if self.quantity == 0 or self.last_price is None:
            return _ZERO
        return (self.last_price - self.average_entry_price) * self.quantity

    @property
    def total_commission(self) -> Decimal:
        return sum((entry.commission for entry in self.ledger), _ZERO)

    @property
    def position(self) -> Position:
        return Position(
            symbol=self.symbol,
            quantity=self.quantity,
            average_entry_price=self.average_entry_price,
            entry_commission=self.entry_commission,
        )

    # =================================================================
    # Lifecycle
    # =================================================================

    def freeze(self) -> Tuple[Tuple[TradeEntry, ...], Tuple[EquitySample, ...]]:
        """Stop accepting mutations and hand out immutable copies of the history."""
        self._frozen = True
        return tuple(self.ledger), tuple(self.equity_curve)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("Portfolio is frozen")
