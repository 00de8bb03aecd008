from decimal import Decimal
from typing import Mapping, Optional

from tickreplay.core.models import Interval, MarketRecord, Signal, StrategyCapability
from tickreplay.strategies.base import (
    Strategy,
    check_parameter_names,
    decimal_parameter,
    int_parameter,
)

_HUNDRED = Decimal("100")


class RelativeStrengthIndex(Strategy):
    """Mean reversion on Wilder's RSI over bar closes.

    BUY when RSI drops below ``oversold`` while not already long-signalled,
    SELL when it climbs above ``overbought`` after a BUY.
    **Best**: Ranging markets | **Worst**: Strong trends (stays overbought)

    **RSI Constants**:

    1. **period = 14**: Wilder's original lookback.
    2. **oversold = 30 / overbought = 70**: Conventional thresholds.
    """

    STRATEGY_ID = "rsi"
    DISPLAY_NAME = "RSI Strategy"
    DESCRIPTION = "Trading strategy based on Relative Strength Index (RSI)"
    PARAMETERS = ("period", "oversold", "overbought")

    def __init__(self, parameters: Optional[Mapping[str, str]] = None):
        parameters = parameters or {}
        check_parameter_names(parameters, self.PARAMETERS)
        self.period = int_parameter(parameters, "period", 14)
        self.oversold = decimal_parameter(parameters, "oversold", Decimal("30"))
        self.overbought = decimal_parameter(parameters, "overbought", Decimal("70"))
        if not (0 < self.oversold < self.overbought < _HUNDRED):
            raise ValueError("Thresholds must satisfy 0 < oversold < overbought < 100")
        self.reset()

    @property
    def id(self) -> str:
        return self.STRATEGY_ID

    @property
    def name(self) -> str:
        return self.DISPLAY_NAME

    def capability(self) -> StrategyCapability:
        return StrategyCapability(
            accepts_bars=True,
            accepts_trades=False,
            preferred_interval=Interval.ONE_MINUTE,
        )

    def on_record(self, record: MarketRecord) -> Signal:
        value = self._update(record.price)
        if value is None:
            return Signal.HOLD

        if value < self.oversold and self._last_signal is not Signal.BUY:
            self._last_signal = Signal.BUY
            return Signal.BUY
        if value > self.overbought and self._last_signal is Signal.BUY:
            self._last_signal = Signal.SELL
            return Signal.SELL
        return Signal.HOLD

    def reset(self) -> None:
        self._previous: Optional[Decimal] = None
        self._changes = 0
        self._gain_sum = Decimal("0")
        self._loss_sum = Decimal("0")
        self._avg_gain: Optional[Decimal] = None
        self._avg_loss: Optional[Decimal] = None
        self._last_signal: Optional[Signal] = None

    @property
    def value(self) -> Optional[Decimal]:
        """Current RSI, None until ``period`` price changes have been seen."""
        if self._avg_gain is None:
            return None
        return self._rsi(self._avg_gain, self._avg_loss)

    def _update(self, price: Decimal) -> Optional[Decimal]:
        previous, self._previous = self._previous, price
        if previous is None:
            return None

        change = price - previous
        gain = change if change > 0 else Decimal("0")
        loss = -change if change < 0 else Decimal("0")

        if self._avg_gain is None:
            # Seed with a simple average over the first `period` changes
            self._changes += 1
            self._gain_sum += gain
            self._loss_sum += loss
            if self._changes < self.period:
                return None
            self._avg_gain = self._gain_sum / self.period
            self._avg_loss = self._loss_sum / self.period
        else:
            # Wilder smoothing
            self._avg_gain = (self._avg_gain * (self.period - 1) + gain) / self.period
            self._avg_loss = (self._avg_loss * (self.period - 1) + loss) / self.period

        return self._rsi(self._avg_gain, self._avg_loss)

    @staticmethod
    def _rsi(avg_gain: Decimal, avg_loss: Decimal) -> Decimal:
        if avg_loss == 0:
            return _HUNDRED if avg_gain > 0 else Decimal("50")
        rs = avg_gain / avg_loss
        return _HUNDRED - _HUNDRED / (1 + rs)
