from collections import deque
from decimal import Decimal
from typing import Deque, Mapping, Optional

from tickreplay.core.models import Interval, MarketRecord, Signal, StrategyCapability
from tickreplay.strategies.base import Strategy, check_parameter_names, int_parameter


class MovingAverageCrossover(Strategy):
    """Golden cross / death cross on two simple moving averages of price.

    BUY when the short SMA rises above the long SMA (once per upswing),
    SELL when it falls back below after a BUY.
    **Best**: Trending markets | **Worst**: Choppy ranges (whipsaw)
    """

    STRATEGY_ID = "sma"
    DISPLAY_NAME = "Simple Moving Average"
    DESCRIPTION = "Trading strategy based on short and long-term moving average crossover"
    PARAMETERS = ("short_period", "long_period")

    def __init__(self, parameters: Optional[Mapping[str, str]] = None):
        parameters = parameters or {}
        check_parameter_names(parameters, self.PARAMETERS)
        self.short_period = int_parameter(parameters, "short_period", 5)
        self.long_period = int_parameter(parameters, "long_period", 20)
        if self.short_period >= self.long_period:
            raise ValueError("Short period must be less than long period")

        # 2x the long window is enough history; older prices never enter an average
        self._prices: Deque[Decimal] = deque(maxlen=self.long_period * 2)
        self._last_signal: Optional[Signal] = None

    @property
    def id(self) -> str:
        return self.STRATEGY_ID

    @property
    def name(self) -> str:
        return self.DISPLAY_NAME

    def capability(self) -> StrategyCapability:
        return StrategyCapability(
            accepts_bars=False,
            accepts_trades=True,
            preferred_interval=Interval.ONE_MINUTE,
        )

    def on_record(self, record: MarketRecord) -> Signal:
        self._prices.append(record.price)

        short_sma = self._sma(self.short_period)
        long_sma = self._sma(self.long_period)
        if short_sma is None or long_sma is None:
            return Signal.HOLD

        if short_sma > long_sma and self._last_signal is not Signal.BUY:
            self._last_signal = Signal.BUY
            return Signal.BUY
        if short_sma < long_sma and self._last_signal is Signal.BUY:
            self._last_signal = Signal.SELL
            return Signal.SELL
        return Signal.HOLD

    def reset(self) -> None:
        self._prices.clear()
        self._last_signal = None

    def _sma(self, period: int) -> Optional[Decimal]:
        if len(self._prices) < period:
            return None
        window = list(self._prices)[-period:]
        return sum(window, Decimal("0")) / period
