"""Trade -> OHLCV bar aggregation over fixed wall-clock intervals."""

from decimal import Decimal
from typing import Iterable, List

from tickreplay.core.models import Bar, Interval, Trade


def aggregate_bars(trades: Iterable[Trade], interval: Interval) -> List[Bar]:
    """
    Fold trades into one bar per interval that actually saw trading.

    Trades are grouped by ``interval.align(timestamp)``; within a window the
    first trade (by timestamp, then input order) sets the open and the last one
    the close. Windows without trades produce no bar (no forward fill).
    """
    ordered = sorted(trades, key=lambda t: t.timestamp)
    bars: List[Bar] = []

    window_start = None
    symbol = None
    open_ = high = low = close = None
    volume = Decimal("0")
    count = 0

    for trade in ordered:
        start = interval.align(trade.timestamp)
        if start != window_start:
            if count:
                bars.append(
                    Bar(
                        interval_start=window_start,
                        symbol=symbol,
                        interval=interval,
                        open=open_,
                        high=high,
                        low=low,
                        close=close,
                        volume=volume,
                        trade_count=count,
                    )
                )
            window_start = start
            symbol = trade.symbol
            open_ = high = low = close = trade.price
            volume = Decimal("0")
            count = 0

        high = max(high, trade.price)
        low = min(low, trade.price)
        close = trade.price
        volume += trade.quantity
        count += 1

    if count:
        bars.append(
            Bar(
                interval_start=window_start,
                symbol=symbol,
                interval=interval,
                open=open_,
                high=high,
                low=low,
                close=close,
                volume=volume,
                trade_count=count,
            )
        )

    return bars
