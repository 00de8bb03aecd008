from decimal import Decimal

from tickreplay.core.models import Interval
from tickreplay.data.aggregator import aggregate_bars


class TestAggregateBars:
    def test_ohlcv_per_window(self, make_trade):
        trades = [
            make_trade(0, "100", "1"),
            make_trade(10, "105", "2"),
            make_trade(20, "95", "1.5"),
            make_trade(50, "101", "0.5"),
            make_trade(65, "110", "3"),
        ]
        bars = aggregate_bars(trades, Interval.ONE_MINUTE)

        assert len(bars) == 2
        first, second = bars
        assert (first.open, first.high, first.low, first.close) == (
            Decimal("100"),
            Decimal("105"),
            Decimal("95"),
            Decimal("101"),
        )
        assert first.volume == Decimal("5.0")
        assert first.trade_count == 4
        assert second.trade_count == 1
        assert second.interval_start - first.interval_start == Interval.ONE_MINUTE.duration

    def test_volume_is_preserved_per_window(self, make_trade):
        trades = [make_trade(i * 17, 100 + (i % 7), f"0.{i + 1}") for i in range(40)]
        bars = aggregate_bars(trades, Interval.FIVE_MINUTES)

        for bar in bars:
            window_end = bar.interval_start + Interval.FIVE_MINUTES.duration
            inside = [
                t.quantity
                for t in trades
                if bar.interval_start <= t.timestamp < window_end
            ]
            assert bar.volume == sum(inside, Decimal("0"))
        assert sum(b.volume for b in bars) == sum(t.quantity for t in trades)

    def test_unsorted_input_and_gaps(self, make_trade):
        trades = [make_trade(200, "3"), make_trade(0, "1"), make_trade(10, "2")]
        bars = aggregate_bars(trades, Interval.ONE_MINUTE)

        # 3 minutes of gap produce no filler bars
        assert [b.close for b in bars] == [Decimal("2"), Decimal("3")]
        assert bars[0].open == Decimal("1")

    def test_empty(self):
        assert aggregate_bars([], Interval.ONE_HOUR) == []
