from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import insert
from sqlalchemy.exc import ResourceClosedError, TimeoutError as PoolTimeout
from sqlalchemy.ext.asyncio import create_async_engine

from tickreplay.core.errors import DataUnavailable
from tickreplay.core.models import Interval, Side, TimeRange
from tickreplay.infra.database.repository import TickRepository
from tickreplay.infra.database.schema import BarRow, TickRow, create_schema

T0 = datetime(2024, 1, 2, 9, 30, tzinfo=timezone.utc)


def tick_row(seconds, price, quantity="1", symbol="BTCUSDT", trade_id=None):
    return {
        "timestamp": T0 + timedelta(seconds=seconds),
        "symbol": symbol,
        "trade_id": trade_id or f"{symbol}-{seconds}",
        "price": Decimal(str(price)),
        "quantity": Decimal(str(quantity)),
        "side": "BUY" if int(seconds) % 2 == 0 else "SELL",
        "is_buyer_maker": False,
    }


ROWS = [
    tick_row(0, "100", "1"),
    tick_row(20, "102", "2"),
    tick_row(45, "99", "0.5"),
    tick_row(70, "101", "1"),
    tick_row(130, "105", "3"),
    tick_row(10, "2000", "4", symbol="ETHUSDT"),
]


async def _make_repository(path, include_bars):
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")
    await create_schema(engine, include_bars=include_bars)
    async with engine.begin() as conn:
        await conn.execute(insert(TickRow), ROWS)
    return TickRepository(engine)


@pytest_asyncio.fixture
async def repository(tmp_path):
    repo = await _make_repository(tmp_path / "ticks.db", include_bars=False)
    yield repo
    await repo.close()


@pytest_asyncio.fixture
async def repository_with_bars(tmp_path):
    repo = await _make_repository(tmp_path / "bars.db", include_bars=True)
    yield repo
    await repo.close()


class TestTrades:
    @pytest.mark.asyncio
    async def test_fetch_trades_half_open_range(self, repository):
        trades = await repository.fetch_trades(
            "BTCUSDT", TimeRange(start=T0, end=T0 + timedelta(seconds=70))
        )

        assert [t.price for t in trades] == [Decimal("100"), Decimal("102"), Decimal("99")]
        assert trades[0].timestamp == T0
        assert trades[0].timestamp.tzinfo == timezone.utc
        assert trades[0].side is Side.BUY

    @pytest.mark.asyncio
    async def test_limit(self, repository):
        trades = await repository.fetch_trades(
            "BTCUSDT", TimeRange(start=T0, end=T0 + timedelta(hours=1)), limit=2
        )
        assert len(trades) == 2

    @pytest.mark.asyncio
    async def test_out_of_coverage_is_empty(self, repository):
        later = T0 + timedelta(days=30)
        assert await repository.fetch_trades(
            "BTCUSDT", TimeRange(start=later, end=later + timedelta(hours=1))
        ) == []
        assert await repository.fetch_recent_trades("XRPUSDT", 10) == []

    @pytest.mark.asyncio
    async def test_recent_trades_are_ascending(self, repository):
        trades = await repository.fetch_recent_trades("BTCUSDT", 3)
        assert [t.price for t in trades] == [Decimal("99"), Decimal("101"), Decimal("105")]

    @pytest.mark.asyncio
    async def test_latest_timestamp(self, repository):
        assert await repository.latest_timestamp("BTCUSDT") == T0 + timedelta(seconds=130)
        assert await repository.latest_timestamp("XRPUSDT") is None


class TestBars:
    @pytest.mark.asyncio
    async def test_aggregated_on_the_fly(self, repository):
        bars = await repository.fetch_bars(
            "BTCUSDT",
            Interval.ONE_MINUTE,
            TimeRange(start=T0, end=T0 + timedelta(minutes=3)),
        )

        assert [b.trade_count for b in bars] == [3, 1, 1]
        first = bars[0]
        assert (first.open, first.high, first.low, first.close) == (
            Decimal("100"),
            Decimal("102"),
            Decimal("99"),
            Decimal("99"),
        )
        assert first.volume == Decimal("3.5")

    @pytest.mark.asyncio
    async def test_unaligned_start_skips_to_next_boundary(self, repository):
        bars = await repository.fetch_bars(
            "BTCUSDT",
            Interval.ONE_MINUTE,
            TimeRange(start=T0 + timedelta(seconds=30), end=T0 + timedelta(minutes=3)),
        )

        assert [b.interval_start for b in bars] == [
            T0 + timedelta(minutes=1),
            T0 + timedelta(minutes=2),
        ]
        assert bars[0].open == Decimal("101")
        assert sum(b.trade_count for b in bars) == 2

    @pytest.mark.asyncio
    async def test_range_inside_one_interval_has_no_bars(self, repository):
        bars = await repository.fetch_bars(
            "BTCUSDT",
            Interval.ONE_MINUTE,
            TimeRange(start=T0 + timedelta(seconds=30), end=T0 + timedelta(seconds=60)),
        )
        assert bars == []

    @pytest.mark.asyncio
    async def test_recent_bars_anchor_on_latest_trade(self, repository):
        bars = await repository.fetch_recent_bars("BTCUSDT", Interval.ONE_MINUTE, 2)
        assert [b.interval_start for b in bars] == [
            T0 + timedelta(minutes=1),
            T0 + timedelta(minutes=2),
        ]

    @pytest.mark.asyncio
    async def test_precomputed_bars_are_preferred(self, repository_with_bars):
        async with repository_with_bars.engine.begin() as conn:
            await conn.execute(
                insert(BarRow),
                [
                    {
                        "symbol": "BTCUSDT",
                        "interval": "1m",
                        "interval_start": T0,
                        "open": Decimal("1"),
                        "high": Decimal("3"),
                        "low": Decimal("1"),
                        "close": Decimal("2"),
                        "volume": Decimal("42"),
                        "trade_count": 7,
                    }
                ],
            )

        bars = await repository_with_bars.fetch_bars(
            "BTCUSDT",
            Interval.ONE_MINUTE,
            TimeRange(start=T0, end=T0 + timedelta(minutes=3)),
        )
        assert len(bars) == 1
        assert bars[0].volume == Decimal("42")
        assert bars[0].trade_count == 7

    @pytest.mark.asyncio
    async def test_empty_bar_table_falls_back(self, repository_with_bars):
        bars = await repository_with_bars.fetch_bars(
            "BTCUSDT",
            Interval.FIVE_MINUTES,
            TimeRange(start=T0, end=T0 + timedelta(minutes=5)),
        )
        assert len(bars) == 1
        assert bars[0].volume == Decimal("7.5")


class TestSummary:
    @pytest.mark.asyncio
    async def test_data_summary(self, repository):
        summary = await repository.data_summary()

        assert summary.total_records == 6
        assert summary.symbols_count == 2
        btc = next(info for info in summary.symbol_info if info.symbol == "BTCUSDT")
        assert btc.records_count == 5
        assert btc.min_price == Decimal("99")
        assert btc.max_price == Decimal("105")
        assert summary.earliest_time == T0
        assert summary.latest_time == T0 + timedelta(seconds=130)

    @pytest.mark.asyncio
    async def test_has_sufficient_data(self, repository):
        assert await repository.has_sufficient_data("BTCUSDT", 5)
        assert not await repository.has_sufficient_data("BTCUSDT", 6)
        assert not await repository.has_sufficient_data("XRPUSDT", 1)


class TestFailures:
    @pytest.mark.asyncio
    async def test_unreachable_store(self, tmp_path):
        missing = tmp_path / "no" / "such" / "dir" / "ticks.db"
        repo = TickRepository.from_url(f"sqlite+aiosqlite:///{missing}")
        with pytest.raises(DataUnavailable) as excinfo:
            await repo.fetch_recent_trades("BTCUSDT", 10)
        assert excinfo.value.symbol == "BTCUSDT"
        await repo.close()

    @pytest.mark.asyncio
    async def test_pool_timeout_is_data_unavailable(self):
        engine = MagicMock()
        engine.connect.side_effect = PoolTimeout("QueuePool limit reached")
        repo = TickRepository(engine)

        with pytest.raises(DataUnavailable) as excinfo:
            await repo.fetch_trades(
                "BTCUSDT", TimeRange(start=T0, end=T0 + timedelta(minutes=1))
            )
        assert excinfo.value.kind == "data_unavailable"

    @pytest.mark.asyncio
    async def test_bar_table_check_failure_is_data_unavailable(self):
        engine = MagicMock()
        engine.connect.side_effect = ResourceClosedError("closed")
        repo = TickRepository(engine)

        with pytest.raises(DataUnavailable):
            await repo.fetch_bars(
                "BTCUSDT",
                Interval.ONE_MINUTE,
                TimeRange(start=T0, end=T0 + timedelta(minutes=1)),
            )
