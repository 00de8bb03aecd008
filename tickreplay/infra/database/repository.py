"""Read-only repository over the trade store.

The only component that speaks to durable storage. Every query returns records
ordered by ascending timestamp; an empty or out-of-coverage window is a valid
empty result. Driver and connection failures surface as ``DataUnavailable``;
retry policy belongs to the caller.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from opentelemetry import trace
from sqlalchemy import func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from tickreplay.core.config import Settings
from tickreplay.core.errors import DataUnavailable
from tickreplay.core.models import (
    Bar,
    DataSummary,
    Interval,
    SymbolSummary,
    TimeRange,
    Trade,
)
from tickreplay.data.aggregator import aggregate_bars
from tickreplay.infra.database.schema import BarRow, TickRow

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_TRADE_COLUMNS = (
    TickRow.timestamp,
    TickRow.symbol,
    TickRow.price,
    TickRow.quantity,
    TickRow.side,
    TickRow.trade_id,
    TickRow.is_buyer_maker,
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_trade(row) -> Trade:
    return Trade(
        timestamp=_as_utc(row.timestamp),
        symbol=row.symbol,
        price=row.price,
        quantity=row.quantity,
        side=row.side,
        trade_id=row.trade_id,
        is_buyer_maker=row.is_buyer_maker,
    )


class TickRepository:
    """
    Range and aggregate queries against ``tick_data`` (and ``ohlcv_bars`` when provisioned).

    Example:
        repo = TickRepository.from_url("postgresql+asyncpg://user:pw@host/db")
        trades = await repo.fetch_trades("BTCUSDT", TimeRange(start=t0, end=t1))
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._has_bar_table: Optional[bool] = None

    @classmethod
    def from_url(cls, url: str, **engine_kwargs) -> "TickRepository":
        return cls(create_async_engine(url, pool_pre_ping=True, **engine_kwargs))

    @classmethod
    def from_settings(cls, settings: Settings) -> "TickRepository":
        return cls.from_url(
            settings.DATABASE_URL, pool_recycle=settings.DATABASE_POOL_RECYCLE
        )

    async def close(self) -> None:
        await self.engine.dispose()

    # =================================================================
    # Trades
    # =================================================================

    async def fetch_trades(
        self, symbol: str, time_range: TimeRange, limit: Optional[int] = None
    ) -> List[Trade]:
        stmt = (
            select(*_TRADE_COLUMNS)
            .where(TickRow.symbol == symbol)
            .where(TickRow.timestamp >= time_range.start)
            .where(TickRow.timestamp < time_range.end)
            .order_by(TickRow.timestamp.asc(), TickRow.trade_id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        with tracer.start_as_current_span("repository.fetch_trades") as span:
            span.set_attribute("symbol", symbol)
            rows = await self._execute(stmt, symbol, str(time_range))
            span.set_attribute("rows", len(rows))

        logger.debug(f"Fetched {len(rows)} trades for {symbol} in {time_range}")
        return [_row_to_trade(row) for row in rows]

    async def fetch_recent_trades(self, symbol: str, count: int) -> List[Trade]:
        """Latest ``count`` trades for ``symbol``, returned oldest first."""
        latest = (
            select(*_TRADE_COLUMNS)
            .where(TickRow.symbol == symbol)
            .order_by(TickRow.timestamp.desc(), TickRow.trade_id.desc())
            .limit(count)
            .subquery()
        )
        stmt = select(latest).order_by(latest.c.timestamp.asc(), latest.c.trade_id.asc())

        with tracer.start_as_current_span("repository.fetch_recent_trades") as span:
            span.set_attribute("symbol", symbol)
            span.set_attribute("count", count)
            rows = await self._execute(stmt, symbol, f"latest {count}")

        return [_row_to_trade(row) for row in rows]

    async def latest_timestamp(self, symbol: str) -> Optional[datetime]:
        stmt = select(func.max(TickRow.timestamp)).where(TickRow.symbol == symbol)
        rows = await self._execute(stmt, symbol, "latest")
        return _as_utc(rows[0][0]) if rows else None

    # =================================================================
    # Bars
    # =================================================================

    async def fetch_bars(
        self, symbol: str, interval: Interval, time_range: TimeRange
    ) -> List[Bar]:
        """
        Bars whose interval starts inside ``time_range``.

        Uses precomputed rows when the store has them, otherwise aggregates the
        trades of every window starting in the range. An unaligned start skips
        ahead to the next boundary, so no trade before ``start`` is folded in;
        the window holding ``end`` is widened so each emitted bar is complete.
        """
        aligned_start = interval.align(time_range.start)
        if aligned_start < time_range.start:
            aligned_start = aligned_start + interval.duration
        aligned_end = interval.align(time_range.end)
        if aligned_end < time_range.end:
            aligned_end = aligned_end + interval.duration
        span_range = TimeRange(start=aligned_start, end=aligned_end)

        with tracer.start_as_current_span("repository.fetch_bars") as span:
            span.set_attribute("symbol", symbol)
            span.set_attribute("interval", interval.value)

            if await self._bar_table_available():
                stored = await self._fetch_stored_bars(symbol, interval, span_range)
                if stored:
                    span.set_attribute("source", "precomputed")
                    return stored

            span.set_attribute("source", "aggregated")
            trades = await self.fetch_trades(symbol, span_range)
            return aggregate_bars(trades, interval)

    async def fetch_recent_bars(
        self, symbol: str, interval: Interval, count: int
    ) -> List[Bar]:
        """
        The ``count`` bars ending with the one that holds the latest stored trade.

        Anchored on stored data rather than the wall clock so repeated runs see
        the same window.
        """
        latest = await self.latest_timestamp(symbol)
        if latest is None:
            return []
        end = interval.align(latest) + interval.duration
        start = end - interval.duration * count
        bars = await self.fetch_bars(symbol, interval, TimeRange(start=start, end=end))
        return bars[-count:]

    async def _fetch_stored_bars(
        self, symbol: str, interval: Interval, time_range: TimeRange
    ) -> List[Bar]:
        stmt = (
            select(BarRow)
            .where(BarRow.symbol == symbol)
            .where(BarRow.interval == interval.value)
            .where(BarRow.interval_start >= time_range.start)
            .where(BarRow.interval_start < time_range.end)
            .order_by(BarRow.interval_start.asc())
        )
        rows = await self._execute(stmt, symbol, str(time_range))
        return [
            Bar(
                interval_start=_as_utc(row.interval_start),
                symbol=row.symbol,
                interval=interval,
                open=row.open,
                high=row.high,
                low=row.low,
                close=row.close,
                volume=row.volume,
                trade_count=row.trade_count,
            )
            for row in rows
        ]

    async def _bar_table_available(self) -> bool:
        if self._has_bar_table is None:
            try:
                async with self.engine.connect() as conn:
                    self._has_bar_table = await conn.run_sync(
                        lambda sync_conn: inspect(sync_conn).has_table(
                            BarRow.__tablename__
                        )
                    )
            except (SQLAlchemyError, OSError) as e:
                raise DataUnavailable(
                    f"Trade store unavailable: {e}", symbol=None, window=None
                ) from e
        return self._has_bar_table

    # =================================================================
    # Summary
    # =================================================================

    async def data_summary(self) -> DataSummary:
        stmt = (
            select(
                TickRow.symbol,
                func.count().label("records_count"),
                func.min(TickRow.timestamp).label("earliest_time"),
                func.max(TickRow.timestamp).label("latest_time"),
                func.min(TickRow.price).label("min_price"),
                func.max(TickRow.price).label("max_price"),
            )
            .group_by(TickRow.symbol)
            .order_by(TickRow.symbol)
        )
        rows = await self._execute(stmt, None, "summary")

        symbol_info = [
            SymbolSummary(
                symbol=row.symbol,
                records_count=row.records_count,
                earliest_time=_as_utc(row.earliest_time),
                latest_time=_as_utc(row.latest_time),
                min_price=row.min_price,
                max_price=row.max_price,
            )
            for row in rows
        ]
        earliest = [info.earliest_time for info in symbol_info if info.earliest_time]
        latest = [info.latest_time for info in symbol_info if info.latest_time]

        return DataSummary(
            total_records=sum(info.records_count for info in symbol_info),
            symbols_count=len(symbol_info),
            earliest_time=min(earliest) if earliest else None,
            latest_time=max(latest) if latest else None,
            symbol_info=symbol_info,
        )

    async def has_sufficient_data(self, symbol: str, count: int) -> bool:
        stmt = select(func.count()).select_from(TickRow).where(TickRow.symbol == symbol)
        rows = await self._execute(stmt, symbol, "count")
        return bool(rows) and rows[0][0] >= count

    # =================================================================
    # Helpers
    # =================================================================

    async def _execute(self, stmt, symbol: Optional[str], window: str):
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                return list(result.all())
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Trade store query failed for {symbol} ({window}): {e}")
            raise DataUnavailable(
                f"Trade store unavailable while loading {symbol or 'summary'} ({window}): {e}",
                symbol=symbol,
                window=window,
            ) from e
