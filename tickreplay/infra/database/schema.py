"""SQLAlchemy mappings for the externally provisioned trade store.

The Repository only reads these tables. ``create_schema`` exists for local
fixtures and tests; production schemas are provisioned outside this package.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class TickRow(Base):
    """One executed trade. Identity is (symbol, trade_id, timestamp)."""

    __tablename__ = "tick_data"

    timestamp = Column(DateTime(timezone=True), primary_key=True)
    symbol = Column(String(20), primary_key=True)
    trade_id = Column(String(50), primary_key=True)
    price = Column(Numeric(20, 8), nullable=False)
    quantity = Column(Numeric(20, 8), nullable=False)
    side = Column(String(4), nullable=False)  # 'BUY' / 'SELL'
    is_buyer_maker = Column(Boolean, nullable=False)

    __table_args__ = (
        Index("idx_tick_symbol_time", "symbol", timestamp.desc()),
        Index("idx_tick_timestamp", "timestamp"),
    )


class BarRow(Base):
    """Optional precomputed OHLCV bars; absent tables fall back to on-the-fly aggregation."""

    __tablename__ = "ohlcv_bars"

    symbol = Column(String(20), primary_key=True)
    interval = Column(String(4), primary_key=True)
    interval_start = Column(DateTime(timezone=True), primary_key=True)
    open = Column(Numeric(20, 8), nullable=False)
    high = Column(Numeric(20, 8), nullable=False)
    low = Column(Numeric(20, 8), nullable=False)
    close = Column(Numeric(20, 8), nullable=False)
    volume = Column(Numeric(28, 8), nullable=False)
    trade_count = Column(Integer, nullable=False)


async def create_schema(engine: AsyncEngine, include_bars: bool = True) -> None:
    tables = [TickRow.__table__]
    if include_bars:
        tables.append(BarRow.__table__)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=tables)
