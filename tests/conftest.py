from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from tickreplay.cache import LocalTier, TieredCache
from tickreplay.core.models import Bar, Interval, Side, Trade

T0 = datetime(2024, 1, 2, 9, 30, tzinfo=timezone.utc)


def _make_trade(
    seconds: float,
    price,
    quantity="1",
    symbol: str = "BTCUSDT",
    trade_id: str = None,
    side: Side = Side.BUY,
) -> Trade:
    return Trade(
        timestamp=T0 + timedelta(seconds=seconds),
        symbol=symbol,
        price=Decimal(str(price)),
        quantity=Decimal(str(quantity)),
        side=side,
        trade_id=trade_id or f"t{seconds}",
        is_buyer_maker=False,
    )


def _make_bar(minute: int, close, symbol: str = "BTCUSDT", volume="10") -> Bar:
    close = Decimal(str(close))
    return Bar(
        interval_start=T0 + timedelta(minutes=minute),
        symbol=symbol,
        interval=Interval.ONE_MINUTE,
        open=close,
        high=close,
        low=close,
        close=close,
        volume=Decimal(volume),
        trade_count=1,
    )


@pytest.fixture
def cache():
    return TieredCache(LocalTier(capacity=16), remote=None, prefix="test")


@pytest.fixture
def repository():
    repo = MagicMock()
    repo.fetch_trades = AsyncMock(return_value=[])
    repo.fetch_recent_trades = AsyncMock(return_value=[])
    repo.fetch_bars = AsyncMock(return_value=[])
    repo.fetch_recent_bars = AsyncMock(return_value=[])
    repo.has_sufficient_data = AsyncMock(return_value=True)
    repo.data_summary = AsyncMock()
    repo.close = AsyncMock()
    return repo


@pytest.fixture
def make_trade():
    return _make_trade


@pytest.fixture
def make_bar():
    return _make_bar
