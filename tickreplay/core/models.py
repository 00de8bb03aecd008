"""Pydantic data models - trades, bars, intervals, ledger entries, configuration."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def ensure_utc(value: datetime) -> datetime:
    """Coerce to an aware UTC datetime truncated to millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def to_epoch_ms(value: datetime) -> int:
    return (ensure_utc(value) - _EPOCH) // timedelta(milliseconds=1)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_WEEK_ANCHOR = datetime(1970, 1, 5, tzinfo=timezone.utc)  # first Monday


class Side(str, Enum):
    BUY = "Buy"
    SELL = "Sell"

    @classmethod
    def _missing_(cls, value):
        # The store writes 'BUY'/'SELL'; the wire uses 'Buy'/'Sell'.
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return None


class Signal(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class Interval(str, Enum):
    ONE_MINUTE = "1m"
    FIVE_MINUTES = "5m"
    FIFTEEN_MINUTES = "15m"
    THIRTY_MINUTES = "30m"
    ONE_HOUR = "1h"
    FOUR_HOURS = "4h"
    ONE_DAY = "1d"
    ONE_WEEK = "1w"

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=_INTERVAL_SECONDS[self])

    def align(self, timestamp: datetime) -> datetime:
        """Floor ``timestamp`` to the start of the interval containing it."""
        anchor = _WEEK_ANCHOR if self is Interval.ONE_WEEK else _EPOCH
        buckets = (ensure_utc(timestamp) - anchor) // self.duration
        return anchor + buckets * self.duration

    @classmethod
    def parse(cls, text: str) -> "Interval":
        try:
            return cls(text)
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            raise ValueError(f"Invalid interval '{text}' (expected one of: {valid})")


_INTERVAL_SECONDS = {
    Interval.ONE_MINUTE: 60,
    Interval.FIVE_MINUTES: 5 * 60,
    Interval.FIFTEEN_MINUTES: 15 * 60,
    Interval.THIRTY_MINUTES: 30 * 60,
    Interval.ONE_HOUR: 60 * 60,
    Interval.FOUR_HOURS: 4 * 60 * 60,
    Interval.ONE_DAY: 24 * 60 * 60,
    Interval.ONE_WEEK: 7 * 24 * 60 * 60,
}

TICK = "tick"
Resolution = Union[Literal["tick"], Interval]


def resolution_token(resolution: Resolution) -> str:
    return resolution.value if isinstance(resolution, Interval) else TICK


# ============================================================================
# MARKET RECORDS
# ============================================================================


class Trade(BaseModel):
    """One executed trade (a tick)."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(..., description="Execution time (UTC, ms precision)")
    symbol: str = Field(..., min_length=1)
    price: Decimal = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)
    side: Side
    trade_id: str = Field(..., min_length=1)
    is_buyer_maker: bool

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Bar(BaseModel):
    """OHLCV aggregate of the trades inside one interval."""

    model_config = ConfigDict(frozen=True)

    interval_start: datetime
    symbol: str = Field(..., min_length=1)
    interval: Interval
    open: Decimal = Field(..., gt=0)
    high: Decimal = Field(..., gt=0)
    low: Decimal = Field(..., gt=0)
    close: Decimal = Field(..., gt=0)
    volume: Decimal = Field(..., gt=0)
    trade_count: int = Field(..., ge=1)

    @field_validator("interval_start")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def _check_range(self) -> "Bar":
        if not (self.low <= self.open <= self.high and self.low <= self.close <= self.high):
            raise ValueError(
                f"Bar bounds violated: low={self.low} open={self.open} "
                f"close={self.close} high={self.high}"
            )
        return self

    @property
    def timestamp(self) -> datetime:
        return self.interval_start

    @property
    def price(self) -> Decimal:
        return self.close


MarketRecord = Union[Trade, Bar]


# ============================================================================
# REQUEST WINDOWS
# ============================================================================


class TimeRange(BaseModel):
    """Half-open ``[start, end)`` range of wall-clock time."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def _ordered(self) -> "TimeRange":
        if self.start > self.end:
            raise ValueError("start must not be after end")
        return self

    @property
    def token(self) -> str:
        return f"{to_epoch_ms(self.start)}-{to_epoch_ms(self.end)}"

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"


class RecentWindow(BaseModel):
    """The latest ``count`` records stored for a symbol."""

    model_config = ConfigDict(frozen=True)

    count: int = Field(..., gt=0)

    @property
    def token(self) -> str:
        return f"last{self.count}"

    def __str__(self) -> str:
        return f"latest {self.count}"


Window = Union[TimeRange, RecentWindow]


# ============================================================================
# PORTFOLIO STATE
# ============================================================================


class Position(BaseModel):
    """Snapshot of an open position (positive quantity = long)."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    quantity: Decimal = Decimal("0")
    average_entry_price: Decimal = Decimal("0")
    entry_commission: Decimal = Decimal("0")

    @property
    def is_flat(self) -> bool:
        return self.quantity == 0


class TradeEntry(BaseModel):
    """Append-only ledger line written by the Portfolio for every fill."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    symbol: str
    side: Side
    quantity: Decimal
    price: Decimal
    commission: Decimal
    realized_pnl: Optional[Decimal] = None


class EquitySample(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    total_value: Decimal


# ============================================================================
# CONFIGURATION & CATALOGUE
# ============================================================================


class BacktestConfiguration(BaseModel):
    """
    Immutable description of one run.

    Accepts the loosely-typed payloads the presentation layer forwards
    (decimal strings, ``data_count``/``strategy_params`` aliases).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    initial_capital: Decimal = Field(..., gt=0)
    commission_rate: Decimal = Field(..., ge=0, lt=1)
    symbol: str = Field(..., min_length=1)
    requested_record_count: int = Field(
        ..., gt=0, validation_alias=AliasChoices("requested_record_count", "data_count")
    )
    strategy_id: str = Field(..., min_length=1)
    strategy_parameters: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("strategy_parameters", "strategy_params"),
    )
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @field_validator("symbol", "strategy_id", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("strategy_parameters", mode="before")
    @classmethod
    def _stringify(cls, v):
        if isinstance(v, dict):
            return {str(key): str(value) for key, value in v.items()}
        return v

    @model_validator(mode="after")
    def _check_window(self) -> "BacktestConfiguration":
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        if self.start_time is not None and ensure_utc(self.start_time) >= ensure_utc(
            self.end_time
        ):
            raise ValueError("start_time must be before end_time")
        return self

    @property
    def time_range(self) -> Optional[TimeRange]:
        if self.start_time is None:
            return None
        return TimeRange(start=self.start_time, end=self.end_time)


class StrategyCapability(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepts_bars: bool
    accepts_trades: bool
    preferred_interval: Optional[Interval] = None


class StrategyInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    capability: StrategyCapability


class SymbolSummary(BaseModel):
    symbol: str
    records_count: int
    earliest_time: Optional[datetime] = None
    latest_time: Optional[datetime] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None


class DataSummary(BaseModel):
    total_records: int = 0
    symbols_count: int = 0
    earliest_time: Optional[datetime] = None
    latest_time: Optional[datetime] = None
    symbol_info: List[SymbolSummary] = Field(default_factory=list)

    def has_sufficient_data(self, symbol: str, count: int) -> bool:
        for info in self.symbol_info:
            if info.symbol == symbol:
                return info.records_count >= count
        return False


class ConfigurationCheck(BaseModel):
    valid: bool
    sufficient_data: bool = False
    errors: List[str] = Field(default_factory=list)
