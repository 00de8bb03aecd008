import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple, Union

import pydantic
from opentelemetry import trace

from tickreplay.backtest.portfolio import Portfolio
from tickreplay.backtest.result import BacktestResult
from tickreplay.cache import CacheKey, TieredCache
from tickreplay.core.config import settings
from tickreplay.core.constants import (
    MIN_CANDLES,
    REPLAY_YIELD_EVERY,
    TRADES_PER_CANDLE_ESTIMATE,
)
from tickreplay.core.errors import (
    BacktestCancelled,
    BacktestError,
    StrategyError,
    ValidationError,
)
from tickreplay.core.models import (
    TICK,
    BacktestConfiguration,
    Interval,
    MarketRecord,
    Resolution,
    Signal,
)
from tickreplay.infra.database.repository import TickRepository
from tickreplay.services.metrics import MetricsCalculator
from tickreplay.strategies import Strategy, create_strategy

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

StrategyFactory = Callable[[str, Mapping[str, str]], Strategy]


class EngineState(str, Enum):
    CONFIGURING = "configuring"
    LOADING = "loading"
    REPLAYING = "replaying"
    FINALIZED = "finalized"
    FAILED = "failed"
    CANCELLED = "cancelled"


def candle_count_for(requested_records: int) -> int:
    """Bars to replay for a run that asked for ``requested_records`` trades."""
    return max(requested_records // TRADES_PER_CANDLE_ESTIMATE, MIN_CANDLES)


def validate_configuration(
    configuration: Union[BacktestConfiguration, Mapping[str, Any]],
) -> BacktestConfiguration:
    if isinstance(configuration, BacktestConfiguration):
        return configuration
    try:
        return BacktestConfiguration.model_validate(configuration)
    except pydantic.ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'configuration'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid configuration: {problems}") from e


class BacktestEngine:
    """
    Single-run replay engine.

    State machine: CONFIGURING -> LOADING -> REPLAYING -> FINALIZED, with
    FAILED or CANCELLED reachable from any non-terminal state. A failed or
    cancelled run produces no result; partial history is discarded.

    Example:
        engine = BacktestEngine(configuration, cache=cache, repository=repo)
        result = await engine.run()
    """

    def __init__(
        self,
        configuration: Union[BacktestConfiguration, Mapping[str, Any]],
        cache: TieredCache,
        repository: TickRepository,
        strategy_factory: StrategyFactory = create_strategy,
        default_interval: Optional[Interval] = None,
        metrics_calculator: Optional[MetricsCalculator] = None,
    ):
        self.state = EngineState.CONFIGURING
        self.raw_configuration = configuration
        self.configuration: Optional[BacktestConfiguration] = None
        self.cache = cache
        self.repository = repository
        self.strategy_factory = strategy_factory
        self.default_interval = default_interval
        self.metrics_calculator = metrics_calculator or MetricsCalculator()
        self.strategy: Optional[Strategy] = None
        self.data_source: Optional[str] = None
        self.records_processed = 0

    async def run(self, cancel_event: Optional[asyncio.Event] = None) -> BacktestResult:
        if self.state is not EngineState.CONFIGURING:
            raise RuntimeError(f"Engine already used (state={self.state.value})")

        with tracer.start_as_current_span("backtest.run") as span:
            start = time.perf_counter()
            try:
                configuration, strategy = self._configure()
                span.set_attribute("backtest.symbol", configuration.symbol)
                span.set_attribute("backtest.strategy", strategy.id)

                self.state = EngineState.LOADING
                records = await self._load(configuration, strategy)
                self._check_cancelled(cancel_event)

                self.state = EngineState.REPLAYING
                portfolio = await self._replay(
                    configuration, strategy, records, cancel_event
                )

                result = self._finalize(configuration, strategy, portfolio)
            except asyncio.CancelledError:
                self.state = EngineState.CANCELLED
                logger.info("🛑 Backtest cancelled")
                raise
            except BacktestCancelled:
                self.state = EngineState.CANCELLED
                logger.info("🛑 Backtest cancelled")
                raise
            except BacktestError as e:
                self.state = EngineState.FAILED
                span.set_attribute("backtest.error", e.kind)
                logger.error(f"❌ Backtest failed ({e.kind}): {e.message}")
                raise
            except Exception as e:
                self.state = EngineState.FAILED
                span.record_exception(e)
                logger.exception(f"❌ Backtest failed unexpectedly: {e}")
                raise

            span.set_attribute("backtest.records", self.records_processed)
            logger.info(
                f"✅ Backtest finished in {time.perf_counter() - start:.2f}s: "
                f"{configuration.symbol} / {strategy.id} over {self.records_processed} "
                f"records ({self.data_source}), {result.metrics.total_trades} trades, "
                f"return {result.metrics.return_percentage:.2f}%"
            )
            return result

    # =================================================================
    # Configuring
    # =================================================================

    def _configure(self) -> Tuple[BacktestConfiguration, Strategy]:
        configuration = validate_configuration(self.raw_configuration)
        try:
            strategy = self.strategy_factory(
                configuration.strategy_id, configuration.strategy_parameters
            )
        except ValueError as e:
            raise ValidationError(
                f"Strategy '{configuration.strategy_id}' rejected: {e}"
            ) from e

        capability = strategy.capability()
        if not (capability.accepts_bars or capability.accepts_trades):
            raise ValidationError(
                f"Strategy '{configuration.strategy_id}' accepts neither bars nor trades"
            )

        self.configuration = configuration
        self.strategy = strategy
        return configuration, strategy

    # =================================================================
    # Loading
    # =================================================================

    async def _load(
        self, configuration: BacktestConfiguration, strategy: Strategy
    ) -> Sequence[MarketRecord]:
        capability = strategy.capability()

        if capability.accepts_bars:
            interval = capability.preferred_interval or self._default_interval()
            records = await self._load_resolution(configuration, interval)
            if records or not capability.accepts_trades:
                self.data_source = f"OHLC-{interval.value}"
                return records
            logger.info(
                f"No {interval.value} bars for {configuration.symbol}, falling back to trades"
            )

        self.data_source = TICK
        return await self._load_resolution(configuration, TICK)

    async def _load_resolution(
        self, configuration: BacktestConfiguration, resolution: Resolution
    ) -> Sequence[MarketRecord]:
        symbol = configuration.symbol
        time_range = configuration.time_range
        is_bars = isinstance(resolution, Interval)

        if time_range is not None:
            key = CacheKey.for_range(symbol, resolution, time_range)
            if is_bars:
                loader = lambda: self.repository.fetch_bars(symbol, resolution, time_range)
            else:
                loader = lambda: self.repository.fetch_trades(symbol, time_range)
            records = await self.cache.get_or_load(key, loader)
            return records[: configuration.requested_record_count]

        if is_bars:
            count = candle_count_for(configuration.requested_record_count)
            key = CacheKey.for_recent(symbol, resolution, count)
            loader = lambda: self.repository.fetch_recent_bars(symbol, resolution, count)
        else:
            count = configuration.requested_record_count
            key = CacheKey.for_recent(symbol, resolution, count)
            loader = lambda: self.repository.fetch_recent_trades(symbol, count)
        return await self.cache.get_or_load(key, loader)

    def _default_interval(self) -> Interval:
        if self.default_interval is not None:
            return self.default_interval
        return Interval.parse(settings.DEFAULT_BAR_INTERVAL)

    # =================================================================
    # Replaying
    # =================================================================

    async def _replay(
        self,
        configuration: BacktestConfiguration,
        strategy: Strategy,
        records: Sequence[MarketRecord],
        cancel_event: Optional[asyncio.Event],
    ) -> Portfolio:
        portfolio = Portfolio(configuration.symbol, configuration.initial_capital)
        ordered: List[MarketRecord] = sorted(records, key=lambda r: r.timestamp)
        strategy.reset()

        for index, record in enumerate(ordered, start=1):
            self._check_cancelled(cancel_event)

            signal = self._signal_for(strategy, record)
            if signal is not Signal.HOLD:
                portfolio.apply_fill(
                    signal, record.price, record.timestamp, configuration.commission_rate
                )
            portfolio.mark(record.price)
            portfolio.record_equity(record.timestamp)
            self.records_processed = index

            if index % REPLAY_YIELD_EVERY == 0:
                await asyncio.sleep(0)

        return portfolio

    @staticmethod
    def _signal_for(strategy: Strategy, record: MarketRecord) -> Signal:
        try:
            signal = strategy.on_record(record)
        except BacktestError:
            raise
        except Exception as e:
            raise StrategyError(
                f"Strategy '{strategy.id}' failed at {record.timestamp.isoformat()}: {e}"
            ) from e
        if not isinstance(signal, Signal):
            raise StrategyError(
                f"Strategy '{strategy.id}' returned {signal!r} instead of a Signal"
            )
        return signal

    @staticmethod
    def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise BacktestCancelled("Backtest cancelled by caller")

    # =================================================================
    # Finalized
    # =================================================================

    def _finalize(
        self,
        configuration: BacktestConfiguration,
        strategy: Strategy,
        portfolio: Portfolio,
    ) -> BacktestResult:
        ledger, curve = portfolio.freeze()
        metrics = self.metrics_calculator.calculate(
            curve, ledger, configuration.initial_capital
        )
        self.state = EngineState.FINALIZED
        return BacktestResult(
            strategy_id=strategy.id,
            strategy_name=strategy.name,
            symbol=configuration.symbol,
            data_source=self.data_source,
            initial_capital=configuration.initial_capital,
            final_value=portfolio.equity,
            final_position=portfolio.position,
            trades=ledger,
            equity_curve=curve,
            metrics=metrics,
            records_processed=self.records_processed,
        )
