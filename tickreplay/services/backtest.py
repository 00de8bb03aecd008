"""
Backtest service facade.

The operations the presentation layer calls: data info, strategy catalogue,
configuration checks, bar previews, single runs (fail-fast) and the quick-test
batch (best effort).
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from opentelemetry import trace

from tickreplay.backtest.engine import BacktestEngine, validate_configuration
from tickreplay.backtest.result import BacktestResult
from tickreplay.cache import CacheKey, TieredCache
from tickreplay.core.config import Settings, settings as default_settings
from tickreplay.core.constants import (
    MAX_QUERY_LIMIT,
    QUICK_TEST_MAX_RECORDS,
    QUICK_TEST_SYMBOLS,
)
from tickreplay.core.errors import BacktestError, ValidationError
from tickreplay.core.models import (
    Bar,
    BacktestConfiguration,
    ConfigurationCheck,
    DataSummary,
    Interval,
    StrategyInfo,
)
from tickreplay.core.serialization import decimal_str
from tickreplay.infra.database.repository import TickRepository
from tickreplay.strategies import create_strategy, list_strategies

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ConfigurationInput = Union[BacktestConfiguration, Mapping[str, Any]]


@dataclass(frozen=True)
class QuickBacktestOutcome:
    """One item of a best-effort batch: either a result or the error that stopped it."""

    strategy_id: str
    symbol: str
    processing_time_ms: float
    result: Optional[BacktestResult] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "strategy_id": self.strategy_id,
            "symbol": self.symbol,
            "processing_time_ms": round(self.processing_time_ms, 3),
            "error": self.error,
        }
        if self.result is not None:
            payload.update(
                {
                    "strategy_name": self.result.strategy_name,
                    "data_source": self.result.data_source,
                    "final_value": decimal_str(self.result.final_value),
                    "return_percentage": decimal_str(
                        self.result.metrics.return_percentage
                    ),
                    "total_trades": self.result.metrics.total_trades,
                }
            )
        return payload


class BacktestService:
    """
    Entry point for every presentation-layer operation.

    Owns nothing global: the repository and cache are passed in and live as
    long as the service does.

    Example:
        service = BacktestService.from_settings(settings)
        result = await service.run_backtest({"symbol": "BTCUSDT", ...})
    """

    def __init__(
        self,
        repository: TickRepository,
        cache: TieredCache,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.cache = cache
        self.settings = settings or default_settings

    @classmethod
    def from_settings(cls, settings: Settings) -> "BacktestService":
        return cls(
            TickRepository.from_settings(settings),
            TieredCache.from_settings(settings),
            settings=settings,
        )

    async def close(self) -> None:
        await self.cache.close()
        await self.repository.close()

    # =================================================================
    # Catalogue
    # =================================================================

    async def get_data_info(self) -> DataSummary:
        summary = await self.repository.data_summary()
        logger.info(
            f"📊 Data info: {summary.total_records} records across "
            f"{summary.symbols_count} symbols"
        )
        return summary

    def list_strategies(self) -> List[StrategyInfo]:
        return list_strategies()

    async def validate_configuration(
        self, payload: ConfigurationInput
    ) -> ConfigurationCheck:
        """
        Check a configuration without running it.

        Never raises for bad input: problems come back in ``errors``. Data
        access errors still propagate.
        """
        try:
            configuration = validate_configuration(payload)
            create_strategy(configuration.strategy_id, configuration.strategy_parameters)
        except ValidationError as e:
            return ConfigurationCheck(valid=False, errors=[e.message])
        except ValueError as e:
            return ConfigurationCheck(valid=False, errors=[str(e)])

        sufficient = await self.repository.has_sufficient_data(
            configuration.symbol, configuration.requested_record_count
        )
        logger.info(
            f"Validation for {configuration.symbol} "
            f"({configuration.requested_record_count} records): sufficient={sufficient}"
        )
        return ConfigurationCheck(valid=True, sufficient_data=sufficient)

    async def preview_bars(self, symbol: str, interval: str, count: int) -> List[Bar]:
        """Latest ``count`` bars of ``symbol`` (through the cache)."""
        try:
            parsed = Interval.parse(interval)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if count <= 0 or count > MAX_QUERY_LIMIT:
            raise ValidationError(f"count must be between 1 and {MAX_QUERY_LIMIT}")

        key = CacheKey.for_recent(symbol, parsed, count)
        bars = await self.cache.get_or_load(
            key, lambda: self.repository.fetch_recent_bars(symbol, parsed, count)
        )
        logger.info(f"Generated {len(bars)} {parsed.value} preview bars for {symbol}")
        return list(bars)

    # =================================================================
    # Runs
    # =================================================================

    async def run_backtest(
        self,
        payload: ConfigurationInput,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BacktestResult:
        """Run one configuration. Any failure raises; there is no partial result."""
        engine = BacktestEngine(
            payload,
            cache=self.cache,
            repository=self.repository,
            default_interval=Interval.parse(self.settings.DEFAULT_BAR_INTERVAL),
        )
        return await engine.run(cancel_event=cancel_event)

    async def quick_backtest(
        self, items: Optional[Sequence[ConfigurationInput]] = None
    ) -> List[QuickBacktestOutcome]:
        """
        Best-effort batch.

        Items run concurrently as independent engines sharing only the cache.
        A failing item is recorded in its outcome and never stops the batch.
        Without explicit items, the most-traded symbols are paired with every
        registered strategy.
        """
        if items is None:
            items = await self._default_quick_items()

        with tracer.start_as_current_span("backtest.quick") as span:
            span.set_attribute("quick.items", len(items))
            outcomes = await asyncio.gather(*(self._run_item(item) for item in items))

        failed = sum(1 for outcome in outcomes if not outcome.succeeded)
        logger.info(
            f"⚡ Quick test finished: {len(outcomes) - failed}/{len(outcomes)} succeeded"
        )
        return list(outcomes)

    async def _run_item(self, item: ConfigurationInput) -> QuickBacktestOutcome:
        strategy_id = _field(item, "strategy_id")
        symbol = _field(item, "symbol")
        start = time.perf_counter()
        try:
            result = await self.run_backtest(item)
        except BacktestError as e:
            logger.warning(f"⚠️ Quick backtest failed for {strategy_id} on {symbol}: {e.message}")
            error = e.to_dict()
        except Exception as e:
            logger.exception(f"❌ Quick backtest crashed for {strategy_id} on {symbol}: {e}")
            error = {"kind": "internal", "message": str(e)}
        else:
            return QuickBacktestOutcome(
                strategy_id=strategy_id,
                symbol=symbol,
                processing_time_ms=(time.perf_counter() - start) * 1000,
                result=result,
            )
        return QuickBacktestOutcome(
            strategy_id=strategy_id,
            symbol=symbol,
            processing_time_ms=(time.perf_counter() - start) * 1000,
            error=error,
        )

    async def _default_quick_items(self) -> List[Dict[str, Any]]:
        summary = await self.repository.data_summary()
        top = sorted(summary.symbol_info, key=lambda info: info.records_count, reverse=True)
        return [
            {
                "strategy_id": strategy.id,
                "symbol": info.symbol,
                "data_count": min(QUICK_TEST_MAX_RECORDS, info.records_count),
                "initial_capital": self.settings.DEFAULT_INITIAL_CAPITAL,
                "commission_rate": self.settings.DEFAULT_COMMISSION_RATE,
                "strategy_params": {},
            }
            for info in top[:QUICK_TEST_SYMBOLS]
            if info.records_count > 0
            for strategy in list_strategies()
        ]


def _field(item: Any, name: str) -> str:
    if isinstance(item, BacktestConfiguration):
        return str(getattr(item, name))
    if isinstance(item, Mapping):
        return str(item.get(name, ""))
    return ""
