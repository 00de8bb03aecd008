"""Backtest API routes - data info, strategy catalogue, validation, previews and runs."""

import logging
from typing import Any, Dict, List, Optional

from litestar import Controller, Request, get, post
from litestar.di import Provide
from litestar.params import Parameter
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_409_CONFLICT,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from tickreplay.api.dependencies import provide_backtest_service
from tickreplay.core.constants import DEFAULT_QUERY_LIMIT
from tickreplay.core.errors import BacktestError
from tickreplay.core.serialization import ORJSONResponse, decimal_str
from tickreplay.services.backtest import BacktestService

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "validation": HTTP_400_BAD_REQUEST,
    "data_unavailable": HTTP_503_SERVICE_UNAVAILABLE,
    "strategy_error": HTTP_422_UNPROCESSABLE_ENTITY,
    "cancelled": HTTP_409_CONFLICT,
}


def backtest_error_handler(request: Request, exc: BacktestError) -> ORJSONResponse:
    """Every core failure becomes ``{"kind", "message"}`` with a kind-specific status."""
    status = ERROR_STATUS.get(exc.kind, HTTP_500_INTERNAL_SERVER_ERROR)
    if status >= 500:
        logger.error(f"❌ {request.method} {request.url.path} failed ({exc.kind}): {exc.message}")
    return ORJSONResponse(content=exc.to_dict(), status_code=status)


class BacktestController(Controller):
    path = "/backtest"
    tags = ["backtest"]
    dependencies = {"service": Provide(provide_backtest_service)}
    exception_handlers = {BacktestError: backtest_error_handler}

    @get("/data-info")
    async def data_info(self, service: BacktestService) -> ORJSONResponse:
        summary = await service.get_data_info()
        return ORJSONResponse(content=summary.model_dump(mode="json"))

    @get("/strategies")
    async def strategies(self, service: BacktestService) -> ORJSONResponse:
        infos = service.list_strategies()
        return ORJSONResponse(content=[info.model_dump(mode="json") for info in infos])

    @post("/validate", status_code=200)
    async def validate(
        self, data: Dict[str, Any], service: BacktestService
    ) -> ORJSONResponse:
        check = await service.validate_configuration(data)
        return ORJSONResponse(content=check.model_dump(mode="json"))

    @get("/preview")
    async def preview(
        self,
        service: BacktestService,
        symbol: str,
        interval: str = "1m",
        count: int = Parameter(default=DEFAULT_QUERY_LIMIT, ge=1),
    ) -> ORJSONResponse:
        bars = await service.preview_bars(symbol, interval, count)
        return ORJSONResponse(
            content=[
                {
                    "timestamp": bar.interval_start.isoformat(),
                    "symbol": bar.symbol,
                    "open": decimal_str(bar.open),
                    "high": decimal_str(bar.high),
                    "low": decimal_str(bar.low),
                    "close": decimal_str(bar.close),
                    "volume": decimal_str(bar.volume),
                    "trade_count": bar.trade_count,
                }
                for bar in bars
            ]
        )

    @post("/run", status_code=200)
    async def run(self, data: Dict[str, Any], service: BacktestService) -> ORJSONResponse:
        """
        Run one backtest.
        Payload: {"symbol", "strategy_id", "data_count", "initial_capital", "commission_rate", "strategy_params"}
        """
        result = await service.run_backtest(data)
        return ORJSONResponse(content=result.to_dict())

    @post("/quick", status_code=200)
    async def quick(
        self, service: BacktestService, data: Optional[List[Dict[str, Any]]] = None
    ) -> ORJSONResponse:
        """Best-effort batch; failures are reported per item."""
        outcomes = await service.quick_backtest(data)
        return ORJSONResponse(content=[outcome.to_dict() for outcome in outcomes])
