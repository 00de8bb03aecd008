import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from litestar.testing import TestClient

from tickreplay.backtest.engine import BacktestEngine
from tickreplay.core.errors import (
    BacktestCancelled,
    DataUnavailable,
    StrategyError,
    ValidationError,
)
from tickreplay.core.models import ConfigurationCheck, DataSummary, SymbolSummary
from tickreplay.main import create_app
from tickreplay.services.backtest import BacktestService
from tickreplay.strategies import list_strategies


@pytest.fixture
def service():
    mock = MagicMock(spec=BacktestService)
    mock.list_strategies.return_value = list_strategies()
    mock.get_data_info = AsyncMock()
    mock.validate_configuration = AsyncMock()
    mock.preview_bars = AsyncMock(return_value=[])
    mock.run_backtest = AsyncMock()
    mock.quick_backtest = AsyncMock(return_value=[])
    return mock


@pytest.fixture
def client(service):
    app = create_app(lifespan_handlers=[])
    app.state.backtest_service = service
    with TestClient(app=app) as test_client:
        yield test_client


class TestBacktestRoutes:
    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_data_info(self, client, service):
        service.get_data_info.return_value = DataSummary(
            total_records=10,
            symbols_count=1,
            earliest_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
            symbol_info=[
                SymbolSummary(symbol="BTCUSDT", records_count=10, min_price=Decimal("1.5"))
            ],
        )
        body = client.get("/api/backtest/data-info").json()

        assert body["total_records"] == 10
        assert body["symbol_info"][0]["min_price"] == "1.5"

    def test_strategies(self, client):
        body = client.get("/api/backtest/strategies").json()
        assert [s["id"] for s in body] == ["sma", "rsi"]
        assert body[1]["capability"]["accepts_trades"] is False

    def test_validate(self, client, service):
        service.validate_configuration.return_value = ConfigurationCheck(
            valid=True, sufficient_data=False
        )
        response = client.post("/api/backtest/validate", json={"symbol": "BTCUSDT"})

        assert response.status_code == 200
        assert response.json() == {"valid": True, "sufficient_data": False, "errors": []}

    def test_preview_passes_query(self, client, service):
        response = client.get(
            "/api/backtest/preview", params={"symbol": "BTCUSDT", "interval": "5m", "count": 20}
        )
        assert response.status_code == 200
        service.preview_bars.assert_awaited_once_with("BTCUSDT", "5m", 20)

    def test_run_returns_decimal_strings(self, client, service, repository, cache, make_trade):
        repository.fetch_recent_trades.return_value = [make_trade(0, "100")]
        engine = BacktestEngine(
            {
                "initial_capital": "10000",
                "commission_rate": "0.001",
                "symbol": "BTCUSDT",
                "requested_record_count": 1,
                "strategy_id": "sma",
            },
            cache,
            repository,
        )
        service.run_backtest.return_value = asyncio.run(engine.run())

        body = client.post("/api/backtest/run", json={"symbol": "BTCUSDT"}).json()

        assert body["final_value"] == "10000"
        assert body["data_source"] == "tick"
        assert body["metrics"]["profit_factor"] is None
        assert body["equity_curve"][0]["total_value"] == "10000"

    @pytest.mark.parametrize(
        "error,status,kind",
        [
            (ValidationError("bad capital"), 400, "validation"),
            (DataUnavailable("db down", symbol="BTCUSDT"), 503, "data_unavailable"),
            (StrategyError("boom"), 422, "strategy_error"),
            (BacktestCancelled("stopped"), 409, "cancelled"),
        ],
    )
    def test_errors_are_structured(self, client, service, error, status, kind):
        service.run_backtest.side_effect = error
        response = client.post("/api/backtest/run", json={})

        assert response.status_code == status
        assert response.json()["kind"] == kind
        assert response.json()["message"] == error.message

    def test_quick(self, client, service):
        response = client.post("/api/backtest/quick", json=[{"symbol": "BTCUSDT"}])
        assert response.status_code == 200
        assert response.json() == []
        service.quick_backtest.assert_awaited_once_with([{"symbol": "BTCUSDT"}])
