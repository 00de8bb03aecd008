from contextlib import asynccontextmanager
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

import logging

from litestar import Litestar, Router, get
from litestar.config.cors import CORSConfig
from opentelemetry.instrumentation.asgi import OpenTelemetryMiddleware

from tickreplay.api.routes.backtest import BacktestController, backtest_error_handler
from tickreplay.core.config import settings
from tickreplay.core.errors import BacktestError
from tickreplay.core.telemetry import configure_logging, setup_telemetry
from tickreplay.services.backtest import BacktestService

configure_logging()
logger = logging.getLogger(__name__)

# Initialize OTel Global Tracer
otel_enabled = setup_telemetry(service_name=settings.PROJECT_NAME)


@get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@asynccontextmanager
async def lifespan(app: Litestar):
    """
    Build the BacktestService (repository + cache) on startup and release
    its connections on shutdown.
    """
    logger.info("🔌 Connecting trade store and cache tiers...")
    service = BacktestService.from_settings(settings)
    app.state.backtest_service = service
    logger.info("✅ Backtest service ready")

    try:
        yield
    finally:
        logger.info("🛑 Lifespan: closing backtest service...")
        await service.close()


def create_app(lifespan_handlers=None) -> Litestar:
    # Base path for all routes
    api_router = Router(path="/api", route_handlers=[health_check, BacktestController])
    cors_config = CORSConfig(
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    return Litestar(
        route_handlers=[api_router],
        cors_config=cors_config,
        exception_handlers={BacktestError: backtest_error_handler},
        # Use standard OTel Middleware which picks up global tracer
        middleware=[OpenTelemetryMiddleware] if otel_enabled else [],
        debug=settings.DEBUG,
        lifespan=[lifespan] if lifespan_handlers is None else lifespan_handlers,
    )


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tickreplay.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
