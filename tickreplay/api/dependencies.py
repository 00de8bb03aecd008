from litestar.datastructures import State

from tickreplay.core.errors import BacktestError
from tickreplay.services.backtest import BacktestService


async def provide_backtest_service(state: State) -> BacktestService:
    """
    Dependency: the process-wide BacktestService built during app startup.
    """
    service = getattr(state, "backtest_service", None)
    if service is None:
        raise BacktestError("Backtest service is not initialized")
    return service
