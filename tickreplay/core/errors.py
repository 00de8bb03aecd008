"""Error taxonomy shared by the repository, cache, engine and API layers.

Every error carries a machine-readable ``kind`` and a human-readable message so
the presentation layer can return a structured failure without inspecting the
exception type.
"""

from typing import Optional


class BacktestError(Exception):
    """Base class for all failures surfaced by the core."""

    kind = "backtest_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(BacktestError):
    """Bad configuration. Raised before any data access happens."""

    kind = "validation"


class DataUnavailable(BacktestError):
    """The persistent store (or every cache tier in front of it) failed."""

    kind = "data_unavailable"

    def __init__(
        self, message: str, symbol: Optional[str] = None, window: Optional[str] = None
    ):
        super().__init__(message)
        self.symbol = symbol
        self.window = window

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["symbol"] = self.symbol
        payload["window"] = self.window
        return payload


class StrategyError(BacktestError):
    """A strategy raised while producing a signal. Fatal to the current run only."""

    kind = "strategy_error"


class CacheTierDegraded(BacktestError):
    """The remote cache tier failed. Logged and bypassed, never fatal."""

    kind = "cache_tier_degraded"


class BacktestCancelled(BacktestError):
    """The run was cancelled before it reached ``Finalized``."""

    kind = "cancelled"
