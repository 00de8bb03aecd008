from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Iterable, Mapping

from tickreplay.core.models import MarketRecord, Signal, StrategyCapability


class Strategy(ABC):
    """Contract every replayable strategy implements.

    A strategy is a small state machine fed one record at a time. Its state
    (rolling windows, last emitted signal) changes only through
    ``on_record``; identical record sequences always yield identical signal
    sequences, so nothing here may read the clock or a random source.

    **Members** (all required, no inherited defaults):
    - `id`: Registry identifier (property)
    - `name`: Display name (property)
    - `capability`: Which record kinds the strategy understands
    - `on_record`: Consume one Trade or Bar, return BUY / SELL / HOLD
    - `reset`: Drop all internal state before a new run

    **Integration**:
    1. Implement this ABC
    2. Register it in `STRATEGY_REGISTRY` (strategies/__init__.py)

    Example:
        >>> strategy = create_strategy("sma", {"short_period": "3", "long_period": "8"})
        >>> strategy.on_record(bar)
        <Signal.HOLD: 'HOLD'>
    """

    @property
    @abstractmethod
    def id(self) -> str:
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def capability(self) -> StrategyCapability:
        pass

    @abstractmethod
    def on_record(self, record: MarketRecord) -> Signal:
        """
        Consume the next record of the replay.

        Args:
            record: A Trade (when accepts_trades) or a Bar (when accepts_bars).
                    Both expose ``timestamp`` and ``price``.

        Returns:
            Signal: BUY, SELL, or HOLD.
        """
        pass

    @abstractmethod
    def reset(self) -> None:
        pass


def check_parameter_names(parameters: Mapping[str, str], allowed: Iterable[str]) -> None:
    unknown = sorted(set(parameters) - set(allowed))
    if unknown:
        raise ValueError(f"Unknown parameter(s): {', '.join(unknown)}")


def int_parameter(parameters: Mapping[str, str], key: str, default: int) -> int:
    raw = parameters.get(key)
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ValueError(f"Invalid {key}: '{raw}' is not an integer")
    if value <= 0:
        raise ValueError(f"Invalid {key}: must be positive, got {value}")
    return value


def decimal_parameter(parameters: Mapping[str, str], key: str, default: Decimal) -> Decimal:
    raw = parameters.get(key)
    if raw is None:
        return default
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid {key}: '{raw}' is not a number")
    if not value.is_finite():
        raise ValueError(f"Invalid {key}: must be finite")
    return value


