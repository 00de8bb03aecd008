"""Closed registry of replayable strategies."""

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

from tickreplay.core.models import StrategyInfo
from tickreplay.strategies.base import Strategy
from tickreplay.strategies.moving_average import MovingAverageCrossover
from tickreplay.strategies.rsi import RelativeStrengthIndex


@dataclass(frozen=True)
class StrategyEntry:
    factory: Callable[[Mapping[str, str]], Strategy]
    name: str
    description: str


STRATEGY_REGISTRY: Dict[str, StrategyEntry] = {
    cls.STRATEGY_ID: StrategyEntry(cls, cls.DISPLAY_NAME, cls.DESCRIPTION)
    for cls in (MovingAverageCrossover, RelativeStrengthIndex)
}


def create_strategy(
    strategy_id: str, parameters: Optional[Mapping[str, str]] = None
) -> Strategy:
    """Build a configured strategy. Unknown ids and bad parameters raise ValueError."""
    entry = STRATEGY_REGISTRY.get(strategy_id)
    if entry is None:
        raise ValueError(f"Unknown strategy: {strategy_id}")
    return entry.factory(dict(parameters or {}))


def list_strategies() -> List[StrategyInfo]:
    infos = []
    for strategy_id, entry in STRATEGY_REGISTRY.items():
        infos.append(
            StrategyInfo(
                id=strategy_id,
                name=entry.name,
                description=entry.description,
                capability=entry.factory({}).capability(),
            )
        )
    return infos


def get_strategy_info(strategy_id: str) -> Optional[StrategyInfo]:
    return next((info for info in list_strategies() if info.id == strategy_id), None)


__all__ = [
    "STRATEGY_REGISTRY",
    "Strategy",
    "StrategyEntry",
    "MovingAverageCrossover",
    "RelativeStrengthIndex",
    "create_strategy",
    "get_strategy_info",
    "list_strategies",
]
