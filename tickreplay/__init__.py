"""tickreplay - deterministic replay of recorded trades and bars through trading strategies."""

__version__ = "0.1.0"
