"""Backtest Engine and Portfolio Simulator.

Replays trades or bars in strict chronological order through one strategy,
applies its signals to a cash/position ledger and reports performance.
"""
