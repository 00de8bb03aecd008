"""System-wide constants for data access, replay and performance metrics.

- **Query Limits**: default/max record counts for previews and recent windows
- **Candle Estimation**: how many trades a candle is assumed to absorb
- **Replay Cadence**: how often the replay loop yields to the event loop
- **Time Constants**: seconds per year for Sharpe annualization (24/7 markets)

Most values overridable via environment variables for flexibility.
"""

import os

# ============================================================================
# QUERY LIMITS
# ============================================================================

DEFAULT_QUERY_LIMIT = int(os.getenv("DEFAULT_QUERY_LIMIT", "1000"))
MAX_QUERY_LIMIT = int(os.getenv("MAX_QUERY_LIMIT", "10000"))

# ============================================================================
# BAR LOADING
# ============================================================================
# A run asking for N trades replays roughly N / TRADES_PER_CANDLE candles,
# never fewer than MIN_CANDLES.

TRADES_PER_CANDLE_ESTIMATE = int(os.getenv("TRADES_PER_CANDLE_ESTIMATE", "50"))
MIN_CANDLES = int(os.getenv("MIN_CANDLES", "100"))

# ============================================================================
# REPLAY
# ============================================================================

REPLAY_YIELD_EVERY = int(os.getenv("REPLAY_YIELD_EVERY", "1000"))

# ============================================================================
# TIME CONSTANTS
# ============================================================================

SECONDS_PER_YEAR = 365 * 24 * 60 * 60  # Crypto 24/7

# ============================================================================
# QUICK TEST
# ============================================================================
# Default batch: the most-traded symbols against every registered strategy.

QUICK_TEST_SYMBOLS = int(os.getenv("QUICK_TEST_SYMBOLS", "3"))
QUICK_TEST_MAX_RECORDS = int(os.getenv("QUICK_TEST_MAX_RECORDS", "5000"))
