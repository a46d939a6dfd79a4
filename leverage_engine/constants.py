"""Fixed-point scales shared across the engine."""

# 1.0x leverage
PRECISION = 10_000

# LTVs and liquidation thresholds are expressed in basis points
LTV_SCALE = 10_000
BPS = 10_000

# Oracle prices and USD values carry 8 decimals
USD_DECIMALS = 8
USD_UNIT = 10**USD_DECIMALS

DEFAULT_MAX_COLLATERAL_ASSETS = 5
DEFAULT_MAX_LOOP_ITERATIONS = 10
DEFAULT_BORROW_HAIRCUT_BPS = 9_500
DEFAULT_MAX_SLIPPAGE_BPS = 100
DEFAULT_SWAP_DEADLINE_SECONDS = 300

# Health factors carry 18 decimals; debt-free accounts report the maximum
HEALTH_FACTOR_ONE = 10**18
HEALTH_FACTOR_MAX = 2**256 - 1
