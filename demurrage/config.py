SECONDS = 1
MINUTES = 60 * SECONDS
HOURS = 60 * MINUTES
DAYS = 24 * HOURS

# Fee year used as the denominator for fee-rate scaling
FEE_YEAR_SECONDS = 365 * DAYS

# Coin denomination
TOKEN_NAME = "Demurrage Gold"
TOKEN_SYMBOL = "DMG"
DECIMALS = 8
UNITS_PER_COIN = 10 ** DECIMALS

# Fee policy, scaled to 10 ** DECIMALS per fee year
# 1_000_000 at 8 decimals -> 1% of the balance per fee year
DEFAULT_FEE_RATE = 1_000_000
MAX_FEE_RATE = 5_000_000
# Half a fee year between successive rate changes
FEE_CHANGE_MIN_DELAY = FEE_YEAR_SECONDS // 2

ZERO_ADDRESS = "0x" + "0" * 40

# Role defaults; None means "use the node wallet"
OWNER_ADDRESS = None
MINTER_ADDRESS = None
FEE_COLLECTION_ADDRESS = "0xc8102ec9be0227ce30dbf77fec8a4e19b9e701ea"

# HTTP
API_PORT = 5000
MAX_EVENTS_RETURNED = 200
# Signed calls are accepted within this many seconds of their timestamp;
# call ids are remembered for the same window
CALL_MAX_AGE = 10 * MINUTES

# Ledger events kept in memory by the proxy
EVENT_LOG_LIMIT = 10_000

# Console logging threshold: DEBUG, INFO, WARN, ERROR
LOG_LEVEL = "INFO"
