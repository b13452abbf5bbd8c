PRECISION = 1_000_000
MAX_FEE_RATE = 50_000

# accumulated-rate curve scale
CURVE_SCALE = 10**18

HOUR = 3600
DAY = 24 * HOUR
YEAR = 365 * DAY

# bumped together with an alembic revision whenever ledger columns change
STORAGE_VERSION = 4

OPEN_TERM = "open_term"
FIXED_TERM = "fixed_term"
LEDGER_KINDS = (OPEN_TERM, FIXED_TERM)

OPERATOR_ROLE = "operator"

CERT_ACTIVE = "active"
CERT_CLOSED = "closed"
