from datetime import datetime, timezone
import time

from basketledger.core.constants import DAY, HOUR

# accounting days close at 07:00 UTC
_SHIFT = 17 * HOUR
_CUTOVER = 7 * HOUR


def normalize(ts: int) -> int:
    return (int(ts) + _SHIFT) // DAY * DAY + _CUTOVER


def now_ts() -> int:
    return int(time.time())


def to_datetime(ts: int) -> datetime:
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)
