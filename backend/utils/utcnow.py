"""UTC clock helpers.

Cache entries and breaker marks store **naive** UTC datetimes; these
helpers keep that convention in one place and give tests a single seam
for time.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Return the current UTC time as a naive (tzinfo=None) datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def seconds_since(then: datetime, now: Optional[datetime] = None) -> float:
    """Seconds elapsed between ``then`` and ``now`` (never negative)."""
    current = now if now is not None else utcnow()
    return max(0.0, (current - then).total_seconds())
