"""One clock for everything the service stores.

DateTime columns are naive and always hold UTC. Tracking events serialize the
same instant with an explicit ``+00:00`` offset.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_utc(moment: datetime) -> str:
    return moment.replace(tzinfo=timezone.utc).isoformat()
