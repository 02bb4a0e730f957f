from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time in UTC.

    Call it as ``timeutils.utcnow()`` so tests can patch a single place.
    """
    return datetime.now(timezone.utc)
