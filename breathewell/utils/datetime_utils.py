# breathewell/utils/datetime_utils.py
from datetime import datetime, timezone
from typing import Any, Optional


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_aware(dt: Any) -> Optional[datetime]:
    """Stored timestamps may come back naive (legacy rows); treat those as UTC."""
    if not isinstance(dt, datetime):
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
