from pathlib import Path
from datetime import datetime, timezone
from typing import Optional


def resolve_sqlite_url(url: str, project_root: Path) -> str:
    """Resolve 'sqlite:///./relative/path' to an absolute sqlite:/// URL.

    Keeps other URL forms unchanged.
    """
    prefix = "sqlite:///./"
    if not url.startswith(prefix):
        return url
    rel = url[len(prefix) :]
    return f"sqlite:///{(project_root / rel).resolve()}"


def ms_to_datetime(timestamp_ms: Optional[int]) -> Optional[datetime]:
    """Convert a millisecond timestamp to an aware UTC datetime, or return None.

    Ledger and draw timestamps are stored as integer milliseconds; this helper
    is intended for display and JSON serialization.
    """
    if timestamp_ms is None:
        return None
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def dt_iso_from_ms(timestamp_ms: Optional[int]) -> Optional[str]:
    """Convert a millisecond timestamp to an ISO 8601 string in UTC, or None."""
    dt = ms_to_datetime(timestamp_ms)
    return dt.isoformat() if dt is not None else None
