"""RFC 3339 timestamp handling.

Checkpoints and the remote API both use RFC 3339. The remote may send more
than microsecond precision, which ``datetime`` cannot hold. Extra digits are
rounded up to the next microsecond rather than dropped, so an instant that is
strictly after a microsecond watermark still compares as strictly after it.
Everything is normalized to UTC.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

_FRACTION_RE = re.compile(r"(\.\d{6})(\d+)")


def parse_rfc3339(value: str | datetime) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    Raises:
        ValueError: if ``value`` is not a valid timestamp
    """
    round_up = False
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        match = _FRACTION_RE.search(text)
        if match:
            round_up = match.group(2).strip("0") != ""
            text = text[: match.start()] + match.group(1) + text[match.end() :]
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    if round_up:
        parsed += timedelta(microseconds=1)
    return parsed.astimezone(timezone.utc)


def format_rfc3339(ts: datetime) -> str:
    """Format ``ts`` as RFC 3339 in UTC with a ``Z`` suffix."""
    ts = parse_rfc3339(ts)
    return ts.isoformat().replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["parse_rfc3339", "format_rfc3339", "utc_now"]
