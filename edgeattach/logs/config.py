"""Options for a log tail session, sent as the websocket URL's query string."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import urlencode

MIN_TAIL = 1
MAX_TAIL = 10000
DEFAULT_TAIL = 100

_RFC3339 = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt](?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?(?P<tz>[Zz]|[+-]\d{2}:\d{2})$"
)


class LogConfigError(ValueError):
    """Invalid log tail options."""


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp (fractional seconds of any precision).

    Raises:
        ValueError: not an RFC 3339 date-time with a zone offset.
    """
    m = _RFC3339.match(value)
    if m is None:
        raise ValueError(f"{value!r} is not an RFC 3339 timestamp")
    tz = m.group("tz")
    if tz in ("Z", "z"):
        tz = "+00:00"
    frac = m.group("frac")
    # datetime only keeps microseconds.
    frac = f".{frac[:6].ljust(6, '0')}" if frac else ""
    return datetime.fromisoformat(f"{m.group('date')}T{m.group('time')}{frac}{tz}")


@dataclass
class LogTailConfig:
    tail: int = DEFAULT_TAIL
    follow: bool = True
    since: str = ""  # RFC 3339
    until: str = ""  # RFC 3339

    def validate(self) -> None:
        """Raise :class:`LogConfigError` if any option is out of range."""
        if not MIN_TAIL <= self.tail <= MAX_TAIL:
            raise LogConfigError(
                f"tail must be between {MIN_TAIL} and {MAX_TAIL}, got {self.tail}"
            )
        for name in ("since", "until"):
            value = getattr(self, name)
            if not value:
                continue
            try:
                parse_rfc3339(value)
            except ValueError as exc:
                raise LogConfigError(
                    f"invalid {name} format: {exc} (expected ISO 8601 format)"
                ) from exc

    def query_string(self) -> str:
        """Encode as ``follow=..&since=..&tail=..&until=..`` (keys sorted)."""
        params = {
            "follow": "true" if self.follow else "false",
            "tail": str(self.tail),
        }
        if self.since:
            params["since"] = self.since
        if self.until:
            params["until"] = self.until
        return urlencode(sorted(params.items()))
