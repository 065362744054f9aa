from __future__ import annotations

from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo

# e.g. "2024-03-09 04:05:06 PM"
TIMESTAMP_FORMAT = "%Y-%m-%d %I:%M:%S %p"


class Clock(Protocol):
    def now(self) -> str: ...


class ZoneClock:
    """Wall clock for audit fields, rendered in one configured timezone."""

    def __init__(self, timezone: str, fmt: str = TIMESTAMP_FORMAT) -> None:
        self._zone = ZoneInfo(timezone)
        self._fmt = fmt

    def now(self) -> str:
        return datetime.now(self._zone).strftime(self._fmt)
