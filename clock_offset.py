# clock_offset.py
from __future__ import annotations

from dataclasses import dataclass

NTP_DELTA = 2208988800  # seconds between 1900-01-01 and 1970-01-01


@dataclass(frozen=True)
class ClockReading:
    offset_ms: int
    unix_seconds: int
    unix_millis: int
    hour: int
    minute: int
    second: int
    millisecond: int

    @property
    def local_offset_ms(self) -> int:
        """Offset of the server clock against the local clock, epoch delta removed."""
        return self.offset_ms - NTP_DELTA * 1000


def _tdiv(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def _tmod(a: int, b: int) -> int:
    """Remainder with the sign of the dividend (pairs with _tdiv)."""
    return a - b * _tdiv(a, b)


def compute_offset(t1: int, t2: int, t3: int, t4: int) -> int:
    """((T2 - T1) + (T3 - T4)) / 2 in milliseconds.

    T1/T4 are local Unix-epoch milliseconds, T2/T3 are NTP-epoch milliseconds,
    so the result still carries the 1900->1970 delta.
    """
    return _tdiv((t2 - t1) + (t3 - t4), 2)


def compute_timestamp(t1: int, t2: int, t3: int, t4: int, now: int) -> ClockReading:
    """
    Pure calculation of the adjusted clock from one exchange.

    - t1, t4: client send / receive time (ms since 1970, local clock)
    - t2, t3: server receive / transmit time (ms since 1900)
    - now:    local clock after the reply was decoded (ms since 1970)

    The epoch delta is removed from ``now + offset`` as a whole.
    """
    offset = compute_offset(t1, t2, t3, t4)
    adjusted = now + offset

    unix_seconds = _tdiv(adjusted, 1000) - NTP_DELTA
    return ClockReading(
        offset_ms=offset,
        unix_seconds=unix_seconds,
        unix_millis=adjusted - NTP_DELTA * 1000,
        hour=_tdiv(_tmod(unix_seconds, 86400), 3600),
        minute=_tdiv(_tmod(unix_seconds, 3600), 60),
        second=_tmod(unix_seconds, 60),
        millisecond=_tmod(adjusted, 1000),
    )
