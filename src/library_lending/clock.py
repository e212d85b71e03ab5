"""Time sources for the lending engine.

Every operation that depends on "now" takes a clock instead of calling
``datetime.now()`` itself, so sweeps and fine arithmetic can be driven
deterministically. Datetimes are naive local time throughout, matching
what the database stores.
"""

import threading
from collections.abc import Callable
from datetime import datetime, timedelta

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Wall-clock time."""
    return datetime.now()


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 1, 15, 10, 0, 0)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, **delta: float) -> datetime:
        """Move time forward, e.g. ``clock.advance(days=3)``."""
        with self._lock:
            self._now = self._now + timedelta(**delta)
            return self._now

    def set(self, moment: datetime) -> None:
        with self._lock:
            self._now = moment


def to_naive_local(moment: datetime) -> datetime:
    """Convert an offset-aware datetime to naive local time. Naive values pass through."""
    if moment.utcoffset() is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


# Clock used by the tool handlers; the server keeps the default
_current_clock: Clock = system_clock


def get_clock() -> Clock:
    return _current_clock


def set_clock(clock: Clock | None) -> None:
    """Swap the handlers' clock. ``None`` restores the system clock."""
    global _current_clock  # noqa: PLW0603
    _current_clock = clock or system_clock
