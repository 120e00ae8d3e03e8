"""Injectable time and identity sources.

Entity factories and time-dependent predicates (expiry, overdue, availability
windows) take a ``Clock`` and an ``IdGenerator`` rather than reading the wall
clock, so every computation is reproducible under test.
"""

import itertools
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    """Injectable time source."""

    def now(self) -> datetime:
        ...  # pragma: no cover


class IdGenerator(Protocol):
    """Injectable unique-id source."""

    def new_id(self) -> str:
        ...  # pragma: no cover


class SystemClock:
    """Production clock: real UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Test clock that returns a fixed, manually advanced timestamp."""

    def __init__(self, fixed_dt: datetime) -> None:
        if fixed_dt.tzinfo is None:
            raise ValueError("FixedClock requires timezone-aware datetime.")
        self._fixed_dt = fixed_dt

    def now(self) -> datetime:
        return self._fixed_dt

    def advance(self, **delta) -> datetime:
        """Move time forward, e.g. ``clock.advance(days=3)``."""
        self._fixed_dt = self._fixed_dt + timedelta(**delta)
        return self._fixed_dt

    def set(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("FixedClock requires timezone-aware datetime.")
        self._fixed_dt = moment


class UUIDGenerator:
    """Production id source: random UUID4 strings."""

    def new_id(self) -> str:
        return str(uuid.uuid4())


class SequentialIdGenerator:
    """Deterministic UUID-shaped ids for tests: 00000000-0000-0000-0000-000000000001, ..."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)

    def new_id(self) -> str:
        return str(uuid.UUID(int=next(self._counter)))


system_clock = SystemClock()
uuid_generator = UUIDGenerator()


def resolve_clock(clock: Optional[Clock]) -> Clock:
    return clock if clock is not None else system_clock


def resolve_ids(ids: Optional[IdGenerator]) -> IdGenerator:
    return ids if ids is not None else uuid_generator
