"""Clock-driven deferral of per-session terminal work: resizes and startup input."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar


class _Deferred(Protocol):
    @property
    def session_id(self) -> str: ...

    @property
    def due_at(self) -> float: ...


ItemT = TypeVar("ItemT", bound=_Deferred)


@dataclass(frozen=True)
class PendingResize:
    session_id: str
    cols: int
    rows: int
    due_at: float


@dataclass(frozen=True)
class PendingWrite:
    session_id: str
    data: str
    due_at: float


class _SessionSchedule(Generic[ItemT]):
    """At most one pending item per session; newer items replace older ones."""

    def __init__(self, delay_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.delay_seconds = max(0.0, delay_seconds)
        self._clock = clock
        self._pending: dict[str, ItemT] = {}

    def _due_at(self) -> float:
        return self._clock() + self.delay_seconds

    def _put(self, item: ItemT) -> None:
        self._pending[item.session_id] = item

    def cancel(self, session_id: str) -> None:
        self._pending.pop(session_id, None)

    def pending(self, session_id: str) -> ItemT | None:
        return self._pending.get(session_id)

    def pop_due(self) -> list[ItemT]:
        now = self._clock()
        due = [item for item in self._pending.values() if item.due_at <= now]
        for item in due:
            del self._pending[item.session_id]
        return due


class ResizeDebouncer(_SessionSchedule[PendingResize]):
    def request(self, session_id: str, cols: int, rows: int) -> None:
        # Each request restarts the quiet period for its session.
        self._put(PendingResize(session_id=session_id, cols=cols, rows=rows, due_at=self._due_at()))


class DelayedWrites(_SessionSchedule[PendingWrite]):
    """Input written to a session once its delay has elapsed."""

    def schedule(self, session_id: str, data: str) -> None:
        self._put(PendingWrite(session_id=session_id, data=data, due_at=self._due_at()))
