"""In-memory registry of terminal sessions and the active selection."""

from __future__ import annotations

import logging as py_logging
import time
from collections.abc import Callable

from splitmux.models import ConnectionStatus, Project, Session

logger = py_logging.getLogger(__name__)

SessionObserver = Callable[[list[Session], str | None], None]


class SessionRegistry:
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._active_id: str | None = None
        self._counter = 0
        self._observers: list[SessionObserver] = []

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def active(self) -> Session | None:
        if self._active_id is None:
            return None
        return self._sessions.get(self._active_id)

    @property
    def count(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def all(self) -> list[Session]:
        return sorted(self._sessions.values(), key=lambda item: item.sequence)

    def create(self, project: Project | None = None) -> Session:
        self._counter += 1
        created_at = self._clock()
        session = Session(
            id=f"terminal-{int(created_at * 1000)}-{self._counter}",
            name=project.name if project and project.name else f"Terminal {self._counter}",
            project=project,
            status=ConnectionStatus.DISCONNECTED,
            created_at=created_at,
            sequence=self._counter,
        )
        self._sessions[session.id] = session
        if len(self._sessions) == 1:
            self._active_id = session.id
        logger.debug("session created id=%s name=%s", session.id, session.name)
        self._notify()
        return session

    def remove(self, session_id: str) -> bool:
        if session_id not in self._sessions:
            return False
        del self._sessions[session_id]
        if self._active_id == session_id:
            remaining = self.all()
            self._active_id = remaining[0].id if remaining else None
        logger.debug("session removed id=%s active=%s", session_id, self._active_id)
        self._notify()
        return True

    def set_active(self, session_id: str) -> bool:
        if session_id not in self._sessions:
            return False
        self._active_id = session_id
        self._notify()
        return True

    def update_status(self, session_id: str, status: ConnectionStatus | str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.status = ConnectionStatus(status)
        self._notify()
        return True

    def update_project(self, session_id: str, project: Project | None) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.project = project
        if project is not None and project.name:
            session.name = project.name
        self._notify()
        return True

    def rename(self, session_id: str, name: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.name = name
        self._notify()
        return True

    def next_id(self) -> str | None:
        return self._neighbour(1)

    def previous_id(self) -> str | None:
        return self._neighbour(-1)

    def clear(self) -> None:
        self._sessions.clear()
        self._active_id = None
        self._notify()

    def subscribe(self, observer: SessionObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _neighbour(self, offset: int) -> str | None:
        ordered = [item.id for item in self.all()]
        if not ordered:
            return None
        if self._active_id not in ordered:
            return ordered[0]
        index = ordered.index(self._active_id)
        return ordered[(index + offset) % len(ordered)]

    def _notify(self) -> None:
        sessions = self.all()
        for observer in list(self._observers):
            observer(sessions, self._active_id)
