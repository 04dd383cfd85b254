"""Composition root wiring the layout tree, session registry and bridges.

The orchestrator is owned by a single control thread: layout, registry and
bridge state are only mutated from the operations below and from
:meth:`SessionOrchestrator.process_events`, which drains every bridge's
event channel in order.
"""

from __future__ import annotations

import logging as py_logging
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from splitmux.bridge import ProcessBridge
from splitmux.config import AppConfig, recent_projects, remember_project, save_config
from splitmux.debounce import DelayedWrites, ResizeDebouncer
from splitmux.errors import ExitCode, SplitMuxError
from splitmux.events import (
    HostFailed,
    HostReady,
    SessionEvent,
    ShellExited,
    ShellOutput,
    ShellSpawned,
    StatusChanged,
)
from splitmux.layout import PaneLayoutTree
from splitmux.models import ConnectionStatus, Project, Session, SpawnRequest, SplitDirection
from splitmux.registry import SessionRegistry

logger = py_logging.getLogger(__name__)


class SessionBridge(Protocol):
    session_id: str

    @property
    def status(self) -> ConnectionStatus: ...

    def start(self) -> bool: ...

    def spawn(self, request: SpawnRequest) -> bool: ...

    def write(self, data: str) -> bool: ...

    def resize(self, cols: int, rows: int) -> bool: ...

    def stop(self) -> None: ...

    def restart(self) -> None: ...

    def poll(self) -> list[SessionEvent]: ...


class RendererSink(Protocol):
    def layout_changed(self, layout: dict[str, object]) -> None: ...

    def sessions_changed(self, sessions: list[Session], active_id: str | None) -> None: ...

    def output(self, session_id: str, data: str) -> None: ...

    def session_error(self, session_id: str, message: str) -> None: ...


BridgeFactory = Callable[[str, str], SessionBridge]

EXIT_BANNER = "\r\n\x1b[33m[Process exited with code {code}]\x1b[0m\r\n"


class SessionOrchestrator:
    def __init__(
        self,
        boundary_root: str | Path | None = None,
        *,
        config: AppConfig | None = None,
        config_path: str | Path | None = None,
        bridge_factory: BridgeFactory | None = None,
        renderer: RendererSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or AppConfig()
        self.config_path = config_path
        root = boundary_root or self.config.boundary_root
        if not root:
            raise SplitMuxError(
                "No boundary root configured.",
                code=ExitCode.CONFIG_ERROR,
                hint="Set boundary_root in the config file or pass a directory.",
            )
        self.boundary_root = str(root)
        self._renderer = renderer
        self._bridge_factory = bridge_factory or self._default_bridge
        self.tree = PaneLayoutTree(on_change=self._on_layout_change)
        self.registry = SessionRegistry()
        self.registry.subscribe(self._on_sessions_change)
        self._bridges: dict[str, SessionBridge] = {}
        self._output: dict[str, str] = {}
        self._errors: dict[str, str] = {}
        self._geometry: dict[str, tuple[int, int]] = {}
        self._resizes = ResizeDebouncer(self.config.resize_debounce, clock=clock)
        self._startup = DelayedWrites(self.config.auto_start_delay, clock=clock)

    # Renderer contract -------------------------------------------------

    @property
    def active_session_id(self) -> str | None:
        return self.registry.active_id

    def layout_snapshot(self) -> dict[str, object]:
        return self.tree.to_dict()

    def sessions(self) -> list[Session]:
        return self.registry.all()

    def session_status(self, session_id: str) -> ConnectionStatus | None:
        session = self.registry.get(session_id)
        return session.status if session else None

    def output(self, session_id: str) -> str:
        return self._output.get(session_id, "")

    def last_error(self, session_id: str) -> str:
        return self._errors.get(session_id, "")

    def bridge(self, session_id: str) -> SessionBridge | None:
        return self._bridges.get(session_id)

    def recent_projects(self) -> list[Project]:
        return recent_projects(self.config)

    # Operations ----------------------------------------------------------

    def create_session(self, project: Project | None = None) -> Session:
        session = self._open_session(project)
        pane_id = self._empty_pane()
        if pane_id is not None:
            self.tree.set_pane_instance(pane_id, session.id)
        return session

    def split(
        self,
        pane_id: str,
        direction: SplitDirection | str,
        project: Project | None = None,
    ) -> str:
        if not self.tree.can_split(pane_id):
            raise SplitMuxError(
                f"Not a pane: {pane_id}",
                code=ExitCode.LAYOUT_ERROR,
                hint="Select an existing pane to split.",
            )
        if project is None:
            source = self.tree.pane_instance(pane_id)
            source_session = self.registry.get(source) if source else None
            project = source_session.project if source_session else None

        session = self._open_session(project)
        try:
            new_pane = self.tree.split(pane_id, direction, session.id)
        except SplitMuxError:
            self._dispose_session(session.id)
            raise
        self.registry.set_active(session.id)
        return new_pane

    def close(self, pane_id: str) -> str | None:
        session_id = self.tree.close(pane_id)
        if session_id is not None:
            self._dispose_session(session_id)
        self._sync_active_session()
        return session_id

    def set_active(self, pane_id: str, notify: bool = True) -> bool:
        if not self.tree.set_active(pane_id, notify=notify):
            return False
        self._sync_active_session()
        return True

    def resize_split(self, split_id: str, sizes: tuple[float, float] | list[float]) -> tuple[float, float]:
        return self.tree.resize(split_id, sizes)

    def focus_next(self) -> str:
        pane_id = self.tree.focus_next()
        self._sync_active_session()
        return pane_id

    def focus_previous(self) -> str:
        pane_id = self.tree.focus_previous()
        self._sync_active_session()
        return pane_id

    def remove_session(self, session_id: str) -> bool:
        if self.registry.get(session_id) is None:
            return False
        pane_id = self.tree.find_pane(session_id)
        if pane_id is not None:
            if self.tree.can_close(pane_id):
                self.tree.close(pane_id)
            else:
                self.tree.set_pane_instance(pane_id, None)
        self._dispose_session(session_id)
        self._sync_active_session()
        return True

    def update_project(self, session_id: str, project: Project | None) -> bool:
        if not self.registry.update_project(session_id, project):
            return False
        if project is not None:
            self._remember(project)
        return True

    def write(self, session_id: str, data: str) -> bool:
        bridge = self._bridges.get(session_id)
        if bridge is None:
            return False
        return bridge.write(data)

    def restart(self, session_id: str) -> bool:
        bridge = self._bridges.get(session_id)
        if bridge is None:
            return False
        self._errors.pop(session_id, None)
        self._startup.cancel(session_id)
        logger.info("restarting session=%s", session_id)
        bridge.restart()
        return True

    def resize_terminal(self, session_id: str, cols: int, rows: int) -> None:
        if cols <= 0 or rows <= 0:
            raise SplitMuxError(
                f"Invalid terminal size: {cols}x{rows}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use positive terminal row/column values.",
            )
        if session_id not in self._bridges:
            return
        self._geometry[session_id] = (cols, rows)
        self._resizes.request(session_id, cols, rows)

    def process_events(self) -> int:
        """Run one control-loop step; returns the number of events handled."""
        for pending in self._resizes.pop_due():
            bridge = self._bridges.get(pending.session_id)
            if bridge is not None:
                bridge.resize(pending.cols, pending.rows)
        for startup in self._startup.pop_due():
            bridge = self._bridges.get(startup.session_id)
            if bridge is not None:
                bridge.write(startup.data)

        handled = 0
        for session_id, bridge in list(self._bridges.items()):
            for event in bridge.poll():
                self._handle_event(session_id, bridge, event)
                handled += 1
        return handled

    def run(self, stop: threading.Event, *, interval: float = 0.02) -> None:
        while not stop.is_set():
            if not self.process_events():
                stop.wait(interval)

    def shutdown(self) -> None:
        for session_id in list(self._bridges):
            bridge = self._bridges.pop(session_id)
            bridge.stop()
        logger.info("orchestrator shut down")

    # Internals -----------------------------------------------------------

    def _handle_event(self, session_id: str, bridge: SessionBridge, event: SessionEvent) -> None:
        if isinstance(event, StatusChanged):
            self.registry.update_status(session_id, event.status)
        elif isinstance(event, HostReady):
            bridge.spawn(self._spawn_request(session_id))
        elif isinstance(event, ShellSpawned):
            self._errors.pop(session_id, None)
            command = self.config.startup_command
            if self.config.auto_start and command:
                self._startup.schedule(session_id, f"{command}\r")
        elif isinstance(event, ShellOutput):
            self._emit_output(session_id, event.data)
        elif isinstance(event, ShellExited):
            logger.info("session=%s shell exited code=%s", session_id, event.exit_code)
            self._startup.cancel(session_id)
            code = event.exit_code if event.exit_code is not None else event.signal
            self._emit_output(session_id, EXIT_BANNER.format(code=code))
        elif isinstance(event, HostFailed):
            self._errors[session_id] = event.message
            if self._renderer is not None:
                self._renderer.session_error(session_id, event.message)

    def _spawn_request(self, session_id: str) -> SpawnRequest:
        session = self.registry.get(session_id)
        cwd = session.project.path if session and session.project else self.boundary_root
        cols, rows = self._geometry.get(session_id, (self.config.cols, self.config.rows))
        return SpawnRequest(
            shell=self.config.shell,
            cwd=cwd,
            cols=cols,
            rows=rows,
            args=list(self.config.shell_args),
        )

    def _emit_output(self, session_id: str, data: str) -> None:
        buffer = self._output.get(session_id, "") + data
        limit = self.config.scrollback_limit
        if limit and len(buffer) > limit:
            buffer = buffer[-limit:]
        self._output[session_id] = buffer
        if self._renderer is not None:
            self._renderer.output(session_id, data)

    def _remember(self, project: Project) -> None:
        remember_project(self.config, project)
        if self.config_path is not None:
            save_config(self.config, self.config_path)

    def _open_session(self, project: Project | None) -> Session:
        if project is not None:
            self._remember(project)
        session = self.registry.create(project)
        bridge = self._bridge_factory(session.id, self.boundary_root)
        self._bridges[session.id] = bridge
        if not bridge.start():
            logger.error("session=%s host failed to start", session.id)
        return session

    def _dispose_session(self, session_id: str) -> None:
        bridge = self._bridges.pop(session_id, None)
        if bridge is not None:
            bridge.stop()
        self._resizes.cancel(session_id)
        self._startup.cancel(session_id)
        self._output.pop(session_id, None)
        self._errors.pop(session_id, None)
        self._geometry.pop(session_id, None)
        self.registry.remove(session_id)

    def _empty_pane(self) -> str | None:
        active = self.tree.active_pane
        if self.tree.pane_instance(active) is None:
            return active
        for pane_id in self.tree.all_pane_ids():
            if self.tree.pane_instance(pane_id) is None:
                return pane_id
        return None

    def _sync_active_session(self) -> None:
        session_id = self.tree.pane_instance(self.tree.active_pane)
        if session_id is not None and session_id != self.registry.active_id:
            self.registry.set_active(session_id)

    def _default_bridge(self, session_id: str, boundary_root: str) -> SessionBridge:
        return ProcessBridge(
            session_id,
            boundary_root,
            host_command=self.config.host_command or None,
            kill_timeout=self.config.kill_timeout,
            restart_margin=self.config.restart_margin,
        )

    def _on_layout_change(self, tree: PaneLayoutTree) -> None:
        if self._renderer is not None:
            self._renderer.layout_changed(tree.to_dict())

    def _on_sessions_change(self, sessions: list[Session], active_id: str | None) -> None:
        if self._renderer is not None:
            self._renderer.sessions_changed(sessions, active_id)
