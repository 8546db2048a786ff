"""Stateful driver around the pure session core.

``SessionEngine`` is what an embedding host holds on to: it keeps the
current ``SessionState``, feeds events through ``process_event()``, logs
each cycle with a ``SessionLogger`` and remembers the most recent
responses in an in-memory ring for status displays.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from hostdrive.agent import Agent
from hostdrive.logging_setup import log_caller
from hostdrive.models import (
    ContinueSession,
    FinishSession,
    HostEvent,
    Response,
    SettingsUpdated,
    StartTask,
    TaskCompleted,
    TimeLimitUpdated,
)
from hostdrive.session import integrate_event, process_event
from hostdrive.state import SessionState, init_session

S = TypeVar("S")

RING_SIZE = 256


class SessionLogger:
    """Structured logger for one driven session.

    Log format:
        [session:<name>] [cycle:<N>] <message>
    """

    def __init__(self, session_name: str, base_logger: logging.Logger | None = None):
        self.session = session_name
        self._logger = base_logger or logging.getLogger(f"hostdrive.session.{session_name}")
        self.cycle: int = 0
        self.session_start: float = time.monotonic()

    def _prefix(self) -> str:
        return f"[session:{self.session}] [cycle:{self.cycle}]"

    def debug(self, msg: str, *args: Any) -> None:
        self._logger.debug(f"{self._prefix()} {msg}", *args)

    def info(self, msg: str, *args: Any) -> None:
        self._logger.info(f"{self._prefix()} {msg}", *args)

    def warning(self, msg: str, *args: Any) -> None:
        self._logger.warning(f"{self._prefix()} {msg}", *args)

    def session_start_log(self, *, agent: str, time_ms: int) -> None:
        self.info("Session started | agent=%s | time_ms=%d", agent, time_ms)

    def task_dispatched(self, task: StartTask) -> None:
        self.info("Dispatched %s | %s", task.task_id, task.description.splitlines()[0])

    def task_completed(self, event: TaskCompleted) -> None:
        self.debug("Completed %s | result=%s", event.task_id, type(event.result).__name__)

    def session_end_log(self, *, cycles: int, reason: str) -> None:
        elapsed = time.monotonic() - self.session_start
        first_line = reason.splitlines()[0] if reason else ""
        self.info(
            "Session ended | cycles=%d | duration=%.1fs | reason=%s",
            cycles, elapsed, first_line,
        )


@dataclass(frozen=True, slots=True)
class ResponseRecord:
    time_ms: int
    event: str
    response: Response


class SessionEngine(Generic[S]):
    """Drive one session for *agent*, starting from *initial_state*."""

    def __init__(
        self,
        agent: Agent[S],
        initial_state: S,
        *,
        name: str = "session",
        settings: str | None = None,
        time_limit_ms: int | None = None,
        ring_size: int = RING_SIZE,
    ):
        if ring_size <= 0:
            raise ValueError(f"ring_size must be positive, got {ring_size}")
        self.agent = agent
        self.name = name
        self._initial_state = initial_state
        self._initial_settings = settings
        self._initial_time_limit = time_limit_ms
        self.state: SessionState[S] | None = None
        self.finished: FinishSession | None = None
        self.recent: deque[ResponseRecord] = deque(maxlen=ring_size)
        self.log = SessionLogger(name)

    def start(self, time_ms: int = 0) -> SessionState[S]:
        """Create the initial session state and forward initial configuration."""
        state = init_session(self._initial_state, time_ms)
        if self._initial_settings is not None:
            state, _ = integrate_event(state, SettingsUpdated(time_ms=time_ms, settings=self._initial_settings))
        if self._initial_time_limit is not None:
            state, _ = integrate_event(
                state, TimeLimitUpdated(time_ms=time_ms, time_limit_ms=self._initial_time_limit),
            )
        self.state = state
        self.finished = None
        self.recent.clear()
        self.log.cycle = 0
        self.log.session_start_log(agent=self.agent.name, time_ms=time_ms)
        return state

    def handle(self, event: HostEvent) -> Response:
        """Integrate one host event and return the response for the host."""
        if self.state is None:
            raise RuntimeError("Session not started; call start() first")
        if self.finished is not None:
            raise RuntimeError(f"Session {self.name} already finished")

        token = log_caller.set(f"session:{self.name}")
        try:
            self.log.cycle += 1
            if isinstance(event, TaskCompleted):
                self.log.task_completed(event)
            self.state, response = process_event(self.agent, self.state, event)
            self.recent.append(
                ResponseRecord(time_ms=self.state.time_ms, event=type(event).__name__, response=response)
            )
            match response:
                case ContinueSession(start_task=task) if task is not None:
                    self.log.task_dispatched(task)
                case FinishSession():
                    self.finished = response
                    self.log.session_end_log(cycles=self.log.cycle, reason=response.status_text)
            return response
        finally:
            log_caller.reset(token)

    def recent_statuses(self, n: int = 10) -> list[str]:
        """Status texts of the last *n* responses, oldest first."""
        return [r.response.status_text for r in list(self.recent)[-n:]]
