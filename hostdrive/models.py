"""Value types exchanged between the host and the session engine.

Everything here is an immutable dataclass.  Variant families (host events,
task results, host responses, task requests, effects, agent decisions) are
plain unions of dataclasses and are dispatched with ``match`` statements.

All timestamps and durations are integer milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

S = TypeVar("S")


# ---------------------------------------------------------------------------
# Discovered host-side facts
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ProcessCandidate:
    """A client process found on the host, with its main window."""

    process_id: int
    main_window_id: str
    main_window_title: str = ""
    main_window_z_index: int = 0


@dataclass(frozen=True, slots=True)
class RootSearchResult:
    """Outcome of searching a process for the UI root address."""

    process_id: int
    root_address: str | None


@dataclass(frozen=True, slots=True)
class Snapshot:
    """A parsed snapshot of the target process's UI tree."""

    window_id: str
    tree: Any = None


# Snapshot outcomes

@dataclass(frozen=True, slots=True)
class SnapshotParsed:
    snapshot: Snapshot


@dataclass(frozen=True, slots=True)
class SnapshotProcessGone:
    pass


@dataclass(frozen=True, slots=True)
class SnapshotParseFailed:
    error: str


SnapshotOutcome = Union[SnapshotParsed, SnapshotProcessGone, SnapshotParseFailed]


@dataclass(frozen=True, slots=True)
class SnapshotResult:
    """Response payload for an acquire-snapshot request."""

    duration_ms: int
    outcome: SnapshotOutcome


# ---------------------------------------------------------------------------
# Host responses (already decoded by the protocol layer)
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ProcessList:
    processes: tuple[ProcessCandidate, ...]


HostResponse = Union[ProcessList, RootSearchResult, SnapshotResult]


# ---------------------------------------------------------------------------
# Task results
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class HostCreated:
    host_id: str


@dataclass(frozen=True, slots=True)
class HostCreationFailed:
    reason: str


@dataclass(frozen=True, slots=True)
class HostChannelOk:
    """The host executed the request.

    ``exception`` is set when the request itself raised on the host side;
    ``response`` is the decoded payload when there is one.
    """

    exception: str | None = None
    return_value: str | None = None
    response: HostResponse | None = None


@dataclass(frozen=True, slots=True)
class HostNotFound:
    pass


@dataclass(frozen=True, slots=True)
class NoResult:
    pass


TaskResult = Union[HostCreated, HostCreationFailed, HostChannelOk, HostNotFound, NoResult]


# ---------------------------------------------------------------------------
# Inbound host events
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class TimeTick:
    time_ms: int


@dataclass(frozen=True, slots=True)
class TaskCompleted:
    time_ms: int
    task_id: str
    result: TaskResult


@dataclass(frozen=True, slots=True)
class SettingsUpdated:
    time_ms: int
    settings: str


@dataclass(frozen=True, slots=True)
class TimeLimitUpdated:
    time_ms: int
    time_limit_ms: int


HostEvent = Union[TimeTick, TaskCompleted, SettingsUpdated, TimeLimitUpdated]


# ---------------------------------------------------------------------------
# Effects produced by the agent
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ActOnSurface:
    """Input sequence (keys, clicks, ...) to apply on the primary window."""

    action: Any


@dataclass(frozen=True, slots=True)
class PlayTones:
    """Sequence of ``(frequency_hz, duration_ms)`` pairs."""

    tones: tuple[tuple[int, int], ...]


Effect = Union[ActOnSurface, PlayTones]


# ---------------------------------------------------------------------------
# Outbound task requests
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class CreateHost:
    pass


@dataclass(frozen=True, slots=True)
class ReleaseHost:
    host_id: str


@dataclass(frozen=True, slots=True)
class ListProcesses:
    host_id: str


@dataclass(frozen=True, slots=True)
class SearchRootAddress:
    host_id: str
    process_id: int


@dataclass(frozen=True, slots=True)
class AcquireSnapshot:
    host_id: str
    process_id: int
    root_address: str


@dataclass(frozen=True, slots=True)
class ActOnSurfaceRequest:
    host_id: str
    window_id: str
    action: Any


@dataclass(frozen=True, slots=True)
class PlayTonesRequest:
    tones: tuple[tuple[int, int], ...]


TaskRequest = Union[
    CreateHost,
    ReleaseHost,
    ListProcesses,
    SearchRootAddress,
    AcquireSnapshot,
    ActOnSurfaceRequest,
    PlayTonesRequest,
]


@dataclass(frozen=True, slots=True)
class StartTask:
    task_id: str
    description: str
    request: TaskRequest


# ---------------------------------------------------------------------------
# Responses handed back to the host
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ContinueSession:
    status_text: str
    wake_at_ms: int
    start_task: StartTask | None = None


@dataclass(frozen=True, slots=True)
class FinishSession:
    status_text: str


Response = Union[ContinueSession, FinishSession]


# ---------------------------------------------------------------------------
# Agent-facing types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class AgentContext:
    """Ambient values handed to the agent with every event."""

    time_ms: int
    settings: str | None = None
    session_time_limit_ms: int | None = None


@dataclass(frozen=True, slots=True)
class SnapshotCompleted:
    """Semantic event: a fresh parsed snapshot is available."""

    snapshot: Snapshot


@dataclass(frozen=True, slots=True)
class ContinueDecision:
    effects: tuple[Effect, ...] = ()
    millis_to_next_snapshot: int = 0
    status_text: str = ""


@dataclass(frozen=True, slots=True)
class FinishDecision:
    status_text: str = ""


Decision = Union[ContinueDecision, FinishDecision]


@dataclass(frozen=True, slots=True)
class AgentInvocation(Generic[S]):
    """Record of the most recent agent call."""

    time_ms: int
    state: S
    decision: Decision


@dataclass(frozen=True, slots=True)
class TaskInFlight:
    task_id: str
    description: str
    started_at_ms: int


@dataclass(frozen=True, slots=True)
class QueuedEffect:
    queued_at_ms: int
    effect: Effect


@dataclass(frozen=True, slots=True)
class RequestOutcome:
    """Last raw outcome seen on the host channel, kept for status display."""

    ok: bool
    text: str = ""
