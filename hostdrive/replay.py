"""Scenario replay — drive a session against a simulated host.

A scenario file describes what the host will find and how it misbehaves,
plus a script of agent decisions.  ``run_scenario()`` plays it through a
real ``SessionEngine`` with a deterministic clock, which makes it useful
both for tests and for checking an agent offline.

Scenario format (YAML)::

    name: demo
    task_duration_ms: 50          # simulated latency of every host task
    settings: "mode=patrol"       # forwarded to the agent
    time_limit_ms: 600000
    host:
      creation_failure: null      # reason string to make creation fail
      not_found_on_requests: [7]  # host-channel request numbers (1-based)
      exceptions: {9: "read timeout"}
    processes:
      - {process_id: 4242, window_id: w-1, title: client, z_index: 3}
    root_address: "0x1f00"        # null: root not found
    snapshots:                    # played in order, the last one repeats
      - {window_id: w-1, duration_ms: 120, tree: {title: "Overview"}}
    process_gone_after: null      # snapshots served before the process dies
    agent:
      decisions:
        - {effects: [{act: "click undock"}, {tones: [[440, 100]]}], next_snapshot_ms: 500, status: undocking}
        - {finish: "done"}
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from hostdrive.agent import Agent
from hostdrive.engine import SessionEngine
from hostdrive.models import (
    AcquireSnapshot,
    ActOnSurface,
    ActOnSurfaceRequest,
    AgentContext,
    ContinueDecision,
    ContinueSession,
    CreateHost,
    Decision,
    Effect,
    FinishDecision,
    FinishSession,
    HostChannelOk,
    HostCreated,
    HostCreationFailed,
    HostNotFound,
    ListProcesses,
    NoResult,
    PlayTones,
    PlayTonesRequest,
    ProcessCandidate,
    ProcessList,
    ReleaseHost,
    Response,
    RootSearchResult,
    SearchRootAddress,
    Snapshot,
    SnapshotCompleted,
    SnapshotParsed,
    SnapshotProcessGone,
    SnapshotResult,
    StartTask,
    TaskCompleted,
    TaskRequest,
    TaskResult,
    TimeTick,
)

logger = logging.getLogger(__name__)

DEFAULT_TASK_DURATION_MS = 50
DEFAULT_MAX_EVENTS = 10_000


class ScenarioError(ValueError):
    """The scenario file is malformed."""


class ReplayError(RuntimeError):
    """The engine broke the host contract during a replay."""


# ---------------------------------------------------------------------------
# Scenario
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ScriptedSnapshot:
    window_id: str
    duration_ms: int = 0
    tree: Any = None


@dataclass(frozen=True, slots=True)
class Scenario:
    name: str
    processes: tuple[ProcessCandidate, ...]
    root_address: str | None
    snapshots: tuple[ScriptedSnapshot, ...]
    decisions: tuple[Decision, ...] = ()
    task_duration_ms: int = DEFAULT_TASK_DURATION_MS
    creation_failure: str | None = None
    not_found_on_requests: frozenset[int] = frozenset()
    exceptions: dict[int, str] = field(default_factory=dict)
    process_gone_after: int | None = None
    settings: str | None = None
    time_limit_ms: int | None = None


def _require(data: dict, key: str, where: str) -> Any:
    if key not in data:
        raise ScenarioError(f"{where}: missing required key '{key}'")
    return data[key]


def _as_int(value: Any, where: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ScenarioError(f"{where}: expected an integer, got {value!r}") from None


def _as_mapping(value: Any, where: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ScenarioError(f"{where}: must be a mapping, got {value!r}")
    return value


def _as_list(value: Any, where: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ScenarioError(f"{where}: must be a list, got {value!r}")
    return value


def _parse_effect(raw: Any, where: str) -> Effect:
    if not isinstance(raw, dict):
        raise ScenarioError(f"{where}: effect must be a mapping, got {raw!r}")
    if "act" in raw:
        return ActOnSurface(action=raw["act"])
    if "tones" in raw:
        try:
            tones = tuple((int(freq), int(duration)) for freq, duration in raw["tones"])
        except (TypeError, ValueError):
            raise ScenarioError(f"{where}: tones must be [frequency, duration] pairs") from None
        return PlayTones(tones=tones)
    raise ScenarioError(f"{where}: effect needs 'act' or 'tones', got {sorted(raw)}")


def _parse_decision(raw: Any, where: str) -> Decision:
    if not isinstance(raw, dict):
        raise ScenarioError(f"{where}: decision must be a mapping, got {raw!r}")
    if "finish" in raw:
        return FinishDecision(status_text=str(raw["finish"] or ""))
    effects = tuple(
        _parse_effect(e, f"{where}.effects[{i}]")
        for i, e in enumerate(_as_list(raw.get("effects"), f"{where}.effects"))
    )
    return ContinueDecision(
        effects=effects,
        millis_to_next_snapshot=_as_int(raw.get("next_snapshot_ms", 0), f"{where}.next_snapshot_ms"),
        status_text=str(raw.get("status", "")),
    )


def parse_scenario(data: Any, default_name: str = "scenario") -> Scenario:
    """Validate a scenario mapping (as loaded from YAML).

    Every malformed value raises ``ScenarioError`` naming where it was found.
    """
    if not isinstance(data, dict):
        raise ScenarioError("Scenario must be a mapping")

    processes = []
    for i, raw in enumerate(_as_list(data.get("processes"), "processes")):
        where = f"processes[{i}]"
        raw = _as_mapping(raw, where)
        processes.append(ProcessCandidate(
            process_id=_as_int(_require(raw, "process_id", where), f"{where}.process_id"),
            main_window_id=str(_require(raw, "window_id", where)),
            main_window_title=str(raw.get("title", "")),
            main_window_z_index=_as_int(raw.get("z_index", 0), f"{where}.z_index"),
        ))

    snapshots = []
    for i, raw in enumerate(_as_list(data.get("snapshots"), "snapshots")):
        where = f"snapshots[{i}]"
        raw = _as_mapping(raw, where)
        snapshots.append(ScriptedSnapshot(
            window_id=str(_require(raw, "window_id", where)),
            duration_ms=_as_int(raw.get("duration_ms", 0), f"{where}.duration_ms"),
            tree=raw.get("tree"),
        ))
    if processes and data.get("root_address") and not snapshots:
        raise ScenarioError("snapshots: at least one snapshot is required")

    host = _as_mapping(data.get("host"), "host")
    exceptions = {
        _as_int(k, f"host.exceptions[{k!r}]"): str(v)
        for k, v in _as_mapping(host.get("exceptions"), "host.exceptions").items()
    }
    not_found = frozenset(
        _as_int(n, "host.not_found_on_requests")
        for n in _as_list(host.get("not_found_on_requests"), "host.not_found_on_requests")
    )

    agent = _as_mapping(data.get("agent"), "agent")
    decisions = tuple(
        _parse_decision(d, f"agent.decisions[{i}]")
        for i, d in enumerate(_as_list(agent.get("decisions"), "agent.decisions"))
    )

    gone_after = data.get("process_gone_after")
    time_limit = data.get("time_limit_ms")
    root = data.get("root_address")
    creation_failure = host.get("creation_failure")
    return Scenario(
        name=str(data.get("name") or default_name),
        processes=tuple(processes),
        root_address=None if root is None else str(root),
        snapshots=tuple(snapshots),
        decisions=decisions,
        task_duration_ms=_as_int(data.get("task_duration_ms", DEFAULT_TASK_DURATION_MS), "task_duration_ms"),
        creation_failure=None if creation_failure is None else str(creation_failure),
        not_found_on_requests=not_found,
        exceptions=exceptions,
        process_gone_after=None if gone_after is None else _as_int(gone_after, "process_gone_after"),
        settings=data.get("settings"),
        time_limit_ms=None if time_limit is None else _as_int(time_limit, "time_limit_ms"),
    )


def load_scenario(path: Path) -> Scenario:
    """Load and validate a scenario YAML file."""
    try:
        data = yaml.safe_load(Path(path).read_text())
    except yaml.YAMLError as e:
        raise ScenarioError(f"{path}: invalid YAML: {e}") from e
    return parse_scenario(data, default_name=Path(path).stem)


# ---------------------------------------------------------------------------
# Scripted agent
# ---------------------------------------------------------------------------

class ScriptedAgent(Agent[int]):
    """Plays back a fixed list of decisions, one per snapshot.

    The agent state is the index of the next decision.  Once the script is
    exhausted the agent finishes.
    """

    name = "scripted"

    def __init__(self, decisions: tuple[Decision, ...] | list[Decision]):
        self.decisions = tuple(decisions)
        self.seen: list[tuple[AgentContext, SnapshotCompleted]] = []

    def decide(self, context: AgentContext, event: SnapshotCompleted, state: int) -> tuple[int, Decision]:
        self.seen.append((context, event))
        if state >= len(self.decisions):
            return state, FinishDecision(status_text="Script finished.")
        return state + 1, self.decisions[state]


# ---------------------------------------------------------------------------
# Simulated host
# ---------------------------------------------------------------------------

class SimulatedHost:
    """Executes task requests against the scenario's scripted world."""

    def __init__(self, scenario: Scenario):
        self.scenario = scenario
        self.hosts_created = 0
        self.hosts_released = 0
        self.live_host: str | None = None
        self.channel_requests = 0
        self.snapshots_served = 0
        self.applied_effects: list[TaskRequest] = []
        self.requests: list[TaskRequest] = []

    def execute(self, request: TaskRequest) -> TaskResult:
        self.requests.append(request)
        match request:
            case CreateHost():
                if self.scenario.creation_failure:
                    return HostCreationFailed(reason=self.scenario.creation_failure)
                self.hosts_created += 1
                self.live_host = f"host-{self.hosts_created}"
                return HostCreated(host_id=self.live_host)
            case ReleaseHost():
                if request.host_id == self.live_host:
                    self.live_host = None
                    self.hosts_released += 1
                return NoResult()
            case PlayTonesRequest():
                self.applied_effects.append(request)
                return NoResult()
            case ListProcesses() | SearchRootAddress() | AcquireSnapshot() | ActOnSurfaceRequest():
                return self._on_channel(request)
        raise ReplayError(f"Unsupported request: {request!r}")

    def _on_channel(self, request: TaskRequest) -> TaskResult:
        if request.host_id != self.live_host:
            return HostNotFound()
        self.channel_requests += 1
        number = self.channel_requests
        if number in self.scenario.not_found_on_requests:
            self.live_host = None
            return HostNotFound()
        if number in self.scenario.exceptions:
            return HostChannelOk(exception=self.scenario.exceptions[number])

        match request:
            case ListProcesses():
                return HostChannelOk(
                    return_value=f"{len(self.scenario.processes)} process(es)",
                    response=ProcessList(processes=self.scenario.processes),
                )
            case SearchRootAddress():
                return HostChannelOk(
                    return_value=f"root={self.scenario.root_address}",
                    response=RootSearchResult(
                        process_id=request.process_id,
                        root_address=self.scenario.root_address,
                    ),
                )
            case AcquireSnapshot():
                return HostChannelOk(return_value="snapshot", response=self._next_snapshot())
            case ActOnSurfaceRequest():
                self.applied_effects.append(request)
                return HostChannelOk(return_value=f"applied {request.action!r}")
        raise ReplayError(f"Unsupported channel request: {request!r}")

    def _next_snapshot(self) -> SnapshotResult:
        gone_after = self.scenario.process_gone_after
        if gone_after is not None and self.snapshots_served >= gone_after:
            return SnapshotResult(duration_ms=0, outcome=SnapshotProcessGone())
        scripted = self.scenario.snapshots[min(self.snapshots_served, len(self.scenario.snapshots) - 1)]
        self.snapshots_served += 1
        return SnapshotResult(
            duration_ms=scripted.duration_ms,
            outcome=SnapshotParsed(Snapshot(window_id=scripted.window_id, tree=scripted.tree)),
        )


# ---------------------------------------------------------------------------
# Replay loop
# ---------------------------------------------------------------------------

@dataclass
class ReplayReport:
    scenario: str
    finished: bool
    finish_status: str | None
    events: int
    end_time_ms: int
    responses: list[Response] = field(default_factory=list)
    tasks: list[StartTask] = field(default_factory=list)
    snapshot_durations_ms: tuple[int, ...] = ()
    hosts_created: int = 0
    hosts_released: int = 0

    @property
    def average_snapshot_ms(self) -> float | None:
        if not self.snapshot_durations_ms:
            return None
        return sum(self.snapshot_durations_ms) / len(self.snapshot_durations_ms)


def run_scenario(
    scenario: Scenario,
    agent: Agent | None = None,
    *,
    initial_state: Any = 0,
    max_events: int = DEFAULT_MAX_EVENTS,
    host: SimulatedHost | None = None,
) -> ReplayReport:
    """Play *scenario* until the session finishes or *max_events* is reached.

    Time only moves when the engine asks to be woken or a task completes,
    whichever comes first.
    """
    host = host or SimulatedHost(scenario)
    agent = agent or ScriptedAgent(scenario.decisions)
    engine = SessionEngine(
        agent,
        initial_state,
        name=scenario.name,
        settings=scenario.settings,
        time_limit_ms=scenario.time_limit_ms,
    )
    now = 0
    engine.start(now)
    report = ReplayReport(scenario=scenario.name, finished=False, finish_status=None, events=0, end_time_ms=0)

    pending: tuple[int, TaskCompleted] | None = None
    response = engine.handle(TimeTick(time_ms=now))
    report.events = 1

    while True:
        report.responses.append(response)
        match response:
            case FinishSession():
                report.finished = True
                report.finish_status = response.status_text
                break
            case ContinueSession():
                pass
            case _:
                raise ReplayError(f"Unexpected response: {response!r}")
        if report.events >= max_events:
            logger.warning("Replay %s stopped after %d events", scenario.name, report.events)
            break

        if response.start_task is not None:
            if pending is not None:
                raise ReplayError(
                    f"{response.start_task.task_id} dispatched while "
                    f"{pending[1].task_id} is still in flight"
                )
            task = response.start_task
            report.tasks.append(task)
            result = host.execute(task.request)
            done_at = now + scenario.task_duration_ms
            pending = (done_at, TaskCompleted(time_ms=done_at, task_id=task.task_id, result=result))

        if pending is not None and pending[0] <= response.wake_at_ms:
            now, event = pending[0], pending[1]
            pending = None
        else:
            now = max(now, response.wake_at_ms)
            event = TimeTick(time_ms=now)

        response = engine.handle(event)
        report.events += 1

    report.end_time_ms = now
    if engine.state is not None:
        report.snapshot_durations_ms = engine.state.facts.snapshot_durations_ms
    report.hosts_created = host.hosts_created
    report.hosts_released = host.hosts_released
    return report
