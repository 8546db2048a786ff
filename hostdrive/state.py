"""Session state — the single value threaded through every event.

``SessionState`` owns everything: setup facts, the agent's state together
with its effect queue, the clock, the task-id counter and the descriptor
of the one task that may be in flight.  Nothing here is mutated; every
transition builds a new value with ``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Generic, TypeVar

from hostdrive.effects import EffectQueue
from hostdrive.facts import SetupFacts
from hostdrive.models import AgentContext, AgentInvocation, StartTask, TaskInFlight, TaskRequest

S = TypeVar("S")


@dataclass(frozen=True, slots=True)
class AgentQueueState(Generic[S]):
    """The agent's private state, its last invocation and the effect backlog."""

    agent_state: S
    last_invocation: AgentInvocation[S] | None = None
    queue: EffectQueue = field(default_factory=EffectQueue)


@dataclass(frozen=True, slots=True)
class SessionState(Generic[S]):
    agent: AgentQueueState[S]
    facts: SetupFacts = field(default_factory=SetupFacts)
    time_ms: int = 0
    last_task_id: int = 0
    task_in_flight: TaskInFlight | None = None
    settings: str | None = None
    session_time_limit_ms: int | None = None

    def context(self) -> AgentContext:
        return AgentContext(
            time_ms=self.time_ms,
            settings=self.settings,
            session_time_limit_ms=self.session_time_limit_ms,
        )


def init_session(initial_agent_state: S, time_ms: int = 0) -> SessionState[S]:
    """Create the state for a new session around *initial_agent_state*."""
    return SessionState(agent=AgentQueueState(agent_state=initial_agent_state), time_ms=time_ms)


def start_task(
    state: SessionState[S],
    description: str,
    request: TaskRequest,
) -> tuple[SessionState[S], StartTask]:
    """Allocate a task id, mark it in flight and count the host request.

    Callers must only dispatch when no task is in flight.
    """
    if state.task_in_flight is not None:
        raise RuntimeError(
            f"Task {state.task_in_flight.task_id} is still in flight; "
            "refusing to start another."
        )
    task_number = state.last_task_id + 1
    task_id = f"task-{task_number}"
    state = replace(
        state,
        last_task_id=task_number,
        task_in_flight=TaskInFlight(task_id=task_id, description=description, started_at_ms=state.time_ms),
        facts=state.facts.with_request_counted(),
    )
    return state, StartTask(task_id=task_id, description=description, request=request)
