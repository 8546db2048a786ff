"""Operate loop — steady-state behaviour once setup reports ready.

One call to ``operate()`` is one cycle:

1. Run the agent on the pending snapshot event, if there is one.  A
   *continue* decision replaces the effect queue; *finish* clears it.
2. If the last decision was *finish*, the session ends now.
3. Host recycle: past ``HOST_RECYCLE_THRESHOLD`` requests the host is
   released and forgotten; setup recreates it on the next cycle.  Setup
   retries on a live host go through the same guard.
4. Dispatch at most one task: the oldest queued effect, else a snapshot
   if one is due, else nothing.

The agent runs before the finish and recycle checks: a *finish* ends the
session in the cycle it was decided, even when a recycle is due.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TypeVar, assert_never

from hostdrive.agent import Agent
from hostdrive.models import (
    AcquireSnapshot,
    ActOnSurface,
    ActOnSurfaceRequest,
    AgentContext,
    AgentInvocation,
    ContinueDecision,
    Effect,
    FinishDecision,
    PlayTones,
    PlayTonesRequest,
    ReleaseHost,
    SnapshotCompleted,
    StartTask,
    TaskRequest,
)
from hostdrive.setup_phase import SetupReady
from hostdrive.state import SessionState, start_task

logger = logging.getLogger(__name__)

S = TypeVar("S")

# Requests sent to one host before it is released and recreated
HOST_RECYCLE_THRESHOLD = 400

# Snapshot at least this often, whatever the agent asks for
SNAPSHOT_INTERVAL_MS = 10_000

# Activity line once the agent has finished; its own text goes in the report
FINISHED_ACTIVITY = "Agent finished."

RECYCLE_ACTIVITY = "Release volatile host to recycle it."


@dataclass(frozen=True, slots=True)
class PendingAgentEvent:
    """Semantic event waiting for the agent, with the context it arrived in."""

    context: AgentContext
    event: SnapshotCompleted


@dataclass(frozen=True, slots=True)
class OperateOutcome:
    """What one cycle decided: an activity line, maybe a task, maybe the end."""

    activity: str
    start_task: StartTask | None = None
    finished: bool = False


# ---------------------------------------------------------------------------
# Agent invocation
# ---------------------------------------------------------------------------

def invoke_agent(
    agent: Agent[S],
    state: SessionState[S],
    pending: PendingAgentEvent,
) -> SessionState[S]:
    """Run the agent once and fold its decision into the session."""
    agent_state, decision = agent.decide(pending.context, pending.event, state.agent.agent_state)
    now = state.time_ms
    invocation = AgentInvocation(time_ms=now, state=agent_state, decision=decision)
    match decision:
        case ContinueDecision():
            queue = state.agent.queue.replace_with(decision.effects, now)
            logger.debug(
                "Agent continued with %d effect(s), next snapshot in %d ms",
                len(decision.effects), decision.millis_to_next_snapshot,
            )
        case FinishDecision():
            queue = state.agent.queue.cleared()
            logger.info("Agent finished: %s", decision.status_text)
        case _:
            assert_never(decision)
    return replace(
        state,
        agent=replace(state.agent, agent_state=agent_state, last_invocation=invocation, queue=queue),
    )


# ---------------------------------------------------------------------------
# Snapshot cadence
# ---------------------------------------------------------------------------

def snapshot_due_at(state: SessionState) -> int:
    """Time at which the next snapshot is needed.

    The earlier of the fixed refresh interval after the last snapshot and
    the delay the agent asked for after its last invocation.  A missing
    snapshot or invocation counts as due at time 0.
    """
    last_snapshot = state.facts.last_snapshot
    general_due = last_snapshot.time_ms + SNAPSHOT_INTERVAL_MS if last_snapshot else 0

    last = state.agent.last_invocation
    if last is None:
        agent_due = 0
    elif isinstance(last.decision, ContinueDecision):
        agent_due = last.time_ms + last.decision.millis_to_next_snapshot
    else:
        agent_due = last.time_ms
    return min(general_due, agent_due)


def effect_request(effect: Effect, ready: SetupReady) -> tuple[str, TaskRequest]:
    match effect:
        case ActOnSurface():
            return (
                f"Apply input on window {ready.window_id}.",
                ActOnSurfaceRequest(host_id=ready.host_id, window_id=ready.window_id, action=effect.action),
            )
        case PlayTones():
            return f"Play {len(effect.tones)} tone(s).", PlayTonesRequest(tones=effect.tones)
        case _:
            assert_never(effect)


# ---------------------------------------------------------------------------
# Host recycle
# ---------------------------------------------------------------------------

def host_recycle_due(state: SessionState) -> bool:
    return state.facts.requests_since_host_created > HOST_RECYCLE_THRESHOLD


def recycle_host(state: SessionState[S], host_id: str) -> tuple[SessionState[S], StartTask]:
    """Release *host_id* and forget it; setup recreates a host next cycle."""
    logger.info(
        "Recycling host %s after %d requests",
        host_id, state.facts.requests_since_host_created,
    )
    state, task = start_task(state, RECYCLE_ACTIVITY, ReleaseHost(host_id=host_id))
    return replace(state, facts=state.facts.with_host_cleared()), task


# ---------------------------------------------------------------------------
# One cycle
# ---------------------------------------------------------------------------

def operate(
    agent: Agent[S],
    state: SessionState[S],
    ready: SetupReady,
    pending: PendingAgentEvent | None,
) -> tuple[SessionState[S], OperateOutcome]:
    """Run one steady-state cycle.  Requires that no task is in flight."""
    if pending is not None:
        state = invoke_agent(agent, state, pending)

    last = state.agent.last_invocation
    if last is not None and isinstance(last.decision, FinishDecision):
        return state, OperateOutcome(activity=FINISHED_ACTIVITY, finished=True)

    if host_recycle_due(state):
        state, task = recycle_host(state, ready.host_id)
        return state, OperateOutcome(activity=task.description, start_task=task)

    entry, remaining = state.agent.queue.pop()
    if entry is not None:
        description, request = effect_request(entry.effect, ready)
        state = replace(state, agent=replace(state.agent, queue=remaining))
        state, task = start_task(state, description, request)
        return state, OperateOutcome(activity=description, start_task=task)

    due_at = snapshot_due_at(state)
    if state.time_ms >= due_at:
        description = "Get the next snapshot of the client UI."
        request = AcquireSnapshot(
            host_id=ready.host_id,
            process_id=ready.process_id,
            root_address=ready.root_address,
        )
        state, task = start_task(state, description, request)
        return state, OperateOutcome(activity=description, start_task=task)

    return state, OperateOutcome(
        activity=f"Idle. Next snapshot due in {due_at - state.time_ms} ms.",
    )
