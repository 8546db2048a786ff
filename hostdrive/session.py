"""Session entry point — one host event in, one response out.

``process_event()`` is the only function a host needs:

1. ``integrate_event()`` merges the event into the session state and may
   produce a semantic event for the agent.
2. While a task is in flight nothing new is dispatched; the waiting status
   is re-emitted.
3. Otherwise the setup procedure decides the next step.  Until it reports
   ready, its action is dispatched, unless the host is due for recycle;
   once ready, the operate loop runs.

Every response carries a status text and either a wake-up hint or the
reason the session finished.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TypeVar, assert_never

from hostdrive.agent import Agent
from hostdrive.facts import fold_task_result
from hostdrive.models import (
    ContinueSession,
    FinishSession,
    HostEvent,
    Response,
    SettingsUpdated,
    TaskCompleted,
    TimeLimitUpdated,
    TimeTick,
)
from hostdrive.operate import PendingAgentEvent, host_recycle_due, operate, recycle_host
from hostdrive.setup_phase import SetupAction, SetupReady, SetupStop, decide_setup_step
from hostdrive.state import SessionState, start_task
from hostdrive.status import render_status

logger = logging.getLogger(__name__)

S = TypeVar("S")

# Wake-up hints, relative to the current time
WAIT_FOR_TASK_WAKE_MS = 300
SETUP_WAKE_MS = 1000
OPERATE_WAKE_MS = 500


def integrate_event(
    state: SessionState[S],
    event: HostEvent,
) -> tuple[SessionState[S], PendingAgentEvent | None]:
    """Merge one host event into *state*.

    Only a task completion carrying a parsed snapshot yields an agent event.
    """
    state = replace(state, time_ms=event.time_ms)
    match event:
        case TimeTick():
            return state, None

        case SettingsUpdated():
            return replace(state, settings=event.settings), None

        case TimeLimitUpdated():
            return replace(state, session_time_limit_ms=event.time_limit_ms), None

        case TaskCompleted():
            in_flight = state.task_in_flight
            if in_flight is None or in_flight.task_id != event.task_id:
                logger.warning(
                    "Ignoring completion for task %s: task in flight is %s",
                    event.task_id, in_flight.task_id if in_flight else None,
                )
                return state, None
            facts, agent_event = fold_task_result(state.facts, event.result, event.time_ms)
            state = replace(state, task_in_flight=None, facts=facts)
            if agent_event is None:
                return state, None
            return state, PendingAgentEvent(context=state.context(), event=agent_event)

        case _:
            assert_never(event)


def process_event(
    agent: Agent[S],
    state: SessionState[S],
    event: HostEvent,
) -> tuple[SessionState[S], Response]:
    """Integrate *event* and decide what the host should do next."""
    state, pending = integrate_event(state, event)
    now = state.time_ms

    in_flight = state.task_in_flight
    if in_flight is not None:
        activity = (
            f"Waiting for {in_flight.task_id} to complete "
            f"({now - in_flight.started_at_ms} ms): {in_flight.description}"
        )
        return state, ContinueSession(
            status_text=render_status(activity, state),
            wake_at_ms=now + WAIT_FOR_TASK_WAKE_MS,
        )

    step = decide_setup_step(state.facts)
    match step:
        case SetupStop():
            logger.warning("Session stopped during setup: %s", step.reason)
            return state, FinishSession(status_text=render_status(step.reason, state))

        case SetupAction():
            if pending is not None:
                logger.debug("Dropping agent event: setup is not ready")
            host_id = state.facts.host_id
            if host_id is not None and host_recycle_due(state):
                state, task = recycle_host(state, host_id)
            else:
                state, task = start_task(state, step.description, step.request)
            return state, ContinueSession(
                status_text=render_status(task.description, state),
                wake_at_ms=now + SETUP_WAKE_MS,
                start_task=task,
            )

        case SetupReady():
            state, outcome = operate(agent, state, step, pending)
            status_text = render_status(outcome.activity, state)
            if outcome.finished:
                return state, FinishSession(status_text=status_text)
            return state, ContinueSession(
                status_text=status_text,
                wake_at_ms=now + OPERATE_WAKE_MS,
                start_task=outcome.start_task,
            )

        case _:
            assert_never(step)
