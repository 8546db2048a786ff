"""Agent strategy interface.

An agent is the embedded decision function.  It never talks to the host:
the engine calls ``decide()`` with the ambient context, the latest semantic
event and the agent's own state, and gets back the new state plus a
decision.  The engine is generic over the agent's state type.

Two ways to supply an agent::

    class Greeter(Agent[int]):
        def decide(self, context, event, state):
            return state + 1, ContinueDecision(status_text=f"seen {state + 1}")

    agent = FunctionAgent(lambda context, event, state: (state, FinishDecision("done")))
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

from hostdrive.models import AgentContext, Decision, SnapshotCompleted

S = TypeVar("S")

DecideFn = Callable[[AgentContext, SnapshotCompleted, S], "tuple[S, Decision]"]


class Agent(Generic[S]):
    """Base class for agents.  Override ``decide``."""

    name: str = "agent"

    def decide(
        self,
        context: AgentContext,
        event: SnapshotCompleted,
        state: S,
    ) -> tuple[S, Decision]:
        raise NotImplementedError


class FunctionAgent(Agent[S]):
    """Adapt a plain ``(context, event, state) -> (state, decision)`` function."""

    def __init__(self, fn: DecideFn, name: str | None = None):
        self._fn = fn
        self.name = name or getattr(fn, "__name__", "agent")

    def decide(
        self,
        context: AgentContext,
        event: SnapshotCompleted,
        state: S,
    ) -> tuple[S, Decision]:
        return self._fn(context, event, state)
