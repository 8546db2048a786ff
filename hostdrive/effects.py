"""FIFO backlog of agent effects waiting to be dispatched to the host.

The queue is immutable: ``replace_with`` and ``pop`` return new queues.
Each agent invocation replaces the whole backlog; nothing is ever merged.
"""

from __future__ import annotations

from dataclasses import dataclass

from hostdrive.models import Effect, QueuedEffect


@dataclass(frozen=True, slots=True)
class EffectQueue:
    entries: tuple[QueuedEffect, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    @classmethod
    def of(cls, effects: tuple[Effect, ...] | list[Effect], queued_at_ms: int) -> EffectQueue:
        """Build a queue holding *effects* in order, all stamped *queued_at_ms*."""
        return cls(tuple(QueuedEffect(queued_at_ms=queued_at_ms, effect=e) for e in effects))

    def replace_with(self, effects: tuple[Effect, ...] | list[Effect], queued_at_ms: int) -> EffectQueue:
        """Discard the undispatched remainder and queue a fresh batch."""
        return EffectQueue.of(effects, queued_at_ms)

    def cleared(self) -> EffectQueue:
        return EffectQueue()

    def pop(self) -> tuple[QueuedEffect | None, EffectQueue]:
        """Return the oldest entry and the queue without it.

        On an empty queue returns ``(None, self)``.
        """
        if not self.entries:
            return None, self
        return self.entries[0], EffectQueue(self.entries[1:])

    def peek(self) -> QueuedEffect | None:
        return self.entries[0] if self.entries else None
