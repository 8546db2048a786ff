"""Setup facts — what the engine has learned about the host so far.

``fold_task_result()`` is the only writer.  It maps one raw task result onto
a new ``SetupFacts`` value and, when the result carries a freshly parsed
snapshot, hands back the semantic ``SnapshotCompleted`` event for the agent.

Facts accumulate within one host *generation*.  A new host (after a recycle
or after the host went missing) resets only the creation outcome and the
request counter; discovered processes, root address and last snapshot stay.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import assert_never

from hostdrive.models import (
    HostChannelOk,
    HostCreated,
    HostCreationFailed,
    HostNotFound,
    HostResponse,
    NoResult,
    ProcessCandidate,
    ProcessList,
    RequestOutcome,
    RootSearchResult,
    SnapshotCompleted,
    SnapshotParsed,
    SnapshotParseFailed,
    SnapshotProcessGone,
    SnapshotResult,
    TaskResult,
)

logger = logging.getLogger(__name__)

# How many snapshot acquisition durations to remember
SNAPSHOT_DURATION_HISTORY = 10


@dataclass(frozen=True, slots=True)
class CompletedSnapshot:
    time_ms: int
    result: SnapshotResult


@dataclass(frozen=True, slots=True)
class SetupFacts:
    host_creation: HostCreated | HostCreationFailed | None = None
    requests_since_host_created: int = 0
    last_request_result: RequestOutcome | None = None
    processes: tuple[ProcessCandidate, ...] | None = None
    root_search: RootSearchResult | None = None
    last_snapshot: CompletedSnapshot | None = None
    snapshot_durations_ms: tuple[int, ...] = ()

    @property
    def host_id(self) -> str | None:
        if isinstance(self.host_creation, HostCreated):
            return self.host_creation.host_id
        return None

    def with_host_cleared(self) -> SetupFacts:
        """Forget the current host so the next decision cycle recreates it."""
        return replace(self, host_creation=None)

    def with_request_counted(self) -> SetupFacts:
        return replace(self, requests_since_host_created=self.requests_since_host_created + 1)


def push_duration(history: tuple[int, ...], duration_ms: int) -> tuple[int, ...]:
    """Prepend *duration_ms*, keeping at most ``SNAPSHOT_DURATION_HISTORY`` entries."""
    return ((duration_ms,) + history)[:SNAPSHOT_DURATION_HISTORY]


def fold_task_result(
    facts: SetupFacts,
    result: TaskResult,
    time_ms: int,
) -> tuple[SetupFacts, SnapshotCompleted | None]:
    """Integrate one task result into *facts*.

    Returns the new facts plus the semantic event to hand to the agent, if
    any.  Failures are never raised: they become facts that the setup
    procedure either retries or turns into a terminal stop.
    """
    match result:
        case HostCreated():
            logger.info("Host created: %s", result.host_id)
            return replace(facts, host_creation=result, requests_since_host_created=0), None

        case HostCreationFailed():
            logger.warning("Host creation failed: %s", result.reason)
            return replace(facts, host_creation=result), None

        case HostNotFound():
            logger.warning("Host %s not found, will recreate", facts.host_id)
            return replace(
                facts.with_host_cleared(),
                last_request_result=RequestOutcome(ok=False, text="Host not found."),
            ), None

        case HostChannelOk():
            if result.exception is not None:
                logger.debug("Request raised on host: %s", result.exception)
                return replace(
                    facts,
                    last_request_result=RequestOutcome(ok=False, text=result.exception),
                ), None
            facts = replace(
                facts,
                last_request_result=RequestOutcome(ok=True, text=result.return_value or ""),
            )
            if result.response is None:
                return facts, None
            return _fold_response(facts, result.response, time_ms)

        case NoResult():
            return facts, None

        case _:
            assert_never(result)


def _fold_response(
    facts: SetupFacts,
    response: HostResponse,
    time_ms: int,
) -> tuple[SetupFacts, SnapshotCompleted | None]:
    match response:
        case ProcessList():
            logger.debug("Discovered %d candidate process(es)", len(response.processes))
            return replace(facts, processes=tuple(response.processes)), None

        case RootSearchResult():
            logger.debug(
                "Root search in process %d: %s",
                response.process_id, response.root_address,
            )
            return replace(facts, root_search=response), None

        case SnapshotResult():
            facts = replace(
                facts,
                last_snapshot=CompletedSnapshot(time_ms=time_ms, result=response),
                snapshot_durations_ms=push_duration(facts.snapshot_durations_ms, response.duration_ms),
            )
            outcome = response.outcome
            match outcome:
                case SnapshotParsed():
                    return facts, SnapshotCompleted(snapshot=outcome.snapshot)
                case SnapshotProcessGone():
                    logger.warning("Snapshot reports the client process is gone")
                    return facts, None
                case SnapshotParseFailed():
                    logger.warning("Snapshot could not be parsed: %s", outcome.error)
                    return facts, None
                case _:
                    assert_never(outcome)

        case _:
            assert_never(response)
