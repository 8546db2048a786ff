"""Setup procedure — decide the next setup step from the accumulated facts.

The procedure walks a fixed ladder.  Each rung gates the next:

1. no host              → create one
2. host creation failed → stop
3. no process list      → list processes
4. no root search       → pick the topmost process and search it
5. empty root search    → stop
6. no snapshot yet      → acquire the first snapshot
7. process gone         → stop
8. parsed snapshot      → ready

``decide_setup_step()`` is a pure function of ``SetupFacts``: the same facts
always produce the same step.  Exactly one action is emitted per call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import assert_never

from hostdrive.facts import SetupFacts
from hostdrive.models import (
    AcquireSnapshot,
    CreateHost,
    HostCreationFailed,
    ListProcesses,
    ProcessCandidate,
    SearchRootAddress,
    SnapshotParsed,
    SnapshotParseFailed,
    SnapshotProcessGone,
    TaskRequest,
)


# ---------------------------------------------------------------------------
# Step outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class SetupAction:
    """Setup is not finished; run *request* next."""

    description: str
    request: TaskRequest


@dataclass(frozen=True, slots=True)
class SetupStop:
    """Setup cannot continue; end the session."""

    reason: str


@dataclass(frozen=True, slots=True)
class SetupReady:
    """Everything needed to operate the client is known."""

    host_id: str
    process_id: int
    root_address: str
    window_id: str


SetupStep = SetupAction | SetupStop | SetupReady


# ---------------------------------------------------------------------------
# Process selection
# ---------------------------------------------------------------------------

def select_process(candidates: tuple[ProcessCandidate, ...]) -> tuple[ProcessCandidate | None, str | None]:
    """Pick the process whose main window is topmost.

    Topmost means the smallest z-index; on a tie the earlier candidate wins.
    Returns ``(selected, report)``.  The report explains the choice and is
    only produced when there was more than one candidate.
    """
    if not candidates:
        return None, None
    selected = candidates[0]
    for candidate in candidates[1:]:
        if candidate.main_window_z_index < selected.main_window_z_index:
            selected = candidate
    if len(candidates) == 1:
        return selected, None
    report = (
        f"I found {len(candidates)} client processes. "
        f"I selected process {selected.process_id} ('{selected.main_window_title}') "
        f"because its main window was the topmost (z-index {selected.main_window_z_index})."
    )
    return selected, report


# ---------------------------------------------------------------------------
# The ladder
# ---------------------------------------------------------------------------

def decide_setup_step(facts: SetupFacts) -> SetupStep:
    """Return the next setup action, a terminal stop, or ``SetupReady``."""
    if facts.host_creation is None:
        return SetupAction("Create volatile host.", CreateHost())

    if isinstance(facts.host_creation, HostCreationFailed):
        return SetupStop(f"create volatile host failed: {facts.host_creation.reason}")

    host_id = facts.host_creation.host_id

    if facts.processes is None:
        return SetupAction("Get list of candidate processes.", ListProcesses(host_id=host_id))

    if facts.root_search is None:
        selected, report = select_process(facts.processes)
        if selected is None:
            return SetupStop("no client process found.")
        description = f"Search for the UI root in process {selected.process_id}."
        if report:
            description = f"{description}\n{report}"
        return SetupAction(
            description,
            SearchRootAddress(host_id=host_id, process_id=selected.process_id),
        )

    process_id = facts.root_search.process_id
    root_address = facts.root_search.root_address
    if not root_address:
        return SetupStop(f"root not found in process {process_id}.")

    acquire = AcquireSnapshot(host_id=host_id, process_id=process_id, root_address=root_address)

    if facts.last_snapshot is None:
        return SetupAction("Get the first snapshot of the client UI.", acquire)

    outcome = facts.last_snapshot.result.outcome
    match outcome:
        case SnapshotProcessGone():
            return SetupStop("client process disappeared.")
        case SnapshotParseFailed():
            return SetupAction(
                f"Retry snapshot after parse failure: {outcome.error}", acquire,
            )
        case SnapshotParsed():
            return SetupReady(
                host_id=host_id,
                process_id=process_id,
                root_address=root_address,
                window_id=outcome.snapshot.window_id,
            )
        case _:
            assert_never(outcome)
