"""Shared test fixtures for hostdrive tests."""

import os

import pytest

from hostdrive.agent import FunctionAgent
from hostdrive.facts import CompletedSnapshot, SetupFacts
from hostdrive.models import (
    ContinueDecision,
    HostCreated,
    ProcessCandidate,
    RootSearchResult,
    Snapshot,
    SnapshotParsed,
    SnapshotResult,
)

SAMPLE_HOST = "host-1"
SAMPLE_PROCESS = 4242
SAMPLE_WINDOW = "w-4242"
SAMPLE_ROOT = "0x1f00"


@pytest.fixture
def tmp_home(tmp_path):
    """An isolated hostdrive home directory, exported as HOSTDRIVE_HOME."""
    hc_home = tmp_path / "hd"
    hc_home.mkdir()
    old_env = os.environ.get("HOSTDRIVE_HOME")
    os.environ["HOSTDRIVE_HOME"] = str(hc_home)
    yield hc_home
    if old_env is None:
        os.environ.pop("HOSTDRIVE_HOME", None)
    else:
        os.environ["HOSTDRIVE_HOME"] = old_env


@pytest.fixture
def sample_processes():
    """Three candidates whose main windows have z-index 5, 1 and 9."""
    return (
        ProcessCandidate(process_id=101, main_window_id="w-101", main_window_title="alpha", main_window_z_index=5),
        ProcessCandidate(process_id=102, main_window_id="w-102", main_window_title="beta", main_window_z_index=1),
        ProcessCandidate(process_id=103, main_window_id="w-103", main_window_title="gamma", main_window_z_index=9),
    )


@pytest.fixture
def ready_facts():
    """Setup facts for a fully set-up session whose last snapshot was at t=1000."""
    return SetupFacts(
        host_creation=HostCreated(host_id=SAMPLE_HOST),
        processes=(ProcessCandidate(process_id=SAMPLE_PROCESS, main_window_id=SAMPLE_WINDOW),),
        root_search=RootSearchResult(process_id=SAMPLE_PROCESS, root_address=SAMPLE_ROOT),
        last_snapshot=CompletedSnapshot(
            time_ms=1000,
            result=SnapshotResult(duration_ms=120, outcome=SnapshotParsed(Snapshot(window_id=SAMPLE_WINDOW))),
        ),
    )


@pytest.fixture
def scripted_decisions():
    """Factory for an agent that hands out *decisions* in order, then repeats the last.

    The agent state counts invocations.
    """
    def _make(*decisions):
        calls = []

        def decide(context, event, state):
            calls.append((context, event, state))
            index = min(state, len(decisions) - 1)
            return state + 1, decisions[index]

        agent = FunctionAgent(decide, name="test-agent")
        agent.calls = calls
        return agent
    return _make


@pytest.fixture
def idle_agent(scripted_decisions):
    """Agent that always continues with no effects."""
    return scripted_decisions(ContinueDecision(status_text="idle"))
