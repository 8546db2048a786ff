"""Tests for hostdrive/session.py — event integration and the entry point."""

from dataclasses import replace

import pytest

from hostdrive.models import (
    AcquireSnapshot,
    ActOnSurface,
    ActOnSurfaceRequest,
    ContinueDecision,
    ContinueSession,
    CreateHost,
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
    ProcessList,
    ReleaseHost,
    RootSearchResult,
    SearchRootAddress,
    SettingsUpdated,
    Snapshot,
    SnapshotParsed,
    SnapshotParseFailed,
    SnapshotProcessGone,
    SnapshotResult,
    TaskCompleted,
    TimeLimitUpdated,
    TimeTick,
)
from hostdrive.operate import HOST_RECYCLE_THRESHOLD
from hostdrive.session import (
    OPERATE_WAKE_MS,
    SETUP_WAKE_MS,
    WAIT_FOR_TASK_WAKE_MS,
    integrate_event,
    process_event,
)
from hostdrive.state import init_session, start_task


def _snapshot(window="w-102", duration=80):
    return HostChannelOk(
        return_value="snapshot",
        response=SnapshotResult(duration_ms=duration, outcome=SnapshotParsed(Snapshot(window_id=window))),
    )


def _complete(agent, state, time_ms, result):
    task_id = state.task_in_flight.task_id
    return process_event(agent, state, TaskCompleted(time_ms=time_ms, task_id=task_id, result=result))


def _setup_until_ready(agent, sample_processes):
    """Walk a fresh session through setup; returns state and the response to the first snapshot."""
    state = init_session(0)
    state, _ = process_event(agent, state, TimeTick(time_ms=0))
    state, _ = _complete(agent, state, 100, HostCreated(host_id="h"))
    state, _ = _complete(agent, state, 200, HostChannelOk(response=ProcessList(processes=sample_processes)))
    state, _ = _complete(agent, state, 300, HostChannelOk(response=RootSearchResult(process_id=102, root_address="0xabc")))
    return _complete(agent, state, 400, _snapshot())


class TestIntegrateEvent:
    def test_time_tick_only_moves_clock(self):
        state = init_session(0)
        new_state, pending = integrate_event(state, TimeTick(time_ms=777))
        assert new_state == replace(state, time_ms=777)
        assert pending is None

    def test_settings_stored(self):
        state, pending = integrate_event(init_session(0), SettingsUpdated(time_ms=5, settings="mode=mine"))
        assert state.settings == "mode=mine"
        assert pending is None

    def test_time_limit_stored(self):
        state, pending = integrate_event(init_session(0), TimeLimitUpdated(time_ms=5, time_limit_ms=3_600_000))
        assert state.session_time_limit_ms == 3_600_000
        assert pending is None

    def test_completion_clears_in_flight(self, idle_agent):
        state, _ = process_event(idle_agent, init_session(0), TimeTick(time_ms=0))
        assert state.task_in_flight is not None
        state, pending = integrate_event(
            state, TaskCompleted(time_ms=10, task_id=state.task_in_flight.task_id, result=NoResult()),
        )
        assert state.task_in_flight is None
        assert pending is None

    def test_snapshot_completion_carries_context(self):
        state = replace(init_session(0), settings="s", session_time_limit_ms=99)
        state, task = start_task(state, "Get list of candidate processes.", ListProcesses(host_id="h"))
        state, pending = integrate_event(state, TaskCompleted(time_ms=42, task_id=task.task_id, result=_snapshot()))
        assert pending.event.snapshot.window_id == "w-102"
        assert pending.context.time_ms == 42
        assert pending.context.settings == "s"
        assert pending.context.session_time_limit_ms == 99

    def test_mismatched_completion_ignored(self, idle_agent, caplog):
        state, response = process_event(idle_agent, init_session(0), TimeTick(time_ms=0))
        with caplog.at_level("WARNING", logger="hostdrive.session"):
            state, pending = integrate_event(
                state, TaskCompleted(time_ms=10, task_id="task-99", result=HostCreated(host_id="stale")),
            )
        assert pending is None
        assert state.task_in_flight.task_id == response.start_task.task_id
        assert state.facts.host_creation is None
        assert state.time_ms == 10
        assert "task-99" in caplog.text

    def test_stale_completion_does_not_unblock_dispatch(self, idle_agent):
        state, first = process_event(idle_agent, init_session(0), TimeTick(time_ms=0))
        state, response = process_event(
            idle_agent, state, TaskCompleted(time_ms=10, task_id="task-99", result=NoResult()),
        )
        assert response.start_task is None
        assert response.wake_at_ms == 10 + WAIT_FOR_TASK_WAKE_MS
        assert state.task_in_flight.task_id == first.start_task.task_id

    def test_completion_without_task_in_flight_ignored(self):
        state, pending = integrate_event(
            init_session(0), TaskCompleted(time_ms=5, task_id="task-1", result=HostCreated(host_id="h")),
        )
        assert pending is None
        assert state.facts.host_creation is None


class TestSetupFlow:
    def test_first_event_creates_host(self, idle_agent):
        state, response = process_event(idle_agent, init_session(0), TimeTick(time_ms=0))
        assert isinstance(response, ContinueSession)
        assert response.start_task.request == CreateHost()
        assert response.wake_at_ms == SETUP_WAKE_MS
        assert response.status_text.startswith("Current activity: Create volatile host.")

    def test_waiting_reemits_status_without_task(self, idle_agent):
        state, _ = process_event(idle_agent, init_session(0), TimeTick(time_ms=0))
        state, response = process_event(idle_agent, state, TimeTick(time_ms=250))
        assert response.start_task is None
        assert response.wake_at_ms == 250 + WAIT_FOR_TASK_WAKE_MS
        assert "Waiting for task-1" in response.status_text

    def test_walks_the_ladder(self, idle_agent, sample_processes):
        agent = idle_agent
        state, r = process_event(agent, init_session(0), TimeTick(time_ms=0))
        assert r.start_task.request == CreateHost()

        state, r = _complete(agent, state, 100, HostCreated(host_id="h"))
        assert r.start_task.request == ListProcesses(host_id="h")

        state, r = _complete(agent, state, 200, HostChannelOk(response=ProcessList(processes=sample_processes)))
        assert r.start_task.request == SearchRootAddress(host_id="h", process_id=102)
        assert "3 client processes" in r.status_text

        state, r = _complete(agent, state, 300, HostChannelOk(response=RootSearchResult(process_id=102, root_address="0xabc")))
        assert r.start_task.request == AcquireSnapshot(host_id="h", process_id=102, root_address="0xabc")

    def test_creation_failure_finishes(self, idle_agent):
        state, _ = process_event(idle_agent, init_session(0), TimeTick(time_ms=0))
        state, response = _complete(idle_agent, state, 100, HostCreationFailed(reason="quota"))
        assert isinstance(response, FinishSession)
        assert "create volatile host failed: quota" in response.status_text

    def test_no_processes_finishes(self, idle_agent):
        state, _ = process_event(idle_agent, init_session(0), TimeTick(time_ms=0))
        state, _ = _complete(idle_agent, state, 100, HostCreated(host_id="h"))
        state, response = _complete(idle_agent, state, 200, HostChannelOk(response=ProcessList(processes=())))
        assert isinstance(response, FinishSession)
        assert "no client process found." in response.status_text

    def test_request_exception_is_retried(self, idle_agent):
        state, _ = process_event(idle_agent, init_session(0), TimeTick(time_ms=0))
        state, _ = _complete(idle_agent, state, 100, HostCreated(host_id="h"))
        state, response = _complete(idle_agent, state, 200, HostChannelOk(exception="pipe closed"))
        assert response.start_task.request == ListProcesses(host_id="h")
        assert "Last request failed: pipe closed" in response.status_text


class TestOperateFlow:
    def test_first_snapshot_runs_agent_and_dispatches_effects(self, scripted_decisions, sample_processes):
        agent = scripted_decisions(
            ContinueDecision(
                effects=(ActOnSurface(action="click"), PlayTones(tones=((440, 100),))),
                millis_to_next_snapshot=500,
                status_text="clicking",
            ),
        )
        state, r = _setup_until_ready(agent, sample_processes)
        assert len(agent.calls) == 1
        assert r.start_task.request == ActOnSurfaceRequest(host_id="h", window_id="w-102", action="click")
        assert r.wake_at_ms == 400 + OPERATE_WAKE_MS
        assert "clicking" in r.status_text

        state, r = _complete(agent, state, 450, HostChannelOk(return_value="clicked"))
        assert r.start_task.request == PlayTonesRequest(tones=((440, 100),))

        state, r = _complete(agent, state, 500, NoResult())
        assert r.start_task is None  # next snapshot due at 900

        state, r = process_event(agent, state, TimeTick(time_ms=900))
        assert r.start_task.request == AcquireSnapshot(host_id="h", process_id=102, root_address="0xabc")

    def test_finish_decision_ends_session(self, scripted_decisions, sample_processes):
        agent = scripted_decisions(FinishDecision(status_text="mission complete"))
        state, r = _setup_until_ready(agent, sample_processes)
        assert isinstance(r, FinishSession)
        assert r.status_text.startswith("Current activity: Agent finished.\n")
        assert r.status_text.count("mission complete") == 1

    def test_host_not_found_recreates_host(self, idle_agent, sample_processes):
        state, r = _setup_until_ready(idle_agent, sample_processes)
        state, r = _complete(idle_agent, state, 500, HostNotFound())
        assert r.start_task.request == CreateHost()
        state, r = _complete(idle_agent, state, 600, HostCreated(host_id="h2"))
        assert isinstance(r.start_task.request, AcquireSnapshot)
        assert r.start_task.request.host_id == "h2"

    def test_process_gone_finishes(self, idle_agent, sample_processes):
        state, r = _setup_until_ready(idle_agent, sample_processes)
        gone = HostChannelOk(response=SnapshotResult(duration_ms=10, outcome=SnapshotProcessGone()))
        state, r = _complete(idle_agent, state, 500, gone)
        assert isinstance(r, FinishSession)
        assert "client process disappeared." in r.status_text

    def test_recycle_once_then_counter_resets(self, idle_agent, sample_processes):
        state, r = _setup_until_ready(idle_agent, sample_processes)
        state = replace(state, facts=replace(state.facts, requests_since_host_created=HOST_RECYCLE_THRESHOLD))

        # This snapshot is dispatch number 401
        state, r = _complete(idle_agent, state, 500, _snapshot())
        assert isinstance(r.start_task.request, AcquireSnapshot)
        assert state.facts.requests_since_host_created == HOST_RECYCLE_THRESHOLD + 1

        state, r = _complete(idle_agent, state, 600, _snapshot())
        assert r.start_task.request == ReleaseHost(host_id="h")

        state, r = _complete(idle_agent, state, 700, NoResult())
        assert r.start_task.request == CreateHost()

        state, r = _complete(idle_agent, state, 800, HostCreated(host_id="h2"))
        assert state.facts.requests_since_host_created <= 1
        assert not isinstance(r.start_task.request, ReleaseHost)

    def test_parse_failure_retries_recycle_past_threshold(self, idle_agent, sample_processes):
        state, r = _setup_until_ready(idle_agent, sample_processes)
        state = replace(state, facts=replace(state.facts, requests_since_host_created=HOST_RECYCLE_THRESHOLD + 1))
        garbled = HostChannelOk(response=SnapshotResult(duration_ms=10, outcome=SnapshotParseFailed("truncated")))

        state, r = _complete(idle_agent, state, 500, garbled)
        assert r.start_task.request == ReleaseHost(host_id="h")
        assert state.facts.host_id is None

        state, r = _complete(idle_agent, state, 600, NoResult())
        assert r.start_task.request == CreateHost()

        state, r = _complete(idle_agent, state, 700, HostCreated(host_id="h2"))
        assert r.start_task.request == AcquireSnapshot(host_id="h2", process_id=102, root_address="0xabc")
        assert r.start_task.description.startswith("Retry snapshot after parse failure")

    def test_parse_failure_below_threshold_retries_snapshot(self, idle_agent, sample_processes):
        state, r = _setup_until_ready(idle_agent, sample_processes)
        garbled = HostChannelOk(response=SnapshotResult(duration_ms=10, outcome=SnapshotParseFailed("truncated")))
        state, r = _complete(idle_agent, state, 500, garbled)
        assert r.start_task.request == AcquireSnapshot(host_id="h", process_id=102, root_address="0xabc")


class TestSingleTaskInFlight:
    @pytest.mark.parametrize("tick_every", [50, 120, 333])
    def test_never_two_tasks_outstanding(self, scripted_decisions, sample_processes, tick_every):
        agent = scripted_decisions(
            ContinueDecision(effects=(ActOnSurface(action="a"), ActOnSurface(action="b")), millis_to_next_snapshot=200),
        )
        results = {
            CreateHost: HostCreated(host_id="h"),
            ListProcesses: HostChannelOk(response=ProcessList(processes=sample_processes)),
            SearchRootAddress: HostChannelOk(response=RootSearchResult(process_id=102, root_address="0xabc")),
            AcquireSnapshot: _snapshot(),
        }
        state = init_session(0)
        outstanding = None
        now = 0
        for step in range(200):
            now += tick_every
            if outstanding is not None and step % 3 == 2:
                task = outstanding
                event = TaskCompleted(
                    time_ms=now, task_id=task.task_id,
                    result=results.get(type(task.request), HostChannelOk(return_value="ok")),
                )
                outstanding = None
            else:
                event = TimeTick(time_ms=now)
            state, response = process_event(agent, state, event)
            assert isinstance(response, ContinueSession)
            if response.start_task is not None:
                assert outstanding is None
                outstanding = response.start_task
            assert (state.task_in_flight is not None) == (outstanding is not None)
