"""Session timer transitions, ticking, progress and session records."""
import pytest

from studyfocus.models import (
    Rejection,
    SessionConfig,
    SessionEvent,
    SessionState,
)
from studyfocus.session_timer import SessionTimer, transition


def run_seconds(timer, clock, seconds):
    """Tick once per simulated second."""
    results = []
    for _ in range(seconds):
        clock.advance(1)
        results.append(timer.tick())
    return results


# ==================== pure transition function ====================

def test_transition_table_basics():
    config = SessionConfig(session_duration_seconds=60, break_duration_seconds=10)
    assert transition(SessionState.IDLE, SessionEvent.START, config) == SessionState.ACTIVE
    assert transition(SessionState.ACTIVE, SessionEvent.PAUSE, config) == SessionState.PAUSED
    assert transition(SessionState.PAUSED, SessionEvent.RESUME, config) == SessionState.ACTIVE
    assert transition(SessionState.PAUSED, SessionEvent.END, config) == SessionState.IDLE
    assert transition(SessionState.BREAK, SessionEvent.RESET, config) == SessionState.IDLE
    assert transition(SessionState.COMPLETED, SessionEvent.RESET, config) == SessionState.IDLE


def test_transition_expire_depends_on_break_length():
    with_break = SessionConfig(session_duration_seconds=60, break_duration_seconds=10)
    no_break = SessionConfig(session_duration_seconds=60, break_duration_seconds=0)
    assert transition(SessionState.ACTIVE, SessionEvent.EXPIRE, with_break) == SessionState.BREAK
    assert transition(SessionState.ACTIVE, SessionEvent.EXPIRE, no_break) == SessionState.COMPLETED
    assert transition(SessionState.BREAK, SessionEvent.EXPIRE, with_break) == SessionState.IDLE


@pytest.mark.parametrize(
    "state, event",
    [
        (SessionState.ACTIVE, SessionEvent.START),
        (SessionState.IDLE, SessionEvent.PAUSE),
        (SessionState.IDLE, SessionEvent.RESET),
        (SessionState.PAUSED, SessionEvent.TICK),
        (SessionState.BREAK, SessionEvent.END),
        (SessionState.COMPLETED, SessionEvent.START),
    ],
)
def test_transition_rejects_illegal_events(state, event):
    config = SessionConfig(session_duration_seconds=60, break_duration_seconds=10)
    result = transition(state, event, config)
    assert isinstance(result, Rejection)
    assert result.state == state


@pytest.mark.parametrize("duration", [0, -5])
def test_transition_rejects_start_without_positive_duration(duration):
    config = SessionConfig(session_duration_seconds=duration)
    result = transition(SessionState.IDLE, SessionEvent.START, config)
    assert isinstance(result, Rejection)
    assert "greater than zero" in result.reason


def test_negative_break_is_a_config_error():
    with pytest.raises(ValueError):
        SessionConfig(session_duration_seconds=60, break_duration_seconds=-1)


# ==================== timer commands ====================

def test_start_sets_time_remaining(make_timer):
    timer = make_timer(session_seconds=1500, break_seconds=300)
    result = timer.start()
    assert result.accepted
    assert result.previous_state == SessionState.IDLE
    assert timer.state == SessionState.ACTIVE
    assert timer.time_remaining == 1500


def test_start_while_active_is_rejected(make_timer, clock):
    timer = make_timer(session_seconds=10)
    timer.start()
    run_seconds(timer, clock, 3)

    result = timer.start()
    assert not result.accepted
    assert result.reason
    assert timer.state == SessionState.ACTIVE
    assert timer.time_remaining == 7


def test_start_with_zero_duration_is_rejected(make_timer):
    timer = make_timer(session_seconds=0)
    result = timer.start()
    assert not result.accepted
    assert timer.state == SessionState.IDLE


@pytest.mark.parametrize("break_seconds, final_state", [(300, SessionState.BREAK), (0, SessionState.COMPLETED)])
def test_full_session_never_goes_negative(make_timer, clock, break_seconds, final_state):
    timer = make_timer(session_seconds=1500, break_seconds=break_seconds)
    timer.start()

    for i in range(1500):
        assert timer.state == SessionState.ACTIVE
        clock.advance(1)
        timer.tick()
        assert timer.time_remaining >= 0

    assert timer.state == final_state


def test_session_then_break_end_to_end(make_timer, clock):
    timer = make_timer(session_seconds=5, break_seconds=2)
    timer.start()

    results = run_seconds(timer, clock, 5)
    assert timer.state == SessionState.BREAK
    assert timer.time_remaining == 2
    assert results[-1].session_completed
    assert results[-1].event == SessionEvent.EXPIRE
    assert results[-1].elapsed_study_seconds == 5

    run_seconds(timer, clock, 2)
    assert timer.state == SessionState.IDLE
    assert timer.time_remaining == 5


def test_completed_session_can_be_reset(make_timer, clock):
    timer = make_timer(session_seconds=3, break_seconds=0)
    timer.start()
    run_seconds(timer, clock, 3)
    assert timer.state == SessionState.COMPLETED
    assert timer.time_remaining == 0
    assert not timer.tick().accepted

    timer.reset()
    assert timer.state == SessionState.IDLE
    assert timer.time_remaining == 3


@pytest.mark.parametrize("target", ["active", "paused", "break"])
def test_reset_returns_to_idle(make_timer, clock, target):
    timer = make_timer(session_seconds=5, break_seconds=3)
    timer.start()
    run_seconds(timer, clock, 2)
    if target == "paused":
        timer.pause()
    elif target == "break":
        run_seconds(timer, clock, 4)
    assert timer.state.value == target

    result = timer.reset()
    assert result.accepted
    assert timer.state == SessionState.IDLE
    assert timer.time_remaining == 5


def test_pause_resume_preserves_time(make_timer, clock):
    timer = make_timer(session_seconds=10)
    timer.start()
    run_seconds(timer, clock, 3)

    timer.pause()
    assert timer.time_remaining == 7
    clock.advance(120)
    assert not timer.tick().accepted
    timer.resume()
    assert timer.time_remaining == 7

    run_seconds(timer, clock, 1)
    assert timer.time_remaining == 6


def test_tick_counts_wall_clock_not_callbacks(make_timer, clock):
    timer = make_timer(session_seconds=10)
    timer.start()

    for _ in range(3):
        clock.advance(0.25)
        timer.tick()
    assert timer.time_remaining == 10

    clock.advance(0.25)
    timer.tick()
    assert timer.time_remaining == 9

    # a late callback catches up
    clock.advance(3)
    timer.tick()
    assert timer.time_remaining == 6


def test_single_tick_applies_one_transition(make_timer, clock):
    timer = make_timer(session_seconds=5, break_seconds=2)
    timer.start()

    clock.advance(30)
    result = timer.tick()
    assert result.state == SessionState.BREAK
    assert timer.time_remaining == 2

    run_seconds(timer, clock, 1)
    assert timer.state == SessionState.BREAK
    assert timer.time_remaining == 1


def test_end_reports_elapsed_study_time(make_timer, clock):
    timer = make_timer(session_seconds=10, break_seconds=5)
    records = []
    timer.add_listener(records.append)
    timer.start()
    run_seconds(timer, clock, 4)

    result = timer.end()
    assert result.accepted
    assert result.elapsed_study_seconds == 4
    assert timer.state == SessionState.IDLE
    assert timer.time_remaining == 10
    assert len(records) == 1
    assert records[0].completed is False
    assert records[0].studied_seconds == 4
    assert records[0].planned_seconds == 10


def test_end_from_paused(make_timer, clock):
    timer = make_timer(session_seconds=10)
    timer.start()
    run_seconds(timer, clock, 2)
    timer.pause()
    assert timer.end().elapsed_study_seconds == 2


def test_natural_completion_notifies_listeners(make_timer, clock):
    timer = make_timer(session_seconds=3, break_seconds=1)
    records = []
    timer.add_listener(records.append)
    timer.start()
    run_seconds(timer, clock, 3)

    assert len(records) == 1
    assert records[0].completed is True
    assert records[0].studied_seconds == 3

    # finishing the break is not a study session
    run_seconds(timer, clock, 1)
    assert len(records) == 1


def test_failing_listener_does_not_break_timer(make_timer, clock):
    timer = make_timer(session_seconds=2)
    records = []

    def broken(record):
        raise RuntimeError("boom")

    timer.add_listener(broken)
    timer.add_listener(records.append)
    timer.start()
    run_seconds(timer, clock, 2)

    assert timer.state == SessionState.COMPLETED
    assert len(records) == 1


def test_unsubscribe_listener(make_timer, clock):
    timer = make_timer(session_seconds=2)
    records = []
    unsubscribe = timer.add_listener(records.append)
    unsubscribe()
    timer.start()
    run_seconds(timer, clock, 2)
    assert records == []


# ==================== progress and configuration ====================

def test_progress_percentage(make_timer, clock):
    timer = make_timer(session_seconds=10, break_seconds=4)
    assert timer.progress_percentage == 0.0

    timer.start()
    run_seconds(timer, clock, 5)
    assert timer.progress_percentage == 50.0

    timer.pause()
    assert timer.progress_percentage == 50.0
    timer.resume()

    run_seconds(timer, clock, 5)
    assert timer.state == SessionState.BREAK
    assert timer.progress_percentage == 0.0

    run_seconds(timer, clock, 1)
    assert timer.progress_percentage == 25.0


def test_progress_is_zero_for_zero_duration(make_timer):
    timer = make_timer(session_seconds=0)
    assert timer.progress_percentage == 0.0


def test_snapshot(make_timer):
    timer = make_timer(session_seconds=1500, break_seconds=300)
    snap = timer.snapshot()
    assert snap.state == SessionState.IDLE
    assert snap.time_remaining == 1500
    assert snap.progress_percentage == 0.0
    assert snap.formatted_time == "25:00"


def test_configure_while_idle_resets_time(make_timer):
    timer = make_timer(session_seconds=10)
    assert timer.configure(SessionConfig(session_duration_seconds=30, break_duration_seconds=5))
    assert timer.time_remaining == 30
    assert timer.config.break_duration_seconds == 5


def test_configure_rejected_while_running(make_timer):
    timer = make_timer(session_seconds=10)
    timer.start()
    assert not timer.configure(SessionConfig(session_duration_seconds=30))
    assert timer.config.session_duration_seconds == 10
    assert timer.state == SessionState.ACTIVE


def test_default_clock_is_monotonic():
    timer = SessionTimer(SessionConfig(session_duration_seconds=60))
    timer.start()
    timer.tick()
    assert timer.time_remaining in (59, 60)


# ==================== subject and streak ====================

def test_start_with_subject_tags_record(make_timer, clock):
    timer = make_timer(session_seconds=5)
    records = []
    timer.add_listener(records.append)
    timer.start(subject="Biology")
    assert timer.snapshot().subject == "Biology"

    run_seconds(timer, clock, 2)
    timer.end()
    assert records[0].subject == "Biology"


def test_subject_change_mid_session(make_timer, clock):
    timer = make_timer(session_seconds=3)
    records = []
    timer.add_listener(records.append)
    timer.start(subject="Math")
    timer.set_subject("Physics")
    run_seconds(timer, clock, 3)
    assert records[0].subject == "Physics"

    timer.set_subject("")
    assert timer.subject is None


def test_start_without_subject_keeps_current(make_timer):
    timer = make_timer(session_seconds=5)
    timer.set_subject("Art")
    timer.start()
    assert timer.subject == "Art"


def test_streak_counts_finished_sessions(make_timer, clock):
    timer = make_timer(session_seconds=2, break_seconds=1)
    assert timer.snapshot().current_streak == 0

    timer.start()
    run_seconds(timer, clock, 3)  # session then break
    assert timer.state == SessionState.IDLE
    assert timer.current_streak == 1

    timer.start()
    timer.end()
    assert timer.current_streak == 2
    assert timer.snapshot().current_streak == 2


def test_rejected_commands_leave_streak(make_timer):
    timer = make_timer(session_seconds=2)
    timer.start()
    timer.end()
    assert not timer.end().accepted
    assert timer.current_streak == 1


def test_reset_clears_streak(make_timer, clock):
    timer = make_timer(session_seconds=2)
    timer.start()
    run_seconds(timer, clock, 2)
    assert timer.state == SessionState.COMPLETED
    assert timer.current_streak == 1

    timer.reset()
    assert timer.current_streak == 0
