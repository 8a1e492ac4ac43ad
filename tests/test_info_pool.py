import pytest

from autopilot.actions import Action, ActionType
from autopilot.info_pool import InfoPool, OutcomeCode, check_error_escalation, should_skip_planner

A, B, C = OutcomeCode.SUCCESS, OutcomeCode.PARTIAL, OutcomeCode.FAILURE


def _pool(outcomes, thresh=3, last=ActionType.CLICK):
    pool = InfoPool(instruction="x", err_to_manager_thresh=thresh)
    for i, outcome in enumerate(outcomes):
        kind = last if i == len(outcomes) - 1 else ActionType.CLICK
        pool.record(Action(kind, x=1, y=1), f"step {i}", outcome, "" if outcome is A else "nope")
    return pool


@pytest.mark.parametrize("outcomes, expected", [
    ([A, C, C, C], True),
    ([A, C, B, C], True),
    ([A, C, A], False),
    ([C, C], False),
    ([C, C, C, A], False),
])
def test_error_escalation(outcomes, expected):
    pool = _pool(outcomes)
    assert check_error_escalation(pool) is expected
    assert pool.error_flag_plan is expected


def test_escalation_flag_clears_after_success():
    pool = _pool([C, C, C])
    assert check_error_escalation(pool)
    pool.record(Action(ActionType.CLICK, x=1, y=1), "ok", A, "")
    assert check_error_escalation(pool) is False


def test_escalation_threshold_one():
    assert check_error_escalation(_pool([A, B], thresh=1)) is True


def test_skip_planner_after_invalid_action():
    pool = _pool([A, C], last=ActionType.INVALID)
    check_error_escalation(pool)
    assert should_skip_planner(pool) is True

    assert should_skip_planner(InfoPool(instruction="x")) is False
    assert should_skip_planner(_pool([C])) is False


def test_escalation_overrides_skip():
    pool = _pool([C, C, C], last=ActionType.INVALID)
    check_error_escalation(pool)
    assert should_skip_planner(pool) is False


def test_pending_step_window():
    pool = InfoPool(instruction="x")
    pool.begin_step(Action(ActionType.SWIPE, x=1, y=2, x2=3, y2=4), "scroll")
    assert len(pool.action_history) == 1
    assert pool.action_outcomes == []
    assert pool.history_is_aligned() is False
    assert pool.recent_history() == []

    pool.complete_step(B, "moved a little")
    assert pool.history_is_aligned() is True
    assert pool.recent_history()[0][1:] == ("scroll", B, "moved a little")


def test_complete_step_requires_open_step():
    pool = InfoPool(instruction="x")
    with pytest.raises(RuntimeError):
        pool.complete_step(A, "")


def test_recent_history_limit():
    pool = _pool([A] * 8)
    rows = pool.recent_history(5)
    assert len(rows) == 5
    assert rows[0][1] == "step 3"
