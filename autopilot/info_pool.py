"""Shared run context threaded through every phase of a step."""

from dataclasses import dataclass, field
from enum import Enum

from autopilot.actions import Action, ActionType
from autopilot.memory import ConversationMemory


class OutcomeCode(str, Enum):
    SUCCESS = "A"
    PARTIAL = "B"
    FAILURE = "C"


FAILING_OUTCOMES = frozenset({OutcomeCode.PARTIAL, OutcomeCode.FAILURE})

PENDING_OUTCOME = "?"


@dataclass
class InfoPool:
    """Mutable state for one instruction run, owned by the loop controller."""

    instruction: str
    plan: str = ""
    completed_subgoal: str = ""
    skill_context: str | None = None
    screen_width: int = 0
    screen_height: int = 0
    installed_apps: list[str] = field(default_factory=list)

    action_history: list[Action] = field(default_factory=list)
    summary_history: list[str] = field(default_factory=list)
    action_outcomes: list[OutcomeCode] = field(default_factory=list)
    error_descriptions: list[str] = field(default_factory=list)

    error_flag_plan: bool = False
    err_to_manager_thresh: int = 3
    important_notes: str = ""

    last_action: Action | None = None
    last_action_thought: str = ""
    last_summary: str = ""
    progress_status: str = ""

    executor_memory: ConversationMemory | None = None

    def begin_step(self, action: Action, summary: str) -> None:
        """Record an executed action whose outcome is not known yet."""
        self.action_history.append(action)
        self.summary_history.append(summary)

    def complete_step(self, outcome: OutcomeCode, error_description: str) -> None:
        """Attach the outcome to the step opened by begin_step."""
        if len(self.action_outcomes) >= len(self.action_history):
            raise RuntimeError("complete_step called without an open step")
        self.action_outcomes.append(outcome)
        self.error_descriptions.append(error_description)

    def record(self, action: Action, summary: str, outcome: OutcomeCode, error_description: str) -> None:
        """Record a step that finished without a critic pass."""
        self.begin_step(action, summary)
        self.complete_step(outcome, error_description)

    def history_is_aligned(self) -> bool:
        return (
            len(self.action_history)
            == len(self.summary_history)
            == len(self.action_outcomes)
            == len(self.error_descriptions)
        )

    def recent_history(self, limit: int = 5) -> list[tuple[Action, str, OutcomeCode, str]]:
        """Last completed steps as (action, summary, outcome, error) rows."""
        rows = list(zip(
            self.action_history,
            self.summary_history,
            self.action_outcomes,
            self.error_descriptions,
        ))
        return rows[-limit:] if limit > 0 else rows


def check_error_escalation(info_pool: InfoPool) -> bool:
    """Flag the plan as stuck when the last N outcomes all failed or were partial."""
    info_pool.error_flag_plan = False
    thresh = info_pool.err_to_manager_thresh
    if len(info_pool.action_outcomes) >= thresh:
        recent = info_pool.action_outcomes[-thresh:]
        if all(outcome in FAILING_OUTCOMES for outcome in recent):
            info_pool.error_flag_plan = True
    return info_pool.error_flag_plan


def should_skip_planner(info_pool: InfoPool) -> bool:
    """Retry the actor directly after an unparseable reply against an unchanged plan."""
    return (
        not info_pool.error_flag_plan
        and bool(info_pool.action_history)
        and info_pool.action_history[-1].type is ActionType.INVALID
    )
