"""Actor role: turns the current plan and screen into one device action."""

from dataclasses import dataclass

from autopilot.actions import Action, ActionParseError, parse_action
from autopilot.info_pool import InfoPool
from autopilot.sections import extract_section, format_history

ACTION_SPACE = """\
- {"action": "click", "coordinate": [x, y]}
- {"action": "double_tap", "coordinate": [x, y]}
- {"action": "long_press", "coordinate": [x, y]}
- {"action": "swipe", "coordinate": [x1, y1], "coordinate2": [x2, y2]}
- {"action": "type_text", "text": "text to enter into the focused field"}
- {"action": "system_button", "button": "Back" | "Home" | "Enter"}
- {"action": "open_app", "text": "app name"}
- {"action": "wait", "duration": seconds (1-10)}
- {"action": "take_over", "message": "what the user must do by hand"}
- {"action": "answer", "text": "the answer to the user's question"}

Coordinates are relative: 0-999 on each axis, (0, 0) is the top-left corner.
Add "need_confirm": true and a "message" for irreversible operations
(sending, deleting, purchasing) so the user can approve them first."""


@dataclass(frozen=True)
class ActorResult:
    thought: str
    action_str: str
    description: str
    action: Action | None
    error: str = ""


def system_prompt(instruction: str) -> str:
    """Seed text for the actor's conversation memory."""
    return (
        "You are an agent who can operate an Android phone. "
        "Decide the next action based on the current state.\n\n"
        f"User Request: {instruction}\n"
    )


def get_prompt(info_pool: InfoPool) -> str:
    parts = [
        f"### User Request ###\n{info_pool.instruction}\n",
        f"### Overall Plan ###\n{info_pool.plan or 'No plan yet.'}\n",
        f"### Current Subgoal ###\n{_current_subgoal(info_pool.plan)}\n",
        f"### Progress Status ###\n{info_pool.progress_status or 'No progress yet.'}\n",
        f"### Screen ###\nThe attached screenshot is {info_pool.screen_width}x{info_pool.screen_height} pixels.\n",
    ]
    if info_pool.important_notes:
        parts.append(f"### Important Notes ###\n{info_pool.important_notes}\n")
    parts.append(f"### Latest Action History ###\n{format_history(info_pool)}\n")
    parts.append(
        "---\n"
        "Choose exactly one action from this list:\n"
        f"{ACTION_SPACE}\n\n"
        "Reply in exactly this format:\n"
        "### Thought ###\n"
        "Why this action moves the current subgoal forward.\n\n"
        "### Action ###\n"
        "One JSON object from the list above.\n\n"
        "### Description ###\n"
        "A short description of the action and its expected result.\n"
    )
    return "\n".join(parts)


def _current_subgoal(plan: str) -> str:
    for line in plan.splitlines():
        line = line.strip()
        if line:
            return line
    return "Work out the first step toward the request."


def parse_response(response: str) -> ActorResult:
    thought = extract_section(response, "Thought")
    action_str = extract_section(response, "Action")
    description = extract_section(response, "Description")
    try:
        action = parse_action(action_str or response)
    except ActionParseError as exc:
        return ActorResult(thought, action_str, description, None, str(exc))
    return ActorResult(thought, action_str, description, action)
