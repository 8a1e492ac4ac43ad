"""Device actions chosen by the actor, plus parsing and coordinate mapping."""

import json
import re
from dataclasses import dataclass
from enum import Enum


class ActionType(str, Enum):
    CLICK = "click"
    DOUBLE_TAP = "double_tap"
    LONG_PRESS = "long_press"
    SWIPE = "swipe"
    TYPE_TEXT = "type_text"
    SYSTEM_BUTTON = "system_button"
    OPEN_APP = "open_app"
    WAIT = "wait"
    ANSWER = "answer"
    TAKE_OVER = "take_over"
    INVALID = "invalid"


# Names the model may use for an action type.
_ALIASES = {
    "type": ActionType.TYPE_TEXT,
    "tap": ActionType.CLICK,
    "long_click": ActionType.LONG_PRESS,
    "double_click": ActionType.DOUBLE_TAP,
    "takeover": ActionType.TAKE_OVER,
}

POINT_ACTIONS = frozenset({ActionType.CLICK, ActionType.DOUBLE_TAP, ActionType.LONG_PRESS})

SYSTEM_BUTTONS = ("Back", "Home", "Enter")

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


class ActionParseError(ValueError):
    """Raised when model output cannot be turned into an Action."""


@dataclass(frozen=True)
class Action:
    """One concrete device action. Coordinates are model-space (0-999) or pixels."""

    type: ActionType
    x: int | None = None
    y: int | None = None
    x2: int | None = None
    y2: int | None = None
    text: str | None = None
    button: str | None = None
    duration: int | None = None
    message: str | None = None
    need_confirm: bool = False

    @classmethod
    def invalid(cls) -> "Action":
        return cls(type=ActionType.INVALID)

    def requires_confirmation(self) -> bool:
        """True when a human must approve this action before it runs.

        Two independent triggers: an explicit need_confirm flag, or a
        point action that carries a message for the user.
        """
        if self.need_confirm:
            return True
        return self.message is not None and self.type in POINT_ACTIONS

    def to_json(self) -> str:
        payload: dict = {"action": self.type.value}
        if self.x is not None and self.y is not None:
            payload["coordinate"] = [self.x, self.y]
        if self.x2 is not None and self.y2 is not None:
            payload["coordinate2"] = [self.x2, self.y2]
        for key in ("text", "button", "duration", "message"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        if self.need_confirm:
            payload["need_confirm"] = True
        return json.dumps(payload, ensure_ascii=False)


def _extract_json_object(raw: str) -> dict:
    text = raw.strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ActionParseError(f"no JSON object in action text: {raw[:80]!r}")
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as exc:
        raise ActionParseError(f"bad action JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ActionParseError("action JSON is not an object")
    return data


def _point(data: dict, key: str) -> tuple[int, int]:
    value = data.get(key)
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ActionParseError(f"'{key}' must be a [x, y] pair")
    try:
        return int(value[0]), int(value[1])
    except (TypeError, ValueError) as exc:
        raise ActionParseError(f"'{key}' holds non-numeric values") from exc


def _resolve_type(name: object) -> ActionType:
    key = str(name or "").strip().lower()
    if key in _ALIASES:
        return _ALIASES[key]
    try:
        action_type = ActionType(key)
    except ValueError as exc:
        raise ActionParseError(f"unknown action '{name}'") from exc
    if action_type is ActionType.INVALID:
        raise ActionParseError("model returned the invalid action")
    return action_type


def parse_action(raw: str) -> Action:
    """Parse the actor's action text (a JSON object, fences tolerated)."""
    data = _extract_json_object(raw)
    action_type = _resolve_type(data.get("action"))

    message = data.get("message")
    message = str(message) if message not in (None, "") else None
    need_confirm = bool(data.get("need_confirm", False))
    text = data.get("text")
    text = str(text) if text is not None else None

    if action_type in POINT_ACTIONS:
        x, y = _point(data, "coordinate")
        return Action(action_type, x=x, y=y, message=message, need_confirm=need_confirm)

    if action_type is ActionType.SWIPE:
        x, y = _point(data, "coordinate")
        x2, y2 = _point(data, "coordinate2")
        return Action(action_type, x=x, y=y, x2=x2, y2=y2, message=message, need_confirm=need_confirm)

    if action_type in (ActionType.TYPE_TEXT, ActionType.OPEN_APP, ActionType.ANSWER):
        if not text:
            raise ActionParseError(f"'{action_type.value}' requires 'text'")
        return Action(action_type, text=text, message=message, need_confirm=need_confirm)

    if action_type is ActionType.SYSTEM_BUTTON:
        button = str(data.get("button") or "").strip()
        if not button:
            raise ActionParseError("'system_button' requires 'button'")
        return Action(action_type, button=button, need_confirm=need_confirm)

    if action_type is ActionType.WAIT:
        duration = data.get("duration")
        try:
            duration = int(duration) if duration is not None else None
        except (TypeError, ValueError) as exc:
            raise ActionParseError("'duration' must be a number of seconds") from exc
        return Action(action_type, duration=duration)

    # take_over
    return Action(action_type, message=message)


def map_coordinate(value: int, screen_max: int) -> int:
    """Map a model coordinate onto the screen.

    0-999 is a relative position scaled to the screen dimension; anything
    >= 1000 is an absolute pixel, clamped to the screen.
    """
    if value < 1000:
        return value * screen_max // 999
    return min(value, screen_max)


def wait_seconds(action: Action) -> int:
    """Clamp a wait action's duration to 1-10 seconds (default 3)."""
    duration = action.duration if action.duration is not None else 3
    return max(1, min(duration, 10))
