"""Helpers for the '### Header ###' reply format every role uses."""

import re

_HEADER_RE = re.compile(r"^#{2,}\s*(.+?)\s*#*\s*$", re.MULTILINE)


def extract_section(text: str, header: str) -> str:
    """Return the body under `### header ###`, up to the next header.

    Header matching ignores case. Missing sections give "".
    """
    matches = list(_HEADER_RE.finditer(text))
    wanted = header.strip().lower()
    for i, match in enumerate(matches):
        if match.group(1).strip().lower() != wanted:
            continue
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        return text[match.end():end].strip()
    return ""


def format_history(info_pool, limit: int = 5) -> str:
    """Render the recent action/outcome rows for a prompt."""
    rows = info_pool.recent_history(limit)
    if not rows:
        return "No actions have been taken yet."
    lines = []
    for action, summary, outcome, error in rows:
        line = f"- Action: {action.to_json()} | Description: {summary} | Outcome: {outcome.value}"
        if outcome.value != "A" and error:
            line += f" | Error: {error}"
        lines.append(line)
    return "\n".join(lines)
