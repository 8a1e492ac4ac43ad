"""Planner role: tracks sub-goals and decides the next high-level plan."""

import re
from dataclasses import dataclass

from autopilot.info_pool import InfoPool
from autopilot.sections import extract_section, format_history

STOP_SENSITIVE = "STOP_SENSITIVE"

# "finished" alone, or followed (after optional spaces) by . ! : , - or a line break.
# "Finished it later" is not terminal.
_FINISHED_RE = re.compile(r"^finished[ \t]*(?:$|[.!:,\r\n-])", re.IGNORECASE)


@dataclass(frozen=True)
class PlannerResult:
    thought: str
    completed_subgoal: str
    plan: str


def is_finished(plan: str) -> bool:
    """True when the plan text is the terminal 'Finished' marker."""
    return bool(_FINISHED_RE.match(plan.strip()))


def is_sensitive_stop(plan: str) -> bool:
    return STOP_SENSITIVE.lower() in plan.lower()


def get_prompt(info_pool: InfoPool) -> str:
    parts = [
        "You are an agent who can operate an Android phone on behalf of a user. "
        "Your job is to track progress and devise high-level plans to achieve the user's request.\n",
        f"### User Request ###\n{info_pool.instruction}\n",
    ]

    if info_pool.skill_context:
        parts.append(f"### Available Shortcut ###\n{info_pool.skill_context}\n")

    if info_pool.installed_apps:
        parts.append("### Installed Apps ###\n" + ", ".join(info_pool.installed_apps) + "\n")

    if not info_pool.plan:
        parts.append(
            "### Guidance ###\n"
            "This is the first step. The attached image is the current screen. "
            "Break the request into sub-goals and write a step-by-step plan.\n"
        )
    else:
        parts.append(f"### Current Plan ###\n{info_pool.plan}\n")
        parts.append(
            "### Previous Subgoal Completed ###\n"
            f"{info_pool.completed_subgoal or 'None yet.'}\n"
        )
        parts.append(f"### Last Action ###\n{info_pool.last_summary or 'None'}\n")
        parts.append(f"### Recent Actions ###\n{format_history(info_pool)}\n")
        if info_pool.important_notes:
            parts.append(f"### Important Notes ###\n{info_pool.important_notes}\n")
        if info_pool.error_flag_plan:
            thresh = info_pool.err_to_manager_thresh
            errors = "\n".join(f"- {e}" for e in info_pool.error_descriptions[-thresh:])
            parts.append(
                "### Potentially Stuck! ###\n"
                f"The last {thresh} actions did not achieve their goal:\n{errors}\n"
                "The current plan is probably not working. Revise it and consider a different approach.\n"
            )

    parts.append(
        "---\n"
        "Rules:\n"
        "- If the request has been fully completed, the plan must be exactly \"Finished\".\n"
        "- If the request is a question, plan to find the answer and reply with it.\n"
        f"- If the screen shows a payment, password or other credential entry, the plan must contain {STOP_SENSITIVE}.\n"
        "- Prefer opening apps directly over navigating the home screen.\n\n"
        "Reply in exactly this format:\n"
        "### Thought ###\n"
        "Your reasoning about progress so far.\n\n"
        "### Historical Operations ###\n"
        "Sub-goals that have been completed.\n\n"
        "### Plan ###\n"
        "1. first remaining sub-goal\n2. ...\n"
    )
    return "\n".join(parts)


def parse_response(response: str) -> PlannerResult:
    return PlannerResult(
        thought=extract_section(response, "Thought"),
        completed_subgoal=extract_section(response, "Historical Operations"),
        plan=extract_section(response, "Plan"),
    )
