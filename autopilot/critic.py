"""Critic role: compares before/after screenshots to grade the last action."""

import re
from dataclasses import dataclass

from autopilot.info_pool import InfoPool, OutcomeCode
from autopilot.sections import extract_section

CALL_FAILED = "Failed to call reflector"

# The grade is the leading token of the section, optionally bolded.
_OUTCOME_RE = re.compile(r"\s*\**([ABC])\b")


@dataclass(frozen=True)
class CriticResult:
    outcome: OutcomeCode
    error_description: str


def get_prompt(info_pool: InfoPool) -> str:
    action = info_pool.last_action.to_json() if info_pool.last_action else "None"
    return (
        "You are an agent who can operate an Android phone. "
        "Verify whether the last action produced the expected result.\n\n"
        f"### User Request ###\n{info_pool.instruction}\n\n"
        f"### Progress Status ###\n{info_pool.progress_status or 'No progress yet.'}\n\n"
        "### Screenshots ###\n"
        "The first image was taken before the action, the second one after it.\n\n"
        "### Latest Action ###\n"
        f"Action: {action}\n"
        f"Expectation: {info_pool.last_summary}\n\n"
        "---\n"
        "Grade the action:\n"
        "A: Successful. The result matches the expectation.\n"
        "B: Partially successful or uncertain, e.g. the screen changed but not as expected.\n"
        "C: Failed. The action had no effect or led to a wrong page.\n\n"
        "Reply in exactly this format:\n"
        "### Outcome ###\n"
        "A, B or C\n\n"
        "### Error Description ###\n"
        "If the action failed, describe what went wrong. Otherwise write \"None\".\n"
    )


def parse_response(response: str) -> CriticResult:
    outcome_text = extract_section(response, "Outcome")
    match = _OUTCOME_RE.match(outcome_text) if outcome_text else None
    error = extract_section(response, "Error Description")
    if match is None:
        return CriticResult(OutcomeCode.FAILURE, error or "Unrecognised critic outcome")
    return CriticResult(OutcomeCode(match.group(1)), error)


def call_failed() -> CriticResult:
    return CriticResult(OutcomeCode.FAILURE, CALL_FAILED)
