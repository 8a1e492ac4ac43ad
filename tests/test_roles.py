import re

from autopilot import actor, critic, notetaker
from autopilot.actions import Action, ActionType
from autopilot.info_pool import InfoPool, OutcomeCode


def test_actor_parse_response():
    result = actor.parse_response(
        "### Thought ###\nTap search\n\n"
        '### Action ###\n{"action": "click", "coordinate": [500, 100]}\n\n'
        "### Description ###\nOpen the search box\n"
    )
    assert result.thought == "Tap search"
    assert result.description == "Open the search box"
    assert result.action == Action(ActionType.CLICK, x=500, y=100)
    assert result.error == ""


def test_actor_parse_failure_keeps_text():
    result = actor.parse_response("### Thought ###\nhmm\n\n### Action ###\nclick somewhere\n\n### Description ###\nd\n")
    assert result.action is None
    assert result.action_str == "click somewhere"
    assert "no JSON object" in result.error


def test_actor_prompt_uses_first_plan_line_as_subgoal():
    pool = InfoPool(instruction="play a song", plan="\n1. open Spotify\n2. search", screen_width=1080, screen_height=2400)
    prompt = actor.get_prompt(pool)
    assert "### Current Subgoal ###\n1. open Spotify" in prompt
    assert "1080x2400" in prompt
    assert "No actions have been taken yet." in prompt
    assert "User Request: play a song" in actor.system_prompt("play a song")


def test_critic_parse_outcomes():
    assert critic.parse_response("### Outcome ###\nA\n\n### Error Description ###\nNone").outcome is OutcomeCode.SUCCESS
    partial = critic.parse_response("### Outcome ###\nB: partially\n\n### Error Description ###\nwrong tab")
    assert partial.outcome is OutcomeCode.PARTIAL
    assert partial.error_description == "wrong tab"


def test_critic_unrecognised_outcome_is_failure():
    result = critic.parse_response("### Outcome ###\nmaybe\n")
    assert result.outcome is OutcomeCode.FAILURE
    assert result.error_description == "Unrecognised critic outcome"
    assert critic.call_failed().error_description == critic.CALL_FAILED


def test_critic_prompt_mentions_last_action():
    pool = InfoPool(instruction="x", last_summary="open the menu")
    pool.last_action = Action(ActionType.SYSTEM_BUTTON, button="Back")
    prompt = critic.get_prompt(pool)
    assert '"button": "Back"' in prompt
    assert "Expectation: open the menu" in prompt


def test_notetaker_parse_response():
    assert notetaker.parse_response("### Important Notes ###\nOrder 1234\n") == "Order 1234"
    assert notetaker.parse_response("  plain notes ") == "plain notes"
    assert "Existing Important Notes" in notetaker.get_prompt(InfoPool(instruction="x"))


def test_critic_prose_outcome_is_not_read_as_a_grade():
    failed = critic.parse_response("### Outcome ###\nFailed, it opened a wrong page\n\n### Error Description ###\nwrong page")
    assert failed.outcome is OutcomeCode.FAILURE
    assert failed.error_description == "wrong page"

    partial = critic.parse_response("### Outcome ###\nPartially: a dialog appeared\n")
    assert partial.outcome is OutcomeCode.FAILURE


def test_critic_grade_must_lead_the_section():
    assert critic.parse_response("### Outcome ###\n**C** nothing changed\n").outcome is OutcomeCode.FAILURE
    assert critic.parse_response("### Outcome ###\n  B - wrong tab opened\n").outcome is OutcomeCode.PARTIAL
    assert critic.parse_response("### Outcome ###\nI think A\n").outcome is OutcomeCode.FAILURE
    assert critic.parse_response("### Outcome ###\na\n").outcome is OutcomeCode.FAILURE


def test_action_space_uses_the_names_history_echoes():
    names = re.findall(r'"action": "(\w+)"', actor.ACTION_SPACE)
    assert "type_text" in names
    assert all(ActionType(name).value == name for name in names)
    assert Action(ActionType.TYPE_TEXT, text="hi").to_json() == '{"action": "type_text", "text": "hi"}'
