import json

from autopilot.skills import NO_SKILL_MATCH, Skill, SkillManager, is_no_match


def _write(tmp_path, rows):
    path = tmp_path / "skills.json"
    path.write_text(json.dumps(rows))
    return path


def test_load_and_match(tmp_path):
    path = _write(tmp_path, [
        {"name": "play_music", "keywords": ["play", "song"], "app": "Spotify",
         "steps": ["open Spotify", "search the song"]},
        {"name": "navigate", "keywords": ["directions"], "app": "Maps"},
        {"keywords": ["nameless"]},
    ])
    manager = SkillManager.load(path)
    assert [s.name for s in manager.skills] == ["play_music", "navigate"]

    context = manager.generate_context("Play my liked songs")
    assert context.startswith("Skill: play_music")
    assert "Target app: Spotify" in context
    assert "1. open Spotify" in context
    assert not is_no_match(context)


def test_no_match_sentinel():
    manager = SkillManager([Skill("navigate", ["directions"])])
    context = manager.generate_context("what is the battery level?")
    assert context == NO_SKILL_MATCH
    assert is_no_match(context)
    assert is_no_match("")
    assert is_no_match(None)


def test_missing_or_corrupt_file_gives_empty_catalogue(tmp_path):
    assert SkillManager.load(tmp_path / "absent.json").skills == []
    bad = tmp_path / "bad.json"
    bad.write_text("{oops")
    assert SkillManager.load(bad).skills == []
    assert SkillManager.load(None).generate_context("anything") == NO_SKILL_MATCH
