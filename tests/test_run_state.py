import json

from autopilot import run_state


def test_journal_create_record_finish_and_load(tmp_path, monkeypatch):
    monkeypatch.setattr(run_state, "_RUNS_ROOT", tmp_path)

    journal = run_state.RunJournal("test goal", max_steps=10, use_notetaker=True, run_id="run_test")
    assert journal.state["status"] == "running"
    assert journal.state_path.exists()

    journal.event("plan", step=1, plan="1. open settings")
    journal.record_step(1, "click", "tap settings", "A")
    journal.increment("model_calls")
    journal.increment("model_calls")
    journal.finish("completed", "Task completed", 1)

    loaded = run_state.load_state("run_test")
    assert loaded is not None
    assert loaded["status"] == "completed"
    assert loaded["message"] == "Task completed"
    assert loaded["last_step"] == 1
    assert loaded["use_notetaker"] is True
    assert loaded["metrics"]["model_calls"] == 2
    assert loaded["metrics"]["user_declines"] == 0
    assert loaded["steps"] == [
        {"step": 1, "action": "click", "description": "tap settings", "outcome": "A", "error": ""}
    ]
    assert loaded["completed_at"]


def test_journal_list_and_replay(tmp_path, monkeypatch):
    monkeypatch.setattr(run_state, "_RUNS_ROOT", tmp_path)

    journal = run_state.RunJournal("replay goal", max_steps=5, use_notetaker=False, run_id="run_replay")
    journal.event("action", step=1, action='{"action": "swipe"}')
    journal.finish("stopped", "User stopped", 1)

    listed = run_state.list_runs(limit=5)
    assert listed
    assert listed[0]["run_id"] == "run_replay"
    assert listed[0]["status"] == "stopped"

    replay = run_state.replay_run("run_replay")
    assert replay["run_id"] == "run_replay"
    assert replay["state"]["message"] == "User stopped"
    event_types = [row["type"] for row in replay["events"]]
    assert event_types == ["run_started", "action", "run_finished"]

    paths = run_state.run_paths("run_replay")
    assert paths["run_dir"].endswith("run_replay")
    assert paths["state_path"].endswith("state.json")
    assert paths["events_path"].endswith("events.jsonl")


def test_replay_missing_run(tmp_path):
    assert run_state.load_state("nope", root=tmp_path) is None
    assert run_state.replay_run("nope", root=tmp_path) == {"error": "run 'nope' not found"}
    assert run_state.list_runs(root=tmp_path / "absent") == []


def test_list_runs_skips_corrupt_state(tmp_path):
    run_state.RunJournal("good", 3, False, root=tmp_path, run_id="run_good")
    bad = tmp_path / "run_bad"
    bad.mkdir()
    (bad / "state.json").write_text("{not json")

    listed = run_state.list_runs(root=tmp_path)
    assert [row["run_id"] for row in listed] == ["run_good"]


def test_replay_ignores_corrupt_event_lines(tmp_path):
    journal = run_state.RunJournal("goal", 3, False, root=tmp_path, run_id="run_x")
    with journal.events_path.open("a") as f:
        f.write("garbage\n\n")
    journal.event("outcome", step=1, outcome="B")

    events = run_state.replay_run("run_x", root=tmp_path)["events"]
    assert [e["type"] for e in events] == ["run_started", "outcome"]
    assert json.loads(journal.events_path.read_text().splitlines()[0])["type"] == "run_started"


def test_new_run_id_format():
    run_id = run_state.new_run_id()
    prefix, stamp, suffix = run_id.split("_")
    assert prefix == "run"
    assert stamp.endswith("Z")
    assert len(suffix) == 8
    assert run_id != run_state.new_run_id()
