"""Run journal: state.json + events.jsonl per instruction run."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_RUNS_ROOT = _PROJECT_ROOT / "_artifacts" / "runs"

METRICS = ("model_calls", "model_failures", "invalid_actions", "user_declines", "actions_executed")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _root(root: str | Path | None = None) -> Path:
    return Path(root) if root else _RUNS_ROOT


def _run_dir(run_id: str, root: str | Path | None = None) -> Path:
    return _root(root) / run_id


def new_run_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"run_{stamp}_{uuid.uuid4().hex[:8]}"


class RunJournal:
    """Append-only record of one run. Every write goes straight to disk."""

    def __init__(self, instruction: str, max_steps: int, use_notetaker: bool,
                 root: str | Path | None = None, run_id: str | None = None):
        self.root = _root(root)
        self.run_id = run_id or new_run_id()
        created_at = _now_iso()
        self.state = {
            "run_id": self.run_id,
            "instruction": instruction,
            "max_steps": max_steps,
            "use_notetaker": use_notetaker,
            "status": "running",
            "message": "",
            "answer": None,
            "steps": [],
            "created_at": created_at,
            "updated_at": created_at,
            "completed_at": "",
            "last_step": 0,
            "metrics": {name: 0 for name in METRICS},
        }
        self.save()
        self.event("run_started", timestamp=created_at)

    @property
    def run_dir(self) -> Path:
        return self.root / self.run_id

    @property
    def state_path(self) -> Path:
        return self.run_dir / "state.json"

    @property
    def events_path(self) -> Path:
        return self.run_dir / "events.jsonl"

    def save(self) -> None:
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self.state["updated_at"] = _now_iso()
        self.state_path.write_text(json.dumps(self.state, indent=2))

    def event(self, kind: str, **fields) -> None:
        self.run_dir.mkdir(parents=True, exist_ok=True)
        payload = {"type": kind, **fields}
        payload.setdefault("timestamp", _now_iso())
        with self.events_path.open("a") as f:
            f.write(json.dumps(payload, default=str) + "\n")

    def increment(self, metric: str, amount: int = 1) -> None:
        metrics = self.state["metrics"]
        metrics[metric] = int(metrics.get(metric, 0)) + amount
        self.save()

    def record_step(self, step: int, action: str, description: str, outcome: str, error: str = "") -> None:
        self.state["steps"].append({
            "step": step,
            "action": action,
            "description": description,
            "outcome": outcome,
            "error": error,
        })
        self.state["last_step"] = max(int(self.state["last_step"]), step)
        self.save()

    def finish(self, status: str, message: str, steps: int, answer: str | None = None) -> None:
        self.state.update({
            "status": status,
            "message": message,
            "answer": answer,
            "last_step": steps,
            "completed_at": _now_iso(),
        })
        self.save()
        self.event("run_finished", status=status, message=message, steps=steps)


def load_state(run_id: str, root: str | Path | None = None) -> dict | None:
    path = _run_dir(run_id, root) / "state.json"
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError:
        return None


def list_runs(limit: int = 20, root: str | Path | None = None) -> list[dict]:
    """Recent run summaries, newest first."""
    runs_root = _root(root)
    if not runs_root.exists():
        return []
    items: list[dict] = []
    for entry in runs_root.iterdir():
        state_path = entry / "state.json"
        if not entry.is_dir() or not state_path.exists():
            continue
        try:
            state = json.loads(state_path.read_text())
        except json.JSONDecodeError:
            continue
        items.append({
            "run_id": state.get("run_id", entry.name),
            "instruction": state.get("instruction", ""),
            "status": state.get("status", "unknown"),
            "last_step": state.get("last_step", 0),
            "created_at": state.get("created_at", ""),
            "message": state.get("message", ""),
        })
    items.sort(key=lambda row: row.get("created_at", ""), reverse=True)
    return items[: max(1, limit)]


def replay_run(run_id: str, root: str | Path | None = None) -> dict:
    state = load_state(run_id, root)
    if state is None:
        return {"error": f"run '{run_id}' not found"}
    events: list[dict] = []
    events_path = _run_dir(run_id, root) / "events.jsonl"
    if events_path.exists():
        for line in events_path.read_text().splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    return {"run_id": run_id, "state": state, "events": events}


def run_paths(run_id: str, root: str | Path | None = None) -> dict:
    run_dir = _run_dir(run_id, root)
    return {
        "run_dir": str(run_dir),
        "state_path": str(run_dir / "state.json"),
        "events_path": str(run_dir / "events.jsonl"),
    }
