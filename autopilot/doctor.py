#!/usr/bin/env python3
"""Read-only environment checks for autopilot.

Reports whether the pieces a run needs are in place:
1) adb on PATH and at least one device in `device` state
2) an API key for the configured model provider
3) the optional skill catalogue
"""

import json
import os
import shutil
import subprocess
import sys
from pathlib import Path

from autopilot.config import AgentConfig

_PROVIDER_KEYS = {"anthropic": "ANTHROPIC_API_KEY", "openai": "OPENAI_API_KEY"}


def _run(cmd: list[str], timeout: int = 10) -> dict:
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        return {
            "ok": proc.returncode == 0,
            "returncode": proc.returncode,
            "stdout": (proc.stdout or "").strip(),
            "stderr": (proc.stderr or "").strip(),
        }
    except (OSError, subprocess.TimeoutExpired) as exc:
        return {"ok": False, "error": str(exc), "returncode": -1, "stdout": "", "stderr": ""}


def _check_adb_devices() -> dict:
    adb = shutil.which("adb")
    if not adb:
        return {"ok": False, "error": "adb not found on PATH", "devices": []}
    res = _run([adb, "devices"])
    devices = []
    for line in res.get("stdout", "").splitlines()[1:]:
        parts = line.split()
        if len(parts) >= 2 and parts[1] == "device":
            devices.append(parts[0])
    return {"ok": bool(res.get("ok")) and bool(devices), "adb": adb, "devices": devices}


def _check_keys(config: AgentConfig) -> dict:
    needed = _PROVIDER_KEYS[config.provider]
    return {
        "provider": config.provider,
        "model": config.model,
        "required": needed,
        "ok": bool(os.getenv(needed)),
        "present": {k: bool(os.getenv(k)) for k in _PROVIDER_KEYS.values()},
    }


def _check_skills(config: AgentConfig) -> dict:
    if not config.skills_path:
        return {"ok": True, "path": "", "note": "no skill catalogue configured"}
    path = Path(config.skills_path)
    return {"ok": path.exists(), "path": str(path)}


def collect_checks(config: AgentConfig | None = None) -> dict:
    config = config or AgentConfig.from_env()
    checks: dict = {
        "python": {"executable": sys.executable, "version": sys.version.split()[0]},
        "adb": _check_adb_devices(),
        "model": _check_keys(config),
        "skills": _check_skills(config),
    }

    problems: list[str] = []
    if not checks["adb"]["ok"]:
        problems.append(checks["adb"].get("error") or "no device in 'device' state (check `adb devices`)")
    if not checks["model"]["ok"]:
        problems.append(f"{checks['model']['required']} is not set")
    if not checks["skills"]["ok"]:
        problems.append(f"skill file missing: {checks['skills']['path']}")

    checks["problems"] = problems
    checks["ok"] = not problems
    return checks


def main() -> int:
    payload = collect_checks()
    print(json.dumps(payload, indent=2))
    return 0 if payload.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())
