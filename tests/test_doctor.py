from autopilot import doctor
from autopilot.config import AgentConfig


def test_doctor_collect_checks_contains_expected_keys(monkeypatch):
    # Avoid actually running subprocesses in unit test.
    monkeypatch.setattr(doctor, "_check_adb_devices", lambda: {"ok": True, "devices": ["emulator-5554"]})
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")

    payload = doctor.collect_checks(AgentConfig(provider="anthropic"))

    assert payload["ok"] is True
    assert payload["problems"] == []
    assert "python" in payload
    assert payload["model"]["required"] == "ANTHROPIC_API_KEY"
    assert payload["skills"]["ok"] is True


def test_doctor_reports_problems(monkeypatch, tmp_path):
    monkeypatch.setattr(doctor, "_check_adb_devices", lambda: {"ok": False, "error": "adb not found on PATH"})
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    config = AgentConfig(provider="openai", skills_path=str(tmp_path / "missing.json"))
    payload = doctor.collect_checks(config)

    assert payload["ok"] is False
    assert "adb not found on PATH" in payload["problems"]
    assert "OPENAI_API_KEY is not set" in payload["problems"]
    assert any(p.startswith("skill file missing") for p in payload["problems"])


def test_check_adb_devices_parses_device_list(monkeypatch):
    monkeypatch.setattr(doctor.shutil, "which", lambda name: "/usr/bin/adb")
    monkeypatch.setattr(doctor, "_run", lambda cmd: {
        "ok": True,
        "stdout": "List of devices attached\nemulator-5554\tdevice\nR58M\tunauthorized",
    })

    result = doctor._check_adb_devices()

    assert result["ok"] is True
    assert result["devices"] == ["emulator-5554"]


def test_check_adb_devices_without_adb(monkeypatch):
    monkeypatch.setattr(doctor.shutil, "which", lambda name: None)
    assert doctor._check_adb_devices() == {"ok": False, "error": "adb not found on PATH", "devices": []}
