import io

import pytest
from PIL import Image

from autopilot import adb


class FakeRun:
    """Stands in for adb._run; replies are matched on a substring of the command."""

    def __init__(self, replies=None):
        self.replies = replies or {}
        self.commands: list[list[str]] = []

    def __call__(self, cmd, binary=False, timeout=30):
        self.commands.append(cmd)
        joined = " ".join(cmd)
        for needle, reply in self.replies.items():
            if needle in joined:
                return reply
        return (b"" if binary else ""), "", 0


@pytest.fixture
def fake_run(monkeypatch):
    runner = FakeRun()
    monkeypatch.setattr(adb, "_run", runner)
    monkeypatch.setattr(adb, "_find_adb", lambda: "/usr/bin/adb")
    return runner


def _png(color):
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), color).save(buf, format="PNG")
    return buf.getvalue()


def test_find_adb_caches_a_miss(monkeypatch):
    calls = []
    monkeypatch.setattr(adb, "_adb_path", None)
    monkeypatch.setattr(adb.shutil, "which", lambda name: calls.append(name))

    assert adb._find_adb() is None
    assert adb._find_adb() is None
    assert calls == ["adb"]


def test_screen_size_prefers_override(fake_run):
    fake_run.replies["wm size"] = ("Physical size: 1080x2400\nOverride size: 720x1600\n", "", 0)
    assert adb.AdbController().get_screen_size() == (720, 1600)

    fake_run.replies["wm size"] = ("Physical size: 1440x3200\n", "", 0)
    assert adb.AdbController().get_screen_size() == (1440, 3200)

    fake_run.replies["wm size"] = ("", "error: no devices", 1)
    assert adb.AdbController().get_screen_size() == adb.DEFAULT_SIZE


def test_serial_is_passed_through(fake_run):
    assert adb.AdbController("emulator-5554").tap(10, 20) is True
    assert fake_run.commands[-1] == ["/usr/bin/adb", "-s", "emulator-5554", "shell", "input", "tap", "10", "20"]


def test_screenshot_with_fallback_reports_secure_window(fake_run):
    fake_run.replies["screencap"] = (_png("black"), "", 0)
    shot = adb.AdbController().screenshot_with_fallback()
    assert shot.is_sensitive is True
    assert shot.is_fallback is True


def test_screenshot_with_fallback_normal_and_failed(fake_run):
    fake_run.replies["screencap"] = (_png("white"), "", 0)
    shot = adb.AdbController().screenshot_with_fallback()
    assert (shot.is_fallback, shot.is_sensitive) == (False, False)

    fake_run.replies["screencap"] = (b"", "device offline", 1)
    fake_run.replies["wm size"] = ("Physical size: 100x200\n", "", 0)
    shot = adb.AdbController().screenshot_with_fallback()
    assert shot.is_fallback is True
    assert shot.is_sensitive is False
    assert shot.bitmap.size == (100, 200)


def test_type_splits_lines_with_enter(fake_run):
    assert adb.AdbController().type("hi there\nbye") is True
    sent = [cmd[2:] for cmd in fake_run.commands]
    assert sent == [
        ["input", "text", "hi%sthere"],
        ["input", "keyevent", "KEYCODE_ENTER"],
        ["input", "text", "bye"],
    ]


def test_encode_text_escapes_shell_characters():
    assert adb.encode_text("a&b (c)") == "a\\&b%s\\(c\\)"


def test_failed_command_returns_false(fake_run):
    fake_run.replies["monkey"] = ("", "No activities found", 252)
    assert adb.AdbController().open_app("com.missing") is False


def test_list_packages(fake_run):
    fake_run.replies["packages -3"] = ("package:com.spotify.music\npackage:com.google.android.apps.maps\n", "", 0)
    assert adb.AdbController().list_packages(system=False) == ["com.spotify.music", "com.google.android.apps.maps"]
