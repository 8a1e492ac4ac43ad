"""adb.py - Android device controller over the adb CLI.

Every primitive returns a bool (or a fallback value) instead of raising,
mirroring how the loop treats device hiccups as a failed step.
"""

import io
import re
import shutil
import subprocess
import sys
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

DEFAULT_SIZE = (1080, 2400)

_SIZE_RE = re.compile(r"(Physical|Override) size:\s*(\d+)x(\d+)")

KEYCODES = {
    "back": "KEYCODE_BACK",
    "home": "KEYCODE_HOME",
    "enter": "KEYCODE_ENTER",
}

_adb_path: str | None = None


def _log(msg: str) -> None:
    print(f"[adb] {msg}", file=sys.stderr)


def _find_adb() -> str | None:
    """Locate adb on PATH (cached, including a miss)."""
    global _adb_path
    if _adb_path is not None:
        return _adb_path or None
    found = shutil.which("adb")
    _adb_path = found or ""
    if found:
        _log(f"adb found on PATH: {found}")
    else:
        _log("adb not found on PATH")
    return found


def _run(cmd: list[str], binary: bool = False, timeout: int = 30) -> tuple:
    """Run a command and return (stdout, stderr, returncode)."""
    _log(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=not binary, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as exc:
        _log(f"command failed: {exc}")
        return (b"" if binary else ""), str(exc), -1
    stderr = result.stderr.decode(errors="replace") if binary else result.stderr
    if result.returncode != 0:
        _log(f"stderr: {stderr.strip()}")
    return result.stdout, stderr, result.returncode


def black_placeholder(width: int, height: int) -> Image.Image:
    return Image.new("RGB", (max(width, 1), max(height, 1)), (0, 0, 0))


def is_all_black(image: Image.Image) -> bool:
    extrema = image.convert("L").getextrema()
    return extrema[1] == 0


def encode_text(text: str) -> str:
    """Escape text for `adb shell input text`."""
    escaped = re.sub(r"([\\\"'`$&|;<>()*~#?!\[\]{}])", r"\\\1", text)
    return escaped.replace(" ", "%s")


@dataclass(frozen=True)
class ScreenshotResult:
    bitmap: Image.Image
    is_fallback: bool = False
    is_sensitive: bool = False


class AdbController:
    """Device primitives for one Android device (serial=None: the only one attached)."""

    def __init__(self, serial: str | None = None):
        self.serial = serial or None

    def _adb(self, *args: str) -> list[str]:
        cmd = [_find_adb() or "adb"]
        if self.serial:
            cmd += ["-s", self.serial]
        return cmd + list(args)

    def _shell(self, *args: str) -> bool:
        _, _, rc = _run(self._adb("shell", *args))
        return rc == 0

    def is_available(self) -> bool:
        return _find_adb() is not None

    def get_screen_size(self) -> tuple[int, int]:
        stdout, _, rc = _run(self._adb("shell", "wm", "size"))
        if rc != 0:
            _log(f"wm size failed, assuming {DEFAULT_SIZE[0]}x{DEFAULT_SIZE[1]}")
            return DEFAULT_SIZE
        sizes = {kind: (int(w), int(h)) for kind, w, h in _SIZE_RE.findall(stdout)}
        return sizes.get("Override") or sizes.get("Physical") or DEFAULT_SIZE

    def screenshot(self) -> Image.Image | None:
        stdout, _, rc = _run(self._adb("exec-out", "screencap", "-p"), binary=True)
        if rc != 0 or not stdout:
            return None
        try:
            image = Image.open(io.BytesIO(stdout))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            _log(f"screencap decode failed: {exc}")
            return None
        return image.convert("RGB")

    def screenshot_with_fallback(self) -> ScreenshotResult:
        """Capture the screen; never fails.

        A secure window (FLAG_SECURE) comes back fully black and is reported
        as sensitive. A failed capture yields a black placeholder.
        """
        image = self.screenshot()
        if image is None:
            width, height = self.get_screen_size()
            return ScreenshotResult(black_placeholder(width, height), is_fallback=True)
        if is_all_black(image):
            return ScreenshotResult(image, is_fallback=True, is_sensitive=True)
        return ScreenshotResult(image)

    def tap(self, x: int, y: int) -> bool:
        return self._shell("input", "tap", str(x), str(y))

    def double_tap(self, x: int, y: int) -> bool:
        return self.tap(x, y) and self.tap(x, y)

    def long_press(self, x: int, y: int, duration_ms: int = 1000) -> bool:
        return self._shell("input", "swipe", str(x), str(y), str(x), str(y), str(duration_ms))

    def swipe(self, x1: int, y1: int, x2: int, y2: int, duration_ms: int = 500) -> bool:
        return self._shell("input", "swipe", str(x1), str(y1), str(x2), str(y2), str(duration_ms))

    def type(self, text: str) -> bool:
        ok = True
        # input text cannot carry newlines; send ENTER between lines.
        for i, line in enumerate(text.split("\n")):
            if i:
                ok = self.enter() and ok
            if line:
                ok = self._shell("input", "text", encode_text(line)) and ok
        return ok

    def back(self) -> bool:
        return self._shell("input", "keyevent", KEYCODES["back"])

    def home(self) -> bool:
        return self._shell("input", "keyevent", KEYCODES["home"])

    def enter(self) -> bool:
        return self._shell("input", "keyevent", KEYCODES["enter"])

    def open_app(self, package: str) -> bool:
        ok = self._shell("monkey", "-p", package, "-c", "android.intent.category.LAUNCHER", "1")
        if ok:
            _log(f"Launched {package}")
        else:
            _log(f"Failed to launch {package}")
        return ok

    def list_packages(self, system: bool) -> list[str]:
        stdout, _, rc = _run(self._adb("shell", "pm", "list", "packages", "-s" if system else "-3"))
        if rc != 0:
            return []
        return [
            line.split(":", 1)[1].strip()
            for line in stdout.splitlines()
            if line.startswith("package:")
        ]
