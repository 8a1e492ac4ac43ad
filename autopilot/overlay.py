"""Status surface shown to the user while a run is in progress.

Human pauses (confirm / take-over) are asyncio futures resolved by an
external callback: a UI button, a stdin reader, or a test.
"""

import asyncio
import sys
import threading
from typing import Callable


def _log(msg: str) -> None:
    print(f"[overlay] {msg}", file=sys.stderr)


class Overlay:
    """Headless overlay: tracks state and exposes the pause futures."""

    def __init__(self) -> None:
        self.message = ""
        self.showing = False
        self.visible = True
        self.on_stop: Callable[[], None] | None = None
        self._confirm: asyncio.Future | None = None
        self._take_over: asyncio.Future | None = None

    def show(self, message: str, on_stop: Callable[[], None] | None = None) -> None:
        self.message = message
        self.showing = True
        self.visible = True
        self.on_stop = on_stop

    def update(self, message: str) -> None:
        self.message = message

    def hide(self) -> None:
        # Dismissing the overlay answers any open pause negatively.
        self.showing = False
        self.resolve_confirm(False)
        self.resolve_take_over()

    def set_visible(self, visible: bool) -> None:
        self.visible = visible

    def press_stop(self) -> None:
        if self.on_stop is not None:
            self.on_stop()

    @property
    def pending_confirm(self) -> bool:
        return self._confirm is not None and not self._confirm.done()

    @property
    def pending_take_over(self) -> bool:
        return self._take_over is not None and not self._take_over.done()

    async def show_confirm(self, message: str) -> bool:
        """Wait for resolve_confirm(); True means the user approved."""
        self._confirm = asyncio.get_running_loop().create_future()
        self._prompt_confirm(message)
        try:
            return bool(await self._confirm)
        finally:
            self._confirm = None

    async def show_take_over(self, message: str) -> None:
        """Wait until the user finished the manual step (resolve_take_over())."""
        self._take_over = asyncio.get_running_loop().create_future()
        self._prompt_take_over(message)
        try:
            await self._take_over
        finally:
            self._take_over = None

    def resolve_confirm(self, confirmed: bool) -> None:
        if self._confirm is not None and not self._confirm.done():
            self._confirm.set_result(confirmed)

    def resolve_take_over(self) -> None:
        if self._take_over is not None and not self._take_over.done():
            self._take_over.set_result(None)

    def _prompt_confirm(self, message: str) -> None:
        pass

    def _prompt_take_over(self, message: str) -> None:
        pass


class ConsoleOverlay(Overlay):
    """Prints status to stderr and answers pauses from stdin."""

    def show(self, message: str, on_stop: Callable[[], None] | None = None) -> None:
        super().show(message, on_stop)
        _log(message)

    def update(self, message: str) -> None:
        super().update(message)
        _log(message)

    def hide(self) -> None:
        if self.showing:
            _log("hidden")
        super().hide()

    def _prompt_confirm(self, message: str) -> None:
        loop = asyncio.get_running_loop()
        self._read_line(f"{message} [y/N]: ", lambda line: loop.call_soon_threadsafe(
            self.resolve_confirm, line.strip().lower() in ("y", "yes")))

    def _prompt_take_over(self, message: str) -> None:
        loop = asyncio.get_running_loop()
        self._read_line(f"{message} (press Enter when done) ", lambda line: loop.call_soon_threadsafe(
            self.resolve_take_over))

    @staticmethod
    def _read_line(prompt: str, on_line: Callable[[str], object]) -> None:
        def reader() -> None:
            print(prompt, end="", file=sys.stderr, flush=True)
            line = sys.stdin.readline()
            try:
                on_line(line)
            except RuntimeError:
                # Loop already closed; the run is over.
                pass

        threading.Thread(target=reader, daemon=True).start()
