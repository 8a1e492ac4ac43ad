"""agent.py - The planner / actor / critic / note-taker control loop.

One call to MobileAgent.run_instruction() drives the device toward a goal:

    screenshot -> planner -> actor -> (confirm) -> execute -> screenshot
               -> critic -> (note-taker) -> next step

Every await is a suspension point. At each one the loop re-checks the
user-stop flag and lets asyncio deliver task cancellation; either unwinds
the run after hiding the overlay and returning focus to the host app.
"""

import asyncio
import sys
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from autopilot import actor, critic, notetaker, planner
from autopilot.actions import POINT_ACTIONS, Action, ActionType, map_coordinate, wait_seconds
from autopilot.config import AgentConfig
from autopilot.info_pool import (
    PENDING_OUTCOME,
    InfoPool,
    OutcomeCode,
    check_error_escalation,
    should_skip_planner,
)
from autopilot.memory import ConversationMemory
from autopilot.overlay import Overlay
from autopilot.run_state import RunJournal
from autopilot.skills import is_no_match


def _log(msg: str) -> None:
    print(f"[agent] {msg}", file=sys.stderr)


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"
    MAX_STEPS_REACHED = "max_steps_reached"


@dataclass(frozen=True)
class ExecutionStep:
    step_number: int
    timestamp: float
    action: str
    description: str
    thought: str
    outcome: str = PENDING_OUTCOME


@dataclass(frozen=True)
class AgentState:
    """Read-only snapshot for presentation layers; replaced on every change."""

    status: RunStatus = RunStatus.IDLE
    is_running: bool = False
    is_completed: bool = False
    current_step: int = 0
    instruction: str = ""
    answer: str | None = None
    execution_steps: tuple[ExecutionStep, ...] = ()
    logs: tuple[str, ...] = ()


@dataclass(frozen=True)
class AgentResult:
    success: bool
    message: str
    answer: str | None = None


class StopRequested(Exception):
    """The user pressed stop; unwinds the current run."""


class MobileAgent:
    """Owns one device and runs instructions on it, one at a time.

    Collaborators:
        vlm_client     predict(prompt, images) / predict_with_context(messages)
        controller     get_screen_size, screenshot_with_fallback, tap, double_tap,
                       long_press, swipe, type, back, home, enter, open_app
        overlay        status surface with awaitable confirm / take-over
        app_scanner    user_app_names(limit), find_package(name)
        skill_manager  generate_context(instruction)
    """

    def __init__(
        self,
        vlm_client,
        controller,
        overlay: Overlay | None = None,
        app_scanner=None,
        skill_manager=None,
        config: AgentConfig | None = None,
    ):
        self.vlm = vlm_client
        self.controller = controller
        self.overlay = overlay or Overlay()
        self.app_scanner = app_scanner
        self.skill_manager = skill_manager
        self.config = config or AgentConfig()
        self.on_stop_requested: Callable[[], None] | None = None
        self._state = AgentState()
        self._stop_requested = False
        self._stop_event: asyncio.Event | None = None
        self._journal: RunJournal | None = None
        self._info_pool: InfoPool | None = None

    # ------------------------------------------------------------------
    # Status projection
    # ------------------------------------------------------------------

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def logs(self) -> tuple[str, ...]:
        return self._state.logs

    def _update_state(self, **changes) -> None:
        self._state = replace(self._state, **changes)

    def _log(self, message: str) -> None:
        _log(message)
        self._update_state(logs=self._state.logs + (message,))

    def clear_logs(self) -> None:
        self._update_state(logs=(), execution_steps=())

    def stop(self) -> None:
        """Request a stop from outside the run (overlay button, host UI).

        Must be called on the event loop thread; pending sleeps end at once.
        """
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()
        self.overlay.hide()
        self._update_state(is_running=False)
        if self.on_stop_requested is not None:
            self.on_stop_requested()

    # ------------------------------------------------------------------
    # Journal helpers
    # ------------------------------------------------------------------

    def _event(self, kind: str, **fields) -> None:
        if self._journal is not None:
            self._journal.event(kind, **fields)

    def _count(self, metric: str) -> None:
        if self._journal is not None:
            self._journal.increment(metric)

    def _journal_step(self, step: int, action: Action, description: str, outcome: OutcomeCode, error: str) -> None:
        self._event("outcome", step=step, action=action.type.value, outcome=outcome.value, error=error)
        if self._journal is not None:
            self._journal.record_step(step, action.type.value, description, outcome.value, error)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run_instruction(
        self,
        instruction: str,
        max_steps: int = 25,
        use_notetaker: bool = False,
    ) -> AgentResult:
        self._stop_requested = False
        self._stop_event = asyncio.Event()
        self._journal = None
        if self.config.record_runs:
            self._journal = RunJournal(instruction, max_steps, use_notetaker, root=self.config.runs_root or None)
        self._log(f"Starting execution: {instruction}")

        self.overlay.show("Starting...", on_stop=self.stop)
        self._update_state(
            status=RunStatus.RUNNING,
            is_running=True,
            is_completed=False,
            current_step=0,
            instruction=instruction,
            answer=None,
        )

        try:
            info_pool = self._info_pool = await self._prepare(instruction)
            for step in range(max_steps):
                finished = await self._run_step(step, max_steps, info_pool, use_notetaker)
                if finished is not None:
                    status, result = finished
                    return await self._finish(status, result)
        except StopRequested:
            self._log("User stopped execution")
            return await self._finish(RunStatus.STOPPED, AgentResult(False, "User stopped"))
        except asyncio.CancelledError:
            self._log("Task cancelled")
            self._update_state(status=RunStatus.FAILED, is_running=False)
            self._info_pool = None
            if self._journal is not None:
                self._journal.finish(RunStatus.FAILED.value, "Task cancelled", self._state.current_step)
            await self._cleanup()
            raise

        self._log("Reached maximum step limit")
        self.overlay.update("Max steps reached")
        await asyncio.sleep(self.config.finish_delay)
        return await self._finish(RunStatus.MAX_STEPS_REACHED, AgentResult(False, "Reached maximum step limit"))

    async def _prepare(self, instruction: str) -> InfoPool:
        info_pool = InfoPool(instruction=instruction, err_to_manager_thresh=self.config.err_to_manager_thresh)
        info_pool.executor_memory = ConversationMemory.with_system_prompt(actor.system_prompt(instruction))
        self._log("Initialized conversation memory")

        if self.skill_manager is not None:
            self._log("Analyzing intent...")
            skill_context = await asyncio.to_thread(self.skill_manager.generate_context, instruction)
            await self._checkpoint()
            if not is_no_match(skill_context):
                info_pool.skill_context = skill_context
                self._log(f"Matched available skill:\n{skill_context}")
            else:
                self._log("No specific skill matched, using general GUI automation")

        if self.app_scanner is not None:
            apps = await asyncio.to_thread(self.app_scanner.user_app_names, self.config.max_installed_apps)
            await self._checkpoint()
            info_pool.installed_apps = list(apps)[: self.config.max_installed_apps]
            self._log(f"Loaded {len(info_pool.installed_apps)} apps")
        return info_pool

    # ------------------------------------------------------------------
    # One step
    # ------------------------------------------------------------------

    async def _checkpoint(self) -> None:
        await asyncio.sleep(0)
        if self._stop_requested:
            raise StopRequested()

    async def _interruptible_sleep(self, seconds: float) -> None:
        """Sleep that ends early once stop() is called; the next checkpoint raises."""
        if seconds <= 0 or self._stop_event is None:
            await asyncio.sleep(max(seconds, 0))
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _run_step(
        self, step: int, max_steps: int, info_pool: InfoPool, use_notetaker: bool
    ) -> tuple[RunStatus, AgentResult] | None:
        await self._checkpoint()
        step_number = step + 1
        self._update_state(current_step=step_number)
        self._log(f"========== Step {step_number} ==========")
        self.overlay.update(f"Step {step_number}/{max_steps}")

        width, height = await asyncio.to_thread(self.controller.get_screen_size)
        info_pool.screen_width, info_pool.screen_height = width, height

        self._log("Taking screenshot...")
        shot = await self._capture()
        await self._checkpoint()
        if shot.is_sensitive:
            self._log("Detected sensitive page (screenshot blocked), requesting manual takeover")
            confirmed = await self.overlay.show_confirm("Detected sensitive page. Continue execution?")
            await self._checkpoint()
            if not confirmed:
                self._log("User cancelled, task terminated")
                return RunStatus.STOPPED, AgentResult(False, "Sensitive page, user cancelled")
            self._log("User confirmed to continue (using placeholder)")
        elif shot.is_fallback:
            self._log("Screenshot failed, using placeholder to continue")
        screenshot = shot.bitmap

        check_error_escalation(info_pool)
        if info_pool.error_flag_plan:
            self._log(f"Last {info_pool.err_to_manager_thresh} actions failed, escalating to planner")

        if should_skip_planner(info_pool):
            self._log("Skipping planner after invalid action")
        else:
            finished = await self._plan(info_pool, screenshot)
            if finished is not None:
                return finished

        self._log("Executor deciding...")
        await self._checkpoint()
        actor_result = await self._decide(info_pool, screenshot)
        await self._checkpoint()
        if actor_result is None:
            return None

        info_pool.last_action_thought = actor_result.thought
        info_pool.last_summary = actor_result.description
        self._log(f"Thought: {actor_result.thought[:80]}")
        self._log(f"Action: {actor_result.action_str}")
        self._log(f"Description: {actor_result.description}")

        action = actor_result.action
        if action is None:
            self._log(f"Action parsing failed: {actor_result.error}")
            invalid = Action.invalid()
            info_pool.record(invalid, actor_result.description, OutcomeCode.FAILURE, "Invalid action format")
            self._count("invalid_actions")
            self._journal_step(step_number, invalid, actor_result.description, OutcomeCode.FAILURE, "Invalid action format")
            return None

        if action.type is ActionType.ANSWER:
            self._log(f"Answer: {action.text}")
            self.overlay.update(f"{(action.text or '')[:20]}...")
            await asyncio.sleep(self.config.finish_delay)
            return RunStatus.COMPLETED, AgentResult(True, f"Answer: {action.text}", answer=action.text)

        if action.requires_confirmation():
            confirm_message = action.message or "Confirm this operation?"
            self._log(f"Sensitive operation: {confirm_message}")
            confirmed = await self.overlay.show_confirm(confirm_message)
            await self._checkpoint()
            if not confirmed:
                self._log("User cancelled operation")
                summary = f"User cancelled: {actor_result.description}"
                info_pool.record(action, summary, OutcomeCode.FAILURE, "User cancelled")
                self._count("user_declines")
                self._journal_step(step_number, action, summary, OutcomeCode.FAILURE, "User cancelled")
                return None
            self._log("User confirmed, continuing execution")

        self._log(f"Executing action: {action.type.value}")
        self.overlay.update(f"{action.type.value}: {actor_result.description[:15]}...")
        await self._execute_action(action)
        info_pool.last_action = action
        info_pool.begin_step(action, actor_result.description)
        self._count("actions_executed")
        self._event("action", step=step_number, action=action.to_json(), description=actor_result.description)
        step_index = self._publish_step(step_number, action, actor_result)

        await self._interruptible_sleep(self.config.first_settle_delay if step == 0 else self.config.settle_delay)
        await self._checkpoint()

        after = await self._capture()
        if after.is_fallback:
            self._log("Post-action screenshot failed, using placeholder")
        await self._checkpoint()

        self._log("Reflector analyzing...")
        verdict = await self._reflect(info_pool, screenshot, after.bitmap)
        await self._checkpoint()
        self._log(f"Result: {verdict.outcome.value} - {verdict.error_description[:50]}")

        info_pool.complete_step(verdict.outcome, verdict.error_description)
        info_pool.progress_status = info_pool.completed_subgoal
        self._patch_step(step_index, verdict.outcome.value)
        self._journal_step(step_number, action, actor_result.description, verdict.outcome, verdict.error_description)

        if use_notetaker and verdict.outcome is OutcomeCode.SUCCESS and action.type is not ActionType.ANSWER:
            await self._take_notes(info_pool, after.bitmap)
        return None

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _capture(self):
        """Screenshot with the overlay hidden so it is not captured itself."""
        self.overlay.set_visible(False)
        try:
            await asyncio.sleep(self.config.overlay_hide_delay)
            return await asyncio.to_thread(self.controller.screenshot_with_fallback)
        finally:
            self.overlay.set_visible(True)

    async def _plan(self, info_pool: InfoPool, screenshot) -> tuple[RunStatus, AgentResult] | None:
        self._log("Manager planning...")
        await self._checkpoint()
        response = await self.vlm.predict(planner.get_prompt(info_pool), [screenshot])
        self._count("model_calls")
        await self._checkpoint()
        if not response.ok:
            # Keep the previous plan and go straight to the actor.
            self._log(f"Manager call failed: {response.error}")
            self._count("model_failures")
            return None

        result = planner.parse_response(response.text)
        info_pool.completed_subgoal = result.completed_subgoal
        info_pool.plan = result.plan
        self._log(f"Plan: {result.plan[:100]}")
        self._event("plan", plan=result.plan, completed_subgoal=result.completed_subgoal)

        if planner.is_sensitive_stop(result.plan):
            self._log("Detected sensitive page (payment/password), stopped execution")
            self.overlay.update("Sensitive page, stopped")
            await asyncio.sleep(self.config.sensitive_stop_delay)
            return RunStatus.STOPPED, AgentResult(False, "Detected sensitive page (payment/password), safely stopped")

        if planner.is_finished(result.plan):
            self._log("Task completed!")
            self.overlay.update("Complete!")
            await asyncio.sleep(self.config.finish_delay)
            return RunStatus.COMPLETED, AgentResult(True, "Task completed")
        return None

    async def _decide(self, info_pool: InfoPool, screenshot) -> actor.ActorResult | None:
        memory = info_pool.executor_memory
        memory.add_user_message(actor.get_prompt(info_pool), screenshot)
        self._log(f"Memory messages: {memory.size()}, estimated tokens: {memory.estimate_tokens()}")
        response = await self.vlm.predict_with_context(memory.to_messages())
        memory.strip_last_user_image()
        self._count("model_calls")
        if not response.ok:
            self._log(f"Executor call failed: {response.error}")
            self._count("model_failures")
            return None
        memory.add_assistant_message(response.text)
        return actor.parse_response(response.text)

    async def _reflect(self, info_pool: InfoPool, before, after) -> critic.CriticResult:
        response = await self.vlm.predict(critic.get_prompt(info_pool), [before, after])
        self._count("model_calls")
        if not response.ok:
            self._log(f"Reflector call failed: {response.error}")
            self._count("model_failures")
            return critic.call_failed()
        return critic.parse_response(response.text)

    async def _take_notes(self, info_pool: InfoPool, screenshot) -> None:
        self._log("Notetaker recording...")
        await self._checkpoint()
        response = await self.vlm.predict(notetaker.get_prompt(info_pool), [screenshot])
        self._count("model_calls")
        await self._checkpoint()
        if response.ok:
            info_pool.important_notes = notetaker.parse_response(response.text)
        else:
            self._count("model_failures")

    async def _execute_action(self, action: Action) -> None:
        # Re-query every time: the device may have rotated since the last step.
        width, height = await asyncio.to_thread(self.controller.get_screen_size)
        c = self.controller
        ok = True

        if action.type in POINT_ACTIONS:
            x = map_coordinate(action.x or 0, width)
            y = map_coordinate(action.y or 0, height)
            gesture = {
                ActionType.CLICK: c.tap,
                ActionType.DOUBLE_TAP: c.double_tap,
                ActionType.LONG_PRESS: c.long_press,
            }[action.type]
            ok = await asyncio.to_thread(gesture, x, y)
        elif action.type is ActionType.SWIPE:
            ok = await asyncio.to_thread(
                c.swipe,
                map_coordinate(action.x or 0, width),
                map_coordinate(action.y or 0, height),
                map_coordinate(action.x2 or 0, width),
                map_coordinate(action.y2 or 0, height),
            )
        elif action.type is ActionType.TYPE_TEXT:
            if action.text:
                ok = await asyncio.to_thread(c.type, action.text)
        elif action.type is ActionType.SYSTEM_BUTTON:
            button = (action.button or "").lower()
            press = {"back": c.back, "home": c.home, "enter": c.enter}.get(button)
            if press is None:
                self._log(f"Unknown system button: {action.button}")
            else:
                ok = await asyncio.to_thread(press)
        elif action.type is ActionType.OPEN_APP:
            ok = await self._open_app(action.text or "")
        elif action.type is ActionType.WAIT:
            duration = wait_seconds(action)
            self._log(f"Waiting {duration} seconds...")
            await self._interruptible_sleep(duration)
        elif action.type is ActionType.TAKE_OVER:
            message = action.message or "Please complete the operation and tap continue"
            self._log(f"Human takeover: {message}")
            await self.overlay.show_take_over(message)
            self._log("User completed, continuing execution")
        else:
            self._log(f"Unknown action type: {action.type.value}")

        if ok is False:
            self._log(f"Device rejected {action.type.value}")

    async def _open_app(self, app_name: str) -> bool:
        if not app_name:
            return False
        package = None
        if self.app_scanner is not None:
            package = await asyncio.to_thread(self.app_scanner.find_package, app_name)
        if package:
            self._log(f"Found app: {app_name} -> {package}")
        else:
            self._log(f"App not found: {app_name}, trying direct open")
        return await asyncio.to_thread(self.controller.open_app, package or app_name)

    # ------------------------------------------------------------------
    # Step log + teardown
    # ------------------------------------------------------------------

    def _publish_step(self, step_number: int, action: Action, result: actor.ActorResult) -> int:
        index = len(self._state.execution_steps)
        entry = ExecutionStep(
            step_number=step_number,
            timestamp=time.time(),
            action=action.type.value,
            description=result.description,
            thought=result.thought,
        )
        self._update_state(execution_steps=self._state.execution_steps + (entry,))
        return index

    def _patch_step(self, index: int, outcome: str) -> None:
        steps = list(self._state.execution_steps)
        if index < len(steps):
            steps[index] = replace(steps[index], outcome=outcome)
            self._update_state(execution_steps=tuple(steps))

    async def _bring_app_to_front(self) -> None:
        package = self.config.host_package
        if not package:
            return
        try:
            await asyncio.to_thread(self.controller.open_app, package)
        except Exception as exc:
            self._log(f"Failed to return to app: {exc}")

    async def _cleanup(self) -> None:
        self.overlay.hide()
        await self._bring_app_to_front()

    async def _finish(self, status: RunStatus, result: AgentResult) -> AgentResult:
        await self._cleanup()
        self._info_pool = None
        self._update_state(
            status=status,
            is_running=False,
            is_completed=status is RunStatus.COMPLETED,
            answer=result.answer,
        )
        if self._journal is not None:
            self._journal.finish(status.value, result.message, self._state.current_step, result.answer)
        return result
