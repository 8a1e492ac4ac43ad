#!/usr/bin/env python3
"""autopilot - CLI for running natural-language instructions on an Android device.

Usage:
    python main.py "open Spotify and play my liked songs"
    python main.py "what is the battery level?" --max-steps 10 --notetaker
    python main.py --list-runs
    python main.py --replay run_20260101T000000Z_ab12cd34
    python main.py --doctor
"""

import argparse
import asyncio
import json
import sys

from autopilot.config import AgentConfig, load_env

load_env()

from autopilot import doctor, run_state
from autopilot.adb import AdbController
from autopilot.agent import MobileAgent
from autopilot.apps import AppScanner
from autopilot.overlay import ConsoleOverlay
from autopilot.skills import SkillManager
from autopilot.vlm import build_client


def log(msg: str) -> None:
    print(f"[main] {msg}", file=sys.stderr)


def build_agent(config: AgentConfig) -> MobileAgent:
    controller = AdbController(config.adb_serial or None)
    return MobileAgent(
        vlm_client=build_client(config),
        controller=controller,
        overlay=ConsoleOverlay(),
        app_scanner=AppScanner(controller),
        skill_manager=SkillManager.load(config.skills_path or None),
        config=config,
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="Drive an Android device toward a goal with a vision model")
    parser.add_argument("instruction", nargs="?", help="Natural-language instruction to execute")
    parser.add_argument("--max-steps", type=int, default=25, help="Step budget (default: 25)")
    parser.add_argument("--notetaker", action="store_true", help="Record durable notes after successful steps")
    parser.add_argument("--serial", help="adb device serial (default: the only attached device)")
    parser.add_argument("--provider", choices=["anthropic", "openai"], help="Vision model provider")
    parser.add_argument("--model", help="Model name override")
    parser.add_argument("--skills", help="Path to a JSON skill catalogue")
    parser.add_argument("--no-record", action="store_true", help="Do not write a run journal")
    parser.add_argument("--list-runs", action="store_true", help="List recent runs and exit")
    parser.add_argument("--replay", metavar="RUN_ID", help="Print a recorded run and exit")
    parser.add_argument("--doctor", action="store_true", help="Check the environment and exit")
    args = parser.parse_args()

    if args.doctor:
        return doctor.main()

    config = AgentConfig.from_env(
        provider=args.provider,
        model=args.model,
        adb_serial=args.serial,
        skills_path=args.skills,
        record_runs=False if args.no_record else None,
    )

    if args.list_runs:
        print(json.dumps(run_state.list_runs(root=config.runs_root or None), indent=2))
        return 0
    if args.replay:
        print(json.dumps(run_state.replay_run(args.replay, root=config.runs_root or None), indent=2))
        return 0

    if not args.instruction:
        parser.print_help()
        return 1

    agent = build_agent(config)
    agent.on_stop_requested = lambda: log("Stop requested")
    try:
        # Ctrl-C cancels the run task; the agent cleans up before unwinding.
        result = asyncio.run(agent.run_instruction(args.instruction, args.max_steps, args.notetaker))
    except KeyboardInterrupt:
        log("Interrupted")
        return 1

    status = "SUCCESS" if result.success else "FAILED"
    print(f"\n{'=' * 60}", file=sys.stderr)
    print(f"AGENT {status} after {agent.state.current_step} steps", file=sys.stderr)
    print(f"Message: {result.message}", file=sys.stderr)
    if result.answer:
        print(result.answer)
    print(f"{'=' * 60}", file=sys.stderr)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
