"""Skill catalogue: matches an instruction to a known shortcut procedure.

A skill file is a JSON list:

    [{"name": "play_music", "keywords": ["play", "song"], "app": "Spotify",
      "description": "...", "steps": ["open Spotify", "search the song"]}]

The matched skill becomes a one-shot advisory for the planner; it never
executes anything itself.
"""

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path

from thefuzz import fuzz

NO_SKILL_MATCH = (
    "No matching skill or available app found. "
    "Please use general GUI automation to complete the task."
)


def _log(msg: str) -> None:
    print(f"[skills] {msg}", file=sys.stderr)


@dataclass
class Skill:
    name: str
    keywords: list[str]
    app: str = ""
    description: str = ""
    steps: list[str] = field(default_factory=list)

    def score(self, instruction: str) -> int:
        text = instruction.lower()
        best = 0
        for keyword in self.keywords:
            keyword = keyword.lower().strip()
            if not keyword:
                continue
            best = max(best, 100 if keyword in text else fuzz.partial_ratio(keyword, text))
        return best

    def advisory(self) -> str:
        lines = [f"Skill: {self.name}"]
        if self.app:
            lines.append(f"Target app: {self.app}")
        if self.description:
            lines.append(f"About: {self.description}")
        if self.steps:
            lines.append("Suggested steps:")
            lines.extend(f"{i}. {step}" for i, step in enumerate(self.steps, 1))
        return "\n".join(lines)


def is_no_match(context: str | None) -> bool:
    return not context or context.strip() == NO_SKILL_MATCH


class SkillManager:
    def __init__(self, skills: list[Skill] | None = None, threshold: int = 85):
        self.skills = list(skills or [])
        self.threshold = threshold

    @classmethod
    def load(cls, path: str | Path | None, threshold: int = 85) -> "SkillManager":
        """Load a skill file; a missing or corrupt file gives an empty catalogue."""
        if not path:
            return cls([], threshold)
        path = Path(path)
        if not path.exists():
            _log(f"skill file not found: {path}")
            return cls([], threshold)
        try:
            raw = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            _log(f"could not read {path}: {exc}")
            return cls([], threshold)
        skills = []
        for row in raw if isinstance(raw, list) else []:
            if not isinstance(row, dict) or not row.get("name"):
                continue
            skills.append(Skill(
                name=str(row["name"]),
                keywords=[str(k) for k in row.get("keywords", [])],
                app=str(row.get("app", "")),
                description=str(row.get("description", "")),
                steps=[str(s) for s in row.get("steps", [])],
            ))
        _log(f"Loaded {len(skills)} skills from {path}")
        return cls(skills, threshold)

    def generate_context(self, instruction: str) -> str:
        best: Skill | None = None
        best_score = 0
        for skill in self.skills:
            score = skill.score(instruction)
            if score > best_score:
                best, best_score = skill, score
        if best is None or best_score < self.threshold:
            return NO_SKILL_MATCH
        _log(f"Matched skill '{best.name}' (score={best_score})")
        return best.advisory()
