"""Runtime configuration for the autopilot loop, loaded from the environment."""

import os
from dataclasses import dataclass, fields
from pathlib import Path

from dotenv import load_dotenv

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_OPENAI_MODEL = "gpt-4o"

# env var -> (field name, parser)
_ENV_FIELDS: dict[str, tuple[str, type]] = {
    "AUTOPILOT_PROVIDER": ("provider", str),
    "AUTOPILOT_MODEL": ("model", str),
    "AUTOPILOT_MAX_TOKENS": ("max_tokens", int),
    "AUTOPILOT_MODEL_RETRIES": ("model_retries", int),
    "AUTOPILOT_ERR_THRESH": ("err_to_manager_thresh", int),
    "AUTOPILOT_MAX_APPS": ("max_installed_apps", int),
    "AUTOPILOT_FIRST_SETTLE": ("first_settle_delay", float),
    "AUTOPILOT_SETTLE": ("settle_delay", float),
    "AUTOPILOT_MAX_IMAGE_DIM": ("max_image_dim", int),
    "AUTOPILOT_RUNS_ROOT": ("runs_root", str),
    "AUTOPILOT_SKILLS": ("skills_path", str),
    "AUTOPILOT_ADB_SERIAL": ("adb_serial", str),
    "AUTOPILOT_HOST_PACKAGE": ("host_package", str),
}


def load_env() -> None:
    """Load the project .env, then ~/.env (existing variables win)."""
    load_dotenv(_PROJECT_ROOT / ".env")
    load_dotenv(Path.home() / ".env")


@dataclass
class AgentConfig:
    """Tunables for one agent instance."""

    provider: str = "anthropic"
    model: str = ""
    max_tokens: int = 2048
    model_retries: int = 3
    err_to_manager_thresh: int = 3
    max_installed_apps: int = 50
    first_settle_delay: float = 5.0
    settle_delay: float = 2.0
    overlay_hide_delay: float = 0.1
    finish_delay: float = 1.5
    sensitive_stop_delay: float = 2.0
    max_image_dim: int = 1600
    record_runs: bool = True
    runs_root: str = ""
    skills_path: str = ""
    adb_serial: str = ""
    host_package: str = ""

    def __post_init__(self) -> None:
        if self.provider not in ("anthropic", "openai"):
            raise ValueError(f"unknown provider '{self.provider}' (expected anthropic or openai)")
        if not self.model:
            self.model = DEFAULT_OPENAI_MODEL if self.provider == "openai" else DEFAULT_ANTHROPIC_MODEL
        if self.err_to_manager_thresh < 1:
            raise ValueError("err_to_manager_thresh must be >= 1")

    @classmethod
    def for_tests(cls, **overrides) -> "AgentConfig":
        """Zero-delay config with the run journal disabled."""
        values = {
            "first_settle_delay": 0.0,
            "settle_delay": 0.0,
            "overlay_hide_delay": 0.0,
            "finish_delay": 0.0,
            "sensitive_stop_delay": 0.0,
            "record_runs": False,
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_env(cls, **overrides) -> "AgentConfig":
        """Build a config from AUTOPILOT_* variables; keyword overrides win."""
        load_env()
        known = {f.name for f in fields(cls)}
        values: dict = {}
        for var, (name, parser) in _ENV_FIELDS.items():
            raw = os.getenv(var)
            if raw is None or raw == "":
                continue
            try:
                values[name] = parser(raw)
            except ValueError as exc:
                raise ValueError(f"{var}: invalid value {raw!r}") from exc
        if os.getenv("AUTOPILOT_RECORD_RUNS", "").lower() in ("0", "false", "no"):
            values["record_runs"] = False
        values.update({k: v for k, v in overrides.items() if k in known and v is not None})
        return cls(**values)
