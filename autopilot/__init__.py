"""autopilot - drive a phone screen toward a natural-language goal.

The loop captures the screen, asks a vision model for the next step
(planner / actor / critic / note-taker), executes it on the device and
repeats until the goal is reached or a stop condition fires.
"""

from autopilot.agent import AgentResult, AgentState, MobileAgent, RunStatus
from autopilot.config import AgentConfig

__all__ = ["AgentConfig", "AgentResult", "AgentState", "MobileAgent", "RunStatus"]
