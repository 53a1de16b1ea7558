"""Alert decision engine and notification cooldowns."""

from sentinel.alerts.cooldown import CooldownTracker
from sentinel.alerts.engine import (
    AlertEngine,
    GateInputs,
    Thresholds,
    evaluate_gate,
    select_thresholds,
)

__all__ = [
    "AlertEngine",
    "CooldownTracker",
    "GateInputs",
    "Thresholds",
    "evaluate_gate",
    "select_thresholds",
]
