"""Runtime support: time sources and the decision orchestrator."""

from armsmith.runtime.clock import Clock, ManualClock, SystemClock, system_clock

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "system_clock",
]
