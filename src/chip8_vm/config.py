"""MachineConfig: tunables for a Chip8VM instance."""

from dataclasses import dataclass
from typing import Optional

from .display import DEFAULT_MODE, DISPLAY_MODES
from .memory import PROGRAM_START
from .timers import TIMER_HZ


@dataclass
class MachineConfig:
    """Machine configuration.

    Attributes:
        instructions_per_second: Instruction rate used by run_realtime
        timer_hz: Delay/sound timer rate
        display_mode: One of DISPLAY_MODES
        seed: Seed for the RND instruction's byte source (None = OS entropy)
        max_cycles: Safety limit for run()
        trace_limit: Most recent trace entries kept (0 disables tracing)
        entry_point: Initial program counter
        halt_on_idle_loop: Halt when a jump targets itself (JP to own address)
    """
    instructions_per_second: float = 700.0
    timer_hz: float = TIMER_HZ
    display_mode: str = DEFAULT_MODE
    seed: Optional[int] = None
    max_cycles: int = 10000
    trace_limit: int = 1000
    entry_point: int = PROGRAM_START
    halt_on_idle_loop: bool = True

    def __post_init__(self):
        if self.instructions_per_second <= 0:
            raise ValueError("instructions_per_second must be positive")
        if self.timer_hz <= 0:
            raise ValueError("timer_hz must be positive")
        if self.display_mode not in DISPLAY_MODES:
            raise ValueError(f"Unsupported display mode: {self.display_mode}")
        if self.max_cycles < 0 or self.trace_limit < 0:
            raise ValueError("max_cycles and trace_limit must be non-negative")
