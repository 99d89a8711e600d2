"""Chip8State: Immutable register file for the CHIP-8 VM.

State Components:
    - V registers: V0-VF (16 general-purpose 8-bit registers, VF doubles
      as the carry/borrow/collision flag)
    - I: 16-bit address register (low 12 bits meaningful)
    - PC: Program counter (next instruction to fetch, starts at 0x200)
    - SP: 8-bit stack pointer into a 16-entry call stack
    - Delay / sound timers: 8-bit countdown registers
    - Mode: RUNNING, AWAITING_KEY or HALTED
    - Cycle count: Total executed instructions

All state mutations return new state objects. A handler therefore builds its
complete result before the machine commits it, and a handler that raises
leaves the committed state untouched.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Tuple

from .memory import PROGRAM_START


NUM_REGISTERS = 16
STACK_DEPTH = 16
FLAG_REGISTER = 0xF


class MachineMode(Enum):
    RUNNING = "RUNNING"
    AWAITING_KEY = "AWAITING_KEY"
    HALTED = "HALTED"


def _zeros(count: int) -> Tuple[int, ...]:
    return (0,) * count


@dataclass(frozen=True)
class Chip8State:
    """Immutable CHIP-8 register file.

    Attributes:
        v: Sixteen 8-bit general registers (V0-VF)
        i: Address register
        pc: Program counter
        sp: Stack pointer (wraps modulo 16)
        stack: Sixteen saved return addresses
        delay_timer: Delay timer register
        sound_timer: Sound timer register
        mode: Current machine mode
        key_register: Target register of a pending key wait
        cycle_count: Number of executed instructions
    """
    v: Tuple[int, ...] = field(default_factory=lambda: _zeros(NUM_REGISTERS))
    i: int = 0
    pc: int = PROGRAM_START
    sp: int = 0
    stack: Tuple[int, ...] = field(default_factory=lambda: _zeros(STACK_DEPTH))
    delay_timer: int = 0
    sound_timer: int = 0
    mode: MachineMode = MachineMode.RUNNING
    key_register: Optional[int] = None
    cycle_count: int = 0

    @property
    def halted(self) -> bool:
        return self.mode is MachineMode.HALTED

    @property
    def awaiting_key(self) -> bool:
        return self.mode is MachineMode.AWAITING_KEY

    @property
    def flag(self) -> int:
        return self.v[FLAG_REGISTER]

    def snapshot(self) -> dict:
        """Create a plain-dict snapshot of the register file for tracing."""
        return {
            "v": list(self.v),
            "i": self.i,
            "pc": self.pc,
            "sp": self.sp,
            "stack": list(self.stack),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "mode": self.mode.value,
            "cycle_count": self.cycle_count,
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Exactly 16 V registers, each 8-bit
            - Exactly 16 stack frames, each 16-bit
            - I, PC 16-bit; SP, timers 8-bit
            - key_register set exactly while awaiting a key

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.v) != NUM_REGISTERS or len(self.stack) != STACK_DEPTH:
            return False
        if any(not 0 <= value <= 0xFF for value in self.v):
            return False
        if any(not 0 <= frame <= 0xFFFF for frame in self.stack):
            return False
        if not 0 <= self.i <= 0xFFFF or not 0 <= self.pc <= 0xFFFF:
            return False
        for value in (self.sp, self.delay_timer, self.sound_timer):
            if not 0 <= value <= 0xFF:
                return False
        if self.awaiting_key != (self.key_register is not None):
            return False
        return self.cycle_count >= 0

    # --- Registers ---

    @staticmethod
    def _check_index(x: int) -> None:
        if not 0 <= x < NUM_REGISTERS:
            raise IndexError(f"Invalid register: V{x}")

    def get_register(self, x: int) -> int:
        """Get value of register Vx.

        Raises:
            IndexError: If x is not in 0..15
        """
        self._check_index(x)
        return self.v[x]

    def set_register(self, x: int, value: int) -> "Chip8State":
        """Create new state with Vx = value (truncated to 8 bits)."""
        self._check_index(x)
        registers = list(self.v)
        registers[x] = value & 0xFF
        return replace(self, v=tuple(registers))

    def set_registers(self, values: Dict[int, int]) -> "Chip8State":
        """Create new state with several registers updated in order.

        Later keys win, which lets arithmetic ops write Vx first and VF last.
        """
        registers = list(self.v)
        for x, value in values.items():
            self._check_index(x)
            registers[x] = value & 0xFF
        return replace(self, v=tuple(registers))

    def set_i(self, value: int) -> "Chip8State":
        return replace(self, i=value & 0xFFFF)

    # --- Program counter ---

    def increment_pc(self, count: int = 1) -> "Chip8State":
        """Create new state with PC advanced by count instructions."""
        return replace(self, pc=(self.pc + 2 * count) & 0xFFFF)

    def set_pc(self, new_pc: int) -> "Chip8State":
        return replace(self, pc=new_pc & 0xFFFF)

    # --- Call stack ---

    def push_frame(self, return_addr: int) -> "Chip8State":
        """Save a return address.

        SP is advanced first and wraps modulo 16, so the 17th nested call
        overwrites the oldest saved frame.
        """
        sp = (self.sp + 1) % STACK_DEPTH
        frames = list(self.stack)
        frames[sp] = return_addr & 0xFFFF
        return replace(self, sp=sp, stack=tuple(frames))

    def pop_frame(self) -> Tuple[int, "Chip8State"]:
        """Return the top saved address and the state with SP retreated."""
        addr = self.stack[self.sp]
        return addr, replace(self, sp=(self.sp - 1) % STACK_DEPTH)

    # --- Timers ---

    def set_delay_timer(self, value: int) -> "Chip8State":
        return replace(self, delay_timer=value & 0xFF)

    def set_sound_timer(self, value: int) -> "Chip8State":
        return replace(self, sound_timer=value & 0xFF)

    def tick_timers(self) -> "Chip8State":
        """Decrement both timers once, saturating at zero."""
        return replace(
            self,
            delay_timer=max(0, self.delay_timer - 1),
            sound_timer=max(0, self.sound_timer - 1),
        )

    # --- Mode ---

    def await_key(self, x: int) -> "Chip8State":
        self._check_index(x)
        return replace(self, mode=MachineMode.AWAITING_KEY, key_register=x)

    def resume(self) -> "Chip8State":
        return replace(self, mode=MachineMode.RUNNING, key_register=None)

    def set_halted(self, halted: bool = True) -> "Chip8State":
        mode = MachineMode.HALTED if halted else MachineMode.RUNNING
        return replace(self, mode=mode, key_register=None)

    def increment_cycle(self) -> "Chip8State":
        return replace(self, cycle_count=self.cycle_count + 1)

    def dump_registers(self) -> Dict[str, int]:
        """Get all V registers keyed by name (V0..VF)."""
        return {f"V{x:X}": value for x, value in enumerate(self.v)}

    def __str__(self) -> str:
        """Human-readable state representation."""
        regs = " ".join(f"V{x:X}={value:02X}" for x, value in enumerate(self.v))
        return (f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.i:03X} "
                f"SP={self.sp:X} DT={self.delay_timer} ST={self.sound_timer} "
                f"{regs} {self.mode.value}")


def create_initial_state(entry_point: int = PROGRAM_START) -> Chip8State:
    """Create the power-on register file: everything zeroed, PC at entry_point."""
    return Chip8State(pc=entry_point)
