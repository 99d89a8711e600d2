"""CHIP-8 VM: Interpreter for the CHIP-8 virtual machine.

The machine has 4 KiB of memory, sixteen 8-bit registers, a 16-level call
stack, two 60 Hz countdown timers, a monochrome display and a 16-key
hexadecimal keypad. Programs are raw big-endian instruction images loaded
at 0x200, or assembly source translated by the bundled assembler.

Architecture:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE
               |         |        |        |           |
           [PC-based] [fields]  [Op]   [Frozen]   [Immutable]
                                      handlers    Audit Trail

Modules:
    memory: Bounds-checked 4 KiB memory with the font preloaded
    state: Chip8State dataclass for immutable register-file management
    decode: Opcode decoder and disassembler
    registry: Frozen handler table, one handler per operation key
    display: FrameBuffer display surface
    keypad: Hexadecimal keypad
    timers: Delay/sound timers and the tone output
    assembler: Assembly source to program image
    cpu: Main Chip8VM orchestrator
"""

__version__ = "0.1.0"
__author__ = "CHIP-8 VM Project"

from .errors import (
    AssemblerError,
    Chip8Error,
    MachineHaltedError,
    OutOfBoundsError,
    ProgramTooLargeError,
    UnknownOpcodeError,
)
from .memory import Memory
from .state import Chip8State, MachineMode
from .decode import DecodeResult, Op, decode, disassemble
from .registry import Chip8Registry
from .display import FrameBuffer
from .keypad import Keypad
from .timers import TimerDriver, ToneOutput
from .config import MachineConfig
from .assembler import assemble
from .cpu import Chip8VM, ExecutionTraceEntry

__all__ = [
    "Chip8VM",
    "Chip8State",
    "Chip8Registry",
    "MachineConfig",
    "MachineMode",
    "Memory",
    "FrameBuffer",
    "Keypad",
    "TimerDriver",
    "ToneOutput",
    "ExecutionTraceEntry",
    "DecodeResult",
    "Op",
    "decode",
    "disassemble",
    "assemble",
    "Chip8Error",
    "OutOfBoundsError",
    "UnknownOpcodeError",
    "ProgramTooLargeError",
    "MachineHaltedError",
    "AssemblerError",
]
