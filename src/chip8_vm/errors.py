"""Error taxonomy for the CHIP-8 VM.

Every fault raised by the machine derives from Chip8Error so a driving loop
can decide, in one place, whether to halt the machine or abort the process.
None of these errors is retried: the interpreter is deterministic and the
same faulty state reproduces the same fault.
"""

from typing import Optional


class Chip8Error(Exception):
    """Base class for all VM faults."""


class OutOfBoundsError(Chip8Error):
    """Memory access outside the legal window for the access kind.

    Attributes:
        addr: Offending address
        kind: "read" or "write"
    """

    def __init__(self, addr: int, kind: str):
        self.addr = addr
        self.kind = kind
        super().__init__(f"Invalid memory {kind} at address 0x{addr:X}")


class UnknownOpcodeError(Chip8Error):
    """Opcode matching no defined handler.

    Attributes:
        opcode: Raw 16-bit instruction word
        pc: Address the word was fetched from (if known)
    """

    def __init__(self, opcode: int, pc: Optional[int] = None):
        self.opcode = opcode
        self.pc = pc
        where = f" at 0x{pc:03X}" if pc is not None else ""
        super().__init__(f"Unknown opcode: 0x{opcode:04X}{where}")


class ProgramTooLargeError(Chip8Error):
    """Program image does not fit into the program region."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Program image is {size} bytes, limit is {limit}")


class MachineHaltedError(Chip8Error):
    """Step requested on a halted machine."""


class AssemblerError(Chip8Error):
    """Assembly source could not be translated.

    Attributes:
        line: 1-based source line number
    """

    def __init__(self, line: int, message: str):
        self.line = line
        super().__init__(f"line {line}: {message}")
