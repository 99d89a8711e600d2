"""Memory: 4 KiB byte-addressed store for the CHIP-8 VM.

Memory map:
    0x000-0x1FF  Reserved for the interpreter. Holds the 16 hexadecimal
                 font glyphs (5 bytes each, glyph d at 5*d). Read-only for
                 guest code.
    0x200-0xFFF  Program / data space. Readable and writable.

Every access is validated against the map before the underlying array is
touched; block accesses validate the whole range first so a failing access
never leaves memory partially written.
"""

from pathlib import Path
from typing import Iterable, Union

from .errors import OutOfBoundsError, ProgramTooLargeError


MEMORY_SIZE = 0x1000
PROGRAM_START = 0x200
PROGRAM_LIMIT = MEMORY_SIZE - PROGRAM_START

FONT_START = 0x000
GLYPH_SIZE = 5

FONT = (
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
)


def font_address(digit: int) -> int:
    """Address of the 5-byte glyph for a hexadecimal digit (low nibble)."""
    return FONT_START + (digit & 0xF) * GLYPH_SIZE


class Memory:
    """Bounds-checked 4096-byte memory with a write-protected font region."""

    def __init__(self):
        self._data = bytearray(MEMORY_SIZE)
        self._data[FONT_START:FONT_START + len(FONT)] = bytes(FONT)

    # --- Bounds ---

    @staticmethod
    def _check_read(addr: int) -> None:
        if not 0 <= addr < MEMORY_SIZE:
            raise OutOfBoundsError(addr, "read")

    @staticmethod
    def _check_write(addr: int) -> None:
        if not PROGRAM_START <= addr < MEMORY_SIZE:
            raise OutOfBoundsError(addr, "write")

    # --- Core read/write ---

    def read(self, addr: int) -> int:
        """Read one byte.

        Raises:
            OutOfBoundsError: If addr is outside [0x000, 0x1000)
        """
        self._check_read(addr)
        return self._data[addr]

    def write(self, addr: int, value: int) -> None:
        """Write one byte (value is truncated to 8 bits).

        Raises:
            OutOfBoundsError: If addr is outside [0x200, 0x1000)
        """
        self._check_write(addr)
        self._data[addr] = value & 0xFF

    def read_word(self, addr: int) -> int:
        """Read a big-endian 16-bit word from addr and addr+1."""
        self._check_read(addr)
        self._check_read(addr + 1)
        return (self._data[addr] << 8) | self._data[addr + 1]

    def read_block(self, addr: int, length: int) -> bytes:
        """Read length bytes starting at addr.

        The whole range is validated before anything is returned.
        """
        if length <= 0:
            return b""
        self._check_read(addr)
        self._check_read(addr + length - 1)
        return bytes(self._data[addr:addr + length])

    def write_block(self, addr: int, data: Iterable[int]) -> None:
        """Write a sequence of bytes starting at addr, all or nothing."""
        payload = bytes(value & 0xFF for value in data)
        if not payload:
            return
        self._check_write(addr)
        self._check_write(addr + len(payload) - 1)
        self._data[addr:addr + len(payload)] = payload

    # --- Bulk load ---

    def load_program(self, data: Union[bytes, bytearray], base: int = PROGRAM_START) -> int:
        """Copy a raw program image into the program region.

        Args:
            data: Program bytes (no header, no length prefix)
            base: Load address, 0x200 by convention

        Returns:
            Number of bytes loaded

        Raises:
            ProgramTooLargeError: If the image does not fit below 0x1000
            OutOfBoundsError: If base lies outside the program region
        """
        self._check_write(base)
        limit = MEMORY_SIZE - base
        if len(data) > limit:
            raise ProgramTooLargeError(len(data), limit)
        # Clear any previous image so reloads do not leave stale bytes.
        self._data[PROGRAM_START:] = bytes(MEMORY_SIZE - PROGRAM_START)
        self._data[base:base + len(data)] = bytes(data)
        return len(data)

    def load_file(self, path: Union[str, Path], base: int = PROGRAM_START) -> int:
        """Load a raw program image from a file."""
        return self.load_program(Path(path).read_bytes(), base)

    # --- Inspection ---

    def snapshot(self) -> bytes:
        """Copy of the full address space."""
        return bytes(self._data)

    def hexdump(self, start: int = PROGRAM_START, length: int = 256) -> str:
        """Produce a hex dump of memory for debugging."""
        lines = []
        end = min(start + length, MEMORY_SIZE)
        for addr in range(start, end, 16):
            row = self._data[addr:min(addr + 16, end)]
            hex_bytes = " ".join(f"{b:02X}" for b in row)
            lines.append(f"{addr:03X}  {hex_bytes}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return MEMORY_SIZE
