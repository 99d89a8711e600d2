"""Assembler: CHIP-8 assembly text to a raw program image.

Syntax follows the common mnemonics (CLS, RET, JP, CALL, SE, SNE, LD, ADD,
OR, AND, XOR, SUB, SHR, SUBN, SHL, RND, DRW, SKP, SKNP, SYS) plus two data
directives:

    DB 0xF0, 0x90      raw bytes
    DW 0x1234          raw big-endian words

Handles:
    - Labels ("name:" on its own line or in front of an instruction)
    - Comments (starting with ; or #)
    - Blank lines
    - Numbers in decimal, 0x hex or 0b binary; labels wherever an address
      or byte is expected

Lines are case-insensitive; label names are matched case-insensitively.

Instructions and DW words always start at an even address: after a DB with
an odd byte count a zero pad byte is inserted, and a label on its own line
binds to the (aligned) address of the next statement.
"""

import re
from typing import Dict, List, Optional, Tuple

from .errors import AssemblerError
from .memory import MEMORY_SIZE, PROGRAM_START


REGISTER_RE = re.compile(r"^V([0-9A-F])$")
LABEL_RE = re.compile(r"^([A-Z_.][A-Z0-9_.]*):\s*(.*)$")


def parse_source(source: str) -> List[Tuple[int, Optional[str], str, List[str]]]:
    """Split source into (line number, label, mnemonic, operands) records.

    A label with no instruction yields a record with an empty mnemonic.
    """
    records = []
    for number, line in enumerate(source.split("\n"), start=1):
        # Remove comments
        line = re.sub(r"[;#].*$", "", line).strip().upper()
        if not line:
            continue

        label = None
        label_match = LABEL_RE.match(line)
        if label_match:
            label = label_match.group(1)
            line = label_match.group(2).strip()

        if not line:
            records.append((number, label, "", []))
            continue

        parts = line.split(None, 1)
        mnemonic = parts[0]
        operands = [op.strip() for op in parts[1].split(",")] if len(parts) > 1 else []
        records.append((number, label, mnemonic, operands))
    return records


def _size(mnemonic: str, operands: List[str]) -> int:
    if mnemonic == "DB":
        return len(operands)
    if mnemonic == "":
        return 0
    return 2


def _register(operand: str, line: int) -> int:
    match = REGISTER_RE.match(operand)
    if not match:
        raise AssemblerError(line, f"Expected register, got {operand!r}")
    return int(match.group(1), 16)


def _is_register(operand: str) -> bool:
    return REGISTER_RE.match(operand) is not None


def _parse_number(value: str) -> int:
    """Parse an immediate value (decimal, hex, or binary).

    Raises:
        ValueError: If value cannot be parsed
    """
    if value.startswith("0X"):
        return int(value, 16)
    if value.startswith("0B"):
        return int(value, 2)
    return int(value)


class _Encoder:
    """Second pass: turn one record into bytes."""

    def __init__(self, labels: Dict[str, int]):
        self.labels = labels

    def value(self, operand: str, line: int, bits: int) -> int:
        try:
            number = _parse_number(operand)
        except ValueError:
            if operand not in self.labels:
                raise AssemblerError(line, f"Unknown label: {operand}")
            number = self.labels[operand]
        if not 0 <= number < (1 << bits):
            raise AssemblerError(line, f"Value {operand} does not fit in {bits} bits")
        return number

    def encode(self, line: int, mnemonic: str, ops: List[str]) -> bytes:
        if mnemonic == "DB":
            if not ops:
                raise AssemblerError(line, "DB needs at least one byte")
            return bytes(self.value(op, line, 8) for op in ops)
        handler = getattr(self, f"_encode_{mnemonic.lower()}", None)
        if handler is None:
            raise AssemblerError(line, f"Unknown instruction: {mnemonic}")
        word = handler(line, ops)
        return bytes(((word >> 8) & 0xFF, word & 0xFF))

    @staticmethod
    def _arity(line: int, ops: List[str], *counts: int) -> None:
        if len(ops) not in counts:
            expected = " or ".join(str(c) for c in counts)
            raise AssemblerError(line, f"Expected {expected} operand(s), got {len(ops)}")

    # --- Instructions ---

    def _encode_dw(self, line, ops):
        self._arity(line, ops, 1)
        return self.value(ops[0], line, 16)

    def _encode_cls(self, line, ops):
        self._arity(line, ops, 0)
        return 0x00E0

    def _encode_ret(self, line, ops):
        self._arity(line, ops, 0)
        return 0x00EE

    def _encode_sys(self, line, ops):
        self._arity(line, ops, 1)
        return 0x0000 | self.value(ops[0], line, 12)

    def _encode_jp(self, line, ops):
        self._arity(line, ops, 1, 2)
        if len(ops) == 2:
            if ops[0] != "V0":
                raise AssemblerError(line, "Indexed jump must use V0")
            return 0xB000 | self.value(ops[1], line, 12)
        return 0x1000 | self.value(ops[0], line, 12)

    def _encode_call(self, line, ops):
        self._arity(line, ops, 1)
        return 0x2000 | self.value(ops[0], line, 12)

    def _compare(self, line, ops, byte_base, reg_base):
        self._arity(line, ops, 2)
        x = _register(ops[0], line)
        if _is_register(ops[1]):
            return reg_base | (x << 8) | (_register(ops[1], line) << 4)
        return byte_base | (x << 8) | self.value(ops[1], line, 8)

    def _encode_se(self, line, ops):
        return self._compare(line, ops, 0x3000, 0x5000)

    def _encode_sne(self, line, ops):
        return self._compare(line, ops, 0x4000, 0x9000)

    def _encode_ld(self, line, ops):
        self._arity(line, ops, 2)
        dest, src = ops
        if dest == "I":
            return 0xA000 | self.value(src, line, 12)
        if dest == "DT":
            return 0xF015 | (_register(src, line) << 8)
        if dest == "ST":
            return 0xF018 | (_register(src, line) << 8)
        if dest == "F":
            return 0xF029 | (_register(src, line) << 8)
        if dest == "B":
            return 0xF033 | (_register(src, line) << 8)
        if dest == "[I]":
            return 0xF055 | (_register(src, line) << 8)
        x = _register(dest, line)
        if src == "DT":
            return 0xF007 | (x << 8)
        if src == "K":
            return 0xF00A | (x << 8)
        if src == "[I]":
            return 0xF065 | (x << 8)
        if _is_register(src):
            return 0x8000 | (x << 8) | (_register(src, line) << 4)
        return 0x6000 | (x << 8) | self.value(src, line, 8)

    def _encode_add(self, line, ops):
        self._arity(line, ops, 2)
        if ops[0] == "I":
            return 0xF01E | (_register(ops[1], line) << 8)
        x = _register(ops[0], line)
        if _is_register(ops[1]):
            return 0x8004 | (x << 8) | (_register(ops[1], line) << 4)
        return 0x7000 | (x << 8) | self.value(ops[1], line, 8)

    def _alu(self, line, ops, selector):
        self._arity(line, ops, 2)
        return 0x8000 | (_register(ops[0], line) << 8) | (_register(ops[1], line) << 4) | selector

    def _encode_or(self, line, ops):
        return self._alu(line, ops, 0x1)

    def _encode_and(self, line, ops):
        return self._alu(line, ops, 0x2)

    def _encode_xor(self, line, ops):
        return self._alu(line, ops, 0x3)

    def _encode_sub(self, line, ops):
        return self._alu(line, ops, 0x5)

    def _encode_subn(self, line, ops):
        return self._alu(line, ops, 0x7)

    def _shift(self, line, ops, selector):
        self._arity(line, ops, 1, 2)
        x = _register(ops[0], line)
        y = _register(ops[1], line) if len(ops) == 2 else 0
        return 0x8000 | (x << 8) | (y << 4) | selector

    def _encode_shr(self, line, ops):
        return self._shift(line, ops, 0x6)

    def _encode_shl(self, line, ops):
        return self._shift(line, ops, 0xE)

    def _encode_rnd(self, line, ops):
        self._arity(line, ops, 2)
        return 0xC000 | (_register(ops[0], line) << 8) | self.value(ops[1], line, 8)

    def _encode_drw(self, line, ops):
        self._arity(line, ops, 3)
        return (0xD000 | (_register(ops[0], line) << 8)
                | (_register(ops[1], line) << 4) | self.value(ops[2], line, 4))

    def _encode_skp(self, line, ops):
        self._arity(line, ops, 1)
        return 0xE09E | (_register(ops[0], line) << 8)

    def _encode_sknp(self, line, ops):
        self._arity(line, ops, 1)
        return 0xE0A1 | (_register(ops[0], line) << 8)


def _layout(records, origin: int) -> Tuple[Dict[str, int], List[Optional[int]]]:
    """First pass: statement addresses and label values."""
    labels: Dict[str, int] = {}
    addresses: List[Optional[int]] = []
    pending: List[str] = []
    addr = origin
    for line, label, mnemonic, operands in records:
        if label is not None:
            if label in labels or label in pending:
                raise AssemblerError(line, f"Duplicate label: {label}")
            pending.append(label)
        if not mnemonic:
            addresses.append(None)
            continue
        if mnemonic != "DB" and addr % 2:
            addr += 1
        for name in pending:
            labels[name] = addr
        pending = []
        addresses.append(addr)
        addr += _size(mnemonic, operands)
        if addr > MEMORY_SIZE:
            raise AssemblerError(line, "Program does not fit in memory")
    for name in pending:
        labels[name] = addr
    return labels, addresses


def assemble(source: str, origin: int = PROGRAM_START) -> bytes:
    """Assemble source code into a program image.

    Args:
        source: Assembly source code
        origin: Address the image will be loaded at (for label values)

    Returns:
        Raw program bytes

    Raises:
        AssemblerError: On unknown instructions, bad operands, unknown or
            duplicate labels, or an image that overflows memory
    """
    records = parse_source(source)
    labels, addresses = _layout(records, origin)

    # Second pass: encode
    encoder = _Encoder(labels)
    image = bytearray()
    for (line, _label, mnemonic, operands), addr in zip(records, addresses):
        if not mnemonic:
            continue
        # Pad up to an aligned start
        image += bytes(addr - origin - len(image))
        image += encoder.encode(line, mnemonic, operands)
    return bytes(image)
