"""Instruction decoder for the CHIP-8 VM.

Architecture:
    opcode -> decode_fields -> Fields
    opcode -> decode        -> DecodeResult(key=Op.*, fields) -> Registry -> Execute

Every instruction is a 16-bit word stored most-significant byte first. The
decoder splits it into the fields used by the instruction listings:

    nnn or addr - A 12-bit value, the lowest 12 bits of the instruction
    n or nibble - A 4-bit value, the lowest 4 bits of the instruction
    x           - A 4-bit value, the lower 4 bits of the high byte
    y           - A 4-bit value, the upper 4 bits of the low byte
    kk or byte  - An 8-bit value, the lowest 8 bits of the instruction

Decoding never raises. Words that match no instruction decode to
Op.INVALID with valid=False; the registry rejects them at dispatch.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Dict, Optional


class Op(Enum):
    """Closed set of operation keys the registry can execute."""
    CLS = "OP_CLS"
    RET = "OP_RET"
    SYS = "OP_SYS"
    JP = "OP_JP"
    CALL = "OP_CALL"
    SE_BYTE = "OP_SE_BYTE"
    SNE_BYTE = "OP_SNE_BYTE"
    SE_REG = "OP_SE_REG"
    LD_BYTE = "OP_LD_BYTE"
    ADD_BYTE = "OP_ADD_BYTE"
    LD_REG = "OP_LD_REG"
    OR = "OP_OR"
    AND = "OP_AND"
    XOR = "OP_XOR"
    ADD_REG = "OP_ADD_REG"
    SUB = "OP_SUB"
    SHR = "OP_SHR"
    SUBN = "OP_SUBN"
    SHL = "OP_SHL"
    SNE_REG = "OP_SNE_REG"
    LD_I = "OP_LD_I"
    JP_V0 = "OP_JP_V0"
    RND = "OP_RND"
    DRW = "OP_DRW"
    SKP = "OP_SKP"
    SKNP = "OP_SKNP"
    LD_VX_DT = "OP_LD_VX_DT"
    LD_VX_K = "OP_LD_VX_K"
    LD_DT_VX = "OP_LD_DT_VX"
    LD_ST_VX = "OP_LD_ST_VX"
    ADD_I = "OP_ADD_I"
    LD_F = "OP_LD_F"
    LD_B = "OP_LD_B"
    LD_MEM_VX = "OP_LD_MEM_VX"
    LD_VX_MEM = "OP_LD_VX_MEM"
    INVALID = "OP_INVALID"


@dataclass(frozen=True)
class Fields:
    """Operand fields of a 16-bit instruction word."""
    opcode: int
    opclass: int
    addr: int
    nibble: int
    x: int
    y: int
    byte: int


@dataclass(frozen=True)
class DecodeResult:
    """Result of instruction decode operation.

    Attributes:
        key: Operation key
        fields: Extracted operand fields
        valid: Whether the word names a defined instruction
        error: Error message if decode failed
    """
    key: Op
    fields: Fields
    valid: bool
    error: Optional[str] = None

    @property
    def opcode(self) -> int:
        return self.fields.opcode

    @property
    def mnemonic(self) -> str:
        return disassemble(self.fields.opcode)


# Sub-selector tables for the classes that switch a second time.
_ALU_OPS: Dict[int, Op] = {
    0x0: Op.LD_REG,
    0x1: Op.OR,
    0x2: Op.AND,
    0x3: Op.XOR,
    0x4: Op.ADD_REG,
    0x5: Op.SUB,
    0x6: Op.SHR,
    0x7: Op.SUBN,
    0xE: Op.SHL,
}

_KEY_OPS: Dict[int, Op] = {
    0x9E: Op.SKP,
    0xA1: Op.SKNP,
}

_MISC_OPS: Dict[int, Op] = {
    0x07: Op.LD_VX_DT,
    0x0A: Op.LD_VX_K,
    0x15: Op.LD_DT_VX,
    0x18: Op.LD_ST_VX,
    0x1E: Op.ADD_I,
    0x29: Op.LD_F,
    0x33: Op.LD_B,
    0x55: Op.LD_MEM_VX,
    0x65: Op.LD_VX_MEM,
}

# Classes whose meaning is fixed by the top nibble alone.
_CLASS_OPS: Dict[int, Op] = {
    0x1: Op.JP,
    0x2: Op.CALL,
    0x3: Op.SE_BYTE,
    0x4: Op.SNE_BYTE,
    0x5: Op.SE_REG,
    0x6: Op.LD_BYTE,
    0x7: Op.ADD_BYTE,
    0x9: Op.SNE_REG,
    0xA: Op.LD_I,
    0xB: Op.JP_V0,
    0xC: Op.RND,
    0xD: Op.DRW,
}


def decode_fields(opcode: int) -> Fields:
    """Split a 16-bit word into its addressing fields. Pure and total."""
    opcode &= 0xFFFF
    return Fields(
        opcode=opcode,
        opclass=(opcode & 0xF000) >> 12,
        addr=opcode & 0x0FFF,
        nibble=opcode & 0x000F,
        x=(opcode & 0x0F00) >> 8,
        y=(opcode & 0x00F0) >> 4,
        byte=opcode & 0x00FF,
    )


def classify(fields: Fields) -> Optional[Op]:
    """Select the operation for decoded fields, or None if none matches."""
    opclass = fields.opclass
    if opclass == 0x0:
        if fields.opcode == 0x00E0:
            return Op.CLS
        if fields.opcode == 0x00EE:
            return Op.RET
        return Op.SYS
    if opclass == 0x8:
        return _ALU_OPS.get(fields.nibble)
    if opclass == 0xE:
        return _KEY_OPS.get(fields.byte)
    if opclass == 0xF:
        return _MISC_OPS.get(fields.byte)
    return _CLASS_OPS.get(opclass)


def decode(opcode: int) -> DecodeResult:
    """Decode an instruction word to operation key and fields.

    Args:
        opcode: Raw 16-bit instruction word

    Returns:
        DecodeResult; invalid words carry Op.INVALID and an error message
    """
    fields = decode_fields(opcode)
    key = classify(fields)
    if key is None:
        return DecodeResult(
            key=Op.INVALID,
            fields=fields,
            valid=False,
            error=f"Unknown opcode: 0x{fields.opcode:04X}",
        )
    return DecodeResult(key=key, fields=fields, valid=True)


# Mnemonic templates, formatted with the Fields attributes.
_MNEMONICS: Dict[Op, str] = {
    Op.CLS: "CLS",
    Op.RET: "RET",
    Op.SYS: "SYS 0x{addr:03X}",
    Op.JP: "JP 0x{addr:03X}",
    Op.CALL: "CALL 0x{addr:03X}",
    Op.SE_BYTE: "SE V{x:X}, 0x{byte:02X}",
    Op.SNE_BYTE: "SNE V{x:X}, 0x{byte:02X}",
    Op.SE_REG: "SE V{x:X}, V{y:X}",
    Op.LD_BYTE: "LD V{x:X}, 0x{byte:02X}",
    Op.ADD_BYTE: "ADD V{x:X}, 0x{byte:02X}",
    Op.LD_REG: "LD V{x:X}, V{y:X}",
    Op.OR: "OR V{x:X}, V{y:X}",
    Op.AND: "AND V{x:X}, V{y:X}",
    Op.XOR: "XOR V{x:X}, V{y:X}",
    Op.ADD_REG: "ADD V{x:X}, V{y:X}",
    Op.SUB: "SUB V{x:X}, V{y:X}",
    Op.SHR: "SHR V{x:X}",
    Op.SUBN: "SUBN V{x:X}, V{y:X}",
    Op.SHL: "SHL V{x:X}",
    Op.SNE_REG: "SNE V{x:X}, V{y:X}",
    Op.LD_I: "LD I, 0x{addr:03X}",
    Op.JP_V0: "JP V0, 0x{addr:03X}",
    Op.RND: "RND V{x:X}, 0x{byte:02X}",
    Op.DRW: "DRW V{x:X}, V{y:X}, {nibble}",
    Op.SKP: "SKP V{x:X}",
    Op.SKNP: "SKNP V{x:X}",
    Op.LD_VX_DT: "LD V{x:X}, DT",
    Op.LD_VX_K: "LD V{x:X}, K",
    Op.LD_DT_VX: "LD DT, V{x:X}",
    Op.LD_ST_VX: "LD ST, V{x:X}",
    Op.ADD_I: "ADD I, V{x:X}",
    Op.LD_F: "LD F, V{x:X}",
    Op.LD_B: "LD B, V{x:X}",
    Op.LD_MEM_VX: "LD [I], V{x:X}",
    Op.LD_VX_MEM: "LD V{x:X}, [I]",
    Op.INVALID: "DW 0x{opcode:04X}",
}


def disassemble(opcode: int) -> str:
    """Render an instruction word as an assembly mnemonic."""
    fields = decode_fields(opcode)
    key = classify(fields) or Op.INVALID
    return _MNEMONICS[key].format(**asdict(fields))
