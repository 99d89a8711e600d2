"""Tests for the assembler."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.assembler import assemble, parse_source
from chip8_vm.decode import disassemble
from chip8_vm.errors import AssemblerError


def words(image):
    return [(image[k] << 8) | image[k + 1] for k in range(0, len(image), 2)]


class TestParseSource:
    """Test line splitting, labels and comments."""

    def test_comments_and_blank_lines(self):
        records = parse_source("""
            ; full line comment
            CLS   ; trailing comment

            RET   # hash comment
        """)
        assert [r[2] for r in records] == ["CLS", "RET"]

    def test_label_on_own_line(self):
        records = parse_source("start:\n  CLS")
        assert records[0][1:] == ("START", "", [])
        assert records[1][2] == "CLS"

    def test_label_before_instruction(self):
        records = parse_source("loop: ADD V0, 1")
        assert records[0][1:] == ("LOOP", "ADD", ["V0", "1"])

    def test_line_numbers(self):
        records = parse_source("\n\nCLS")
        assert records[0][0] == 3


class TestEncoding:
    """Test instruction encodings."""

    @pytest.mark.parametrize("line,word", [
        ("CLS", 0x00E0),
        ("RET", 0x00EE),
        ("SYS 0x123", 0x0123),
        ("JP 0x300", 0x1300),
        ("JP V0, 0x300", 0xB300),
        ("CALL 0x400", 0x2400),
        ("SE V1, 0x22", 0x3122),
        ("SE V1, V2", 0x5120),
        ("SNE V1, 34", 0x4122),
        ("SNE V1, V2", 0x9120),
        ("LD V3, 255", 0x63FF),
        ("LD V3, V4", 0x8340),
        ("LD I, 0x050", 0xA050),
        ("LD V5, DT", 0xF507),
        ("LD V5, K", 0xF50A),
        ("LD DT, V5", 0xF515),
        ("LD ST, V5", 0xF518),
        ("LD F, V5", 0xF529),
        ("LD B, V5", 0xF533),
        ("LD [I], V5", 0xF555),
        ("LD V5, [I]", 0xF565),
        ("ADD V6, 1", 0x7601),
        ("ADD V6, V7", 0x8674),
        ("ADD I, V6", 0xF61E),
        ("OR V0, V1", 0x8011),
        ("AND V0, V1", 0x8012),
        ("XOR V0, V1", 0x8013),
        ("SUB V0, V1", 0x8015),
        ("SHR V0", 0x8006),
        ("SHR V0, V1", 0x8016),
        ("SUBN V0, V1", 0x8017),
        ("SHL V0", 0x800E),
        ("RND VA, 0b1111", 0xCA0F),
        ("DRW V0, V1, 5", 0xD015),
        ("SKP VE", 0xEE9E),
        ("SKNP VE", 0xEEA1),
        ("DW 0xBEEF", 0xBEEF),
    ])
    def test_encoding(self, line, word):
        assert words(assemble(line)) == [word]

    def test_case_insensitive(self):
        assert assemble("ld va, 0x2a") == assemble("LD VA, 0x2A")

    def test_db(self):
        assert assemble("DB 0xF0, 0x90, 1") == bytes([0xF0, 0x90, 0x01])

    def test_disassembly_reassembles(self):
        program = [0x6A2A, 0x8014, 0xA050, 0xD015, 0xF355, 0x2300, 0xB300, 0x00EE]
        source = "\n".join(disassemble(word) for word in program)
        assert words(assemble(source)) == program


class TestLabels:
    """Test label resolution."""

    def test_backward_reference(self):
        image = assemble("""
        loop:
            ADD V0, 1
            JP loop
        """)
        assert words(image) == [0x7001, 0x1200]

    def test_forward_reference(self):
        image = assemble("""
            CALL sub
            JP 0x200
        sub:
            RET
        """)
        assert words(image) == [0x2204, 0x1200, 0x00EE]

    def test_data_label_after_db(self):
        image = assemble("""
            LD I, data
            JP end
        data:
            DB 1, 2, 3
        end:
            JP end
        """)
        # Three data bytes, then a pad byte before the aligned jump
        assert words(image[:4]) == [0xA204, 0x1208]
        assert image[4:] == bytes([1, 2, 3, 0, 0x12, 0x08])

    def test_odd_db_pads_next_instruction(self):
        assert assemble("DB 1, 2, 3\nCLS") == bytes([1, 2, 3, 0, 0x00, 0xE0])

    def test_consecutive_db_not_padded(self):
        image = assemble("""
            DB 1
        more:
            DB 2
            LD I, more
        """)
        assert image == bytes([1, 2, 0xA2, 0x01])

    def test_even_db_not_padded(self):
        assert assemble("DB 1, 2\nRET") == bytes([1, 2, 0x00, 0xEE])

    def test_trailing_label(self):
        image = assemble("DB 7\nLD I, tail\ntail:")
        assert words(image[2:]) == [0xA204]

    def test_origin(self):
        image = assemble("here: JP here", origin=0x600)
        assert words(image) == [0x1600]


class TestErrors:
    """Test assembler diagnostics."""

    def test_unknown_instruction(self):
        with pytest.raises(AssemblerError, match="Unknown instruction: MOV") as exc_info:
            assemble("CLS\nMOV R0, 1")
        assert exc_info.value.line == 2

    def test_unknown_label(self):
        with pytest.raises(AssemblerError, match="Unknown label: NOWHERE"):
            assemble("JP nowhere")

    def test_duplicate_label(self):
        with pytest.raises(AssemblerError, match="Duplicate label"):
            assemble("a: CLS\na: CLS")

    def test_byte_out_of_range(self):
        with pytest.raises(AssemblerError, match="does not fit in 8 bits"):
            assemble("LD V0, 256")

    def test_negative_value(self):
        with pytest.raises(AssemblerError):
            assemble("LD V0, -1")

    def test_bad_register(self):
        with pytest.raises(AssemblerError, match="Expected register"):
            assemble("SKP 5")

    def test_wrong_operand_count(self):
        with pytest.raises(AssemblerError, match="Expected 3 operand"):
            assemble("DRW V0, V1")

    def test_indexed_jump_requires_v0(self):
        with pytest.raises(AssemblerError, match="V0"):
            assemble("JP V1, 0x300")

    def test_program_too_large(self):
        with pytest.raises(AssemblerError, match="does not fit in memory"):
            assemble("CLS\n" * 0x701)
