"""Tests for Chip8Registry handlers."""

import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.decode import Op, decode
from chip8_vm.display import FrameBuffer
from chip8_vm.errors import OutOfBoundsError, UnknownOpcodeError
from chip8_vm.keypad import Keypad
from chip8_vm.memory import Memory, font_address
from chip8_vm.registry import Chip8Registry
from chip8_vm.state import Chip8State


@pytest.fixture
def registry():
    return Chip8Registry(Memory(), FrameBuffer(), Keypad(), random.Random(0))


def execute(registry, state, opcode):
    return registry.execute(state, decode(opcode))


def with_regs(**values):
    """Build a state with named registers set, e.g. with_regs(V0=1, VF=2)."""
    state = Chip8State()
    for name, value in values.items():
        state = state.set_register(int(name[1:], 16), value)
    return state


class TestRegistryStructure:
    """Test registry initialization and freezing."""

    def test_frozen_after_init(self, registry):
        assert registry.is_frozen() is True

    def test_every_key_has_handler(self, registry):
        assert registry.get_valid_keys() == set(Op) - {Op.INVALID}

    def test_register_after_freeze(self, registry):
        with pytest.raises(RuntimeError, match="frozen"):
            registry.register(Op.CLS, lambda state, f: state)

    def test_unknown_opcode_raises(self, registry):
        state = with_regs(V0=5)
        with pytest.raises(UnknownOpcodeError) as exc_info:
            execute(registry, state, 0x8008)
        assert exc_info.value.opcode == 0x8008
        assert exc_info.value.pc == 0x200
        assert state.v[0] == 5
        assert state.pc == 0x200

    def test_execute_counts_cycle(self, registry):
        state = execute(registry, Chip8State(), 0x6001)
        assert state.cycle_count == 1


class TestArithmetic:
    """Test register arithmetic and flag handling."""

    def test_add_with_carry(self, registry):
        state = execute(registry, with_regs(V0=0xFF, V1=0x01), 0x8014)
        assert state.v[0] == 0x00
        assert state.flag == 1
        assert state.pc == 0x202

    def test_add_without_carry(self, registry):
        state = execute(registry, with_regs(V0=0x10, V1=0x20, VF=1), 0x8014)
        assert state.v[0] == 0x30
        assert state.flag == 0

    def test_sub_no_borrow(self, registry):
        state = execute(registry, with_regs(V0=5, V1=3), 0x8015)
        assert state.v[0] == 2
        assert state.flag == 1

    def test_sub_with_borrow(self, registry):
        state = execute(registry, with_regs(V0=3, V1=5), 0x8015)
        assert state.v[0] == 0xFE
        assert state.flag == 0

    def test_sub_equal_operands(self, registry):
        state = execute(registry, with_regs(V0=7, V1=7), 0x8015)
        assert state.v[0] == 0
        assert state.flag == 0

    def test_subn(self, registry):
        state = execute(registry, with_regs(V0=3, V1=5), 0x8017)
        assert state.v[0] == 2
        assert state.flag == 1

    def test_shl(self, registry):
        state = execute(registry, with_regs(V0=0x81), 0x800E)
        assert state.v[0] == 0x02
        assert state.flag == 1

    def test_shr(self, registry):
        state = execute(registry, with_regs(V0=0x03), 0x8006)
        assert state.v[0] == 0x01
        assert state.flag == 1

    def test_flag_register_as_destination(self, registry):
        """With x == F the flag is what remains in VF."""
        state = execute(registry, with_regs(VF=0xFF, V1=0x01), 0x8F14)
        assert state.flag == 1

    def test_add_byte_wraps_without_flag(self, registry):
        state = execute(registry, with_regs(V0=0xFF), 0x7002)
        assert state.v[0] == 0x01
        assert state.flag == 0

    def test_bitwise(self, registry):
        base = with_regs(V0=0b1100, V1=0b1010)
        assert execute(registry, base, 0x8011).v[0] == 0b1110
        assert execute(registry, base, 0x8012).v[0] == 0b1000
        assert execute(registry, base, 0x8013).v[0] == 0b0110
        assert execute(registry, base, 0x8010).v[0] == 0b1010

    def test_rnd_masked(self, registry):
        for _ in range(20):
            state = execute(registry, Chip8State(), 0xC00F)
            assert state.v[0] <= 0x0F

    def test_rnd_deterministic_with_seed(self):
        values = []
        for _ in range(2):
            reg = Chip8Registry(Memory(), FrameBuffer(), Keypad(), random.Random(42))
            state = Chip8State()
            for x in range(4):
                state = execute(reg, state, 0xC0FF | (x << 8))
            values.append(state.v[:4])
        assert values[0] == values[1]


class TestFlowControl:
    """Test jumps, calls and skips."""

    def test_jp(self, registry):
        assert execute(registry, Chip8State(), 0x1ABC).pc == 0xABC

    def test_jp_v0(self, registry):
        assert execute(registry, with_regs(V0=4), 0xB300).pc == 0x304

    def test_call_and_return(self, registry):
        state = execute(registry, Chip8State(), 0x2300)
        assert state.pc == 0x300
        assert state.sp == 1
        assert state.stack[1] == 0x200
        state = execute(registry, state, 0x00EE)
        assert state.pc == 0x202
        assert state.sp == 0

    def test_sys_ignored(self, registry):
        assert execute(registry, Chip8State(), 0x0123).pc == 0x202

    @pytest.mark.parametrize("opcode,regs,taken", [
        (0x3005, {"V0": 5}, True),
        (0x3005, {"V0": 4}, False),
        (0x4005, {"V0": 4}, True),
        (0x4005, {"V0": 5}, False),
        (0x5010, {"V0": 9, "V1": 9}, True),
        (0x5010, {"V0": 9, "V1": 8}, False),
        (0x9010, {"V0": 9, "V1": 8}, True),
        (0x9010, {"V0": 9, "V1": 9}, False),
    ])
    def test_skips(self, registry, opcode, regs, taken):
        state = execute(registry, with_regs(**regs), opcode)
        assert state.pc == (0x204 if taken else 0x202)

    def test_skp_sknp(self, registry):
        registry.keypad.press(5)
        state = with_regs(V0=5)
        assert execute(registry, state, 0xE09E).pc == 0x204
        assert execute(registry, state, 0xE0A1).pc == 0x202
        registry.keypad.release(5)
        assert execute(registry, state, 0xE09E).pc == 0x202
        assert execute(registry, state, 0xE0A1).pc == 0x204

    def test_wait_for_key_holds_pc(self, registry):
        state = execute(registry, Chip8State(), 0xF30A)
        assert state.awaiting_key is True
        assert state.key_register == 3
        assert state.pc == 0x200

    def test_wait_for_key_discards_earlier_presses(self, registry):
        registry.keypad.press(5)
        registry.keypad.release(5)
        execute(registry, Chip8State(), 0xF10A)
        assert registry.keypad.take_press() is None


class TestMemoryOps:
    """Test I-register and memory instructions."""

    def test_ld_i(self, registry):
        assert execute(registry, Chip8State(), 0xA123).i == 0x123

    def test_add_i_wraps_12_bits(self, registry):
        state = with_regs(V0=2).set_i(0xFFF)
        assert execute(registry, state, 0xF01E).i == 0x001

    def test_ld_f(self, registry):
        state = execute(registry, with_regs(V0=0xA), 0xF029)
        assert state.i == font_address(0xA) == 50

    def test_bcd(self, registry):
        state = with_regs(V0=156).set_i(0x300)
        execute(registry, state, 0xF033)
        assert registry.memory.read_block(0x300, 3) == bytes([1, 5, 6])

    def test_bcd_out_of_bounds_writes_nothing(self, registry):
        state = with_regs(V0=156).set_i(0xFFE)
        with pytest.raises(OutOfBoundsError):
            execute(registry, state, 0xF033)
        assert registry.memory.read_block(0xFFE, 2) == b"\x00\x00"

    def test_store_and_load_registers(self, registry):
        state = with_regs(V0=1, V1=2, V2=3, V3=4).set_i(0x400)
        state = execute(registry, state, 0xF255)
        assert state.i == 0x400
        assert registry.memory.read_block(0x400, 4) == bytes([1, 2, 3, 0])
        state = execute(registry, Chip8State().set_i(0x400), 0xF165)
        assert state.v[:3] == (1, 2, 0)
        assert state.i == 0x400

    def test_store_into_font_region(self, registry):
        with pytest.raises(OutOfBoundsError):
            execute(registry, Chip8State().set_i(0x1FF), 0xF155)

    def test_timers(self, registry):
        state = execute(registry, with_regs(V0=30), 0xF015)
        assert state.delay_timer == 30
        state = execute(registry, state, 0xF018)
        assert state.sound_timer == 30
        state = execute(registry, state, 0xF107)
        assert state.v[1] == 30


class TestDraw:
    """Test sprite drawing and collision."""

    def test_draw_then_redraw_collides(self, registry):
        state = Chip8State().set_i(font_address(0))
        state = execute(registry, state, 0xD015)
        assert state.flag == 0
        assert registry.display.lit_pixels() == 14
        state = execute(registry, state, 0xD015)
        assert state.flag == 1
        assert registry.display.lit_pixels() == 0

    def test_zero_height_draws_nothing(self, registry):
        state = execute(registry, with_regs(VF=1), 0xD010)
        assert state.flag == 0
        assert registry.display.lit_pixels() == 0

    def test_draw_wraps(self, registry):
        state = with_regs(V0=62).set_i(font_address(0))
        execute(registry, state, 0xD011)
        assert registry.display.pixel(62, 0) == 1
        assert registry.display.pixel(1, 0) == 1
        assert registry.display.pixel(2, 0) == 0

    def test_coordinates_wrap(self, registry):
        state = with_regs(V0=64 + 3, V1=32 + 2).set_i(font_address(1))
        execute(registry, state, 0xD011)
        # Glyph 1 row 0 is 0x20
        assert registry.display.pixel(5, 2) == 1

    def test_cls(self, registry):
        state = Chip8State().set_i(font_address(8))
        state = execute(registry, state, 0xD015)
        state = execute(registry, state, 0x00E0)
        assert registry.display.lit_pixels() == 0
        assert state.pc == 0x204
