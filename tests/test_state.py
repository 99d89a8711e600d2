"""Tests for Chip8State dataclass."""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.state import (
    Chip8State, MachineMode, NUM_REGISTERS, STACK_DEPTH, create_initial_state,
)


class TestChip8StateCreation:
    """Test Chip8State initialization and defaults."""

    def test_default_state(self):
        """Default state has zeroed registers and PC at 0x200."""
        state = Chip8State()
        assert state.pc == 0x200
        assert state.i == 0
        assert state.sp == 0
        assert state.cycle_count == 0
        assert state.mode is MachineMode.RUNNING
        assert state.v == (0,) * NUM_REGISTERS
        assert state.stack == (0,) * STACK_DEPTH

    def test_create_initial_state(self):
        state = create_initial_state(0x300)
        assert state.pc == 0x300
        assert state.halted is False
        assert state.awaiting_key is False


class TestChip8StateValidation:
    """Test state validation."""

    def test_valid_state(self):
        assert Chip8State().validate() is True

    def test_register_out_of_range(self):
        state = Chip8State(v=(0x100,) + (0,) * 15)
        assert state.validate() is False

    def test_wrong_register_count(self):
        state = Chip8State(v=(0,) * 8)
        assert state.validate() is False

    def test_key_register_without_wait(self):
        state = Chip8State(key_register=3)
        assert state.validate() is False

    def test_awaiting_key_state_valid(self):
        assert Chip8State().await_key(3).validate() is True


class TestChip8StateImmutability:
    """Test immutable state operations."""

    def test_set_register_returns_new_state(self):
        state1 = Chip8State()
        state2 = state1.set_register(0, 42)
        assert state1.v[0] == 0
        assert state2.v[0] == 42

    def test_set_register_truncates(self):
        state = Chip8State().set_register(1, 0x1FF)
        assert state.get_register(1) == 0xFF

    def test_set_registers(self):
        state = Chip8State().set_registers({0x1: 2, 0xF: 1})
        assert state.flag == 1
        assert state.v[1] == 2

    def test_invalid_register(self):
        with pytest.raises(IndexError, match="Invalid register"):
            Chip8State().get_register(16)
        with pytest.raises(IndexError):
            Chip8State().set_register(-1, 0)

    def test_increment_pc(self):
        state = Chip8State()
        assert state.increment_pc().pc == 0x202
        assert state.increment_pc(2).pc == 0x204
        assert state.pc == 0x200

    def test_set_i_masks_16_bits(self):
        assert Chip8State().set_i(0x1FFFF).i == 0xFFFF

    def test_frozen(self):
        state = Chip8State()
        with pytest.raises(AttributeError):
            state.pc = 0


class TestCallStack:
    """Test frame push/pop with the wrapping stack pointer."""

    def test_push_then_pop(self):
        state = Chip8State().push_frame(0x234)
        assert state.sp == 1
        assert state.stack[1] == 0x234
        addr, state = state.pop_frame()
        assert addr == 0x234
        assert state.sp == 0

    def test_sixteen_nested_frames(self):
        state = Chip8State()
        for depth in range(STACK_DEPTH):
            state = state.push_frame(0x200 + 2 * depth)
        assert state.sp == 0
        popped = []
        for _ in range(STACK_DEPTH):
            addr, state = state.pop_frame()
            popped.append(addr)
        assert popped == [0x200 + 2 * d for d in reversed(range(STACK_DEPTH))]

    def test_seventeenth_frame_overwrites_oldest(self):
        state = Chip8State()
        for depth in range(STACK_DEPTH + 1):
            state = state.push_frame(0x200 + 2 * depth)
        assert state.sp == 1
        assert state.stack[1] == 0x200 + 2 * STACK_DEPTH
        assert 0x200 not in state.stack

    def test_pop_on_empty_stack_wraps(self):
        addr, state = Chip8State().pop_frame()
        assert addr == 0
        assert state.sp == 15


class TestTimersAndMode:
    """Test timer registers and machine mode transitions."""

    def test_tick_saturates(self):
        state = Chip8State().set_delay_timer(2).set_sound_timer(1)
        state = state.tick_timers()
        assert (state.delay_timer, state.sound_timer) == (1, 0)
        state = state.tick_timers().tick_timers()
        assert (state.delay_timer, state.sound_timer) == (0, 0)

    def test_await_and_resume(self):
        state = Chip8State().await_key(5)
        assert state.awaiting_key is True
        assert state.key_register == 5
        state = state.resume()
        assert state.mode is MachineMode.RUNNING
        assert state.key_register is None

    def test_halt(self):
        state = Chip8State().await_key(1).set_halted()
        assert state.halted is True
        assert state.key_register is None
        assert state.set_halted(False).mode is MachineMode.RUNNING


class TestInspection:
    """Test snapshots and dumps."""

    def test_snapshot(self):
        snap = Chip8State().set_register(3, 7).snapshot()
        assert snap["v"][3] == 7
        assert snap["pc"] == 0x200
        assert snap["mode"] == "RUNNING"
        assert set(snap) == {
            "v", "i", "pc", "sp", "stack", "delay_timer", "sound_timer",
            "mode", "cycle_count",
        }

    def test_dump_registers(self):
        regs = Chip8State().set_register(0xA, 1).dump_registers()
        assert list(regs) == [f"V{x:X}" for x in range(16)]
        assert regs["VA"] == 1

    def test_str(self):
        text = str(Chip8State())
        assert "PC=200" in text
        assert "RUNNING" in text
