"""Chip8Registry: Execution unit for the CHIP-8 VM.

Each decoded operation key maps to one handler:

    handler(state: Chip8State, f: Fields) -> Chip8State

Handlers read the collaborators (memory, display, keypad, random source)
held by the registry and return a new register file; they never mutate the
state they are given. Memory writes go through block operations that
validate the whole range first, so a handler that raises leaves registers
and memory exactly as they were.

PC rule: every handler advances PC by one instruction (2 bytes) except
jumps and calls (PC replaced), taken skips (two instructions), RET
(restored frame plus one instruction) and LD Vx, K (PC held until a key
arrives).

The registry is frozen after initialization and refuses to freeze if any
operation key lacks a handler.
"""

import random
from typing import Callable, Dict, Optional

from .decode import DecodeResult, Fields, Op
from .errors import UnknownOpcodeError
from .memory import Memory, font_address
from .state import Chip8State, FLAG_REGISTER


Handler = Callable[[Chip8State, Fields], Chip8State]


class Chip8Registry:
    """Frozen registry of CHIP-8 operation handlers.

    Attributes:
        memory: Bounds-checked memory
        display: Display surface (clear, draw_sprite, width, height)
        keypad: Keypad (is_pressed, flush)
        rng: Byte source for RND (anything with getrandbits)
    """

    def __init__(self, memory: Memory, display, keypad, rng: Optional[random.Random] = None):
        self.memory = memory
        self.display = display
        self.keypad = keypad
        self.rng = rng if rng is not None else random.Random()
        self._primitives: Dict[Op, Handler] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        # System / flow
        self.register(Op.CLS, self._op_cls)
        self.register(Op.RET, self._op_ret)
        self.register(Op.SYS, self._op_sys)
        self.register(Op.JP, self._op_jp)
        self.register(Op.CALL, self._op_call)
        self.register(Op.JP_V0, self._op_jp_v0)

        # Conditional skips
        self.register(Op.SE_BYTE, self._op_se_byte)
        self.register(Op.SNE_BYTE, self._op_sne_byte)
        self.register(Op.SE_REG, self._op_se_reg)
        self.register(Op.SNE_REG, self._op_sne_reg)
        self.register(Op.SKP, self._op_skp)
        self.register(Op.SKNP, self._op_sknp)

        # Register transfer / arithmetic
        self.register(Op.LD_BYTE, self._op_ld_byte)
        self.register(Op.ADD_BYTE, self._op_add_byte)
        self.register(Op.LD_REG, self._op_ld_reg)
        self.register(Op.OR, self._op_or)
        self.register(Op.AND, self._op_and)
        self.register(Op.XOR, self._op_xor)
        self.register(Op.ADD_REG, self._op_add_reg)
        self.register(Op.SUB, self._op_sub)
        self.register(Op.SHR, self._op_shr)
        self.register(Op.SUBN, self._op_subn)
        self.register(Op.SHL, self._op_shl)
        self.register(Op.RND, self._op_rnd)

        # Address register / memory
        self.register(Op.LD_I, self._op_ld_i)
        self.register(Op.ADD_I, self._op_add_i)
        self.register(Op.LD_F, self._op_ld_f)
        self.register(Op.LD_B, self._op_ld_b)
        self.register(Op.LD_MEM_VX, self._op_ld_mem_vx)
        self.register(Op.LD_VX_MEM, self._op_ld_vx_mem)

        # Display / input / timers
        self.register(Op.DRW, self._op_drw)
        self.register(Op.LD_VX_K, self._op_ld_vx_k)
        self.register(Op.LD_VX_DT, self._op_ld_vx_dt)
        self.register(Op.LD_DT_VX, self._op_ld_dt_vx)
        self.register(Op.LD_ST_VX, self._op_ld_st_vx)

    def register(self, key: Op, handler: Handler) -> None:
        """Register an operation handler.

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered or is Op.INVALID
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key is Op.INVALID:
            raise ValueError("Op.INVALID cannot have a handler")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key.value}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        """Freeze the registry.

        Raises:
            RuntimeError: If some operation key has no handler
        """
        missing = [op.value for op in Op
                   if op is not Op.INVALID and op not in self._primitives]
        if missing:
            raise RuntimeError(f"Unhandled operation keys: {', '.join(missing)}")
        self._frozen = True

    def is_frozen(self) -> bool:
        return self._frozen

    def get_valid_keys(self) -> set:
        return set(self._primitives.keys())

    def execute(self, state: Chip8State, decoded: DecodeResult) -> Chip8State:
        """Execute a decoded instruction.

        Args:
            state: Current register file
            decoded: Result from the decoder

        Returns:
            New register file after execution

        Raises:
            UnknownOpcodeError: If the instruction has no handler
            OutOfBoundsError: If the handler touches invalid memory
        """
        handler = self._primitives.get(decoded.key) if decoded.valid else None
        if handler is None:
            raise UnknownOpcodeError(decoded.opcode, state.pc)

        new_state = handler(state, decoded.fields)

        # Always increment cycle count after execution
        return new_state.increment_cycle()

    # =========================================================================
    # System / Flow Primitives
    # =========================================================================

    def _op_cls(self, state: Chip8State, f: Fields) -> Chip8State:
        """00E0 - CLS: Clear the display."""
        self.display.clear()
        return state.increment_pc()

    def _op_ret(self, state: Chip8State, f: Fields) -> Chip8State:
        """00EE - RET: Return from a subroutine.

        The saved frame holds the address of the CALL instruction, so
        execution resumes at the instruction following it.
        """
        addr, new_state = state.pop_frame()
        return new_state.set_pc(addr).increment_pc()

    def _op_sys(self, state: Chip8State, f: Fields) -> Chip8State:
        """0nnn - SYS addr: Machine code routine, ignored."""
        return state.increment_pc()

    def _op_jp(self, state: Chip8State, f: Fields) -> Chip8State:
        """1nnn - JP addr: Jump to location nnn."""
        return state.set_pc(f.addr)

    def _op_call(self, state: Chip8State, f: Fields) -> Chip8State:
        """2nnn - CALL addr: Push current PC, jump to nnn."""
        return state.push_frame(state.pc).set_pc(f.addr)

    def _op_jp_v0(self, state: Chip8State, f: Fields) -> Chip8State:
        """Bnnn - JP V0, addr: Jump to location nnn + V0."""
        return state.set_pc(f.addr + state.v[0])

    # =========================================================================
    # Skip Primitives
    # =========================================================================

    @staticmethod
    def _skip_if(state: Chip8State, condition: bool) -> Chip8State:
        return state.increment_pc(2 if condition else 1)

    def _op_se_byte(self, state: Chip8State, f: Fields) -> Chip8State:
        """3xkk - SE Vx, byte."""
        return self._skip_if(state, state.v[f.x] == f.byte)

    def _op_sne_byte(self, state: Chip8State, f: Fields) -> Chip8State:
        """4xkk - SNE Vx, byte."""
        return self._skip_if(state, state.v[f.x] != f.byte)

    def _op_se_reg(self, state: Chip8State, f: Fields) -> Chip8State:
        """5xy0 - SE Vx, Vy."""
        return self._skip_if(state, state.v[f.x] == state.v[f.y])

    def _op_sne_reg(self, state: Chip8State, f: Fields) -> Chip8State:
        """9xy0 - SNE Vx, Vy."""
        return self._skip_if(state, state.v[f.x] != state.v[f.y])

    def _op_skp(self, state: Chip8State, f: Fields) -> Chip8State:
        """Ex9E - SKP Vx: Skip if key Vx is held."""
        return self._skip_if(state, self.keypad.is_pressed(state.v[f.x]))

    def _op_sknp(self, state: Chip8State, f: Fields) -> Chip8State:
        """ExA1 - SKNP Vx: Skip if key Vx is not held."""
        return self._skip_if(state, not self.keypad.is_pressed(state.v[f.x]))

    # =========================================================================
    # Register Transfer / Arithmetic Primitives
    # =========================================================================

    def _op_ld_byte(self, state: Chip8State, f: Fields) -> Chip8State:
        """6xkk - LD Vx, byte."""
        return state.set_register(f.x, f.byte).increment_pc()

    def _op_add_byte(self, state: Chip8State, f: Fields) -> Chip8State:
        """7xkk - ADD Vx, byte: Wrapping add, VF untouched."""
        return state.set_register(f.x, state.v[f.x] + f.byte).increment_pc()

    def _op_ld_reg(self, state: Chip8State, f: Fields) -> Chip8State:
        """8xy0 - LD Vx, Vy."""
        return state.set_register(f.x, state.v[f.y]).increment_pc()

    def _op_or(self, state: Chip8State, f: Fields) -> Chip8State:
        """8xy1 - OR Vx, Vy."""
        return state.set_register(f.x, state.v[f.x] | state.v[f.y]).increment_pc()

    def _op_and(self, state: Chip8State, f: Fields) -> Chip8State:
        """8xy2 - AND Vx, Vy."""
        return state.set_register(f.x, state.v[f.x] & state.v[f.y]).increment_pc()

    def _op_xor(self, state: Chip8State, f: Fields) -> Chip8State:
        """8xy3 - XOR Vx, Vy."""
        return state.set_register(f.x, state.v[f.x] ^ state.v[f.y]).increment_pc()

    # For the flag-setting ops VF is written after Vx, so with x == F the
    # flag is what remains in VF.

    def _op_add_reg(self, state: Chip8State, f: Fields) -> Chip8State:
        """8xy4 - ADD Vx, Vy: VF = carry."""
        total = state.v[f.x] + state.v[f.y]
        carry = 1 if total > 0xFF else 0
        return state.set_registers({f.x: total, FLAG_REGISTER: carry}).increment_pc()

    def _op_sub(self, state: Chip8State, f: Fields) -> Chip8State:
        """8xy5 - SUB Vx, Vy: VF = NOT borrow."""
        vx, vy = state.v[f.x], state.v[f.y]
        not_borrow = 1 if vx > vy else 0
        return state.set_registers({f.x: vx - vy, FLAG_REGISTER: not_borrow}).increment_pc()

    def _op_shr(self, state: Chip8State, f: Fields) -> Chip8State:
        """8xy6 - SHR Vx: VF = bit shifted out."""
        vx = state.v[f.x]
        return state.set_registers({f.x: vx >> 1, FLAG_REGISTER: vx & 0x1}).increment_pc()

    def _op_subn(self, state: Chip8State, f: Fields) -> Chip8State:
        """8xy7 - SUBN Vx, Vy: Vx = Vy - Vx, VF = NOT borrow."""
        vx, vy = state.v[f.x], state.v[f.y]
        not_borrow = 1 if vy > vx else 0
        return state.set_registers({f.x: vy - vx, FLAG_REGISTER: not_borrow}).increment_pc()

    def _op_shl(self, state: Chip8State, f: Fields) -> Chip8State:
        """8xyE - SHL Vx: VF = bit shifted out."""
        vx = state.v[f.x]
        return state.set_registers({f.x: vx << 1, FLAG_REGISTER: (vx & 0x80) >> 7}).increment_pc()

    def _op_rnd(self, state: Chip8State, f: Fields) -> Chip8State:
        """Cxkk - RND Vx, byte: Vx = random byte AND kk."""
        return state.set_register(f.x, self.rng.getrandbits(8) & f.byte).increment_pc()

    # =========================================================================
    # Address Register / Memory Primitives
    # =========================================================================

    def _op_ld_i(self, state: Chip8State, f: Fields) -> Chip8State:
        """Annn - LD I, addr."""
        return state.set_i(f.addr).increment_pc()

    def _op_add_i(self, state: Chip8State, f: Fields) -> Chip8State:
        """Fx1E - ADD I, Vx: 12-bit address arithmetic on I itself."""
        return state.set_i((state.i + state.v[f.x]) & 0xFFF).increment_pc()

    def _op_ld_f(self, state: Chip8State, f: Fields) -> Chip8State:
        """Fx29 - LD F, Vx: I = glyph address for digit Vx."""
        return state.set_i(font_address(state.v[f.x])).increment_pc()

    def _op_ld_b(self, state: Chip8State, f: Fields) -> Chip8State:
        """Fx33 - LD B, Vx: Store BCD of Vx at I, I+1, I+2."""
        value = state.v[f.x]
        self.memory.write_block(state.i, (value // 100, (value // 10) % 10, value % 10))
        return state.increment_pc()

    def _op_ld_mem_vx(self, state: Chip8State, f: Fields) -> Chip8State:
        """Fx55 - LD [I], Vx: Store V0..Vx at I..I+x. I is unchanged."""
        self.memory.write_block(state.i, state.v[:f.x + 1])
        return state.increment_pc()

    def _op_ld_vx_mem(self, state: Chip8State, f: Fields) -> Chip8State:
        """Fx65 - LD Vx, [I]: Load V0..Vx from I..I+x. I is unchanged."""
        data = self.memory.read_block(state.i, f.x + 1)
        return state.set_registers(dict(enumerate(data))).increment_pc()

    # =========================================================================
    # Display / Input / Timer Primitives
    # =========================================================================

    def _op_drw(self, state: Chip8State, f: Fields) -> Chip8State:
        """Dxyn - DRW Vx, Vy, nibble: XOR n-byte sprite at I onto (Vx, Vy).

        VF = 1 if any set pixel was erased, else 0.
        """
        sprite = self.memory.read_block(state.i, f.nibble)
        x = state.v[f.x] % self.display.width
        y = state.v[f.y] % self.display.height
        collision = self.display.draw_sprite(x, y, sprite)
        return state.set_register(FLAG_REGISTER, 1 if collision else 0).increment_pc()

    def _op_ld_vx_k(self, state: Chip8State, f: Fields) -> Chip8State:
        """Fx0A - LD Vx, K: Suspend until a key is pressed.

        PC stays on this instruction; the machine stores the key in Vx and
        advances once the keypad reports a press. Presses queued before the
        wait are discarded.
        """
        self.keypad.flush()
        return state.await_key(f.x)

    def _op_ld_vx_dt(self, state: Chip8State, f: Fields) -> Chip8State:
        """Fx07 - LD Vx, DT."""
        return state.set_register(f.x, state.delay_timer).increment_pc()

    def _op_ld_dt_vx(self, state: Chip8State, f: Fields) -> Chip8State:
        """Fx15 - LD DT, Vx."""
        return state.set_delay_timer(state.v[f.x]).increment_pc()

    def _op_ld_st_vx(self, state: Chip8State, f: Fields) -> Chip8State:
        """Fx18 - LD ST, Vx."""
        return state.set_sound_timer(state.v[f.x]).increment_pc()
