"""Chip8VM: Main orchestrator for the CHIP-8 virtual machine.

This module implements the full execution pipeline:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE

and the driving loops around it:

    step()          one instruction (or one poll of a pending key wait)
    run()           headless, as fast as possible, bounded by max_cycles
    run_realtime()  instructions and 60 Hz timer ticks on two independent
                    schedules, alternated in a single thread

Faults (OutOfBoundsError, UnknownOpcodeError) are recorded in the trace,
halt the machine and propagate to the caller of step().
"""

import logging
import random
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Union

from .assembler import assemble
from .config import MachineConfig
from .decode import DecodeResult, Op, decode
from .display import FrameBuffer
from .errors import Chip8Error, MachineHaltedError
from .keypad import Keypad
from .memory import Memory
from .registry import Chip8Registry
from .state import Chip8State, create_initial_state
from .timers import TimerDriver


logger = logging.getLogger(__name__)


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number at which the instruction started
        pc: Address the instruction was fetched from
        opcode: Raw instruction word (None if the fetch itself failed)
        instruction: Disassembled instruction
        decode_result: Result from the decoder
        pre_state: Register snapshot before execution
        post_state: Register snapshot after execution
        error: Error message if execution failed
    """
    cycle: int
    pc: int
    opcode: Optional[int]
    instruction: str
    decode_result: Optional[DecodeResult]
    pre_state: dict
    post_state: dict
    error: Optional[str] = None


class Chip8VM:
    """CHIP-8 virtual machine.

    Attributes:
        config: Machine configuration
        memory: 4 KiB memory with font preloaded
        display: Display surface collaborator
        keypad: Keypad collaborator
        registry: Execution unit
        state: Current register file
        timers: Delay/sound timer driver
        last_error: Most recent fault (None since the last load or reset)
        lock: Serialises instruction steps and timer ticks
        trace: Most recent execution trace entries
    """

    def __init__(
        self,
        config: Optional[MachineConfig] = None,
        display=None,
        keypad=None,
        tone=None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the machine.

        Args:
            config: Machine configuration (defaults to MachineConfig())
            display: Display surface (defaults to a FrameBuffer)
            keypad: Keypad (defaults to a Keypad)
            tone: Tone output (defaults to a ToneOutput)
            rng: Random byte source for RND (defaults to Random(config.seed))
        """
        self.config = config if config is not None else MachineConfig()
        self.memory = Memory()
        self.display = display if display is not None else FrameBuffer(self.config.display_mode)
        self.keypad = keypad if keypad is not None else Keypad()
        self.rng = rng if rng is not None else random.Random(self.config.seed)
        self.registry = Chip8Registry(self.memory, self.display, self.keypad, self.rng)
        self.lock = threading.RLock()
        self.state: Chip8State = create_initial_state(self.config.entry_point)
        self.timers = TimerDriver(self, tone, self.config.timer_hz)
        self.trace: Deque[ExecutionTraceEntry] = deque(maxlen=self.config.trace_limit)
        self.last_error: Optional[Chip8Error] = None
        self._program = b""
        self._stop_requested = threading.Event()

    # =========================================================================
    # Loading
    # =========================================================================

    def load_binary(self, data: Union[bytes, bytearray]) -> None:
        """Load a raw program image at the entry point and reset the machine.

        Raises:
            ProgramTooLargeError: If the image does not fit in memory
        """
        with self.lock:
            size = self.memory.load_program(data, self.config.entry_point)
            self._program = bytes(data)
            self._reset_state()
        logger.info("Loaded %d-byte program at 0x%03X", size, self.config.entry_point)

    def load_rom(self, path: Union[str, Path]) -> None:
        """Load a raw program image from a file."""
        self.load_binary(Path(path).read_bytes())

    def load_program(self, source: str) -> None:
        """Assemble source code and load the result.

        Raises:
            AssemblerError: If the source cannot be assembled
        """
        self.load_binary(assemble(source, origin=self.config.entry_point))

    def reset(self) -> None:
        """Return to power-on state, keeping the loaded program."""
        with self.lock:
            self.memory.load_program(self._program, self.config.entry_point)
            self._reset_state()

    def _reset_state(self) -> None:
        self.state = create_initial_state(self.config.entry_point)
        self.display.clear()
        self.timers.reset()
        self.timers.sync_tone()
        self.trace.clear()
        self.last_error = None

    # =========================================================================
    # Execution
    # =========================================================================

    def step(self) -> Optional[ExecutionTraceEntry]:
        """Execute a single instruction cycle.

        Performs: FETCH -> DECODE -> EXECUTE. While a key wait is pending a
        step only polls the keypad; it returns None if no key arrived.

        Returns:
            ExecutionTraceEntry for the cycle, or None while still waiting

        Raises:
            MachineHaltedError: If the machine is halted
            OutOfBoundsError: On an invalid fetch or memory access
            UnknownOpcodeError: On an opcode with no handler
        """
        with self.lock:
            if self.state.halted:
                raise MachineHaltedError("CPU is halted")
            if self.state.awaiting_key:
                return self._poll_key()
            return self._execute_next()

    def _execute_next(self) -> ExecutionTraceEntry:
        pc = self.state.pc
        pre_state = self.state.snapshot()
        opcode = None
        decode_result = None
        instruction = "<FETCH>"

        try:
            # FETCH
            opcode = self.memory.read_word(pc)
            # DECODE
            decode_result = decode(opcode)
            instruction = decode_result.mnemonic
            # EXECUTE
            new_state = self.registry.execute(self.state, decode_result)
        except Chip8Error as e:
            self.state = self.state.set_halted(True)
            self.last_error = e
            self._record(pc, opcode, instruction, decode_result, pre_state, str(e))
            logger.error("Fault at 0x%03X (%s): %s", pc, instruction, e)
            raise

        if (self.config.halt_on_idle_loop and decode_result.key is Op.JP
                and new_state.pc == pc):
            new_state = new_state.set_halted(True)
            logger.info("Idle loop at 0x%03X, halting", pc)

        self.state = new_state
        self.timers.sync_tone()
        logger.debug("%03X: %04X  %s", pc, opcode, instruction)
        return self._record(pc, opcode, instruction, decode_result, pre_state)

    def _poll_key(self) -> Optional[ExecutionTraceEntry]:
        key = self.keypad.take_press()
        if key is None:
            return None
        pc = self.state.pc
        pre_state = self.state.snapshot()
        x = self.state.key_register
        self.state = (self.state.set_register(x, key)
                      .resume()
                      .increment_pc()
                      .increment_cycle())
        logger.debug("Key 0x%X stored in V%X", key, x)
        return self._record(pc, self.memory.read_word(pc),
                            f"LD V{x:X}, K ; key {key:X}", None, pre_state)

    def _record(self, pc, opcode, instruction, decode_result, pre_state, error=None):
        entry = ExecutionTraceEntry(
            cycle=pre_state["cycle_count"],
            pc=pc,
            opcode=opcode,
            instruction=instruction,
            decode_result=decode_result,
            pre_state=pre_state,
            post_state=self.state.snapshot(),
            error=error,
        )
        self.trace.append(entry)
        return entry

    def run(self, max_cycles: Optional[int] = None) -> List[ExecutionTraceEntry]:
        """Run headless until halted, blocked on key input, or max cycles.

        Args:
            max_cycles: Override maximum cycles (uses config default if None)

        Returns:
            Execution trace (most recent entries)

        Raises:
            RuntimeError: If max cycles exceeded (safety limit)
            Chip8Error: On any fault
        """
        limit = max_cycles if max_cycles is not None else self.config.max_cycles

        while not self.state.halted and self.state.cycle_count < limit:
            if self.step() is None:
                logger.info("Waiting for key press at 0x%03X", self.state.pc)
                break

        if (not self.state.halted and not self.state.awaiting_key
                and self.state.cycle_count >= limit):
            raise RuntimeError(f"Max cycles ({limit}) exceeded")

        return list(self.trace)

    def run_realtime(
        self,
        duration: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        threaded_timers: bool = False,
    ) -> int:
        """Run instructions and timers on independent fixed-rate schedules.

        Instructions are issued at config.instructions_per_second and the
        timers tick at config.timer_hz, both derived from the same clock but
        never from the same loop iteration count. Timers keep ticking while
        a key wait is pending and after the machine halts; a halt only stops
        instruction issue. The tone is silenced when the loop exits.

        Args:
            duration: Seconds to run (None = until stop(), or until the
                machine is halted and both timers have reached zero)
            clock: Monotonic time source
            sleep: Sleep function
            threaded_timers: Tick timers on their own thread instead

        Returns:
            Number of instruction slots issued
        """
        self._stop_requested.clear()
        interval = 1.0 / self.config.instructions_per_second
        start = last = clock()
        next_step = start
        issued = 0

        if threaded_timers:
            self.timers.start()
        try:
            while not self._stop_requested.is_set():
                now = clock()
                if duration is not None and now - start >= duration:
                    break
                if not threaded_timers:
                    self.timers.advance(now - last)
                last = now
                if self.state.halted:
                    if duration is None and not self._timers_running():
                        break
                    sleep(self.timers.period)
                elif now >= next_step:
                    self.step()
                    issued += 1
                    next_step += interval
                else:
                    sleep(min(next_step - now, self.timers.period))
        finally:
            if threaded_timers:
                self.timers.stop()
            self.timers.tone.set_active(False)
        return issued

    def _timers_running(self) -> bool:
        return self.state.delay_timer > 0 or self.state.sound_timer > 0

    def stop(self) -> None:
        """Request the realtime loop to stop after the current step."""
        self._stop_requested.set()

    # =========================================================================
    # Inspection
    # =========================================================================

    def get_register(self, x: int) -> int:
        return self.state.get_register(x)

    def dump_registers(self) -> Dict[str, int]:
        return self.state.dump_registers()

    def get_pc(self) -> int:
        return self.state.pc

    def get_cycle_count(self) -> int:
        return self.state.cycle_count

    def is_halted(self) -> bool:
        return self.state.halted

    def is_awaiting_key(self) -> bool:
        return self.state.awaiting_key

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("CHIP-8 EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            word = f"{entry.opcode:04X}" if entry.opcode is not None else "----"
            print(f"\n[Cycle {entry.cycle}] {status}")
            print(f"  {entry.pc:03X}: {word}  {entry.instruction}")

            # Show register changes
            pre_regs = entry.pre_state["v"]
            post_regs = entry.post_state["v"]
            changes = [
                f"V{x:X}: {pre_regs[x]:02X} -> {post_regs[x]:02X}"
                for x in range(len(pre_regs)) if pre_regs[x] != post_regs[x]
            ]
            for name in ("i", "sp", "delay_timer", "sound_timer"):
                if entry.pre_state[name] != entry.post_state[name]:
                    changes.append(f"{name.upper()}: {entry.pre_state[name]} -> "
                                   f"{entry.post_state[name]}")
            if changes:
                print(f"  Changes: {', '.join(changes)}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        print(f"  {self.state}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        return {
            "cycles": self.get_cycle_count(),
            "halted": self.is_halted(),
            "awaiting_key": self.is_awaiting_key(),
            "registers": self.dump_registers(),
            "i": self.state.i,
            "pc": self.get_pc(),
            "delay_timer": self.state.delay_timer,
            "sound_timer": self.state.sound_timer,
            "timer_ticks": self.timers.ticks,
            "trace_length": len(self.trace),
            "errors": [e.error for e in self.trace if e.error],
            "last_error": str(self.last_error) if self.last_error else None,
        }
