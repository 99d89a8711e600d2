#!/usr/bin/env python3
"""CHIP-8 VM Command Line Interface.

Run CHIP-8 programs (raw ROM images or assembly source) on the VM.

Usage:
    python main.py --rom games/maze.ch8 --show-display
    python main.py --program programs/count.asm --trace
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_vm import Chip8Error, Chip8VM, MachineConfig
from chip8_vm.display import DEFAULT_MODE, DISPLAY_MODES


def parse_keys(text: str):
    """Parse a comma separated list of hex key names ("1,A,f")."""
    keys = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        key = int(part, 16)
        if not 0 <= key <= 0xF:
            raise ValueError(f"Invalid key: {part}")
        keys.append(key)
    return keys


def feed_key(vm, pending) -> bool:
    """Deliver the next pending key if the machine is waiting for one."""
    if not pending or not vm.is_awaiting_key():
        return False
    key = pending.pop(0)
    vm.keypad.press(key)
    vm.keypad.release(key)
    return True


def main():
    parser = argparse.ArgumentParser(
        description="CHIP-8 VM: CHIP-8 interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a ROM image headless and show the final screen
    python main.py --rom games/maze.ch8 --show-display

    # Assemble and run a program with full trace output
    python main.py --program programs/count.asm --trace

    # Run inline assembly
    python main.py --inline "LD V0, 42; LD V1, V0; end: JP end"

    # Real-time run for 5 seconds, answering the first key wait with key A
    python main.py --rom games/pong.ch8 --realtime --duration 5 --keys A
        """
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--rom", "-r",
        type=str,
        help="Path to raw program image (.ch8)"
    )
    source.add_argument(
        "--program", "-p",
        type=str,
        help="Path to assembly program file (.asm)"
    )
    source.add_argument(
        "--inline", "-i",
        type=str,
        help="Inline assembly (separate instructions with ;)"
    )
    parser.add_argument(
        "--mode", "-m",
        choices=sorted(DISPLAY_MODES),
        default=DEFAULT_MODE,
        help=f"Display mode. Default: {DEFAULT_MODE}"
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=10000,
        help="Maximum execution cycles (safety limit). Default: 10000"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the RND instruction"
    )
    parser.add_argument(
        "--keys", "-k",
        type=str,
        default="",
        help="Keys delivered in order, one per key wait, e.g. '1,A,F'"
    )
    parser.add_argument(
        "--no-idle-halt",
        action="store_true",
        help="Do not halt on a jump to itself"
    )
    parser.add_argument(
        "--realtime",
        action="store_true",
        help="Run at --hz instructions per second with 60 Hz timers"
    )
    parser.add_argument(
        "--hz",
        type=float,
        default=700.0,
        help="Instructions per second in real-time mode. Default: 700"
    )
    parser.add_argument(
        "--duration",
        type=float,
        help="Seconds to run in real-time mode (default: until halted)"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (non-zero registers only)"
    )
    parser.add_argument(
        "--show-display", "-d",
        action="store_true",
        help="Print the framebuffer after the run"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level. Default: WARNING"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    # Validate arguments
    if not (args.rom or args.program or args.inline):
        parser.error("One of --rom, --program or --inline is required")
    try:
        keys = parse_keys(args.keys)
        config = MachineConfig(
            instructions_per_second=args.hz,
            display_mode=args.mode,
            seed=args.seed,
            max_cycles=args.max_cycles,
            halt_on_idle_loop=not args.no_idle_halt,
        )
    except ValueError as e:
        parser.error(str(e))

    vm = Chip8VM(config)

    # Load program
    try:
        if args.rom:
            if not Path(args.rom).exists():
                print(f"Error: ROM file not found: {args.rom}")
                return 1
            vm.load_rom(args.rom)
            if not args.quiet:
                print(f"Loading ROM: {args.rom}")
        elif args.program:
            program_path = Path(args.program)
            if not program_path.exists():
                print(f"Error: Program file not found: {args.program}")
                return 1
            vm.load_program(program_path.read_text())
            if not args.quiet:
                print(f"Loading program: {args.program}")
        else:
            vm.load_program(args.inline.replace(";", "\n"))
            if not args.quiet:
                print("Running inline assembly")
    except Chip8Error as e:
        print(f"Load error: {e}")
        return 1

    # Run
    if not args.quiet:
        print("-" * 60)
        print("Executing...")
        print("-" * 60)

    try:
        if args.realtime:
            def sleep(seconds):
                feed_key(vm, keys)
                time.sleep(seconds)

            vm.run_realtime(duration=args.duration, sleep=sleep)
        else:
            vm.run()
            while feed_key(vm, keys):
                vm.run()
    except KeyboardInterrupt:
        vm.stop()
    except (Chip8Error, RuntimeError) as e:
        print(f"Execution error: {e}")

    # Output
    if args.trace:
        vm.print_trace()
    elif not args.quiet:
        print()
        summary = vm.get_summary()
        print(f"Cycles: {summary['cycles']}")
        print(f"Halted: {summary['halted']}")
        print(f"Awaiting key: {summary['awaiting_key']}")
        print(f"PC: 0x{summary['pc']:03X}  I: 0x{summary['i']:03X}")
        print(f"Registers: {summary['registers']}")
        if summary['errors']:
            print(f"Errors: {summary['errors']}")
    else:
        # Quiet mode - just print non-zero registers
        regs = vm.dump_registers()
        for reg in sorted(regs.keys()):
            if regs[reg] != 0:
                print(f"{reg}={regs[reg]}")

    if args.show_display:
        print()
        print(vm.display.render())

    # Return exit code based on halted state
    return 0 if vm.is_halted() and vm.last_error is None else 1


if __name__ == "__main__":
    sys.exit(main())
