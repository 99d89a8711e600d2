"""CHIP-8 VM Interactive Inspector.

A Gradio web interface for running and inspecting CHIP-8 programs.

Usage:
    cd /path/to/chip8-vm
    python demo/gradio_app.py

Features:
    - Write or load assembly programs
    - Run for a bounded number of cycles with a fixed RND seed
    - See step-by-step execution trace with register changes
    - View the framebuffer as text
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from chip8_vm import Chip8Error, Chip8VM, MachineConfig
from chip8_vm.display import DEFAULT_MODE, DISPLAY_MODES


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Sum 1-10": """    LD V0, 0        ; sum = 0
    LD V1, 1        ; counter = 1
loop:
    ADD V0, V1      ; sum += counter
    ADD V1, 1       ; counter++
    SE V1, 11       ; done after 10
    JP loop
end:
    JP end          ; V0 = 55""",

    "Hex Digits": """    LD V0, 0        ; digit
    LD V1, 0        ; x
    LD V2, 0        ; y
loop:
    LD F, V0        ; I = glyph for V0
    DRW V1, V2, 5
    ADD V0, 1
    ADD V1, 5
    SE V0, 12
    JP loop
end:
    JP end""",

    "BCD of 156": """    LD V0, 156
    LD I, digits
    LD B, V0        ; 1, 5, 6 at I..I+2
    LD V2, [I]      ; V0=1 V1=5 V2=6
    LD V3, 0        ; x
    LD V4, 0        ; y
    LD F, V0
    DRW V3, V4, 5
    ADD V3, 5
    LD F, V1
    DRW V3, V4, 5
    ADD V3, 5
    LD F, V2
    DRW V3, V4, 5
end:
    JP end
digits:
    DB 0, 0, 0""",

    "Subroutine": """    LD V0, 7
    CALL double
    CALL double     ; V0 = 28
end:
    JP end
double:
    ADD V0, V0
    RET""",

    "Random Dots": """    LD I, dot
    LD V2, 20       ; count
loop:
    RND V0, 63
    RND V1, 31
    DRW V0, V1, 1
    ADD V2, 255     ; count--
    SE V2, 0
    JP loop
end:
    JP end
dot:
    DB 0x80""",

    "Custom": ""
}


# =============================================================================
# Execution Functions
# =============================================================================

def run_program(program: str, display_mode: str, seed: int, max_cycles: int) -> tuple:
    """Assemble and execute a program and return results.

    Args:
        program: Assembly source code
        display_mode: One of DISPLAY_MODES
        seed: Seed for RND
        max_cycles: Maximum execution cycles

    Returns:
        Tuple of (summary_text, trace_text, registers_text, display_text)
    """
    if not program.strip():
        return "Error: No program provided", "", "", ""

    try:
        vm = Chip8VM(MachineConfig(
            display_mode=display_mode,
            seed=int(seed),
            max_cycles=int(max_cycles),
        ))
        vm.load_program(program)
    except (Chip8Error, ValueError) as e:
        return f"Error: {e}", "", "", ""

    try:
        vm.run()
    except (Chip8Error, RuntimeError) as e:
        error_msg = str(e)
    else:
        error_msg = None
    trace = list(vm.trace)

    # Format summary
    summary = vm.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Cycles: {summary['cycles']}",
        f"Halted: {'Yes' if summary['halted'] else 'No'}",
        f"Awaiting key: {'Yes' if summary['awaiting_key'] else 'No'}",
        f"Timer ticks: {summary['timer_ticks']}",
        f"Errors: {len(summary['errors'])}",
    ]
    if error_msg:
        summary_lines.append(f"\nRuntime: {error_msg}")

    summary_text = "\n".join(summary_lines)

    # Format trace
    trace_lines = [
        "EXECUTION TRACE",
        "=" * 60,
    ]
    for entry in trace[:100]:  # Limit to 100 entries
        word = f"{entry.opcode:04X}" if entry.opcode is not None else "----"
        trace_lines.append(f"\n--- Cycle {entry.cycle} (PC=0x{entry.pc:03X}) ---")
        trace_lines.append(f"Instruction: {word}  {entry.instruction}")
        if entry.decode_result is not None:
            trace_lines.append(f"Decoded Key: {entry.decode_result.key.value}")
        if entry.error:
            trace_lines.append(f"Error:       {entry.error}")

        # Show register changes
        pre_regs = entry.pre_state["v"]
        post_regs = entry.post_state["v"]
        changes = [
            f"V{x:X}: {pre_regs[x]} -> {post_regs[x]}"
            for x in range(len(pre_regs)) if pre_regs[x] != post_regs[x]
        ]
        if entry.pre_state["i"] != entry.post_state["i"]:
            changes.append(f"I: 0x{entry.pre_state['i']:03X} -> 0x{entry.post_state['i']:03X}")
        if changes:
            trace_lines.append(f"Changes:     {', '.join(changes)}")

    if len(trace) > 100:
        trace_lines.append(f"\n... ({len(trace) - 100} more entries)")

    trace_text = "\n".join(trace_lines)

    # Format registers
    regs = vm.dump_registers()
    reg_lines = [
        "FINAL REGISTERS",
        "=" * 30,
    ]
    for reg, value in regs.items():
        marker = " *" if value != 0 else ""
        reg_lines.append(f"  {reg}: {value:>5}  (0x{value:02X}){marker}")

    reg_lines.append("")
    reg_lines.append(f"  I:  0x{summary['i']:03X}")
    reg_lines.append(f"  PC: 0x{summary['pc']:03X}")
    reg_lines.append(f"  DT: {summary['delay_timer']}  ST: {summary['sound_timer']}")

    registers_text = "\n".join(reg_lines)

    return summary_text, trace_text, registers_text, vm.display.render()


def load_example(example_name: str) -> str:
    """Load an example program."""
    return EXAMPLE_PROGRAMS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="CHIP-8 VM Inspector", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # CHIP-8 VM Inspector

        Assemble a CHIP-8 program, run it headless and inspect the result.

        **Pipeline**: `fetch -> decode -> key -> registry -> state`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                # Program input
                gr.Markdown("### Assembly Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Sum 1-10",
                    label="Load Example"
                )

                program_input = gr.Textbox(
                    value=EXAMPLE_PROGRAMS["Sum 1-10"],
                    label="Source Code",
                    lines=15,
                    placeholder="Enter assembly code here..."
                )

                # Settings
                gr.Markdown("### Settings")

                with gr.Row():
                    mode_dropdown = gr.Dropdown(
                        choices=list(DISPLAY_MODES.keys()),
                        value=DEFAULT_MODE,
                        label="Display Mode"
                    )
                    seed_input = gr.Number(
                        value=0,
                        precision=0,
                        label="RND Seed"
                    )
                    max_cycles = gr.Slider(
                        minimum=100,
                        maximum=100000,
                        value=10000,
                        step=100,
                        label="Max Cycles"
                    )

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                # Results
                with gr.Row():
                    summary_output = gr.Textbox(
                        label="Summary",
                        lines=10,
                        interactive=False
                    )
                    registers_output = gr.Textbox(
                        label="Final Registers",
                        lines=10,
                        interactive=False
                    )

                display_output = gr.Textbox(
                    label="Display",
                    lines=32,
                    interactive=False
                )

                trace_output = gr.Textbox(
                    label="Execution Trace",
                    lines=20,
                    interactive=False
                )

        # ISA Reference
        with gr.Accordion("Instruction Reference", open=False):
            gr.Markdown("""
            | Instruction | Opcode | Description |
            |-------------|--------|-------------|
            | `CLS` | 00E0 | Clear the display |
            | `RET` | 00EE | Return from subroutine |
            | `JP addr` | 1nnn | Jump |
            | `CALL addr` | 2nnn | Call subroutine |
            | `SE Vx, byte` / `SE Vx, Vy` | 3xkk / 5xy0 | Skip if equal |
            | `SNE Vx, byte` / `SNE Vx, Vy` | 4xkk / 9xy0 | Skip if not equal |
            | `LD Vx, byte` / `LD Vx, Vy` | 6xkk / 8xy0 | Load register |
            | `ADD Vx, byte` | 7xkk | Add, no carry |
            | `OR` `AND` `XOR` `Vx, Vy` | 8xy1-8xy3 | Bitwise |
            | `ADD Vx, Vy` / `SUB` / `SUBN` | 8xy4 / 8xy5 / 8xy7 | VF = carry / not borrow |
            | `SHR Vx` / `SHL Vx` | 8xy6 / 8xyE | VF = bit shifted out |
            | `LD I, addr` | Annn | Set I |
            | `JP V0, addr` | Bnnn | Jump to addr + V0 |
            | `RND Vx, byte` | Cxkk | Random byte AND kk |
            | `DRW Vx, Vy, n` | Dxyn | Draw sprite, VF = collision |
            | `SKP Vx` / `SKNP Vx` | Ex9E / ExA1 | Skip on key state |
            | `LD Vx, DT` / `LD DT, Vx` / `LD ST, Vx` | Fx07 / Fx15 / Fx18 | Timers |
            | `LD Vx, K` | Fx0A | Wait for key |
            | `ADD I, Vx` / `LD F, Vx` / `LD B, Vx` | Fx1E / Fx29 / Fx33 | I arithmetic, glyph, BCD |
            | `LD [I], Vx` / `LD Vx, [I]` | Fx55 / Fx65 | Store / load V0..Vx |
            | `DB b, ...` / `DW w` | | Raw data |

            **Registers**: V0-VF (8-bit, VF is the flag register), I (address)
            **Labels**: Use `name:` to define, reference by name wherever an address is expected
            """)

        # Event handlers
        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input]
        )

        run_button.click(
            fn=run_program,
            inputs=[program_input, mode_dropdown, seed_input, max_cycles],
            outputs=[summary_output, trace_output, registers_output, display_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
