"""Timers & Sound for the CHIP-8 VM.

Two countdown registers, DT (delay) and ST (sound), are decremented at
60 Hz while non-zero and stop at zero. The buzzer sounds exactly while ST
is non-zero.

The TimerDriver runs on its own clock, independent of the instruction rate.
It can be advanced by elapsed wall time from a single-threaded scheduler
(advance) or run on a background thread (start/stop). Either way every tick
takes the owner's lock, so a tick never interleaves with an instruction.
"""

import logging
import threading
from typing import Optional


logger = logging.getLogger(__name__)

TIMER_HZ = 60.0


class ToneOutput:
    """Binary tone signal. Records the current state and logs transitions.

    Attributes:
        active: Whether the tone is currently sounding
        transitions: Number of on/off changes seen
    """

    def __init__(self):
        self.active = False
        self.transitions = 0

    def set_active(self, active: bool) -> None:
        if active == self.active:
            return
        self.active = active
        self.transitions += 1
        logger.info("Tone %s", "on" if active else "off")


class TimerDriver:
    """Fixed-rate driver for the delay and sound timers.

    Attributes:
        owner: Object exposing ``lock`` and a settable ``state``
               (a Chip8State); normally the Chip8VM
        tone: Tone output collaborator (anything with set_active(bool))
        rate_hz: Tick rate
        ticks: Number of ticks performed
    """

    def __init__(self, owner, tone=None, rate_hz: float = TIMER_HZ):
        if rate_hz <= 0:
            raise ValueError("rate_hz must be positive")
        self.owner = owner
        self.tone = tone if tone is not None else ToneOutput()
        self.rate_hz = rate_hz
        self.ticks = 0
        self._accumulator = 0.0
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def period(self) -> float:
        return 1.0 / self.rate_hz

    def sync_tone(self) -> None:
        """Drive the tone output from the current sound timer value."""
        self.tone.set_active(self.owner.state.sound_timer > 0)

    def tick(self) -> None:
        """Advance both timers by one period."""
        with self.owner.lock:
            self.owner.state = self.owner.state.tick_timers()
            self.ticks += 1
            self.sync_tone()

    def advance(self, elapsed: float) -> int:
        """Convert elapsed seconds into whole ticks.

        The fractional remainder is carried to the next call.

        Returns:
            Number of ticks performed
        """
        self._accumulator += elapsed
        count = int(self._accumulator * self.rate_hz)
        self._accumulator -= count / self.rate_hz
        for _ in range(count):
            self.tick()
        return count

    # --- Threaded mode ---

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Tick on a background thread until stop() is called."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="chip8-timers", daemon=True
        )
        self._thread.start()
        logger.debug("Timer thread started at %.1f Hz", self.rate_hz)

    def stop(self, timeout: Optional[float] = 1.0) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        logger.debug("Timer thread stopped after %d ticks", self.ticks)

    def _run(self) -> None:
        while not self._stop_event.wait(self.period):
            self.tick()

    def reset(self) -> None:
        self._accumulator = 0.0
        self.ticks = 0
