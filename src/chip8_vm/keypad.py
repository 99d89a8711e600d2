"""Keypad: 16-key hexadecimal input for the CHIP-8 VM.

Layout of the original COSMAC VIP keypad:

    1 2 3 C
    4 5 6 D
    7 8 9 E
    A 0 B F

The machine asks two questions: "is key K currently held" (SKP/SKNP) and
"has a key been pressed since the wait began, and which" (LD Vx, K).
Presses are queued so a key pressed and released between two polls is
not lost. The queue keeps at most NUM_KEYS presses, and is flushed when
a wait begins so presses made before it do not satisfy it.
"""

from collections import deque
from typing import Deque, Optional, Set


NUM_KEYS = 16


class Keypad:
    """Held-key set plus a queue of presses."""

    def __init__(self):
        self._held: Set[int] = set()
        self._presses: Deque[int] = deque(maxlen=NUM_KEYS)

    @staticmethod
    def _check_key(key: int) -> None:
        if not 0 <= key < NUM_KEYS:
            raise ValueError(f"Invalid key: {key}")

    def press(self, key: int) -> None:
        """Register a key going down."""
        self._check_key(key)
        if key not in self._held:
            self._held.add(key)
            self._presses.append(key)

    def release(self, key: int) -> None:
        self._check_key(key)
        self._held.discard(key)

    def release_all(self) -> None:
        self._held.clear()

    def is_pressed(self, key: int) -> bool:
        """True while key is held. Only the low nibble of key is used."""
        return (key & 0xF) in self._held

    def take_press(self) -> Optional[int]:
        """Oldest press since the last call, or None if there was none."""
        if self._presses:
            return self._presses.popleft()
        return None

    def flush(self) -> None:
        """Discard queued presses. Held keys stay held."""
        self._presses.clear()

    @property
    def held(self) -> Set[int]:
        return set(self._held)
