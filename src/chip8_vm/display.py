"""FrameBuffer: monochrome display surface for the CHIP-8 VM.

Modes:
    - 64x32 (baseline)
    - 64x48
    - 64x64
    - 128x64

Sprites are rows of 8 pixels (one byte each, most significant bit leftmost)
XORed onto the surface. If any pixel flips from set to unset the draw
reports a collision, which the DRW instruction stores in VF. Sprites
positioned partly outside the surface wrap around to the opposite side.
"""

from typing import Dict, Iterable, List, Tuple


DISPLAY_MODES: Dict[str, Tuple[int, int]] = {
    "64x32": (64, 32),
    "64x48": (64, 48),
    "64x64": (64, 64),
    "128x64": (128, 64),
}

DEFAULT_MODE = "64x32"


class FrameBuffer:
    """In-memory pixel grid.

    Attributes:
        width: Pixels per row
        height: Number of rows
        dirty: Set by any change, cleared by the presenter after a redraw
    """

    def __init__(self, mode: str = DEFAULT_MODE):
        if mode not in DISPLAY_MODES:
            raise ValueError(f"Unsupported display mode: {mode}")
        self.mode = mode
        self.width, self.height = DISPLAY_MODES[mode]
        self._pixels = bytearray(self.width * self.height)
        self.dirty = False

    def clear(self) -> None:
        self._pixels = bytearray(self.width * self.height)
        self.dirty = True

    def pixel(self, x: int, y: int) -> int:
        """Return 1 if the pixel at (x, y) is set, else 0 (coordinates wrap)."""
        return self._pixels[(y % self.height) * self.width + (x % self.width)]

    def draw_sprite(self, x: int, y: int, rows: Iterable[int]) -> bool:
        """XOR a sprite onto the surface at (x, y).

        Args:
            x: Column of the sprite's left edge
            y: Row of the sprite's top edge
            rows: Sprite bytes, one per row

        Returns:
            True if any set pixel was erased (collision)
        """
        collision = False
        for row, bits in enumerate(rows):
            py = (y + row) % self.height
            for col in range(8):
                if not bits & (0x80 >> col):
                    continue
                px = (x + col) % self.width
                index = py * self.width + px
                if self._pixels[index]:
                    collision = True
                self._pixels[index] ^= 1
                self.dirty = True
        return collision

    def lit_pixels(self) -> int:
        return sum(self._pixels)

    def rows(self) -> List[List[int]]:
        """Pixel grid as a list of rows."""
        return [
            list(self._pixels[y * self.width:(y + 1) * self.width])
            for y in range(self.height)
        ]

    def render(self, on: str = "#", off: str = ".") -> str:
        """Text rendering, one line per row."""
        return "\n".join(
            "".join(on if p else off for p in row) for row in self.rows()
        )
