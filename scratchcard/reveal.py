# scratchcard/reveal.py
"""
Per-cell scratch state.

Each cell keeps a fixed G x G occlusion grid of booleans laid over its drawable
area. Scratching marks subcells whose centres fall inside the scratch radius;
once marked a subcell stays marked, so the revealed percentage never drops.
When the percentage first reaches the reveal threshold the cell moves to
REVEALED and the reveal callback fires exactly once.
"""
import logging
import math
from typing import Callable, NamedTuple, Optional

import numpy as np

from scratchcard import config

logger = logging.getLogger(__name__)

HIDDEN = "hidden"
REVEALING = "revealing"
REVEALED = "revealed"


class Point(NamedTuple):
    x: float
    y: float


class RevealTracker:
    def __init__(
        self,
        cell_id: str,
        value: int,
        on_reveal: Optional[Callable[[str, int], None]] = None,
        on_progress: Optional[Callable[[str, float], None]] = None,
        width: float = None,
        height: float = None,
        grid_size: int = None,
        scratch_radius: float = None,
        reveal_threshold: float = None,
    ):
        self.cell_id = cell_id
        self.value = value
        self.on_reveal = on_reveal
        self.on_progress = on_progress
        self.grid_size = config.OCCLUSION_GRID_SIZE if grid_size is None else grid_size
        self.scratch_radius = float(config.SCRATCH_RADIUS if scratch_radius is None else scratch_radius)
        self.reveal_threshold = float(config.REVEAL_THRESHOLD if reveal_threshold is None else reveal_threshold)
        if self.grid_size < 1 or self.scratch_radius <= 0:
            raise ValueError("grid_size and scratch_radius must be positive")

        self.width = None
        self.height = None
        self.state = HIDDEN
        self._occlusion = np.zeros((self.grid_size, self.grid_size), dtype=bool)
        self._drawing = False
        self._last = None
        if width is not None and height is not None:
            self.initialize(width, height)

    # ---------- setup ----------
    def initialize(self, width: float, height: float):
        """
        Fresh occlusion grid for a drawable area of width x height pixels.
        A REVEALED cell stays revealed (fully uncovered).
        """
        self._set_size(width, height)
        self._drawing = False
        if self.state == REVEALED:
            self._occlusion[:] = True
        else:
            self._occlusion[:] = False
            self.state = HIDDEN

    def resize(self, width: float, height: float):
        """
        Change the pixel size but keep scratch progress. The occlusion grid is
        resolution independent, so only the pixel-to-grid mapping changes.
        """
        if self.width is None:
            self.initialize(width, height)
            return
        self._set_size(width, height)
        self._last = None

    def _set_size(self, width, height):
        if width is None or height is None or width <= 0 or height <= 0:
            raise ValueError(f"Invalid cell size {width}x{height}")
        self.width = float(width)
        self.height = float(height)

    @property
    def initialized(self) -> bool:
        return self.width is not None

    @property
    def revealed(self) -> bool:
        return self.state == REVEALED

    # ---------- scratching ----------
    def percent_revealed(self) -> float:
        percent = float(np.count_nonzero(self._occlusion)) / self._occlusion.size * 100.0
        return min(max(percent, 0.0), 100.0)

    def apply_scratch(self, point):
        """Mark every subcell within the scratch radius of `point`."""
        if not self.initialized or self.state == REVEALED:
            return
        px, py = point
        self._occlusion |= self._mask(px, py)
        self._after_scratch()

    def apply_stroke(self, start, end):
        """
        Scratch along the segment start -> end. Samples are at most half a
        radius apart so fast pointer movement leaves no uncovered strips.
        """
        if not self.initialized or self.state == REVEALED:
            return
        x0, y0 = start
        x1, y1 = end
        distance = math.hypot(x1 - x0, y1 - y0)
        if distance == 0:
            self.apply_scratch(end)
            return

        steps = max(1, math.ceil(distance / (self.scratch_radius / 2.0)))
        mask = np.zeros_like(self._occlusion)
        for i in range(steps + 1):
            t = i / steps
            mask |= self._mask(x0 + (x1 - x0) * t, y0 + (y1 - y0) * t)
        self._occlusion |= mask
        self._after_scratch()

    def force_reveal(self):
        """Uncover the whole cell. No-op once revealed."""
        if self.state == REVEALED:
            return
        self._occlusion[:] = True
        self._after_scratch()

    def _mask(self, px: float, py: float) -> np.ndarray:
        g = self.grid_size
        sub_w = self.width / g
        sub_h = self.height / g
        # subcell centres in pixel coordinates
        cx = (np.arange(g) + 0.5) * sub_w
        cy = (np.arange(g) + 0.5) * sub_h
        dist_sq = (cx[np.newaxis, :] - px) ** 2 + (cy[:, np.newaxis] - py) ** 2
        mask = dist_sq <= self.scratch_radius ** 2

        # the subcell under the pointer always counts, even for tiny radii
        col = int(px // sub_w)
        row = int(py // sub_h)
        if 0 <= col < g and 0 <= row < g:
            mask[row, col] = True
        return mask

    def _after_scratch(self):
        percent = self.percent_revealed()
        if self.on_progress is not None:
            self.on_progress(self.cell_id, percent)

        if percent >= self.reveal_threshold:
            self.state = REVEALED
            self._drawing = False
            logger.debug("cell %s revealed at %.1f%%", self.cell_id, percent)
            if self.on_reveal is not None:
                self.on_reveal(self.cell_id, self.value)
        elif percent > 0:
            self.state = REVEALING

    # ---------- direct pointer input ----------
    def pointer_down(self, x: float, y: float):
        self._drawing = True
        self._last = Point(x, y)
        self.apply_scratch(self._last)

    def pointer_move(self, x: float, y: float):
        if not self._drawing:
            return
        current = Point(x, y)
        if self._last is None:
            self.apply_scratch(current)
        else:
            self.apply_stroke(self._last, current)
        self._last = current

    def pointer_up(self):
        self._drawing = False
        self._last = None

    def occlusion(self) -> np.ndarray:
        """Copy of the scratched-subcell grid (True = scratched)."""
        return self._occlusion.copy()

    def __repr__(self):
        return f"RevealTracker({self.cell_id!r}, state={self.state}, {self.percent_revealed():.1f}%)"
