import logging
import math
from typing import Callable, Dict, NamedTuple, Optional, Sequence

from scratchcard.evaluator import cell_id
from scratchcard.reveal import RevealTracker

logger = logging.getLogger(__name__)


class Bounds(NamedTuple):
    left: float
    top: float
    width: float
    height: float


class GridInputRouter:
    """
    Routes one continuous drag over a grid_size_x x grid_size_y grid of cells to
    the tracker under the pointer, in that cell's local pixel coordinates.

    Only a coordinate transform: sampling along the stroke is done by the
    trackers. Strokes never span a cell boundary; entering a cell starts a new
    stroke there.
    """

    def __init__(self, grid_size_x: int, grid_size_y: int, trackers: Dict[str, RevealTracker],
                 bounds: Bounds = None):
        if grid_size_x < 1 or grid_size_y < 1:
            raise ValueError("grid sizes must be positive")
        self.grid_size_x = grid_size_x
        self.grid_size_y = grid_size_y
        self.trackers = trackers
        self.bounds = None
        self._active: Optional[str] = None
        self._dragging = False
        if bounds is not None:
            self.set_bounds(*bounds)

    def set_bounds(self, left: float, top: float, width: float, height: float):
        """Place the grid on screen; trackers keep their progress."""
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid grid size {width}x{height}")
        self.bounds = Bounds(left, top, width, height)
        cell_w = width / self.grid_size_x
        cell_h = height / self.grid_size_y
        for tracker in self.trackers.values():
            tracker.resize(cell_w, cell_h)

    def cell_at(self, x: float, y: float):
        """
        (cell id, local x, local y) under a screen position, or None when the
        position is outside the grid.
        """
        if self.bounds is None:
            return None
        rel_x = (x - self.bounds.left) / self.bounds.width
        rel_y = (y - self.bounds.top) / self.bounds.height
        if not (0.0 <= rel_x <= 1.0 and 0.0 <= rel_y <= 1.0):
            return None

        col = min(int(math.floor(rel_x * self.grid_size_x)), self.grid_size_x - 1)
        row = min(int(math.floor(rel_y * self.grid_size_y)), self.grid_size_y - 1)
        cid = cell_id(row, col)
        tracker = self.trackers.get(cid)
        if tracker is None or not tracker.initialized:
            return None
        local_x = (rel_x * self.grid_size_x - col) * tracker.width
        local_y = (rel_y * self.grid_size_y - row) * tracker.height
        return cid, local_x, local_y

    def pointer_down(self, x: float, y: float):
        self._dragging = True
        self._active = None
        self._route(x, y)

    def pointer_move(self, x: float, y: float):
        if not self._dragging:
            return
        self._route(x, y)

    def pointer_up(self):
        self._dragging = False
        self._leave()

    def _route(self, x, y):
        hit = self.cell_at(x, y)
        if hit is None:
            # outside the grid: drop the stroke, re-entry starts a new one
            if self._active is not None:
                logger.debug("Pointer left the grid at (%.1f, %.1f), ending stroke in %s", x, y, self._active)
            self._leave()
            return

        cid, local_x, local_y = hit
        tracker = self.trackers[cid]
        if cid != self._active:
            self._leave()
            self._active = cid
            tracker.pointer_down(local_x, local_y)
        else:
            tracker.pointer_move(local_x, local_y)

    def _leave(self):
        if self._active is not None:
            self.trackers[self._active].pointer_up()
            self._active = None


def build_board(
    grid_size_x: int,
    grid_size_y: int,
    values: Sequence[int],
    on_reveal: Callable[[str, int], None] = None,
    on_progress: Callable[[str, float], None] = None,
    cell_width: float = 100.0,
    cell_height: float = 100.0,
    **tracker_options,
) -> GridInputRouter:
    """Trackers for a row-major grid of values behind one router."""
    if len(values) != grid_size_x * grid_size_y:
        raise ValueError(f"Expected {grid_size_x * grid_size_y} values, got {len(values)}")

    trackers = {}
    for row in range(grid_size_y):
        for col in range(grid_size_x):
            cid = cell_id(row, col)
            trackers[cid] = RevealTracker(
                cid, values[row * grid_size_x + col],
                on_reveal=on_reveal, on_progress=on_progress,
                width=cell_width, height=cell_height,
                **tracker_options,
            )
    return GridInputRouter(
        grid_size_x, grid_size_y, trackers,
        Bounds(0.0, 0.0, cell_width * grid_size_x, cell_height * grid_size_y),
    )
