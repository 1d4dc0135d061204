from collections import Counter
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from scratchcard.config import DEFAULT_MATCHING_TILES

EMPTY = 0  # never a tile value


class Evaluation(NamedTuple):
    is_valid: bool
    has_won: bool
    winning_value: Optional[int]


def cell_id(row: int, col: int) -> str:
    return f"{row}-{col}"


def parse_cell_id(cid: str):
    """Return (row, col) for a "row-col" id, or None if it is malformed."""
    try:
        row, col = cid.split("-")
        return int(row), int(col)
    except (AttributeError, ValueError):
        return None


def grid_from_revealed(revealed: Dict[str, int], grid_size_x: int, grid_size_y: int) -> List[List[int]]:
    """Place revealed values on a grid; unrevealed or out of range ids stay EMPTY."""
    grid = [[EMPTY] * grid_size_x for _ in range(grid_size_y)]
    for cid, value in revealed.items():
        pos = parse_cell_id(cid)
        if pos is None:
            continue
        row, col = pos
        if 0 <= row < grid_size_y and 0 <= col < grid_size_x:
            grid[row][col] = value if value is not None else EMPTY
    return grid


def grid_from_elements(elements: Sequence[int], grid_size_x: int, grid_size_y: int) -> List[List[int]]:
    return [list(elements[r * grid_size_x:(r + 1) * grid_size_x]) for r in range(grid_size_y)]


def group_positions(grid_size_x: int, grid_size_y: int) -> List[List[Tuple[int, int]]]:
    """
    (row, col) positions of every tile group: rows, then columns, then the two
    main diagonals. Diagonals only exist on square grids.
    """
    groups = [[(r, c) for c in range(grid_size_x)] for r in range(grid_size_y)]
    groups += [[(r, c) for r in range(grid_size_y)] for c in range(grid_size_x)]
    if grid_size_x == grid_size_y and grid_size_x > 1:
        n = grid_size_x
        groups.append([(i, i) for i in range(n)])
        groups.append([(i, n - 1 - i) for i in range(n)])
    return groups


def tile_groups(grid: List[List[int]]) -> List[List[int]]:
    height = len(grid)
    width = len(grid[0]) if height else 0
    return [[grid[r][c] for r, c in group] for group in group_positions(width, height)]


def winning_values(grid: List[List[int]], matching_tiles_to_win: int = DEFAULT_MATCHING_TILES) -> List[int]:
    """Every value reaching the match count in some group, in scan order."""
    found = []
    for group in tile_groups(grid):
        counts = Counter(v for v in group if v and v != EMPTY)
        for value, count in counts.items():
            if count >= matching_tiles_to_win:
                found.append(value)
    return found


def evaluate(revealed: Dict[str, int], matching_tiles_to_win: int = None,
             grid_size_x: int = 3, grid_size_y: int = 3) -> Evaluation:
    """
    Decide win/loss for a set of revealed values.

    The grid is only valid once every cell has been revealed. All groups are
    scanned; with several winning groups the last one in row, column,
    diagonal order supplies `winning_value`.
    """
    if not matching_tiles_to_win:
        matching_tiles_to_win = DEFAULT_MATCHING_TILES

    grid = grid_from_revealed(revealed, grid_size_x, grid_size_y)
    is_valid = (len(revealed) == grid_size_x * grid_size_y
                and all(v != EMPTY for row in grid for v in row))
    found = winning_values(grid, matching_tiles_to_win)

    winning_value = found[-1] if found else None
    return Evaluation(is_valid=is_valid, has_won=winning_value is not None, winning_value=winning_value)
