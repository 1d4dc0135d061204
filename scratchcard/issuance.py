# scratchcard/issuance.py
"""
Draw creation and ticket generation.

Winning tickets carry exactly one winning value, the tile value of their
prize tier, placed along a randomly chosen row, column or diagonal. Losing
tickets have no group where any value reaches the match count. Every ticket
is stored intact with its content digest and issuer seal.
"""
import json
import logging
import random
import uuid
from collections import Counter
from typing import List, Optional

from sqlalchemy.orm import Session

from scratchcard import models
from scratchcard.config import TILE_MAX, TILE_MIN
from scratchcard.crypto import content_digest, sign_ticket
from scratchcard.errors import InputError, ServerFault
from scratchcard.evaluator import group_positions, grid_from_elements, winning_values
from scratchcard.schemas import DrawCreate

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 10_000  # safety cap per grid

_system_random = random.SystemRandom()


def _fill_grid(grid_size_x: int, grid_size_y: int, matching: int, fixed: dict, rng) -> Optional[List[int]]:
    """
    One greedy pass: every free cell gets a value that keeps all of its groups
    below the match count. Returns None when a cell runs out of candidates.
    """
    groups = group_positions(grid_size_x, grid_size_y)
    membership = {}
    for gi, group in enumerate(groups):
        for pos in group:
            membership.setdefault(pos, []).append(gi)

    counts = [Counter() for _ in groups]
    grid = {}
    for pos, value in fixed.items():
        grid[pos] = value
        for gi in membership.get(pos, []):
            counts[gi][value] += 1

    values = list(range(TILE_MIN, TILE_MAX + 1))
    for r in range(grid_size_y):
        for c in range(grid_size_x):
            if (r, c) in grid:
                continue
            candidates = [
                v for v in values
                if all(counts[gi][v] + 1 < matching for gi in membership[(r, c)])
            ]
            if not candidates:
                return None
            value = rng.choice(candidates)
            grid[(r, c)] = value
            for gi in membership[(r, c)]:
                counts[gi][value] += 1

    return [grid[(r, c)] for r in range(grid_size_y) for c in range(grid_size_x)]


def losing_grid(grid_size_x: int, grid_size_y: int, matching: int, rng=None) -> List[int]:
    rng = rng or _system_random
    for _ in range(MAX_ATTEMPTS):
        elements = _fill_grid(grid_size_x, grid_size_y, matching, {}, rng)
        if elements is not None:
            return elements
    raise ServerFault(f"Could not generate a losing {grid_size_x}x{grid_size_y} grid")


def winning_grid(grid_size_x: int, grid_size_y: int, matching: int, tile_value: int, rng=None) -> List[int]:
    rng = rng or _system_random
    lines = [g for g in group_positions(grid_size_x, grid_size_y) if len(g) >= matching]
    if not lines:
        raise InputError(f"No row, column or diagonal can hold {matching} matching tiles")

    for _ in range(MAX_ATTEMPTS):
        line = rng.choice(lines)
        fixed = {pos: tile_value for pos in rng.sample(line, matching)}
        elements = _fill_grid(grid_size_x, grid_size_y, matching, fixed, rng)
        if elements is None:
            continue
        # the fixed tiles may line up in a second group too; only one value may win
        found = winning_values(grid_from_elements(elements, grid_size_x, grid_size_y), matching)
        if set(found) == {tile_value}:
            return elements
    raise ServerFault(f"Could not generate a winning grid for value {tile_value}")


def _check_draw(request: DrawCreate):
    total_winners = sum(t.winners for t in request.tiers)
    if total_winners > request.number_of_tickets:
        raise InputError("Prize tiers have more winners than the draw has tickets")

    longest = max(request.grid_size_x, request.grid_size_y)
    if total_winners and request.matching_tiles_to_win > longest:
        raise InputError("matchingTilesToWin is larger than any row, column or diagonal")
    cells = request.grid_size_x * request.grid_size_y
    if request.matching_tiles_to_win < 2 and (cells > 1 or total_winners < request.number_of_tickets):
        # with one matching tile every filled cell wins
        raise InputError("matchingTilesToWin must be at least 2")

    values = [t.tile_value for t in request.tiers]
    if len(values) != len(set(values)):
        raise InputError("Each prize tier needs its own tile value")


def create_draw(db: Session, request: DrawCreate, rng=None) -> models.Draw:
    """Create a draw with its prize tiers and issue all of its tickets."""
    rng = rng or _system_random
    _check_draw(request)

    draw = models.Draw(
        id=str(uuid.uuid4()),
        name=request.name,
        grid_size_x=request.grid_size_x,
        grid_size_y=request.grid_size_y,
        matching_tiles_to_win=request.matching_tiles_to_win,
        ticket_cost=request.ticket_cost,
        number_of_tickets=request.number_of_tickets,
        tiles_theme=request.tiles_theme,
    )
    tiers = [
        models.PrizeTier(id=str(uuid.uuid4()), name=t.name, tile_value=t.tile_value,
                         amount=t.amount, winners=t.winners)
        for t in request.tiers
    ]
    draw.tiers = tiers
    db.add(draw)

    # one slot per ticket, winners first, then shuffled into positions
    slots = [tier for tier in tiers for _ in range(tier.winners)]
    slots += [None] * (request.number_of_tickets - len(slots))
    rng.shuffle(slots)

    for position, tier in enumerate(slots):
        if tier is None:
            elements = losing_grid(draw.grid_size_x, draw.grid_size_y, draw.matching_tiles_to_win, rng)
        else:
            elements = winning_grid(draw.grid_size_x, draw.grid_size_y, draw.matching_tiles_to_win,
                                    tier.tile_value, rng)
        ticket_id = str(uuid.uuid4())
        digest = content_digest(elements)
        db.add(models.Ticket(
            id=ticket_id,
            draw_id=draw.id,
            grid_elements=json.dumps(elements),
            content_digest=digest,
            seal=sign_ticket(ticket_id, draw.id, digest, tier.id if tier else None),
            status=models.INTACT,
            tier_id=tier.id if tier else None,
            position=position,
        ))

    db.commit()
    db.refresh(draw)
    logger.info("Issued draw %s (%s) with %d tickets, %d winners",
                draw.id, draw.name, draw.number_of_tickets, len(slots) - slots.count(None))
    return draw
