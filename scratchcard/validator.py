# scratchcard/validator.py
"""
Server-side ticket validation.

The client's ticket payload is only used to detect tampering: its grid is
hashed and the digest, together with the ticket id, must match a purchased
ticket on record. Everything after that (completeness, prize) comes from the
stored ticket and its draw.
"""
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from scratchcard import models, repository
from scratchcard.crypto import content_digest, verify_seal
from scratchcard.errors import TICKET_NOT_FOUND_MESSAGE, IntegrityError, NotFoundError
from scratchcard.evaluator import cell_id, evaluate, parse_cell_id
from scratchcard.schemas import TicketPayload, ValidationResult

logger = logging.getLogger(__name__)


def format_prize(amount: Optional[float]) -> Optional[str]:
    if amount is None:
        return None
    return f"${amount:,.2f}"


class TicketIntegrityValidator:
    def __init__(self, db: Session):
        self.db = db

    def validate(self, revealed_numbers: Dict[str, int], ticket: TicketPayload,
                 matching_tiles_to_win: int = None):
        """
        Returns (ValidationResult, stored ticket). Raises IntegrityError or
        NotFoundError, both carrying the same generic message.
        """
        stored = self._lookup(ticket)
        draw = stored.draw
        self._check_revealed(revealed_numbers, stored)

        if matching_tiles_to_win and matching_tiles_to_win != draw.matching_tiles_to_win:
            logger.info("Ticket %s: client sent matchingTilesToWin=%s, draw uses %s",
                        stored.id, matching_tiles_to_win, draw.matching_tiles_to_win)

        check = evaluate(revealed_numbers, draw.matching_tiles_to_win, draw.grid_size_x, draw.grid_size_y)

        tier = stored.tier
        won = tier is not None
        winning_value = self._winning_value(stored)
        if won != (winning_value is not None):
            logger.error("Ticket %s: tier %s disagrees with its grid", stored.id, stored.tier_id)

        return ValidationResult(
            success=True,
            valid=check.is_valid,
            won=won,
            prize=format_prize(tier.amount) if won else None,
            winning_value=winning_value if won else None,
        ), stored

    def _lookup(self, ticket: TicketPayload) -> models.Ticket:
        digest = content_digest(ticket.grid_elements)

        known = self.db.get(models.Ticket, ticket.id)
        if known is None:
            logger.warning("Validation for unknown ticket %s", ticket.id)
            raise NotFoundError(TICKET_NOT_FOUND_MESSAGE)
        if known.content_digest != digest:
            logger.warning("Ticket %s: grid digest mismatch", ticket.id)
            raise IntegrityError(TICKET_NOT_FOUND_MESSAGE)

        stored = repository.find_ticket(self.db, ticket.id, digest, models.PURCHASED)
        if stored is None:
            logger.warning("Ticket %s: no purchased ticket matches (status=%s)", ticket.id, known.status)
            raise NotFoundError(TICKET_NOT_FOUND_MESSAGE)

        if not verify_seal(stored.id, stored.draw_id, stored.content_digest, stored.tier_id, stored.seal):
            logger.error("Ticket %s: issuer seal does not verify", stored.id)
            raise IntegrityError(TICKET_NOT_FOUND_MESSAGE)
        return stored

    def _check_revealed(self, revealed_numbers: Dict[str, int], stored: models.Ticket):
        """Every revealed value must be the stored value at that cell."""
        draw = stored.draw
        grid = stored.grid
        for cid, value in revealed_numbers.items():
            pos = parse_cell_id(cid)
            if pos is None:
                raise IntegrityError(TICKET_NOT_FOUND_MESSAGE)
            row, col = pos
            if not (0 <= row < draw.grid_size_y and 0 <= col < draw.grid_size_x) \
                    or grid[row * draw.grid_size_x + col] != value:
                logger.warning("Ticket %s: revealed value at %s does not match", stored.id, cid)
                raise IntegrityError(TICKET_NOT_FOUND_MESSAGE)

    @staticmethod
    def _winning_value(stored: models.Ticket) -> Optional[int]:
        draw = stored.draw
        grid = stored.grid
        full = {
            cell_id(r, c): grid[r * draw.grid_size_x + c]
            for r in range(draw.grid_size_y)
            for c in range(draw.grid_size_x)
        }
        return evaluate(full, draw.matching_tiles_to_win, draw.grid_size_x, draw.grid_size_y).winning_value
