import logging
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, selectinload

from scratchcard import models
from scratchcard.errors import ConflictError, InventoryError, NotFoundError

logger = logging.getLogger(__name__)


def get_or_create_player(db: Session, email: str) -> models.Player:
    player = db.query(models.Player).filter_by(email=email).first()
    if player:
        return player
    player = models.Player(email=email)
    db.add(player)
    db.commit()
    db.refresh(player)
    logger.info("New player created: %s", player.id)
    return player


def get_player(db: Session, player_id: str) -> models.Player:
    player = db.get(models.Player, player_id)
    if not player:
        raise NotFoundError("Player not found")
    return player


def list_draws(db: Session) -> List[models.Draw]:
    return (
        db.query(models.Draw)
        .options(selectinload(models.Draw.tiers))
        .order_by(models.Draw.created_at.desc())
        .all()
    )


def get_draw(db: Session, draw_id: str) -> models.Draw:
    draw = db.get(models.Draw, draw_id)
    if not draw:
        raise NotFoundError("Draw not found")
    return draw


def list_tickets(db: Session, player_id: str, status: Optional[str] = None) -> List[models.Ticket]:
    query = (
        db.query(models.Ticket)
        .options(selectinload(models.Ticket.draw).selectinload(models.Draw.tiers))
        .filter(models.Ticket.purchased_by == player_id)
    )
    if status:
        query = query.filter(models.Ticket.status == status)
    return query.order_by(models.Ticket.draw_id, models.Ticket.position).all()


def get_ticket(db: Session, ticket_id: str) -> models.Ticket:
    ticket = db.get(models.Ticket, ticket_id)
    if not ticket:
        raise NotFoundError("Ticket not found")
    return ticket


def find_ticket(db: Session, ticket_id: str, digest: str, status: str) -> Optional[models.Ticket]:
    """Compound lookup: id, content digest and expected status must all match."""
    return (
        db.query(models.Ticket)
        .filter_by(id=ticket_id, content_digest=digest, status=status)
        .first()
    )


def _transition(db: Session, ticket_id: str, expected: str, **values) -> bool:
    """
    Conditional status update. Only succeeds when the row still has the
    expected status, so two concurrent requests cannot both win the race.
    """
    result = db.execute(
        update(models.Ticket)
        .where(models.Ticket.id == ticket_id, models.Ticket.status == expected)
        .values(**values)
    )
    return result.rowcount == 1


def purchase_tickets(db: Session, draw_id: str, player_id: str, num_tickets: int) -> List[models.Ticket]:
    """Assign `num_tickets` intact tickets of a draw to a player, all or nothing."""
    get_draw(db, draw_id)
    get_player(db, player_id)

    candidates = (
        db.query(models.Ticket.id)
        .filter_by(draw_id=draw_id, status=models.INTACT)
        .order_by(models.Ticket.position)
        .all()
    )
    if len(candidates) < num_tickets:
        raise InventoryError(f"Only {len(candidates)} tickets available")

    claimed = []
    for (ticket_id,) in candidates:
        if _transition(db, ticket_id, models.INTACT, status=models.PURCHASED, purchased_by=player_id):
            claimed.append(ticket_id)
            if len(claimed) == num_tickets:
                break

    if len(claimed) < num_tickets:
        db.rollback()
        raise InventoryError(f"Only {len(claimed)} tickets available")

    db.commit()
    logger.info("Player %s purchased %d tickets from draw %s", player_id, num_tickets, draw_id)
    return (
        db.query(models.Ticket)
        .filter(models.Ticket.id.in_(claimed))
        .order_by(models.Ticket.position)
        .all()
    )


def mark_scratched(db: Session, ticket_id: str):
    """purchased -> scratched, once. A second call raises ConflictError."""
    if not _transition(db, ticket_id, models.PURCHASED, status=models.SCRATCHED):
        db.rollback()
        raise ConflictError()


def record_validation(db: Session, ticket: models.Ticket, valid: bool, won: bool, prize: Optional[str]):
    db.add(models.Validation(ticket_id=ticket.id, player_id=ticket.purchased_by,
                             valid=valid, won=won, prize=prize))
