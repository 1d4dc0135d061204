# scratchcard/schemas.py
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from scratchcard.config import DEFAULT_MATCHING_TILES, TILE_MAX, TILE_MIN


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ---------- players ----------
class LoginRequest(WireModel):
    email: str

    @field_validator("email")
    @classmethod
    def _email_shape(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Invalid email address")
        return v


class PlayerOut(WireModel):
    id: str
    email: str


class PlayerEnvelope(WireModel):
    success: bool = True
    data: PlayerOut


# ---------- draws ----------
class PrizeTierIn(WireModel):
    name: str
    tile_value: int = Field(ge=TILE_MIN, le=TILE_MAX)
    amount: float = Field(gt=0)
    winners: int = Field(default=0, ge=0)


class PrizeTierOut(PrizeTierIn):
    id: str


class DrawCreate(WireModel):
    name: str
    grid_size_x: int = Field(default=3, ge=1, le=9)
    grid_size_y: int = Field(default=3, ge=1, le=9)
    matching_tiles_to_win: int = Field(default=DEFAULT_MATCHING_TILES, ge=1)
    ticket_cost: float = Field(default=1.0, ge=0)
    number_of_tickets: int = Field(gt=0, le=100000)
    tiles_theme: Optional[str] = None
    tiers: List[PrizeTierIn] = []


class DrawOut(WireModel):
    id: str
    name: str
    grid_size_x: int
    grid_size_y: int
    matching_tiles_to_win: int
    ticket_cost: float
    number_of_tickets: int
    tiles_theme: Optional[str] = None
    tiers: List[PrizeTierOut] = []


class DrawEnvelope(WireModel):
    success: bool = True
    data: DrawOut


class DrawListOut(WireModel):
    success: bool = True
    draws: List[DrawOut]


# ---------- tickets ----------
class TicketOut(WireModel):
    id: str
    draw_id: str
    grid_elements: List[int]
    content_digest: str
    status: str
    tier_id: Optional[str] = None
    position: int
    purchased_by: Optional[str] = None
    date_created: Optional[datetime] = None
    draw: DrawOut


class TicketEnvelope(WireModel):
    success: bool = True
    data: TicketOut


class TicketListOut(WireModel):
    success: bool = True
    tickets: List[TicketOut]
    count: int


class PurchaseRequest(WireModel):
    draw_id: str
    player_id: str
    num_tickets: int = Field(gt=0, le=100)


class PurchaseResult(WireModel):
    success: bool = True
    data: List[TicketOut]
    count: int


# ---------- validation ----------
class TicketPayload(WireModel):
    """The ticket as the client holds it. Advisory only."""
    id: str
    grid_elements: List[int]
    draw_id: Optional[str] = None
    content_digest: Optional[str] = None


class ValidateGameRequest(WireModel):
    revealed_numbers: Dict[str, int]
    ticket: TicketPayload
    matching_tiles_to_win: Optional[int] = Field(default=None, ge=1)


class ValidationResult(WireModel):
    success: bool
    valid: bool = False
    won: bool = False
    prize: Optional[str] = None
    winning_value: Optional[int] = None
    message: Optional[str] = None


# ---------- serializers ----------
def draw_out(draw) -> DrawOut:
    return DrawOut(
        id=draw.id,
        name=draw.name,
        grid_size_x=draw.grid_size_x,
        grid_size_y=draw.grid_size_y,
        matching_tiles_to_win=draw.matching_tiles_to_win,
        ticket_cost=draw.ticket_cost,
        number_of_tickets=draw.number_of_tickets,
        tiles_theme=draw.tiles_theme,
        tiers=[
            PrizeTierOut(id=t.id, name=t.name, tile_value=t.tile_value, amount=t.amount, winners=t.winners)
            for t in draw.tiers
        ],
    )


def ticket_out(ticket) -> TicketOut:
    return TicketOut(
        id=ticket.id,
        draw_id=ticket.draw_id,
        grid_elements=ticket.grid,
        content_digest=ticket.content_digest,
        status=ticket.status,
        tier_id=ticket.tier_id,
        position=ticket.position,
        purchased_by=ticket.purchased_by,
        date_created=ticket.date_created,
        draw=draw_out(ticket.draw),
    )
