import json
import uuid
from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, ForeignKey, Text
from sqlalchemy.orm import relationship

from .db import Base

# Ticket status values
INTACT = "intact"
PURCHASED = "purchased"
SCRATCHED = "scratched"


def _uuid():
    return str(uuid.uuid4())


class Player(Base):
    __tablename__ = "players"
    id = Column(String, primary_key=True, default=_uuid)
    email = Column(String, unique=True, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    tickets = relationship("Ticket", back_populates="player")


class Draw(Base):
    __tablename__ = "draws"
    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    grid_size_x = Column(Integer, nullable=False, default=3)
    grid_size_y = Column(Integer, nullable=False, default=3)
    matching_tiles_to_win = Column(Integer, nullable=False, default=3)
    ticket_cost = Column(Float, nullable=False, default=1.0)
    number_of_tickets = Column(Integer, nullable=False)
    tiles_theme = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    tiers = relationship("PrizeTier", back_populates="draw", cascade="all, delete-orphan",
                         order_by="PrizeTier.amount")
    tickets = relationship("Ticket", back_populates="draw", cascade="all, delete-orphan")

    @property
    def cell_count(self) -> int:
        return self.grid_size_x * self.grid_size_y


class PrizeTier(Base):
    __tablename__ = "prize_tiers"
    id = Column(String, primary_key=True, default=_uuid)
    draw_id = Column(String, ForeignKey("draws.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    tile_value = Column(Integer, nullable=False)
    amount = Column(Float, nullable=False)
    winners = Column(Integer, nullable=False, default=0)

    draw = relationship("Draw", back_populates="tiers")


class Ticket(Base):
    __tablename__ = "tickets"
    id = Column(String, primary_key=True, default=_uuid)
    draw_id = Column(String, ForeignKey("draws.id"), nullable=False, index=True)
    grid_elements = Column(Text, nullable=False)  # JSON array, row-major
    content_digest = Column(String, nullable=False, index=True)
    seal = Column(Text, nullable=False)
    status = Column(String, nullable=False, default=INTACT, index=True)
    tier_id = Column(String, ForeignKey("prize_tiers.id"), nullable=True)
    position = Column(Integer, nullable=False)
    purchased_by = Column(String, ForeignKey("players.id"), nullable=True, index=True)
    date_created = Column(DateTime, default=datetime.utcnow)

    draw = relationship("Draw", back_populates="tickets")
    tier = relationship("PrizeTier")
    player = relationship("Player", back_populates="tickets")
    validations = relationship("Validation", back_populates="ticket", cascade="all, delete-orphan")

    @property
    def grid(self):
        return json.loads(self.grid_elements)


class Validation(Base):
    __tablename__ = "validations"
    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(String, ForeignKey("tickets.id"), nullable=False, index=True)
    player_id = Column(String, ForeignKey("players.id"), nullable=True)
    valid = Column(Boolean, nullable=False)
    won = Column(Boolean, nullable=False)
    prize = Column(String, nullable=True)
    validated_at = Column(DateTime, default=datetime.utcnow)

    ticket = relationship("Ticket", back_populates="validations")
