import os

# must be set before scratchcard.db is imported
os.environ["SCRATCHCARD_DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient

from scratchcard.db import Base, engine
from scratchcard.main import app


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    return TestClient(app)


def issue_draw(client, number_of_tickets=4, winners=1, tile_value=7, amount=100, **extra):
    payload = {
        "name": "Lucky Sevens",
        "numberOfTickets": number_of_tickets,
        "ticketCost": 2.0,
        "tiers": [{"name": "Top", "tileValue": tile_value, "amount": amount, "winners": winners}] if winners else [],
    }
    payload.update(extra)
    response = client.post("/draws", json=payload)
    assert response.status_code == 200, response.text
    return response.json()["data"]


def login(client, email="player@example.com"):
    response = client.post("/login", json={"email": email})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def buy(client, draw_id, player_id, n):
    response = client.post("/purchase", json={"drawId": draw_id, "playerId": player_id, "numTickets": n})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def revealed_map(ticket):
    """Every cell of a ticket as revealedNumbers."""
    x = ticket["draw"]["gridSizeX"]
    y = ticket["draw"]["gridSizeY"]
    grid = ticket["gridElements"]
    return {f"{r}-{c}": grid[r * x + c] for r in range(y) for c in range(x)}
