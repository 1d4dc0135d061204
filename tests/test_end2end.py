from fastapi.testclient import TestClient

from conftest import buy, issue_draw, login, revealed_map
from sqlalchemy import update

from scratchcard import main, models, repository
from scratchcard.db import SessionLocal
from scratchcard.errors import ServerFault
from scratchcard.main import app
from scratchcard.validator import TicketIntegrityValidator

client = TestClient(app)


def winning_and_losing(tickets):
    winner = next(t for t in tickets if t["tierId"])
    loser = next(t for t in tickets if not t["tierId"])
    return winner, loser


def validate(ticket, revealed=None, **ticket_overrides):
    payload_ticket = {"id": ticket["id"], "gridElements": ticket["gridElements"], "drawId": ticket["drawId"]}
    payload_ticket.update(ticket_overrides)
    return client.post("/validate-game", json={
        "revealedNumbers": revealed if revealed is not None else revealed_map(ticket),
        "ticket": payload_ticket,
        "matchingTilesToWin": ticket["draw"]["matchingTilesToWin"],
    })


def test_login_is_idempotent_per_email():
    first = login(client, "A@Example.com")
    second = login(client, "a@example.com")
    assert first["id"] == second["id"]
    assert first["email"] == "a@example.com"


def test_login_rejects_bad_email():
    response = client.post("/login", json={"email": "nope"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "input"


def test_issue_purchase_and_list_tickets():
    draw = issue_draw(client, number_of_tickets=5, winners=2)
    assert draw["gridSizeX"] == 3 and draw["matchingTilesToWin"] == 3
    assert draw["tiers"][0]["tileValue"] == 7

    draws = client.get("/draws").json()
    assert draws["success"] and [d["id"] for d in draws["draws"]] == [draw["id"]]

    player = login(client)
    bought = buy(client, draw["id"], player["id"], 3)
    assert len(bought) == 3
    assert all(t["status"] == "purchased" and t["purchasedBy"] == player["id"] for t in bought)

    listed = client.get("/tickets", params={"playerId": player["id"], "status": "purchased"}).json()
    assert listed["success"] and listed["count"] == 3
    assert listed["tickets"][0]["draw"]["id"] == draw["id"]
    assert len(listed["tickets"][0]["gridElements"]) == 9

    one = client.get(f"/tickets/{bought[0]['id']}").json()
    assert one["success"] and one["data"]["contentDigest"] == bought[0]["contentDigest"]


def test_purchase_more_than_available():
    draw = issue_draw(client, number_of_tickets=2, winners=0)
    player = login(client)
    response = client.post("/purchase", json={"drawId": draw["id"], "playerId": player["id"], "numTickets": 3})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "inventory", "message": "Only 2 tickets available"}

    # nothing was assigned
    listed = client.get("/tickets", params={"playerId": player["id"]}).json()
    assert listed["count"] == 0


def test_purchased_tickets_are_not_sold_twice():
    draw = issue_draw(client, number_of_tickets=3, winners=0)
    alice = login(client, "alice@example.com")
    bob = login(client, "bob@example.com")
    buy(client, draw["id"], alice["id"], 2)
    response = client.post("/purchase", json={"drawId": draw["id"], "playerId": bob["id"], "numTickets": 2})
    assert response.status_code == 400
    assert len(buy(client, draw["id"], bob["id"], 1)) == 1


def test_validate_winning_ticket_then_replay_is_rejected():
    draw = issue_draw(client, number_of_tickets=4, winners=1, amount=100)
    player = login(client)
    winner, _ = winning_and_losing(buy(client, draw["id"], player["id"], 4))

    response = validate(winner)
    assert response.status_code == 200
    assert response.json() == {
        "success": True, "valid": True, "won": True, "prize": "$100.00",
        "winningValue": 7, "message": None,
    }
    assert client.get(f"/tickets/{winner['id']}").json()["data"]["status"] == "scratched"

    replay = validate(winner)
    assert replay.status_code == 400
    assert replay.json()["success"] is False
    assert replay.json()["message"] == "Ticket not found with the provided details"


def test_validate_losing_ticket():
    draw = issue_draw(client, number_of_tickets=3, winners=1)
    player = login(client)
    _, loser = winning_and_losing(buy(client, draw["id"], player["id"], 3))

    body = validate(loser).json()
    assert body["success"] and body["valid"]
    assert body["won"] is False and body["prize"] is None


def test_tampered_grid_is_rejected_even_if_it_would_win():
    draw = issue_draw(client, number_of_tickets=2, winners=1)
    player = login(client)
    _, loser = winning_and_losing(buy(client, draw["id"], player["id"], 2))

    forged = [7, 7, 7] + loser["gridElements"][3:]
    response = validate(loser, revealed={f"{i // 3}-{i % 3}": v for i, v in enumerate(forged)},
                        gridElements=forged)
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["won"] is False
    assert client.get(f"/tickets/{loser['id']}").json()["data"]["status"] == "purchased"


def test_unknown_ticket_and_digest_mismatch_look_the_same():
    draw = issue_draw(client, number_of_tickets=1, winners=0)
    player = login(client)
    ticket = buy(client, draw["id"], player["id"], 1)[0]

    unknown = validate(ticket, id="does-not-exist").json()
    tampered = validate(ticket, gridElements=[v % 9 + 1 for v in ticket["gridElements"]]).json()
    assert unknown == tampered


def test_revealed_values_must_match_the_stored_grid():
    draw = issue_draw(client, number_of_tickets=1, winners=0)
    player = login(client)
    ticket = buy(client, draw["id"], player["id"], 1)[0]

    revealed = revealed_map(ticket)
    revealed["1-1"] = revealed["1-1"] % 9 + 1
    assert validate(ticket, revealed=revealed).status_code == 400


def test_intact_ticket_cannot_be_validated():
    draw = issue_draw(client, number_of_tickets=2, winners=0)
    player = login(client)
    bought = buy(client, draw["id"], player["id"], 1)[0]

    db = SessionLocal()
    try:
        intact = db.query(models.Ticket).filter_by(status="intact").one()
        # a ticket nobody bought yet, presented with a correct grid
        intact_payload = {"id": intact.id, "gridElements": intact.grid, "drawId": intact.draw_id,
                          "draw": bought["draw"]}
    finally:
        db.close()
    response = validate(intact_payload, revealed=revealed_map(intact_payload))
    assert response.status_code == 400


def test_partial_reveal_is_not_valid_and_keeps_the_ticket():
    draw = issue_draw(client, number_of_tickets=1, winners=0)
    player = login(client)
    ticket = buy(client, draw["id"], player["id"], 1)[0]

    revealed = revealed_map(ticket)
    revealed.pop("2-2")
    body = validate(ticket, revealed=revealed).json()
    assert body["success"] is True and body["valid"] is False
    assert client.get(f"/tickets/{ticket['id']}").json()["data"]["status"] == "purchased"

    # finishing the ticket afterwards still works
    assert validate(ticket).json()["valid"] is True


def test_malformed_validation_request():
    response = client.post("/validate-game", json={"revealedNumbers": {"0-0": "seven"}})
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["error"] == "input"


def test_missing_resources():
    assert client.get("/tickets/nope").status_code == 404
    assert client.get("/tickets", params={"playerId": "nobody"}).status_code == 404
    assert client.get("/tickets").status_code == 400
    player = login(client)
    assert client.get("/tickets", params={"playerId": player["id"], "status": "lost"}).status_code == 400
    response = client.post("/purchase", json={"drawId": "nope", "playerId": player["id"], "numTickets": 1})
    assert response.status_code == 404


def test_unexpected_errors_are_generic(monkeypatch):
    def boom(db):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(repository, "list_draws", boom)
    quiet = TestClient(app, raise_server_exceptions=False)
    response = quiet.get("/draws")
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "server", "message": "Failed to fetch draws"}


def test_single_matching_tile_draw_is_an_input_error():
    response = client.post("/draws", json={
        "name": "Ones", "numberOfTickets": 1, "matchingTilesToWin": 1,
        "tiers": [{"name": "Top", "tileValue": 7, "amount": 5, "winners": 1}],
    })
    assert response.status_code == 400
    assert response.json()["error"] == "input"


def test_server_faults_hide_their_details(monkeypatch):
    def cannot_generate(db, request):
        raise ServerFault("Could not generate a winning grid for value 7")

    monkeypatch.setattr(main, "create_draw", cannot_generate)
    response = client.post("/draws", json={"name": "X", "numberOfTickets": 1, "tiers": []})
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "server", "message": "Failed to create draw"}


def test_losing_the_scratch_race_is_rejected(monkeypatch):
    draw = issue_draw(client, number_of_tickets=1, winners=0)
    player = login(client)
    ticket = buy(client, draw["id"], player["id"], 1)[0]

    validate_ticket = TicketIntegrityValidator.validate

    def validate_then_scratch_elsewhere(self, *args, **kwargs):
        result, stored = validate_ticket(self, *args, **kwargs)
        # another request scratches the ticket before this one does
        self.db.execute(update(models.Ticket).where(models.Ticket.id == stored.id)
                        .values(status=models.SCRATCHED))
        return result, stored

    monkeypatch.setattr(TicketIntegrityValidator, "validate", validate_then_scratch_elsewhere)
    response = validate(ticket)
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["message"] == "Ticket not found with the provided details"

    db = SessionLocal()
    try:
        assert db.query(models.Validation).count() == 0
    finally:
        db.close()
