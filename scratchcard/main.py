# scratchcard/main.py
import logging

from fastapi import FastAPI, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from scratchcard import models, repository
from scratchcard.config import configure_logging
from scratchcard.db import SessionLocal, init_db
from scratchcard.errors import (
    TICKET_NOT_FOUND_MESSAGE,
    ConflictError,
    InputError,
    IntegrityError,
    NotFoundError,
    ScratchcardError,
)
from scratchcard.issuance import create_draw
from scratchcard.schemas import (
    DrawCreate,
    DrawEnvelope,
    DrawListOut,
    LoginRequest,
    PlayerEnvelope,
    PlayerOut,
    PurchaseRequest,
    PurchaseResult,
    TicketEnvelope,
    TicketListOut,
    ValidateGameRequest,
    ValidationResult,
    draw_out,
    ticket_out,
)
from scratchcard.validator import TicketIntegrityValidator

configure_logging()
logger = logging.getLogger(__name__)

init_db()
app = FastAPI(title="Scratchcard", description="Scratch ticket game with server-side win validation")

TICKET_STATUSES = (models.INTACT, models.PURCHASED, models.SCRATCHED)

# generic 500 messages, keyed by "METHOD template" or route template
FAILURE_MESSAGES = {
    "/login": "Failed to log in",
    "/draws": "Failed to fetch draws",
    "POST /draws": "Failed to create draw",
    "/tickets": "Failed to fetch tickets",
    "/tickets/{ticket_id}": "Failed to fetch ticket",
    "/validate-game": "Failed to validate game",
    "/purchase": "Failed to purchase tickets",
}


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _envelope(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": code, "message": message})


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def _failure_message(request: Request, path: str) -> str:
    return FAILURE_MESSAGES.get(f"{request.method} {path}") or FAILURE_MESSAGES.get(path, "Failed to process request")


@app.exception_handler(ScratchcardError)
def handle_scratchcard_error(request: Request, exc: ScratchcardError):
    if exc.status_code >= 500:
        path = _route_path(request)
        logger.error("Server fault on %s %s: %s", request.method, path, exc.message)
        return _envelope(exc.status_code, exc.code, _failure_message(request, path))
    return _envelope(exc.status_code, exc.code, exc.message)


@app.exception_handler(RequestValidationError)
def handle_invalid_request(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "request"
        message = f"Invalid {field}: {first.get('msg', 'invalid value')}"
    else:
        message = InputError.default_message
    return _envelope(InputError.status_code, InputError.code, message)


@app.exception_handler(Exception)
def handle_unexpected(request: Request, exc: Exception):
    path = _route_path(request)
    logger.exception("Unhandled error on %s %s", request.method, path)
    return _envelope(500, "server", _failure_message(request, path))


@app.get("/")
def root():
    return {"success": True, "message": "Scratchcard is running"}


@app.post("/login", response_model=PlayerEnvelope)
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Get or create the player for an email address."""
    player = repository.get_or_create_player(db, request.email)
    return PlayerEnvelope(data=PlayerOut(id=player.id, email=player.email))


@app.get("/draws", response_model=DrawListOut)
def list_draws(db: Session = Depends(get_db)):
    return DrawListOut(draws=[draw_out(d) for d in repository.list_draws(db)])


@app.post("/draws", response_model=DrawEnvelope)
def issue_draw(request: DrawCreate, db: Session = Depends(get_db)):
    """Create a draw and issue all of its tickets."""
    draw = create_draw(db, request)
    return DrawEnvelope(data=draw_out(draw))


@app.get("/tickets", response_model=TicketListOut)
def list_tickets(
    player_id: str = Query(..., alias="playerId"),
    status: str = Query(None),
    db: Session = Depends(get_db),
):
    if status and status not in TICKET_STATUSES:
        raise InputError(f"Unknown ticket status {status!r}")
    repository.get_player(db, player_id)
    tickets = repository.list_tickets(db, player_id, status)
    return TicketListOut(tickets=[ticket_out(t) for t in tickets], count=len(tickets))


@app.get("/tickets/{ticket_id}", response_model=TicketEnvelope)
def get_ticket(ticket_id: str, db: Session = Depends(get_db)):
    return TicketEnvelope(data=ticket_out(repository.get_ticket(db, ticket_id)))


@app.post("/purchase", response_model=PurchaseResult)
def purchase(request: PurchaseRequest, db: Session = Depends(get_db)):
    tickets = repository.purchase_tickets(db, request.draw_id, request.player_id, request.num_tickets)
    return PurchaseResult(data=[ticket_out(t) for t in tickets], count=len(tickets))


@app.post("/validate-game", response_model=ValidationResult)
def validate_game(request: ValidateGameRequest, db: Session = Depends(get_db)):
    """
    Validate a fully scratched ticket. A valid result moves the ticket to
    scratched, so the same ticket can never be validated twice.
    """
    rejected = JSONResponse(
        status_code=400,
        content=ValidationResult(success=False, message=TICKET_NOT_FOUND_MESSAGE).model_dump(by_alias=True),
    )
    validator = TicketIntegrityValidator(db)
    try:
        result, stored = validator.validate(request.revealed_numbers, request.ticket,
                                            request.matching_tiles_to_win)
    except (IntegrityError, NotFoundError):
        return rejected

    if result.valid:
        try:
            repository.mark_scratched(db, stored.id)
        except ConflictError:
            logger.warning("Ticket %s was validated concurrently", stored.id)
            return rejected
        repository.record_validation(db, stored, result.valid, result.won, result.prize)
        db.commit()
        logger.info("Ticket %s validated: won=%s prize=%s", stored.id, result.won, result.prize)

    return result
