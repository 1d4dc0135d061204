# scratchcard/session.py
"""
Player-side game session.

GameSessionController owns the player's unscratched tickets (a carousel), one
RevealState and one scratch board per ticket, and the result state machine:

    none -> readyToReveal -> transitioning -> winning | losing -> none

Reveal progress is kept per ticket id, so moving between tickets never loses
scratching done on the others.
"""
import logging
from typing import Callable, Dict, List, Optional

from scratchcard import models
from scratchcard.errors import InputError, ScratchcardError
from scratchcard.grid_input import GridInputRouter, build_board
from scratchcard.schemas import TicketOut, ValidationResult

logger = logging.getLogger(__name__)

NONE = "none"
READY_TO_REVEAL = "readyToReveal"
TRANSITIONING = "transitioning"
WINNING = "winning"
LOSING = "losing"


class SessionContext:
    """Who is playing. Created at login, cleared at logout."""

    def __init__(self, player_id: str, email: str):
        self.player_id = player_id
        self.email = email

    @property
    def active(self) -> bool:
        return self.player_id is not None

    def clear(self):
        self.player_id = None
        self.email = None

    def __repr__(self):
        return f"SessionContext(player_id={self.player_id!r}, email={self.email!r})"


class RevealState:
    def __init__(self):
        self.revealed_numbers: Dict[str, int] = {}
        self.percent_revealed_by_cell: Dict[str, float] = {}

    def record_reveal(self, cell_id: str, value: int):
        # set once, never overwritten
        self.revealed_numbers.setdefault(cell_id, value)

    def record_progress(self, cell_id: str, percent: float):
        self.percent_revealed_by_cell[cell_id] = max(percent, self.percent_revealed_by_cell.get(cell_id, 0.0))

    def snapshot(self) -> "RevealState":
        copy = RevealState()
        copy.revealed_numbers = dict(self.revealed_numbers)
        copy.percent_revealed_by_cell = dict(self.percent_revealed_by_cell)
        return copy


class GameSessionController:
    def __init__(
        self,
        api,
        context: SessionContext,
        cell_width: float = 100.0,
        cell_height: float = 100.0,
        tracker_options: dict = None,
        on_tickets_exhausted: Callable[[], None] = None,
    ):
        self.api = api
        self.context = context
        self.cell_width = cell_width
        self.cell_height = cell_height
        self.tracker_options = tracker_options or {}
        self.on_tickets_exhausted = on_tickets_exhausted

        self.tickets: List[TicketOut] = []
        self.index = 0
        self.phase = NONE
        self.submitting = False
        self.last_result: Optional[ValidationResult] = None
        self.last_error: Optional[str] = None
        self.tickets_exhausted = False

        self._states: Dict[str, RevealState] = {}
        self._boards: Dict[str, GridInputRouter] = {}
        self._results: Dict[str, ValidationResult] = {}

    # ---------- tickets ----------
    async def load_tickets(self) -> Optional[List[TicketOut]]:
        """
        Fetch the player's purchased tickets. Network failures are reported in
        `last_error` and leave the current tickets and progress untouched.
        """
        if not self.context.active:
            raise InputError("Not logged in")
        try:
            tickets = await self.api.fetch_tickets(self.context.player_id, status=models.PURCHASED)
        except ScratchcardError as exc:
            logger.warning("Could not load tickets: %s", exc.message)
            self.last_error = exc.message
            return None
        self.last_error = None
        self.set_tickets(tickets)
        return tickets

    def set_tickets(self, tickets: List[TicketOut]):
        """Replace the carousel, keeping progress for tickets still present."""
        active_id = self.active_ticket.id if self.active_ticket else None
        self.tickets = list(tickets)
        ids = {t.id for t in self.tickets}
        for store in (self._states, self._boards, self._results):
            for stale in [tid for tid in store if tid not in ids]:
                del store[stale]

        self.index = next((i for i, t in enumerate(self.tickets) if t.id == active_id), 0)
        self.tickets_exhausted = not self.tickets
        self._sync_phase()

    @property
    def active_ticket(self) -> Optional[TicketOut]:
        if 0 <= self.index < len(self.tickets):
            return self.tickets[self.index]
        return None

    def select(self, index: int) -> TicketOut:
        if not 0 <= index < len(self.tickets):
            raise IndexError(f"No ticket at position {index}")
        self.index = index
        self.last_error = None
        self._sync_phase()
        return self.tickets[index]

    def next_ticket(self) -> Optional[TicketOut]:
        if not self.tickets:
            return None
        return self.select((self.index + 1) % len(self.tickets))

    def previous_ticket(self) -> Optional[TicketOut]:
        if not self.tickets:
            return None
        return self.select((self.index - 1) % len(self.tickets))

    def remaining_tickets(self) -> List[TicketOut]:
        return [t for t in self.tickets if not self._finished(t)]

    def _finished(self, ticket: TicketOut) -> bool:
        return ticket.status == models.SCRATCHED or ticket.id in self._results

    # ---------- reveal progress ----------
    def reveal_state(self, ticket_id: str = None) -> RevealState:
        ticket_id = ticket_id or self._require_active().id
        return self._states.setdefault(ticket_id, RevealState())

    def board(self, ticket_id: str = None) -> GridInputRouter:
        """
        Scratch board for a ticket, built on first use. Cells already in the
        ticket's RevealState are force-revealed so a resumed ticket shows them.
        """
        ticket = self._ticket(ticket_id) if ticket_id else self._require_active()
        board = self._boards.get(ticket.id)
        if board is None:
            draw = ticket.draw
            board = build_board(
                draw.grid_size_x, draw.grid_size_y, ticket.grid_elements,
                on_reveal=lambda cid, value, tid=ticket.id: self._on_reveal(tid, cid, value),
                on_progress=lambda cid, pct, tid=ticket.id: self.reveal_state(tid).record_progress(cid, pct),
                cell_width=self.cell_width, cell_height=self.cell_height,
                **self.tracker_options,
            )
            self._boards[ticket.id] = board
            for cid in list(self.reveal_state(ticket.id).revealed_numbers):
                board.trackers[cid].force_reveal()
        return board

    def drop_board(self, ticket_id: str = None):
        """Forget a ticket's board when its view goes away; progress is kept."""
        ticket_id = ticket_id or self._require_active().id
        self._boards.pop(ticket_id, None)

    def resize_cells(self, width: float, height: float):
        """New cell size for every board; scratch progress is kept."""
        self.cell_width = width
        self.cell_height = height
        for board in self._boards.values():
            board.set_bounds(0.0, 0.0, width * board.grid_size_x, height * board.grid_size_y)

    def reset_ticket(self, ticket_id: str = None):
        """Throw away a ticket's progress; its board is rebuilt on next use."""
        ticket_id = ticket_id or self._require_active().id
        self._states.pop(ticket_id, None)
        self._boards.pop(ticket_id, None)
        if self.active_ticket and self.active_ticket.id == ticket_id and not self.submitting:
            self._sync_phase()

    def is_complete(self, ticket: TicketOut = None) -> bool:
        ticket = ticket or self.active_ticket
        if ticket is None:
            return False
        total = ticket.draw.grid_size_x * ticket.draw.grid_size_y
        return len(self.reveal_state(ticket.id).revealed_numbers) >= total

    def _on_reveal(self, ticket_id: str, cell_id: str, value: int):
        self.reveal_state(ticket_id).record_reveal(cell_id, value)
        active = self.active_ticket
        if active is not None and active.id == ticket_id and self.phase == NONE:
            self._sync_phase()

    def _sync_phase(self):
        ticket = self.active_ticket
        if ticket is not None and not self._finished(ticket) and self.is_complete(ticket):
            self.phase = READY_TO_REVEAL
        else:
            self.phase = NONE

    # ---------- validation ----------
    @property
    def can_validate(self) -> bool:
        ticket = self.active_ticket
        return (
            ticket is not None
            and not self.submitting
            and self.phase in (READY_TO_REVEAL, NONE)
            and not self._finished(ticket)
            and self.is_complete(ticket)
        )

    async def confirm(self) -> Optional[ValidationResult]:
        """
        Submit the active ticket for validation. Returns None when submission
        is not allowed, failed, or the player moved to another ticket before
        the response arrived.
        """
        if not self.can_validate:
            return None

        ticket = self.active_ticket
        revealed = dict(self.reveal_state(ticket.id).revealed_numbers)
        self.submitting = True
        self.phase = TRANSITIONING
        self.last_error = None
        try:
            result = await self.api.validate_game(revealed, ticket, ticket.draw.matching_tiles_to_win)
        except ScratchcardError as exc:
            logger.warning("Validation of ticket %s failed: %s", ticket.id, exc.message)
            if self._is_active(ticket):
                self.last_error = exc.message
                self._sync_phase()
            return None
        finally:
            self.submitting = False

        if result.success and result.valid:
            self._results[ticket.id] = result
            ticket.status = models.SCRATCHED

        if not self._is_active(ticket):
            logger.info("Ignoring validation result for ticket %s, no longer active", ticket.id)
            self._sync_phase()
            return None

        if not result.success:
            self.last_error = result.message
            self._sync_phase()
            return result
        if not result.valid:
            self.last_error = "Ticket is not fully revealed"
            self.phase = NONE
            return result

        self.last_result = result
        self.phase = WINNING if result.won else LOSING
        return result

    def close_result(self) -> Optional[TicketOut]:
        """
        Dismiss the winning/losing notice and move on to the next unfinished
        ticket. Returns None (and fires on_tickets_exhausted) when none is left.
        """
        if self.phase not in (WINNING, LOSING):
            return self.active_ticket
        self.phase = NONE
        self.last_result = None

        count = len(self.tickets)
        for step in range(1, count + 1):
            i = (self.index + step) % count
            if not self._finished(self.tickets[i]):
                return self.select(i)

        self.tickets_exhausted = True
        logger.info("No tickets remain for player %s", self.context.player_id)
        if self.on_tickets_exhausted is not None:
            self.on_tickets_exhausted()
        return None

    def result_for(self, ticket_id: str) -> Optional[ValidationResult]:
        return self._results.get(ticket_id)

    # ---------- helpers ----------
    def _is_active(self, ticket: TicketOut) -> bool:
        active = self.active_ticket
        return active is not None and active.id == ticket.id

    def _require_active(self) -> TicketOut:
        ticket = self.active_ticket
        if ticket is None:
            raise InputError("No active ticket")
        return ticket

    def _ticket(self, ticket_id: str) -> TicketOut:
        for ticket in self.tickets:
            if ticket.id == ticket_id:
                return ticket
        raise InputError(f"Unknown ticket {ticket_id}")
