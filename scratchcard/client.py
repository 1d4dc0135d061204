import logging
from typing import Dict, List, Optional

import httpx

from scratchcard.config import API_BASE_URL
from scratchcard.errors import (
    ERRORS_BY_CODE,
    InputError,
    NotFoundError,
    ServerFault,
    TransientNetworkError,
)
from scratchcard.schemas import DrawOut, PlayerEnvelope, TicketOut, ValidationResult
from scratchcard.session import SessionContext

logger = logging.getLogger(__name__)

_ERRORS_BY_STATUS = {400: InputError, 404: NotFoundError}


class GameApiClient:
    """
    Async client for the game API. Transport failures raise
    TransientNetworkError; nothing is retried automatically.
    """

    def __init__(self, base_url: str = API_BASE_URL, transport: httpx.AsyncBaseTransport = None,
                 timeout: float = 10.0):
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransientNetworkError() from exc

    @staticmethod
    def _body(response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_error:
            error_cls = ERRORS_BY_CODE.get(body.get("error")) or _ERRORS_BY_STATUS.get(response.status_code, ServerFault)
            raise error_cls(body.get("message"))
        return body

    # ---------- session ----------
    async def login(self, email: str) -> SessionContext:
        body = self._body(await self._send("POST", "/login", json={"email": email}))
        player = PlayerEnvelope.model_validate(body).data
        return SessionContext(player.id, player.email)

    @staticmethod
    def logout(context: SessionContext):
        context.clear()

    # ---------- draws / tickets ----------
    async def fetch_draws(self) -> List[DrawOut]:
        body = self._body(await self._send("GET", "/draws"))
        return [DrawOut.model_validate(d) for d in body.get("draws", [])]

    async def fetch_tickets(self, player_id: str, status: Optional[str] = None) -> List[TicketOut]:
        params = {"playerId": player_id}
        if status:
            params["status"] = status
        body = self._body(await self._send("GET", "/tickets", params=params))
        return [TicketOut.model_validate(t) for t in body.get("tickets", [])]

    async def fetch_ticket(self, ticket_id: str) -> TicketOut:
        body = self._body(await self._send("GET", f"/tickets/{ticket_id}"))
        return TicketOut.model_validate(body["data"])

    async def purchase(self, draw_id: str, player_id: str, num_tickets: int) -> List[TicketOut]:
        payload = {"drawId": draw_id, "playerId": player_id, "numTickets": num_tickets}
        body = self._body(await self._send("POST", "/purchase", json=payload))
        return [TicketOut.model_validate(t) for t in body.get("data", [])]

    # ---------- validation ----------
    async def validate_game(self, revealed_numbers: Dict[str, int], ticket: TicketOut,
                            matching_tiles_to_win: int = None) -> ValidationResult:
        """A rejected ticket comes back as ValidationResult(success=False)."""
        payload = {
            "revealedNumbers": revealed_numbers,
            "ticket": {
                "id": ticket.id,
                "drawId": ticket.draw_id,
                "gridElements": list(ticket.grid_elements),
                "contentDigest": ticket.content_digest,
            },
            "matchingTilesToWin": matching_tiles_to_win,
        }
        response = await self._send("POST", "/validate-game", json=payload)
        if response.status_code == 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            if "valid" in body:
                return ValidationResult.model_validate(body)
        return ValidationResult.model_validate(self._body(response))
