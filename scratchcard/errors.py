# scratchcard/errors.py
"""
Error taxonomy shared by the API and the player client.

Every error carries the HTTP status it maps to and a short code that travels
in the JSON envelope, so the client can raise the same class on its side.
"""

# Deliberately identical for unknown ids and digest mismatches.
TICKET_NOT_FOUND_MESSAGE = "Ticket not found with the provided details"


class ScratchcardError(Exception):
    status_code = 500
    code = "server"
    default_message = "Unexpected error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InputError(ScratchcardError):
    status_code = 400
    code = "input"
    default_message = "Invalid request"


class IntegrityError(ScratchcardError):
    status_code = 400
    code = "integrity"
    default_message = TICKET_NOT_FOUND_MESSAGE


class NotFoundError(ScratchcardError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class InventoryError(ScratchcardError):
    status_code = 400
    code = "inventory"
    default_message = "Not enough tickets available"


class ConflictError(ScratchcardError):
    """A conditional status update matched no row."""
    status_code = 409
    code = "conflict"
    default_message = "Ticket was modified by another request"


class ServerFault(ScratchcardError):
    status_code = 500
    code = "server"


class TransientNetworkError(ScratchcardError):
    """Raised by the player client when the API could not be reached."""
    status_code = 503
    code = "network"
    default_message = "Could not reach the game server"


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (InputError, IntegrityError, NotFoundError, InventoryError, ConflictError, ServerFault)
}
