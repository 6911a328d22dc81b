"""Error taxonomy shared by the engine and the HTTP layer.

Every error carries a stable ``code`` (the class name) and the HTTP status the
routers answer with. Messages are safe to show to the user; persistence detail
is logged, never put into a message.
"""

from fastapi import status


class CasinoError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(CasinoError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class InsufficientFunds(CasinoError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Insufficient balance"


class AlreadyClaimed(CasinoError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Daily bonus already claimed"


class Unauthorized(CasinoError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class GameNotFound(CasinoError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Game not found"


class CaseNotFound(CasinoError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Case type not found"


class GameInProgress(CasinoError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "A game is already in progress"


class GameAlreadyCompleted(CasinoError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Game already completed"


class DuplicateInProgress(CasinoError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Request already in progress"


class SettlementFailure(CasinoError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Settlement failed, nothing was charged"
