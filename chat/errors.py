# chat/errors.py
"""Error taxonomy shared by the gate, the store and the orchestrator.

Every error knows its HTTP status and renders as ``{"error": ..., "details": ...}``.
"""
from typing import Any, Optional


class ChatError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, details: Any = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        # set by the orchestrator to the state the request failed in
        self.state = None
        super().__init__(self.message)

    def to_payload(self) -> dict:
        payload = {"error": self.message}
        if self.details not in (None, "", {}):
            payload["details"] = self.details
        return payload


class BadRequest(ChatError):
    status_code = 400
    default_message = "Bad request."


class Unauthorized(ChatError):
    status_code = 401
    default_message = "Unauthorized"

    NO_TOKEN = "no_token"
    INVALID_TOKEN = "invalid_token"

    def __init__(self, message: Optional[str] = None, *, reason: str = INVALID_TOKEN, **kwargs):
        super().__init__(message, **kwargs)
        self.reason = reason

    @classmethod
    def no_token(cls) -> "Unauthorized":
        return cls("Unauthorized: No token provided", reason=cls.NO_TOKEN)

    @classmethod
    def invalid_token(cls) -> "Unauthorized":
        return cls("Unauthorized: Invalid token", reason=cls.INVALID_TOKEN)


class Forbidden(ChatError):
    status_code = 403
    default_message = "Forbidden."


class UpstreamError(ChatError):
    status_code = 500
    default_message = "Failed to fetch AI response"


class StoreError(ChatError):
    status_code = 500
    default_message = "Failed to save chat."


class SessionNotFound(StoreError):
    status_code = 404
    default_message = "Chat not found."


class RatingExists(StoreError):
    status_code = 409
    default_message = "This response has already been rated."
