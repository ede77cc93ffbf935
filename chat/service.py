# chat/service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Callable, List, Optional, Protocol

from .errors import BadRequest, ChatError, UpstreamError
from .llm import GatewayError, GatewayUnreachable, InvalidCredential
from .store import SessionSummary, Turn

log = logging.getLogger(__name__)


# =========================
# Ports (Interfaces)
# =========================

class Gate(Protocol):
    def authenticate(self, authorization: Optional[str]): ...


class TextGenerator(Protocol):
    def complete(self, message: str) -> str: ...


class TurnStore(Protocol):
    def create_session(self, user_id: str, turn: Turn) -> str: ...
    def append_turn(self, session_id, user_id: str, turn: Turn) -> str: ...
    def list_sessions(self, user_id: str) -> List[SessionSummary]: ...


# publisher(user_id, chat_id=..., message=..., ai_response=...)
Publisher = Callable[..., None]


class ChatState(str, Enum):
    VALIDATING = "validating"
    AUTHENTICATING = "authenticating"
    GENERATING = "generating"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ChatResult:
    chat_id: str
    answer: str

    def as_dict(self) -> dict:
        return {"chat_id": self.chat_id, "answer": self.answer}


def upstream_error(exc: GatewayError) -> UpstreamError:
    """Map a gateway failure to what the caller sees."""
    if isinstance(exc, InvalidCredential):
        return UpstreamError(
            "Invalid API key for the model gateway.", details=exc.details, status_code=401
        )
    if isinstance(exc, GatewayUnreachable):
        return UpstreamError("Model gateway is unreachable.", details=exc.details)
    return UpstreamError("Failed to fetch AI response", details=exc.details or str(exc))


class _Run:
    """State of a single /chat request."""

    def __init__(self):
        self.state = ChatState.VALIDATING

    def advance(self, state: ChatState) -> None:
        log.debug("chat_state %s -> %s", self.state.value, state.value)
        self.state = state

    def fail(self, err: ChatError) -> ChatError:
        err.state = self.state
        log.info("chat_failed state=%s status=%s error=%s", self.state.value, err.status_code, err.message)
        self.state = ChatState.FAILED
        return err


class ChatOrchestrator:
    """Validate → authenticate → generate → persist, strictly in that order.

    No gateway call is made for an unauthenticated caller and nothing is
    stored unless the gateway produced an answer.
    """

    def __init__(self, gate: Gate, gateway: TextGenerator, store: TurnStore, publisher: Optional[Publisher] = None):
        self.gate = gate
        self.gateway = gateway
        self.store = store
        self.publisher = publisher

    def handle(self, *, authorization: Optional[str], message, chat_id=None) -> ChatResult:
        run = _Run()

        text = message.strip() if isinstance(message, str) else ""
        if not text:
            raise run.fail(BadRequest("Message is required."))

        run.advance(ChatState.AUTHENTICATING)
        try:
            principal = self.gate.authenticate(authorization)
        except ChatError as e:
            raise run.fail(e)

        run.advance(ChatState.GENERATING)
        try:
            answer = self.gateway.complete(text)
        except GatewayError as e:
            log.warning("gateway failed for user=%s: %s (%s)", principal.id, e, e.details)
            raise run.fail(upstream_error(e))

        run.advance(ChatState.PERSISTING)
        turn = Turn(user_message=text, ai_response=answer)
        try:
            if chat_id:
                chat_id = self.store.append_turn(chat_id, principal.id, turn)
            else:
                chat_id = self.store.create_session(principal.id, turn)
        except ChatError as e:
            raise run.fail(e)

        run.advance(ChatState.COMPLETED)
        self._publish(principal.id, chat_id, turn)
        return ChatResult(chat_id=chat_id, answer=answer)

    def _publish(self, user_id: str, chat_id: str, turn: Turn) -> None:
        if self.publisher is None:
            return
        try:
            self.publisher(user_id, chat_id=chat_id, message=turn.user_message, ai_response=turn.ai_response)
        except Exception:
            log.exception("realtime publish failed chat=%s", chat_id)


@lru_cache(maxsize=1)
def get_orchestrator() -> ChatOrchestrator:
    from authentication.gate import get_gate
    from fanout.triggers import notify_new_message
    from .llm import get_gateway_client
    from .store import SessionStore

    return ChatOrchestrator(
        gate=get_gate(),
        gateway=get_gateway_client(),
        store=SessionStore(),
        publisher=notify_new_message,
    )
