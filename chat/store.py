# chat/store.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Max

from .errors import RatingExists, SessionNotFound, StoreError
from .models import DEFAULT_TITLE, ChatSession, ChatTurn, Rating

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Turn:
    user_message: str
    ai_response: str

    def as_dict(self) -> dict:
        return {"user_message": self.user_message, "ai_response": self.ai_response}


@dataclass(frozen=True)
class SessionSummary:
    id: str
    title: str
    created_at: datetime
    messages: List[Turn] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "messages": [t.as_dict() for t in self.messages],
        }


def _parse_session_id(session_id) -> uuid.UUID:
    try:
        return session_id if isinstance(session_id, uuid.UUID) else uuid.UUID(str(session_id))
    except (TypeError, ValueError, AttributeError):
        raise SessionNotFound()


def _summarize(sess: ChatSession) -> SessionSummary:
    turns = [Turn(t.user_message, t.ai_response) for t in sess.turns.all()]
    title = turns[0].user_message if turns else DEFAULT_TITLE
    return SessionSummary(id=str(sess.id), title=title, created_at=sess.created_at, messages=turns)


class SessionStore:
    """Sessions and turns, always scoped to the owning user id.

    Ownership is part of every lookup, so another user's session is
    indistinguishable from a missing one.
    """

    def _owned(self, session_id, user_id: str):
        return ChatSession.objects.filter(pk=_parse_session_id(session_id), user_id=str(user_id))

    def create_session(self, user_id: str, turn: Turn) -> str:
        try:
            with transaction.atomic():
                sess = ChatSession.objects.create(user_id=str(user_id))
                ChatTurn.objects.create(
                    session=sess,
                    position=0,
                    user_message=turn.user_message,
                    ai_response=turn.ai_response,
                )
        except DatabaseError as e:
            log.error("create_session failed user=%s: %s", user_id, e)
            raise StoreError(details=str(e))
        log.info("session_created id=%s user=%s", sess.id, user_id)
        return str(sess.id)

    def append_turn(self, session_id, user_id: str, turn: Turn) -> str:
        """Append at the next position while holding the session row lock.

        Returns the session id in canonical form.
        """
        qs = self._owned(session_id, user_id)
        try:
            with transaction.atomic():
                sess = qs.select_for_update().first()
                if sess is None:
                    raise SessionNotFound()
                last = sess.turns.aggregate(last=Max("position"))["last"]
                ChatTurn.objects.create(
                    session=sess,
                    position=0 if last is None else last + 1,
                    user_message=turn.user_message,
                    ai_response=turn.ai_response,
                )
        except IntegrityError as e:
            log.warning("append_turn position race session=%s: %s", session_id, e)
            raise StoreError("Chat was modified concurrently, please resend.", details=str(e))
        except DatabaseError as e:
            log.error("append_turn failed session=%s: %s", session_id, e)
            raise StoreError(details=str(e))
        return str(sess.id)

    def list_sessions(self, user_id: str) -> List[SessionSummary]:
        try:
            qs = (
                ChatSession.objects.filter(user_id=str(user_id))
                .order_by("-created_at")
                .prefetch_related("turns")
            )
            return [_summarize(s) for s in qs]
        except DatabaseError as e:
            log.error("list_sessions failed user=%s: %s", user_id, e)
            raise StoreError("Failed to load chat history.", details=str(e))

    def get_session(self, session_id, user_id: str) -> SessionSummary:
        try:
            sess = self._owned(session_id, user_id).prefetch_related("turns").first()
        except DatabaseError as e:
            raise StoreError("Failed to load chat.", details=str(e))
        if sess is None:
            raise SessionNotFound()
        return _summarize(sess)

    def delete_session(self, session_id, user_id: str) -> None:
        try:
            deleted, _ = self._owned(session_id, user_id).delete()
        except DatabaseError as e:
            log.error("delete_session failed session=%s: %s", session_id, e)
            raise StoreError("Failed to delete chat.", details=str(e))
        if not deleted:
            raise SessionNotFound()
        log.info("session_deleted id=%s user=%s", session_id, user_id)

    def rate_turn(self, session_id, user_id: str, rating: int, position: Optional[int] = None) -> Rating:
        """Rate the turn at ``position`` (latest when omitted), once per user."""
        try:
            sess = self._owned(session_id, user_id).first()
            if sess is None:
                raise SessionNotFound()

            turns = sess.turns.all()
            turn = turns.filter(position=position).first() if position is not None else turns.order_by("-position").first()
            if turn is None:
                raise SessionNotFound("Response not found.")

            with transaction.atomic():
                return Rating.objects.create(turn=turn, rater_user_id=str(user_id), rating=rating)
        except IntegrityError:
            raise RatingExists()
        except DatabaseError as e:
            log.error("rate_turn failed session=%s: %s", session_id, e)
            raise StoreError("Failed to save rating.", details=str(e))
