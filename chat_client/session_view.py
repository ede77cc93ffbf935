"""Client-side mirror of the user's chats.

Nothing is optimistic: a send only changes local state once the server has
answered, and a failed send keeps the draft so the user can resend it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import RLock
from typing import Dict, List, Optional, Set, Tuple

from .api import ApiError, ChatApi
from .events import ServerEvent

logger = logging.getLogger(__name__)

NEW_MESSAGE = "new_message"
DEFAULT_TITLE = "New Chat"


@dataclass
class LocalTurn:
    user_message: str
    ai_response: str


@dataclass
class LocalSession:
    id: str
    title: str = DEFAULT_TITLE
    messages: List[LocalTurn] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "LocalSession":
        turns = [LocalTurn(m.get("user_message", ""), m.get("ai_response", "")) for m in data.get("messages") or []]
        return cls(id=str(data["id"]), title=data.get("title") or DEFAULT_TITLE, messages=turns)


class SessionView:
    def __init__(self, api: ChatApi, user=None):
        self.api = api
        self.user = user
        self.sessions: List[LocalSession] = []
        self.active_id: Optional[str] = None
        self.pending = False
        self.error: Optional[str] = None
        self.draft = ""
        # turns this view sent itself; their fan-out echo must not be appended twice
        self._echoes: Set[Tuple[str, str, str]] = set()
        # echoes that arrived before the send returned, mapped to whether they were appended
        self._early: Dict[Tuple[str, str, str], bool] = {}
        self._inflight: Optional[str] = None
        self._lock = RLock()

    # ----- lookups -----

    def find(self, chat_id: str) -> Optional[LocalSession]:
        for s in self.sessions:
            if s.id == chat_id:
                return s
        return None

    @property
    def active(self) -> Optional[LocalSession]:
        return self.find(self.active_id) if self.active_id else None

    # ----- navigation -----

    def select(self, chat_id: str) -> None:
        with self._lock:
            if self.find(chat_id) is None:
                raise KeyError(chat_id)
            self.active_id = chat_id
            self.error = None

    def new_chat(self) -> None:
        with self._lock:
            self.active_id = None
            self.error = None

    # ----- server calls -----

    def load_history(self) -> List[LocalSession]:
        try:
            history = self.api.chat_history()
        except ApiError as e:
            self.error = e.error
            return self.sessions
        with self._lock:
            self.sessions = [LocalSession.from_api(h) for h in history]
            if self.active_id and self.find(self.active_id) is None:
                self.active_id = None
            self.error = None
            return self.sessions

    def send(self, message: Optional[str] = None) -> bool:
        """Send ``message`` (or the draft) to the active chat, or start a new one."""
        text = (message if message is not None else self.draft).strip()
        self.draft = text
        if not text:
            self.error = "Message is required."
            return False
        if self.pending:
            return False

        with self._lock:
            self.pending = True
            self.error = None
            self._inflight = text
            self._early.clear()
            chat_id = self.active_id

        try:
            resp = self.api.send_message(text, chat_id)
        except ApiError as e:
            with self._lock:
                self._finish_send()
                self.error = e.error
            return False

        with self._lock:
            new_id = str(resp.get("chat_id") or chat_id)
            turn = LocalTurn(text, resp.get("answer", ""))
            key = (new_id, turn.user_message, turn.ai_response)
            applied = self._early.get(key)
            if applied is None:
                self._echoes.add(key)
            sess = self.find(new_id)
            if sess is None:
                sess = LocalSession(id=new_id, title=text)
                self.sessions.insert(0, sess)
            if not applied:
                sess.messages.append(turn)
            self.active_id = new_id
            self._finish_send()
            self.draft = ""
        return True

    def _finish_send(self) -> None:
        self.pending = False
        self._inflight = None
        self._early.clear()

    def delete(self, chat_id: str) -> bool:
        try:
            self.api.delete_chat(chat_id)
        except ApiError as e:
            self.error = e.error
            return False
        with self._lock:
            self.sessions = [s for s in self.sessions if s.id != chat_id]
            if self.active_id == chat_id:
                self.active_id = None
            self.error = None
        return True

    def rate(self, chat_id: str, rating: int, turn: Optional[int] = None) -> bool:
        user_id = getattr(self.user, "id", None)
        try:
            self.api.rate_response(chat_id, rating, user_id=user_id, turn=turn)
        except ApiError as e:
            self.error = e.error
            return False
        return True

    # ----- realtime -----

    def apply_event(self, event: ServerEvent) -> bool:
        """Append a fan-out turn to a known chat. Returns True if state changed."""
        if event.name != NEW_MESSAGE:
            return False
        data = event.data or {}
        chat_id = str(data.get("chat_id") or "")
        key = (chat_id, data.get("message", ""), data.get("ai_response", ""))

        with self._lock:
            if key in self._echoes:
                self._echoes.discard(key)
                return False
            early = self.pending and key[1] == self._inflight
            sess = self.find(chat_id)
            if sess is None:
                if early:
                    self._early[key] = False
                logger.debug("ignoring event for unknown chat %s", chat_id)
                return False
            sess.messages.append(LocalTurn(key[1], key[2]))
            if early:
                self._early[key] = True
            return True
