"""Server-Sent-Events reader for ``/realtime/subscribe``."""
import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

import requests

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerEvent:
    name: str
    data: dict = field(default_factory=dict)


def iter_events(lines: Iterable[str]) -> Iterator[ServerEvent]:
    """Parse SSE lines into events. Comments, ``retry:`` and bad JSON are skipped."""
    name = "message"
    buf = []
    for raw in lines:
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")
        if not line:
            if buf:
                try:
                    data = json.loads("\n".join(buf))
                except ValueError:
                    logger.warning("skipping non-JSON %s event", name)
                else:
                    yield ServerEvent(name=name, data=data if isinstance(data, dict) else {"value": data})
            name, buf = "message", []
            continue
        if line.startswith(":"):
            continue
        key, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if key == "event":
            name = value
        elif key == "data":
            buf.append(value)


class EventStream:
    """Blocking iterator over the caller's realtime channel."""

    def __init__(self, base_url: str, access_token: str, *, chat_id: Optional[str] = None, session: Optional[requests.Session] = None):
        self.url = base_url.rstrip("/") + "/realtime/subscribe"
        self.access_token = access_token
        self.chat_id = chat_id
        self._http = session or requests.Session()
        self._resp = None

    def __iter__(self) -> Iterator[ServerEvent]:
        params = {"chat_id": self.chat_id} if self.chat_id else None
        self._resp = self._http.get(
            self.url,
            params=params,
            headers={"Authorization": f"Bearer {self.access_token}", "Accept": "text/event-stream"},
            stream=True,
            timeout=(10, None),
        )
        self._resp.raise_for_status()
        try:
            yield from iter_events(self._resp.iter_lines(decode_unicode=True))
        finally:
            self.close()

    def close(self) -> None:
        if self._resp is not None:
            self._resp.close()
            self._resp = None
