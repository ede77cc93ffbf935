import json
import logging
from dataclasses import dataclass, field
from queue import Empty, Full, Queue
from threading import Lock
from typing import Dict, List, Optional

from django.conf import settings
from django.http import JsonResponse, StreamingHttpResponse
from django.utils.timezone import now

from authentication.gate import get_gate
from chat.errors import ChatError

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Subscriber:
    user_id: str
    chat_id: Optional[str] = None
    queue: Queue = field(default_factory=lambda: Queue(maxsize=getattr(settings, "REALTIME_QUEUE_SIZE", 100)))

    def wants(self, chat_id: Optional[str]) -> bool:
        return self.chat_id is None or self.chat_id == chat_id


# user_id -> live subscribers; a user only ever sees their own events
_clients: Dict[str, List[Subscriber]] = {}
_lock = Lock()


def _add_client(sub: Subscriber) -> None:
    with _lock:
        _clients.setdefault(sub.user_id, []).append(sub)


def _remove_client(sub: Subscriber) -> None:
    with _lock:
        arr = _clients.get(sub.user_id, [])
        if sub in arr:
            arr.remove(sub)
        if not arr:
            _clients.pop(sub.user_id, None)


def subscriber_count(user_id: Optional[str] = None) -> int:
    with _lock:
        if user_id is not None:
            return len(_clients.get(user_id, []))
        return sum(len(v) for v in _clients.values())


def _format(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


def sse_subscribe(request):
    """Open an event stream for the caller, optionally scoped to one chat.

    EventSource cannot send headers, so ``?access_token=`` is accepted too.
    """
    header = request.META.get("HTTP_AUTHORIZATION")
    token = request.GET.get("access_token")
    if not header and token:
        header = f"Bearer {token}"

    try:
        principal = get_gate().authenticate(header)
    except ChatError as e:
        return JsonResponse(e.to_payload(), status=e.status_code)

    sub = Subscriber(user_id=principal.id, chat_id=request.GET.get("chat_id") or None)
    _add_client(sub)
    keepalive = getattr(settings, "REALTIME_KEEPALIVE_SECONDS", 15)
    logger.info("sse subscribed user=%s chat=%s", sub.user_id, sub.chat_id)

    def stream():
        try:
            yield "retry: 3000\n\n"
            while True:
                try:
                    event, data = sub.queue.get(timeout=keepalive)
                except Empty:
                    yield ": keepalive\n\n"
                    continue
                yield _format(event, data)
        finally:
            _remove_client(sub)
            logger.info("sse closed user=%s chat=%s", sub.user_id, sub.chat_id)

    resp = StreamingHttpResponse(stream(), content_type="text/event-stream")
    resp["Cache-Control"] = "no-cache"
    resp["X-Accel-Buffering"] = "no"
    return resp


def sse_send(user_id: str, event: str, *, data=None, chat_id: Optional[str] = None) -> int:
    """Enqueue a JSON event for the user's subscribers. Never blocks.

    Returns how many subscribers received it; full queues drop the event.
    """
    payload = dict(data or {})
    payload.setdefault("created_at", now().isoformat())
    if chat_id is not None:
        payload.setdefault("chat_id", chat_id)
    encoded = json.dumps(payload, ensure_ascii=False)

    delivered = 0
    with _lock:
        targets = list(_clients.get(str(user_id), []))
    for sub in targets:
        if not sub.wants(chat_id):
            continue
        try:
            sub.queue.put_nowait((event, encoded))
            delivered += 1
        except Full:
            logger.warning("sse queue full, dropping %s for user=%s chat=%s", event, user_id, chat_id)
    return delivered
