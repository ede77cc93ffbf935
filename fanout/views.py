import logging

from rest_framework.decorators import api_view
from rest_framework.response import Response

from chat.errors import BadRequest, ChatError
from chat.store import SessionStore
from .triggers import notify_new_message

log = logging.getLogger(__name__)


@api_view(["POST"])
def send_message(request):
    """Client-side relay of a finished turn to the caller's other connections."""
    data = request.data if isinstance(request.data, dict) else {}
    message = str(data.get("message") or "").strip()
    ai_response = str(data.get("ai_response") or "").strip()
    chat_id = data.get("chat_id")

    try:
        if not message or not ai_response:
            raise BadRequest("message and ai_response are required.")
        if not chat_id:
            raise BadRequest("Chat ID is required.")
        chat_id = SessionStore().get_session(chat_id, request.user.id).id
    except ChatError as e:
        return Response(e.to_payload(), status=e.status_code)

    delivered = notify_new_message(request.user.id, chat_id=chat_id, message=message, ai_response=ai_response)
    log.debug("relayed new_message chat=%s to %s subscribers", chat_id, delivered)
    return Response({"success": True}, status=200)
