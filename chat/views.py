# chat/views.py
import logging

from django.conf import settings
from django_ratelimit.decorators import ratelimit
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .errors import BadRequest, ChatError, Forbidden
from .llm import GatewayError, InvalidCredential, get_gateway_client
from .service import get_orchestrator
from .store import SessionStore

log = logging.getLogger(__name__)

CHAT_RATE_LIMIT = getattr(settings, "CHAT_RATE_LIMIT", "30/m")


def _payload(request) -> dict:
    data = request.data
    return data if isinstance(data, dict) else {}


def _error(err: ChatError) -> Response:
    return Response(err.to_payload(), status=err.status_code)


@api_view(["GET"])
@authentication_classes([])
@permission_classes([AllowAny])
def test_api(request):
    """Credential health check: one probe completion against the gateway."""
    try:
        get_gateway_client().check_credential()
    except InvalidCredential as e:
        return Response({"error": "Invalid API key", "details": e.details}, status=401)
    except GatewayError as e:
        return Response({"error": "Gateway check failed", "details": e.details or str(e)}, status=500)
    return Response({"message": "API key is working"}, status=200)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
@ratelimit(key="ip", rate=CHAT_RATE_LIMIT, method="POST", block=False)
def chat(request):
    """
    Ask the model and record the turn.

    Authentication happens inside the orchestrator, after the message has been
    validated, so an empty message is a 400 even for anonymous callers.
    """
    if getattr(request, "limited", False):
        log.warning("chat rate limit exceeded for IP %s", request.META.get("REMOTE_ADDR"))
        return Response({"error": "Too many requests. Please try again later.", "retry_after": "1 minute"}, status=429)

    data = _payload(request)
    message = data.get("message", data.get("question"))
    try:
        result = get_orchestrator().handle(
            authorization=request.META.get("HTTP_AUTHORIZATION"),
            message=message,
            chat_id=data.get("chat_id") or None,
        )
    except ChatError as e:
        return _error(e)
    return Response(result.as_dict(), status=200)


@api_view(["GET"])
def chat_detail(request, chat_id):
    try:
        summary = SessionStore().get_session(chat_id, request.user.id)
    except ChatError as e:
        return _error(e)
    return Response(summary.as_dict(), status=200)


@api_view(["GET"])
def chat_history(request):
    try:
        sessions = SessionStore().list_sessions(request.user.id)
    except ChatError as e:
        return _error(e)
    return Response({"history": [s.as_dict() for s in sessions]}, status=200)


@api_view(["DELETE"])
def delete_chat(request):
    chat_id = _payload(request).get("chat_id") or request.query_params.get("chat_id")
    if not chat_id:
        return _error(BadRequest("Chat ID is required."))
    try:
        SessionStore().delete_session(chat_id, request.user.id)
    except ChatError as e:
        return _error(e)
    return Response({"success": True}, status=200)


def _parse_rating(value) -> int:
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        raise BadRequest("Rating must be an integer between 1 and 5.")
    return value


@api_view(["POST"])
def rate_response(request):
    data = _payload(request)
    try:
        chat_id = data.get("chat_id")
        if not chat_id:
            raise BadRequest("Chat ID is required.")
        rating = _parse_rating(data.get("rating"))

        claimed = data.get("user_id")
        if claimed and str(claimed) != request.user.id:
            raise Forbidden("Cannot rate on behalf of another user.")

        position = data.get("turn")
        if position is not None:
            try:
                position = int(position)
            except (TypeError, ValueError):
                raise BadRequest("turn must be an integer.")

        SessionStore().rate_turn(chat_id, request.user.id, rating, position=position)
    except ChatError as e:
        return _error(e)
    return Response({"success": True}, status=200)
