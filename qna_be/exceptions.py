import logging

from rest_framework.exceptions import NotAuthenticated
from rest_framework.response import Response
from rest_framework.views import exception_handler

from chat.errors import ChatError, Unauthorized

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """Render every API failure as ``{"error": ...}`` like the chat views do."""
    if isinstance(exc, ChatError):
        return Response(exc.to_payload(), status=exc.status_code)
    if isinstance(exc, NotAuthenticated):
        exc.detail = Unauthorized.no_token().message

    response = exception_handler(exc, context)
    if response is not None:
        data = response.data
        if isinstance(data, dict) and "detail" in data:
            response.data = {"error": str(data["detail"])}
        elif isinstance(data, dict):
            response.data = {"error": "Invalid request.", "details": data}
        return response

    view = context.get("view")
    logger.exception("Unhandled error in %s", getattr(view, "__name__", type(view).__name__))
    return Response({"error": "Internal server error"}, status=500)
