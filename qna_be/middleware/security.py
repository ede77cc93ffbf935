"""
Security middleware for request size limiting.
"""
import logging
from django.conf import settings
from django.http import JsonResponse

logger = logging.getLogger(__name__)


class RequestSizeLimitMiddleware:
    """
    Rejects write requests whose declared body is larger than MAX_REQUEST_BYTES.
    Chat payloads are a few kilobytes; anything far larger never reaches the model gateway.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        max_size = int(getattr(settings, "MAX_REQUEST_BYTES", 1024 * 1024))
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            content_length = request.META.get("CONTENT_LENGTH")
            if content_length:
                try:
                    size = int(content_length)
                except (ValueError, TypeError):
                    size = None
                if size is not None and size > max_size:
                    logger.warning(
                        "Request size limit exceeded: %s bytes from IP %s on %s",
                        size,
                        request.META.get("REMOTE_ADDR"),
                        request.path,
                    )
                    return JsonResponse(
                        {
                            "error": "Request too large",
                            "max_size_kb": round(max_size / 1024, 1),
                            "your_size_kb": round(size / 1024, 1),
                        },
                        status=413,
                    )

        return self.get_response(request)
