# chat/llm.py

import logging
from functools import lru_cache
from typing import Any, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

# ===== Exceptions =====

class GatewayError(RuntimeError):
    """Gateway answered, but not with a usable completion."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class GatewayUnreachable(GatewayError):
    ...


class InvalidCredential(GatewayError):
    ...


# ===== Base config =====

COMPLETIONS_PATH = "/chat/completions"
PROBE_MESSAGE = "Hello"

_ERROR_BODY_LIMIT = 500


def _error_details(resp: requests.Response) -> Any:
    """Pull the most useful part of an error body without dumping huge pages."""
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "")[:_ERROR_BODY_LIMIT] or None
    if isinstance(body, dict) and "error" in body:
        return body["error"]
    return body


def _extract_content(body: Any) -> str:
    """Return choices[0].message.content or raise GatewayError."""
    if not isinstance(body, dict):
        raise GatewayError("malformed_response", details="response body is not an object")

    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        raise GatewayError("empty_choices", details=body.get("error") or "no choices in response")

    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message") if isinstance(first.get("message"), dict) else {}
    content = message.get("content")
    if not isinstance(content, str):
        raise GatewayError("malformed_response", details="first choice has no text content")
    if not content.strip():
        raise GatewayError("empty_response", details="first choice content is blank")
    return content


class GatewayClient:
    """Single-turn client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        *,
        timeout_s: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_s = timeout_s
        self._http = session or requests.Session()

    @property
    def completions_url(self) -> str:
        return self.base_url + COMPLETIONS_PATH

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def complete(self, message: str) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": message}],
        }
        try:
            resp = self._http.post(
                self.completions_url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            logger.warning("gateway_unreachable model=%s error=%s", self.model, e)
            raise GatewayUnreachable("gateway_unreachable", details=str(e)) from e

        if resp.status_code == 401:
            logger.error("gateway_invalid_credential model=%s", self.model)
            raise InvalidCredential("invalid_credential", details=_error_details(resp))

        if not 200 <= resp.status_code < 300:
            details = _error_details(resp)
            logger.warning("gateway_http_error status=%s details=%s", resp.status_code, details)
            raise GatewayError(f"http_{resp.status_code}", details=details)

        try:
            body = resp.json()
        except ValueError as e:
            raise GatewayError("invalid_json", details=(resp.text or "")[:_ERROR_BODY_LIMIT]) from e

        content = _extract_content(body)
        logger.debug("gateway_completion_ok model=%s chars=%s", self.model, len(content))
        return content

    def check_credential(self) -> str:
        """Probe the gateway with a tiny prompt; raises exactly like ``complete``."""
        return self.complete(PROBE_MESSAGE)


@lru_cache(maxsize=1)
def get_gateway_client() -> GatewayClient:
    return GatewayClient(
        api_key=settings.OPENROUTER_API_KEY,
        base_url=settings.OPENROUTER_BASE_URL,
        model=settings.OPENROUTER_MODEL,
        timeout_s=getattr(settings, "LLM_TIMEOUT_SECONDS", None),
    )
