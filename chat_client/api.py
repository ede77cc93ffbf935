"""HTTP client for the chat backend, as used by the session view."""
import logging
from typing import Any, Callable, List, Optional, Union

import requests

logger = logging.getLogger(__name__)

NETWORK_ERROR = "Network error. Please check your connection and try again."


class ApiError(Exception):
    """A failed call. ``error`` is the server's message, shown to the user as-is."""

    def __init__(self, status: int, error: str, details: Any = None):
        super().__init__(error)
        self.status = status
        self.error = error
        self.details = details


TokenSource = Union[str, Callable[[], Optional[str]], None]


class ChatApi:
    def __init__(self, base_url: str, token: TokenSource = None, *, session: Optional[requests.Session] = None, timeout_s: float = 90):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._http = session or requests.Session()
        self.timeout_s = timeout_s

    @property
    def token(self) -> Optional[str]:
        return self._token() if callable(self._token) else self._token

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, body: Optional[dict] = None) -> dict:
        try:
            resp = self._http.request(
                method,
                self.base_url + path,
                json=body,
                headers=self._headers(),
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ApiError(0, NETWORK_ERROR, details=str(e)) from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"data": data}

        if not resp.ok:
            raise ApiError(resp.status_code, data.get("error") or f"Request failed ({resp.status_code})", data.get("details"))
        return data

    def test_api(self) -> dict:
        return self._request("GET", "/test-api")

    def send_message(self, message: str, chat_id: Optional[str] = None) -> dict:
        body = {"message": message}
        if chat_id:
            body["chat_id"] = chat_id
        return self._request("POST", "/chat", body)

    def get_chat(self, chat_id: str) -> dict:
        return self._request("GET", f"/chat/{chat_id}")

    def chat_history(self) -> List[dict]:
        return self._request("GET", "/chat-history").get("history", [])

    def delete_chat(self, chat_id: str) -> dict:
        return self._request("DELETE", "/delete-chat", {"chat_id": chat_id})

    def rate_response(self, chat_id: str, rating: int, user_id: Optional[str] = None, turn: Optional[int] = None) -> dict:
        body = {"chat_id": chat_id, "rating": rating}
        if user_id:
            body["user_id"] = user_id
        if turn is not None:
            body["turn"] = turn
        return self._request("POST", "/rate-response", body)

    def relay_message(self, chat_id: str, message: str, ai_response: str) -> dict:
        return self._request(
            "POST",
            "/realtime/send-message",
            {"chat_id": chat_id, "message": message, "ai_response": ai_response},
        )
