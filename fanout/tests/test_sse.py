import json
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework.test import APITestCase

from chat.store import SessionStore, Turn
from chat.tests.helpers import ALICE, BOB, bearer, make_gate
from fanout import sse
from fanout.triggers import NEW_MESSAGE, notify_new_message


class StreamTestCase(TestCase):
    def setUp(self):
        self.base = reverse("fanout:subscribe")
        p = patch("fanout.sse.get_gate", return_value=make_gate())
        p.start()
        self.addCleanup(p.stop)
        self.responses = []

    def tearDown(self):
        for r in self.responses:
            r.close()

    def open(self, token="alice-token", chat_id=None, via_query=False):
        params = {}
        if chat_id:
            params["chat_id"] = chat_id
        extra = {}
        if via_query:
            params["access_token"] = token
        elif token:
            extra = bearer(token)
        r = self.client.get(self.base, params, **extra)
        if r.status_code == 200:
            self.responses.append(r)
            g = iter(r.streaming_content)
            self.assertIn("retry:", self._read_chunk(g))
            return r, g
        return r, None

    @staticmethod
    def _read_chunk(gen):
        chunk = next(gen)
        return chunk.decode() if isinstance(chunk, (bytes, bytearray)) else chunk

    def _read_event(self, gen):
        """Skip keepalives and parse the next ``event:``/``data:`` frame."""
        for _ in range(20):
            frame = self._read_chunk(gen)
            if frame.startswith(":"):
                continue
            event_line, data_line = frame.strip().split("\n")
            self.assertTrue(event_line.startswith("event: "))
            return event_line[len("event: "):], json.loads(data_line[len("data: "):])
        self.fail("no event frame received")


class SubscribeTests(StreamTestCase):
    def test_requires_token(self):
        r, _ = self.open(token=None)
        self.assertEqual(r.status_code, 401)
        self.assertEqual(r.json(), {"error": "Unauthorized: No token provided"})

    def test_rejects_bad_token(self):
        r, _ = self.open(token="forged")
        self.assertEqual(r.status_code, 401)
        self.assertEqual(sse.subscriber_count(), 0)

    def test_stream_headers(self):
        r, _ = self.open()
        self.assertEqual(r["Content-Type"], "text/event-stream")
        self.assertEqual(r["Cache-Control"], "no-cache")
        self.assertEqual(sse.subscriber_count(ALICE.id), 1)

    def test_access_token_query_param(self):
        r, g = self.open(via_query=True)
        self.assertEqual(r.status_code, 200)
        notify_new_message(ALICE.id, chat_id="c1", message="q", ai_response="a")
        event, data = self._read_event(g)
        self.assertEqual(event, NEW_MESSAGE)
        self.assertEqual(data["chat_id"], "c1")

    def test_idle_stream_sends_keepalive(self):
        _, g = self.open()
        self.assertEqual(self._read_chunk(g), ": keepalive\n\n")

    def test_closing_stream_unregisters(self):
        r, g = self.open()
        self._read_chunk(g)
        r.close()
        self.responses.remove(r)
        self.assertEqual(sse.subscriber_count(ALICE.id), 0)


class FanOutTests(StreamTestCase):
    def test_event_reaches_owner_only(self):
        _, alice = self.open("alice-token")
        _, bob = self.open("bob-token")

        delivered = notify_new_message(ALICE.id, chat_id="c1", message="hi", ai_response="hello")
        self.assertEqual(delivered, 1)

        event, data = self._read_event(alice)
        self.assertEqual(event, NEW_MESSAGE)
        self.assertEqual(data["message"], "hi")
        self.assertEqual(data["ai_response"], "hello")
        self.assertIn("created_at", data)
        self.assertEqual(self._read_chunk(bob), ": keepalive\n\n")

    def test_every_connection_of_the_user_receives(self):
        _, g1 = self.open()
        _, g2 = self.open()
        self.assertEqual(sse.sse_send(ALICE.id, "ping", data={"n": 1}), 2)
        self.assertEqual(self._read_event(g1)[1]["n"], 1)
        self.assertEqual(self._read_event(g2)[1]["n"], 1)

    def test_chat_scoped_subscription(self):
        _, scoped = self.open(chat_id="c2")
        _, everything = self.open()

        self.assertEqual(notify_new_message(ALICE.id, chat_id="c1", message="a", ai_response="b"), 1)
        self.assertEqual(notify_new_message(ALICE.id, chat_id="c2", message="c", ai_response="d"), 2)

        self.assertEqual(self._read_event(scoped)[1]["message"], "c")
        self.assertEqual([self._read_event(everything)[1]["message"] for _ in range(2)], ["a", "c"])

    @override_settings(REALTIME_QUEUE_SIZE=1)
    def test_full_queue_drops_without_blocking(self):
        _, g = self.open()
        self.assertEqual(sse.sse_send(ALICE.id, "ping", data={"n": 1}), 1)
        self.assertEqual(sse.sse_send(ALICE.id, "ping", data={"n": 2}), 0)
        self.assertEqual(self._read_event(g)[1]["n"], 1)

    def test_no_subscribers_is_a_noop(self):
        self.assertEqual(sse.sse_send(BOB.id, "ping"), 0)


class SendMessageTests(APITestCase):
    def setUp(self):
        p = patch("authentication.backends.get_gate", return_value=make_gate())
        p.start()
        self.addCleanup(p.stop)
        self.sid = SessionStore().create_session(ALICE.id, Turn("q", "a"))
        self.url = reverse("fanout:send_message")

    @patch("fanout.views.notify_new_message", return_value=1)
    def test_relays_for_owned_chat(self, mock_notify):
        body = {"chat_id": self.sid, "message": "q", "ai_response": "a"}
        r = self.client.post(self.url, body, format="json", **bearer("alice-token"))
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"success": True})
        mock_notify.assert_called_once_with(ALICE.id, chat_id=self.sid, message="q", ai_response="a")

    @patch("fanout.views.notify_new_message", return_value=1)
    def test_relays_canonical_chat_id(self, mock_notify):
        body = {"chat_id": self.sid.upper(), "message": "q", "ai_response": "a"}
        r = self.client.post(self.url, body, format="json", **bearer("alice-token"))
        self.assertEqual(r.status_code, 200)
        mock_notify.assert_called_once_with(ALICE.id, chat_id=self.sid, message="q", ai_response="a")

    def test_missing_fields_is_400(self):
        r = self.client.post(self.url, {"chat_id": self.sid}, format="json", **bearer("alice-token"))
        self.assertEqual(r.status_code, 400)
        r = self.client.post(self.url, {"message": "q", "ai_response": "a"}, format="json", **bearer("alice-token"))
        self.assertEqual(r.json(), {"error": "Chat ID is required."})

    @patch("fanout.views.notify_new_message")
    def test_foreign_chat_is_404(self, mock_notify):
        body = {"chat_id": self.sid, "message": "q", "ai_response": "a"}
        r = self.client.post(self.url, body, format="json", **bearer("bob-token"))
        self.assertEqual(r.status_code, 404)
        mock_notify.assert_not_called()

    def test_requires_token(self):
        r = self.client.post(self.url, {}, format="json")
        self.assertEqual(r.status_code, 401)
