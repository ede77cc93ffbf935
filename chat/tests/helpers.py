from typing import Dict, List, Optional

from authentication.gate import AuthGate, Principal
from chat.llm import GatewayError
from chat.service import ChatOrchestrator
from chat.store import SessionStore

ALICE = Principal(id="11111111-1111-1111-1111-111111111111", email="alice@example.com", is_verified=True)
BOB = Principal(id="22222222-2222-2222-2222-222222222222", email="bob@example.com", is_verified=True)

TOKENS = {"alice-token": ALICE, "bob-token": BOB}


class FakeIdentity:
    def __init__(self, tokens: Optional[Dict[str, Principal]] = None):
        self.tokens = dict(TOKENS if tokens is None else tokens)
        self.calls: List[str] = []

    def get_user(self, token):
        self.calls.append(token)
        return self.tokens.get(token)


class FakeGateway:
    def __init__(self, answer: str = "Hi there!", error: Optional[GatewayError] = None):
        self.answer = answer
        self.error = error
        self.prompts: List[str] = []

    def complete(self, message):
        self.prompts.append(message)
        if self.error is not None:
            raise self.error
        return self.answer


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def __call__(self, user_id, **data):
        self.events.append((user_id, data))


def make_gate(identity: Optional[FakeIdentity] = None) -> AuthGate:
    return AuthGate(identity or FakeIdentity())


def make_orchestrator(gateway=None, identity=None, store=None, publisher=None) -> ChatOrchestrator:
    return ChatOrchestrator(
        gate=make_gate(identity),
        gateway=gateway or FakeGateway(),
        store=store or SessionStore(),
        publisher=publisher,
    )


def bearer(token: str) -> dict:
    return {"HTTP_AUTHORIZATION": f"Bearer {token}"}
