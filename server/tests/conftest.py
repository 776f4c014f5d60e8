import os

# Settings are cached on first use; pin them before the app is imported
os.environ["MEMORY_MODE"] = "true"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-with-enough-length-1234"
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("GOOGLE_API_KEY", None)

import time
from typing import List, Optional, Sequence

import jwt
import pytest
from fastapi.testclient import TestClient

from estate_assistant.core.errors import ProviderError
from estate_assistant.main import app
from estate_assistant.prompting.assembler import CompletionPayload, TextCompletion
from estate_assistant.providers.gemini import get_provider
from estate_assistant.store.accounts import MemoryAccountStore
from estate_assistant.store.deps import get_account_store, get_store
from estate_assistant.store.memory import MemoryStore

JWT_SECRET = os.environ["SUPABASE_JWT_SECRET"]


def encode_token(user_id: str, email: Optional[str] = None, **claims) -> str:
    payload = {
        "sub": user_id,
        "aud": "authenticated",
        "email": email or f"{user_id}@example.com",
        "exp": int(time.time()) + 3600,
        **claims,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def bearer_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {encode_token(user_id)}"}


class FakeProvider:
    """Scripted stand-in for GeminiProvider."""

    id = "fake"

    def __init__(
        self,
        deltas: Sequence[str] = ("A lease ", "is a rental ", "contract."),
        text: str = "The document is a lease.",
        fail_at: Optional[int] = None,
    ) -> None:
        self.deltas = list(deltas)
        self.text = text
        self.fail_at = fail_at
        self.stream_payloads: List[TextCompletion] = []
        self.generate_payloads: List[CompletionPayload] = []

    async def stream(self, payload: TextCompletion):
        self.stream_payloads.append(payload)
        for i, delta in enumerate(self.deltas):
            if self.fail_at == i:
                raise ProviderError("upstream said: quota exceeded for key AIzaSECRET")
            yield delta

    async def generate(self, payload: CompletionPayload) -> str:
        self.generate_payloads.append(payload)
        if self.fail_at is not None:
            raise ProviderError("upstream exploded")
        return self.text


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def account_store():
    return MemoryAccountStore()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def wired_app(memory_store, account_store, fake_provider):
    """The app with in-memory stores and the scripted provider."""
    app.dependency_overrides[get_store] = lambda: memory_store
    app.dependency_overrides[get_account_store] = lambda: account_store
    app.dependency_overrides[get_provider] = lambda: fake_provider
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(wired_app):
    with TestClient(wired_app) as test_client:
        yield test_client


@pytest.fixture
def token_for():
    return encode_token


@pytest.fixture
def auth_headers():
    return bearer_headers
