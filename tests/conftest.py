"""
Pytest configuration and shared fixtures.

Environment is set before any chatbot module is imported, because settings
are read once and cached.
"""

import os

os.environ["LOG_LEVEL"] = "ERROR"
os.environ["XAI_API_KEY"] = "test-xai-key"
os.environ["GROQ_API_KEY"] = "test-groq-key"

from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from chatbot.client.persistence import JsonFilePersistence
from chatbot.client.store import ConversationStore
from chatbot.models.chat import ChatMessage, MemoryItem


# ─────────────────────────────────────────────────────────────────────────────
# Domain Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def make_memory():
    """Factory for MemoryItem with sensible defaults."""
    counter = {"n": 0}

    def _make(importance: str = "medium", **overrides) -> MemoryItem:
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "id": f"mem_{n}",
            "type": "fact",
            "title": f"Title {n}",
            "content": f"Content {n}",
            "importance": importance,
        }
        fields.update(overrides)
        return MemoryItem(**fields)

    return _make


@pytest.fixture
def make_history():
    """Factory for an alternating user/assistant history of n messages."""

    def _make(n: int) -> list[ChatMessage]:
        return [
            ChatMessage(
                id=f"msg_{i}",
                role="user" if i % 2 == 0 else "assistant",
                content=f"message {i}",
            )
            for i in range(n)
        ]

    return _make


# ─────────────────────────────────────────────────────────────────────────────
# Client-side Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def persistence(tmp_path):
    return JsonFilePersistence(tmp_path / "storage")


@pytest.fixture
def store(persistence):
    return ConversationStore("user-1", persistence)


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI Test Client
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def app():
    """Create FastAPI app for testing."""
    # Import here to ensure env vars are set first
    from chatbot.main import app as fastapi_app
    return fastapi_app


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing API endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
