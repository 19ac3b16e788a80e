import json

from fastapi import APIRouter
from loguru import logger
from pydantic import TypeAdapter

from chatbot.core.memory import search_memories
from chatbot.db import postgres
from chatbot.models.chat import MemoryItem
from chatbot.models.conversation import Conversation

router = APIRouter(prefix="/api/users", tags=["storage"])

_conversations = TypeAdapter(list[Conversation])
_memories = TypeAdapter(list[MemoryItem])


# ── Payload helpers ─────────────────────────────────────────────────────────────

async def load_payload(table: str, user_id: str) -> list:
    row = await postgres.fetch_one(
        f"SELECT payload FROM {table} WHERE user_id = $1",
        user_id,
    )
    if not row:
        return []
    payload = row["payload"]
    # asyncpg hands back JSONB as text unless a codec is registered
    return json.loads(payload) if isinstance(payload, str) else payload


async def save_payload(table: str, user_id: str, payload: list) -> None:
    await postgres.execute(
        f"""INSERT INTO {table} (user_id, payload, updated_at)
            VALUES ($1, $2::jsonb, NOW())
            ON CONFLICT (user_id) DO UPDATE SET
                payload    = EXCLUDED.payload,
                updated_at = NOW()""",
        user_id,
        json.dumps(payload),
    )


# ── Routes ──────────────────────────────────────────────────────────────────────

@router.get("/{user_id}/conversations", response_model=list[Conversation])
async def get_conversations(user_id: str) -> list[Conversation]:
    raw = await load_payload("user_conversations", user_id)
    return _conversations.validate_python(raw)


@router.put("/{user_id}/conversations")
async def put_conversations(user_id: str, body: list[Conversation]):
    payload = _conversations.dump_python(body, mode="json", by_alias=True)
    await save_payload("user_conversations", user_id, payload)
    logger.debug(f"[storage] saved {len(body)} conversations for user={user_id}")
    return {"user_id": user_id, "conversations": len(body)}


@router.get("/{user_id}/memories", response_model=list[MemoryItem])
async def get_memories(user_id: str, q: str = "") -> list[MemoryItem]:
    raw = await load_payload("user_memories", user_id)
    return search_memories(_memories.validate_python(raw), q)


@router.put("/{user_id}/memories")
async def put_memories(user_id: str, body: list[MemoryItem]):
    payload = _memories.dump_python(body, mode="json", by_alias=True)
    await save_payload("user_memories", user_id, payload)
    logger.debug(f"[storage] saved {len(body)} memories for user={user_id}")
    return {"user_id": user_id, "memories": len(body)}
