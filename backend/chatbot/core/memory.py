from typing import Iterable

from loguru import logger

from chatbot.models.chat import MemoryItem

IMPORTANCE_ORDER = {"high": 3, "medium": 2, "low": 1}
INJECTED_IMPORTANCE = {"high", "medium"}
MAX_MEMORIES = 10


def select_memories(
    memories: Iterable[MemoryItem],
    limit: int = MAX_MEMORIES,
) -> list[MemoryItem]:
    """
    Pick the memories worth injecting into a prompt.

    Low-importance items are dropped, the rest are ordered high before medium.
    sorted() is stable, so equal-importance items keep their input order.
    """
    kept = [m for m in memories if m.importance in INJECTED_IMPORTANCE]
    ranked = sorted(kept, key=lambda m: IMPORTANCE_ORDER[m.importance], reverse=True)
    return ranked[:limit]


def format_memory_block(
    memories: Iterable[MemoryItem],
    limit: int = MAX_MEMORIES,
) -> str:
    """Render selected memories one per line. Returns "" when nothing qualifies."""
    selected = select_memories(memories, limit)
    logger.debug(f"[memory] {len(selected)} memories selected for injection")
    return "\n".join(
        f"{m.type.upper()}: {m.title} - {m.content}" for m in selected
    )


def search_memories(memories: Iterable[MemoryItem], query: str) -> list[MemoryItem]:
    """Case-insensitive match on title, content or any tag. Empty query keeps everything."""
    needle = query.strip().lower()
    if not needle:
        return list(memories)
    return [
        m
        for m in memories
        if needle in m.title.lower()
        or needle in m.content.lower()
        or any(needle in tag.lower() for tag in m.tags)
    ]
