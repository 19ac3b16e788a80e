from typing import Sequence

from loguru import logger

from chatbot.config import get_settings
from chatbot.core.errors import MessageValidationError
from chatbot.core.memory import format_memory_block
from chatbot.models.chat import ChatMessage, ChatSettings, MemoryItem

MEMORY_PREAMBLE = (
    "IMPORTANT USER CONTEXT:\n"
    "Remember these key details about the user:\n"
    "{memories}\n\n"
    "Use this information to provide more personalized and relevant responses. "
    "Reference these details naturally when appropriate."
)


def resolve_settings(settings: ChatSettings | None = None) -> ChatSettings:
    """Fill every unset field from the configured defaults. Never mutates the input."""
    config = get_settings()
    given = settings.model_dump(exclude_none=True) if settings else {}
    resolved = {
        "model": config.default_model,
        "temperature": config.default_temperature,
        "max_tokens": config.default_max_tokens,
        "system_prompt": config.default_system_prompt,
        **given,
    }
    return ChatSettings(**resolved)


def build_system_prompt(system_prompt: str, memory_block: str = "") -> str:
    if memory_block:
        return f"{system_prompt}\n\n{MEMORY_PREAMBLE.format(memories=memory_block)}"
    return system_prompt


def get_recent_history(
    history: Sequence[ChatMessage],
    limit: int | None = None,
) -> list[dict]:
    """Last `limit` messages in chronological order. Older ones are dropped, not summarized."""
    if limit is None:
        limit = get_settings().history_limit
    recent = list(history)[-limit:] if limit > 0 else []
    return [{"role": m.role, "content": m.content} for m in recent]


def build_messages(
    current_message: str | None,
    settings: ChatSettings | None = None,
    history: Sequence[ChatMessage] | None = None,
    memories: Sequence[MemoryItem] | None = None,
) -> list[dict]:
    """
    Assemble the complete messages array for one completion call.

    Order is fixed: system prompt (with the memory block when there is one),
    the most recent history, then the new user message last.

    Raises MessageValidationError if current_message is missing or blank.
    """
    if not current_message or not current_message.strip():
        raise MessageValidationError("Message is required")

    config = get_settings()
    resolved = resolve_settings(settings)
    memory_block = format_memory_block(memories or [], config.memory_limit)
    recent = get_recent_history(history or [], config.history_limit)

    assembled = [
        {"role": "system", "content": build_system_prompt(resolved.system_prompt, memory_block)},
        *recent,
        {"role": "user", "content": current_message},
    ]
    logger.debug(
        f"[context] history={len(recent)} memory_block={'yes' if memory_block else 'no'} "
        f"total_messages={len(assembled)}"
    )
    return assembled
