import time
from typing import AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, StreamingResponse
from loguru import logger

from chatbot.core.completion import stream_completion
from chatbot.core.context import build_messages, resolve_settings
from chatbot.core.errors import MessageValidationError, PartialStreamFault
from chatbot.core.router import select_provider
from chatbot.models.chat import ChatRequest

router = APIRouter(prefix="/api/chat", tags=["chat"])

MESSAGE_REQUIRED = "Message is required"
GENERATION_FAILED = "Failed to generate response"


async def _relay(
    first: str,
    fragments: AsyncIterator[str],
    provider: str,
    start_time: float,
) -> AsyncIterator[str]:
    """
    Forward fragments as the raw response body.

    The status line is already sent, so a provider failure here can only end
    the body early. The client sees the same thing as a clean end.
    """
    count = 1 if first else 0
    if first:
        yield first
    try:
        async for fragment in fragments:
            count += 1
            yield fragment
    except PartialStreamFault as e:
        logger.error(
            "Stream from {} ended after {} chars: {}", provider, len(e.emitted), e
        )
        return
    except Exception as e:
        logger.exception("Streaming error: {}", e)
        return

    latency_ms = int((time.monotonic() - start_time) * 1000)
    logger.info(f"[chat] {provider} stream complete fragments={count} latency_ms={latency_ms}")


# ── Routes ──────────────────────────────────────────────────────────────────────

@router.post("")
async def chat(request: Request):
    start_time = time.monotonic()

    # The body is validated here rather than by a typed parameter so that a bad
    # request maps onto the two plain-text errors instead of a 422.
    try:
        raw = await request.json()
    except ValueError:
        return PlainTextResponse(MESSAGE_REQUIRED, status_code=400)

    message = raw.get("message") if isinstance(raw, dict) else None
    if not isinstance(message, str) or not message.strip():
        return PlainTextResponse(MESSAGE_REQUIRED, status_code=400)

    try:
        body = ChatRequest.model_validate(raw)
        settings = resolve_settings(body.settings)
        messages = build_messages(
            body.message,
            settings=settings,
            history=body.conversation_history,
            memories=body.user_memories,
        )
        selection = select_provider(settings.model)
        logger.info(
            f"[chat] user={body.user_id or '-'} provider={selection.provider} "
            f"model={selection.model_name} messages={len(messages)}"
        )

        fragments = stream_completion(
            selection,
            messages,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
        # Pull the first fragment before committing to a 200 so that a failing
        # provider call still maps to a 500.
        try:
            first = await anext(fragments)
        except StopAsyncIteration:
            first = ""
    except MessageValidationError:
        return PlainTextResponse(MESSAGE_REQUIRED, status_code=400)
    except Exception as e:
        logger.exception("Error generating chat response: {}", e)
        return PlainTextResponse(GENERATION_FAILED, status_code=500)

    return StreamingResponse(
        _relay(first, fragments, selection.provider, start_time),
        media_type="text/plain; charset=utf-8",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
