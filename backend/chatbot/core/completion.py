import json
from typing import AsyncIterator

import httpx
from loguru import logger

from chatbot.config import get_settings
from chatbot.core.errors import PartialStreamFault, ProviderError
from chatbot.core.router import ProviderSelection

SSE_DONE = "[DONE]"


def parse_sse_line(line: str) -> dict | str | None:
    """
    Decode one server-sent-events line from an OpenAI-compatible stream.

    Returns the JSON payload, SSE_DONE for the terminal marker, or None for
    blank lines, comments and anything that is not valid JSON.
    """
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if data == SSE_DONE:
        return SSE_DONE
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def extract_fragment(chunk: dict) -> str:
    choices = chunk.get("choices") or []
    if not choices:
        return ""
    return (choices[0].get("delta") or {}).get("content") or ""


def _failure(message: str, emitted: list[str]) -> ProviderError:
    if emitted:
        return PartialStreamFault(message, "".join(emitted))
    return ProviderError(message)


async def stream_completion(
    selection: ProviderSelection,
    messages: list[dict],
    temperature: float,
    max_tokens: int,
    client: httpx.AsyncClient | None = None,
) -> AsyncIterator[str]:
    """
    Run one streaming completion and yield text fragments in generation order.

    There is no retry. A failure before the first fragment raises ProviderError;
    a failure after it raises PartialStreamFault, with the earlier fragments
    already handed to the caller.
    """
    api_key = selection.api_key
    if not api_key:
        raise ProviderError(f"{selection.credential_source} is not set")

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=get_settings().provider_timeout)

    payload = {
        "model": selection.model_name,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": True,
    }
    emitted: list[str] = []

    try:
        async with client.stream(
            "POST",
            f"{selection.base_url}/chat/completions",
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
        ) as resp:
            if resp.status_code != 200:
                error_body = await resp.aread()
                logger.error(
                    "{} error {}: {}", selection.provider, resp.status_code, error_body
                )
                raise ProviderError(
                    f"{selection.provider} returned HTTP {resp.status_code}"
                )

            async for line in resp.aiter_lines():
                chunk = parse_sse_line(line)
                if chunk is None:
                    continue
                if chunk == SSE_DONE:
                    break
                if "error" in chunk:
                    logger.error("{} stream error: {}", selection.provider, chunk["error"])
                    raise _failure(f"{selection.provider} reported an error", emitted)

                fragment = extract_fragment(chunk)
                if fragment:
                    emitted.append(fragment)
                    yield fragment

    except httpx.ConnectError as e:
        logger.error(f"Cannot connect to {selection.provider} at {selection.base_url}")
        raise _failure(f"Cannot connect to {selection.provider}", emitted) from e
    except httpx.HTTPError as e:
        logger.error(f"{selection.provider} transport error: {e}")
        raise _failure(f"{selection.provider} transport error", emitted) from e
    finally:
        if owns_client:
            await client.aclose()

    logger.debug(
        f"[completion] {selection.provider}/{selection.model_name} "
        f"fragments={len(emitted)} chars={sum(len(f) for f in emitted)}"
    )
