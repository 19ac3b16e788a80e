"""
Unit tests for the streaming completion service.

The provider is replaced with httpx.MockTransport serving OpenAI-style
server-sent events.
"""

import json

import httpx
import pytest

from chatbot.core.completion import parse_sse_line, stream_completion
from chatbot.core.errors import PartialStreamFault, ProviderError
from chatbot.core.router import ProviderSelection, select_provider


def sse(*fragments: str, done: bool = True) -> bytes:
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": f}}]}) + "\n\n"
        for f in fragments
    ]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def collect(stream) -> list[str]:
    return [fragment async for fragment in stream]


MESSAGES = [{"role": "system", "content": "s"}, {"role": "user", "content": "u"}]


class TestParseSseLine:

    @pytest.mark.unit
    def test_data_line(self):
        assert parse_sse_line('data: {"a": 1}') == {"a": 1}

    @pytest.mark.unit
    def test_done_marker(self):
        assert parse_sse_line("data: [DONE]") == "[DONE]"

    @pytest.mark.unit
    @pytest.mark.parametrize("line", ["", ": keep-alive", "event: ping", "data: {oops", "data: 5"])
    def test_ignored_lines(self, line):
        assert parse_sse_line(line) is None


class TestStreamCompletion:

    @pytest.mark.unit
    async def test_fragments_in_order(self):
        captured = {}

        async def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, content=sse("Hel", "lo, ", "", "world"))

        async with mock_client(handler) as client:
            fragments = await collect(
                stream_completion(select_provider("groq"), MESSAGES, 0.3, 512, client=client)
            )

        assert fragments == ["Hel", "lo, ", "world"]
        assert captured["url"] == "https://api.groq.com/openai/v1/chat/completions"
        assert captured["auth"] == "Bearer test-groq-key"
        assert captured["body"] == {
            "model": "llama-3.1-70b-versatile",
            "messages": MESSAGES,
            "temperature": 0.3,
            "max_tokens": 512,
            "stream": True,
        }

    @pytest.mark.unit
    async def test_stops_at_done_marker(self):
        body = sse("a") + sse("ignored", done=False)

        async def handler(request):
            return httpx.Response(200, content=body)

        async with mock_client(handler) as client:
            fragments = await collect(
                stream_completion(select_provider("grok"), MESSAGES, 0.7, 2048, client=client)
            )

        assert fragments == ["a"]

    @pytest.mark.unit
    async def test_missing_credentials_fail_at_call(self):
        selection = ProviderSelection(
            provider="xai",
            model_name="grok-4",
            credential_source="UNSET_API_KEY",
            base_url="https://example.invalid",
        )

        with pytest.raises(ProviderError, match="UNSET_API_KEY"):
            await collect(stream_completion(selection, MESSAGES, 0.7, 2048))

    @pytest.mark.unit
    async def test_non_2xx_raises_provider_error(self):
        async def handler(request):
            return httpx.Response(429, text="rate limited")

        async with mock_client(handler) as client:
            with pytest.raises(ProviderError) as exc_info:
                await collect(
                    stream_completion(select_provider("grok"), MESSAGES, 0.7, 2048, client=client)
                )

        assert not isinstance(exc_info.value, PartialStreamFault)

    @pytest.mark.unit
    async def test_connect_error_raises_provider_error(self):
        async def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with mock_client(handler) as client:
            with pytest.raises(ProviderError):
                await collect(
                    stream_completion(select_provider("grok"), MESSAGES, 0.7, 2048, client=client)
                )

    @pytest.mark.unit
    async def test_failure_after_fragments_keeps_prefix(self):
        async def body():
            yield sse("partial ", "answer", done=False)
            raise httpx.ReadError("connection reset")

        async def handler(request):
            return httpx.Response(200, content=body())

        received = []
        async with mock_client(handler) as client:
            with pytest.raises(PartialStreamFault) as exc_info:
                async for fragment in stream_completion(
                    select_provider("grok"), MESSAGES, 0.7, 2048, client=client
                ):
                    received.append(fragment)

        assert received == ["partial ", "answer"]
        assert exc_info.value.emitted == "partial answer"

    @pytest.mark.unit
    async def test_error_event_mid_stream(self):
        body = sse("ok", done=False) + b'data: {"error": {"message": "overloaded"}}\n\n'

        async def handler(request):
            return httpx.Response(200, content=body)

        async with mock_client(handler) as client:
            with pytest.raises(PartialStreamFault):
                await collect(
                    stream_completion(select_provider("grok"), MESSAGES, 0.7, 2048, client=client)
                )
