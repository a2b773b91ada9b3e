"""Provider clients with the SDKs mocked out."""

import asyncio
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from december.llm_clients import (
    AnthropicChatClient,
    ModelCallError,
    OpenAIChatClient,
    TokenUsage,
    create_client,
    to_anthropic_content,
)


def _openai_client(create_mock):
    async_client = MagicMock()
    async_client.chat.completions.create = create_mock
    usage = TokenUsage()
    with patch.dict(os.environ, {"OPENAI_API_KEY": "test-key"}, clear=False), patch(
        "december.llm_clients.openai.AsyncOpenAI", return_value=async_client
    ):
        client = OpenAIChatClient(usage=usage, model="gpt-4o")
    return client, usage


def _anthropic_client(async_client):
    usage = TokenUsage()
    with patch.dict(os.environ, {"ANTHROPIC_API_KEY": "test-key"}, clear=False), patch(
        "december.llm_clients.anthropic.AsyncAnthropic", return_value=async_client
    ):
        client = AnthropicChatClient(usage=usage)
    return client, usage


async def _collect(agen):
    return [item async for item in agen]


def test_missing_openai_key_raises():
    with patch.dict(os.environ, {}, clear=True), patch("december.llm_clients.load_dotenv"):
        with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
            OpenAIChatClient(usage=TokenUsage())


def test_missing_anthropic_key_raises():
    with patch.dict(os.environ, {}, clear=True), patch("december.llm_clients.load_dotenv"):
        with pytest.raises(EnvironmentError, match="ANTHROPIC_API_KEY"):
            AnthropicChatClient(usage=TokenUsage())


def test_openai_complete_prepends_system_and_records_usage():
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="answer"))],
        usage=SimpleNamespace(prompt_tokens=11, completion_tokens=7),
    )
    create_mock = AsyncMock(return_value=response)
    client, usage = _openai_client(create_mock)

    text = asyncio.run(client.complete("SYS", [{"role": "user", "content": "hi"}], temperature=0.3, max_tokens=99))

    assert text == "answer"
    kwargs = create_mock.await_args.kwargs
    assert kwargs["messages"] == [
        {"role": "system", "content": "SYS"},
        {"role": "user", "content": "hi"},
    ]
    assert kwargs["temperature"] == 0.3
    assert kwargs["max_tokens"] == 99
    assert usage.calls == 1
    assert usage.input_tokens == 11
    assert usage.output_tokens == 7


def _chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))], usage=None)


class FakeChatStream:
    """Async iterator with the ``close()`` of openai's AsyncStream."""

    def __init__(self, chunks):
        self._chunks = iter(chunks)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        try:
            return next(self._chunks)
        except StopIteration:
            raise StopAsyncIteration

    async def close(self):
        self.closed = True


def test_openai_stream_yields_deltas():
    chunks = [_chunk("Hel"), _chunk(None), _chunk("lo")]
    chunks.append(SimpleNamespace(choices=[], usage=SimpleNamespace(prompt_tokens=5, completion_tokens=2)))
    fake_stream = FakeChatStream(chunks)
    create_mock = AsyncMock(return_value=fake_stream)
    client, usage = _openai_client(create_mock)

    deltas = asyncio.run(_collect(client.stream("SYS", [{"role": "user", "content": "hi"}])))

    assert deltas == ["Hel", "lo"]
    kwargs = create_mock.await_args.kwargs
    assert kwargs["stream"] is True
    assert kwargs["stream_options"] == {"include_usage": True}
    assert usage.input_tokens == 5
    assert usage.output_tokens == 2
    assert fake_stream.closed


def test_openai_stream_closed_when_consumer_stops_early():
    fake_stream = FakeChatStream([_chunk("one"), _chunk("two"), _chunk("three")])
    client, usage = _openai_client(AsyncMock(return_value=fake_stream))

    async def _first_delta():
        deltas = client.stream("SYS", [{"role": "user", "content": "hi"}])
        first = await deltas.__anext__()
        await deltas.aclose()
        return first

    assert asyncio.run(_first_delta()) == "one"
    assert fake_stream.closed
    assert usage.calls == 1


def test_openai_errors_become_model_call_errors():
    request = httpx.Request("POST", "https://example.test/v1/chat/completions")
    error = openai.APIStatusError(
        "bad request", response=httpx.Response(status_code=400, request=request), body={}
    )
    client, _ = _openai_client(AsyncMock(side_effect=error))

    with pytest.raises(ModelCallError, match="gpt-4o"):
        asyncio.run(client.complete("SYS", [{"role": "user", "content": "hi"}]))


def test_to_anthropic_content_converts_data_urls():
    parts = [
        {"type": "text", "text": "see"},
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
    ]

    assert to_anthropic_content("plain") == "plain"
    assert to_anthropic_content(parts) == [
        {"type": "text", "text": "see"},
        {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "AAAA"}},
    ]


def test_anthropic_complete():
    async_client = MagicMock()
    async_client.messages.create = AsyncMock(
        return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="hello")],
            usage=SimpleNamespace(input_tokens=3, output_tokens=2),
        )
    )
    client, usage = _anthropic_client(async_client)

    text = asyncio.run(client.complete("SYS", [{"role": "user", "content": "hi"}]))

    assert text == "hello"
    kwargs = async_client.messages.create.await_args.kwargs
    assert kwargs["system"] == "SYS"
    assert kwargs["max_tokens"] == 8192
    assert usage.calls == 1


def test_anthropic_stream():
    class FakeStream:
        def __init__(self):
            self.get_final_message = AsyncMock(
                return_value=SimpleNamespace(usage=SimpleNamespace(input_tokens=4, output_tokens=6))
            )

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

        @property
        def text_stream(self):
            async def _texts():
                yield "a"
                yield "b"

            return _texts()

    async_client = MagicMock()
    async_client.messages.stream = MagicMock(return_value=FakeStream())
    client, usage = _anthropic_client(async_client)

    deltas = asyncio.run(_collect(client.stream("SYS", [{"role": "user", "content": "hi"}])))

    assert deltas == ["a", "b"]
    assert usage.output_tokens == 6


def test_token_usage_cost_and_fallback_pricing():
    usage = TokenUsage()
    usage.set_pricing("gpt-4o")
    usage.record(1_000_000, 100_000, 12.0)

    assert usage.total_cost == pytest.approx(2.5 + 1.0)
    assert "1,000,000 in" in usage.summary()

    unknown = TokenUsage()
    unknown.set_pricing("my-local-model")
    assert unknown.input_price == 1.0
    assert unknown.model_label == "my-local-model"


def test_create_client_rejects_unknown_provider():
    with pytest.raises(ValueError, match="Unknown provider"):
        create_client(TokenUsage(), provider="cohere")
