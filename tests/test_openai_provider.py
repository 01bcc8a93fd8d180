"""Tests for the OpenAI streaming provider."""

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from llm.errors import ContentPolicyError, GenerationError
from llm.providers import OpenAIProvider


def _chunk(content=None, finish_reason=None):
    return SimpleNamespace(choices=[
        SimpleNamespace(delta=SimpleNamespace(content=content), finish_reason=finish_reason)
    ])


class FakeStream:
    def __init__(self, chunks, error=None):
        self._chunks = list(chunks)
        self._error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error

    async def close(self):
        self.closed = True


class FakeClient:
    """Mimics the chat.completions surface of AsyncOpenAI."""

    def __init__(self, stream=None, error=None):
        self.stream = stream
        self.error = error
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.stream


def _collect(provider, prompt="Hi"):
    async def run():
        return [fragment async for fragment in provider.stream(prompt)]
    return asyncio.run(run())


def _request():
    return httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def test_streams_delta_content_in_order():
    stream = FakeStream([_chunk("Hel"), _chunk(None), _chunk("lo"), SimpleNamespace(choices=[]), _chunk(finish_reason="stop")])
    client = FakeClient(stream)
    provider = OpenAIProvider(model_id="test-model", max_tokens=64, temperature=0.1, client=client)

    assert _collect(provider, "Human: hi\nHello") == ["Hel", "lo"]
    assert stream.closed

    request = client.requests[0]
    assert request["model"] == "test-model"
    assert request["stream"] is True
    assert request["max_tokens"] == 64
    assert request["messages"] == [{"role": "user", "content": "Human: hi\nHello"}]


def test_content_filter_finish_reason_raises_content_policy_error():
    stream = FakeStream([_chunk("Par"), _chunk(finish_reason="content_filter")])
    provider = OpenAIProvider(client=FakeClient(stream))

    with pytest.raises(ContentPolicyError):
        _collect(provider)
    assert stream.closed


def test_connection_error_is_wrapped():
    error = openai.APIConnectionError(request=_request())
    provider = OpenAIProvider(client=FakeClient(error=error))

    with pytest.raises(GenerationError) as exc_info:
        _collect(provider)
    assert not isinstance(exc_info.value, ContentPolicyError)


def test_mid_stream_error_is_wrapped_and_stream_closed():
    stream = FakeStream([_chunk("a")], error=openai.APIConnectionError(request=_request()))
    provider = OpenAIProvider(client=FakeClient(stream))

    with pytest.raises(GenerationError):
        _collect(provider)
    assert stream.closed


def test_content_management_policy_message_maps_to_content_policy_error():
    error = openai.APIConnectionError(
        message="The response was filtered due to the prompt triggering Azure OpenAI's content management policy.",
        request=_request(),
    )
    provider = OpenAIProvider(client=FakeClient(error=error))

    with pytest.raises(ContentPolicyError):
        _collect(provider)


def test_consumer_stopping_early_closes_stream():
    stream = FakeStream([_chunk("a"), _chunk("b"), _chunk("c")])
    provider = OpenAIProvider(client=FakeClient(stream))

    async def run():
        fragments = provider.stream("Hi")
        first = await fragments.__anext__()
        await fragments.aclose()
        return first

    assert asyncio.run(run()) == "a"
    assert stream.closed
