"""
Tests for Local Provider.

Uses httpx.MockTransport in place of a running model server.
"""

import json

import httpx
import pytest

from sql_analyzer.llm.local import LocalProvider
from sql_analyzer.llm.models import LLMRequest


def make_provider(handler) -> LocalProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LocalProvider(base_url="http://model-server:11434/", model="llama3.1:8b", client=client)


@pytest.fixture
def request_model():
    return LLMRequest.from_prompts("You review SQL.", "SELECT 1")


class TestOllamaEndpoint:
    @pytest.mark.asyncio
    async def test_native_chat(self, request_model):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "model": "llama3.1:8b",
                    "message": {"role": "assistant", "content": '{"score": 90}'},
                    "prompt_eval_count": 12,
                    "eval_count": 6,
                    "done_reason": "stop",
                },
            )

        provider = make_provider(handler)
        response = await provider.generate(request_model)
        await provider.aclose()

        assert response.content == '{"score": 90}'
        assert response.provider == "local"
        assert response.usage.total_tokens == 18
        assert response.finish_reason == "stop"
        assert seen[0].url == "http://model-server:11434/api/chat"
        payload = json.loads(seen[0].content)
        assert payload["model"] == "llama3.1:8b"
        assert payload["stream"] is False
        assert payload["messages"][0] == {"role": "system", "content": "You review SQL."}


class TestOpenAICompatibleFallback:
    @pytest.mark.asyncio
    async def test_falls_back_on_404(self, request_model):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path == "/api/chat":
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(
                200,
                json={
                    "model": "served-model",
                    "choices": [
                        {"message": {"content": '{"score": 70'}, "finish_reason": "length"}
                    ],
                    "usage": {"prompt_tokens": 10, "completion_tokens": 20},
                },
            )

        provider = make_provider(handler)
        response = await provider.generate(request_model)

        assert paths == ["/api/chat", "/v1/chat/completions"]
        assert response.model == "served-model"
        assert response.truncated is True
        assert response.usage.total_tokens == 30

    @pytest.mark.asyncio
    async def test_server_error_raises(self, request_model):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"error": "overloaded"})

        provider = make_provider(handler)

        with pytest.raises(httpx.HTTPStatusError):
            await provider.generate(request_model)
