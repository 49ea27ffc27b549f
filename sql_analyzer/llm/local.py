"""
Local LLM Provider

Implementation of BaseLLMProvider for local model servers.
Supports Ollama, vLLM, llama.cpp server, and any OpenAI-compatible endpoint.
"""

import logging
from typing import Any

import httpx

from sql_analyzer.llm.base import BaseLLMProvider
from sql_analyzer.llm.models import LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)


class LocalProvider(BaseLLMProvider):
    """
    Local LLM provider implementation.

    Tries Ollama's native ``/api/chat`` first, then the OpenAI-compatible
    ``/v1/chat/completions`` endpoint.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 30,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            provider_name="local",
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )

        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=float(timeout))

        logger.info(
            f"Local provider initialized: {base_url} with model: {model}",
            extra={"base_url": base_url, "model": model},
        )

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Generate completion using the local model server."""
        request = self._apply_defaults(request)
        self._log_request(request)

        payload = {
            "model": request.model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "stream": False,
        }

        try:
            body = await self._post("/api/chat", payload)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code != 404:
                raise
            logger.debug("Ollama endpoint not available, using OpenAI-compatible endpoint")
            body = await self._post("/v1/chat/completions", payload)

        llm_response = self._to_response(body)
        self._log_response(llm_response)
        return llm_response

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self.client.post(f"{self.base_url}{path}", json=payload)
        response.raise_for_status()
        return response.json()

    def _to_response(self, body: dict[str, Any]) -> LLMResponse:
        if "message" in body:
            content = body.get("message", {}).get("content", "")
            prompt_tokens = body.get("prompt_eval_count", 0) or 0
            completion_tokens = body.get("eval_count", 0) or 0
            finish_reason = "length" if body.get("done_reason") == "length" else "stop"
        else:
            choice = (body.get("choices") or [{}])[0]
            content = choice.get("message", {}).get("content", "")
            usage = body.get("usage") or {}
            prompt_tokens = usage.get("prompt_tokens", 0) or 0
            completion_tokens = usage.get("completion_tokens", 0) or 0
            finish_reason = "length" if choice.get("finish_reason") == "length" else "stop"

        return LLMResponse(
            content=content or "",
            model=body.get("model", self.model),
            usage=LLMUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason=finish_reason,
            provider="local",
            metadata={"base_url": self.base_url},
        )
