"""Ollama local inference provider (/api/chat with tools)."""

from __future__ import annotations

from typing import Any

import httpx

from ..models.provider import ModelRequest, ModelResponse, ResolvedModel, TokenUsage, ToolCall
from ..utils.ids import generate_id
from .base import BaseProvider, ProviderError


class OllamaProvider(BaseProvider):
    id = "ollama"
    name = "Ollama"

    def _endpoint(self) -> str:
        return self.config.get("endpoint", "http://localhost:11434").rstrip("/")

    async def is_available(self) -> bool:
        try:
            async with self._client() as client:
                response = await client.get(f"{self._endpoint()}/api/tags")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def list_models(self) -> list[ResolvedModel]:
        try:
            async with self._client() as client:
                response = await client.get(f"{self._endpoint()}/api/tags")
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError:
            return []
        return [
            ResolvedModel(id=m["name"], name=m["name"], tier="mid", role="chat", provider=self.id)
            for m in data.get("models", [])
            if m.get("name")
        ]

    @staticmethod
    def _convert_messages(request: ModelRequest) -> list[dict]:
        messages: list[dict] = []
        for m in request.messages:
            if m.role == "tool_result":
                messages.append({"role": "tool", "content": m.content})
            elif m.role == "assistant" and m.tool_calls:
                messages.append({
                    "role": "assistant",
                    "content": m.content,
                    "tool_calls": [
                        {"function": {"name": tc.name, "arguments": tc.arguments}}
                        for tc in m.tool_calls
                    ],
                })
            else:
                messages.append({"role": m.role, "content": m.content})
        return messages

    async def _send(self, request: ModelRequest, model: ResolvedModel) -> ModelResponse:
        body: dict[str, Any] = {
            "model": model.id,
            "messages": self._convert_messages(request),
            "stream": False,
        }
        if request.tools:
            body["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.input_schema,
                    },
                }
                for t in request.tools
            ]
        options: dict[str, Any] = {}
        if request.temperature is not None:
            options["temperature"] = request.temperature
        if request.max_tokens:
            options["num_predict"] = request.max_tokens
        if options:
            body["options"] = options

        try:
            async with self._client() as client:
                response = await client.post(f"{self._endpoint()}/api/chat", json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"{e.response.status_code} | {e.response.text}") from e
        except httpx.TimeoutException as e:
            raise ProviderError(f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(str(e)) from e

        message = data.get("message") or {}
        # Ollama does not assign tool call ids
        tool_calls = [
            ToolCall(
                id=f"call_{generate_id()}",
                name=tc.get("function", {}).get("name", ""),
                arguments=tc.get("function", {}).get("arguments") or {},
            )
            for tc in message.get("tool_calls") or []
        ]

        usage = None
        if "prompt_eval_count" in data or "eval_count" in data:
            usage = TokenUsage(
                input_tokens=data.get("prompt_eval_count", 0),
                output_tokens=data.get("eval_count", 0),
            )

        done_reason = data.get("done_reason")
        if tool_calls:
            stop_reason = "tool_use"
        elif done_reason == "length":
            stop_reason = "max_tokens"
        else:
            stop_reason = "end_turn"

        return ModelResponse(
            content=message.get("content") or "",
            model=model,
            usage=usage,
            tool_calls=tool_calls or None,
            stop_reason=stop_reason,
        )
