"""OpenAI Chat Completions provider with function tools."""

from __future__ import annotations

import json
import os
from typing import Any, Optional

import httpx

from ..models.provider import (
    ModelRequest,
    ModelResponse,
    ResolvedModel,
    StopReason,
    TokenUsage,
    ToolCall,
)
from .base import BaseProvider, ProviderError

FINISH_REASONS: dict[str, StopReason] = {
    "stop": "end_turn",
    "tool_calls": "tool_use",
    "length": "max_tokens",
}


def parse_tool_arguments(raw: Optional[str]) -> dict:
    """Decode a function-call argument string; malformed JSON yields {}."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


class OpenAIProvider(BaseProvider):
    id = "openai"
    name = "OpenAI"
    API_URL = "https://api.openai.com/v1/chat/completions"
    MODELS = (
        ("gpt-4o", "GPT-4o", "high"),
        ("gpt-4o-mini", "GPT-4o Mini", "mid"),
        ("gpt-3.5-turbo", "GPT-3.5 Turbo", "low"),
    )

    def _get_api_key(self) -> Optional[str]:
        if self.config.get("api_key"):
            return self.config["api_key"]
        env_var = self.config.get("api_key_env", "OPENAI_API_KEY")
        return os.environ.get(env_var)

    async def is_available(self) -> bool:
        return bool(self._get_api_key())

    @staticmethod
    def _convert_messages(request: ModelRequest) -> list[dict]:
        messages: list[dict] = []
        for m in request.messages:
            if m.role == "tool_result":
                messages.append({"role": "tool", "tool_call_id": m.tool_call_id, "content": m.content})
            elif m.role == "assistant" and m.tool_calls:
                messages.append({
                    "role": "assistant",
                    "content": m.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                        }
                        for tc in m.tool_calls
                    ],
                })
            else:
                messages.append({"role": m.role, "content": m.content})
        return messages

    async def _send(self, request: ModelRequest, model: ResolvedModel) -> ModelResponse:
        api_key = self._get_api_key()
        if not api_key:
            env_var = self.config.get("api_key_env", "OPENAI_API_KEY")
            raise ProviderError(f"API key not found in environment variable: {env_var}")

        body: dict[str, Any] = {
            "model": model.id,
            "messages": self._convert_messages(request),
        }
        max_tokens = request.max_tokens or self.config.get("max_tokens")
        if max_tokens:
            body["max_tokens"] = max_tokens
        temperature = request.temperature
        if temperature is None:
            temperature = self.common.get("temperature")
        if temperature is not None:
            body["temperature"] = temperature
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

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        url = self.config.get("base_url") or self.API_URL
        try:
            async with self._client() as client:
                response = await client.post(url, json=body, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"{e.response.status_code} | {e.response.text}") from e
        except httpx.TimeoutException as e:
            raise ProviderError(f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(str(e)) from e

        choices = data.get("choices") or [{}]
        choice = choices[0]
        message = choice.get("message") or {}
        tool_calls = [
            ToolCall(
                id=tc.get("id", ""),
                name=tc.get("function", {}).get("name", ""),
                arguments=parse_tool_arguments(tc.get("function", {}).get("arguments")),
            )
            for tc in message.get("tool_calls") or []
        ]

        usage = data.get("usage")
        return ModelResponse(
            content=message.get("content") or "",
            model=model,
            usage=TokenUsage(
                input_tokens=usage.get("prompt_tokens", 0),
                output_tokens=usage.get("completion_tokens", 0),
            ) if usage else None,
            tool_calls=tool_calls or None,
            stop_reason=FINISH_REASONS.get(choice.get("finish_reason") or ""),
        )
