"""Anthropic Messages API provider with tool use."""

from __future__ import annotations

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

STOP_REASONS: dict[str, StopReason] = {
    "end_turn": "end_turn",
    "tool_use": "tool_use",
    "max_tokens": "max_tokens",
}


class AnthropicProvider(BaseProvider):
    id = "anthropic"
    name = "Anthropic"
    API_URL = "https://api.anthropic.com/v1/messages"
    MODELS = (
        ("claude-sonnet-4-20250514", "Claude Sonnet 4", "high"),
        ("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", "mid"),
        ("claude-3-5-haiku-20241022", "Claude 3.5 Haiku", "low"),
    )

    def _get_api_key(self) -> Optional[str]:
        if self.config.get("api_key"):
            return self.config["api_key"]
        env_var = self.config.get("api_key_env", "ANTHROPIC_API_KEY")
        return os.environ.get(env_var)

    async def is_available(self) -> bool:
        return bool(self._get_api_key())

    @staticmethod
    def _convert_messages(request: ModelRequest) -> tuple[str, list[dict]]:
        """Split out the system prompt and map roles to Anthropic content blocks."""
        system_parts: list[str] = []
        messages: list[dict] = []
        for m in request.messages:
            if m.role == "system":
                system_parts.append(m.content)
            elif m.role == "tool_result":
                block: dict[str, Any] = {
                    "type": "tool_result",
                    "tool_use_id": m.tool_call_id,
                    "content": m.content,
                }
                if m.is_error:
                    block["is_error"] = True
                messages.append({"role": "user", "content": [block]})
            elif m.role == "assistant" and m.tool_calls:
                blocks: list[dict[str, Any]] = []
                if m.content:
                    blocks.append({"type": "text", "text": m.content})
                for tc in m.tool_calls:
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": tc.arguments,
                    })
                messages.append({"role": "assistant", "content": blocks})
            else:
                messages.append({"role": m.role, "content": m.content})
        return "\n".join(system_parts), messages

    async def _send(self, request: ModelRequest, model: ResolvedModel) -> ModelResponse:
        api_key = self._get_api_key()
        if not api_key:
            env_var = self.config.get("api_key_env", "ANTHROPIC_API_KEY")
            raise ProviderError(f"API key not found in environment variable: {env_var}")

        system, messages = self._convert_messages(request)
        body: dict[str, Any] = {
            "model": model.id,
            "max_tokens": request.max_tokens or self.config.get("max_tokens", 4096),
            "messages": messages,
        }
        if system:
            body["system"] = system
        temperature = request.temperature
        if temperature is None:
            temperature = self.common.get("temperature")
        if temperature is not None:
            body["temperature"] = temperature
        if request.tools:
            body["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.input_schema}
                for t in request.tools
            ]

        headers = {
            "x-api-key": api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
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

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in data.get("content", []):
            if block.get("type") == "text":
                text_parts.append(block.get("text") or "")
            elif block.get("type") == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.get("id", ""),
                    name=block.get("name", ""),
                    arguments=block.get("input") or {},
                ))

        usage = data.get("usage")
        return ModelResponse(
            content="".join(text_parts),
            model=model,
            usage=TokenUsage(
                input_tokens=usage.get("input_tokens", 0),
                output_tokens=usage.get("output_tokens", 0),
            ) if usage else None,
            tool_calls=tool_calls or None,
            stop_reason=STOP_REASONS.get(data.get("stop_reason", "")),
        )
