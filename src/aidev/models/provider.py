"""Model provider data models."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict

MessageRole = Literal["system", "user", "assistant", "tool_result"]
ModelRole = Literal["chat", "tool"]
ModelTier = Literal["high", "mid", "low"]
StopReason = Literal["end_turn", "tool_use", "max_tokens"]


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: dict[str, Any] = {}


class ToolResult(BaseModel):
    tool_call_id: str
    content: str
    is_error: bool = False


class ToolDefinition(BaseModel):
    name: str
    description: str
    input_schema: dict[str, Any] = {"type": "object", "properties": {}}


class ChatMessage(BaseModel):
    role: MessageRole
    content: str = ""
    tool_calls: Optional[list[ToolCall]] = None
    tool_call_id: Optional[str] = None
    is_error: bool = False


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class ResolvedModel(BaseModel):
    id: str
    name: str
    tier: ModelTier
    role: ModelRole
    provider: str


class ModelRequest(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    role: ModelRole = "chat"
    messages: list[ChatMessage]
    tools: Optional[list[ToolDefinition]] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    signal: Optional[Any] = None


class ModelResponse(BaseModel):
    content: str = ""
    model: ResolvedModel
    usage: Optional[TokenUsage] = None
    tool_calls: Optional[list[ToolCall]] = None
    stop_reason: Optional[StopReason] = None
