"""Agent loop data models."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .finding import ToolId
from .provider import ToolDefinition


class AgentConfig(BaseModel):
    """Per-run configuration. Empty ``system_prompt`` selects the built-in one."""

    model_config = ConfigDict(frozen=True)

    max_turns: int = Field(default=10, gt=0)
    max_token_budget: int = Field(default=100_000, gt=0)
    system_prompt: str = ""
    available_tools: tuple[ToolDefinition, ...] = ()


class UsageTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_input_tokens: int = 0
    total_output_tokens: int = 0


class ToolCallAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["tool_call"] = "tool_call"
    tool_id: ToolId
    call_id: str
    args: dict[str, Any] = {}


class ConfirmationAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["confirmation_required"] = "confirmation_required"
    tool_id: ToolId
    call_id: str
    args: dict[str, Any] = {}
    description: str = ""


class ResponseAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["response"] = "response"
    content: str
    usage: Optional[UsageTotals] = None


class ErrorAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    message: str


AgentAction = Annotated[
    Union[ToolCallAction, ConfirmationAction, ResponseAction, ErrorAction],
    Field(discriminator="type"),
]

TERMINAL_ACTION_TYPES = ("response", "error")
