"""Data models shared by the agent loop, providers and tools."""

from .agent import (
    AgentAction,
    AgentConfig,
    ConfirmationAction,
    ErrorAction,
    ResponseAction,
    ToolCallAction,
    UsageTotals,
)
from .finding import (
    CodeLocation,
    Finding,
    ScanOptions,
    ScanResult,
    ScanStatus,
    ScanSummary,
    Severity,
    SuggestedFix,
)
from .provider import (
    ChatMessage,
    ModelRequest,
    ModelResponse,
    ResolvedModel,
    TokenUsage,
    ToolCall,
    ToolDefinition,
    ToolResult,
)

__all__ = [
    "AgentAction",
    "AgentConfig",
    "ChatMessage",
    "CodeLocation",
    "ConfirmationAction",
    "ErrorAction",
    "Finding",
    "ModelRequest",
    "ModelResponse",
    "ResolvedModel",
    "ResponseAction",
    "ScanOptions",
    "ScanResult",
    "ScanStatus",
    "ScanSummary",
    "Severity",
    "SuggestedFix",
    "TokenUsage",
    "ToolCall",
    "ToolCallAction",
    "ToolDefinition",
    "ToolResult",
    "UsageTotals",
]
