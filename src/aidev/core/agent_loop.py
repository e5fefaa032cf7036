"""Agentic multi-turn tool-calling loop.

The loop is an async generator of ``AgentAction`` values. The host drives it:

1. ``gen = run_agent_loop(...)`` then ``action = await gen.asend(None)``
2. For ``tool_call`` / ``confirmation_required``, execute (or ask the user)
   and resume with ``await gen.asend(tool_result)``, or ``None`` if skipped
3. ``response`` and ``error`` are terminal; exactly one ends every run

The loop never executes tools and never raises: provider failures, budget
exhaustion, aborts and the turn limit all surface as an ``error`` action.
"""

from __future__ import annotations

from typing import AsyncGenerator, Optional

from ..models.agent import (
    AgentAction,
    AgentConfig,
    ConfirmationAction,
    ErrorAction,
    ResponseAction,
    ToolCallAction,
    UsageTotals,
)
from ..models.provider import ChatMessage, ModelRequest, ModelResponse, ToolCall, ToolResult
from ..providers.base import ModelProvider
from ..utils.cancel import AbortSignal
from ..utils.sanitize import describe_error
from .registry import (
    ToolArgumentsError,
    ToolRegistryEntry,
    get_tool_by_command,
    tool_names,
    validate_tool_args,
)
from .system_prompt import build_system_prompt

# Minimum remaining token budget to allow another request
MIN_TOKEN_BUDGET_THRESHOLD = 100

SKIPPED_TOOL_MESSAGE = "Tool execution was skipped or denied by the user."

AgentGenerator = AsyncGenerator[AgentAction, Optional[ToolResult]]


class AgentLoop:
    """One agent run. Owns its message history exclusively."""

    def __init__(
        self,
        provider: ModelProvider,
        config: AgentConfig,
        history: Optional[list[ChatMessage]] = None,
        user_message: str = "",
        signal: Optional[AbortSignal] = None,
    ):
        self.provider = provider
        self.config = config
        self.signal = signal
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.turns_remaining = config.max_turns
        self._messages: list[ChatMessage] = [
            ChatMessage(role="system", content=build_system_prompt(config)),
            *(history or []),
            ChatMessage(role="user", content=user_message),
        ]

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def usage(self) -> UsageTotals:
        return UsageTotals(
            total_input_tokens=self.total_input_tokens,
            total_output_tokens=self.total_output_tokens,
        )

    def _available_names(self) -> str:
        names = [t.name for t in self.config.available_tools] or tool_names()
        return ", ".join(names)

    def _lookup(self, name: str) -> Optional[ToolRegistryEntry]:
        """Registry entry for ``name`` if this run exposes it to the model."""
        entry = get_tool_by_command(name)
        if entry is None or not self.config.available_tools:
            return entry
        offered = {t.name for t in self.config.available_tools}
        return entry if entry.id in offered else None

    def _append_tool_result(self, call: ToolCall, content: str, is_error: bool = False) -> None:
        self._messages.append(
            ChatMessage(role="tool_result", content=content, tool_call_id=call.id, is_error=is_error)
        )

    async def run(self) -> AgentGenerator:
        while self.turns_remaining > 0:
            tokens_used = self.total_input_tokens + self.total_output_tokens
            budget = self.config.max_token_budget
            if tokens_used >= budget - MIN_TOKEN_BUDGET_THRESHOLD:
                yield ErrorAction(
                    message=f"Token budget exhausted ({tokens_used} / {budget} tokens used)."
                )
                return

            if self.signal is not None and self.signal.aborted:
                yield ErrorAction(message=f"Agent run aborted: {self.signal.reason}")
                return

            try:
                response: ModelResponse = await self.provider.send_request(
                    ModelRequest(
                        role="chat",
                        messages=list(self._messages),
                        tools=list(self.config.available_tools) or None,
                        signal=self.signal,
                    )
                )
            except Exception as e:
                yield ErrorAction(message=f"Model request failed: {describe_error(e)}")
                return

            if response.usage:
                self.total_input_tokens += response.usage.input_tokens
                self.total_output_tokens += response.usage.output_tokens

            if not response.tool_calls:
                yield ResponseAction(content=response.content, usage=self.usage)
                return

            self._messages.append(
                ChatMessage(
                    role="assistant",
                    content=response.content,
                    tool_calls=list(response.tool_calls),
                )
            )

            for call in response.tool_calls:
                entry = self._lookup(call.name)
                if entry is None:
                    self._append_tool_result(
                        call,
                        f'Unknown tool: "{call.name}". Available tools: {self._available_names()}',
                        is_error=True,
                    )
                    continue

                try:
                    args = validate_tool_args(entry, call.arguments)
                except ToolArgumentsError as e:
                    self._append_tool_result(call, str(e), is_error=True)
                    continue

                if entry.invocation == "autonomous":
                    action: AgentAction = ToolCallAction(
                        tool_id=entry.id, call_id=call.id, args=args,
                    )
                else:
                    action = ConfirmationAction(
                        tool_id=entry.id,
                        call_id=call.id,
                        args=args,
                        description=f"{entry.name}: {entry.description}",
                    )

                result: Optional[ToolResult] = yield action

                # Correlate by the originating call, whatever id the host echoed back
                if result is None:
                    self._append_tool_result(call, SKIPPED_TOOL_MESSAGE)
                else:
                    self._append_tool_result(call, result.content, is_error=result.is_error)

            self.turns_remaining -= 1

        yield ErrorAction(
            message=(
                f"Agent loop reached maximum turns ({self.config.max_turns}). "
                "Stopping to prevent runaway execution."
            )
        )


def run_agent_loop(
    provider: ModelProvider,
    config: AgentConfig,
    history: Optional[list[ChatMessage]] = None,
    user_message: str = "",
    signal: Optional[AbortSignal] = None,
) -> AgentGenerator:
    """Start an agent run and return its action generator."""
    return AgentLoop(provider, config, history, user_message, signal).run()
