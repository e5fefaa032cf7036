"""Tests for core/agent_loop.py."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from aidev.core.agent_loop import SKIPPED_TOOL_MESSAGE, AgentLoop, run_agent_loop
from aidev.core.registry import tool_definitions
from aidev.models.agent import AgentConfig, ConfirmationAction, ErrorAction, ResponseAction, ToolCallAction
from aidev.models.provider import ChatMessage, ToolCall, ToolResult
from aidev.providers.base import ProviderError
from aidev.utils.cancel import AbortController


def _config(**kwargs) -> AgentConfig:
    kwargs.setdefault("available_tools", tuple(tool_definitions()))
    return AgentConfig(**kwargs)


def _tool_results(messages) -> list[ChatMessage]:
    return [m for m in messages if m.role == "tool_result"]


async def _drain(gen, reply=None) -> list:
    """Collect every action, answering tool actions with ``reply(action)``."""
    actions = []
    value = None
    while True:
        try:
            action = await gen.asend(value)
        except StopAsyncIteration:
            return actions
        actions.append(action)
        value = reply(action) if reply and action.type not in ("response", "error") else None


class TestAgentConfig:
    def test_defaults(self):
        config = AgentConfig()
        assert config.max_turns == 10
        assert config.max_token_budget == 100_000
        assert config.system_prompt == ""

    @pytest.mark.parametrize("field", ["max_turns", "max_token_budget"])
    def test_rejects_non_positive_limits(self, field):
        with pytest.raises(ValidationError):
            AgentConfig(**{field: 0})

    def test_is_immutable(self):
        config = AgentConfig()
        with pytest.raises(ValidationError):
            config.max_turns = 5


class TestFinalResponse:
    @pytest.mark.asyncio
    async def test_immediate_text_response(self, scripted):
        provider = scripted(["hello"])
        gen = run_agent_loop(provider, _config(max_turns=3, max_token_budget=10_000), [], "hi")

        actions = await _drain(gen)

        assert actions == [ResponseAction(content="hello", usage=actions[0].usage)]
        assert actions[0].usage.total_input_tokens == 0
        assert actions[0].usage.total_output_tokens == 0
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_usage_is_accumulated(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="lint")], usage=(100, 20)),
            respond("done", usage=(150, 30)),
        ])
        gen = run_agent_loop(provider, _config(), [], "lint it")

        actions = await _drain(gen, lambda a: ToolResult(tool_call_id=a.call_id, content="ok"))

        final = actions[-1]
        assert final.type == "response"
        assert final.usage.total_input_tokens == 250
        assert final.usage.total_output_tokens == 50

    @pytest.mark.asyncio
    async def test_generator_finishes_after_terminal_action(self, scripted):
        gen = run_agent_loop(scripted(["hi"]), _config(), [], "hello")
        await gen.asend(None)
        with pytest.raises(StopAsyncIteration):
            await gen.asend(None)


class TestToolCalls:
    @pytest.mark.asyncio
    async def test_autonomous_tool_then_response(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="dead-code", arguments={})]),
            respond("There are 3 unused exports."),
        ])
        loop = AgentLoop(provider, _config(max_turns=5), [], "find dead code")
        gen = loop.run()

        first = await gen.asend(None)
        assert isinstance(first, ToolCallAction)
        assert first.tool_id == "dead-code"
        assert first.call_id == "c1"

        second = await gen.asend(ToolResult(tool_call_id="c1", content="3 findings"))
        assert isinstance(second, ResponseAction)
        assert second.content == "There are 3 unused exports."

        assert len(provider.requests) == 2
        assert loop.turns_remaining == 4

        sent = provider.requests[1].messages
        assert sent[-2].role == "assistant"
        assert sent[-2].tool_calls[0].id == "c1"
        assert sent[-1] == ChatMessage(role="tool_result", content="3 findings", tool_call_id="c1")

    @pytest.mark.asyncio
    async def test_results_appended_in_request_order(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[
                ToolCall(id="c1", name="lint"),
                ToolCall(id="c2", name="tldr"),
                ToolCall(id="c3", name="comments"),
            ]),
            respond("summary"),
        ])
        gen = run_agent_loop(provider, _config(), [], "check everything")

        actions = await _drain(gen, lambda a: ToolResult(tool_call_id=a.call_id, content=f"result {a.call_id}"))

        assert [a.type for a in actions] == ["tool_call", "tool_call", "tool_call", "response"]
        results = _tool_results(provider.requests[1].messages)
        assert [r.tool_call_id for r in results] == ["c1", "c2", "c3"]
        assert [r.content for r in results] == ["result c1", "result c2", "result c3"]

    @pytest.mark.asyncio
    async def test_result_correlated_with_originating_call(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="call-A", name="lint")]),
            respond("ok"),
        ])
        gen = run_agent_loop(provider, _config(), [], "lint")

        await _drain(gen, lambda a: ToolResult(tool_call_id="something-else", content="x"))

        results = _tool_results(provider.requests[1].messages)
        assert results[0].tool_call_id == "call-A"

    @pytest.mark.asyncio
    async def test_tool_found_by_chat_command(self, scripted, respond):
        provider = scripted([respond(tool_calls=[ToolCall(id="c1", name="review")]), respond("ok")])
        gen = run_agent_loop(provider, _config(), [], "review the PR")

        action = await gen.asend(None)
        assert action.tool_id == "pr-review"

    @pytest.mark.asyncio
    async def test_validated_args_passed_to_host(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="tldr", arguments={"since": "1 week ago", "paths": ["src"]})]),
            respond("ok"),
        ])
        gen = run_agent_loop(provider, _config(), [], "what changed?")

        action = await gen.asend(None)
        assert action.args == {"since": "1 week ago", "paths": ["src"]}


class TestConfirmation:
    @pytest.mark.asyncio
    async def test_commit_requires_confirmation(self, scripted, respond):
        provider = scripted([respond(tool_calls=[ToolCall(id="c1", name="commit")]), respond("ok")])
        gen = run_agent_loop(provider, _config(), [], "commit my work")

        action = await gen.asend(None)

        assert isinstance(action, ConfirmationAction)
        assert action.tool_id == "commit"
        assert action.description.startswith("Commit:")

    @pytest.mark.asyncio
    async def test_denied_call_records_skip_message(self, scripted, respond):
        provider = scripted([respond(tool_calls=[ToolCall(id="c1", name="commit")]), respond("ok")])
        gen = run_agent_loop(provider, _config(), [], "commit my work")

        actions = await _drain(gen, lambda a: None)

        assert actions[-1].type == "response"
        results = _tool_results(provider.requests[1].messages)
        assert results == [ChatMessage(role="tool_result", content=SKIPPED_TOOL_MESSAGE, tool_call_id="c1")]


class TestRecoverableErrors:
    @pytest.mark.asyncio
    async def test_unknown_tool_feeds_error_back(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="frobnicate")]),
            respond("Sorry, I cannot do that."),
        ])
        gen = run_agent_loop(provider, _config(), [], "frobnicate please")

        actions = await _drain(gen)

        assert [a.type for a in actions] == ["response"]
        results = _tool_results(provider.requests[1].messages)
        assert len(results) == 1
        assert "Unknown tool" in results[0].content
        assert '"frobnicate"' in results[0].content
        assert "dead-code, lint, comments, commit, tldr, pr-review" in results[0].content
        assert results[0].is_error is True

    @pytest.mark.asyncio
    async def test_tool_not_offered_this_run_is_unknown(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="commit")]),
            respond("I can only lint or summarize here."),
        ])
        config = _config(available_tools=tuple(tool_definitions(["lint", "tldr"])))

        actions = await _drain(run_agent_loop(provider, config, [], "commit my work"))

        assert [a.type for a in actions] == ["response"]
        results = _tool_results(provider.requests[1].messages)
        assert results[0].content == 'Unknown tool: "commit". Available tools: lint, tldr'
        assert results[0].is_error is True

    @pytest.mark.asyncio
    async def test_chat_command_of_offered_tool_dispatched(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="deadcode")]),
            respond("done"),
        ])
        config = _config(available_tools=tuple(tool_definitions(["dead-code"])))

        actions = await _drain(run_agent_loop(provider, config, [], "dead code?"))

        assert [a.type for a in actions] == ["tool_call", "response"]
        assert actions[0].tool_id == "dead-code"

    @pytest.mark.asyncio
    async def test_failed_tool_result_keeps_error_flag(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="lint")]),
            respond("The linter failed."),
        ])

        await _drain(
            run_agent_loop(provider, _config(), [], "lint"),
            lambda a: ToolResult(tool_call_id=a.call_id, content="eslint crashed", is_error=True),
        )

        results = _tool_results(provider.requests[1].messages)
        assert results[0].content == "eslint crashed"
        assert results[0].is_error is True

    @pytest.mark.asyncio
    async def test_unknown_tool_does_not_block_other_calls(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="nope"), ToolCall(id="c2", name="lint")]),
            respond("ok"),
        ])
        gen = run_agent_loop(provider, _config(), [], "go")

        actions = await _drain(gen, lambda a: ToolResult(tool_call_id=a.call_id, content="linted"))

        assert [a.type for a in actions] == ["tool_call", "response"]
        results = _tool_results(provider.requests[1].messages)
        assert [r.tool_call_id for r in results] == ["c1", "c2"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arguments", [{"max_commits": "many"}, {"bogus": True}, {"paths": "src"}])
    async def test_invalid_arguments_become_tool_result(self, scripted, respond, arguments):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="tldr", arguments=arguments)]),
            respond("let me fix that"),
        ])
        gen = run_agent_loop(provider, _config(), [], "summarize")

        actions = await _drain(gen)

        assert [a.type for a in actions] == ["response"]
        results = _tool_results(provider.requests[1].messages)
        assert 'Invalid arguments for tool "tldr"' in results[0].content
        assert results[0].is_error is True


class TestTerminalErrors:
    @pytest.mark.asyncio
    async def test_turn_limit(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id=f"c{i}", name="lint")]) for i in range(3)
        ])
        gen = run_agent_loop(provider, _config(max_turns=3), [], "loop forever")

        actions = await _drain(gen, lambda a: ToolResult(tool_call_id=a.call_id, content="again"))

        assert len(provider.requests) == 3
        assert [a.type for a in actions] == ["tool_call", "tool_call", "tool_call", "error"]
        assert actions[-1] == ErrorAction(
            message="Agent loop reached maximum turns (3). Stopping to prevent runaway execution."
        )

    @pytest.mark.asyncio
    async def test_turn_limit_without_host_actions(self, scripted, respond):
        provider = scripted([respond(tool_calls=[ToolCall(id=f"c{i}", name="ghost")]) for i in range(2)])
        gen = run_agent_loop(provider, _config(max_turns=2), [], "hi")

        actions = await _drain(gen)

        assert len(provider.requests) == 2
        assert len(actions) == 1
        assert actions[0].type == "error"
        assert not any(a.type == "response" for a in actions)

    @pytest.mark.asyncio
    async def test_token_budget_checked_before_next_request(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="lint")], usage=(800, 100)),
            respond("never sent"),
        ])
        gen = run_agent_loop(provider, _config(max_token_budget=1_000), [], "lint")

        actions = await _drain(gen, lambda a: ToolResult(tool_call_id=a.call_id, content="ok"))

        assert len(provider.requests) == 1
        assert actions[-1] == ErrorAction(message="Token budget exhausted (900 / 1000 tokens used).")

    @pytest.mark.asyncio
    async def test_budget_below_threshold_allows_request(self, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="lint")], usage=(800, 99)),
            respond("done"),
        ])
        gen = run_agent_loop(provider, _config(max_token_budget=1_000), [], "lint")

        actions = await _drain(gen, lambda a: ToolResult(tool_call_id=a.call_id, content="ok"))

        assert actions[-1].type == "response"
        assert len(provider.requests) == 2

    @pytest.mark.asyncio
    async def test_provider_failure(self, scripted):
        gen = run_agent_loop(scripted([RuntimeError("connection reset")]), _config(), [], "hi")

        actions = await _drain(gen)

        assert actions == [ErrorAction(message="Model request failed: connection reset")]

    @pytest.mark.asyncio
    async def test_provider_failure_is_sanitized(self, scripted):
        error = ProviderError("401 | invalid key sk-ant-abcdef1234567890")
        gen = run_agent_loop(scripted([error]), _config(), [], "hi")

        actions = await _drain(gen)

        assert "sk-ant-abcdef" not in actions[0].message
        assert "[REDACTED_KEY]" in actions[0].message

    @pytest.mark.asyncio
    async def test_aborted_signal_stops_before_request(self, scripted):
        controller = AbortController()
        controller.abort("user pressed stop")
        provider = scripted(["unused"])
        gen = run_agent_loop(provider, _config(), [], "hi", signal=controller.signal)

        actions = await _drain(gen)

        assert provider.requests == []
        assert len(actions) == 1
        assert actions[0].type == "error"
        assert "user pressed stop" in actions[0].message

    @pytest.mark.asyncio
    async def test_abort_between_turns(self, scripted, respond):
        controller = AbortController()
        provider = scripted([respond(tool_calls=[ToolCall(id="c1", name="lint")]), respond("never")])
        gen = run_agent_loop(provider, _config(), [], "hi", signal=controller.signal)

        await gen.asend(None)
        controller.abort("cancelled")
        final = await gen.asend(ToolResult(tool_call_id="c1", content="ok"))

        assert final.type == "error"
        assert len(provider.requests) == 1


class TestMessages:
    @pytest.mark.asyncio
    async def test_history_replayed_after_system_prompt(self, scripted):
        provider = scripted(["ok"])
        history = [
            ChatMessage(role="user", content="earlier question"),
            ChatMessage(role="assistant", content="earlier answer"),
        ]
        gen = run_agent_loop(provider, _config(), history, "new question")
        await _drain(gen)

        sent = provider.requests[0].messages
        assert [m.role for m in sent] == ["system", "user", "assistant", "user"]
        assert sent[-1].content == "new question"

    @pytest.mark.asyncio
    async def test_request_carries_tools_and_chat_role(self, scripted):
        provider = scripted(["ok"])
        await _drain(run_agent_loop(provider, _config(), [], "hi"))

        request = provider.requests[0]
        assert request.role == "chat"
        assert [t.name for t in request.tools] == [
            "dead-code", "lint", "comments", "commit", "tldr", "pr-review",
        ]

    @pytest.mark.asyncio
    async def test_no_tools_sent_when_none_available(self, scripted):
        provider = scripted(["ok"])
        await _drain(run_agent_loop(provider, AgentConfig(), [], "hi"))

        assert provider.requests[0].tools is None

    @pytest.mark.asyncio
    async def test_custom_system_prompt(self, scripted):
        provider = scripted(["ok"])
        config = _config(system_prompt="You are terse.")
        await _drain(run_agent_loop(provider, config, [], "hi"))

        system = provider.requests[0].messages[0].content
        assert system.startswith("You are terse.\n")
        assert "You are AIDev" not in system

    def test_messages_snapshot_is_tuple(self, scripted):
        loop = AgentLoop(scripted([]), _config(), [], "hi")
        assert isinstance(loop.messages, tuple)
        assert [m.role for m in loop.messages] == ["system", "user"]
