"""Tests for core/host.py (tool runner and agent driver)."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from aidev.core.agent_loop import SKIPPED_TOOL_MESSAGE, AgentLoop
from aidev.core.host import MAX_DIGEST_FINDINGS, ToolRunner, drive_agent, result_digest
from aidev.core.registry import tool_definitions
from aidev.models.agent import AgentConfig, ConfirmationAction, ToolCallAction
from aidev.models.finding import CodeLocation, Finding, ScanResult, ScanStatus, Severity, build_summary
from aidev.models.provider import ToolCall
from aidev.tools import create_tool
from aidev.tools.dead_code import DeadCodeTool
from aidev.utils.cancel import AbortController


def _config() -> AgentConfig:
    return AgentConfig(max_turns=5, available_tools=tuple(tool_definitions()))


class TestToolRunner:
    @pytest.mark.asyncio
    async def test_run_stores_result(self, tmp_project: Path):
        runner = ToolRunner(None, tmp_project, {})

        result = await runner.run("dead-code", paths=["src"])

        assert result.status == ScanStatus.COMPLETED
        assert runner.get_result("dead-code") is result
        assert runner.all_results() == {"dead-code": result}
        assert runner.get_result("lint") is None

    def test_status_pending_before_first_run(self, tmp_project: Path):
        assert ToolRunner(None, tmp_project, {}).get_status("lint") == ScanStatus.PENDING

    @pytest.mark.asyncio
    async def test_status_after_run(self, tmp_project: Path):
        runner = ToolRunner(None, tmp_project, {})
        await runner.run("dead-code")
        assert runner.get_status("dead-code") == ScanStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_shared_signal_not_retained(self, tmp_project: Path):
        controller = AbortController()
        runner = ToolRunner(None, tmp_project, {})

        for _ in range(20):
            await runner.run("dead-code", signal=controller.signal)

        assert controller.signal._callbacks == []

    def test_tools_cached(self, tmp_project: Path):
        runner = ToolRunner(None, tmp_project, {})
        assert isinstance(runner.get_tool("dead-code"), DeadCodeTool)
        assert runner.get_tool("dead-code") is runner.get_tool("dead-code")

    @pytest.mark.asyncio
    async def test_export(self, tmp_project: Path):
        runner = ToolRunner(None, tmp_project, {})
        await runner.run("dead-code")

        data = json.loads(runner.export("dead-code", "json"))
        assert data["summary"]["total_findings"] == 2
        assert runner.export("dead-code", "markdown").startswith("# Dead Code Discovery Report")

    def test_export_without_result(self, tmp_project: Path):
        with pytest.raises(KeyError):
            ToolRunner(None, tmp_project, {}).export("lint")

    def test_unknown_tool(self, tmp_project: Path):
        with pytest.raises(ValueError, match="Unknown tool: nope"):
            create_tool("nope", None, tmp_project)

    @pytest.mark.asyncio
    async def test_execute_action(self, tmp_project: Path):
        runner = ToolRunner(None, tmp_project, {})
        action = ToolCallAction(tool_id="dead-code", call_id="c7", args={"paths": ["web"], "model_review": False})

        reply = await runner.execute_action(action)

        assert reply.tool_call_id == "c7"
        assert reply.is_error is False
        digest = json.loads(reply.content)
        assert digest["tool_id"] == "dead-code"
        assert digest["status"] == "completed"
        assert [f["title"] for f in digest["findings"]] == ["Unused export: orphanValue"]
        assert digest["findings"][0]["metadata"]["symbol"] == "orphanValue"

    @pytest.mark.asyncio
    async def test_failed_tool_is_error(self, tmp_project: Path):
        runner = ToolRunner(None, tmp_project, {})
        action = ConfirmationAction(tool_id="commit", call_id="c1", args={})

        reply = await runner.execute_action(action)

        assert reply.is_error is True
        assert json.loads(reply.content)["status"] == "failed"


class TestResultDigest:
    def test_caps_findings(self):
        findings = tuple(
            Finding(
                id=str(i),
                tool_id="lint",
                title=f"issue {i}",
                description="x" * 1000,
                location=CodeLocation(file_path="a.py", start_line=i),
                severity=Severity.INFO,
            )
            for i in range(MAX_DIGEST_FINDINGS + 5)
        )
        result = ScanResult(
            tool_id="lint",
            status=ScanStatus.COMPLETED,
            started_at=datetime.now(timezone.utc),
            findings=findings,
            summary=build_summary(findings),
        )

        digest = result_digest(result)

        assert len(digest["findings"]) == MAX_DIGEST_FINDINGS
        assert digest["omitted_findings"] == 5
        assert len(digest["findings"][0]["description"]) == 500
        assert "metadata" not in digest["findings"][0]
        assert "error" not in digest


class TestDriveAgent:
    @pytest.mark.asyncio
    async def test_runs_autonomous_tool(self, tmp_project: Path, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(
                id="c1", name="dead-code", arguments={"paths": ["web"], "model_review": False},
            )]),
            respond("orphanValue in web/api.ts is unused."),
        ])
        loop = AgentLoop(provider, _config(), [], "any dead code in web?")
        seen = []

        final = await drive_agent(loop.run(), ToolRunner(provider, tmp_project, {}), lambda a: False, on_action=seen.append)

        assert final.type == "response"
        assert final.content == "orphanValue in web/api.ts is unused."
        assert [a.type for a in seen] == ["tool_call", "response"]
        tool_message = provider.requests[1].messages[-1]
        assert tool_message.tool_call_id == "c1"
        assert "orphanValue" in tool_message.content

    @pytest.mark.asyncio
    async def test_denied_confirmation(self, tmp_project: Path, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="commit")]),
            respond("Okay, not committing."),
        ])
        asked = []

        def confirm(action):
            asked.append(action.tool_id)
            return False

        runner = ToolRunner(provider, tmp_project, {})
        final = await drive_agent(AgentLoop(provider, _config(), [], "commit").run(), runner, confirm)

        assert asked == ["commit"]
        assert final.content == "Okay, not committing."
        assert provider.requests[1].messages[-1].content == SKIPPED_TOOL_MESSAGE
        assert runner.get_result("commit") is None

    @pytest.mark.asyncio
    async def test_failed_tool_reported_as_error(self, tmp_project: Path, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="commit")]),
            respond("This folder is not a git repository."),
        ])

        runner = ToolRunner(provider, tmp_project, {})
        await drive_agent(AgentLoop(provider, _config(), [], "commit").run(), runner, lambda a: True)

        tool_message = provider.requests[1].messages[-1]
        assert tool_message.is_error is True
        assert json.loads(tool_message.content)["status"] == "failed"

    @pytest.mark.asyncio
    async def test_async_confirmation_approved(self, git_repo: Path, scripted, respond):
        provider = scripted([
            respond(tool_calls=[ToolCall(id="c1", name="commit")]),
            respond("Nothing to commit."),
        ])

        async def confirm(action):
            return True

        runner = ToolRunner(provider, git_repo, {})
        final = await drive_agent(AgentLoop(provider, _config(), [], "commit").run(), runner, confirm)

        assert final.content == "Nothing to commit."
        assert runner.get_result("commit").findings[0].title == "No changes to commit"
        assert "No changes to commit" in provider.requests[1].messages[-1].content

    @pytest.mark.asyncio
    async def test_error_action_returned(self, tmp_project: Path, scripted):
        provider = scripted([RuntimeError("down")])

        final = await drive_agent(
            AgentLoop(provider, _config(), [], "hi").run(), ToolRunner(provider, tmp_project, {}), lambda a: True,
        )

        assert final.type == "error"
        assert final.message == "Model request failed: down"

    @pytest.mark.asyncio
    async def test_generator_closed(self, tmp_project: Path, scripted):
        gen = AgentLoop(scripted(["hi"]), _config(), [], "hello").run()

        await drive_agent(gen, ToolRunner(None, tmp_project, {}), lambda a: True)

        with pytest.raises(StopAsyncIteration):
            await gen.asend(None)
