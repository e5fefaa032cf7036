"""Host side of the agent loop: runs tools and answers tool actions.

``ToolRunner`` executes tools and keeps the latest ``ScanResult`` per tool for
export. ``drive_agent`` implements the resume protocol: autonomous calls run
directly, gated calls run only if ``confirm`` approves, denied calls resume the
loop with ``None``.
"""

from __future__ import annotations

import inspect
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from ..models.agent import (
    AgentAction,
    ConfirmationAction,
    ErrorAction,
    TERMINAL_ACTION_TYPES,
    ToolCallAction,
)
from ..models.finding import ExportFormat, ScanOptions, ScanResult, ScanStatus, thaw
from ..models.provider import ToolResult
from ..providers.base import ModelProvider
from ..tools import BaseTool, create_tool
from ..utils.cancel import AbortSignal
from .agent_loop import AgentGenerator

MAX_DIGEST_FINDINGS = 50
MAX_DIGEST_DESCRIPTION = 500

ConfirmCallback = Callable[[ConfirmationAction], Union[bool, Awaitable[bool]]]


def result_digest(result: ScanResult) -> dict[str, Any]:
    """Compact, model-facing view of a scan result."""
    findings = []
    for f in result.findings[:MAX_DIGEST_FINDINGS]:
        entry: dict[str, Any] = {
            "title": f.title,
            "severity": f.severity.value,
            "file": f.location.file_path,
            "line": f.location.start_line,
            "description": f.description[:MAX_DIGEST_DESCRIPTION],
        }
        if f.suggested_fix:
            entry["suggested_fix"] = f.suggested_fix.description
        if f.metadata:
            entry["metadata"] = thaw(f.metadata)
        findings.append(entry)

    digest: dict[str, Any] = {
        "tool_id": result.tool_id,
        "status": result.status.value,
        "summary": result.summary.model_dump(),
        "findings": findings,
    }
    if len(result.findings) > MAX_DIGEST_FINDINGS:
        digest["omitted_findings"] = len(result.findings) - MAX_DIGEST_FINDINGS
    if result.error:
        digest["error"] = result.error
    return digest


class ToolRunner:
    def __init__(self, provider: Optional[ModelProvider], project_path: Path, config: dict):
        self.provider = provider
        self.project_path = Path(project_path)
        self.config = config
        self._tools: dict[str, BaseTool] = {}
        self._results: dict[str, ScanResult] = {}

    def get_tool(self, tool_id: str) -> BaseTool:
        if tool_id not in self._tools:
            self._tools[tool_id] = create_tool(tool_id, self.provider, self.project_path, self.config)
        return self._tools[tool_id]

    async def run(
        self,
        tool_id: str,
        paths: Optional[list[str]] = None,
        args: Optional[dict] = None,
        signal: Optional[AbortSignal] = None,
    ) -> ScanResult:
        tool = self.get_tool(tool_id)
        result = await tool.execute(ScanOptions(paths=paths or [], args=args or {}, signal=signal))
        self._results[tool_id] = result
        return result

    def cancel(self, tool_id: str) -> None:
        if tool_id in self._tools:
            self._tools[tool_id].cancel()

    def get_status(self, tool_id: str) -> ScanStatus:
        """Live status of a tool: pending until first run, running while it executes."""
        tool = self._tools.get(tool_id)
        return tool.status if tool is not None else ScanStatus.PENDING

    def get_result(self, tool_id: str) -> Optional[ScanResult]:
        return self._results.get(tool_id)

    def all_results(self) -> dict[str, ScanResult]:
        return dict(self._results)

    def export(self, tool_id: str, format: ExportFormat = "json") -> str:
        result = self._results.get(tool_id)
        if result is None:
            raise KeyError(f"No results for tool: {tool_id}")
        return self.get_tool(tool_id).export(result, format)

    async def execute_action(
        self,
        action: ToolCallAction | ConfirmationAction,
        signal: Optional[AbortSignal] = None,
    ) -> ToolResult:
        """Run the tool an agent action asks for and serialize the outcome."""
        args = dict(action.args)
        paths = args.pop("paths", None) or []
        result = await self.run(action.tool_id, paths, args, signal)
        return ToolResult(
            tool_call_id=action.call_id,
            content=json.dumps(result_digest(result), ensure_ascii=False, default=str),
            is_error=result.status != ScanStatus.COMPLETED,
        )


async def drive_agent(
    loop: AgentGenerator,
    runner: ToolRunner,
    confirm: ConfirmCallback,
    on_action: Optional[Callable[[AgentAction], None]] = None,
    signal: Optional[AbortSignal] = None,
) -> AgentAction:
    """Drive an agent run to its terminal action."""
    reply: Optional[ToolResult] = None
    try:
        while True:
            try:
                action = await loop.asend(reply)
            except StopAsyncIteration:
                return ErrorAction(message="Agent loop ended without a result.")

            if on_action is not None:
                on_action(action)
            if action.type in TERMINAL_ACTION_TYPES:
                return action

            if isinstance(action, ConfirmationAction):
                approved = confirm(action)
                if inspect.isawaitable(approved):
                    approved = await approved
                reply = await runner.execute_action(action, signal) if approved else None
            else:
                reply = await runner.execute_action(action, signal)
    finally:
        await loop.aclose()
