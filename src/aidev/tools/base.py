"""Shared scan contract for the analysis tools.

``BaseTool.execute`` wraps a tool's ``run`` with status transitions, timestamps,
summary aggregation and cancellation. Nothing raised inside ``run`` escapes:
cancellation yields a ``cancelled`` result and any other exception a ``failed``
result with a sanitized message.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from rich.console import Console

from ..models.finding import (
    CodeLocation,
    ExportFormat,
    Finding,
    ScanOptions,
    ScanResult,
    ScanStatus,
    Severity,
    SuggestedFix,
    ToolId,
    build_summary,
)
from ..models.provider import ChatMessage, ModelRequest
from ..providers.base import ModelProvider, RequestAborted
from ..utils.cancel import AbortController, AbortError, AbortSignal, any_signal
from ..utils.ids import generate_id
from ..utils.sanitize import describe_error

console = Console(stderr=True)

SEVERITY_ORDER = (Severity.ERROR, Severity.WARNING, Severity.INFO, Severity.HINT)


class ScanCancelled(Exception):
    """The scan's abort signal fired; raised at phase boundaries."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BaseTool:
    id: ToolId
    name: str = ""
    description: str = ""

    def __init__(
        self,
        provider: Optional[ModelProvider],
        project_path: Path,
        config: Optional[dict] = None,
    ):
        self.provider = provider
        self.project_path = Path(project_path)
        self.config = config or {}
        self.tool_config: dict = self.config.get("tools", {})
        self.files_scanned = 0
        self.status = ScanStatus.PENDING
        self.started_at: Optional[datetime] = None
        self._controller: Optional[AbortController] = None
        self.signal: AbortSignal = AbortController().signal

    # ------------------------------------------------------------------
    # Scan contract
    # ------------------------------------------------------------------

    async def run(self, options: ScanOptions) -> list[Finding]:
        raise NotImplementedError

    async def execute(self, options: Optional[ScanOptions] = None) -> ScanResult:
        options = options or ScanOptions()
        self._controller = AbortController()
        self.signal = any_signal(options.signal, self._controller.signal)
        self.files_scanned = 0
        self.started_at = started_at = _now()
        self.status = ScanStatus.RUNNING

        findings: list[Finding] = []
        error: Optional[str] = None
        try:
            self.throw_if_cancelled()
            findings = await self.run(options)
            status = ScanStatus.COMPLETED
        except (ScanCancelled, AbortError, RequestAborted):
            status = ScanStatus.CANCELLED
            findings = []
            error = "Scan cancelled"
        except asyncio.CancelledError:
            self.status = ScanStatus.CANCELLED
            raise
        except Exception as e:
            status = ScanStatus.FAILED
            findings = []
            error = describe_error(e)
        finally:
            self.signal.unlink()

        self.status = status
        return ScanResult(
            tool_id=self.id,
            status=status,
            started_at=started_at,
            completed_at=_now(),
            findings=tuple(findings),
            summary=build_summary(findings, self.files_scanned),
            error=error,
        )

    def cancel(self) -> None:
        if self._controller is not None:
            self._controller.abort("Cancelled by user")

    def throw_if_cancelled(self) -> None:
        if self.signal.aborted:
            raise ScanCancelled(self.signal.reason or "Scan cancelled")

    # ------------------------------------------------------------------
    # Finding helpers
    # ------------------------------------------------------------------

    def create_finding(
        self,
        title: str,
        description: str,
        file_path: str,
        start_line: int = 0,
        end_line: Optional[int] = None,
        severity: Severity = Severity.WARNING,
        suggested_fix: Optional[SuggestedFix] = None,
        metadata: Optional[dict[str, Any]] = None,
        start_column: Optional[int] = None,
        end_column: Optional[int] = None,
    ) -> Finding:
        return Finding(
            id=generate_id(),
            tool_id=self.id,
            title=title,
            description=description,
            location=CodeLocation(
                file_path=file_path,
                start_line=start_line,
                end_line=end_line if end_line is not None else start_line,
                start_column=start_column,
                end_column=end_column,
            ),
            severity=severity,
            suggested_fix=suggested_fix,
            metadata=metadata or {},
        )

    def create_error_finding(self, title: str, error: BaseException | str, file_path: str = "") -> Finding:
        """Warning finding for a phase or file that failed without failing the scan."""
        message = error if isinstance(error, str) else describe_error(error)
        return self.create_finding(
            title=title,
            description=message,
            file_path=file_path,
            severity=Severity.WARNING,
            metadata={"kind": "tool-error"},
        )

    # ------------------------------------------------------------------
    # Model access
    # ------------------------------------------------------------------

    async def ask_model(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> Optional[str]:
        """Best-effort model call. Returns None (and warns) on failure or timeout."""
        if self.provider is None:
            return None
        self.throw_if_cancelled()

        messages: list[ChatMessage] = []
        if system:
            messages.append(ChatMessage(role="system", content=system))
        messages.append(ChatMessage(role="user", content=prompt))
        request = ModelRequest(role="tool", messages=messages, max_tokens=max_tokens, signal=self.signal)

        timeout = self.tool_config.get("model_timeout_seconds", 120)
        try:
            response = await asyncio.wait_for(self.provider.send_request(request), timeout)
        except RequestAborted as e:
            raise ScanCancelled(str(e)) from e
        except Exception as e:
            if self.signal.aborted:
                raise ScanCancelled(self.signal.reason or "Scan cancelled") from e
            if isinstance(e, asyncio.TimeoutError):
                reason = f"timed out after {timeout}s"
            else:
                reason = describe_error(e)
            console.print(f"  [yellow]WARN[/yellow] {self.name}: model request failed: {reason}")
            return None
        return response.content

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(self, result: ScanResult, format: ExportFormat = "json") -> str:
        if format == "json":
            return json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False)
        if format == "markdown":
            return render_markdown(result, self.name or result.tool_id)
        raise ValueError(f"Unsupported export format: {format}")


def render_markdown(result: ScanResult, title: str) -> str:
    """Human-readable report grouped by severity."""
    s = result.summary
    lines = [
        f"# {title} Report",
        "",
        f"- **Status:** {result.status.value}",
        f"- **Started:** {result.started_at.isoformat()}",
    ]
    if result.completed_at:
        lines.append(f"- **Completed:** {result.completed_at.isoformat()}")
    if result.error:
        lines.append(f"- **Error:** {result.error}")
    lines += [
        "",
        "## Summary",
        "",
        "| Severity | Count |",
        "|----------|-------|",
    ]
    for sev in SEVERITY_ORDER:
        lines.append(f"| {sev.value} | {s.by_severity.get(sev.value, 0)} |")
    lines += [
        "",
        f"Total findings: {s.total_findings}. Files scanned: {s.files_scanned}. "
        f"Files with findings: {s.files_with_findings}.",
    ]

    for sev in SEVERITY_ORDER:
        group = [f for f in result.findings if f.severity == sev]
        if not group:
            continue
        lines += ["", f"## {sev.value.capitalize()} ({len(group)})"]
        for f in group:
            loc = f.location
            where = loc.file_path or "(project)"
            if loc.start_line:
                where += f":{loc.start_line}"
                if loc.end_line and loc.end_line != loc.start_line:
                    where += f"-{loc.end_line}"
            lines += ["", f"### {f.title}", "", f"**Location:** `{where}`"]
            if f.description:
                lines += ["", f.description]
            if f.suggested_fix:
                lines += ["", f"**Suggested fix:** {f.suggested_fix.description}"]
                if f.suggested_fix.replacement:
                    lines += ["", "```", f.suggested_fix.replacement, "```"]

    return "\n".join(lines) + "\n"


def truncate_lines(text: str, max_lines: int, max_chars: Optional[int] = None) -> str:
    """Cap ``text`` by line and character count, noting what was cut."""
    lines = text.splitlines()
    truncated = False
    if len(lines) > max_lines:
        lines = lines[:max_lines]
        truncated = True
    out = "\n".join(lines)
    if max_chars is not None and len(out) > max_chars:
        out = out[:max_chars]
        truncated = True
    if truncated:
        out += "\n[... truncated]"
    return out
