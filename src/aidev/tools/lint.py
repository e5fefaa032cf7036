"""Lint and best-practice analysis.

Phase 1 shells out to the project's linters (ESLint for TS/JS, pylint for
Python) and maps their JSON output to findings. A linter that is missing, times
out or prints unparseable output contributes nothing. Phase 2 optionally asks
the model to review a capped sample of files.
"""

from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from ..core.scanner import SourceFile, collect_source_files, to_relative
from ..models.finding import Finding, ScanOptions, Severity
from .base import BaseTool, console

ESLINT_SEVERITY = {2: Severity.ERROR, 1: Severity.WARNING}
PYLINT_SEVERITY = {
    "fatal": Severity.ERROR,
    "error": Severity.ERROR,
    "warning": Severity.WARNING,
    "refactor": Severity.INFO,
    "convention": Severity.INFO,
    "info": Severity.INFO,
}

REVIEW_SEVERITY = {"ISSUE": Severity.WARNING, "SUGGESTION": Severity.INFO}

SYSTEM_PROMPT = """You are a senior code reviewer looking for problems linters miss:
architectural smells, error handling gaps, misleading names, duplicated logic.
Report each problem on its own line using exactly one of these formats:
ISSUE|<file>|<line>|<description>
SUGGESTION|<file>|<line>|<description>
Use the file paths exactly as given. Output nothing else."""


def parse_eslint_output(output: str, project_path: Path) -> list[dict]:
    """Flatten ESLint ``--format json`` output; anything unparseable yields []."""
    try:
        data = json.loads(output)
    except (json.JSONDecodeError, TypeError):
        return []
    if not isinstance(data, list):
        return []

    issues: list[dict] = []
    for file_result in data:
        if not isinstance(file_result, dict):
            continue
        file_path = to_relative(project_path, Path(file_result.get("filePath", "")))
        for msg in file_result.get("messages") or []:
            if not isinstance(msg, dict) or "message" not in msg:
                continue
            issues.append({
                "file": file_path,
                "line": msg.get("line") or 0,
                "end_line": msg.get("endLine"),
                "column": max((msg.get("column") or 1) - 1, 0),
                "severity": ESLINT_SEVERITY.get(msg.get("severity"), Severity.INFO),
                "rule": msg.get("ruleId") or "eslint",
                "message": msg["message"],
                "linter": "eslint",
            })
    return issues


def parse_pylint_output(output: str, project_path: Path) -> list[dict]:
    """Flatten pylint ``--output-format=json`` output; anything unparseable yields []."""
    try:
        data = json.loads(output)
    except (json.JSONDecodeError, TypeError):
        return []
    if not isinstance(data, list):
        return []

    issues: list[dict] = []
    for msg in data:
        if not isinstance(msg, dict) or "message" not in msg:
            continue
        path = msg.get("path", "")
        file_path = to_relative(project_path, project_path / path) if path else ""
        issues.append({
            "file": file_path,
            "line": msg.get("line") or 0,
            "end_line": msg.get("endLine"),
            "column": msg.get("column"),
            "severity": PYLINT_SEVERITY.get(msg.get("type", ""), Severity.INFO),
            "rule": msg.get("symbol") or msg.get("message-id") or "pylint",
            "message": msg["message"],
            "linter": "pylint",
        })
    return issues


def parse_review_response(response: str) -> list[dict]:
    """``ISSUE|file|line|desc`` / ``SUGGESTION|file|line|desc`` lines; malformed lines skipped."""
    items: list[dict] = []
    for raw in response.splitlines():
        line = raw.strip().lstrip("-* ").strip()
        parts = line.split("|", 3)
        if len(parts) != 4:
            continue
        kind = parts[0].strip().upper()
        if kind not in REVIEW_SEVERITY:
            continue
        try:
            line_no = int(parts[2].strip())
        except ValueError:
            continue
        description = parts[3].strip()
        if not description:
            continue
        items.append({
            "kind": kind,
            "file": parts[1].strip(),
            "line": max(line_no, 0),
            "description": description,
        })
    return items


class LintTool(BaseTool):
    id = "lint"
    name = "Lint & Best Practice"
    description = "Run linters and model-driven analysis for code smells and best practices."

    async def run(self, options: ScanOptions) -> list[Finding]:
        files = collect_source_files(
            self.project_path,
            options.paths,
            languages=self.config.get("enabled_languages"),
            max_files=self.tool_config.get("max_files", 500),
            max_file_kb=self.tool_config.get("max_file_kb", 256),
        )
        self.files_scanned = len(files)
        self.throw_if_cancelled()

        findings: list[Finding] = []
        for issue in self._run_linters(files):
            findings.append(self.create_finding(
                title=f"{issue['rule']}: {issue['message']}",
                description=issue["message"],
                file_path=issue["file"],
                start_line=issue["line"],
                end_line=issue["end_line"],
                start_column=issue["column"],
                severity=issue["severity"],
                metadata={"kind": "linter", "linter": issue["linter"], "rule": issue["rule"]},
            ))
        self.throw_if_cancelled()

        if files and options.args.get("model_review", True):
            findings.extend(await self._model_review(files))
        return findings

    # ------------------------------------------------------------------
    # Phase 1: linters
    # ------------------------------------------------------------------

    def _run_linters(self, files: list[SourceFile]) -> list[dict]:
        js_files = [f.relative for f in files if f.language in ("typescript", "javascript")]
        py_files = [f.relative for f in files if f.language == "python"]

        issues: list[dict] = []
        if js_files:
            eslint = self._find_executable("eslint")
            if eslint:
                output = self._run_linter([eslint, "--format", "json", *js_files])
                issues.extend(parse_eslint_output(output or "", self.project_path))
        if py_files:
            pylint = self._find_executable("pylint")
            if pylint:
                output = self._run_linter([pylint, "--output-format=json", *py_files])
                issues.extend(parse_pylint_output(output or "", self.project_path))
        return issues

    def _find_executable(self, name: str) -> Optional[str]:
        local = self.project_path / "node_modules" / ".bin" / name
        if local.is_file():
            return str(local)
        return shutil.which(name)

    def _run_linter(self, cmd: list[str]) -> Optional[str]:
        timeout = self.tool_config.get("linter_timeout_seconds", 120)
        try:
            result = subprocess.run(
                cmd, cwd=str(self.project_path), capture_output=True, text=True,
                timeout=timeout, encoding="utf-8", errors="replace",
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            console.print(f"  [yellow]WARN[/yellow] {Path(cmd[0]).name} unavailable: {e}")
            return None
        # Linters exit non-zero when they report problems
        return result.stdout

    # ------------------------------------------------------------------
    # Phase 2: model review
    # ------------------------------------------------------------------

    async def _model_review(self, files: list[SourceFile]) -> list[Finding]:
        max_files = self.tool_config.get("model_review_max_files", 10)
        max_chars = self.tool_config.get("model_review_max_chars", 30_000)

        sections: list[str] = []
        used = 0
        for f in files[:max_files]:
            try:
                content = f.read()
            except OSError:
                continue
            if used + len(content) > max_chars:
                break
            sections.append(f"--- {f.relative}\n{content}")
            used += len(content)
        if not sections:
            return []

        response = await self.ask_model("\n\n".join(sections), system=SYSTEM_PROMPT)
        if not response:
            return []

        return [
            self.create_finding(
                title=item["description"][:120],
                description=item["description"],
                file_path=item["file"],
                start_line=item["line"],
                severity=REVIEW_SEVERITY[item["kind"]],
                metadata={"kind": "model-review", "category": item["kind"].lower()},
            )
            for item in parse_review_response(response)
        ]
