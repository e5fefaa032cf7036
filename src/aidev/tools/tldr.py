"""TLDR: summarize recent changes for a file, directory or the whole project."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import PurePosixPath

from ..core import git
from ..models.finding import Finding, ScanOptions, Severity
from ..models.git import GitLogEntry, TldrHighlight, TldrSummary
from .base import BaseTool

SYSTEM_PROMPT = """You summarize recent changes in a code base from its commit history.

Rules:
- Start with a 1-2 sentence high-level summary of what changed
- Then list 3-7 key highlights, each on its own line prefixed with "- "
- Group related commits together rather than listing every commit
- Use present tense ("Adds authentication", "Fixes layout bug")
- Keep it brief"""


def format_commits(commits: list[GitLogEntry], limit: int) -> str:
    lines = []
    for c in commits[:limit]:
        files = f" [{', '.join(c.files)}]" if c.files else ""
        lines.append(f"- {c.timestamp.date().isoformat()} | {c.subject}{files}")
    return "\n".join(lines)


def parse_summary_response(content: str) -> tuple[str, list[str]]:
    """Split a model reply into summary text (before the first bullet) and bullet highlights."""
    summary_lines: list[str] = []
    highlights: list[str] = []
    in_highlights = False
    for line in content.strip().splitlines():
        stripped = line.strip()
        if stripped.startswith("- ") or stripped.startswith("* "):
            in_highlights = True
            highlights.append(stripped[2:].strip())
        elif not in_highlights and stripped:
            summary_lines.append(stripped)
    return " ".join(summary_lines) or content.strip(), highlights


def build_summary(scope: str, content: str, commits: list[GitLogEntry]) -> TldrSummary:
    """Assemble a TldrSummary; highlights are linked to files whose names they mention."""
    summary, bullets = parse_summary_response(content)

    highlights: list[TldrHighlight] = []
    for text in bullets:
        files: list[str] = []
        hashes: list[str] = []
        for c in commits:
            hit = [f for f in c.files if PurePosixPath(f).name in text]
            if hit:
                files.extend(f for f in hit if f not in files)
                hashes.append(c.hash)
        highlights.append(TldrHighlight(description=text, files=files, commits=hashes))

    now = datetime.now(timezone.utc)
    return TldrSummary(
        scope=scope,
        since=commits[-1].timestamp if commits else now,
        until=commits[0].timestamp if commits else now,
        commit_count=len(commits),
        summary=summary,
        highlights=highlights,
    )


class TldrTool(BaseTool):
    id = "tldr"
    name = "TLDR"
    description = "Summarize recent changes for a file, directory, or project."

    async def run(self, options: ScanOptions) -> list[Finding]:
        since = options.args.get("since") or self.tool_config.get("tldr_since", "2 weeks ago")
        limit = options.args.get("max_commits") or self.tool_config.get("max_commits_for_prompt", 50)
        scope = ", ".join(options.paths) if options.paths else "project"

        commits = git.get_log(self.project_path, since=since, paths=options.paths or None, max_count=limit)
        self.files_scanned = len({f for c in commits for f in c.files})
        if not commits:
            return [self.create_finding(
                title="No recent changes",
                description=f"No commits found for {scope} since {since}.",
                file_path="",
                severity=Severity.INFO,
                metadata={"kind": "no-changes"},
            )]
        self.throw_if_cancelled()

        prompt = f"Summarize changes to {scope} since {since} ({len(commits)} commits):\n\n"
        prompt += format_commits(commits, limit)
        response = await self.ask_model(prompt, system=SYSTEM_PROMPT)
        if not response:
            return [self.create_error_finding(
                "Could not generate summary",
                "The model did not return a summary.",
            )]
        self.throw_if_cancelled()

        summary = build_summary(scope, response, commits)
        return [self.create_finding(
            title=f"TLDR: {scope}",
            description=summary.summary,
            file_path=options.paths[0] if len(options.paths) == 1 else "",
            severity=Severity.INFO,
            metadata={"kind": "summary", "summary": summary.model_dump(mode="json")},
        )]
