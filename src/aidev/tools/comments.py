"""Comment hygiene.

Extracts comment blocks per language, uses git blame to age them, flags stale
comments, and asks the model whether the rest should be removed or rewritten.
Findings carry suggested fixes; files are never edited.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..core.git import blame_line_times
from ..core.scanner import SourceFile, collect_source_files
from ..models.finding import CodeLocation, Finding, ScanOptions, Severity, SuggestedFix
from .base import BaseTool

C_BLOCK_COMMENT = re.compile(r"/\*[\s\S]*?\*/")
C_LINE_COMMENT = re.compile(r"(?<![:\\])//(.*)$")
PY_LINE_COMMENT = re.compile(r"#(.*)$")

SYSTEM_PROMPT = """You review source code comments for value.
For each comment that is outdated, redundant with the code, or noise, reply with one line:
REMOVE|<start_line>|<end_line>|<reason>
For each comment worth keeping but poorly worded, reply with one line:
REWRITE|<start_line>|<end_line>|<reason>|<replacement comment text>
Use the line numbers exactly as given. Omit comments that are fine. Output nothing else."""


@dataclass
class Comment:
    start_line: int
    end_line: int
    text: str


@dataclass
class CommentAction:
    action: str
    start_line: int
    end_line: int
    reason: str
    replacement: str = ""


def _line_of(content: str, index: int) -> int:
    return content.count("\n", 0, index) + 1


def _outside_string(prefix: str) -> bool:
    """Rough check that a comment marker is not inside a string literal."""
    for quote in ('"', "'", "`"):
        if prefix.count(quote) % 2:
            return False
    return True


def extract_comments(content: str, language: str) -> list[Comment]:
    """Comments in source order. Consecutive full-line comments merge into one block."""
    comments: list[Comment] = []

    if language in ("typescript", "javascript"):
        for m in C_BLOCK_COMMENT.finditer(content):
            if not _outside_string(content[content.rfind("\n", 0, m.start()) + 1:m.start()]):
                continue
            comments.append(Comment(_line_of(content, m.start()), _line_of(content, m.end() - 1), m.group(0)))
        line_pattern = C_LINE_COMMENT
    else:
        line_pattern = PY_LINE_COMMENT

    block: Optional[Comment] = None
    for line_no, line in enumerate(content.splitlines(), start=1):
        m = line_pattern.search(line)
        if m is None or not _outside_string(line[:m.start()]):
            block = None
            continue
        if language == "python" and line_no == 1 and line.startswith("#!"):
            continue
        full_line = not line[:m.start()].strip()
        if full_line and block is not None and block.end_line == line_no - 1:
            block.end_line = line_no
            block.text += "\n" + line.strip()
            continue
        block = Comment(line_no, line_no, line[m.start():].strip())
        comments.append(block)
        if not full_line:
            # Trailing comments never merge with the next line
            block = None

    comments.sort(key=lambda c: c.start_line)
    return dedupe_comments(comments)


def dedupe_comments(comments: list[Comment]) -> list[Comment]:
    """Drop comments whose line range overlaps an earlier one (first wins)."""
    kept: list[Comment] = []
    for c in comments:
        if any(c.start_line <= k.end_line and k.start_line <= c.end_line for k in kept):
            continue
        kept.append(c)
    return kept


def parse_comment_actions(response: str) -> list[CommentAction]:
    """``REMOVE|start|end|reason`` / ``REWRITE|start|end|reason|replacement``; bad lines skipped."""
    actions: list[CommentAction] = []
    for raw in response.splitlines():
        line = raw.strip()
        if line.startswith("REMOVE|"):
            parts = line.split("|", 3)
            expected = 4
        elif line.startswith("REWRITE|"):
            parts = line.split("|", 4)
            expected = 5
        else:
            continue
        if len(parts) != expected:
            continue
        try:
            start, end = int(parts[1].strip()), int(parts[2].strip())
        except ValueError:
            continue
        if start < 1 or end < start:
            continue
        replacement = parts[4].replace("\\n", "\n").strip() if expected == 5 else ""
        if expected == 5 and not replacement:
            continue
        actions.append(CommentAction(parts[0], start, end, parts[3].strip(), replacement))
    return actions


class CommentsTool(BaseTool):
    id = "comments"
    name = "Comment Hygiene"
    description = "Find stale comments and suggest removals or rewrites."

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

        stale_days = options.args.get("stale_days") or self.tool_config.get("stale_comment_days", 365)
        now = datetime.now(timezone.utc)

        findings: list[Finding] = []
        remaining: list[tuple[SourceFile, Comment]] = []
        for f in files:
            try:
                comments = extract_comments(f.read(), f.language)
            except OSError as e:
                findings.append(self.create_error_finding(f"Could not read {f.relative}", e, f.relative))
                continue
            if not comments:
                continue
            times = blame_line_times(self.project_path, f.relative)
            for c in comments:
                stamps = [times[n] for n in range(c.start_line, c.end_line + 1) if n in times]
                age_days = (now - max(stamps)).days if stamps else None
                if age_days is not None and age_days > stale_days:
                    findings.append(self.create_finding(
                        title=f"Stale comment ({age_days} days old)",
                        description=f"Comment not updated in {age_days} days; check it still matches the code.\n\n{c.text}",
                        file_path=f.relative,
                        start_line=c.start_line,
                        end_line=c.end_line,
                        severity=Severity.INFO,
                        metadata={"kind": "stale", "age_days": age_days},
                    ))
                else:
                    remaining.append((f, c))
        self.throw_if_cancelled()

        if remaining:
            findings.extend(await self._model_review(remaining))
        return findings

    async def _model_review(self, remaining: list[tuple[SourceFile, Comment]]) -> list[Finding]:
        cap = self.tool_config.get("max_comments_for_model", 40)
        by_file: dict[str, list[Comment]] = {}
        for f, c in remaining[:cap]:
            by_file.setdefault(f.relative, []).append(c)

        findings: list[Finding] = []
        for file_path, comments in by_file.items():
            self.throw_if_cancelled()
            listing = "\n\n".join(f"[{c.start_line}-{c.end_line}]\n{c.text}" for c in comments)
            response = await self.ask_model(f"File: {file_path}\n\n{listing}", system=SYSTEM_PROMPT)
            if not response:
                continue
            for action in parse_comment_actions(response):
                location = CodeLocation(file_path=file_path, start_line=action.start_line, end_line=action.end_line)
                verb = "Remove" if action.action == "REMOVE" else "Rewrite"
                findings.append(self.create_finding(
                    title=f"{verb} comment",
                    description=action.reason,
                    file_path=file_path,
                    start_line=action.start_line,
                    end_line=action.end_line,
                    severity=Severity.HINT,
                    suggested_fix=SuggestedFix(
                        description=f"{verb} comment: {action.reason}",
                        replacement=action.replacement,
                        location=location,
                    ),
                    metadata={"kind": action.action.lower()},
                ))
        return findings
