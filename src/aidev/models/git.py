"""Git workflow data models (commit proposals, PR info, change summaries)."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class CommitConstraints(BaseModel):
    min_length: int = 10
    max_length: int = 72
    prefix: str = ""
    suffix: str = ""
    enforcement: Literal["warn", "deny"] = "warn"


class HookResult(BaseModel):
    ran: bool = False
    exit_code: Optional[int] = None
    output: str = ""


class CommitProposal(BaseModel):
    message: str
    staged_files: list[str] = []
    diff_stat: str = ""
    violations: list[str] = []
    blocked: bool = False
    hook: Optional[HookResult] = None


class GitLogEntry(BaseModel):
    hash: str
    author_name: str = ""
    author_email: str = ""
    timestamp: datetime
    subject: str = ""
    files: list[str] = []


class PullRequestInfo(BaseModel):
    branch: str
    remote_ref: str
    target_branch: str
    commits_ahead: int = 0
    commits_behind: int = 0


class TldrHighlight(BaseModel):
    description: str
    files: list[str] = []
    commits: list[str] = []


class TldrSummary(BaseModel):
    scope: str
    since: datetime
    until: datetime
    commit_count: int = 0
    summary: str = ""
    highlights: list[TldrHighlight] = []
