"""Analysis tools sharing the ``BaseTool`` scan contract."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..providers.base import ModelProvider
from .base import BaseTool, ScanCancelled
from .comments import CommentsTool
from .commit import CommitTool
from .dead_code import DeadCodeTool
from .lint import LintTool
from .pr_review import PRReviewTool
from .tldr import TldrTool

TOOL_CLASSES: dict[str, type[BaseTool]] = {
    "dead-code": DeadCodeTool,
    "lint": LintTool,
    "comments": CommentsTool,
    "commit": CommitTool,
    "tldr": TldrTool,
    "pr-review": PRReviewTool,
}


def create_tool(
    tool_id: str,
    provider: Optional[ModelProvider],
    project_path: Path,
    config: Optional[dict] = None,
) -> BaseTool:
    try:
        cls = TOOL_CLASSES[tool_id]
    except KeyError:
        raise ValueError(f"Unknown tool: {tool_id}") from None
    return cls(provider, project_path, config)


__all__ = ["BaseTool", "ScanCancelled", "TOOL_CLASSES", "create_tool"]
