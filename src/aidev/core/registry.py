"""Static tool registry.

The tool set is closed: every analysis tool has one entry here describing how
it is surfaced (chat command, command id), whether the agent may run it without
asking (``autonomous``) or must ask first (``confirm``), and the pydantic model
its arguments are validated against. The registry is never mutated at runtime.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..models.finding import ToolId
from ..models.provider import ToolDefinition

InvocationMode = Literal["autonomous", "confirm"]


class ToolArgumentsError(ValueError):
    """Tool arguments failed validation against the tool's args model."""

    def __init__(self, tool_id: str, errors: list[str]):
        self.tool_id = tool_id
        self.errors = errors
        super().__init__(f'Invalid arguments for tool "{tool_id}": ' + "; ".join(errors))


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------

class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ScopedArgs(_ToolArgs):
    paths: list[str] = Field(
        default_factory=list,
        description="Workspace-relative files or directories to scan. Empty scans the whole project.",
    )


class DeadCodeArgs(ScopedArgs):
    model_review: bool = Field(True, description="Ask the model to flag likely false positives.")


class LintArgs(ScopedArgs):
    model_review: bool = Field(True, description="Add model review of a sample of files.")


class CommentsArgs(ScopedArgs):
    stale_days: Optional[int] = Field(None, gt=0, description="Age in days after which a comment is stale.")


class CommitArgs(_ToolArgs):
    hint: Optional[str] = Field(None, description="Optional intent to steer the generated message.")
    auto_stage: bool = Field(True, description="Stage all changed files before proposing.")


class TldrArgs(ScopedArgs):
    since: Optional[str] = Field(None, description='Git date expression, e.g. "2 weeks ago".')
    max_commits: Optional[int] = Field(None, gt=0)


class PrReviewArgs(_ToolArgs):
    branch_name: Optional[str] = Field(None, description="Branch to review. Defaults to the first branch ahead of a target.")
    target_branch: Optional[str] = Field(None, description="Base branch to diff against.")
    restore_original: bool = Field(True, description="Return to the original branch and pop the stash afterwards.")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class ToolRegistryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: ToolId
    name: str
    description: str
    chat_command: str
    command_id: str
    invocation: InvocationMode
    args_model: type[BaseModel]

    def to_definition(self) -> ToolDefinition:
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        return ToolDefinition(name=self.id, description=self.description, input_schema=schema)


TOOL_REGISTRY: tuple[ToolRegistryEntry, ...] = (
    ToolRegistryEntry(
        id="dead-code",
        name="Dead Code",
        description="Find exported symbols that are never referenced elsewhere in the project.",
        chat_command="deadcode",
        command_id="aidev.runDeadCode",
        invocation="autonomous",
        args_model=DeadCodeArgs,
    ),
    ToolRegistryEntry(
        id="lint",
        name="Lint",
        description="Run the project's linters and add a model review of code quality issues.",
        chat_command="lint",
        command_id="aidev.runLint",
        invocation="autonomous",
        args_model=LintArgs,
    ),
    ToolRegistryEntry(
        id="comments",
        name="Comments",
        description="Find stale comments and suggest removals or rewrites.",
        chat_command="comments",
        command_id="aidev.runComments",
        invocation="autonomous",
        args_model=CommentsArgs,
    ),
    ToolRegistryEntry(
        id="commit",
        name="Commit",
        description="Stage changes and propose a commit message checked against project constraints.",
        chat_command="commit",
        command_id="aidev.runCommit",
        invocation="confirm",
        args_model=CommitArgs,
    ),
    ToolRegistryEntry(
        id="tldr",
        name="TLDR",
        description="Summarize recent changes from the git history.",
        chat_command="tldr",
        command_id="aidev.runTldr",
        invocation="autonomous",
        args_model=TldrArgs,
    ),
    ToolRegistryEntry(
        id="pr-review",
        name="PR Review",
        description="Review a pull request branch against its target branch.",
        chat_command="review",
        command_id="aidev.runPrReview",
        invocation="autonomous",
        args_model=PrReviewArgs,
    ),
)

_BY_ID: dict[str, ToolRegistryEntry] = {t.id: t for t in TOOL_REGISTRY}
_BY_COMMAND: dict[str, ToolRegistryEntry] = {
    **{t.chat_command: t for t in TOOL_REGISTRY},
    **_BY_ID,
}


def get_tool_by_id(tool_id: str) -> Optional[ToolRegistryEntry]:
    return _BY_ID.get(tool_id)


def get_tool_by_command(name: str) -> Optional[ToolRegistryEntry]:
    """Look up a tool by id or chat command."""
    return _BY_COMMAND.get(name)


def tool_names() -> list[str]:
    return [t.id for t in TOOL_REGISTRY]


def tool_definitions(ids: Optional[list[str]] = None) -> list[ToolDefinition]:
    """Model-facing definitions for all tools, or only ``ids`` in registry order."""
    return [t.to_definition() for t in TOOL_REGISTRY if ids is None or t.id in ids]


def validate_tool_args(entry: ToolRegistryEntry, args: Optional[dict]) -> dict:
    """Validate ``args`` against the entry's args model; return the normalized dict."""
    try:
        parsed = entry.args_model.model_validate(args or {})
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or '(root)'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ToolArgumentsError(entry.id, errors) from e
    return parsed.model_dump(exclude_none=True)
