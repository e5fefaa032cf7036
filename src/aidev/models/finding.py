"""Finding and scan result data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

ToolId = Literal["dead-code", "lint", "comments", "commit", "tldr", "pr-review"]
ExportFormat = Literal["json", "markdown"]


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"


class ScanStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (ScanStatus.COMPLETED, ScanStatus.FAILED, ScanStatus.CANCELLED)


def freeze(value: Any) -> Any:
    """Read-only copy: mappings become mapping proxies and lists tuples, recursively."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Plain dict and list copy of a value built by ``freeze``."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(v) for v in value]
    return value


class CodeLocation(BaseModel):
    """Location in source. Lines are 1-based, columns 0-based."""

    model_config = ConfigDict(frozen=True)

    file_path: str
    start_line: int = 0
    end_line: int = 0
    start_column: Optional[int] = None
    end_column: Optional[int] = None


class SuggestedFix(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    replacement: str
    location: CodeLocation


class Finding(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    tool_id: ToolId
    title: str
    description: str = ""
    location: CodeLocation
    severity: Severity
    suggested_fix: Optional[SuggestedFix] = None
    metadata: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("metadata")
    @classmethod
    def freeze_metadata(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return freeze(value)

    @field_serializer("metadata")
    def serialize_metadata(self, value: Mapping[str, Any]) -> dict[str, Any]:
        return thaw(value)


def _empty_by_severity() -> dict[str, int]:
    return {s.value: 0 for s in Severity}


class ScanSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_findings: int = 0
    by_severity: Mapping[str, int] = Field(default_factory=_empty_by_severity, validate_default=True)
    files_scanned: int = 0
    files_with_findings: int = 0

    @field_validator("by_severity")
    @classmethod
    def freeze_counts(cls, value: Mapping[str, int]) -> Mapping[str, int]:
        return MappingProxyType(dict(value))

    @field_serializer("by_severity")
    def serialize_counts(self, value: Mapping[str, int]) -> dict[str, int]:
        return dict(value)


class ScanResult(BaseModel):
    """Result of one tool execution. Frozen once returned by a tool."""

    model_config = ConfigDict(frozen=True)

    tool_id: ToolId
    status: ScanStatus = ScanStatus.PENDING
    started_at: datetime
    completed_at: Optional[datetime] = None
    findings: tuple[Finding, ...] = ()
    summary: ScanSummary = ScanSummary()
    error: Optional[str] = None


class ScanOptions(BaseModel):
    """Options for a scan. Empty ``paths`` means the whole workspace."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    paths: list[str] = []
    signal: Optional[Any] = None
    args: dict[str, Any] = {}


def build_summary(findings: list[Finding] | tuple[Finding, ...], files_scanned: int = 0) -> ScanSummary:
    """Aggregate severity counts and distinct files touched."""
    by_severity = _empty_by_severity()
    files: set[str] = set()
    for f in findings:
        by_severity[f.severity.value] += 1
        if f.location.file_path:
            files.add(f.location.file_path)
    return ScanSummary(
        total_findings=len(findings),
        by_severity=by_severity,
        files_scanned=files_scanned,
        files_with_findings=len(files),
    )
