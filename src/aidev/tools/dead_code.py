"""Dead code discovery.

Phase 1 extracts exported symbols with lightweight pattern matching and counts
whole-word occurrences across the scanned corpus; a symbol seen only once (its
own declaration) is flagged. Phase 2 optionally asks the model to spot false
positives, which are downgraded to hints, never removed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..core.scanner import SourceFile, collect_source_files
from ..models.finding import Finding, ScanOptions, Severity, freeze
from .base import BaseTool

TS_EXPORT_DECL = re.compile(
    r"^\s*export\s+(?:declare\s+)?(?:async\s+)?(?:abstract\s+)?"
    r"(?:function\*?|class|const|let|var|interface|type|enum)\s+([A-Za-z_$][\w$]*)",
    re.MULTILINE,
)
TS_EXPORT_LIST = re.compile(r"^\s*export\s*\{([^}]*)\}", re.MULTILINE)
PY_TOP_LEVEL = re.compile(
    r"^(?:async\s+def|def|class)\s+([A-Za-z]\w*)|^([A-Z][A-Z0-9_]*)\s*(?::[^=\n]+)?=",
    re.MULTILINE,
)

FALSE_POSITIVE_PREFIX = "FALSE_POSITIVE|"

SYSTEM_PROMPT = """You review static dead-code findings for false positives.
Symbols may be used dynamically (framework registration, reflection, public API,
entry points, CLI hooks, string-based imports).
For every finding that is likely still used, reply with one line:
FALSE_POSITIVE|<file>|<line>|<reason>
Output nothing else. If all findings look correct, reply with NONE."""


@dataclass
class ExportedSymbol:
    name: str
    file: str
    line: int
    language: str


def _line_of(content: str, index: int) -> int:
    return content.count("\n", 0, index) + 1


def extract_exports(content: str, file: str, language: str) -> list[ExportedSymbol]:
    """Exported symbol declarations in one file. ``export default`` is skipped."""
    symbols: list[ExportedSymbol] = []
    if language == "python":
        for m in PY_TOP_LEVEL.finditer(content):
            name = m.group(1) or m.group(2)
            if name and not name.startswith("_"):
                symbols.append(ExportedSymbol(name, file, _line_of(content, m.start()), language))
        return symbols

    for m in TS_EXPORT_DECL.finditer(content):
        symbols.append(ExportedSymbol(m.group(1), file, _line_of(content, m.start()), language))
    for m in TS_EXPORT_LIST.finditer(content):
        line = _line_of(content, m.start())
        for part in m.group(1).split(","):
            part = part.strip()
            if not part:
                continue
            # "a as b" exports under b
            name = part.split(" as ")[-1].strip()
            if name and name != "default" and re.match(r"^[A-Za-z_$][\w$]*$", name):
                symbols.append(ExportedSymbol(name, file, line, language))
    return symbols


def count_occurrences(name: str, corpus: list[str]) -> int:
    pattern = re.compile(rf"(?<![\w$]){re.escape(name)}(?![\w$])")
    return sum(len(pattern.findall(text)) for text in corpus)


def parse_false_positives(response: str) -> dict[tuple[str, int], str]:
    """``FALSE_POSITIVE|file|line|reason`` lines keyed by (file, line)."""
    result: dict[tuple[str, int], str] = {}
    for raw in response.splitlines():
        line = raw.strip()
        if not line.startswith(FALSE_POSITIVE_PREFIX):
            continue
        parts = line.split("|", 3)
        if len(parts) != 4:
            continue
        try:
            line_no = int(parts[2].strip())
        except ValueError:
            continue
        result[(parts[1].strip(), line_no)] = parts[3].strip()
    return result


class DeadCodeTool(BaseTool):
    id = "dead-code"
    name = "Dead Code Discovery"
    description = "Find exported symbols that are never referenced elsewhere."

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

        findings = self._static_pass(files)
        self.throw_if_cancelled()

        if findings and options.args.get("model_review", True):
            findings = await self._model_pass(findings)
        return findings

    def _static_pass(self, files: list[SourceFile]) -> list[Finding]:
        findings: list[Finding] = []
        contents: dict[str, str] = {}
        for f in files:
            try:
                contents[f.relative] = f.read()
            except OSError as e:
                findings.append(self.create_error_finding(f"Could not read {f.relative}", e, f.relative))

        symbols: list[ExportedSymbol] = []
        for f in files:
            if f.relative in contents:
                symbols.extend(extract_exports(contents[f.relative], f.relative, f.language))

        corpus = list(contents.values())
        for sym in symbols:
            if count_occurrences(sym.name, corpus) > 1:
                continue
            findings.append(self.create_finding(
                title=f"Unused export: {sym.name}",
                description=f"'{sym.name}' is exported from {sym.file} but never referenced elsewhere in the project.",
                file_path=sym.file,
                start_line=sym.line,
                severity=Severity.WARNING,
                metadata={"kind": "unused-export", "symbol": sym.name, "language": sym.language},
            ))
        return findings

    async def _model_pass(self, findings: list[Finding]) -> list[Finding]:
        candidates = [f for f in findings if f.metadata.get("kind") == "unused-export"]
        if not candidates:
            return findings
        listing = "\n".join(
            f"- {f.location.file_path}|{f.location.start_line}|{f.metadata.get('symbol')}"
            for f in candidates
        )
        response = await self.ask_model(
            f"Static analysis flagged these exports as unused (file|line|symbol):\n{listing}",
            system=SYSTEM_PROMPT,
        )
        if not response:
            return findings

        false_positives = parse_false_positives(response)
        reviewed: list[Finding] = []
        for f in findings:
            reason = false_positives.get((f.location.file_path, f.location.start_line))
            if reason is None or f.metadata.get("kind") != "unused-export":
                reviewed.append(f)
                continue
            reviewed.append(f.model_copy(update={
                "severity": Severity.HINT,
                "description": f"{f.description}\n\nModel review: {reason}",
                "metadata": freeze({**f.metadata, "model_false_positive": True}),
            }))
        return reviewed
