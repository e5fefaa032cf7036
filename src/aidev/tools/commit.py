"""Commit proposal.

Stages changes, asks the model for a conventional commit message, checks it
against the project's commit constraints and optionally dry-runs the
pre-commit hook. The result is a proposal for the user to approve; this tool
never runs ``git commit``.
"""

from __future__ import annotations

from ..core import git
from ..core.config import get_commit_constraints
from ..models.finding import Finding, ScanOptions, Severity
from ..models.git import CommitConstraints, CommitProposal, HookResult
from .base import BaseTool, truncate_lines

SYSTEM_PROMPT = """You write git commit messages in the Conventional Commits format:
<type>(<optional scope>): <description>
Types: feat, fix, docs, style, refactor, perf, test, build, ci, chore, revert.
Keep the subject line under {max_length} characters, imperative mood, no trailing period.
Add a short body after a blank line only when the change needs explanation.
Reply with the commit message only, no quotes or code fences."""


def clean_commit_message(response: str) -> str:
    """Strip code fences and wrapping quotes the model may add."""
    lines = [line for line in response.strip().splitlines() if not line.strip().startswith("```")]
    message = "\n".join(lines).strip()
    if len(message) >= 2 and message[0] == message[-1] and message[0] in ('"', "'", "`"):
        message = message[1:-1].strip()
    return message


def apply_affixes(message: str, constraints: CommitConstraints) -> str:
    """Add a configured prefix/suffix the model left out."""
    if constraints.prefix and not message.startswith(constraints.prefix):
        message = constraints.prefix + message
    if constraints.suffix and not message.rstrip().endswith(constraints.suffix):
        message = message.rstrip() + constraints.suffix
    return message


def validate_commit_message(message: str, constraints: CommitConstraints) -> list[str]:
    """Constraint violations for ``message``; empty when it conforms."""
    violations: list[str] = []
    subject = message.splitlines()[0] if message else ""

    if len(message) < constraints.min_length:
        violations.append(
            f"Message is {len(message)} characters; minimum is {constraints.min_length}."
        )
    if len(subject) > constraints.max_length:
        violations.append(
            f"Subject line is {len(subject)} characters; maximum is {constraints.max_length}."
        )
    if constraints.prefix and not message.startswith(constraints.prefix):
        violations.append(f'Message must start with "{constraints.prefix}".')
    if constraints.suffix and not message.rstrip().endswith(constraints.suffix):
        violations.append(f'Message must end with "{constraints.suffix}".')
    return violations


class CommitTool(BaseTool):
    id = "commit"
    name = "Auto-Commit"
    description = "Stage changed files and generate a commit message for approval."

    async def run(self, options: ScanOptions) -> list[Finding]:
        cwd = self.project_path
        changed = git.get_changed_files(cwd)
        if not changed:
            return [self.create_finding(
                title="No changes to commit",
                description="The working tree is clean.",
                file_path="",
                severity=Severity.INFO,
                metadata={"kind": "no-changes"},
            )]
        self.throw_if_cancelled()

        if options.args.get("auto_stage", True):
            git.stage_all(cwd)
        staged = git.get_staged_files(cwd)
        self.files_scanned = len(staged)
        if not staged:
            return [self.create_finding(
                title="No staged changes",
                description="Stage files first or enable auto_stage.",
                file_path="",
                severity=Severity.INFO,
                metadata={"kind": "no-changes"},
            )]
        self.throw_if_cancelled()

        stat = git.get_staged_diff_stat(cwd)
        diff = truncate_lines(
            git.get_staged_diff(cwd),
            self.tool_config.get("max_diff_lines", 500),
            self.tool_config.get("max_diff_chars", 20_000),
        )
        constraints = get_commit_constraints(self.config)
        prompt = f"Files changed:\n{stat}\n\nDiff:\n{diff}"
        if constraints.prefix:
            prompt += f'\n\nThe message must start with "{constraints.prefix}".'
        if constraints.suffix:
            prompt += f'\n\nThe message must end with "{constraints.suffix}".'
        if options.args.get("hint"):
            prompt += f"\n\nAuthor's intent: {options.args['hint']}"

        response = await self.ask_model(
            prompt, system=SYSTEM_PROMPT.format(max_length=constraints.max_length),
        )
        if not response or not clean_commit_message(response):
            return [self.create_error_finding(
                "Could not generate a commit message",
                "The model did not return a commit message.",
            )]
        self.throw_if_cancelled()

        message = apply_affixes(clean_commit_message(response), constraints)
        violations = validate_commit_message(message, constraints)
        violation_severity = Severity.ERROR if constraints.enforcement == "deny" else Severity.WARNING

        findings: list[Finding] = [
            self.create_finding(
                title="Commit message constraint violated",
                description=v,
                file_path="",
                severity=violation_severity,
                metadata={"kind": "constraint-violation", "enforcement": constraints.enforcement},
            )
            for v in violations
        ]

        hook = HookResult()
        if self.config.get("pre_commit_dry_run", True):
            hook = git.run_pre_commit_hook(cwd)
            if hook.ran and hook.exit_code != 0:
                findings.append(self.create_finding(
                    title="Pre-commit hook failed",
                    description=hook.output or f"Hook exited with code {hook.exit_code}.",
                    file_path="",
                    severity=Severity.WARNING,
                    metadata={"kind": "pre-commit", "exit_code": hook.exit_code},
                ))

        proposal = CommitProposal(
            message=message,
            staged_files=staged,
            diff_stat=stat.strip(),
            violations=violations,
            blocked=bool(violations) and constraints.enforcement == "deny",
            hook=hook,
        )
        findings.append(self.create_finding(
            title="Proposed commit message",
            description=message,
            file_path="",
            severity=Severity.INFO,
            metadata={"kind": "proposal", "proposal": proposal.model_dump()},
        ))
        return findings
