"""PR review: check out a pull request branch and summarize it.

Flow: resolve the PR branch, stash local changes, check out the branch, collect
the diff and commit log against the target, ask the model for a review, then
restore the original branch and pop the stash. A failure at any point still
attempts that restore.
"""

from __future__ import annotations

from typing import Optional

from ..core import git
from ..models.finding import Finding, ScanOptions, Severity
from ..models.git import GitLogEntry, PullRequestInfo
from .base import BaseTool, truncate_lines
from .tldr import build_summary, format_commits

MAX_DIFF_LINES = 500

SYSTEM_PROMPT = """You are a pull request reviewer. Given a PR's diff and commit history, provide a clear, concise review summary.

Rules:
- Start with a 1-2 sentence high-level summary of what the PR does
- Then list 3-7 key highlights, each on its own line prefixed with "- "
- Each highlight should describe WHAT changed and WHY (infer intent from commits)
- Note any potential issues, risks, or areas that need attention
- Group related changes together rather than listing every commit
- Use present tense ("Adds authentication", "Fixes layout bug")
- Keep it brief, this is a TLDR review, not a detailed code review"""


def build_review_prompt(pr: PullRequestInfo, diff: str, commits: list[GitLogEntry], max_commits: int) -> str:
    parts = [
        "Review this pull request:",
        f"**Branch**: {pr.branch} -> {pr.target_branch}",
        f"**Commits ahead**: {pr.commits_ahead}",
        f"**Commits behind**: {pr.commits_behind}",
        "",
    ]
    if commits:
        parts += ["## Commits", "", format_commits(commits, max_commits), ""]
    if diff:
        parts += ["## Diff", "", "```diff", truncate_lines(diff, MAX_DIFF_LINES), "```"]
    return "\n".join(parts)


class PRReviewTool(BaseTool):
    id = "pr-review"
    name = "PR Review"
    description = "Check out a pull request branch and generate a review summary."

    async def run(self, options: ScanOptions) -> list[Finding]:
        repo = git.get_repo_root(self.project_path)
        targets = options.args.get("target_branches") or self.tool_config.get(
            "target_branches", list(git.DEFAULT_TARGET_BRANCHES)
        )
        if options.args.get("target_branch"):
            targets = [options.args["target_branch"]]
        branch_name: Optional[str] = options.args.get("branch_name")
        restore = options.args.get("restore_original", True)
        max_commits = self.tool_config.get("max_commits_for_prompt", 50)

        self.throw_if_cancelled()
        original_branch = git.get_current_branch(repo)

        if branch_name:
            pr = git.get_pull_request_info(repo, branch_name, targets)
            if pr is None:
                return [self._info(
                    "PR not found",
                    f'Branch "{branch_name}" does not exist on remote or has no commits ahead of target branches.',
                )]
        else:
            prs = git.list_potential_pull_requests(repo, targets)
            if not prs:
                return [self._info("No PRs found", f"No pull requests found on target branches: {', '.join(targets)}.")]
            pr = prs[0]

        findings: list[Finding] = []
        stash_ref: Optional[str] = None
        switched = False
        try:
            self.throw_if_cancelled()
            if git.has_uncommitted_changes(repo):
                stash_ref = git.stash_changes(repo, f"AIDev PR Review: {pr.branch}")

            self.throw_if_cancelled()
            git.checkout_remote_branch(repo, pr.branch)
            switched = True

            self.throw_if_cancelled()
            # A local branch of the same name may lag the remote; review what was pushed
            rev_range = f"origin/{pr.target_branch}..{pr.remote_ref}"
            diff = git.get_diff(repo, rev_range)
            commits = git.get_log(repo, rev_range=rev_range, max_count=max_commits)
            self.files_scanned = len({f for c in commits for f in c.files})

            self.throw_if_cancelled()
            response = await self.ask_model(
                build_review_prompt(pr, diff, commits, max_commits), system=SYSTEM_PROMPT,
            )
            if not response:
                findings.append(self.create_error_finding(
                    "PR review generation failed", "The model did not return a review.",
                ))
            else:
                summary = build_summary(f"{pr.branch} -> {pr.target_branch}", response, commits)
                findings.append(self.create_finding(
                    title=f"PR Review: {pr.branch} -> {pr.target_branch}",
                    description=summary.summary,
                    file_path="",
                    severity=Severity.INFO,
                    metadata={
                        "kind": "pr-review",
                        "summary": summary.model_dump(mode="json"),
                        "pr": pr.model_dump(),
                        "commit_count": len(commits),
                        "stash_ref": stash_ref,
                        "original_branch": original_branch,
                    },
                ))
        except git.GitError as e:
            findings.append(self.create_error_finding("PR review failed", e))
        finally:
            if restore:
                findings.extend(self._restore(repo, original_branch, pr.branch, switched, stash_ref))

        if not restore:
            note = f'Checked out branch "{pr.branch}".'
            if stash_ref:
                note += f" Your changes were stashed ({stash_ref})."
            findings.append(self._info("Branch checkout complete", note))
        return findings

    def _restore(
        self,
        repo,
        original_branch: str,
        pr_branch: str,
        switched: bool,
        stash_ref: Optional[str],
    ) -> list[Finding]:
        """Return to the original branch and pop the stash; failures become warnings."""
        findings: list[Finding] = []
        if switched and original_branch != pr_branch:
            try:
                git.checkout_branch(repo, original_branch)
            except git.GitError as e:
                findings.append(self.create_error_finding(
                    f'Could not return to branch "{original_branch}"', e,
                ))
                return findings
        if stash_ref:
            try:
                git.pop_stash(repo)
            except git.GitError as e:
                findings.append(self.create_finding(
                    title="Stash restore warning",
                    description=f"Could not restore stashed changes: {e}. Use 'git stash list' to see your stashes.",
                    file_path="",
                    severity=Severity.WARNING,
                    metadata={"kind": "tool-error"},
                ))
        return findings

    def _info(self, title: str, description: str) -> Finding:
        return self.create_finding(title=title, description=description, file_path="", severity=Severity.INFO)
