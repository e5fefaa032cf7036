"""Git subprocess helpers used by the commit, comments, TLDR and PR review tools.

Every helper takes the repository working directory first. ``run_git`` never
raises for a non-zero exit; ``run_git_strict`` raises ``GitError``.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..models.git import GitLogEntry, HookResult, PullRequestInfo

DEFAULT_REMOTE = "origin"
DEFAULT_TARGET_BRANCHES = ("main", "develop", "test")
DEFAULT_TIMEOUT = 30
FETCH_TIMEOUT = 60
STASH_TIMEOUT = 10
HOOK_TIMEOUT = 120

LOG_RECORD_START = "---COMMIT---"
LOG_FORMAT = f"--format={LOG_RECORD_START}%n%H%n%an%n%ae%n%at%n%s"


class GitError(Exception):
    """A git command failed or git is not available."""


@dataclass
class GitOutput:
    exit_code: int
    stdout: str
    stderr: str


def run_git(cwd: Path | str, args: list[str], timeout: int = DEFAULT_TIMEOUT) -> GitOutput:
    """Run ``git -C cwd <args>``. Missing git or timeouts report exit code -1."""
    try:
        result = subprocess.run(
            ["git", "-C", str(cwd), *args],
            capture_output=True, text=True, timeout=timeout,
            encoding="utf-8", errors="replace",
        )
    except FileNotFoundError:
        return GitOutput(-1, "", "git executable not found")
    except subprocess.TimeoutExpired:
        return GitOutput(-1, "", f"git {args[0]} timed out after {timeout}s")
    return GitOutput(result.returncode, result.stdout or "", result.stderr or "")


def run_git_strict(cwd: Path | str, args: list[str], timeout: int = DEFAULT_TIMEOUT) -> str:
    """Run git and return stdout, raising ``GitError`` on a non-zero exit."""
    out = run_git(cwd, args, timeout)
    if out.exit_code != 0:
        detail = out.stderr.strip() or out.stdout.strip() or f"exit code {out.exit_code}"
        raise GitError(f"git {' '.join(args)} failed: {detail}")
    return out.stdout


def _count(out: GitOutput) -> Optional[int]:
    if out.exit_code != 0:
        return None
    try:
        return int(out.stdout.strip())
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Repository state
# ---------------------------------------------------------------------------

def is_git_repo(cwd: Path | str) -> bool:
    return run_git(cwd, ["rev-parse", "--is-inside-work-tree"], timeout=10).stdout.strip() == "true"


def get_repo_root(cwd: Path | str) -> Path:
    return Path(run_git_strict(cwd, ["rev-parse", "--show-toplevel"]).strip())


def get_current_branch(cwd: Path | str) -> str:
    """Current branch name, or ``HEAD`` when detached."""
    return run_git_strict(cwd, ["rev-parse", "--abbrev-ref", "HEAD"]).strip()


def get_changed_files(cwd: Path | str) -> list[str]:
    """Paths with staged, unstaged or untracked changes (porcelain status)."""
    out = run_git_strict(cwd, ["status", "--porcelain", "-uall"])
    files: list[str] = []
    for line in out.splitlines():
        if len(line) < 4:
            continue
        path = line[3:]
        # Renames are reported as "old -> new"
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        files.append(path.strip('"'))
    return files


def has_uncommitted_changes(cwd: Path | str) -> bool:
    return bool(run_git(cwd, ["status", "--porcelain"]).stdout.strip())


def stage_all(cwd: Path | str) -> None:
    run_git_strict(cwd, ["add", "-A"])


def get_staged_files(cwd: Path | str) -> list[str]:
    out = run_git_strict(cwd, ["diff", "--cached", "--name-only"])
    return [f for f in out.splitlines() if f]


def get_staged_diff(cwd: Path | str) -> str:
    return run_git_strict(cwd, ["diff", "--cached"])


def get_staged_diff_stat(cwd: Path | str) -> str:
    return run_git_strict(cwd, ["diff", "--cached", "--stat"])


# ---------------------------------------------------------------------------
# Blame
# ---------------------------------------------------------------------------

def blame_line_times(cwd: Path | str, file_path: str) -> dict[int, datetime]:
    """Map 1-based line numbers to author time using ``blame --line-porcelain``.

    Uncommitted lines and files git does not track yield no entries.
    """
    out = run_git(cwd, ["blame", "--line-porcelain", "--", file_path], timeout=60)
    if out.exit_code != 0:
        return {}

    times: dict[int, datetime] = {}
    current_line: Optional[int] = None
    uncommitted = False
    for line in out.stdout.splitlines():
        if line.startswith("\t"):
            current_line = None
            continue
        parts = line.split(" ")
        if len(parts) >= 3 and len(parts[0]) == 40 and parts[1].isdigit() and parts[2].isdigit():
            current_line = int(parts[2])
            uncommitted = set(parts[0]) == {"0"}
        elif parts[0] == "author-time" and current_line is not None and not uncommitted:
            try:
                times[current_line] = datetime.fromtimestamp(int(parts[1]), tz=timezone.utc)
            except (IndexError, ValueError):
                continue
    return times


# ---------------------------------------------------------------------------
# Stash
# ---------------------------------------------------------------------------

def stash_changes(cwd: Path | str, message: Optional[str] = None) -> str:
    """Stash changes including untracked files; return the stash ref."""
    args = ["stash", "push", "-u"]
    if message:
        args += ["-m", message]
    run_git_strict(cwd, args, timeout=STASH_TIMEOUT)
    ref = run_git(cwd, ["stash", "list", "-1", "--format=%gd"]).stdout.strip()
    return ref or "stash@{0}"


def pop_stash(cwd: Path | str) -> None:
    run_git_strict(cwd, ["stash", "pop"], timeout=STASH_TIMEOUT)


# ---------------------------------------------------------------------------
# Remotes and pull requests
# ---------------------------------------------------------------------------

def fetch_remote(cwd: Path | str, remote: str = DEFAULT_REMOTE) -> None:
    run_git_strict(cwd, ["fetch", remote], timeout=FETCH_TIMEOUT)


def remote_branch_exists(cwd: Path | str, branch: str, remote: str = DEFAULT_REMOTE) -> bool:
    out = run_git(cwd, ["ls-remote", "--heads", remote, branch], timeout=FETCH_TIMEOUT)
    return out.exit_code == 0 and bool(out.stdout.strip())


def get_pull_request_info(
    cwd: Path | str,
    branch: str,
    target_branches: tuple[str, ...] | list[str] = DEFAULT_TARGET_BRANCHES,
    remote: str = DEFAULT_REMOTE,
    fetch: bool = True,
) -> Optional[PullRequestInfo]:
    """PR info for ``branch`` against the target it is furthest ahead of, or None."""
    if not remote_branch_exists(cwd, branch, remote):
        return None
    if fetch:
        fetch_remote(cwd, remote)

    remote_ref = f"{remote}/{branch}"
    best_target: Optional[str] = None
    max_ahead = 0
    for target in target_branches:
        ahead = _count(run_git(cwd, ["rev-list", "--count", f"{remote}/{target}..{remote_ref}"]))
        if ahead is not None and ahead > max_ahead:
            max_ahead = ahead
            best_target = target

    if best_target is None:
        return None

    target_ref = f"{remote}/{best_target}"
    behind = _count(run_git(cwd, ["rev-list", "--count", f"{remote_ref}..{target_ref}"])) or 0
    return PullRequestInfo(
        branch=branch,
        remote_ref=remote_ref,
        target_branch=best_target,
        commits_ahead=max_ahead,
        commits_behind=behind,
    )


def list_potential_pull_requests(
    cwd: Path | str,
    target_branches: tuple[str, ...] | list[str] = DEFAULT_TARGET_BRANCHES,
    remote: str = DEFAULT_REMOTE,
) -> list[PullRequestInfo]:
    """Remote branches (other than the targets) with commits ahead of a target."""
    fetch_remote(cwd, remote)
    out = run_git(cwd, ["branch", "-r", "--format=%(refname:short)"])
    if out.exit_code != 0 or not out.stdout.strip():
        return []

    prefix = f"{remote}/"
    branches = [
        b.strip()[len(prefix):]
        for b in out.stdout.splitlines()
        if b.strip().startswith(prefix) and "HEAD" not in b
    ]

    prs: list[PullRequestInfo] = []
    for branch in branches:
        if branch in target_branches:
            continue
        info = get_pull_request_info(cwd, branch, target_branches, remote, fetch=False)
        if info:
            prs.append(info)
    return prs


def checkout_branch(cwd: Path | str, branch: str) -> None:
    run_git_strict(cwd, ["checkout", branch], timeout=FETCH_TIMEOUT)


def checkout_remote_branch(cwd: Path | str, branch: str, remote: str = DEFAULT_REMOTE) -> None:
    """Check out ``branch``, creating a local tracking branch if none exists."""
    local = run_git(cwd, ["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"])
    if local.exit_code == 0:
        checkout_branch(cwd, branch)
    else:
        run_git_strict(cwd, ["checkout", "-b", branch, f"{remote}/{branch}"], timeout=FETCH_TIMEOUT)


# ---------------------------------------------------------------------------
# Log
# ---------------------------------------------------------------------------

def parse_log_output(output: str) -> list[GitLogEntry]:
    """Parse records produced by ``LOG_FORMAT``; malformed records are skipped."""
    entries: list[GitLogEntry] = []
    for record in output.split(LOG_RECORD_START):
        lines = record.strip("\n").split("\n")
        if len(lines) < 5 or not lines[0].strip():
            continue
        hash_, name, email, ts, subject = lines[:5]
        try:
            timestamp = datetime.fromtimestamp(int(ts), tz=timezone.utc)
        except ValueError:
            continue
        files = [f for f in lines[5:] if f.strip()]
        entries.append(GitLogEntry(
            hash=hash_.strip(),
            author_name=name,
            author_email=email,
            timestamp=timestamp,
            subject=subject,
            files=files,
        ))
    return entries


def get_log(
    cwd: Path | str,
    since: Optional[str] = None,
    paths: Optional[list[str]] = None,
    max_count: int = 50,
    rev_range: Optional[str] = None,
) -> list[GitLogEntry]:
    """Commit log with touched files, newest first. Empty on any git failure."""
    args = ["log", LOG_FORMAT, "--name-only", "-n", str(max_count)]
    if since:
        args.append(f"--since={since}")
    if rev_range:
        args.append(rev_range)
    if paths:
        args += ["--", *paths]
    out = run_git(cwd, args)
    if out.exit_code != 0 or not out.stdout.strip():
        return []
    return parse_log_output(out.stdout)


def get_diff(cwd: Path | str, rev_range: str) -> str:
    out = run_git(cwd, ["diff", rev_range])
    return out.stdout if out.exit_code == 0 else ""


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------

def run_pre_commit_hook(cwd: Path | str, timeout: int = HOOK_TIMEOUT) -> HookResult:
    """Run ``.git/hooks/pre-commit`` if present and executable; never commits."""
    hooks_dir = run_git(cwd, ["rev-parse", "--git-path", "hooks"]).stdout.strip()
    hook = Path(cwd) / (hooks_dir or ".git/hooks") / "pre-commit"
    if not hook.is_file() or not os.access(hook, os.X_OK):
        return HookResult(ran=False)
    try:
        result = subprocess.run(
            [str(hook)], cwd=str(cwd), capture_output=True, text=True,
            timeout=timeout, encoding="utf-8", errors="replace",
        )
    except subprocess.TimeoutExpired:
        return HookResult(ran=True, exit_code=-1, output=f"pre-commit hook timed out after {timeout}s")
    except OSError as e:
        return HookResult(ran=True, exit_code=-1, output=str(e))
    output = (result.stdout or "") + (result.stderr or "")
    return HookResult(ran=True, exit_code=result.returncode, output=output.strip())
