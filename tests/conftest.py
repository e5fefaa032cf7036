"""Shared fixtures for AIDev tests."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Optional, Union

import pytest

from aidev.models.provider import ModelRequest, ModelResponse, ResolvedModel, TokenUsage, ToolCall

STUB_MODEL = ResolvedModel(id="stub-1", name="Stub", tier="high", role="chat", provider="stub")


def make_response(
    content: str = "",
    tool_calls: Optional[list[ToolCall]] = None,
    usage: Optional[tuple[int, int]] = None,
) -> ModelResponse:
    return ModelResponse(
        content=content,
        model=STUB_MODEL,
        usage=TokenUsage(input_tokens=usage[0], output_tokens=usage[1]) if usage else None,
        tool_calls=tool_calls,
        stop_reason="tool_use" if tool_calls else "end_turn",
    )


class ScriptedProvider:
    """Provider that replays scripted responses (or raises scripted exceptions)."""

    id = "stub"
    name = "Stub"

    def __init__(self, script: list[Union[ModelResponse, Exception, str]]):
        self.script = list(script)
        self.requests: list[ModelRequest] = []

    async def is_available(self) -> bool:
        return True

    async def list_models(self) -> list[ResolvedModel]:
        return [STUB_MODEL]

    async def send_request(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        if not self.script:
            raise AssertionError("ScriptedProvider ran out of responses")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return make_response(item)
        return item

    async def close(self) -> None:
        return None


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create a minimal mixed Python/TypeScript project."""
    project = tmp_path / "test-project"
    project.mkdir()
    (project / "src").mkdir()
    (project / "src" / "main.py").write_text(
        "from utils import add\n\nprint(add(1, 2))\n", encoding="utf-8",
    )
    (project / "src" / "utils.py").write_text(
        "def add(a, b):\n    return a + b\n\n\ndef unused_helper():\n    return 0\n",
        encoding="utf-8",
    )
    (project / "web").mkdir()
    (project / "web" / "api.ts").write_text(
        "export function fetchUser(id: string) {\n  return id;\n}\n\n"
        "export const orphanValue = 42;\n",
        encoding="utf-8",
    )
    (project / "web" / "app.ts").write_text(
        "import { fetchUser } from './api';\n\nfetchUser('1');\n", encoding="utf-8",
    )
    (project / "README.md").write_text("# Test Project\n", encoding="utf-8")
    return project


@pytest.fixture
def initialized_project(tmp_project: Path) -> Path:
    """Project with a .aidev/config.yaml."""
    config_dir = tmp_project / ".aidev"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text(
        "mode: economy\n"
        "ai:\n"
        "  provider: openai\n"
        "agent:\n"
        "  max_turns: 4\n",
        encoding="utf-8",
    )
    return tmp_project


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-C", str(cwd), *args], capture_output=True, text=True, check=True,
    )
    return result.stdout


@pytest.fixture
def git_repo(tmp_project: Path) -> Path:
    """The tmp project as a git repository with one commit on ``main``."""
    if shutil.which("git") is None:
        pytest.skip("git not available")
    _git(tmp_project, "init", "-q")
    _git(tmp_project, "checkout", "-q", "-b", "main")
    _git(tmp_project, "config", "user.email", "dev@example.com")
    _git(tmp_project, "config", "user.name", "Dev")
    _git(tmp_project, "config", "commit.gpgsign", "false")
    _git(tmp_project, "add", "-A")
    _git(tmp_project, "commit", "-q", "-m", "Initial commit")
    return tmp_project


@pytest.fixture
def git():
    """Run git commands in tests: git(cwd, *args) -> stdout."""
    return _git


@pytest.fixture
def respond():
    """Build a ModelResponse: respond(content, tool_calls=None, usage=(in, out))."""
    return make_response


@pytest.fixture
def scripted():
    """Build a ScriptedProvider from a list of responses, strings or exceptions."""
    return ScriptedProvider


@pytest.fixture
def pr_repo(git_repo: Path, tmp_path: Path) -> Path:
    """git_repo with a bare ``origin`` and a pushed ``feature/login`` branch two commits ahead of main."""
    remote = tmp_path / "origin.git"
    _git(tmp_path, "init", "-q", "--bare", str(remote))
    _git(git_repo, "remote", "add", "origin", str(remote))
    _git(git_repo, "push", "-q", "origin", "main")

    _git(git_repo, "checkout", "-q", "-b", "feature/login")
    (git_repo / "src" / "login.py").write_text("def login(user):\n    return user\n", encoding="utf-8")
    _git(git_repo, "add", "src/login.py")
    _git(git_repo, "commit", "-q", "-m", "Add login handler")
    (git_repo / "src" / "login.py").write_text(
        "def login(user):\n    if not user:\n        raise ValueError(user)\n    return user\n",
        encoding="utf-8",
    )
    _git(git_repo, "commit", "-q", "-am", "Validate login user")
    _git(git_repo, "push", "-q", "origin", "feature/login")
    _git(git_repo, "checkout", "-q", "main")
    _git(git_repo, "branch", "-q", "-D", "feature/login")
    return git_repo
