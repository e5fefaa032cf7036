"""3-layer configuration system for AIDev.

Loads and merges configuration from:
1. Default settings (built-in)
2. Project config (.aidev/config.yaml)
3. CLI parameters (override)
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Optional

import yaml

from ..models.agent import AgentConfig
from ..models.git import CommitConstraints
from ..models.provider import ModelRole, ModelTier, ToolDefinition

CONFIG_DIR = ".aidev"

VALID_MODES = ("performance", "balanced", "economy")
VALID_PROVIDERS = ("anthropic", "openai", "ollama")
VALID_LANGUAGES = ("typescript", "javascript", "python")

# Which tier serves each role, per operating mode.
MODE_TIER_MAP: dict[str, dict[str, str]] = {
    "performance": {"chat": "high", "tool": "high"},
    "balanced": {"chat": "high", "tool": "mid"},
    "economy": {"chat": "mid", "tool": "low"},
}

DEFAULT_CONFIG: dict = {
    "mode": "balanced",
    "enabled_languages": ["typescript", "javascript", "python"],
    "commit_constraints": {
        "min_length": 10,
        "max_length": 72,
        "prefix": "",
        "suffix": "",
        "enforcement": "warn",
    },
    "pre_commit_dry_run": True,
    "agent": {
        "max_turns": 10,
        "max_token_budget": 100_000,
        "system_prompt": "",
    },
    "tools": {
        "max_files": 500,
        "max_file_kb": 256,
        "stale_comment_days": 365,
        "max_comments_for_model": 40,
        "max_diff_lines": 500,
        "max_diff_chars": 20_000,
        "max_commits_for_prompt": 50,
        "model_review_max_files": 10,
        "model_review_max_chars": 30_000,
        "model_timeout_seconds": 120,
        "linter_timeout_seconds": 120,
        "target_branches": ["main", "develop", "test"],
        "tldr_since": "2 weeks ago",
    },
    "ai": {
        "provider": "anthropic",
        "model_tiers": {"high": "", "mid": "", "low": ""},
        "temperature": 0.2,
        "timeout_seconds": 300,
        "retry_attempts": 3,
        "retry_delay_seconds": 5,
        "anthropic": {
            "api_key_env": "ANTHROPIC_API_KEY",
            "base_url": "",
            "max_tokens": 4096,
        },
        "openai": {
            "api_key_env": "OPENAI_API_KEY",
            "base_url": "",
            "max_tokens": 4096,
        },
        "ollama": {
            "endpoint": "http://localhost:11434",
            "model": "llama3.1:70b",
        },
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Arrays are replaced, not merged."""
    result = {}
    for key in base:
        result[key] = base[key]
    for key, value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            result[key] = deep_merge(base_value, value)
        else:
            result[key] = value
    return result


def load_project_config(project_path: Path) -> dict:
    """Load project configuration from .aidev/config.yaml."""
    config_path = project_path / CONFIG_DIR / "config.yaml"
    if not config_path.exists():
        return {}
    try:
        content = config_path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
        data = yaml.safe_load(content) or {}
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def get_effective_config(
    project_path: Path,
    cli_overrides: Optional[dict] = None,
) -> dict:
    """Get the fully resolved configuration for a project."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    project_config = load_project_config(project_path)
    if project_config:
        config = deep_merge(config, project_config)

    if cli_overrides:
        config = deep_merge(config, cli_overrides)

    config["_project_path"] = str(project_path)
    return config


def validate_settings(config: dict) -> list[str]:
    """Validate a resolved config. Returns error messages; empty list = valid."""
    errors: list[str] = []

    mode = config.get("mode")
    if mode not in VALID_MODES:
        errors.append(f'Invalid mode: "{mode}". Must be one of: {", ".join(VALID_MODES)}')

    provider = config.get("ai", {}).get("provider")
    if provider not in VALID_PROVIDERS:
        errors.append(
            f'Invalid ai.provider: "{provider}". Must be one of: {", ".join(VALID_PROVIDERS)}'
        )

    cc = config.get("commit_constraints", {})
    min_length = cc.get("min_length", 0)
    max_length = cc.get("max_length", 0)
    if min_length < 0:
        errors.append(f"commit_constraints.min_length must be >= 0 (got {min_length}).")
    if max_length < min_length:
        errors.append(
            f"commit_constraints.max_length ({max_length}) must be >= min_length ({min_length})."
        )
    if cc.get("enforcement") not in ("warn", "deny"):
        errors.append(
            f'commit_constraints.enforcement must be "warn" or "deny" (got "{cc.get("enforcement")}").'
        )

    for lang in config.get("enabled_languages") or []:
        if lang not in VALID_LANGUAGES:
            errors.append(f'Unsupported language: "{lang}". Supported: {", ".join(VALID_LANGUAGES)}')

    agent = config.get("agent", {})
    for key in ("max_turns", "max_token_budget"):
        value = agent.get(key)
        if not isinstance(value, int) or value <= 0:
            errors.append(f"agent.{key} must be a positive integer (got {value!r}).")

    return errors


def resolve_tier(mode: str, role: ModelRole) -> ModelTier:
    """Resolve which model tier serves ``role`` under ``mode``.

    resolve_tier("balanced", "chat") -> "high"
    resolve_tier("economy", "tool")  -> "low"
    """
    return MODE_TIER_MAP.get(mode, MODE_TIER_MAP["balanced"])[role]  # type: ignore[return-value]


def resolve_model_id(mode: str, role: ModelRole, model_tiers: dict) -> str:
    """User-configured model for the tier serving ``role``, or "" if unset."""
    return model_tiers.get(resolve_tier(mode, role), "") or ""


def get_commit_constraints(config: dict) -> CommitConstraints:
    return CommitConstraints(**config.get("commit_constraints", {}))


def agent_config_from_settings(
    config: dict,
    available_tools: Optional[list[ToolDefinition]] = None,
) -> AgentConfig:
    """Build the per-run AgentConfig from the ``agent`` settings block."""
    agent = config.get("agent", {})
    return AgentConfig(
        max_turns=agent.get("max_turns", 10),
        max_token_budget=agent.get("max_token_budget", 100_000),
        system_prompt=agent.get("system_prompt", "") or "",
        available_tools=tuple(available_tools or ()),
    )
