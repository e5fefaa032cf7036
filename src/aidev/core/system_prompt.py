"""System prompt assembly for the agent loop."""

from __future__ import annotations

from ..models.agent import AgentConfig

BASE_SYSTEM_PROMPT = "\n".join([
    "You are AIDev, an AI-powered developer toolkit assistant.",
    "You help developers with code analysis, commit workflows, and change summarization.",
    "",
    "You have access to the following tools. Use them when they would help answer the user's question.",
    "For read-only analysis tools, invoke them directly.",
    "For destructive or modifying tools, explain what you plan to do and wait for confirmation.",
    "",
])

CONSTRAINTS = (
    "Constraints:",
    "- All destructive actions (commits, comment pruning) must be proposed for user approval.",
    "- Never auto-apply file modifications or git operations.",
    "- Be concise and technical. Prioritize clarity.",
)


def build_system_prompt(config: AgentConfig) -> str:
    """Custom prompt (or the built-in persona), the tool list, then fixed constraints."""
    parts: list[str] = []

    if config.system_prompt:
        parts.append(config.system_prompt)
        parts.append("")
    else:
        parts.append(BASE_SYSTEM_PROMPT)

    if config.available_tools:
        parts.append("Available tools:")
        for tool in config.available_tools:
            parts.append(f"- {tool.name}: {tool.description}")
        parts.append("")

    parts.extend(CONSTRAINTS)
    return "\n".join(parts)
