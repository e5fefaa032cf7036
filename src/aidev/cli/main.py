"""AIDev command-line interface.

Runs analysis tools directly or through the agent chat loop.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from .. import __version__

PROVIDERS = ["anthropic", "openai", "ollama"]
MODES = ["performance", "balanced", "economy"]


def _parse_args(pairs: tuple[str, ...]) -> dict:
    """``key=value`` pairs into a dict; true/false and integers are converted."""
    args: dict = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--arg")
        key, value = pair.split("=", 1)
        lowered = value.lower()
        if lowered in ("true", "false"):
            args[key] = lowered == "true"
        elif value.isdigit():
            args[key] = int(value)
        else:
            args[key] = value
    return args


def ai_options(f):
    f = click.option("--ai-endpoint", type=str, help="Endpoint override")(f)
    f = click.option("--ai-model", type=str, help="Model override")(f)
    f = click.option("--ai-provider", type=click.Choice(PROVIDERS))(f)
    f = click.option("--mode", type=click.Choice(MODES), help="Operating mode (model tiers)")(f)
    return f


@click.group()
@click.version_option(__version__, prog_name="aidev")
def aidev_cli() -> None:
    """AIDev - AI developer toolkit: analysis tools and an agentic chat loop."""


@aidev_cli.command()
def tools() -> None:
    """List the available analysis tools."""
    from ..core.orchestrator import print_tools

    print_tools()


@aidev_cli.command()
@click.argument("tool")
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), default=".", help="Project path")
@click.option("--path", "paths", multiple=True, help="Limit the scan to a file or directory (repeatable)")
@click.option("--format", "-f", "output_format", type=click.Choice(["json", "markdown"]), help="Export format")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the export to a file")
@click.option("--arg", "args", multiple=True, help="Tool argument as key=value (repeatable)")
@click.option("--no-model", is_flag=True, help="Static analysis only (no model calls)")
@ai_options
def scan(
    tool: str,
    project: str,
    paths: tuple[str, ...],
    output_format: str | None,
    output: str | None,
    args: tuple[str, ...],
    no_model: bool,
    mode: str | None,
    ai_provider: str | None,
    ai_model: str | None,
    ai_endpoint: str | None,
) -> None:
    """Run a single tool, e.g. aidev scan dead-code -p ./repo"""
    from ..core.orchestrator import run_scan

    exit_code = asyncio.run(
        run_scan(
            project_path=Path(project),
            tool=tool,
            paths=list(paths),
            args=_parse_args(args),
            output_format=output_format,
            output=Path(output) if output else None,
            no_model=no_model,
            mode=mode,
            ai_provider=ai_provider,
            ai_model=ai_model,
            ai_endpoint=ai_endpoint,
        )
    )
    sys.exit(exit_code)


@aidev_cli.command()
@click.argument("message")
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), default=".", help="Project path")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Approve confirmation-gated tools")
@ai_options
def chat(
    message: str,
    project: str,
    assume_yes: bool,
    mode: str | None,
    ai_provider: str | None,
    ai_model: str | None,
    ai_endpoint: str | None,
) -> None:
    """Ask the agent, e.g. aidev chat "any dead code in src/?" -p ./repo"""
    from ..core.orchestrator import run_chat

    exit_code = asyncio.run(
        run_chat(
            project_path=Path(project),
            message=message,
            assume_yes=assume_yes,
            mode=mode,
            ai_provider=ai_provider,
            ai_model=ai_model,
            ai_endpoint=ai_endpoint,
        )
    )
    sys.exit(exit_code)


@aidev_cli.command()
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), required=True)
def init(project: str) -> None:
    """Create .aidev/config.yaml in a project."""
    from ..core.orchestrator import initialize_project

    initialize_project(Path(project))


def main() -> None:
    aidev_cli()


if __name__ == "__main__":
    main()
