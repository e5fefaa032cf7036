"""Command orchestration: project init, single tool scans and agent chat.

Each entry point returns a process exit code:
0 ok, 1 scan failed or agent error, 12 bad project path or configuration,
13 provider initialization failure.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.prompt import Confirm
from rich.table import Table

from .. import __version__
from ..models.agent import AgentAction, ConfirmationAction
from ..models.finding import ScanResult, ScanStatus
from ..providers.base import BaseProvider, get_model_provider
from .agent_loop import AgentLoop
from .config import CONFIG_DIR, agent_config_from_settings, get_effective_config, validate_settings
from .host import ToolRunner, drive_agent
from .registry import TOOL_REGISTRY, get_tool_by_command, tool_definitions

console = Console()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_BAD_PROJECT = 12
EXIT_PROVIDER = 13

SEVERITY_COLORS = {"error": "red", "warning": "yellow", "info": "cyan", "hint": "dim"}


def initialize_project(project_path: Path) -> Path:
    """Create .aidev/config.yaml with commented defaults if missing."""
    config_dir = project_path / CONFIG_DIR
    config_dir.mkdir(parents=True, exist_ok=True)

    config_path = config_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text(
            "# AIDev project configuration\n"
            "\n"
            f'aidev_version: "{__version__}"\n'
            "\n"
            "mode: balanced            # performance | balanced | economy\n"
            "\n"
            "commit_constraints:\n"
            "  min_length: 10\n"
            "  max_length: 72\n"
            '  prefix: ""\n'
            '  suffix: ""\n'
            "  enforcement: warn       # warn | deny\n"
            "\n"
            "agent:\n"
            "  max_turns: 10\n"
            "  max_token_budget: 100000\n"
            "\n"
            "ai:\n"
            "  provider: anthropic     # anthropic | openai | ollama\n",
            encoding="utf-8",
        )
        console.print(f"  [green]Initialized[/green] {CONFIG_DIR}/ in {project_path.name}")
    else:
        console.print(f"  [dim]INFO[/dim] {CONFIG_DIR}/config.yaml already exists")
    return config_path


def _load_config(
    project_path: Path,
    ai_provider: Optional[str],
    ai_model: Optional[str],
    mode: Optional[str],
) -> Optional[dict]:
    """Effective config with CLI overrides, or None (after printing errors) if invalid."""
    cli_overrides: dict = {}
    if ai_provider:
        cli_overrides.setdefault("ai", {})["provider"] = ai_provider
    if ai_model:
        provider_name = ai_provider or "anthropic"
        cli_overrides.setdefault("ai", {}).setdefault(provider_name, {})["model"] = ai_model
    if mode:
        cli_overrides["mode"] = mode

    config = get_effective_config(project_path, cli_overrides=cli_overrides or None)
    errors = validate_settings(config)
    for err in errors:
        console.print(f"  [red]ERROR[/red] {err}")
    return None if errors else config


def _init_provider(
    config: dict,
    ai_provider: Optional[str],
    ai_model: Optional[str],
    ai_endpoint: Optional[str],
) -> Optional[BaseProvider]:
    try:
        provider = get_model_provider(
            config,
            provider_override=ai_provider,
            model_override=ai_model,
            endpoint_override=ai_endpoint,
        )
    except Exception as e:
        console.print(f"  [red]ERROR[/red] Failed to initialize AI provider: {e}")
        return None
    console.print(f"  [green]OK[/green] Provider: {provider.name}")
    return provider


def print_tools() -> None:
    table = Table(title="AIDev tools")
    table.add_column("Tool", style="cyan")
    table.add_column("Chat command")
    table.add_column("Invocation")
    table.add_column("Description")
    for entry in TOOL_REGISTRY:
        invocation = "[yellow]confirm[/yellow]" if entry.invocation == "confirm" else "autonomous"
        table.add_row(entry.id, f"/{entry.chat_command}", invocation, entry.description)
    console.print(table)


def print_result(result: ScanResult) -> None:
    status_color = "green" if result.status == ScanStatus.COMPLETED else "red"
    console.print(f"\n  [{status_color}]{result.status.value.upper()}[/{status_color}] {result.tool_id}")
    if result.error:
        console.print(f"  [red]ERROR[/red] {result.error}")
    s = result.summary
    counts = ", ".join(
        f"[{SEVERITY_COLORS[k]}]{v} {k}[/{SEVERITY_COLORS[k]}]" for k, v in s.by_severity.items()
    )
    console.print(f"  {s.total_findings} findings ({counts}) in {s.files_scanned} files scanned")
    for f in result.findings:
        color = SEVERITY_COLORS.get(f.severity.value, "white")
        where = f.location.file_path
        if where and f.location.start_line:
            where += f":{f.location.start_line}"
        console.print(f"  [{color}]{f.severity.value.upper():7}[/{color}] {f.title}" + (f" [dim]{where}[/dim]" if where else ""))


async def run_scan(
    project_path: Path,
    tool: str,
    paths: Optional[list[str]] = None,
    args: Optional[dict] = None,
    output_format: Optional[str] = None,
    output: Optional[Path] = None,
    no_model: bool = False,
    mode: Optional[str] = None,
    ai_provider: Optional[str] = None,
    ai_model: Optional[str] = None,
    ai_endpoint: Optional[str] = None,
) -> int:
    """Run one tool and print or export its result. Returns exit code."""
    project_path = Path(project_path).resolve()
    if not project_path.is_dir():
        console.print(f"  [red]ERROR[/red] Project path does not exist: {project_path}")
        return EXIT_BAD_PROJECT

    entry = get_tool_by_command(tool)
    if entry is None:
        names = ", ".join(t.id for t in TOOL_REGISTRY)
        console.print(f'  [red]ERROR[/red] Unknown tool: "{tool}". Available tools: {names}')
        return EXIT_FAILED

    config = _load_config(project_path, ai_provider, ai_model, mode)
    if config is None:
        return EXIT_BAD_PROJECT

    provider = None
    if not no_model:
        provider = _init_provider(config, ai_provider, ai_model, ai_endpoint)
        if provider is None:
            return EXIT_PROVIDER

    runner = ToolRunner(provider, project_path, config)
    console.print(f"  [cyan]Running {entry.name}...[/cyan]")
    try:
        result = await runner.run(entry.id, paths=paths, args=args)
    finally:
        if provider is not None:
            await provider.close()

    if output_format:
        text = runner.export(entry.id, output_format)  # type: ignore[arg-type]
        if output:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(text, encoding="utf-8")
            console.print(f"  [green]OK[/green] Exported {output_format} to {output}")
        else:
            console.out(text, highlight=False)
    else:
        print_result(result)

    return EXIT_OK if result.status == ScanStatus.COMPLETED else EXIT_FAILED


def _print_action(action: AgentAction) -> None:
    if action.type == "tool_call":
        console.print(f"  [dim]-> running {action.tool_id} {action.args or ''}[/dim]")
    elif action.type == "confirmation_required":
        console.print(f"  [yellow]?[/yellow] {action.description}")


async def run_chat(
    project_path: Path,
    message: str,
    assume_yes: bool = False,
    mode: Optional[str] = None,
    ai_provider: Optional[str] = None,
    ai_model: Optional[str] = None,
    ai_endpoint: Optional[str] = None,
) -> int:
    """Run one agent turn for ``message``. Returns exit code."""
    project_path = Path(project_path).resolve()
    if not project_path.is_dir():
        console.print(f"  [red]ERROR[/red] Project path does not exist: {project_path}")
        return EXIT_BAD_PROJECT

    config = _load_config(project_path, ai_provider, ai_model, mode)
    if config is None:
        return EXIT_BAD_PROJECT

    provider = _init_provider(config, ai_provider, ai_model, ai_endpoint)
    if provider is None:
        return EXIT_PROVIDER

    def confirm(action: ConfirmationAction) -> bool:
        if assume_yes:
            return True
        return Confirm.ask(f"  Run [bold]{action.tool_id}[/bold] with {action.args or '{}'}?", default=False)

    agent_config = agent_config_from_settings(config, tool_definitions())
    loop = AgentLoop(provider, agent_config, [], message)
    runner = ToolRunner(provider, project_path, config)
    try:
        final = await drive_agent(loop.run(), runner, confirm, on_action=_print_action)
    finally:
        await provider.close()

    if final.type == "error":
        console.print(f"  [red]ERROR[/red] {final.message}")
        return EXIT_FAILED

    console.print()
    console.print(Markdown(final.content))
    if final.usage:
        console.print(
            f"\n  [dim]Tokens: {final.usage.total_input_tokens} in / "
            f"{final.usage.total_output_tokens} out[/dim]"
        )
    return EXIT_OK
