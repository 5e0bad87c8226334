"""Command-line entry point: ask one question, print the answer."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.table import Table

from reverie.config import load_config
from reverie.core.cancellation import CancellationToken
from reverie.llm.errors import GenerationError
from reverie.service import ResearchModelService
from reverie.types import EffortLevel, ErrorKind, GenerationResult

console = Console()


def _print_progress(message: str, metadata: dict[str, Any]) -> None:
    console.print(f"[dim]{escape(message)}[/dim]")


def _render_result(result: GenerationResult, show_answer: bool = True) -> None:
    if show_answer:
        console.print(Markdown(result.text or "_(empty response)_"))

    if result.tool_calls:
        table = Table(title="Tool calls", show_lines=False)
        table.add_column("#", style="dim")
        table.add_column("Tool", style="bold")
        table.add_column("Status")
        for i, (tc, tr) in enumerate(zip(result.tool_calls, result.tool_results), 1):
            status = "[green]ok[/green]" if tr.success else f"[red]{escape(tr.error[:60])}[/red]"
            table.add_row(str(i), tc.name, status)
        console.print(table)

    for source in result.sources:
        label = source.title or source.url
        console.print(f"[blue]- {escape(label)}[/blue] [dim]{escape(source.url)}[/dim]")

    summary = f"{result.provider or '?'} / {result.model or '?'}"
    if result.iteration_count:
        summary += f", {result.iteration_count} round(s)"
    if result.bound_exhausted:
        summary += ", iteration bound reached"
    console.print(f"\n[dim]{summary}[/dim]")


def _install_interrupt(cancel: CancellationToken) -> bool:
    """Route Ctrl-C to *cancel* so in-flight work is abandoned cleanly."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.cancel)
    except (NotImplementedError, RuntimeError):
        # Windows loops and non-main threads cannot install signal handlers
        return False
    return True


async def _stream(
    service: ResearchModelService,
    prompt: str,
    effort: EffortLevel,
    tools: bool,
    max_iterations: int | None,
    on_progress: Any,
    cancel: CancellationToken,
) -> GenerationResult:
    outcome: dict[str, Any] = {}

    def on_chunk(text: str, metadata: dict[str, Any]) -> None:
        console.print(text, end="", markup=False, highlight=False)

    callbacks: dict[str, Any] = {
        "on_chunk": on_chunk,
        "on_complete": lambda result: outcome.update(result=result),
        "on_error": lambda error: outcome.update(error=error),
        "cancel": cancel,
    }
    if tools:
        await service.stream_response_with_tools(
            prompt, effort=effort, max_iterations=max_iterations,
            on_progress=on_progress, **callbacks,
        )
    else:
        await service.stream_response(prompt, effort, **callbacks)
    console.print()
    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]


async def _run(
    service: ResearchModelService,
    prompt: str,
    effort: EffortLevel,
    stream: bool,
    tools: bool,
    max_iterations: int | None,
    model: str | None,
    quiet: bool,
    cancel: CancellationToken | None = None,
) -> int:
    on_progress = None if quiet else _print_progress
    cancel = cancel or CancellationToken()
    interrupt = _install_interrupt(cancel)
    try:
        if stream:
            result = await _stream(
                service, prompt, effort, tools, max_iterations, on_progress, cancel,
            )
            _render_result(result, show_answer=False)
        elif tools:
            result = await service.generate_response_with_tools(
                prompt,
                effort=effort,
                max_iterations=max_iterations,
                model=model,
                on_progress=on_progress,
                cancel=cancel,
            )
            _render_result(result)
        else:
            result = await service.generate_text(
                prompt, model=model, effort=effort, on_progress=on_progress, cancel=cancel,
            )
            _render_result(result)
    except GenerationError as e:
        console.print(f"[red]{e.kind.value}: {escape(e.message)}[/red]")
        if e.remediation:
            console.print(f"[yellow]Hint: {escape(e.remediation)}[/yellow]")
        return 130 if e.kind is ErrorKind.CANCELLED else 1
    finally:
        if interrupt:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
        await service.close()
    return 0


def _list_tools(service: ResearchModelService) -> None:
    for tool in service.registry.list_tools():
        console.print(escape(tool.to_compact_description()), highlight=False)


@click.command()
@click.argument("prompt", nargs=-1)
@click.option("--config", "-c", "config_path", default=None,
              help="Path to reverie.yaml (auto-detected from CWD or ~/.config/reverie/)")
@click.option("--effort", "-e", type=click.Choice(["low", "medium", "high"]),
              default="medium", show_default=True, help="Effort level")
@click.option("--model", "-m", default=None, help="Preferred model identifier")
@click.option("--stream", "-s", is_flag=True, help="Stream the answer as it is generated")
@click.option("--tools", "-t", is_flag=True, help="Let the model call research tools")
@click.option("--max-iterations", "-n", type=click.IntRange(min=1), default=None,
              help="Tool loop bound (default from config)")
@click.option("--list-tools", is_flag=True, help="List the available tools and exit")
@click.option("--quiet", "-q", is_flag=True, help="Hide progress messages")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def main(
    prompt: tuple[str, ...],
    config_path: str | None,
    effort: str,
    model: str | None,
    stream: bool,
    tools: bool,
    max_iterations: int | None,
    list_tools: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Reverie - ask a question across a chain of LLM providers."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    if not prompt and not list_tools:
        raise click.UsageError("Missing argument 'PROMPT...'.")

    config = load_config(config_path)
    service = ResearchModelService.from_config(config)
    if list_tools:
        _list_tools(service)
        asyncio.run(service.close())
        return

    if not config.providers:
        console.print(
            "[yellow]No providers configured. Add a providers list to reverie.yaml.[/yellow]"
        )
    elif not config.enabled_providers:
        console.print(
            "[yellow]Every configured provider is disabled. "
            "Set enabled: true on at least one.[/yellow]"
        )
    code = asyncio.run(
        _run(
            service,
            " ".join(prompt),
            EffortLevel.parse(effort),
            stream,
            tools,
            max_iterations,
            model,
            quiet,
        )
    )
    sys.exit(code)


if __name__ == "__main__":
    main()
