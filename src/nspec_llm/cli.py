"""Command line interface: list models, stream a completion, propose changes."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from dataclasses import replace

import click
from rich.console import Console
from rich.table import Table

from nspec_llm.cancellation import CancellationTokenSource
from nspec_llm.config import load_config
from nspec_llm.errors import LLMClientError
from nspec_llm.llm.client import LMClient
from nspec_llm.llm.tool_calls import EXECUTION_TOOLS
from nspec_llm.types import BackendKind, EditFile, RunCommand, StreamEventType, WriteFile

console = Console()
err_console = Console(stderr=True)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant for spec-driven development."

_BACKEND_CHOICES = [k.value for k in BackendKind if k.is_direct]


def _make_client(ctx: click.Context, model_id: str | None = None) -> LMClient:
    settings = load_config(ctx.obj["config_path"])
    if model_id:
        settings = replace(settings, api_model=model_id)
    return LMClient(settings)


async def _list_models(client: LMClient) -> None:
    try:
        models = await client.list_available_models()
    finally:
        await client.aclose()
    if not models:
        err_console.print("[yellow]No models available. Set NSPEC_API_KEY or a config file.[/yellow]")
        return
    table = Table(title="Available models")
    table.add_column("ID")
    table.add_column("Vendor")
    table.add_column("Family")
    table.add_column("Name")
    table.add_column("Backend")
    for m in models:
        table.add_row(m.id, m.vendor, m.family, m.name, m.backend.value)
    console.print(table)


async def _complete(client: LMClient, system: str, prompt: str) -> int:
    source = CancellationTokenSource()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, source.cancel)
    except (NotImplementedError, RuntimeError):
        pass  # Windows event loops

    start = time.monotonic()
    status = 0
    try:
        async for event in client.stream(system, prompt, source.token):
            if event.type is StreamEventType.CHUNK:
                sys.stdout.write(event.text)
                sys.stdout.flush()
            elif event.type is StreamEventType.ERROR:
                sys.stdout.write("\n")
                if event.cancelled:
                    err_console.print(f"[yellow]{event.error}[/yellow]")
                    status = 130
                else:
                    err_console.print(f"[red]Error: {event.error}[/red]")
                    status = 1
            else:
                sys.stdout.write("\n")
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass
        await client.aclose()
    err_console.print(f"[dim]  ({time.monotonic() - start:.1f}s)[/dim]")
    return status


def _describe_change(change: WriteFile | EditFile | RunCommand) -> str:
    if isinstance(change, WriteFile):
        return f"write {change.path} ({len(change.content)} chars)"
    if isinstance(change, EditFile):
        return f"edit {change.path}: {change.old_text[:40]!r} -> {change.new_text[:40]!r}"
    return f"run {change.command}"


async def _propose(client: LMClient, system: str, prompt: str) -> None:
    try:
        changes = await client.request_with_tools(system, prompt, EXECUTION_TOOLS)
    finally:
        await client.aclose()
    if not changes:
        console.print("No changes proposed.")
        return
    console.print(f"{len(changes)} change(s) proposed:")
    for change in changes:
        console.print(f"  [cyan]{change.kind}[/cyan] {_describe_change(change)}")


@click.group()
@click.option("--config", "-c", "config_path", default=None,
              help="Config file path (default: ./nspec.yaml or ~/.config/nspec/config.yaml)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """nSpec LLM client."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command()
@click.pass_context
def models(ctx: click.Context) -> None:
    """List the models that are currently selectable."""
    asyncio.run(_list_models(_make_client(ctx)))


@main.command()
@click.argument("prompt")
@click.option("--system", "-s", default=DEFAULT_SYSTEM_PROMPT, help="System prompt")
@click.option("--model", "-m", "model_id", default=None, help="Model id to select")
@click.option("--backend", "-b", type=click.Choice(_BACKEND_CHOICES), default=None,
              help="Pin a direct backend")
@click.pass_context
def complete(
    ctx: click.Context,
    prompt: str,
    system: str,
    model_id: str | None,
    backend: str | None,
) -> None:
    """Stream a completion for PROMPT to stdout."""
    client = _make_client(ctx, model_id)
    if backend:
        client.set_selected_model(model_id or client.selected_model_id or "", BackendKind(backend))
    status = asyncio.run(_complete(client, system, prompt))
    ctx.exit(status)


@main.command()
@click.argument("prompt")
@click.option("--system", "-s", default=DEFAULT_SYSTEM_PROMPT, help="System prompt")
@click.pass_context
def propose(ctx: click.Context, prompt: str, system: str) -> None:
    """Ask for file/command changes for PROMPT and print them."""
    try:
        asyncio.run(_propose(_make_client(ctx), system, prompt))
    except LLMClientError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        ctx.exit(130 if e.is_cancellation else 1)


if __name__ == "__main__":
    main()
