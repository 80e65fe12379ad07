#!/usr/bin/env python3
"""
LiveSignals - Feed Ingestion and AI Summarization
=================================================

Main application entry point with CLI interface.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py signals                   # Run the pipeline once
    python main.py signals --json            # Emit processed items as JSON
    python main.py serve                     # Start the relay worker
"""

import sys
import asyncio
import json
import logging
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from livesignals import __version__
from livesignals.ai.summarization_chain import SummarizationChain
from livesignals.config.settings import get_settings, LiveSignalsSettings
from livesignals.ingestion.source_fetcher import SourceFetcher
from livesignals.processing.pipeline import PipelineRun, PipelineState, SignalsPipeline
from livesignals.storage.client_cache import ClientCache
from livesignals.storage.kv_store import create_store
from livesignals.utils.exceptions import LiveSignalsError, get_user_friendly_message
from livesignals.utils.http import create_session
from livesignals.utils.logging import configure_application_logging

console = Console()
logger = logging.getLogger(__name__)


def _configure_logging(settings: LiveSignalsSettings, debug: bool) -> None:
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
    )


def _load_settings_or_exit() -> LiveSignalsSettings:
    try:
        return get_settings()
    except LiveSignalsError as e:
        logger.debug(f"Settings failed to load: {e}")
        console.print(f"[bold red]❌ {get_user_friendly_message(e)}[/bold red]")
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.version_option(__version__, prog_name="livesignals")
@click.pass_context
def cli(ctx, debug):
    """LiveSignals - engineering feed ingestion with cascading AI summaries."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.pass_context
def check_config(ctx):
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking LiveSignals Configuration[/bold blue]")
    settings = _load_settings_or_exit()

    table = Table(title="Configuration Status")
    table.add_column("Component", style="cyan")
    table.add_column("Setting")
    table.add_column("Value")

    relay = settings.feeds.relay_base_url
    table.add_row("Sources", "GitHub repos", str(len(settings.feeds.github_repos)))
    table.add_row("Sources", "Blog feeds", str(len(settings.feeds.blog_feeds)))
    table.add_row("Sources", "Mode", f"relay ({relay})" if relay else "direct")
    table.add_row("Summarization", "Edge endpoint", settings.get_summarize_endpoint() or "disabled")
    table.add_row("Summarization", "Local model", settings.summarization.local_model_url or "disabled")
    table.add_row("Summarization", "Concurrency", str(settings.summarization.concurrency))
    table.add_row("Cache", "Store", settings.cache.store_path or "in-memory")
    table.add_row("Worker", "Inference", "configured" if settings.worker.has_inference_binding() else "missing")
    table.add_row("Worker", "GitHub GraphQL", "enabled" if settings.worker.github_token else "disabled")
    table.add_row("Logging", "Level", settings.get_effective_log_level())

    console.print(table)
    console.print("[bold green]✅ Configuration is valid[/bold green]")


async def _run_pipeline(settings: LiveSignalsSettings, max_items: Optional[int],
                        use_cache: bool) -> PipelineRun:
    store = create_store(settings.cache.store_path)
    client_cache = ClientCache(
        store,
        key=settings.cache.client_cache_key,
        ttl_seconds=settings.cache.client_ttl_seconds,
    )

    try:
        async with create_session(timeout=settings.limits.request_timeout) as session:
            pipeline = SignalsPipeline(
                fetcher=SourceFetcher(settings, session=session),
                chain=SummarizationChain.from_settings(settings, session=session),
                client_cache=client_cache,
                settings=settings,
            )
            return await pipeline.run(max_items=max_items, use_cache=use_cache)
    finally:
        store.close()


@cli.command()
@click.option('--max-items', type=int, default=None, help='Number of items to return')
@click.option('--no-cache', is_flag=True, help='Ignore the cached result set')
@click.option('--json', 'as_json', is_flag=True, help='Print items as JSON')
@click.pass_context
def signals(ctx, max_items, no_cache, as_json):
    """Fetch, summarize and print the current signals."""
    settings = _load_settings_or_exit()
    _configure_logging(settings, ctx.obj.get('debug', False))

    if not as_json:
        console.print("[bold blue]📡 Fetching feed items from trusted sources...[/bold blue]")

    run = asyncio.run(_run_pipeline(settings, max_items, use_cache=not no_cache))

    if run.state == PipelineState.ERROR:
        console.print(f"[bold red]❌ Feed unavailable right now. Details: {run.error_text}[/bold red]")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([item.to_wire() for item in run.items], indent=2))
        return

    if not run.items:
        console.print("[yellow]No items available right now. Check again soon.[/yellow]")
        return

    table = Table(title=f"Live Signals{' (cached)' if run.from_cache else ''}")
    table.add_column("Source", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold")
    table.add_column("TL;DR")
    table.add_column("Tags", style="magenta")
    table.add_column("Provider", style="green")

    for item in run.items:
        table.add_row(
            item.source,
            item.title,
            item.tldr,
            ", ".join(item.tags),
            item.provider.value,
        )

    console.print(table)


@cli.command()
@click.option('--host', default=None, help='Bind address (defaults to worker.host)')
@click.option('--port', type=int, default=None, help='Bind port (defaults to worker.port)')
@click.pass_context
def serve(ctx, host, port):
    """Run the relay worker HTTP application."""
    from livesignals.worker.app import run_worker

    settings = _load_settings_or_exit()
    _configure_logging(settings, ctx.obj.get('debug', False))

    console.print(
        f"[bold blue]🚀 Starting relay worker on "
        f"{host or settings.worker.host}:{port or settings.worker.port}[/bold blue]"
    )
    run_worker(settings, host=host, port=port)


if __name__ == "__main__":
    cli()
