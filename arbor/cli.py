"""Arbor CLI: run, inspect and create scrape configurations.

Usage:
    arbor run                          # Run the scrape described by sitemap.json
    arbor run my-site.json -v          # Another config, debug logging
    arbor run --devtools-ws-url ws://127.0.0.1:9222/devtools/browser/...
    arbor inspect my-site.json         # Show settings and the selector tree
    arbor init my-site.json            # Write a starter configuration
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click

from arbor.common.exceptions import ConfigurationError, ExportSinkError
from arbor.config import (
    DEFAULT_CONFIG_FILE,
    ConfigDocument,
    dump_config,
    load_config,
    starter_config,
)
from arbor.driver.runner import run_scrape
from arbor.sitemap import ROOT_PARENT, SiteMap

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

config_argument = click.argument(
    "config_path",
    metavar="CONFIG",
    type=click.Path(dir_okay=False),
    default=DEFAULT_CONFIG_FILE,
)


def _load(config_path: str) -> ConfigDocument:
    try:
        return load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def configure_logging(verbose: bool, log_file: str | None = None) -> None:
    """Set up root logging; ``log_file`` adds a file handler."""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=log_level, format=LOG_FORMAT)
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(log_level)
        logging.getLogger().addHandler(handler)


def format_selector_tree(sitemap: SiteMap) -> list[str]:
    """Render the selector tree as indented lines, root scope first."""
    lines: list[str] = []
    visited: set[str] = set()

    def walk(parent_id: str, depth: int) -> None:
        for selector in sitemap.children_of(parent_id):
            tags = [selector.type.value]
            if selector.multiple:
                tags.append("multiple")
            if selector.is_self_referencing:
                tags.append("pagination")
            lines.append(
                f"{'  ' * depth}{selector.id} [{', '.join(tags)}] "
                f"{selector.selector!r}"
            )
            if selector.id in visited:
                continue
            visited.add(selector.id)
            walk(selector.id, depth + 1)

    walk(ROOT_PARENT, 1)
    return lines


@click.group()
@click.version_option(package_name="arbor")
def cli() -> None:
    """Arbor: declarative sitemap scraper CLI."""


@cli.command()
@config_argument
@click.option(
    "--devtools-ws-url",
    default=None,
    help=(
        "Attach the rendering backend to a running browser at this "
        "DevTools websocket address instead of launching one."
    ),
)
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging.")
def run(config_path: str, devtools_ws_url: str | None, verbose: bool) -> None:
    """Run the scrape described by CONFIG (default: sitemap.json).

    \b
    Examples:
        arbor run
        arbor run books.json --verbose
    """
    document = _load(config_path)
    settings = document.settings
    configure_logging(verbose, settings.log_file if settings.log else None)

    click.echo(f"Sitemap: {document.sitemap.id or '(unnamed)'}")
    click.echo(f"Backend: {'browser' if settings.javascript else 'http'}")
    click.echo(f"Output:  {settings.output_file} ({settings.export_format})")

    try:
        asyncio.run(
            run_scrape(
                settings,
                document.sitemap,
                devtools_ws_url=devtools_ws_url,
            )
        )
    except (ConfigurationError, ExportSinkError) as e:
        raise click.ClickException(str(e)) from e
    click.echo("Done.")


@cli.command()
@config_argument
def inspect(config_path: str) -> None:
    """Show the settings and selector tree of CONFIG."""
    document = _load(config_path)
    settings = document.settings
    sitemap = document.sitemap

    click.echo(f"Sitemap:   {sitemap.id or '(unnamed)'}")
    click.echo(f"Backend:   {'browser' if settings.javascript else 'http'}")
    click.echo(f"Workers:   {settings.workers}")
    click.echo(f"Export:    {settings.export_format} -> {settings.output_file}")
    if settings.primary_user_agent:
        click.echo(f"User agent: {settings.primary_user_agent}")
    if settings.primary_proxy:
        click.echo(f"Proxy:     {settings.primary_proxy}")
    if settings.max_concurrent_fetches is not None:
        click.echo(f"Fetch budget: {settings.max_concurrent_fetches}")

    click.echo(f"\nStart URLs ({len(sitemap.start_urls)}):")
    for url in sitemap.start_urls:
        click.echo(f"  {url}")

    click.echo(f"\nSelectors ({len(sitemap.selectors)}):")
    click.echo(f"  {ROOT_PARENT}")
    for line in format_selector_tree(sitemap):
        click.echo(f"  {line}")


@cli.command()
@config_argument
@click.option(
    "--force", is_flag=True, help="Overwrite CONFIG if it already exists."
)
def init(config_path: str, force: bool) -> None:
    """Write a starter configuration to CONFIG."""
    path = Path(config_path)
    if path.exists() and not force:
        raise click.ClickException(
            f"{path} already exists (use --force to overwrite)"
        )
    try:
        dump_config(starter_config(), path)
    except OSError as e:
        raise click.ClickException(f"Could not write {path}: {e}") from e
    click.echo(f"Wrote {path}")


def main() -> None:
    """Entry point for the ``arbor`` console script."""
    cli()
