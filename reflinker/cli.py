"""
REFLINKER CLI - The Interface

Commands:
  - reflinker linkify TEXT --format markdown   (rewrite text with links)
  - reflinker branch NAME                      (ranked issue refs in a branch name)
  - reflinker refs                             (list configured references)
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from reflinker.autolinks import Autolinks
from reflinker.config_loader import load_config
from reflinker.identity import BANNER, __codename__, __tagline__, __version__
from reflinker.models import OutputFormat

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".reflinker" / ".env")

app = typer.Typer(
    name="reflinker",
    help=f"{__codename__} — {__tagline__}",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def linkify(
    text: str = typer.Argument(..., help="Text to rewrite, or '-' to read stdin"),
    output_format: OutputFormat = typer.Option(OutputFormat.PLAINTEXT, "--format", "-f", help="Output format"),
    repo: Optional[Path] = typer.Option(None, "--repo", "-r", help="Repository holding .reflinker/config.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Rewrite TEXT, replacing issue references with links."""
    _configure_logging(verbose)

    if text == "-":
        text = sys.stdin.read()

    autolinks = _load_autolinks(repo)
    if not autolinks.references:
        console.print("[yellow]No autolinks configured.[/]")

    # markup=False: rendered links must reach stdout verbatim
    console.print(autolinks.linkify(text, output_format), markup=False, highlight=False, soft_wrap=True)


@app.command()
def branch(
    name: str = typer.Argument(..., help="Branch name to scan"),
    repo: Optional[Path] = typer.Option(None, "--repo", "-r", help="Repository holding .reflinker/config.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Show issue references found in a branch name, most relevant first."""
    _configure_logging(verbose)

    autolinks = _load_autolinks(repo)
    matches = asyncio.run(autolinks.get_branch_autolinks(name))
    if not matches:
        console.print(f"[dim]No issue references in {name}[/]")
        raise typer.Exit(1)

    table = Table(title=f"Autolinks in {name}", border_style="cyan")
    table.add_column("#")
    table.add_column("Id")
    table.add_column("Prefix")
    table.add_column("Position")
    table.add_column("URL")

    for rank, link in enumerate(matches.values(), start=1):
        table.add_row(str(rank), link.id, link.prefix, str(link.index), link.url)

    console.print(table)


@app.command()
def refs(
    repo: Optional[Path] = typer.Option(None, "--repo", "-r", help="Repository holding .reflinker/config.yaml"),
):
    """List the configured autolink references."""
    _print_banner()
    autolinks = _load_autolinks(repo)

    table = Table(title="Autolink References", border_style="cyan")
    table.add_column("Prefix")
    table.add_column("URL")
    table.add_column("Id")
    table.add_column("Case")
    table.add_column("Title")

    for ref in autolinks.references:
        table.add_row(
            ref.prefix,
            ref.url,
            "alphanumeric" if ref.alphanumeric else "digits",
            "ignore" if ref.ignore_case else "match",
            ref.title or "—",
        )

    console.print(table)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_autolinks(repo: Path | None) -> Autolinks:
    if repo is not None:
        repo = repo.resolve()
        if not repo.exists():
            console.print(f"[red]Repository not found: {repo}[/]")
            raise typer.Exit(1)
    return Autolinks(load_config(repo))


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"[dim]{escape(str(msg))}[/]", highlight=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"[dim]{escape(str(msg))}[/]", highlight=False),
            level="WARNING",
            format="{message}",
        )


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")
