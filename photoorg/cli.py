"""
Command-line interface for photoorg.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress
from rich.table import Table

from .config import LibraryConfig, load_config, load_output_dir
from .constants import DATE_SOURCES, PROGRAM, get_console, get_logger
from .errors import ConfigError, StoreError
from .history import HistoryManager
from .organizer import Organizer, Outcome, RunResult
from .policies import POLICIES
from .progress import ProgressContext
from .query import query
from .reconcile import verify_library
from .store import MetadataStore

COMMANDS = ("run", "query", "verify")

# Options whose next argument is a value, never a command name
VALUE_OPTIONS = (
    "--config", "--input", "-i", "--output", "-o", "--extension", "-e",
    "--sort-policy", "-p", "--date-source", "--timezone", "--tz", "--workers",
)
GLOBAL_FLAGS = ("-h", "--help", "-V", "--version", "-v", "--verbose", "--config")


def configure_logging(console: Console, verbose: bool) -> logging.Logger:
    """Route program logs to the console: WARNING and up, or everything with --verbose."""
    logger = get_logger()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    console_handler = RichHandler(console=console, rich_tracebacks=True, show_path=False)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(console_handler)
    return logger


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROGRAM,
        description="Organize a photo library by content identity and capture date",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  {PROGRAM} --input ~/Downloads/Photos --output ~/Pictures/Library
  {PROGRAM} run --dry-run
  {PROGRAM} query '2025/03/*.jpg'
  {PROGRAM} verify
        """
    )
    parser.add_argument("--config", type=Path, metavar="PATH",
                        help="Config file (YAML or TOML, default: ./po.toml if present, "
                             "else ~/.photoorg/config.yml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--version", "-V", action="store_true",
                        help=f"Display the version number of {PROGRAM} and exit")

    # Global options repeated on subcommands; SUPPRESS keeps top-level values
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, metavar="PATH", default=argparse.SUPPRESS)
    common.add_argument("--verbose", "-v", action="store_true", default=argparse.SUPPRESS)

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    run = subparsers.add_parser("run", parents=[common],
                                help="Import input files into the library (default)")
    run.add_argument("--input", "-i", dest="inputs", action="append", metavar="DIR",
                     help="Input directory (repeatable, overrides config)")
    run.add_argument("--output", "-o", metavar="DIR", help="Library output directory")
    run.add_argument("--extension", "-e", dest="extensions", action="append", metavar="EXT",
                     help="Accepted file extension (repeatable, case-insensitive)")
    run.add_argument("--sort-policy", "-p", choices=sorted(POLICIES),
                     help="How to lay out the library (default: date)")
    run.add_argument("--date-source", dest="date_sources", action="append",
                     choices=DATE_SOURCES,
                     help="Sort-date source in precedence order (repeatable, "
                          f"default: {' '.join(DATE_SOURCES)})")
    run.add_argument("--timezone", "--tz", metavar="TIMEZONE",
                     help="Timezone for embedded timestamps (default: UTC)")
    run.add_argument("--workers", type=int, metavar="N", help="Hashing threads")
    run.add_argument("--no-recursive", dest="recursive", action="store_false", default=None,
                     help="Do not descend into input subdirectories")
    run.add_argument("--dry-run", "-n", action="store_true",
                     help="Preview operations without making changes")

    query_parser = subparsers.add_parser("query", parents=[common],
                                         help="List library files matching a glob")
    query_parser.add_argument("pattern", help="Glob relative to the library root, e.g. '2025/**/*.jpg'")
    query_parser.add_argument("--output", "-o", metavar="DIR", help="Library output directory")

    verify_parser = subparsers.add_parser("verify", parents=[common],
                                          help="Check library metadata against files on disk")
    verify_parser.add_argument("--output", "-o", metavar="DIR", help="Library output directory")

    return parser


def normalize_argv(argv: List[str]) -> List[str]:
    """Default to the run command when none is given.

    Only the first positional argument can name a command, so an input
    directory called `query` is not mistaken for one.
    """
    only_global = True
    skip_value = False
    for arg in argv:
        if skip_value:
            skip_value = False
            continue
        if arg.startswith("-"):
            option = arg.split("=", 1)[0]
            skip_value = arg in VALUE_OPTIONS
            if option not in GLOBAL_FLAGS:
                only_global = False
            continue
        if arg in COMMANDS:
            return argv
        break

    if only_global and any(arg in ("-h", "--help", "-V", "--version") for arg in argv):
        return argv
    return ["run"] + argv


def show_processing_plan(config: LibraryConfig, dry_run: bool, console: Console) -> None:
    """Display the processing plan before execution."""
    console.print("\n[bold]Processing Plan:[/bold]")
    for source in config.inputs:
        console.print(f"  Input:           [blue]{source}[/blue]")
    console.print(f"  Library:         [blue]{config.output}[/blue]")
    console.print(f"  Processing Mode: [cyan]{'DRY RUN' if dry_run else 'MOVE'}[/cyan]")
    console.print(f"  Sort Policy:     [cyan]{config.sort_policy}[/cyan]")
    console.print(f"  Date Sources:    [cyan]{', '.join(config.date_sources)}[/cyan]")
    console.print(f"  Timezone:        [cyan]{config.timezone}[/cyan]")
    console.print(f"  Extensions:      [cyan]{', '.join(sorted(config.extensions))}[/cyan]")
    console.print()


def print_summary(result: RunResult, console: Console) -> None:
    """Print per-file errors and the processing summary table."""
    errors = result.by_outcome(Outcome.ERROR)
    if errors:
        console.print("\n[red]Files that could not be organized:[/red]")
        for item in errors:
            console.print(f"  [red]{item.source}[/red]: {item.message}")

    stats = result.stats
    table = Table(title="Processing Summary")
    table.add_column("Category", style="cyan")
    table.add_column("Count", style="green")
    table.add_row("Moved", str(stats.get_moved()))
    table.add_row("Duplicates Skipped", str(stats.get_duplicates()))
    table.add_row("Excluded", str(stats.get_excluded()))
    table.add_row("Errors", str(stats.get_errors()))
    table.add_row("Reconciled", str(stats.get_reconciled()))

    size_mb = stats.get_total_size_mb()
    if size_mb > 1024:
        size_str = f"{size_mb/1024:.1f} GB"
    else:
        size_str = f"{size_mb:.1f} MB"
    table.add_row("Total Size", size_str)
    console.print(table)


def run_command(args: argparse.Namespace, console: Console) -> int:
    overrides = {
        "inputs": args.inputs,
        "output": args.output,
        "extensions": args.extensions,
        "sort_policy": args.sort_policy,
        "date_sources": args.date_sources,
        "timezone": args.timezone,
        "workers": args.workers,
        "recursive": args.recursive,
    }
    config = load_config(args.config, overrides=overrides)
    show_processing_plan(config, args.dry_run, console)

    store = MetadataStore.load(config.output)
    logger = get_logger()
    history = HistoryManager(config.output, dry_run=args.dry_run)
    if not args.dry_run:
        config.output.mkdir(parents=True, exist_ok=True)
    history.setup_run_logger(logger)

    organizer = Organizer(config, store, dry_run=args.dry_run)
    success = False
    try:
        with Progress(console=console) as progress:
            task = progress.add_task("Organizing files...", total=0)
            result = organizer.run(ProgressContext(progress, task))
        success = True
    finally:
        history.log_import_summary(config.inputs, organizer.stats, success)
        history.close(logger)

    print_summary(result, console)
    if result.stats.has_errors():
        console.print(f"\n[green]✓ Processing completed![/green] "
                      f"[yellow]({result.stats.get_errors()} files could not be organized)[/yellow]")
    else:
        console.print("\n[green]✓ Processing completed successfully![/green]")
    return 0


def query_command(args: argparse.Namespace, console: Console) -> int:
    output = load_output_dir(args.config, override=args.output)
    for path in query(output, args.pattern):
        console.print(str(path), markup=False, highlight=False, soft_wrap=True)
    return 0


def verify_command(args: argparse.Namespace, console: Console) -> int:
    output = load_output_dir(args.config, override=args.output)
    store = MetadataStore.load(output)
    report = verify_library(store)
    for record in report.missing:
        console.print(f"[red]missing[/red]   {record.path} ({record.identity.short})")
    for record in report.mismatched:
        console.print(f"[red]changed[/red]   {record.path} ({record.identity.short})")
    if report.consistent:
        console.print(f"[green]✓ {report.checked} library records verified[/green]")
        return 0
    console.print(f"[red]{len(report.missing) + len(report.mismatched)} of {report.checked} "
                  f"records are inconsistent[/red]")
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(normalize_argv(list(sys.argv[1:] if argv is None else argv)))

    if args.version:
        from . import __version__, __copyright__
        print(f"{PROGRAM} version {__version__} {__copyright__}" if args.verbose else __version__)
        return 0

    console = get_console()
    configure_logging(console, args.verbose)

    handlers = {"run": run_command, "query": query_command, "verify": verify_command}
    try:
        return handlers[args.command or "run"](args, console)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        return 1
    except StoreError as e:
        console.print(f"\n[red]Library metadata error: {e}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("\n[red]Operation cancelled by user[/red]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
