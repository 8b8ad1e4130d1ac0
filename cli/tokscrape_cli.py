#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
tokscrape_cli.py
Command line interface for the TikTok scraper.

Commands:
    test URL [--no-cache]                  Scrape one video and show its details
    bulk FILE [--output PATH] [--format]   Scrape every URL listed in a file (json, csv or yaml output)
    stats [--clear]                        Show (or reset) the statistics in the state database
    clear-cache [URL]                      Clear the whole cache or one URL in the state database

Cache and statistics are kept in a SQLite state database (--state-db, the
STATE_DB_PATH setting, or ~/.tokscrape/state.db), so they carry over between
runs and match a server started with the same STATE_DB_PATH.
"""

import argparse
import asyncio
import csv
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console
from rich.table import Table

# Allow running as a script from a source checkout
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import config  # noqa: E402
from exceptions import ScraperError  # noqa: E402
from logging_config import StructuredLogger, setup_logging  # noqa: E402
from models import VideoRecord  # noqa: E402
from services.engine import TikTokScraperEngine  # noqa: E402
from sqlite_stores import DEFAULT_STATE_DB  # noqa: E402

logger = StructuredLogger(__name__)

OUTPUT_FORMATS = ("json", "csv", "yaml")

# Flat columns written by the bulk command
EXPORT_FIELDS = (
    "video_id", "username", "user_nickname", "description", "views", "likes",
    "comments", "shares", "favorites", "engagement_rate", "canonical_url", "scraped_at",
)


def truncate_text(text: str, length: int = 100) -> str:
    if len(text) <= length:
        return text
    return text[:length] + "..."


def read_urls_from_file(file_path: str) -> List[str]:
    """Read URLs from a text file, one per line, skipping blank lines.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    path = Path(file_path)
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {file_path}")
    with path.open("r", encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]


def export_row(record: VideoRecord) -> Dict[str, Any]:
    data = record.to_response(include_raw=False)
    return {field: data.get(field) for field in EXPORT_FIELDS}


def write_results(results: List[Dict[str, Any]], output_path: Path, output_format: str) -> None:
    """Write exported rows to ``output_path`` in ``output_format``."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8", newline="") as f:
        if output_format == "csv":
            writer = csv.DictWriter(f, fieldnames=list(EXPORT_FIELDS))
            writer.writeheader()
            writer.writerows(results)
        elif output_format == "yaml":
            yaml.dump(results, f, allow_unicode=True, sort_keys=False, width=120, default_flow_style=False)
        else:
            json.dump(results, f, ensure_ascii=False, indent=4)


def details_table(record: VideoRecord) -> Table:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Property")
    table.add_column("Value", overflow="fold")
    rows = [
        ("Video ID", record.video_id),
        ("Username", f"@{record.username}"),
        ("User Nickname", record.user_nickname),
        ("Description", truncate_text(record.description, 100)),
        ("Views", f"{record.views:,}"),
        ("Likes", f"{record.likes:,}"),
        ("Comments", f"{record.comments:,}"),
        ("Shares", f"{record.shares:,}"),
        ("Favorites", f"{record.favorites:,}"),
        ("Engagement Rate", f"{record.engagement_rate:.2f}%"),
        ("Canonical URL", record.canonical_url),
    ]
    for name, value in rows:
        table.add_row(name, str(value))
    return table


def statistics_table(stats: Dict[str, int]) -> Table:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    for key, value in stats.items():
        table.add_row(key.replace("_", " ").capitalize(), str(value))
    return table


# --- Commands ---

async def cmd_test(engine: TikTokScraperEngine, console: Console, args: argparse.Namespace) -> int:
    use_cache = not args.no_cache
    console.print(f"Testing TikTok scraper with URL: {args.url}")
    if not use_cache:
        console.print("Cache disabled for this request.")

    start_time = time.monotonic()
    try:
        record = await engine.scrape(args.url, use_cache=use_cache)
    except ScraperError as e:
        console.print("[bold red]Failed to scrape TikTok video:[/]")
        console.print(f"[red]{e.message}[/] ({e.error_code})")
        return 1

    console.print("[bold green]Successfully scraped TikTok video![/]")
    console.print(f"Processing time: {time.monotonic() - start_time:.2f} seconds\n")
    console.print(details_table(record))

    console.print("\n[bold]Scraper Statistics:[/]")
    console.print(statistics_table(await engine.get_statistics()))
    return 0


async def cmd_bulk(engine: TikTokScraperEngine, console: Console, args: argparse.Namespace) -> int:
    try:
        urls = read_urls_from_file(args.file)
    except (FileNotFoundError, OSError) as e:
        console.print(f"[bold red]{e}[/]")
        return 1

    if not urls:
        console.print("[bold red]No URLs found in file.[/]")
        return 1

    console.print(f"Processing {len(urls)} URLs...")
    results: List[Dict[str, Any]] = []
    failures: List[Dict[str, str]] = []

    for url in urls:
        try:
            record = await engine.scrape(url)
            results.append(export_row(record))
        except ScraperError as e:
            logger.warning(f"Bulk scrape failed for {url}: {e.message}", url=url, error_code=e.error_code)
            failures.append({"url": url, "error": e.message})

    console.print(f"\nCompleted! Successful: {len(results)}, Failed: {len(failures)}")

    if failures:
        console.print("\n[bold yellow]Failed URLs:[/]")
        for failure in failures:
            console.print(f"  - {failure['url']}: {failure['error']}")

    if not results:
        return 1

    if args.output:
        output_path = Path(args.output)
        try:
            write_results(results, output_path, args.format)
        except (OSError, yaml.YAMLError) as e:
            console.print(f"[bold red]Could not write results to {output_path}: {e}[/]")
            return 1
        console.print(f"Results saved to: {output_path}")
    else:
        table = Table(show_header=True, header_style="bold cyan")
        for column in ("Video ID", "Username", "Views", "Likes", "Comments"):
            table.add_column(column)
        for row in results:
            table.add_row(row["video_id"], f"@{row['username']}", f"{row['views']:,}",
                          f"{row['likes']:,}", f"{row['comments']:,}")
        console.print(table)

    return 0


async def cmd_stats(engine: TikTokScraperEngine, console: Console, args: argparse.Namespace) -> int:
    if args.clear:
        await engine.reset_statistics()
        console.print("[green]Statistics cleared.[/]")
        return 0

    stats = await engine.get_statistics()
    console.print("[bold]Scraper Statistics:[/]")
    console.print(statistics_table(stats))

    total = stats.get("total_requests", 0)
    if total > 0:
        console.print(f"Success rate: {stats.get('successful_scrapes', 0) / total * 100:.2f}%")
        console.print(f"Cache efficiency: {stats.get('cache_hits', 0) / total * 100:.2f}%")
    return 0


async def cmd_clear_cache(engine: TikTokScraperEngine, console: Console, args: argparse.Namespace) -> int:
    if args.url:
        if not engine.is_valid_tiktok_url(args.url):
            console.print("[bold red]Invalid TikTok URL provided.[/]")
            return 1
        await engine.clear_cache(args.url)
        console.print(f"[green]Cache cleared for URL: {args.url}[/]")
        return 0

    if not await engine.clear_cache():
        console.print("[yellow]Caching is disabled, nothing to clear.[/]")
        return 0
    console.print("[green]All TikTok scraper cache cleared.[/]")
    return 0


COMMANDS = {
    "test": cmd_test,
    "bulk": cmd_bulk,
    "stats": cmd_stats,
    "clear-cache": cmd_clear_cache,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tokscrape", description="Scrape public TikTok video pages.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logs")
    parser.add_argument("--state-db", default=config.STATE_DB_PATH or DEFAULT_STATE_DB,
                        help="SQLite file holding the cache and statistics (default: %(default)s)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    test_parser = subparsers.add_parser("test", help="Test the TikTok scraper with a given URL")
    test_parser.add_argument("url")
    test_parser.add_argument("--no-cache", action="store_true", help="Disable cache for this request")

    bulk_parser = subparsers.add_parser("bulk", help="Scrape multiple TikTok URLs from a file")
    bulk_parser.add_argument("file", help="Text file with one URL per line")
    bulk_parser.add_argument("--output", help="Output file path")
    bulk_parser.add_argument("--format", choices=OUTPUT_FORMATS, default="json", help="Output format")

    stats_parser = subparsers.add_parser("stats", help="Display TikTok scraper statistics")
    stats_parser.add_argument("--clear", action="store_true", help="Clear all statistics")

    clear_parser = subparsers.add_parser("clear-cache", help="Clear TikTok scraper cache")
    clear_parser.add_argument("url", nargs="?", help="Clear cache for a specific URL")

    return parser


async def run(args: argparse.Namespace, engine: Optional[TikTokScraperEngine] = None,
              console: Optional[Console] = None) -> int:
    """Run one command and return its exit code."""
    console = console or Console()
    engine = engine or TikTokScraperEngine.from_config(config, state_db_path=args.state_db)
    try:
        return await COMMANDS[args.command](engine, console, args)
    finally:
        await engine.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(
        log_level_console=logging.DEBUG if args.verbose else logging.WARNING,
        structured=False,
        log_file=None,
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        Console(stderr=True).print("\n[yellow]Interrupted by user.[/]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
