"""
Command line interface for listflow.

``collect`` opens an authenticated Chrome session, harvests one source
profile until the list stops growing, optionally enriches incomplete
entries from their detail pages, and writes the items as JSON and CSV.
Batch sources such as ``posts`` accept several comma-separated values
for their parameter (``--param username=jane,john``); every profile is
collected in the same session and written to one combined document
with per-profile statistics.  ``sources`` lists the profiles available
in the configuration.

Exit status is 1 when the run cannot start (missing session, auth wall,
bad configuration); a run that stops on its time or pass budget still
writes its partial results and exits 0.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from .collect.batch import BatchResult, collect_batch
from .collect.controller import CollectResult, collect
from .config import CollectOptions, ConfigLoader, log_level
from .driver.selenium_driver import SeleniumDriver, close_quietly
from .driver.session import apply_cookies, load_storage_state, resolve_auth_state
from .errors import ListflowError
from .normalize.write_csv import DEFAULT_COLUMNS, write_items_csv
from .normalize.write_json import write_items_json
from .sources import SourceProfile, get_source

logger = logging.getLogger(__name__)


def timestamp_slug(now: Optional[datetime] = None) -> str:
    """ISO timestamp safe for file names (``:`` and ``.`` become ``-``)."""
    now = now or datetime.now(timezone.utc)
    return now.isoformat().replace(":", "-").replace(".", "-")


def output_paths(out_dir: str, source_name: str, now: Optional[datetime] = None) -> Tuple[str, str]:
    base = os.path.join(out_dir, f"{source_name}-{timestamp_slug(now)}")
    return f"{base}.json", f"{base}.csv"


def export_result(result: CollectResult, source: SourceProfile, out_dir: str) -> Tuple[str, str]:
    """Write the items of a run as JSON and CSV; return both paths."""
    json_path, csv_path = output_paths(out_dir, source.name)
    write_items_json(result.items, json_path)
    write_items_csv(result.items, csv_path, source.columns or DEFAULT_COLUMNS)
    logger.info("Wrote %d items to %s and %s", result.total, json_path, csv_path)
    return json_path, csv_path


def export_batch(batch: BatchResult, source: SourceProfile, out_dir: str) -> Tuple[str, str]:
    """Write the combined batch document as JSON and its items as CSV."""
    values = [p.params.get(batch.param, "") for p in batch.profiles]
    json_path, csv_path = output_paths(out_dir, "-".join([source.name, *values]))
    write_items_json(batch.to_document(), json_path)
    write_items_csv(batch.items, csv_path, source.columns or DEFAULT_COLUMNS)
    logger.info("Wrote %d items from %d profiles to %s and %s", batch.total, len(batch.profiles), json_path, csv_path)
    return json_path, csv_path

def parse_params(pairs: Optional[List[str]]) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise ListflowError(f"Invalid --param '{pair}'; expected NAME=VALUE")
        params[name.strip()] = value.strip()
    return params


@asynccontextmanager
async def open_session(
    source: SourceProfile, auth_state: Optional[str], debug: bool = False
) -> AsyncIterator[SeleniumDriver]:
    """Start Chrome carrying the saved session cookies; quit it on exit."""
    cookies = load_storage_state(auth_state, source.session_cookie)
    driver = await SeleniumDriver.launch(debug=debug)
    try:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, apply_cookies, driver.driver, cookies, source.base_url)
        yield driver
    finally:
        await close_quietly(driver)


async def run_collect(
    source: SourceProfile,
    options: CollectOptions,
    auth_state: Optional[str],
    debug: bool = False,
) -> CollectResult:
    """Start Chrome with the saved session and collect ``source``."""
    async with open_session(source, auth_state, debug) as driver:
        return await collect(driver, options, source)


async def run_batch(
    source: SourceProfile,
    param_sets: List[Dict[str, str]],
    options: CollectOptions,
    auth_state: Optional[str],
    debug: bool = False,
) -> BatchResult:
    """Collect ``source`` for every parameter set in one Chrome session."""
    async with open_session(source, auth_state, debug) as driver:
        return await collect_batch(driver, source, param_sets, options)


def cmd_collect(args: argparse.Namespace) -> None:
    """Run a collection (or a multi-profile batch) and export the results."""
    config = ConfigLoader(args.config)
    source = get_source(args.source, config.sources())
    params = parse_params(args.param)
    options = config.collect_options(
        source=source.name,
        interaction_delay_ms=args.delay_ms,
        no_growth_threshold=args.no_growth,
        max_passes=args.max_passes,
        max_duration_s=args.max_duration,
        target_size=args.target,
        enrichment_enabled=args.enrich,
        enrichment_concurrency=args.concurrency,
        show_progress=True,
    )
    auth_state = args.auth_state or resolve_auth_state(config.get("browser", "auth_state"))
    debug = args.debug or bool(config.get("browser", "debug", False))
    out_dir = args.out or config.get("output", "dir", "output")

    if source.batch_param:
        param_sets = source.expand_params(params)
        batch = asyncio.run(run_batch(source, param_sets, options, auth_state, debug))
        export_batch(batch, source, out_dir)
        for profile in batch.profiles:
            logger.info("%s: %s", profile.params.get(batch.param), profile.stats)
        logger.info("%s: %d items from %d profiles", source.name, batch.total, len(batch.profiles))
        return

    source = source.with_params(params)
    result = asyncio.run(run_collect(source, options, auth_state, debug))
    export_result(result, source, out_dir)
    logger.info(
        "%s: %d items, %s (%s), %d passes, %dms",
        source.name, result.total, result.phase.value, result.stop_reason,
        result.passes, result.duration_ms,
    )


def cmd_sources(args: argparse.Namespace) -> None:
    """Print the configured source profiles."""
    config = ConfigLoader(args.config)
    for name, source in sorted(config.sources().items()):
        print(f"{name:12s} {source.interaction:9s} {source.start_url}")


def main(argv: List[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="listflow", description="Harvest lazily-rendered lists")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Collect
    collect_cmd = subparsers.add_parser("collect", help="Collect every entity of a source")
    collect_cmd.add_argument("--config", help="YAML config file (defaults to the packaged config)")
    collect_cmd.add_argument("--source", default="connections", help="Source profile name")
    collect_cmd.add_argument("--param", action="append", help="Start URL parameter NAME=VALUE (repeatable); batch sources take comma-separated values")
    collect_cmd.add_argument("--out", help="Output directory")
    collect_cmd.add_argument("--auth-state", dest="auth_state", help="Storage-state JSON with session cookies")
    collect_cmd.add_argument("--delay-ms", type=int, dest="delay_ms", help="Base wait after each interaction")
    collect_cmd.add_argument("--no-growth", type=int, dest="no_growth", help="Passes without growth before stopping")
    collect_cmd.add_argument("--max-passes", type=int, dest="max_passes", help="Maximum interaction passes")
    collect_cmd.add_argument("--max-duration", type=float, dest="max_duration", help="Time budget in seconds")
    collect_cmd.add_argument("--target", type=int, help="Stop after this many distinct entities")
    enrich_group = collect_cmd.add_mutually_exclusive_group()
    enrich_group.add_argument(
        "--enrich",
        dest="enrich",
        action="store_true",
        default=None,
        help="Backfill missing fields from detail pages",
    )
    enrich_group.add_argument(
        "--no-enrich",
        dest="enrich",
        action="store_false",
        help="Skip enrichment",
    )
    collect_cmd.add_argument("--concurrency", type=int, help="Enrichment workers (1-5)")
    collect_cmd.add_argument("--debug", action="store_true", help="Run Chrome headed")
    collect_cmd.set_defaults(func=cmd_collect)

    # Sources
    sources_cmd = subparsers.add_parser("sources", help="List configured source profiles")
    sources_cmd.add_argument("--config", help="YAML config file (defaults to the packaged config)")
    sources_cmd.set_defaults(func=cmd_sources)

    args = parser.parse_args(argv)
    load_dotenv()
    logging.basicConfig(level=log_level(), format="[%(levelname)s] %(name)s: %(message)s")
    try:
        args.func(args)
    except ListflowError as exc:
        logger.error("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main(sys.argv[1:])
