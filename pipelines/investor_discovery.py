"""Command-line discovery run that prints event frames and persists the final investors."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

from app.clients.research import OpenAIResearchClient, ResearchClient
from app.models.discovery import DiscoveredInvestor, DiscoveryConfig, DiscoveryStrategy, EventType
from app.services.discovery.investor_store import InvestorStore, build_investor_store
from app.services.discovery.service import DiscoveryService, load_target_profile
from app.services.discovery.streaming import encode_event_stream

logger = logging.getLogger("pipelines.investor_discovery")

DEFAULT_OUTPUT = Path("leads/discovered_investors.json")


async def run_pipeline(
    config: DiscoveryConfig,
    *,
    output_file: Path | None,
    client: ResearchClient | None = None,
    store: InvestorStore | None = None,
    stream: TextIO | None = None,
) -> tuple[bool, list[DiscoveredInvestor]]:
    """Run discovery end-to-end; returns (succeeded, investors)."""
    out = stream or sys.stdout
    client_owned = client is None
    research_client = client or OpenAIResearchClient.from_settings()
    service = DiscoveryService(
        client=research_client,
        store=store or build_investor_store(),
        target=load_target_profile(),
    )
    pipeline = service.new_run(config)

    try:
        async for frame in encode_event_stream(pipeline.run()):
            out.write(frame)
            out.flush()
    finally:
        if client_owned and isinstance(research_client, OpenAIResearchClient):
            await research_client.close()

    succeeded = pipeline.stats is not None
    investors = pipeline.investors
    if succeeded and output_file is not None:
        persist_investors(investors, output_file)
        logger.info("Persisted %s investors to %s.", len(investors), output_file)
    return succeeded, investors


def persist_investors(investors: Sequence[DiscoveredInvestor], output_path: Path) -> None:
    """Write the final investor list with deterministic formatting."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as outfile:
        json.dump([investor.model_dump(mode="json") for investor in investors], outfile, indent=2)
        outfile.write("\n")


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """CLI argument parsing."""
    parser = argparse.ArgumentParser(description="Discover and qualify investors via web research.")
    parser.add_argument(
        "--strategy",
        dest="strategies",
        action="append",
        choices=[strategy.value for strategy in DiscoveryStrategy],
        help="Discovery strategy to use (repeatable). Defaults to all strategies.",
    )
    parser.add_argument("--keyword", dest="keywords", action="append", default=[], help="Focus keyword (repeatable).")
    parser.add_argument("--geography", default="", help="Preferred investor geography.")
    parser.add_argument("--stage", default="Pre-seed, Seed", help="Preferred investment stage.")
    parser.add_argument("--min-fit-score", type=int, default=50, help="Minimum fit score (0-100).")
    parser.add_argument("--max-results", type=int, default=20, help="Maximum number of leads to profile.")
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT, help="Path to output JSON file.")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> DiscoveryConfig:
    strategies = args.strategies or [strategy.value for strategy in DiscoveryStrategy]
    return DiscoveryConfig(
        strategies=strategies,
        focus_keywords=args.keywords,
        geography_filter=args.geography,
        stage_filter=args.stage,
        min_fit_score=args.min_fit_score,
        max_results=args.max_results,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint for investor discovery."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        config = build_config(args)
        succeeded, _ = asyncio.run(run_pipeline(config, output_file=args.output))
    except ValueError as exc:
        logger.error("Invalid discovery configuration: %s", exc)
        return 1
    except Exception as exc:  # pragma: no cover - safety net
        logger.exception("Unexpected error during investor discovery: %s", exc)
        return 1
    if not succeeded:
        logger.error("Investor discovery ended with an %s event.", EventType.ERROR.value)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
