"""Deterministic search-query planning for discovery strategies."""

from __future__ import annotations

from collections.abc import Callable
from typing import Final

from app.models.discovery import DiscoveryConfig, DiscoveryStrategy, QueryGroup

DEFAULT_KEYWORDS: Final[str] = "AI, manufacturing, garments, supply chain"
DEFAULT_GEOGRAPHY: Final[str] = "Singapore, Dubai, South Asia, Bangladesh"
DEFAULT_STAGE: Final[str] = "Pre-seed, Seed"

CANONICAL_ORDER: Final[tuple[DiscoveryStrategy, ...]] = (
    DiscoveryStrategy.THESIS,
    DiscoveryStrategy.PORTFOLIO,
    DiscoveryStrategy.DEALS,
    DiscoveryStrategy.GEOGRAPHY,
    DiscoveryStrategy.NEWS,
)

STRATEGY_LABELS: Final[dict[DiscoveryStrategy, str]] = {
    DiscoveryStrategy.THESIS: "Thesis-based",
    DiscoveryStrategy.PORTFOLIO: "Portfolio-based",
    DiscoveryStrategy.DEALS: "Recent deals",
    DiscoveryStrategy.GEOGRAPHY: "Geography-focused",
    DiscoveryStrategy.NEWS: "News & events",
}


def _thesis(keywords: str, geography: str, stage: str) -> tuple[str, ...]:
    return (
        f"{stage} investors {keywords} startups",
        "angel investors SaaS emerging markets manufacturing technology",
        f"venture capital fund investing in {keywords}",
    )


def _portfolio(keywords: str, geography: str, stage: str) -> tuple[str, ...]:
    return (
        "investors who funded factory technology AI startups",
        "VC portfolio garment manufacturing technology companies",
        "seed investors industrial AI B2B SaaS companies portfolio",
    )


def _deals(keywords: str, geography: str, stage: str) -> tuple[str, ...]:
    return (
        "seed round AI manufacturing startup funding in the last 12 months",
        "angel investment supply chain technology South Asia recent",
        f"{stage} funding manufacturing AI startup recent",
    )


def _geography(keywords: str, geography: str, stage: str) -> tuple[str, ...]:
    return (
        f"{geography} venture capital seed fund emerging markets",
        f"{geography} angel investor manufacturing technology AI",
        f"startup investor {geography} {stage}",
    )


def _news(keywords: str, geography: str, stage: str) -> tuple[str, ...]:
    return (
        "investor manufacturing AI technology funding news this year",
        "garment tech startup investment funding round this year",
        "emerging market AI startup investor conference",
    )


_TEMPLATES: Final[dict[DiscoveryStrategy, Callable[[str, str, str], tuple[str, ...]]]] = {
    DiscoveryStrategy.THESIS: _thesis,
    DiscoveryStrategy.PORTFOLIO: _portfolio,
    DiscoveryStrategy.DEALS: _deals,
    DiscoveryStrategy.GEOGRAPHY: _geography,
    DiscoveryStrategy.NEWS: _news,
}


def plan_queries(config: DiscoveryConfig) -> list[QueryGroup]:
    """Return one query group per selected strategy in canonical order."""
    keywords = ", ".join(config.focus_keywords) if config.focus_keywords else DEFAULT_KEYWORDS
    geography = config.geography_filter or DEFAULT_GEOGRAPHY
    stage = config.stage_filter or DEFAULT_STAGE
    return [
        QueryGroup(
            strategy=strategy,
            label=STRATEGY_LABELS[strategy],
            queries=_TEMPLATES[strategy](keywords, geography, stage),
        )
        for strategy in CANONICAL_ORDER
        if strategy in config.strategies
    ]
