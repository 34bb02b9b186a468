"""Discovery pass: surface candidate investors with a single research call."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from app.clients.research import ResearchClient, ResearchProviderError
from app.config import settings
from app.models.discovery import DiscoveryConfig, Lead, QueryGroup, TargetProfile
from app.observability.metrics import metrics
from app.services.discovery.errors import DiscoveryTransportError
from app.services.discovery.parsing import iter_json_arrays, optional_text

logger = logging.getLogger(__name__)


class LeadDiscoverer:
    """Turns planned query groups into a list of unverified leads."""

    def __init__(
        self,
        client: ResearchClient,
        *,
        target: TargetProfile | None = None,
        max_output_tokens: int | None = None,
    ) -> None:
        self._client = client
        self._target = target or TargetProfile()
        self._max_output_tokens = max_output_tokens or settings.discovery_max_output_tokens

    async def discover(self, config: DiscoveryConfig, groups: list[QueryGroup]) -> list[Lead]:
        """Return leads found for ``groups``; only transport failures raise."""
        prompt = render_discovery_prompt(config, groups, self._target)
        try:
            response_text = await self._client.research(prompt, max_output_tokens=self._max_output_tokens)
        except ResearchProviderError as exc:
            metrics.increment("discovery.search.errors", tags={"code": exc.code})
            raise DiscoveryTransportError(str(exc), code=exc.code) from exc

        # Bracketed citations such as "[1]" may precede the real payload.
        candidates = 0
        for payload in iter_json_arrays(response_text):
            candidates += 1
            leads = parse_leads(payload)
            if leads:
                logger.info(
                    "discovery.search.completed",
                    extra={"raw_entries": len(payload), "leads": len(leads), "candidates": candidates},
                )
                metrics.gauge("discovery.search.leads", len(leads))
                return leads

        logger.warning(
            "discovery.search.unparseable",
            extra={"response_chars": len(response_text or ""), "candidates": candidates},
        )
        metrics.increment("discovery.search.unparseable")
        return []


def render_discovery_prompt(
    config: DiscoveryConfig,
    groups: list[QueryGroup],
    target: TargetProfile,
) -> str:
    queries = "\n".join(f'- [{group.label}] "{query}"' for group in groups for query in group.queries)
    focus = ", ".join(config.focus_keywords) or "AI, manufacturing, emerging markets"
    return (
        "You are an investor discovery agent. Search the web and find real investors "
        f"(angels, VCs, family offices) who would be a strong fit for {target.company_name}.\n\n"
        f"ABOUT {target.company_name.upper()}:\n"
        f"{target.describe()}\n\n"
        "SEARCH STRATEGY:\n"
        "Use web search to run these searches and find REAL investors:\n"
        f"{queries}\n\n"
        "IMPORTANT RULES:\n"
        "- Only return REAL people/firms you find in web search results\n"
        "- Each investor must have a real name and ideally a firm name\n"
        "- Do NOT invent or hallucinate investor names\n"
        f"- Aim to find {config.max_results} unique investors\n"
        f"- Focus on investors who invest in: {focus}\n"
        f"- Preferred geography: {config.geography_filter or 'Any'}\n"
        f"- Preferred stage: {config.stage_filter or 'Pre-seed, Seed'}\n\n"
        "After searching, return a JSON array of discovered investors:\n"
        "[\n"
        "  {\n"
        '    "name": "Full Name",\n'
        '    "firm": "Firm Name or null",\n'
        '    "website": "firm website URL or null",\n'
        f'    "reason": "Brief reason why they might be a fit for {target.company_name}"\n'
        "  }\n"
        "]\n\n"
        "Return ONLY the JSON array, no markdown formatting."
    )


def parse_leads(entries: Iterable[Any]) -> list[Lead]:
    """Convert loosely-typed JSON entries into leads, dropping unusable ones."""
    leads: list[Lead] = []
    for entry in entries:
        lead = _coerce_lead(entry)
        if lead is None:
            logger.debug("discovery.search.entry_dropped", extra={"entry_type": type(entry).__name__})
            continue
        leads.append(lead)
    return leads


def _coerce_lead(entry: Any) -> Lead | None:
    if not isinstance(entry, Mapping):
        return None
    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    reason = entry.get("reason")
    return Lead(
        name=name.strip(),
        firm=optional_text(entry.get("firm")),
        website=optional_text(entry.get("website")),
        reason=reason.strip() if isinstance(reason, str) else "",
    )


def dedupe_leads(leads: Iterable[Lead], max_results: int) -> list[Lead]:
    """Keep the first lead per identity key, in order, capped at ``max_results``."""
    seen: set[str] = set()
    unique: list[Lead] = []
    for lead in leads:
        key = lead.identity_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(lead)
    return unique[: max(max_results, 0)]
