"""Per-lead deep research and fit scoring."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

from pydantic import ValidationError

from app.clients.research import ResearchClient, ResearchProviderError
from app.config import settings
from app.models.discovery import DiscoveredInvestor, Lead, TargetProfile
from app.observability.metrics import metrics
from app.services.discovery.errors import ProfileError
from app.services.discovery.parsing import extract_json_object, optional_text

logger = logging.getLogger(__name__)

DEFAULT_FIT_SCORE: Final[int] = 50
MIN_FIT_SCORE: Final[int] = 0
MAX_FIT_SCORE: Final[int] = 100


@dataclass(frozen=True)
class RubricCriterion:
    """One additive component of the fit score."""

    slug: str
    points: int
    description: str
    bonus: bool = False


def build_rubric(target: TargetProfile) -> tuple[RubricCriterion, ...]:
    sectors = ", ".join(target.sectors)
    regions = ", ".join(target.regions)
    return (
        RubricCriterion("stage", 20, "they invest in pre-seed or seed stage"),
        RubricCriterion("sector", 20, f"they focus on {sectors}"),
        RubricCriterion("geography", 20, f"they invest in or focus on {regions}"),
        RubricCriterion("check_size", 20, f"their typical check size range overlaps with {target.check_size_range}"),
        RubricCriterion("recent_activity", 10, "they made an investment in the last 12 months"),
        RubricCriterion("vertical", 10, f"any portfolio company is in {target.vertical}", bonus=True),
    )


class LeadProfiler:
    """Researches a single lead and returns a scored profile, or ``None`` on failure."""

    def __init__(
        self,
        client: ResearchClient,
        *,
        target: TargetProfile | None = None,
        max_output_tokens: int | None = None,
    ) -> None:
        self._client = client
        self._target = target or TargetProfile()
        self._rubric = build_rubric(self._target)
        self._max_output_tokens = max_output_tokens or settings.profile_max_output_tokens

    async def profile(self, lead: Lead) -> DiscoveredInvestor | None:
        start = time.perf_counter()
        outcome = "profiled"
        try:
            return await self._profile(lead)
        except ProfileError as exc:
            outcome = "failed"
            logger.warning(
                "discovery.profile.failed",
                extra={"lead": lead.name, "firm": lead.firm, "code": exc.code, "error": str(exc)},
            )
            metrics.increment("discovery.profile.failed", tags={"code": exc.code})
            return None
        except Exception:  # a single lead never aborts the batch
            outcome = "failed"
            logger.exception("discovery.profile.unexpected_error", extra={"lead": lead.name})
            metrics.increment("discovery.profile.failed", tags={"code": "500_INTERNAL"})
            return None
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            metrics.timing("discovery.profile.latency_ms", elapsed_ms, tags={"outcome": outcome})

    async def _profile(self, lead: Lead) -> DiscoveredInvestor:
        prompt = render_profile_prompt(lead, self._target, self._rubric)
        try:
            response_text = await self._client.research(prompt, max_output_tokens=self._max_output_tokens)
        except ResearchProviderError as exc:
            raise ProfileError(f"Research failed for {lead.name}: {exc}", code=exc.code) from exc

        payload = extract_json_object(response_text)
        if payload is None:
            raise ProfileError("Profile response did not contain a JSON object.", code="422_INVALID_PROFILE")
        try:
            return build_investor(payload, lead)
        except ValidationError as exc:
            raise ProfileError("Profile response failed validation.", code="422_INVALID_PROFILE") from exc


def render_profile_prompt(
    lead: Lead,
    target: TargetProfile,
    rubric: tuple[RubricCriterion, ...],
) -> str:
    scoring = "\n".join(
        f"+{criterion.points}{' bonus' if criterion.bonus else ''} if {criterion.description}"
        for criterion in rubric
    )
    return (
        "You are an investor research agent. Research this investor deeply using web search.\n\n"
        "INVESTOR TO RESEARCH:\n"
        f"- Name: {lead.name}\n"
        f"- Firm: {lead.firm or 'Unknown'}\n"
        f"- Website: {lead.website or 'Unknown'}\n"
        f"- Initial reason for fit: {lead.reason or 'Not provided'}\n\n"
        "SEARCH FOR:\n"
        f'1. "{lead.name}" investor\n'
        f'2. "{lead.firm or lead.name}" venture capital investments portfolio\n'
        "3. Their LinkedIn profile\n"
        "4. Their Crunchbase profile or firm's Crunchbase\n\n"
        "EXTRACT AND RETURN AS JSON:\n"
        "{\n"
        f'  "name": "{lead.name}",\n'
        '  "email": "their email if publicly available, or null",\n'
        '  "firm_name": "confirmed firm name or null",\n'
        '  "firm_website": "firm website URL or null",\n'
        '  "thesis": "their investment thesis in 1-2 sentences",\n'
        '  "focus_areas": "comma-separated focus areas, e.g. AI, SaaS, Manufacturing",\n'
        '  "check_size": "typical check size range, e.g. $100K-$500K",\n'
        '  "stage_preference": "e.g. Pre-seed, Seed, Series A",\n'
        '  "geography": "where they invest or are based",\n'
        '  "portfolio_companies": ["company1", "company2"],\n'
        '  "linkedin_url": "LinkedIn URL or null",\n'
        '  "crunchbase_url": "Crunchbase URL or null",\n'
        '  "fit_score": <number 0-100>,\n'
        '  "fit_reasoning": "2-3 sentences explaining the score breakdown"\n'
        "}\n\n"
        "SCORING (calculate fit_score 0-100 by adding the points of every criterion that applies):\n"
        f"{scoring}\n\n"
        f"{target.company_name.upper()} CONTEXT:\n"
        f"{target.describe()}\n\n"
        "Return ONLY valid JSON, no markdown."
    )


def build_investor(payload: Mapping[str, Any], lead: Lead) -> DiscoveredInvestor:
    """Construct a profile from a permissive payload, defaulting every missing field."""
    fit_score = coerce_fit_score(payload.get("fit_score"))
    reasoning = payload.get("fit_reasoning")
    return DiscoveredInvestor(
        name=optional_text(payload.get("name")) or lead.name,
        reason=lead.reason,
        email=optional_text(payload.get("email")),
        firm_name=optional_text(payload.get("firm_name")) or lead.firm,
        firm_website=optional_text(payload.get("firm_website")) or lead.website,
        thesis=optional_text(payload.get("thesis")),
        focus_areas=_joined_text(payload.get("focus_areas")),
        check_size=optional_text(payload.get("check_size")),
        stage_preference=_joined_text(payload.get("stage_preference")),
        geography=optional_text(payload.get("geography")),
        portfolio_companies=_string_list(payload.get("portfolio_companies")),
        linkedin_url=optional_text(payload.get("linkedin_url")),
        crunchbase_url=optional_text(payload.get("crunchbase_url")),
        fit_score=fit_score,
        fit_reasoning=reasoning.strip() if isinstance(reasoning, str) else "",
    )


def coerce_fit_score(value: Any) -> int:
    """Round and clamp a reported score; non-numeric values default to 50."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_FIT_SCORE
    if isinstance(value, float) and not math.isfinite(value):
        return DEFAULT_FIT_SCORE
    rounded = int(round(value))
    clamped = max(MIN_FIT_SCORE, min(MAX_FIT_SCORE, rounded))
    if clamped != rounded:
        logger.warning("discovery.profile.score_clamped", extra={"reported": value, "clamped": clamped})
    return clamped


def _joined_text(value: Any) -> str | None:
    if isinstance(value, list):
        return optional_text(", ".join(_string_list(value)))
    return optional_text(value)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    items: list[str] = []
    for entry in value:
        if isinstance(entry, Mapping):
            entry = entry.get("name")
        text = optional_text(entry)
        if text:
            items.append(text)
    return items
