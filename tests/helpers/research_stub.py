"""Deterministic stand-ins for the research provider."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from app.clients.research import ResearchProviderError


class StubResearchClient:
    """Replays queued responses; exceptions in the queue are raised instead."""

    def __init__(self, responses: list[str | Exception]) -> None:
        self._responses = list(responses)
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def research(self, prompt: str, *, max_output_tokens: int) -> str:
        self.prompts.append(prompt)
        if not self._responses:
            raise AssertionError("StubResearchClient ran out of queued responses.")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class RoutingResearchClient:
    """Answers discovery prompts with ``leads`` and profile prompts via ``profile_for``."""

    def __init__(
        self,
        leads: list[dict[str, Any]],
        profile_for: Callable[[str], str | Exception],
    ) -> None:
        self._leads = leads
        self._profile_for = profile_for
        self.prompts: list[str] = []

    async def research(self, prompt: str, *, max_output_tokens: int) -> str:
        self.prompts.append(prompt)
        if prompt.startswith("You are an investor discovery agent"):
            return "Here is what I found:\n" + json.dumps(self._leads)
        for lead in self._leads:
            if f"- Name: {lead['name']}\n" in prompt:
                response = self._profile_for(lead["name"])
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError("Unexpected research prompt.")


def lead_payload(name: str, /, firm: str | None = None, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": name,
        "firm": firm,
        "website": f"https://{(firm or name).lower().replace(' ', '')}.example" if firm else None,
        "reason": f"{name} backs seed-stage industrial AI.",
    }
    payload.update(extra)
    return payload


def profile_payload(name: str, score: Any, /, **extra: Any) -> str:
    payload: dict[str, Any] = {
        "name": name,
        "email": None,
        "firm_name": None,
        "thesis": "Backs technical founders in emerging markets.",
        "focus_areas": "AI, SaaS, Manufacturing",
        "check_size": "$100K-$500K",
        "stage_preference": "Pre-seed, Seed",
        "geography": "South Asia",
        "portfolio_companies": ["LoomWorks", "Stitchly"],
        "linkedin_url": None,
        "crunchbase_url": None,
        "fit_score": score,
        "fit_reasoning": "Stage, sector and geography all line up.",
    }
    payload.update(extra)
    return "```json\n" + json.dumps(payload) + "\n```"


def provider_failure(code: str = "502_RESEARCH_UPSTREAM") -> ResearchProviderError:
    return ResearchProviderError("upstream unavailable", code=code)
