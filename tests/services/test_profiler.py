import math

import pytest

from app.models.discovery import Lead, TargetProfile
from app.services.discovery import profiler as profiler_module
from app.services.discovery.profiler import (
    LeadProfiler,
    build_investor,
    build_rubric,
    coerce_fit_score,
)
from app.services.discovery.score_gate import apply_score_gate
from tests.helpers.metrics_stub import StubMetrics
from tests.helpers.research_stub import StubResearchClient, profile_payload, provider_failure

LEAD = Lead(
    name="Ada Park",
    firm="Loom Ventures",
    website="https://loom.example",
    reason="Backed two factory-software startups.",
)


@pytest.fixture(autouse=True)
def stub_metrics(monkeypatch):
    stub = StubMetrics()
    monkeypatch.setattr(profiler_module, "metrics", stub)
    return stub


async def _profile(client, lead=LEAD):
    return await LeadProfiler(client, max_output_tokens=512).profile(lead)


@pytest.mark.asyncio
async def test_profile_builds_investor_from_fenced_json(stub_metrics):
    client = StubResearchClient([profile_payload("Ada Park", 72, email="ada@loom.example")])

    investor = await _profile(client)

    assert investor is not None
    assert investor.fit_score == 72
    assert investor.email == "ada@loom.example"
    assert investor.portfolio_companies == ["LoomWorks", "Stitchly"]
    assert investor.reason == LEAD.reason
    assert investor.already_in_pipeline is False
    assert stub_metrics.timing_calls[0]["tags"] == {"outcome": "profiled"}


@pytest.mark.asyncio
async def test_profile_falls_back_to_lead_identity():
    client = StubResearchClient([profile_payload("Ada Park", 60, name="unknown")])

    investor = await _profile(client)

    assert investor.name == "Ada Park"
    assert investor.firm_name == "Loom Ventures"
    assert investor.firm_website == "https://loom.example"


@pytest.mark.asyncio
async def test_profile_prompt_embeds_lead_and_rubric():
    client = StubResearchClient([profile_payload("Ada Park", 60)])

    await _profile(client)

    prompt = client.prompts[0]
    assert "- Name: Ada Park\n" in prompt
    assert "- Firm: Loom Ventures\n" in prompt
    assert "+20 if they invest in pre-seed or seed stage" in prompt
    assert "+10 bonus if any portfolio company is in garments" in prompt


@pytest.mark.parametrize(
    "response",
    [
        "I was unable to find reliable information about this investor.",
        "{broken json",
        "",
    ],
)
@pytest.mark.asyncio
async def test_profile_returns_none_when_no_object_is_found(response, stub_metrics):
    client = StubResearchClient([response])

    assert await _profile(client) is None
    assert stub_metrics.counted("discovery.profile.failed")[0]["tags"] == {"code": "422_INVALID_PROFILE"}


@pytest.mark.asyncio
async def test_profile_returns_none_on_provider_failure(stub_metrics):
    client = StubResearchClient([provider_failure("504_RESEARCH_TIMEOUT")])

    assert await _profile(client) is None
    assert stub_metrics.counted("discovery.profile.failed")[0]["tags"] == {"code": "504_RESEARCH_TIMEOUT"}
    assert stub_metrics.timing_calls[0]["tags"] == {"outcome": "failed"}


@pytest.mark.asyncio
async def test_profile_returns_none_on_unexpected_error(stub_metrics):
    client = StubResearchClient([RuntimeError("socket closed")])

    assert await _profile(client) is None
    assert stub_metrics.counted("discovery.profile.failed")[0]["tags"] == {"code": "500_INTERNAL"}


@pytest.mark.parametrize(
    ("reported", "expected"),
    [
        (150, 100),
        (-5, 0),
        (72.4, 72),
        (88, 88),
        ("high", 50),
        (None, 50),
        (True, 50),
        (math.nan, 50),
        (math.inf, 50),
    ],
)
def test_coerce_fit_score(reported, expected):
    assert coerce_fit_score(reported) == expected


def test_build_investor_accepts_loose_field_shapes():
    payload = {
        "fit_score": 55,
        "focus_areas": ["AI", "Manufacturing"],
        "stage_preference": ["Pre-seed", "Seed"],
        "portfolio_companies": [{"name": "LoomWorks"}, "", None, "Stitchly"],
        "linkedin_url": "N/A",
    }

    investor = build_investor(payload, LEAD)

    assert investor.focus_areas == "AI, Manufacturing"
    assert investor.stage_preference == "Pre-seed, Seed"
    assert investor.portfolio_companies == ["LoomWorks", "Stitchly"]
    assert investor.linkedin_url is None
    assert investor.fit_reasoning == ""


def test_rubric_uses_target_profile():
    target = TargetProfile(sectors=("Climate",), regions=("Nordics",), check_size_range="$50K-$100K")

    rubric = {criterion.slug: criterion for criterion in build_rubric(target)}

    assert sum(criterion.points for criterion in rubric.values()) == 100
    assert "Climate" in rubric["sector"].description
    assert "Nordics" in rubric["geography"].description
    assert rubric["vertical"].bonus is True


def test_score_gate_is_inclusive_at_threshold():
    investor = build_investor({"fit_score": 50}, LEAD)

    assert apply_score_gate(investor, 50).passed is True

    decision = apply_score_gate(investor, 51)
    assert decision.passed is False
    assert decision.skip_message == "Ada Park scored 50/100 (below threshold 51) - skipping"
