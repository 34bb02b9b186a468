"""Domain models for investor discovery runs."""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, conint, field_validator


class DiscoveryStrategy(str, Enum):
    """Search approaches an operator can select for a discovery run."""

    THESIS = "thesis"
    PORTFOLIO = "portfolio"
    DEALS = "deals"
    GEOGRAPHY = "geography"
    NEWS = "news"


class DiscoveryConfig(BaseModel):
    """Operator-supplied configuration for one discovery run."""

    model_config = ConfigDict(frozen=True)

    strategies: frozenset[DiscoveryStrategy] = Field(default_factory=frozenset)
    focus_keywords: tuple[str, ...] = ()
    geography_filter: str = ""
    stage_filter: str = ""
    min_fit_score: conint(ge=0, le=100) = 50  # type: ignore[valid-type]
    max_results: conint(ge=1) = 20  # type: ignore[valid-type]

    @field_validator("focus_keywords", mode="before")
    @classmethod
    def _clean_keywords(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        return value

    @field_validator("geography_filter", "stage_filter", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value


class Lead(BaseModel):
    """Unverified candidate investor surfaced by the discovery pass."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    firm: str | None = None
    website: str | None = None
    reason: str = ""

    @property
    def identity_key(self) -> str:
        return f"{self.name.lower()}|{(self.firm or '').lower()}"


class DiscoveredInvestor(BaseModel):
    """A lead enriched with researched attributes and a fit score."""

    name: str
    reason: str = ""
    email: str | None = None
    firm_name: str | None = None
    firm_website: str | None = None
    thesis: str | None = None
    focus_areas: str | None = None
    check_size: str | None = None
    stage_preference: str | None = None
    geography: str | None = None
    portfolio_companies: list[str] = Field(default_factory=list)
    linkedin_url: str | None = None
    crunchbase_url: str | None = None
    fit_score: conint(ge=0, le=100)  # type: ignore[valid-type]
    fit_reasoning: str = ""
    already_in_pipeline: bool = False


class EventType(str, Enum):
    STATUS = "status"
    INVESTOR_FOUND = "investor_found"
    INVESTOR_PROFILED = "investor_profiled"
    INVESTOR_SKIPPED = "investor_skipped"
    ERROR = "error"
    COMPLETE = "complete"


class Progress(BaseModel):
    model_config = ConfigDict(frozen=True)

    current: int
    total: int


class DiscoveryStats(BaseModel):
    """Aggregate counters reported by the terminal ``complete`` event."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    added: int = 0
    skipped: int = 0
    duplicates: int = 0


class DiscoveryEvent(BaseModel):
    """One typed progress event emitted by a discovery run."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    message: str
    data: DiscoveredInvestor | None = None
    progress: Progress | None = None
    stats: DiscoveryStats | None = None

    @property
    def is_terminal(self) -> bool:
        return self.type in (EventType.ERROR, EventType.COMPLETE)

    def to_payload(self) -> dict[str, Any]:
        """Wire shape: absent optional fields are omitted, investor nulls are kept."""
        payload: dict[str, Any] = {"type": self.type.value, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data.model_dump(mode="json")
        if self.progress is not None:
            payload["progress"] = self.progress.model_dump(mode="json")
        if self.stats is not None:
            payload["stats"] = self.stats.model_dump(mode="json")
        return payload


class QueryGroup(BaseModel):
    """Search queries generated for a single strategy."""

    model_config = ConfigDict(frozen=True)

    strategy: DiscoveryStrategy
    label: str
    queries: tuple[str, ...]


class InvestorIdentity(BaseModel):
    """Identity triple read from the persistent investor store."""

    model_config = ConfigDict(frozen=True)

    email: str | None = None
    firm_name: str | None = None
    name: str | None = None


class TargetProfile(BaseModel):
    """The company whose raise the discovered investors are matched against."""

    model_config = ConfigDict(frozen=True)

    company_name: str = "fabricXai"
    highlights: tuple[str, ...] = (
        "AI-native manufacturing intelligence platform with 22 specialist AI agents for garment factories",
        "Based in Bangladesh, targeting 4,500+ garment factories that are 98% unserved by technology",
        "Proof of concept live in Dhaka factories",
    )
    stage: str = "Seed / Pre-seed"
    raise_terms: str = "Raising an angel round of $150K-$250K on a SAFE at a $3M cap"
    check_size_range: str = "$150K-$750K"
    sectors: tuple[str, ...] = ("AI", "SaaS", "Manufacturing", "Supply Chain", "Deep Tech")
    regions: tuple[str, ...] = ("Emerging Markets", "Bangladesh", "South Asia", "Frontier Markets")
    vertical: str = "garments, textiles, factory tech, or industrial AI"

    @classmethod
    def from_file(cls, path: str | Path) -> TargetProfile:
        """Load an operator-supplied profile from a JSON document."""
        profile_path = Path(path).expanduser()
        if not profile_path.exists():
            raise FileNotFoundError(f"Target profile not found at {profile_path}")
        return cls.model_validate(json.loads(profile_path.read_text(encoding="utf-8")))

    def describe(self) -> str:
        lines = [f"- {line}" for line in self.highlights]
        lines.append(f"- {self.raise_terms}")
        lines.append(f"- Stage: {self.stage}")
        lines.append(f"- Sectors: {', '.join(self.sectors)}")
        lines.append(f"- Regions: {', '.join(self.regions)}")
        return "\n".join(lines)
