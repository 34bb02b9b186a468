"""Minimum fit-score gate applied to every profiled lead."""

from __future__ import annotations

from dataclasses import dataclass

from app.models.discovery import DiscoveredInvestor


@dataclass(frozen=True)
class ScoreGateDecision:
    investor: DiscoveredInvestor
    threshold: int
    passed: bool

    @property
    def skip_message(self) -> str:
        return (
            f"{self.investor.name} scored {self.investor.fit_score}/100 "
            f"(below threshold {self.threshold}) - skipping"
        )


def apply_score_gate(investor: DiscoveredInvestor, min_fit_score: int) -> ScoreGateDecision:
    return ScoreGateDecision(
        investor=investor,
        threshold=min_fit_score,
        passed=investor.fit_score >= min_fit_score,
    )
