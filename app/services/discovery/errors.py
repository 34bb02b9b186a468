"""Shared error classes for the investor discovery pipeline."""

from __future__ import annotations


class DiscoveryError(RuntimeError):
    """Base exception raised by the discovery pipeline."""

    def __init__(self, message: str, code: str = "DISCOVERY_ERROR") -> None:
        super().__init__(message)
        self.code = code


class DiscoveryConfigurationError(DiscoveryError):
    """Raised when a run is started without any search strategy."""

    def __init__(self, message: str = "No search strategies selected") -> None:
        super().__init__(message, code="422_NO_STRATEGIES")


class DiscoveryTransportError(DiscoveryError):
    """Raised when the discovery research call could not be completed."""


class ProfileError(DiscoveryError):
    """Raised internally when a single lead cannot be researched or parsed."""


class InvestorStoreError(DiscoveryError):
    """Raised when the investor store cannot be read."""


class PipelineStateError(DiscoveryError):
    """Raised on an illegal pipeline state transition."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="500_PIPELINE_STATE")


class DiscoveryUnavailableError(DiscoveryError):
    """Raised when the discovery service cannot be wired (e.g. no research credentials)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="503_DISCOVERY_UNAVAILABLE")
