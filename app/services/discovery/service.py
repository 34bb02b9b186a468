"""Process-wide wiring of discovery collaborators."""

from __future__ import annotations

import asyncio
import logging

from app.clients.research import OpenAIResearchClient, ResearchClient
from app.config import settings
from app.models.discovery import DiscoveryConfig, TargetProfile
from app.services.discovery.discoverer import LeadDiscoverer
from app.services.discovery.errors import DiscoveryUnavailableError
from app.services.discovery.investor_store import (
    InvestorStore,
    SQLModelInvestorStore,
    build_investor_store,
)
from app.services.discovery.pipeline import DiscoveryPipeline
from app.services.discovery.profiler import LeadProfiler

logger = logging.getLogger(__name__)


class DiscoveryService:
    """Shares the research client and investor store; builds one pipeline per run."""

    def __init__(
        self,
        *,
        client: ResearchClient,
        store: InvestorStore,
        target: TargetProfile | None = None,
    ) -> None:
        self._target = target or TargetProfile()
        self._client = client
        self._discoverer = LeadDiscoverer(client, target=self._target)
        self._profiler = LeadProfiler(client, target=self._target)
        self._store = store

    @property
    def store(self) -> InvestorStore:
        return self._store

    async def close(self) -> None:
        if isinstance(self._client, OpenAIResearchClient):
            await self._client.close()
        if isinstance(self._store, SQLModelInvestorStore):
            self._store.dispose()

    def new_run(
        self,
        config: DiscoveryConfig,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> DiscoveryPipeline:
        return DiscoveryPipeline(
            config,
            discoverer=self._discoverer,
            profiler=self._profiler,
            store=self._store,
            cancel_event=cancel_event,
        )


def load_target_profile(path: str | None = None) -> TargetProfile:
    resolved = path or settings.discovery_target_profile_path
    if not resolved:
        return TargetProfile()
    profile = TargetProfile.from_file(resolved)
    logger.info("discovery.target.loaded", extra={"path": resolved, "company": profile.company_name})
    return profile


_SERVICE_INSTANCE: DiscoveryService | None = None


def get_discovery_service() -> DiscoveryService:
    """Singleton accessor used by API routes."""
    global _SERVICE_INSTANCE  # noqa: PLW0603
    if _SERVICE_INSTANCE is None:
        try:
            client = OpenAIResearchClient.from_settings()
        except ValueError as exc:
            logger.error("discovery.service.unavailable", extra={"error": str(exc)})
            raise DiscoveryUnavailableError(str(exc)) from exc
        _SERVICE_INSTANCE = DiscoveryService(
            client=client,
            store=build_investor_store(),
            target=load_target_profile(),
        )
    return _SERVICE_INSTANCE


async def shutdown_discovery_service() -> None:
    """Release the shared research client and database engine, if they were created."""
    global _SERVICE_INSTANCE  # noqa: PLW0603
    service, _SERVICE_INSTANCE = _SERVICE_INSTANCE, None
    if service is None:
        return
    await service.close()
    logger.info("discovery.service.closed")
