"""Read-only access to the investor pipeline and the persistent duplicate check."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, select

from app.config import settings
from app.models.discovery import DiscoveredInvestor, InvestorIdentity
from app.models.outreach_investor import OutreachInvestorRecord
from app.observability.metrics import metrics
from app.services.discovery.errors import InvestorStoreError

logger = logging.getLogger(__name__)


class InvestorStore(Protocol):
    """Persistence contract consumed by the discovery pipeline."""

    async def fetch_identities(self) -> list[InvestorIdentity]:
        ...

    async def check_health(self) -> bool:
        ...


class InMemoryInvestorStore(InvestorStore):
    """Store backed by a fixed list of identities, used for local runs and tests."""

    def __init__(self, identities: Iterable[InvestorIdentity] = ()) -> None:
        self._identities = list(identities)
        self.fetch_count = 0

    async def fetch_identities(self) -> list[InvestorIdentity]:
        self.fetch_count += 1
        return list(self._identities)

    async def check_health(self) -> bool:
        return True


class SQLModelInvestorStore(InvestorStore):
    """SQLModel-backed store reading the ``outreach_investors`` table in Postgres/Supabase."""

    def __init__(
        self,
        database_url: str,
        *,
        pool_min_size: int | None = None,
        pool_max_size: int | None = None,
        auto_create_schema: bool = False,
    ) -> None:
        if not database_url:
            raise ValueError("DATABASE_URL is required for SQLModelInvestorStore.")

        parsed_url = make_url(database_url)
        sync_url, connect_args, drivername = _coerce_sync_database_url(parsed_url)
        pool_min = max(pool_min_size or settings.db_pool_min_size, 1)
        pool_max = max(pool_max_size or settings.db_pool_max_size, pool_min)
        is_sqlite = drivername.startswith("sqlite")
        engine_kwargs: dict[str, Any] = {
            "connect_args": connect_args,
            "pool_pre_ping": not is_sqlite,
        }
        if not is_sqlite:
            engine_kwargs["pool_size"] = pool_min
            engine_kwargs["max_overflow"] = max(pool_max - pool_min, 0)

        self._engine: Engine = create_engine(sync_url, **engine_kwargs)
        if auto_create_schema:
            SQLModel.metadata.create_all(self._engine, tables=[OutreachInvestorRecord.__table__])
        self._backend = "sqlite" if is_sqlite else "database"

    def dispose(self) -> None:
        """Close the underlying SQLAlchemy engine."""
        self._engine.dispose()

    async def fetch_identities(self) -> list[InvestorIdentity]:
        return await asyncio.to_thread(self._fetch_identities)

    async def check_health(self) -> bool:
        return await asyncio.to_thread(self._ping)

    def _fetch_identities(self) -> list[InvestorIdentity]:
        try:
            with self._session() as session:
                rows = session.exec(
                    select(
                        OutreachInvestorRecord.email,
                        OutreachInvestorRecord.firm_name,
                        OutreachInvestorRecord.name,
                    )
                ).all()
                identities = [
                    InvestorIdentity(email=email, firm_name=firm_name, name=name)
                    for email, firm_name, name in rows
                ]
        except SQLAlchemyError as exc:
            logger.exception("discovery.store.error", extra={"backend": self._backend})
            raise InvestorStoreError(
                "Failed to read existing investors.", code="500_STORE_UNAVAILABLE"
            ) from exc
        logger.info(
            "discovery.store.fetched",
            extra={"backend": self._backend, "identities": len(identities)},
        )
        return identities

    def _ping(self) -> bool:
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.error("discovery.store.health_failed", extra={"error": type(exc).__name__})
            return False

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self._engine) as session:
            yield session


async def flag_existing_investors(
    investors: list[DiscoveredInvestor],
    store: InvestorStore,
) -> list[DiscoveredInvestor]:
    """Mark investors already present in the store using a single batched read."""
    identities = await store.fetch_identities()
    emails = {_normalize(identity.email) for identity in identities} - {None}
    firm_and_names = {
        (_normalize(identity.firm_name), _normalize(identity.name))
        for identity in identities
        if _normalize(identity.firm_name) and _normalize(identity.name)
    }

    flagged: list[DiscoveredInvestor] = []
    for investor in investors:
        email = _normalize(investor.email)
        pair = (_normalize(investor.firm_name), _normalize(investor.name))
        duplicate = (email is not None and email in emails) or pair in firm_and_names
        flagged.append(investor.model_copy(update={"already_in_pipeline": duplicate}))

    duplicates = sum(1 for investor in flagged if investor.already_in_pipeline)
    metrics.gauge("discovery.dedup.duplicates", duplicates)
    logger.info(
        "discovery.dedup.checked",
        extra={"investors": len(flagged), "existing": len(identities), "duplicates": duplicates},
    )
    return flagged


def _normalize(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    return normalized or None


def _coerce_sync_database_url(url: URL) -> tuple[str, dict[str, Any], str]:
    """Convert async connection strings into sync SQLAlchemy URLs."""
    drivername = url.drivername
    connect_args: dict[str, Any] = {}
    if drivername.endswith("+asyncpg"):
        drivername = drivername.replace("+asyncpg", "+psycopg2")
    elif drivername.endswith("+aiosqlite"):
        drivername = "sqlite"
    sync_url = url.set(drivername=drivername)
    query = dict(sync_url.query) if sync_url.query else {}
    removed_ssl = query.pop("ssl", None) is not None
    sync_url = sync_url.set(query=query)

    host = (url.host or "").lower()
    if drivername.startswith("postgresql") and "sslmode" not in query:
        if removed_ssl or "supabase.co" in host:
            connect_args["sslmode"] = "require"
    if drivername.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    return sync_url.render_as_string(hide_password=False), connect_args, drivername


def build_investor_store(database_url: str | None = None) -> InvestorStore:
    """Instantiate an InvestorStore using DATABASE_URL when available."""
    resolved_url = database_url or settings.database_url
    if not resolved_url:
        logger.info("discovery.store.initialized", extra={"backend": "memory"})
        return InMemoryInvestorStore()
    try:
        store = SQLModelInvestorStore(
            resolved_url,
            pool_min_size=settings.db_pool_min_size,
            pool_max_size=settings.db_pool_max_size,
        )
    except Exception:
        logger.exception("discovery.store.init_failed", extra={"backend": "database"})
        raise
    logger.info("discovery.store.initialized", extra={"backend": "database"})
    return store
