"""SQLModel mapping for the outreach investor pipeline table."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy import Column, DateTime, String, Uuid
from sqlmodel import Field, SQLModel


class OutreachInvestorRecord(SQLModel, table=True):
    """Row of the durable outreach pipeline; discovery only reads identity columns."""

    __tablename__ = "outreach_investors"
    __table_args__ = (sa.Index("ix_outreach_investors_email", "email"),)

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    name: str = Field(sa_column=Column(String(length=255), nullable=False))
    email: str | None = Field(default=None, sa_column=Column(String(length=320), nullable=True))
    firm_name: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    pipeline_status: str = Field(
        default="Identified",
        sa_column=Column(String(length=32), nullable=False),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
