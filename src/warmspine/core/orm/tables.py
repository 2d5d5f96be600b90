"""State tables: warming reports, cutover decisions, category locks.

Reports and decisions are insert-only audit records keyed by ``job_id``.
The full pydantic model is stored as JSON in ``payload``; the scalar
columns exist for listing and trend queries (memory growth over
successive warmings) without decoding every payload.

Tags:
    warmspine, orm, sqlalchemy, tables, audit
"""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from warmspine.core.orm.base import WarmBase


class WarmingReportTable(WarmBase):
    __tablename__ = "warm_reports"

    job_id: Mapped[str] = mapped_column(Text, primary_key=True)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    outcome: Mapped[str] = mapped_column(Text, nullable=False)
    started_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    total_keys: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_succeeded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    memory_used_bytes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    fragmentation_ratio: Mapped[float | None] = mapped_column(Float)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)


class CutoverDecisionTable(WarmBase):
    __tablename__ = "cutover_decisions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    decided_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)


class CategoryLockTable(WarmBase):
    __tablename__ = "warm_category_locks"

    lock_key: Mapped[str] = mapped_column(Text, primary_key=True)
    job_id: Mapped[str] = mapped_column(Text, nullable=False)
    acquired_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)


__all__ = ["WarmingReportTable", "CutoverDecisionTable", "CategoryLockTable"]
