"""
Persistence for warming reports and cutover decisions.

Manifesto:
    Reports and decisions are audit records.  They are written once, keyed
    by ``job_id``, and read back for operator queries, the API, and trend
    analysis.  Nothing in warmspine updates or deletes them.

Architecture:
    ::

        ReportRepository(engine)
          ├── .save_report(report)          ─ insert-only, DuplicateRecordError on replay
          ├── .save_decision(decision)      ─ insert-only, one per job
          ├── .get_report(job_id)           ─ RecordNotFoundError if missing
          ├── .get_decision(job_id)
          ├── .latest_report() / .latest_decision()
          ├── .list_reports(limit, offset)  ─ newest first
          └── .count_reports()

Tags:
    warmspine, repository, sqlalchemy, audit, persistence
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from warmspine.core.errors import DuplicateRecordError, RecordNotFoundError
from warmspine.core.logging import get_logger
from warmspine.core.models import CutoverDecision, WarmingReport
from warmspine.core.orm.session import init_schema, session_factory
from warmspine.core.orm.tables import CutoverDecisionTable, WarmingReportTable

logger = get_logger(__name__)


class ReportRepository:
    """Insert-only store for ``WarmingReport`` and ``CutoverDecision`` records."""

    def __init__(self, engine: Engine, *, create_schema: bool = True) -> None:
        self._engine = engine
        if create_schema:
            init_schema(engine)
        self._sessions = session_factory(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    # ── Reports ──────────────────────────────────────────────────────

    def save_report(self, report: WarmingReport) -> None:
        row = WarmingReportTable(
            job_id=report.job_id,
            status=report.status.value,
            outcome=report.outcome.value,
            started_at=report.started_at,
            completed_at=report.completed_at,
            total_keys=report.total_keys,
            total_succeeded=report.total_succeeded,
            total_failed=report.total_failed,
            memory_used_bytes=report.memory_used_bytes,
            fragmentation_ratio=report.fragmentation_ratio,
            payload=report.model_dump(mode="json"),
        )
        with self._sessions() as session:
            if session.get(WarmingReportTable, report.job_id) is not None:
                raise DuplicateRecordError("warming report", report.job_id)
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError("warming report", report.job_id) from exc
        logger.info("repository.report_saved", job_id=report.job_id, status=report.status.value)

    def get_report(self, job_id: str) -> WarmingReport:
        with self._sessions() as session:
            row = session.get(WarmingReportTable, job_id)
            if row is None:
                raise RecordNotFoundError("warming report", job_id)
            return WarmingReport.model_validate(row.payload)

    def latest_report(self) -> WarmingReport:
        stmt = select(WarmingReportTable).order_by(WarmingReportTable.completed_at.desc()).limit(1)
        with self._sessions() as session:
            row = session.scalars(stmt).first()
            if row is None:
                raise RecordNotFoundError("warming report")
            return WarmingReport.model_validate(row.payload)

    def list_reports(self, *, limit: int = 20, offset: int = 0) -> list[WarmingReport]:
        stmt = (
            select(WarmingReportTable)
            .order_by(WarmingReportTable.completed_at.desc(), WarmingReportTable.job_id)
            .limit(limit)
            .offset(offset)
        )
        with self._sessions() as session:
            return [WarmingReport.model_validate(row.payload) for row in session.scalars(stmt)]

    def count_reports(self) -> int:
        with self._sessions() as session:
            return session.scalar(select(func.count()).select_from(WarmingReportTable)) or 0

    # ── Decisions ────────────────────────────────────────────────────

    def save_decision(self, decision: CutoverDecision) -> None:
        row = CutoverDecisionTable(
            job_id=decision.job_id,
            passed=decision.passed,
            decided_at=decision.decided_at,
            payload=decision.model_dump(mode="json"),
        )
        with self._sessions() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError("cutover decision", decision.job_id) from exc
        logger.info(
            "repository.decision_saved",
            job_id=decision.job_id,
            passed=decision.passed,
            reasons=len(decision.reasons),
        )

    def get_decision(self, job_id: str) -> CutoverDecision:
        stmt = select(CutoverDecisionTable).where(CutoverDecisionTable.job_id == job_id)
        with self._sessions() as session:
            row = session.scalars(stmt).first()
            if row is None:
                raise RecordNotFoundError("cutover decision", job_id)
            return CutoverDecision.model_validate(row.payload)

    def has_decision(self, job_id: str) -> bool:
        stmt = select(CutoverDecisionTable.id).where(CutoverDecisionTable.job_id == job_id)
        with self._sessions() as session:
            return session.scalars(stmt).first() is not None

    def latest_decision(self) -> CutoverDecision:
        stmt = (
            select(CutoverDecisionTable)
            .order_by(CutoverDecisionTable.decided_at.desc(), CutoverDecisionTable.id.desc())
            .limit(1)
        )
        with self._sessions() as session:
            row = session.scalars(stmt).first()
            if row is None:
                raise RecordNotFoundError("cutover decision")
            return CutoverDecision.model_validate(row.payload)


__all__ = ["ReportRepository"]
