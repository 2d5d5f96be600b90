"""
Reports router: persisted warming reports and cutover decisions (read-only).

Endpoints:
    GET /reports                 Paged list, newest first
    GET /reports/latest          Most recent report
    GET /reports/{job_id}        One report
    GET /decisions/latest        Most recent cutover decision
    GET /decisions/{job_id}      Decision for one job

Manifesto:
    Reports and decisions are audit records.  The API exposes them for
    dashboards and trend analysis (memory growth over successive
    warmings) and never writes.

Tags:
    warmspine, api, reports, decisions, audit
"""

from __future__ import annotations

import time

from fastapi import APIRouter, Query

from warmspine.api.deps import Repository
from warmspine.api.schemas import PagedResponse, PageMeta, SuccessResponse
from warmspine.core.models import CutoverDecision, WarmingReport

router = APIRouter()


def _elapsed(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


@router.get("/reports", response_model=PagedResponse[WarmingReport])
def list_reports(
    repo: Repository,
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """Warming reports, newest first."""
    start = time.perf_counter()
    items = repo.list_reports(limit=limit, offset=offset)
    return PagedResponse(
        data=items,
        page=PageMeta.from_result(repo.count_reports(), limit, offset),
        elapsed_ms=_elapsed(start),
    )


@router.get("/reports/latest", response_model=SuccessResponse[WarmingReport])
def latest_report(repo: Repository):
    start = time.perf_counter()
    return SuccessResponse(data=repo.latest_report(), elapsed_ms=_elapsed(start))


@router.get("/reports/{job_id}", response_model=SuccessResponse[WarmingReport])
def get_report(job_id: str, repo: Repository):
    start = time.perf_counter()
    return SuccessResponse(data=repo.get_report(job_id), elapsed_ms=_elapsed(start))


@router.get("/decisions/latest", response_model=SuccessResponse[CutoverDecision])
def latest_decision(repo: Repository):
    start = time.perf_counter()
    return SuccessResponse(data=repo.latest_decision(), elapsed_ms=_elapsed(start))


@router.get("/decisions/{job_id}", response_model=SuccessResponse[CutoverDecision])
def get_decision(job_id: str, repo: Repository):
    start = time.perf_counter()
    return SuccessResponse(data=repo.get_decision(job_id), elapsed_ms=_elapsed(start))


__all__ = ["router"]
