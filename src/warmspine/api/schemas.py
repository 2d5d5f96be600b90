"""
API schemas: success envelopes, RFC 7807 errors and paging.

Response Envelope Conventions:
    - 2xx responses use ``SuccessResponse[T]`` or ``PagedResponse[T]``
    - 4xx/5xx responses use ``ProblemDetail`` (RFC 7807)
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ProblemDetail(BaseModel):
    """RFC 7807 «Problem Details for HTTP APIs»."""

    type: str = Field(default="about:blank")
    title: str = Field(description="Short human-readable error summary")
    status: int = Field(description="HTTP status code")
    detail: str = Field(default="")
    instance: str = Field(default="", description="URI of the failing request")


class PageMeta(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool

    @classmethod
    def from_result(cls, total: int, limit: int, offset: int) -> PageMeta:
        return cls(total=total, limit=limit, offset=offset, has_more=(offset + limit) < total)


class SuccessResponse(BaseModel, Generic[T]):
    data: T
    elapsed_ms: float = Field(default=0.0, description="Server-side processing time in milliseconds")


class PagedResponse(BaseModel, Generic[T]):
    data: list[T]
    page: PageMeta
    elapsed_ms: float = Field(default=0.0)



__all__ = ["ProblemDetail", "PageMeta", "SuccessResponse", "PagedResponse"]
