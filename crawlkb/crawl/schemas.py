"""Pydantic schemas for Crawl Service payloads.

Only the fields the pipeline reads are declared; anything else the service
sends is ignored.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CrawlSubmitResponse(BaseModel):
    id: str = Field(min_length=1)


class CrawlStatusResponse(BaseModel):
    status: str = Field(min_length=1)
    completed: Optional[int] = None
    total: Optional[int] = None


class ResultMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    sourceURL: Optional[str] = None
    url: Optional[str] = None

    @property
    def source_url(self) -> str | None:
        return self.sourceURL or self.url


class ResultItem(BaseModel):
    metadata: ResultMetadata
    markdown: Optional[str] = None


class ResultBatch(BaseModel):
    # Items are validated one at a time so a bad one only costs itself.
    data: Optional[list[Any]] = None
    next: Optional[str] = None
