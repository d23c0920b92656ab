"""Data models for the crawl side of the pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    @classmethod
    def parse(cls, raw: str) -> JobStatus:
        """Map a service status string onto the four known states.

        Intermediate states the service may invent (``scraping`` and the
        like) count as running; ``cancelled`` counts as failed.
        """
        value = raw.strip().lower()
        if value in ("cancelled", "canceled"):
            return cls.FAILED
        try:
            return cls(value)
        except ValueError:
            return cls.RUNNING


@dataclass
class CrawlJob:
    """A snapshot of a crawl job as last reported by the service."""

    id: str
    status: JobStatus = JobStatus.PENDING
    completed_count: int = 0
    total_count: int = 0


@dataclass(frozen=True)
class RawPage:
    """One crawled page: where it came from and its markdown."""

    source_url: str
    markdown: str
