"""Error taxonomy for the crawl pipeline.

Every error names the pipeline stage it came from so the CLI can report
*where* a run died, not just why.
"""

from __future__ import annotations

from pathlib import Path


class PipelineError(Exception):
    """Base class for all crawlkb failures."""

    stage: str = "pipeline"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class SubmissionError(PipelineError):
    """The crawl job could not be started (no parseable job id)."""

    stage = "submission"


class CrawlFailedError(PipelineError):
    """The crawl service reported the job as failed."""

    stage = "polling"


class CrawlCancelledError(PipelineError):
    """Job monitoring was abandoned by the caller."""

    stage = "polling"


class FetchError(PipelineError):
    """No response, an HTTP error, or a garbled payload from the crawl service."""

    stage = "request"


class WriteError(PipelineError):
    """A document could not be written to the output directory."""

    stage = "write"

    def __init__(
        self,
        message: str,
        *,
        path: Path | str | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.path = path
