"""Crawl job submission and status polling.

``JobMonitor.await_completion`` walks the job through its states::

    pending ──► running ──► completed
        │          │
        └──────────┴──────► failed

Each poll re-reads the status from the service, reports progress, and sleeps
for ``poll_interval`` until a terminal state is seen.  There is no built-in
deadline: callers that want one set the ``cancel`` event (the CLI does this
for ``--timeout``).
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from pydantic import ValidationError

from crawlkb.crawl.client import CrawlClient
from crawlkb.crawl.models import CrawlJob, JobStatus
from crawlkb.crawl.schemas import CrawlStatusResponse, CrawlSubmitResponse
from crawlkb.errors import (
    CrawlCancelledError,
    CrawlFailedError,
    FetchError,
    SubmissionError,
)
from crawlkb.reporter import Reporter


class JobMonitor:
    """Submit a crawl job and block until the service finishes it.

    Args:
        client: Crawl service adapter.
        reporter: Receives one progress event per poll.
        sleep: ``sleep(seconds, cancel_event) -> bool``.  Must return ``True``
            when the wait was interrupted by cancellation.  Defaults to waiting
            on the event itself, so cancelling wakes the monitor immediately.
    """

    def __init__(
        self,
        client: CrawlClient,
        reporter: Optional[Reporter] = None,
        sleep: Optional[Callable[[float, threading.Event], bool]] = None,
    ) -> None:
        self._client = client
        self._reporter = reporter or Reporter()
        self._sleep = sleep or (lambda seconds, event: event.wait(seconds))

    def submit(
        self,
        domain_url: str,
        page_limit: int,
        only_main_content: bool = True,
        wait_for: int = 1000,
    ) -> str:
        """Start a crawl of *domain_url* and return the job id.

        Raises:
            SubmissionError: The request failed or no job id came back.
        """
        try:
            payload = self._client.start_crawl(
                domain_url,
                page_limit,
                only_main_content=only_main_content,
                wait_for=wait_for,
            )
        except FetchError as exc:
            raise SubmissionError(f"Failed to start crawl job: {exc}") from exc

        try:
            job_id = CrawlSubmitResponse.model_validate(payload).id
        except ValidationError as exc:
            raise SubmissionError(
                f"Failed to start crawl job: no job id in response {payload!r:.200}"
            ) from exc
        return job_id

    def poll(self, job_id: str) -> CrawlJob:
        """Fetch one status snapshot.

        Raises:
            FetchError: No response or a payload without a status.
        """
        try:
            payload = self._client.get_status(job_id)
        except FetchError as exc:
            raise FetchError(f"Status check for job {job_id} failed: {exc}", stage="polling") from exc

        try:
            parsed = CrawlStatusResponse.model_validate(payload)
        except ValidationError as exc:
            raise FetchError(
                f"Status check for job {job_id} returned a garbled payload", stage="polling"
            ) from exc

        return CrawlJob(
            id=job_id,
            status=JobStatus.parse(parsed.status),
            completed_count=parsed.completed or 0,
            total_count=parsed.total or 0,
        )

    def await_completion(
        self,
        job_id: str,
        poll_interval: float,
        cancel: Optional[threading.Event] = None,
    ) -> JobStatus:
        """Poll *job_id* every *poll_interval* seconds until it terminates.

        Returns:
            ``JobStatus.COMPLETED``.

        Raises:
            CrawlFailedError: The service reported the job as failed.
            CrawlCancelledError: *cancel* was set before the job finished.
            FetchError: A status call failed.
        """
        cancel = cancel or threading.Event()

        while True:
            if cancel.is_set():
                raise CrawlCancelledError(f"Monitoring of job {job_id} was cancelled")

            job = self.poll(job_id)
            self._reporter.progress(job)

            if job.status is JobStatus.COMPLETED:
                return job.status
            if job.status is JobStatus.FAILED:
                raise CrawlFailedError(f"Crawl job {job_id} failed")

            if self._sleep(poll_interval, cancel):
                raise CrawlCancelledError(f"Monitoring of job {job_id} was cancelled")
