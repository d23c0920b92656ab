"""Lazy iteration over a finished crawl job's results.

The service returns results in batches.  Each batch carries an optional
``next`` reference; the walk ends when it is missing.  The offset sent as
``skip`` comes from the ``next`` reference when it carries a usable ``skip``
value, otherwise it advances by the configured stride.

Bad data is handled locally:

* an item that fails validation, or has no markdown, is skipped and counted;
* a batch that cannot be fetched is skipped and counted, and the walk moves
  on by one stride.  Only ``max_failed_batches`` consecutive failures abort
  the walk.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

import httpx
from pydantic import ValidationError

from crawlkb.crawl.client import CrawlClient
from crawlkb.crawl.models import RawPage
from crawlkb.crawl.schemas import ResultBatch, ResultItem
from crawlkb.errors import FetchError
from crawlkb.reporter import Reporter


@dataclass
class WalkStats:
    batches: int = 0
    items: int = 0
    yielded: int = 0
    skipped: int = 0
    failed_batches: int = 0


class PageWalker:
    """Yield :class:`RawPage` objects for one crawl job, batch by batch."""

    def __init__(
        self,
        client: CrawlClient,
        reporter: Optional[Reporter] = None,
        stride: int = 10,
        max_failed_batches: int = 3,
    ) -> None:
        self._client = client
        self._reporter = reporter or Reporter()
        self._stride = stride
        self._max_failed_batches = max_failed_batches
        self.stats = WalkStats()

    def pages(self, job_id: str) -> Iterator[RawPage]:
        """Iterate over every usable page of *job_id*.

        Raises:
            FetchError: ``max_failed_batches`` batch fetches failed in a row.
        """
        offset = 0
        consecutive_failures = 0

        while True:
            try:
                batch = self._fetch_batch(job_id, offset)
            except FetchError as exc:
                self.stats.failed_batches += 1
                consecutive_failures += 1
                self._reporter.warning(f"Skipping results batch at offset {offset}: {exc}")
                if consecutive_failures >= self._max_failed_batches:
                    raise FetchError(
                        f"{consecutive_failures} consecutive result batches failed "
                        f"(last offset {offset})",
                        stage="pagination",
                    ) from exc
                offset += self._stride
                continue

            consecutive_failures = 0
            self.stats.batches += 1

            for raw_item in batch.data or []:
                self.stats.items += 1
                page = self._parse_item(raw_item)
                if page is None:
                    self.stats.skipped += 1
                    continue
                self.stats.yielded += 1
                yield page

            if not batch.next:
                return
            offset = self._next_offset(batch.next, offset)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _fetch_batch(self, job_id: str, offset: int) -> ResultBatch:
        payload = self._client.get_results(job_id, skip=offset)
        try:
            return ResultBatch.model_validate(payload)
        except ValidationError as exc:
            raise FetchError(f"malformed results batch: {exc.error_count()} error(s)") from exc

    def _parse_item(self, raw_item: object) -> Optional[RawPage]:
        try:
            item = ResultItem.model_validate(raw_item)
        except ValidationError:
            self._reporter.warning("Skipping malformed result item")
            return None

        url = item.metadata.source_url
        if not url:
            self._reporter.warning("Skipping result item without a source URL")
            return None
        if not item.markdown:
            self._reporter.warning(f"Skipping {url}: no markdown content")
            return None
        return RawPage(source_url=url, markdown=item.markdown)

    def _next_offset(self, next_ref: str, offset: int) -> int:
        expected = offset + self._stride
        try:
            skip = httpx.URL(next_ref).params.get("skip")
        except (httpx.InvalidURL, TypeError, ValueError):
            skip = None

        if skip is None or not skip.isdigit():
            return expected

        server_offset = int(skip)
        if server_offset <= offset:
            self._reporter.warning(
                f"Ignoring non-advancing cursor skip={server_offset} at offset {offset}"
            )
            return expected
        if server_offset != expected:
            self._reporter.warning(
                f"Service page size differs from stride {self._stride}: "
                f"following cursor skip={server_offset}"
            )
        return server_offset
