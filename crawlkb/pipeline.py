"""High-level runner for one documentation crawl.

``run_scrape`` is the single entry point.  It wires the crawl client, job
monitor, page walker and corpus builder together::

    submit → poll until completed → walk result pages → classify + assemble
           → write documents → write aggregates

Fatal errors propagate as :class:`~crawlkb.errors.PipelineError` subclasses.
Documents already written stay on disk; aggregates only exist once the run
reaches the end.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional

from crawlkb.config import RunConfig
from crawlkb.crawl.client import CrawlClient
from crawlkb.crawl.monitor import JobMonitor
from crawlkb.crawl.pagination import PageWalker, WalkStats
from crawlkb.kb.corpus import CorpusBuilder, CorpusStats
from crawlkb.kb.document import CATEGORIZED_DIR, PROCESSED_DIR, RAW_DIR
from crawlkb.kb.sink import FilesystemSink
from crawlkb.reporter import Reporter


@dataclass
class RunReport:
    job_id: str
    walk: WalkStats
    corpus: CorpusStats
    categories: Dict[str, int] = field(default_factory=dict)
    elapsed: float = 0.0

    @property
    def pages_processed(self) -> int:
        return self.corpus.written

    @property
    def pages_skipped(self) -> int:
        return self.walk.skipped + self.corpus.write_failures


def run_scrape(
    config: RunConfig,
    reporter: Optional[Reporter] = None,
    client: Optional[CrawlClient] = None,
    cancel: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float, threading.Event], bool]] = None,
    now: Optional[Callable[[], datetime]] = None,
) -> RunReport:
    """Crawl ``config.domain_url`` and build the corpus under ``config.output_dir``.

    Args:
        config: Run configuration.
        reporter: Progress sink; silent by default.
        client: Crawl service adapter.  One is created (and closed) from
            *config* when omitted.
        cancel: Set it to abandon job monitoring.
        sleep: Poll-interval wait, see :class:`~crawlkb.crawl.monitor.JobMonitor`.
        now: Clock used for ``scraped_date`` and the index timestamp.

    Returns:
        A :class:`RunReport` with page and category counts.
    """
    reporter = reporter or Reporter()
    started = time.monotonic()
    owns_client = client is None
    client = client or CrawlClient.from_config(config)

    sink = FilesystemSink(config.output_dir)
    try:
        for directory in (RAW_DIR, PROCESSED_DIR, CATEGORIZED_DIR):
            sink.makedirs(directory)

        # ------------------------------------------------------------------
        # 1 — Crawl
        # ------------------------------------------------------------------
        reporter.info("Starting crawl job...")
        monitor = JobMonitor(client, reporter, sleep=sleep)
        job_id = monitor.submit(
            config.domain_url,
            config.max_pages,
            only_main_content=config.only_main_content,
            wait_for=config.wait_for,
        )
        reporter.success(f"Crawl job started with ID: {job_id}")

        monitor.await_completion(job_id, config.poll_interval, cancel=cancel)
        reporter.success("Crawl completed!")

        # ------------------------------------------------------------------
        # 2 — Download & process
        # ------------------------------------------------------------------
        reporter.info("Fetching and processing results...")
        walker = PageWalker(
            client,
            reporter,
            stride=config.page_stride,
            max_failed_batches=config.max_failed_batches,
        )
        builder = CorpusBuilder(
            config,
            reporter,
            sink=sink,
            now=now,
        )
        builder.consume(walker.pages(job_id))

        # ------------------------------------------------------------------
        # 3 — Aggregates
        # ------------------------------------------------------------------
        aggregates = builder.aggregate()
    finally:
        if owns_client:
            client.close()

    return RunReport(
        job_id=job_id,
        walk=walker.stats,
        corpus=builder.stats,
        categories=aggregates.counts(),
        elapsed=time.monotonic() - started,
    )
