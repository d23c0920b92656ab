"""Corpus building: per-page document writes and the aggregate projections.

A :class:`CorpusBuilder` moves through three states::

    collecting ──► aggregating ──► done

While *collecting*, every page is classified, assembled and written three
times (raw body, processed document, categorized document).  Writes are keyed
by the document's derived paths, so re-running over the same URLs replaces
earlier output instead of adding to it.

*Aggregating* rebuilds every derived artifact from what is on disk:

* ``categorized/<category>/_COMBINED_<category>.md``
* ``ALL_DOCS_COMBINED.md``
* ``INDEX.md``
* ``categorized/<category>/_SUMMARY.md``

All listings and concatenations use lexicographic filename order.

Pages can be processed by a bounded thread pool (``workers > 1``).  Two pages
with the same source URL map to the same paths; their writes are serialized
and the page that came *later* in the stream always wins, whatever order the
workers finish in.
"""

from __future__ import annotations

import itertools
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import Callable, Dict, Iterable, List, Optional

from crawlkb.config import RunConfig
from crawlkb.crawl.models import RawPage
from crawlkb.errors import WriteError
from crawlkb.kb.classifier import classify, find_heading
from crawlkb.kb.document import (
    CATEGORIZED_DIR,
    PROCESSED_DIR,
    Document,
    assemble,
)
from crawlkb.kb.sink import FilesystemSink
from crawlkb.reporter import Reporter

COMBINED_PREFIX = "_COMBINED_"
SUMMARY_NAME = "_SUMMARY.md"
INDEX_NAME = "INDEX.md"
ALL_COMBINED_NAME = "ALL_DOCS_COMBINED.md"


def is_aggregate(filename: str) -> bool:
    """``True`` for files the aggregation step produces itself."""
    return filename.startswith(COMBINED_PREFIX) or filename == SUMMARY_NAME


class CorpusState(str, Enum):
    COLLECTING = "collecting"
    AGGREGATING = "aggregating"
    DONE = "done"


@dataclass
class CorpusStats:
    written: int = 0
    duplicates: int = 0
    superseded: int = 0
    write_failures: int = 0


@dataclass
class AggregateReport:
    """Per-category document names as found on disk during aggregation."""

    categories: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def total_documents(self) -> int:
        return sum(len(names) for names in self.categories.values())

    def counts(self) -> Dict[str, int]:
        return {name: len(docs) for name, docs in self.categories.items()}


# ---------------------------------------------------------------------------
# Ordered last-write-wins per document
# ---------------------------------------------------------------------------

class _WriteLedger:
    """Serializes writes per document key and keeps the newest one."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._last_seq: Dict[str, int] = {}

    def write_if_newest(self, key: str, seq: int, write: Callable[[], None]) -> Optional[bool]:
        """Run *write* unless a later page already wrote *key*.

        Returns ``None`` when skipped, ``False`` for a first write and ``True``
        when an earlier page's output was overwritten.
        """
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            last = self._last_seq.get(key)
            if last is not None and last > seq:
                return None
            write()
            self._last_seq[key] = seq
            return last is not None


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class CorpusBuilder:
    """Turn a stream of :class:`RawPage` objects into the on-disk corpus."""

    def __init__(
        self,
        config: RunConfig,
        reporter: Optional[Reporter] = None,
        sink: Optional[FilesystemSink] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config
        self._reporter = reporter or Reporter()
        self._sink = sink or FilesystemSink(config.output_dir)
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._domain = config.domain
        self._ledger = _WriteLedger()
        self._seq = itertools.count()
        self._stats_lock = threading.Lock()
        self._consecutive_failures = 0
        self.stats = CorpusStats()
        self.state = CorpusState.COLLECTING

    # ------------------------------------------------------------------
    # Collecting
    # ------------------------------------------------------------------
    def add(self, page: RawPage, seq: Optional[int] = None) -> Optional[Document]:
        """Classify, assemble and write one page.

        A failed write is reported and counted, and ``None`` is returned.

        Raises:
            WriteError: ``max_write_failures`` writes in a row have failed.
        """
        self._require(CorpusState.COLLECTING)
        if seq is None:
            seq = next(self._seq)

        classification = classify(page.source_url, page.markdown)
        document = assemble(
            page.source_url,
            page.markdown,
            classification,
            self._domain,
            self._now(),
        )

        try:
            outcome = self._ledger.write_if_newest(
                document.paths.key, seq, lambda: self._write(document)
            )
        except WriteError as exc:
            self._record_failure(exc)
            return None

        with self._stats_lock:
            self._consecutive_failures = 0
            if outcome is None:
                self.stats.superseded += 1
            else:
                self.stats.written += 1
                if outcome:
                    self.stats.duplicates += 1

        if outcome is None:
            return None
        self._reporter.success(
            f"Processed: {classification.title} → {classification.category.value}"
        )
        return document

    def consume(self, pages: Iterable[RawPage]) -> CorpusStats:
        """Process every page in *pages*, in parallel when ``workers > 1``."""
        workers = self._config.workers
        if workers <= 1:
            for page in pages:
                self.add(page, next(self._seq))
            return self.stats

        # Bound the number of pages held in memory at once.
        max_in_flight = workers * 2
        with ThreadPoolExecutor(max_workers=workers) as pool:
            in_flight = set()
            for page in pages:
                in_flight.add(pool.submit(self.add, page, next(self._seq)))
                if len(in_flight) >= max_in_flight:
                    done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        future.result()
            for future in in_flight:
                future.result()
        return self.stats

    # ------------------------------------------------------------------
    # Aggregating
    # ------------------------------------------------------------------
    def aggregate(self) -> AggregateReport:
        """Write every aggregate artifact and finish the run."""
        self._require(CorpusState.COLLECTING)
        self.state = CorpusState.AGGREGATING
        self._reporter.info("Creating organizational files...")
        report = write_aggregates(
            self._sink,
            domain=self._domain,
            source_url=self._config.domain_url,
            reporter=self._reporter,
            generated_at=self._now(),
        )
        self.state = CorpusState.DONE
        return report

    def build(self, pages: Iterable[RawPage]) -> AggregateReport:
        self.consume(pages)
        return self.aggregate()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _require(self, state: CorpusState) -> None:
        if self.state is not state:
            raise RuntimeError(
                f"corpus builder is {self.state.value}, expected {state.value}"
            )

    def _write(self, document: Document) -> None:
        rendered = document.render()
        self._sink.write_text(document.paths.raw, document.body)
        self._sink.write_text(document.paths.processed, rendered)
        self._sink.write_text(document.paths.categorized, rendered)

    def _record_failure(self, exc: WriteError) -> None:
        with self._stats_lock:
            self.stats.write_failures += 1
            self._consecutive_failures += 1
            consecutive = self._consecutive_failures
        self._reporter.error(str(exc))
        if consecutive >= self._config.max_write_failures:
            raise WriteError(
                f"{consecutive} document writes failed in a row; giving up on {self._sink.base_dir}",
                path=exc.path,
            ) from exc


# ---------------------------------------------------------------------------
# Aggregate projections
# ---------------------------------------------------------------------------

def _read(sink: FilesystemSink, rel_path: PurePosixPath) -> str:
    try:
        return sink.read_text(rel_path)
    except (OSError, UnicodeError) as exc:
        raise WriteError(f"Could not read {rel_path}: {exc}", path=rel_path, stage="aggregate") from exc


def _concatenate(sink: FilesystemSink, paths: Iterable[PurePosixPath]) -> str:
    parts = []
    for path in paths:
        text = _read(sink, path)
        if text and not text.endswith("\n"):
            text += "\n"
        parts.append(text)
    return "".join(parts)


def _label(category: str) -> str:
    return category.replace("_", " ")


def render_index(
    domain: str,
    source_url: str,
    categories: Dict[str, List[str]],
    generated_at: datetime,
) -> str:
    total = sum(len(names) for names in categories.values())
    lines = [
        f"# {domain} Documentation Index",
        "",
        f"**Generated:** {generated_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
        f"**Source:** {source_url}",
        f"**Total Documents:** {total}",
        "",
        "## Documentation Categories",
        "",
    ]
    for category in sorted(categories):
        names = categories[category]
        lines.append(f"### {_label(category)} ({len(names)} documents)")
        lines.append("")
        for name in sorted(names):
            stem = PurePosixPath(name).stem
            lines.append(f"- [{stem}]({CATEGORIZED_DIR}/{category}/{name})")
        lines.append("")
    return "\n".join(lines) + "\n"


def render_summary(category: str, entries: List[tuple[str, str]]) -> str:
    label = _label(category)
    lines = [
        f"# {label} Summary",
        "",
        f"This directory contains documentation related to {label}.",
        "",
        "## Documents in this category:",
        "",
    ]
    lines.extend(f"- **{stem}**: {title}" for stem, title in sorted(entries))
    return "\n".join(lines) + "\n"


def write_aggregates(
    sink: FilesystemSink,
    domain: str,
    source_url: str,
    reporter: Optional[Reporter] = None,
    generated_at: Optional[datetime] = None,
) -> AggregateReport:
    """Rebuild every aggregate artifact from the documents under *sink*.

    Safe to run any number of times: aggregates are excluded from their own
    inputs and each run overwrites the previous output.
    """
    reporter = reporter or Reporter()
    generated_at = generated_at or datetime.now(timezone.utc)

    report = AggregateReport()
    for category in sink.list_dirs(CATEGORIZED_DIR):
        members = [
            name
            for name in sink.list_markdown(PurePosixPath(CATEGORIZED_DIR, category))
            if not is_aggregate(name)
        ]
        report.categories[category] = members

    # Per-category combined files
    for category, members in report.categories.items():
        category_dir = PurePosixPath(CATEGORIZED_DIR, category)
        combined = _concatenate(sink, (category_dir / name for name in members))
        sink.write_text(category_dir / f"{COMBINED_PREFIX}{category}.md", combined)
        reporter.success(f"Combined {category} documents")

    # Master combined file
    processed = [PurePosixPath(PROCESSED_DIR, name) for name in sink.list_markdown(PROCESSED_DIR)]
    sink.write_text(ALL_COMBINED_NAME, _concatenate(sink, processed))

    # Index
    reporter.info(f"Creating master {INDEX_NAME}...")
    sink.write_text(
        INDEX_NAME,
        render_index(domain, source_url, report.categories, generated_at),
    )
    reporter.success(f"{INDEX_NAME} created at {sink.path(INDEX_NAME)}")

    # Summaries
    for category, members in report.categories.items():
        category_dir = PurePosixPath(CATEGORIZED_DIR, category)
        entries = []
        for name in members:
            stem = PurePosixPath(name).stem
            title = find_heading(_read(sink, category_dir / name)) or stem
            entries.append((stem, title))
        sink.write_text(category_dir / SUMMARY_NAME, render_summary(category, entries))
        reporter.success(f"Created summary for {category}")

    return report
