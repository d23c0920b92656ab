"""crawlkb CLI — entry-point for all pipeline operations.

Usage:
    python cli/main.py --help

Commands:
    scrape    crawl a documentation site and build the knowledge base
    rebuild   regenerate INDEX / combined / summary files from disk
    classify  show how a single URL would be categorized and tagged
    split     split a markdown file into one file per H2 section
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from crawlkb.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import threading
from typing import Optional

import typer

from crawlkb.config import RunConfig, settings
from crawlkb.errors import PipelineError
from crawlkb.kb.classifier import classify
from crawlkb.kb.corpus import write_aggregates
from crawlkb.kb.document import CATEGORIZED_DIR
from crawlkb.kb.naming import sanitize_filename
from crawlkb.kb.sink import FilesystemSink
from crawlkb.kb.splitter import write_sections
from crawlkb.pipeline import RunReport, run_scrape
from crawlkb.reporter import ConsoleReporter

app = typer.Typer(
    name="crawlkb",
    help="Crawl documentation sites into an AI-ready knowledge base.",
    no_args_is_help=True,
)


def _fail(reporter: ConsoleReporter, exc: PipelineError) -> None:
    reporter.error(f"{exc.stage} failed: {exc}")
    raise typer.Exit(code=1)


def _print_report(reporter: ConsoleReporter, config: RunConfig, report: RunReport) -> None:
    typer.echo("")
    reporter.banner("Processing Complete!", colour=typer.colors.GREEN)
    reporter.success(f"Total pages scraped: {report.pages_processed}")
    if report.walk.skipped:
        reporter.warning(f"Items skipped: {report.walk.skipped}")
    if report.walk.failed_batches:
        reporter.warning(f"Result batches skipped: {report.walk.failed_batches}")
    if report.corpus.write_failures:
        reporter.warning(f"Failed writes: {report.corpus.write_failures}")
    reporter.success(f"Raw files: {config.raw_dir}")
    reporter.success(f"Processed files: {config.processed_dir}")
    reporter.success(f"Categorized files: {config.categorized_dir}")
    reporter.success(f"Master index: {config.output_dir / 'INDEX.md'}")
    reporter.success(f"Combined file: {config.output_dir / 'ALL_DOCS_COMBINED.md'}")
    typer.echo("")
    reporter.info("Directory structure:")
    for category, count in sorted(report.categories.items()):
        if count:
            typer.echo(f"  📁 {category}: {count} documents")


# ---------------------------------------------------------------------------
# scrape
# ---------------------------------------------------------------------------
@app.command("scrape")
def scrape(
    domain_url: str = typer.Argument("https://docs.n8n.io", help="Documentation site to crawl."),
    max_pages: Optional[int] = typer.Argument(None, help="Page limit for the crawl job."),
    output_dir: Optional[Path] = typer.Argument(None, help="Base output directory."),
    api_url: Optional[str] = typer.Option(None, "--api-url", help="Crawl service base URL."),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="Crawl service API key."),
    poll_interval: Optional[float] = typer.Option(None, "--poll-interval", help="Seconds between status checks."),
    workers: Optional[int] = typer.Option(None, "--workers", help="Parallel document writers."),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries for transient request failures."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Give up monitoring the job after N seconds."),
) -> None:
    """Crawl a documentation site and organize it into a knowledge base."""
    config = RunConfig.from_settings(
        domain_url,
        max_pages=max_pages,
        output_dir=output_dir,
        api_url=api_url,
        api_key=api_key,
        poll_interval=poll_interval,
        workers=workers,
        request_retries=retries,
    )
    reporter = ConsoleReporter()
    reporter.banner("AI-Ready Documentation Scraper")
    reporter.info(f"Domain: {config.domain_url}")
    reporter.info(f"Max Pages: {config.max_pages}")
    reporter.info(f"Output Directory: {config.output_dir}")
    typer.echo("")

    cancel = threading.Event()
    timer: Optional[threading.Timer] = None
    if timeout:
        timer = threading.Timer(timeout, cancel.set)
        timer.daemon = True
        timer.start()

    try:
        report = run_scrape(config, reporter, cancel=cancel)
    except PipelineError as exc:
        _fail(reporter, exc)
    finally:
        if timer is not None:
            timer.cancel()

    _print_report(reporter, config, report)


# ---------------------------------------------------------------------------
# rebuild
# ---------------------------------------------------------------------------
@app.command("rebuild")
def rebuild(
    output_dir: Path = typer.Argument(settings.output_dir, help="Existing base output directory."),
    source: str = typer.Option(..., "--source", help="Root URL the corpus was crawled from."),
) -> None:
    """Regenerate combined files, summaries and INDEX.md from existing documents."""
    config = RunConfig.from_settings(source, output_dir=output_dir)
    reporter = ConsoleReporter()
    sink = FilesystemSink(config.output_dir)
    if not sink.path(CATEGORIZED_DIR).is_dir():
        reporter.error(f"No categorized documents under {config.output_dir}")
        raise typer.Exit(code=1)

    try:
        report = write_aggregates(
            sink,
            domain=config.domain,
            source_url=config.domain_url,
            reporter=reporter,
        )
    except PipelineError as exc:
        _fail(reporter, exc)
    reporter.success(
        f"Rebuilt aggregates for {len(report.categories)} categories "
        f"({report.total_documents} documents)"
    )


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------
@app.command("classify")
def classify_cmd(
    url: str = typer.Argument(..., help="Page URL."),
    file: Optional[Path] = typer.Option(None, "--file", help="Markdown body of the page."),
) -> None:
    """Show the category, title, tags and filename a page would get."""
    body = file.read_text(encoding="utf-8") if file else ""
    result = classify(url, body)
    typer.echo(f"category : {result.category.value}")
    typer.echo(f"title    : {result.title}")
    typer.echo(f"tags     : {result.tags}")
    typer.echo(f"filename : {sanitize_filename(url)}.md")


# ---------------------------------------------------------------------------
# split
# ---------------------------------------------------------------------------
@app.command("split")
def split(
    input_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Markdown file to split."),
    output_dir: Path = typer.Argument(..., help="Directory for the section files."),
) -> None:
    """Split a markdown file into one file per H2 section."""
    reporter = ConsoleReporter()
    reporter.info(f"Splitting {input_file} by H2 headers...")
    try:
        written = write_sections(input_file, output_dir)
    except PipelineError as exc:
        _fail(reporter, exc)
    for path in written:
        typer.echo(f"  {path.name}")
    reporter.success(f"Wrote {len(written)} section file(s) to {output_dir}")


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
