"""Progress reporting for pipeline runs.

Pipeline components never print directly; they hand events to a
:class:`Reporter`.  The base class swallows everything, which is what library
callers and most tests want.  :class:`ConsoleReporter` prints tagged lines in
the style of the rest of the project's console output.
"""

from __future__ import annotations

import typer

from crawlkb.crawl.models import CrawlJob


class Reporter:
    """No-op event sink.  Subclass and override what you need."""

    def info(self, message: str) -> None:
        pass

    def success(self, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass

    def progress(self, job: CrawlJob) -> None:
        """Called once per status poll."""


class ConsoleReporter(Reporter):
    """Print events to the terminal as ``[TAG] message`` lines."""

    def _emit(self, tag: str, colour: str, message: str, err: bool = False) -> None:
        typer.secho(f"[{tag}]", fg=colour, nl=False, err=err)
        typer.echo(f" {message}", err=err)

    def info(self, message: str) -> None:
        self._emit("INFO", typer.colors.BLUE, message)

    def success(self, message: str) -> None:
        self._emit("SUCCESS", typer.colors.GREEN, message)

    def warning(self, message: str) -> None:
        self._emit("WARNING", typer.colors.YELLOW, message)

    def error(self, message: str) -> None:
        self._emit("ERROR", typer.colors.RED, message, err=True)

    def progress(self, job: CrawlJob) -> None:
        self._emit(
            "POLL",
            typer.colors.BLUE,
            f"Status: {job.status.value} | Progress: {job.completed_count}/{job.total_count} pages",
        )

    def banner(self, title: str, colour: str = typer.colors.BLUE) -> None:
        rule = "=" * 40
        typer.secho(rule, fg=colour)
        typer.secho(title, fg=colour)
        typer.secho(rule, fg=colour)
