"""Shared fixtures for the crawlkb test suite."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from crawlkb.config import RunConfig
from crawlkb.reporter import Reporter

API_URL = "http://crawl.test"
API_KEY = "test-key"
FIXED_NOW = datetime(2024, 5, 17, 12, 30, 0, tzinfo=timezone.utc)


class RecordingReporter(Reporter):
    """Collects every event as ``(kind, payload)`` for assertions."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def info(self, message: str) -> None:
        self.events.append(("info", message))

    def success(self, message: str) -> None:
        self.events.append(("success", message))

    def warning(self, message: str) -> None:
        self.events.append(("warning", message))

    def error(self, message: str) -> None:
        self.events.append(("error", message))

    def progress(self, job) -> None:
        self.events.append(("progress", (job.status.value, job.completed_count, job.total_count)))

    def of(self, kind: str) -> list:
        return [payload for k, payload in self.events if k == kind]


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def run_config(tmp_path) -> RunConfig:
    return RunConfig(
        domain_url="https://docs.n8n.io",
        output_dir=tmp_path / "out",
        api_url=API_URL,
        api_key=API_KEY,
        poll_interval=0.0,
    )


@pytest.fixture
def fixed_now():
    return lambda: FIXED_NOW
