"""Tests for the Crawl Service client, job monitor and page walker.

Mocking strategy:
- ``respx`` patches ``httpx`` at the transport layer so no real network calls
  are made.  ``GET /v2/crawl/{id}`` serves both status checks and result
  batches, so routes dispatch on the ``skip`` query parameter.
- The monitor's sleep is replaced with a recorder so polling never waits.
"""

from __future__ import annotations

import json
import threading

import httpx
import pytest
import respx

from crawlkb.crawl.client import CrawlClient
from crawlkb.crawl.models import JobStatus, RawPage
from crawlkb.crawl.monitor import JobMonitor
from crawlkb.crawl.pagination import PageWalker
from crawlkb.errors import (
    CrawlCancelledError,
    CrawlFailedError,
    FetchError,
    SubmissionError,
)

from conftest import API_KEY, API_URL

JOB = "job-123"
JOB_URL = f"{API_URL}/v2/crawl/{JOB}"


def _item(url: str, markdown: str | None = "# Page\nbody", key: str = "sourceURL") -> dict:
    return {"metadata": {key: url}, "markdown": markdown}


def _batches(batches: dict[int, dict]):
    """respx side effect serving ``batches[skip]`` and recording requested offsets."""
    seen: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        skip = int(request.url.params["skip"])
        seen.append(skip)
        return httpx.Response(200, json=batches[skip])

    handler.seen = seen  # type: ignore[attr-defined]
    return handler


@pytest.fixture
def client():
    with CrawlClient(API_URL, API_KEY, timeout=5) as c:
        yield c


class _Sleeper:
    def __init__(self, cancel_after: int | None = None) -> None:
        self.calls: list[float] = []
        self.cancel_after = cancel_after

    def __call__(self, seconds: float, event: threading.Event) -> bool:
        self.calls.append(seconds)
        if self.cancel_after is not None and len(self.calls) >= self.cancel_after:
            event.set()
            return True
        return False


# ---------------------------------------------------------------------------
# CrawlClient
# ---------------------------------------------------------------------------

class TestCrawlClient:
    def test_start_crawl_body_and_auth(self, client: CrawlClient) -> None:
        with respx.mock:
            route = respx.post(f"{API_URL}/v2/crawl").mock(
                return_value=httpx.Response(200, json={"id": JOB})
            )
            assert client.start_crawl("https://docs.n8n.io", 50) == {"id": JOB}

        request = route.calls.last.request
        assert request.headers["Authorization"] == f"Bearer {API_KEY}"
        assert json.loads(request.content) == {
            "url": "https://docs.n8n.io",
            "limit": 50,
            "scrapeOptions": {"formats": ["markdown"], "onlyMainContent": True, "waitFor": 1000},
        }

    def test_http_error_becomes_fetch_error(self, client: CrawlClient) -> None:
        with respx.mock:
            respx.get(JOB_URL).mock(return_value=httpx.Response(404, text="missing"))
            with pytest.raises(FetchError):
                client.get_status(JOB)

    def test_invalid_json_becomes_fetch_error(self, client: CrawlClient) -> None:
        with respx.mock:
            respx.get(JOB_URL).mock(return_value=httpx.Response(200, text="<html>"))
            with pytest.raises(FetchError):
                client.get_status(JOB)

    def test_no_retry_by_default(self, client: CrawlClient) -> None:
        with respx.mock:
            route = respx.get(JOB_URL).mock(side_effect=httpx.ConnectError("refused"))
            with pytest.raises(FetchError):
                client.get_status(JOB)
        assert route.call_count == 1

    def test_retries_transient_failures_with_backoff(self) -> None:
        delays: list[float] = []
        with CrawlClient(API_URL, API_KEY, retries=2, retry_base_delay=0.5, sleep=delays.append) as c:
            with respx.mock:
                route = respx.get(JOB_URL).mock(
                    side_effect=[
                        httpx.ConnectError("refused"),
                        httpx.Response(503),
                        httpx.Response(200, json={"status": "completed"}),
                    ]
                )
                assert c.get_status(JOB) == {"status": "completed"}
        assert route.call_count == 3
        assert delays == [0.5, 1.0]

    def test_client_errors_are_not_retried(self) -> None:
        with CrawlClient(API_URL, API_KEY, retries=3, sleep=lambda s: None) as c:
            with respx.mock:
                route = respx.get(JOB_URL).mock(return_value=httpx.Response(401))
                with pytest.raises(FetchError):
                    c.get_status(JOB)
        assert route.call_count == 1

    def test_exhausted_retries_raise_fetch_error(self) -> None:
        delays: list[float] = []
        with CrawlClient(API_URL, API_KEY, retries=2, retry_base_delay=1.0, sleep=delays.append) as c:
            with respx.mock:
                route = respx.get(JOB_URL).mock(return_value=httpx.Response(502))
                with pytest.raises(FetchError) as excinfo:
                    c.get_status(JOB)
        assert route.call_count == 3
        assert delays == [1.0, 2.0]
        assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)


# ---------------------------------------------------------------------------
# JobMonitor
# ---------------------------------------------------------------------------

class TestSubmit:
    def test_returns_job_id(self, client, reporter) -> None:
        with respx.mock:
            respx.post(f"{API_URL}/v2/crawl").mock(
                return_value=httpx.Response(200, json={"success": True, "id": JOB})
            )
            assert JobMonitor(client, reporter).submit("https://docs.n8n.io", 10) == JOB

    @pytest.mark.parametrize("payload", [{}, {"id": ""}, {"error": "bad key"}])
    def test_missing_id(self, client, payload) -> None:
        with respx.mock:
            respx.post(f"{API_URL}/v2/crawl").mock(return_value=httpx.Response(200, json=payload))
            with pytest.raises(SubmissionError) as excinfo:
                JobMonitor(client).submit("https://docs.n8n.io", 10)
        assert excinfo.value.stage == "submission"

    def test_unreachable_service(self, client) -> None:
        with respx.mock:
            respx.post(f"{API_URL}/v2/crawl").mock(side_effect=httpx.ConnectError("down"))
            with pytest.raises(SubmissionError):
                JobMonitor(client).submit("https://docs.n8n.io", 10)


class TestAwaitCompletion:
    def test_polls_until_completed(self, client, reporter) -> None:
        sleeper = _Sleeper()
        with respx.mock:
            respx.get(JOB_URL).mock(
                side_effect=[
                    httpx.Response(200, json={"status": "pending", "completed": 0, "total": 0}),
                    httpx.Response(200, json={"status": "scraping", "completed": 3, "total": 10}),
                    httpx.Response(200, json={"status": "completed", "completed": 10, "total": 10}),
                ]
            )
            status = JobMonitor(client, reporter, sleep=sleeper).await_completion(JOB, 5)

        assert status is JobStatus.COMPLETED
        assert sleeper.calls == [5, 5]
        assert reporter.of("progress") == [
            ("pending", 0, 0),
            ("running", 3, 10),
            ("completed", 10, 10),
        ]

    def test_failed_job_raises(self, client, reporter) -> None:
        with respx.mock:
            respx.get(JOB_URL).mock(
                side_effect=[
                    httpx.Response(200, json={"status": "running", "completed": 1, "total": 4}),
                    httpx.Response(200, json={"status": "failed", "completed": 1, "total": 4}),
                ]
            )
            with pytest.raises(CrawlFailedError):
                JobMonitor(client, reporter, sleep=_Sleeper()).await_completion(JOB, 1)
        assert len(reporter.of("progress")) == 2

    def test_garbled_status_is_fatal(self, client) -> None:
        with respx.mock:
            respx.get(JOB_URL).mock(return_value=httpx.Response(200, json={"completed": 1}))
            with pytest.raises(FetchError) as excinfo:
                JobMonitor(client, sleep=_Sleeper()).await_completion(JOB, 1)
        assert excinfo.value.stage == "polling"

    def test_cancel_during_sleep(self, client) -> None:
        with respx.mock:
            route = respx.get(JOB_URL).mock(
                return_value=httpx.Response(200, json={"status": "running"})
            )
            with pytest.raises(CrawlCancelledError):
                JobMonitor(client, sleep=_Sleeper(cancel_after=2)).await_completion(JOB, 1)
        assert route.call_count == 2

    def test_cancel_before_first_poll(self, client) -> None:
        cancel = threading.Event()
        cancel.set()
        with respx.mock(assert_all_called=False) as router:
            route = router.get(JOB_URL).mock(return_value=httpx.Response(200, json={"status": "running"}))
            with pytest.raises(CrawlCancelledError):
                JobMonitor(client).await_completion(JOB, 1, cancel=cancel)
        assert route.call_count == 0

    def test_default_sleep_waits_on_cancel_event(self, client) -> None:
        cancel = threading.Event()
        timer = threading.Timer(0.05, cancel.set)
        with respx.mock:
            respx.get(JOB_URL).mock(return_value=httpx.Response(200, json={"status": "running"}))
            timer.start()
            with pytest.raises(CrawlCancelledError):
                JobMonitor(client).await_completion(JOB, 30, cancel=cancel)
        timer.cancel()

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("pending", JobStatus.PENDING),
            ("RUNNING", JobStatus.RUNNING),
            ("scraping", JobStatus.RUNNING),
            ("completed", JobStatus.COMPLETED),
            ("failed", JobStatus.FAILED),
            ("cancelled", JobStatus.FAILED),
        ],
    )
    def test_status_parse(self, raw, expected) -> None:
        assert JobStatus.parse(raw) is expected


# ---------------------------------------------------------------------------
# PageWalker
# ---------------------------------------------------------------------------

class TestPageWalker:
    def test_follows_next_until_null(self, client, reporter) -> None:
        handler = _batches(
            {
                0: {"data": [_item("https://x.io/a"), _item("https://x.io/b", key="url")], "next": f"{JOB_URL}?skip=10"},
                10: {"data": [_item("https://x.io/c")], "next": None},
            }
        )
        walker = PageWalker(client, reporter)
        with respx.mock:
            respx.get(JOB_URL).mock(side_effect=handler)
            pages = list(walker.pages(JOB))

        assert [p.source_url for p in pages] == ["https://x.io/a", "https://x.io/b", "https://x.io/c"]
        assert all(isinstance(p, RawPage) for p in pages)
        assert handler.seen == [0, 10]
        assert walker.stats.batches == 2
        assert walker.stats.yielded == 3

    def test_terminates_with_no_items(self, client) -> None:
        handler = _batches({0: {"data": [], "next": None}})
        walker = PageWalker(client)
        with respx.mock:
            respx.get(JOB_URL).mock(side_effect=handler)
            assert list(walker.pages(JOB)) == []
        assert walker.stats.batches == 1

    def test_missing_data_and_next(self, client) -> None:
        handler = _batches({0: {"status": "completed"}})
        with respx.mock:
            respx.get(JOB_URL).mock(side_effect=handler)
            assert list(PageWalker(client).pages(JOB)) == []

    def test_is_lazy(self, client) -> None:
        handler = _batches(
            {
                0: {"data": [_item("https://x.io/a")], "next": f"{JOB_URL}?skip=10"},
                10: {"data": [_item("https://x.io/b")], "next": None},
            }
        )
        with respx.mock:
            respx.get(JOB_URL).mock(side_effect=handler)
            pages = PageWalker(client).pages(JOB)
            assert handler.seen == []
            next(pages)
            assert handler.seen == [0]
            list(pages)
            assert handler.seen == [0, 10]

    def test_skips_malformed_items(self, client, reporter) -> None:
        handler = _batches(
            {
                0: {
                    "data": [
                        "not an object",
                        {"markdown": "# no metadata"},
                        {"metadata": {}, "markdown": "# no url"},
                        _item("https://x.io/empty", markdown=""),
                        _item("https://x.io/null", markdown=None),
                        _item("https://x.io/good"),
                    ],
                    "next": None,
                }
            }
        )
        walker = PageWalker(client, reporter)
        with respx.mock:
            respx.get(JOB_URL).mock(side_effect=handler)
            pages = list(walker.pages(JOB))

        assert [p.source_url for p in pages] == ["https://x.io/good"]
        assert walker.stats.items == 6
        assert walker.stats.skipped == 5
        assert len(reporter.of("warning")) == 5

    def test_uses_stride_when_next_has_no_skip(self, client) -> None:
        handler = _batches(
            {
                0: {"data": [], "next": "opaque-cursor"},
                10: {"data": [], "next": None},
            }
        )
        with respx.mock:
            respx.get(JOB_URL).mock(side_effect=handler)
            list(PageWalker(client, stride=10).pages(JOB))
        assert handler.seen == [0, 10]

    def test_honours_server_cursor(self, client, reporter) -> None:
        handler = _batches(
            {
                0: {"data": [_item("https://x.io/a")], "next": f"{JOB_URL}?skip=25"},
                25: {"data": [], "next": None},
            }
        )
        with respx.mock:
            respx.get(JOB_URL).mock(side_effect=handler)
            list(PageWalker(client, reporter, stride=10).pages(JOB))
        assert handler.seen == [0, 25]
        assert any("differs from stride" in w for w in reporter.of("warning"))

    def test_ignores_non_advancing_cursor(self, client) -> None:
        handler = _batches(
            {
                0: {"data": [], "next": f"{JOB_URL}?skip=0"},
                10: {"data": [], "next": None},
            }
        )
        with respx.mock:
            respx.get(JOB_URL).mock(side_effect=handler)
            list(PageWalker(client).pages(JOB))
        assert handler.seen == [0, 10]

    def test_failed_batch_is_skipped(self, client, reporter) -> None:
        responses = {
            0: httpx.Response(200, json={"data": [_item("https://x.io/a")], "next": f"{JOB_URL}?skip=10"}),
            10: httpx.Response(500),
            20: httpx.Response(200, json={"data": [_item("https://x.io/c")], "next": None}),
        }
        walker = PageWalker(client, reporter)
        with respx.mock:
            respx.get(JOB_URL).mock(
                side_effect=lambda request: responses[int(request.url.params["skip"])]
            )
            pages = list(walker.pages(JOB))

        assert [p.source_url for p in pages] == ["https://x.io/a", "https://x.io/c"]
        assert walker.stats.failed_batches == 1

    def test_malformed_batch_is_skipped(self, client) -> None:
        handler = _batches(
            {
                0: {"data": "nope", "next": None},
                10: {"data": [_item("https://x.io/a")], "next": None},
            }
        )
        walker = PageWalker(client)
        with respx.mock:
            respx.get(JOB_URL).mock(side_effect=handler)
            pages = list(walker.pages(JOB))
        assert [p.source_url for p in pages] == ["https://x.io/a"]
        assert walker.stats.failed_batches == 1

    def test_consecutive_failures_abort(self, client) -> None:
        walker = PageWalker(client, max_failed_batches=3)
        with respx.mock:
            route = respx.get(JOB_URL).mock(side_effect=httpx.ConnectError("down"))
            with pytest.raises(FetchError) as excinfo:
                list(walker.pages(JOB))
        assert excinfo.value.stage == "pagination"
        assert route.call_count == 3
