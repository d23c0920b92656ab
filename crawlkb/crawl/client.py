"""HTTP adapter for the Crawl Service (Firecrawl ``/v2/crawl`` API).

``CrawlClient`` only knows about transport: it sends requests, decodes JSON
and turns every transport, HTTP or decoding failure into a
:class:`~crawlkb.errors.FetchError`.  Deciding whether such a failure is fatal
is left to the caller.

Retries are off by default (``request_retries == 0``).  When enabled, transport
errors and 5xx responses are retried with exponential backoff through
``tenacity``.
"""

from __future__ import annotations

import time
from typing import Any, Callable

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from crawlkb.config import RunConfig
from crawlkb.errors import FetchError


def _is_retryable(exc: BaseException) -> bool:
    """Transport errors and 5xx responses are transient; 4xx are not."""
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500


class CrawlClient:
    """Thin wrapper around an ``httpx.Client`` bound to one crawl service."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: float = 30.0,
        retries: int = 0,
        retry_base_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        client: httpx.Client | None = None,
    ) -> None:
        self._retries = max(retries, 0)
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._client = client or httpx.Client(
            base_url=api_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    @classmethod
    def from_config(cls, config: RunConfig, **kwargs: Any) -> CrawlClient:
        return cls(
            config.api_url,
            config.api_key,
            timeout=config.request_timeout,
            retries=config.request_retries,
            retry_base_delay=config.retry_base_delay,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> CrawlClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------
    def start_crawl(
        self,
        url: str,
        limit: int,
        only_main_content: bool = True,
        wait_for: int = 1000,
    ) -> dict[str, Any]:
        """``POST /v2/crawl`` — submit a crawl job."""
        body = {
            "url": url,
            "limit": limit,
            "scrapeOptions": {
                "formats": ["markdown"],
                "onlyMainContent": only_main_content,
                "waitFor": wait_for,
            },
        }
        return self._request("POST", "/v2/crawl", json=body)

    def get_status(self, job_id: str) -> dict[str, Any]:
        """``GET /v2/crawl/{id}`` — current job status."""
        return self._request("GET", f"/v2/crawl/{job_id}")

    def get_results(self, job_id: str, skip: int) -> dict[str, Any]:
        """``GET /v2/crawl/{id}?skip=N`` — one batch of results."""
        return self._request("GET", f"/v2/crawl/{job_id}", params={"skip": skip})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        resp = self._client.request(method, path, **kwargs)
        resp.raise_for_status()
        return resp

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(self._retries + 1),
            wait=wait_exponential(multiplier=self._retry_base_delay),
            retry=retry_if_exception(_is_retryable),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            resp = retrying(self._send, method, path, **kwargs)
        except (httpx.TransportError, httpx.HTTPStatusError) as exc:
            raise FetchError(f"{method} {path} failed: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            raise FetchError(f"{method} {path} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise FetchError(f"{method} {path} returned a non-object payload")
        return payload
