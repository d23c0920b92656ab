"""Centralised settings for the crawlkb pipeline.

All runtime defaults are resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

``settings`` only supplies defaults.  Every pipeline component receives an
explicit :class:`RunConfig` built from it, so nothing reads ambient state in
the middle of a run.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from dotenv import load_dotenv

from crawlkb.kb.naming import domain_name

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Crawl service
    # ------------------------------------------------------------------
    crawl_api_url: str = field(
        default_factory=lambda: os.environ.get("FIRECRAWL_API_URL", "http://localhost:3002")
    )
    crawl_api_key: str = field(
        default_factory=lambda: os.environ.get("FIRECRAWL_API_KEY", "your-api-key")
    )
    crawl_wait_for: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_WAIT_FOR", "1000"))
    )
    crawl_only_main_content: bool = field(
        default_factory=lambda: _env_bool("CRAWL_ONLY_MAIN_CONTENT", "true")
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "30.0"))
    )
    request_retries: int = field(
        default_factory=lambda: int(os.environ.get("REQUEST_RETRIES", "0"))
    )
    retry_base_delay: float = field(
        default_factory=lambda: float(os.environ.get("RETRY_BASE_DELAY", "1.0"))
    )

    # ------------------------------------------------------------------
    # Job monitoring / pagination
    # ------------------------------------------------------------------
    max_pages: int = field(
        default_factory=lambda: int(os.environ.get("MAX_PAGES", "1000"))
    )
    poll_interval: float = field(
        default_factory=lambda: float(os.environ.get("POLL_INTERVAL", "5"))
    )
    page_stride: int = field(
        default_factory=lambda: int(os.environ.get("PAGE_STRIDE", "10"))
    )
    max_failed_batches: int = field(
        default_factory=lambda: int(os.environ.get("MAX_FAILED_BATCHES", "3"))
    )

    # ------------------------------------------------------------------
    # Corpus output
    # ------------------------------------------------------------------
    output_dir: Path = field(
        default_factory=lambda: Path(os.environ.get("DOCS_OUTPUT_DIR", "./docs_output"))
    )
    workers: int = field(
        default_factory=lambda: int(os.environ.get("CORPUS_WORKERS", "1"))
    )
    max_write_failures: int = field(
        default_factory=lambda: int(os.environ.get("MAX_WRITE_FAILURES", "5"))
    )


# Module-level singleton — import this everywhere:
#   from crawlkb.config import settings
settings = Settings()


@dataclass(frozen=True)
class RunConfig:
    """Everything one pipeline run needs, resolved up front."""

    domain_url: str
    output_dir: Path
    api_url: str
    api_key: str
    max_pages: int = 1000
    poll_interval: float = 5.0
    page_stride: int = 10
    max_failed_batches: int = 3
    request_timeout: float = 30.0
    request_retries: int = 0
    retry_base_delay: float = 1.0
    wait_for: int = 1000
    only_main_content: bool = True
    workers: int = 1
    max_write_failures: int = 5

    @classmethod
    def from_settings(cls, domain_url: str, **overrides) -> RunConfig:
        """Build a run configuration from ``settings``, applying *overrides*.

        ``None`` overrides are ignored so CLI options can be passed through
        unconditionally.
        """
        base = cls(
            domain_url=domain_url,
            output_dir=Path(settings.output_dir),
            api_url=settings.crawl_api_url,
            api_key=settings.crawl_api_key,
            max_pages=settings.max_pages,
            poll_interval=settings.poll_interval,
            page_stride=settings.page_stride,
            max_failed_batches=settings.max_failed_batches,
            request_timeout=settings.request_timeout,
            request_retries=settings.request_retries,
            retry_base_delay=settings.retry_base_delay,
            wait_for=settings.crawl_wait_for,
            only_main_content=settings.crawl_only_main_content,
            workers=settings.workers,
            max_write_failures=settings.max_write_failures,
        )
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "output_dir" in changes:
            changes["output_dir"] = Path(changes["output_dir"])
        return replace(base, **changes)

    @property
    def domain(self) -> str:
        """Short domain label used in front matter and the index header."""
        return domain_name(self.domain_url)

    @property
    def raw_dir(self) -> Path:
        return self.output_dir / "raw"

    @property
    def processed_dir(self) -> Path:
        return self.output_dir / "processed"

    @property
    def categorized_dir(self) -> Path:
        return self.output_dir / "categorized"
