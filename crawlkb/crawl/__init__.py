"""Crawl package — Crawl Service client, job monitoring & result pagination."""

from crawlkb.crawl.models import CrawlJob, JobStatus, RawPage

__all__ = ["CrawlJob", "JobStatus", "RawPage"]
