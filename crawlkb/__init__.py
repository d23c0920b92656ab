"""crawlkb — turn a crawled documentation site into an AI-ready knowledge base."""

__version__ = "0.1.0"
