"""Command-line interface for crawlkb."""
