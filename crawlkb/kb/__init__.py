"""Knowledge-base package — classification, document assembly & corpus output."""

from crawlkb.kb.classifier import Category, Classification, classify
from crawlkb.kb.document import Document, assemble, split_front_matter
from crawlkb.kb.naming import domain_name, sanitize_filename

__all__ = [
    "Category",
    "Classification",
    "classify",
    "Document",
    "assemble",
    "split_front_matter",
    "domain_name",
    "sanitize_filename",
]
