"""URL-based page classification and keyword tagging.

Everything here is a pure function of ``(source_url, markdown)``: no I/O, no
state, and no exceptions.  Category resolution walks :data:`CATEGORY_RULES`
in order and stops at the first pattern that matches the URL.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Pattern, Tuple


class Category(str, Enum):
    GETTING_STARTED = "getting_started"
    API_REFERENCE = "api_reference"
    TUTORIALS = "tutorials"
    EXAMPLES = "examples"
    NODES = "nodes"
    ADVANCED = "advanced"
    TROUBLESHOOTING = "troubleshooting"
    GENERAL = "general"


# ---------------------------------------------------------------------------
# Rules (order matters: first match wins)
# ---------------------------------------------------------------------------
CATEGORY_RULES: List[Tuple[Category, Pattern[str]]] = [
    (Category.GETTING_STARTED, re.compile(r"getting.started|quickstart|intro|installation", re.IGNORECASE)),
    (Category.API_REFERENCE, re.compile(r"api|reference|endpoint", re.IGNORECASE)),
    (Category.TUTORIALS, re.compile(r"tutorial|guide|how.to", re.IGNORECASE)),
    (Category.EXAMPLES, re.compile(r"example|workflow|template", re.IGNORECASE)),
    (Category.NODES, re.compile(r"node|integration|connector", re.IGNORECASE)),
    (Category.ADVANCED, re.compile(r"advanced|expert", re.IGNORECASE)),
    (Category.TROUBLESHOOTING, re.compile(r"troubleshoot|faq|error", re.IGNORECASE)),
]

DEFAULT_CATEGORY = Category.GENERAL

# Appended to the title-derived keywords when the body mentions them.
TOPIC_KEYWORDS: Tuple[str, ...] = ("trigger", "webhook", "api")

UNTITLED = "Untitled"

_NON_KEYWORD_CHARS = re.compile(r"[^a-z0-9 ]")


@dataclass(frozen=True)
class Classification:
    category: Category
    title: str
    keywords: Tuple[str, ...]

    @property
    def tags(self) -> str:
        """Keywords in their stored, comma-joined form."""
        return ", ".join(self.keywords)


def categorize_url(url: str, rules: List[Tuple[Category, Pattern[str]]] = CATEGORY_RULES) -> Category:
    for category, pattern in rules:
        if pattern.search(url):
            return category
    return DEFAULT_CATEGORY


def find_heading(markdown: str) -> Optional[str]:
    """Text of the first level-1 heading, ``None`` if there is none."""
    for line in markdown.splitlines():
        if line.startswith("# "):
            # Only the first H1 counts; a blank one means no title.
            return line[2:].strip() or None
    return None


def extract_title(markdown: str) -> str:
    """Return the text of the first level-1 heading, or ``Untitled``."""
    return find_heading(markdown) or UNTITLED


def extract_keywords(markdown: str, title: str) -> Tuple[str, ...]:
    """Title words first, then any topic keywords the body mentions.

    Topic keywords are not checked against the title words, so a title
    containing ``API`` on a page that mentions ``api`` yields ``api`` twice.
    """
    keywords = _NON_KEYWORD_CHARS.sub("", title.lower()).split()
    body = markdown.lower()
    for keyword in TOPIC_KEYWORDS:
        if keyword in body:
            keywords.append(keyword)
    return tuple(keywords)


def classify(source_url: str, markdown: str) -> Classification:
    """Categorize *source_url* and tag its *markdown*."""
    title = extract_title(markdown)
    return Classification(
        category=categorize_url(source_url),
        title=title,
        keywords=extract_keywords(markdown, title),
    )
