"""Document assembly: front matter, body, and derived storage paths."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath

from crawlkb.kb.classifier import Category, Classification
from crawlkb.kb.naming import sanitize_filename

FRONT_MATTER_DELIMITER = "---"
FRONT_MATTER_KEYS = ("title", "source_url", "domain", "category", "tags", "scraped_date")

RAW_DIR = "raw"
PROCESSED_DIR = "processed"
CATEGORIZED_DIR = "categorized"


@dataclass(frozen=True)
class DocumentPaths:
    """Storage paths relative to the output directory."""

    raw: PurePosixPath
    processed: PurePosixPath
    categorized: PurePosixPath

    @classmethod
    def for_url(cls, source_url: str, category: Category) -> DocumentPaths:
        filename = f"{sanitize_filename(source_url)}.md"
        return cls(
            raw=PurePosixPath(RAW_DIR, filename),
            processed=PurePosixPath(PROCESSED_DIR, filename),
            categorized=PurePosixPath(CATEGORIZED_DIR, category.value, filename),
        )

    @property
    def key(self) -> str:
        """Identity of the document: two pages with the same key overwrite each other."""
        return self.raw.stem


@dataclass(frozen=True)
class FrontMatter:
    title: str
    source_url: str
    domain: str
    category: str
    tags: str
    scraped_date: str

    def render(self) -> str:
        lines = [FRONT_MATTER_DELIMITER]
        lines.extend(f"{key}: {getattr(self, key)}" for key in FRONT_MATTER_KEYS)
        lines.append(FRONT_MATTER_DELIMITER)
        return "\n".join(lines) + "\n\n"


@dataclass(frozen=True)
class Document:
    front_matter: FrontMatter
    body: str
    paths: DocumentPaths

    def render(self) -> str:
        """Front matter followed by the untouched body."""
        return self.front_matter.render() + self.body


def assemble(
    source_url: str,
    markdown: str,
    classification: Classification,
    domain: str,
    timestamp: datetime | None = None,
) -> Document:
    """Build the finished :class:`Document` for one page.

    *timestamp* defaults to now; only its UTC date is kept.
    """
    timestamp = timestamp or datetime.now(timezone.utc)
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)

    front_matter = FrontMatter(
        title=classification.title,
        source_url=source_url,
        domain=domain,
        category=classification.category.value,
        tags=classification.tags,
        scraped_date=timestamp.strftime("%Y-%m-%d"),
    )
    return Document(
        front_matter=front_matter,
        body=markdown,
        paths=DocumentPaths.for_url(source_url, classification.category),
    )


def split_front_matter(text: str) -> tuple[dict[str, str], str]:
    """Separate a rendered document into its front-matter fields and body.

    Text without a leading front-matter block comes back unchanged with an
    empty field dict.
    """
    opener = FRONT_MATTER_DELIMITER + "\n"
    if not text.startswith(opener):
        return {}, text

    closer = "\n" + FRONT_MATTER_DELIMITER + "\n"
    end = text.find(closer, len(opener) - 1)
    if end == -1:
        return {}, text

    fields: dict[str, str] = {}
    for line in text[len(opener):end].splitlines():
        key, sep, value = line.partition(": ")
        if sep:
            fields[key] = value
        elif line.endswith(":"):
            fields[line[:-1]] = ""

    body = text[end + len(closer):]
    if body.startswith("\n"):
        body = body[1:]
    return fields, body
