"""Split a markdown document into one file per ``## `` section.

Text before the first H2 heading goes to ``000_header.md``; each section then
gets ``NNN_<slug>.md`` numbered from ``001`` in document order.  Handy for
feeding long combined files to tools with small context windows.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List

from crawlkb.kb.sink import FilesystemSink

HEADER_FILENAME = "000_header.md"

_SLUG_INVALID = re.compile(r"[^a-zA-Z0-9_-]")
_SLUG_RUNS = re.compile(r"__+")


@dataclass(frozen=True)
class Section:
    filename: str
    heading: str
    text: str


def slugify_heading(heading: str) -> str:
    slug = _SLUG_INVALID.sub("_", heading)
    slug = _SLUG_RUNS.sub("_", slug).strip("_")
    return slug.lower()


def split_by_headers(markdown: str) -> List[Section]:
    sections: List[Section] = []
    preamble: List[str] = []
    current: List[str] | None = None
    heading = ""
    count = 0

    def _close() -> None:
        if current is not None:
            sections.append(
                Section(
                    filename=f"{count:03d}_{slugify_heading(heading)}.md",
                    heading=heading,
                    text="".join(current),
                )
            )

    for line in markdown.splitlines(keepends=True):
        if line.startswith("## "):
            _close()
            count += 1
            heading = line[3:].strip()
            current = [line]
        elif current is None:
            preamble.append(line)
        else:
            current.append(line)
    _close()

    if preamble:
        sections.insert(0, Section(filename=HEADER_FILENAME, heading="", text="".join(preamble)))
    return sections


def write_sections(input_path: Path | str, output_dir: Path | str) -> List[Path]:
    """Split *input_path* and write each section under *output_dir*."""
    text = Path(input_path).read_text(encoding="utf-8")
    sink = FilesystemSink(output_dir)
    return [sink.write_text(section.filename, section.text) for section in split_by_headers(text)]
