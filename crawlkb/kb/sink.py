"""Filesystem storage for corpus files.

Paths handed to :class:`FilesystemSink` are relative to its base directory.
Writes replace whatever was there before and go through a temporary file in
the same directory, so a reader never sees a half-written document.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path, PurePath

from crawlkb.errors import WriteError


class FilesystemSink:
    def __init__(self, base_dir: Path | str) -> None:
        self.base_dir = Path(base_dir)

    def path(self, rel_path: PurePath | str) -> Path:
        return self.base_dir / rel_path

    def exists(self, rel_path: PurePath | str) -> bool:
        return self.path(rel_path).exists()

    def makedirs(self, rel_dir: PurePath | str) -> Path:
        """Create *rel_dir* and its parents.

        Raises:
            WriteError: The directory could not be created.
        """
        directory = self.path(rel_dir)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WriteError(f"Could not create {directory}: {exc}", path=directory) from exc
        return directory

    def write_text(self, rel_path: PurePath | str, text: str) -> Path:
        """Write *text* to *rel_path*, overwriting any previous content.

        Raises:
            WriteError: The directory or file could not be written, or *text*
                cannot be encoded as UTF-8.
        """
        target = self.path(rel_path)
        tmp_name: str | None = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                fh.write(text)
            os.replace(tmp_name, target)
        except (OSError, UnicodeError) as exc:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise WriteError(f"Could not write {target}: {exc}", path=target) from exc
        return target

    def read_text(self, rel_path: PurePath | str) -> str:
        # newline="" keeps CRLF bodies byte-identical in the aggregates.
        with open(self.path(rel_path), encoding="utf-8", newline="") as fh:
            return fh.read()

    def list_dirs(self, rel_dir: PurePath | str) -> list[str]:
        """Names of the subdirectories of *rel_dir*, sorted."""
        directory = self.path(rel_dir)
        if not directory.is_dir():
            return []
        return sorted(p.name for p in directory.iterdir() if p.is_dir())

    def list_markdown(self, rel_dir: PurePath | str) -> list[str]:
        """Names of the ``.md`` files directly inside *rel_dir*, sorted."""
        directory = self.path(rel_dir)
        if not directory.is_dir():
            return []
        return sorted(
            p.name for p in directory.iterdir() if p.is_file() and p.suffix == ".md"
        )
