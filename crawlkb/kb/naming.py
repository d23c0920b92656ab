"""Filename and domain derivation from URLs."""

from __future__ import annotations

import re

_PROTOCOL = re.compile(r"^https?://", re.IGNORECASE)
_SEPARATORS = re.compile(r"[/:]")
_UNDERSCORE_RUNS = re.compile(r"_{2,}")


def strip_protocol(url: str) -> str:
    return _PROTOCOL.sub("", url.strip())


def sanitize_filename(url: str) -> str:
    """Return the storage stem for *url*.

    ``https://docs.n8n.io/nodes/trigger/`` becomes ``docs.n8n.io_nodes_trigger``.
    The same URL always yields the same stem.
    """
    name = _SEPARATORS.sub("_", strip_protocol(url))
    name = _UNDERSCORE_RUNS.sub("_", name).rstrip("_")
    return name or "index"


def domain_name(url: str) -> str:
    """Return the short domain label for a root documentation URL.

    ``https://docs.n8n.io/`` becomes ``n8n.io``.
    """
    host = strip_protocol(url).split("/", 1)[0]
    for label in ("docs.", "www."):
        if host.lower().startswith(label):
            host = host[len(label):]
    return host
