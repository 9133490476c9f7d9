"""
Front matter extraction for vault notes.

Parses YAML front matter (between --- delimiters) from .md files and reads
the publishing flags the pipeline honours:

  - title            overrides the filename-derived title
  - publish: false   keeps the note out of the site entirely
  - noIndex/noindex  excludes the page from sitemaps (stored on the page)

Dates are normalised to ISO strings so metadata stays JSON-serialisable.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime

import yaml


_FRONTMATTER_RE = re.compile(r"\A---\s*\n(.*?\n)---\s*\n?", re.DOTALL)


@dataclass
class NoteFlags:
    title: str | None = None
    publish: bool = True
    no_index: bool = False
    metadata: dict = field(default_factory=dict)


def extract_frontmatter(text: str) -> tuple[dict, str]:
    """Split leading YAML front matter from markdown body.

    Returns:
        (metadata_dict, body_without_frontmatter)
        If no front matter is found, returns ({}, original_text).
    """
    m = _FRONTMATTER_RE.match(text)
    if m is None:
        return {}, text

    try:
        parsed = yaml.safe_load(m.group(1))
    except yaml.YAMLError:
        # Malformed YAML → treat as no front matter
        return {}, text

    if not isinstance(parsed, dict):
        return {}, text

    return {str(k): _normalise(v) for k, v in parsed.items()}, text[m.end():]


def _normalise(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, list):
        return [_normalise(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _normalise(v) for k, v in value.items()}
    return value


def _truthy(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def read_flags(metadata: dict) -> NoteFlags:
    """Pull the publishing flags out of parsed front matter."""
    remaining = dict(metadata)
    title = remaining.pop("title", None)
    publish = remaining.pop("publish", True)
    no_index = remaining.pop("noIndex", remaining.pop("noindex", False))
    return NoteFlags(
        title=str(title) if title else None,
        publish=publish is None or _truthy(publish),
        no_index=_truthy(no_index),
        metadata=remaining,
    )
