"""Shared utility functions — slugs, rounding, timestamps, atomic writes."""

from __future__ import annotations

import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path

# ── Slug codec ────────────────────────────────────────────────────────────

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_]+")
_REPEATED_UNDERSCORES = re.compile(r"_+")

ROOT_SLUG = "root"


def slugify_path(url: str) -> str:
    """Map a request path to a filesystem-safe page slug.

    ``/contacts`` → ``contacts``, ``/contacts/123`` → ``contacts_123``,
    ``/`` → ``root``.  Distinct paths may share a slug (``/a-b`` and
    ``/a_b``); their profiles then interleave in one log.
    """
    path = url.split("?", 1)[0]
    slug = path.replace("/", "_")
    if slug.startswith("_"):
        slug = slug[1:]
    slug = _UNSAFE_CHARS.sub("_", slug).lower()
    slug = _REPEATED_UNDERSCORES.sub("_", slug).strip("_")
    return slug or ROOT_SLUG


# ── Numeric helpers ───────────────────────────────────────────────────────

def round_ms(value: float, decimals: int = 2) -> float:
    """Round a millisecond figure to *decimals* places."""
    return round(float(value), decimals)


# ── Timestamps ────────────────────────────────────────────────────────────

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def now_timestamp() -> str:
    """Local wall-clock time as ISO-8601 with millisecond precision."""
    return datetime.now().astimezone().isoformat(timespec="milliseconds")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Raises ``ValueError`` if the string cannot be parsed.
    """
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def timestamp_sort_key(value: object) -> datetime:
    """Sort key for stored timestamps; missing or garbled values sort oldest."""
    if not isinstance(value, str):
        return _OLDEST
    try:
        return parse_timestamp(value)
    except ValueError:
        return _OLDEST


def newest_first(profiles: list[dict]) -> list[dict]:
    """Order raw profile dicts by ``timestamp`` descending."""
    return sorted(profiles, key=lambda p: timestamp_sort_key(p.get("timestamp")), reverse=True)


# ── Filesystem ────────────────────────────────────────────────────────────

def write_text_atomic(path: Path, content: str) -> None:
    """Replace *path* with *content* so readers never see a partial file.

    The temporary file lives next to the target (same filesystem) and does
    not end in ``.json``, so directory scans never pick it up.
    """
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
