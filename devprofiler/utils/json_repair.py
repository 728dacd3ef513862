"""Tolerant loading of stored profile files.

Older writers left two kinds of damage behind: a doubled closing ``]`` at the
end of the file, and files cut off before the closing ``]``.  Each fix below
is paired with the parser error that signals it and only runs when that
signature matches.  Trailing commas before ``]``/``}`` are always stripped.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, List, Tuple

from devprofiler.errors import CorruptionError, StorageError
from devprofiler.utils.helpers import write_text_atomic

logger = logging.getLogger(__name__)

_DOUBLED_CLOSE = re.compile(r"\]\s*\]\s*\Z")
_TRAILING_COMMA = re.compile(r",(\s*[\]}])")

Predicate = Callable[[str, json.JSONDecodeError], bool]
Fix = Callable[[str, str], str]


# ── Signatures ────────────────────────────────────────────────────────────

def _has_doubled_close(content: str, error: json.JSONDecodeError) -> bool:
    return error.msg == "Extra data" and bool(_DOUBLED_CLOSE.search(content))


def _ended_early(content: str, error: json.JSONDecodeError) -> bool:
    return error.pos >= len(content.rstrip())


def _always(content: str, error: json.JSONDecodeError) -> bool:
    return True


# ── Fixes ─────────────────────────────────────────────────────────────────
# Each fix receives the text built so far and the original file content.

def _collapse_doubled_close(fixed: str, original: str) -> str:
    return _DOUBLED_CLOSE.sub("]\n", fixed, count=1)


def _close_open_arrays(fixed: str, original: str) -> str:
    missing = original.count("[") - original.count("]")
    if missing > 0:
        fixed += "\n]" * missing
    return fixed


def _strip_trailing_commas(fixed: str, original: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", fixed)


REPAIR_RULES: List[Tuple[Predicate, Fix]] = [
    (_has_doubled_close, _collapse_doubled_close),
    (_ended_early, _close_open_arrays),
    (_always, _strip_trailing_commas),
]


def repair_json(content: str, error: json.JSONDecodeError) -> str:
    """Apply every rule whose signature matches *error*; return the new text."""
    fixed = content
    for matches, fix in REPAIR_RULES:
        if matches(content, error):
            fixed = fix(fixed, content)
    return fixed


def load_profile_file(path: Path) -> List[Any]:
    """Parse a stored profile array, repairing known corruption on the way.

    Repaired text that parses is written back in place (best effort).
    Raises ``CorruptionError`` with the original parser message when the
    content still does not parse or is not valid UTF-8, and ``StorageError``
    when the file cannot be read.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise CorruptionError(str(exc), path=path) from exc
    except OSError as exc:
        raise StorageError(f"Failed to read {path}: {exc}") from exc

    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        logger.warning("JSON parse error in %s: %s. Attempting auto-fix...", path, exc)
        data = _reparse(path, content, exc)

    if not isinstance(data, list):
        raise CorruptionError(f"Expected a JSON array in {path}", path=path)
    return data


def _reparse(path: Path, content: str, original: json.JSONDecodeError) -> Any:
    fixed = repair_json(content, original)
    if fixed == content:
        raise CorruptionError(str(original), path=path) from original

    try:
        data = json.loads(fixed)
    except json.JSONDecodeError:
        raise CorruptionError(str(original), path=path) from original

    try:
        write_text_atomic(path, fixed)
        logger.info("Auto-fixed JSON file: %s", path)
    except OSError as exc:
        logger.warning("Could not save repaired %s: %s", path, exc)
    return data
