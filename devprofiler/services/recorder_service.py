"""Request-scoped capture of SQL query events.

One process-wide SQLAlchemy listener feeds every executed statement into the
recorder.  The recorder keeps one event list per in-flight request in a
``RecorderRegistry``; the current request's handle lives in a ``ContextVar``,
so each thread and each asyncio task sees only its own list.  Statements run
outside a recorder context (startup, background work) are dropped.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine

from devprofiler.models.schemas import QueryEvent
from devprofiler.utils.helpers import round_ms

logger = logging.getLogger(__name__)

# Notification names that never count towards a request's SQL time
IGNORED_EVENT_NAMES = frozenset({"SCHEMA", "CACHE"})


class RecorderRegistry:
    """Event lists keyed by an opaque per-request handle."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._collections: Dict[object, List[QueryEvent]] = {}

    def register(self, handle: object) -> None:
        with self._lock:
            self._collections[handle] = []

    def append(self, handle: object, query: QueryEvent) -> bool:
        with self._lock:
            collection = self._collections.get(handle)
            if collection is None:
                return False
            collection.append(query)
            return True

    def release(self, handle: object) -> List[QueryEvent]:
        with self._lock:
            return self._collections.pop(handle, [])

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._collections)


class QueryRecorder:
    """begin / record / end around one request's lifetime."""

    def __init__(self, registry: Optional[RecorderRegistry] = None) -> None:
        self.registry = registry or RecorderRegistry()
        self._handle: ContextVar[Optional[object]] = ContextVar(
            f"devprofiler_recorder_{id(self)}", default=None
        )

    def begin(self) -> Token:
        """Open a fresh, empty collection for the calling context."""
        handle = object()
        self.registry.register(handle)
        return self._handle.set(handle)

    @property
    def active(self) -> bool:
        return self._handle.get() is not None

    def record(self, sql: str, duration_ms: float) -> None:
        handle = self._handle.get()
        if handle is None:
            return
        self.registry.append(handle, QueryEvent(sql=sql, duration=round_ms(max(duration_ms, 0.0))))

    def end(self, token: Optional[Token] = None) -> List[QueryEvent]:
        """Detach and return the calling context's collection.

        Passing the token from ``begin`` restores the previous value exactly;
        without it the slot is simply cleared.
        """
        handle = self._handle.get()
        if token is not None:
            self._handle.reset(token)
        else:
            self._handle.set(None)
        if handle is None:
            return []
        return self.registry.release(handle)

    @contextmanager
    def capture(self) -> Iterator[List[QueryEvent]]:
        """Yield a list that is filled with the captured events on exit."""
        captured: List[QueryEvent] = []
        token = self.begin()
        try:
            yield captured
        finally:
            captured.extend(self.end(token))

    def on_query(
        self,
        sql: str,
        started: float,
        finished: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Notification entry point: ``(queryText, start, end, metadata)``.

        ``started``/``finished`` are ``time.perf_counter()`` readings in
        seconds.
        """
        name = (metadata or {}).get("name")
        if name in IGNORED_EVENT_NAMES:
            return
        self.record(sql, (finished - started) * 1000)


# Process-wide recorder used by the middleware
query_recorder = QueryRecorder()


# ── SQLAlchemy notification channel ───────────────────────────────────────

_SCHEMA_STATEMENT = re.compile(
    r"^\s*(PRAGMA|SHOW|DESCRIBE)\b|\b(information_schema|pg_catalog|sqlite_master|sqlite_temp_master)\b",
    re.IGNORECASE,
)
# Start time is kept on the per-statement ExecutionContext, never on the
# connection; failed statements get no after_cursor_execute.
_START_ATTR = "_devprofiler_start"
_install_lock = threading.Lock()


def classify_statement(statement: str, execution_options: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """Name a statement: an explicit ``query_name`` option wins, else SCHEMA or None."""
    if execution_options and execution_options.get("query_name"):
        return execution_options["query_name"]
    if _SCHEMA_STATEMENT.search(statement):
        return "SCHEMA"
    return None


def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    if context is not None:
        setattr(context, _START_ATTR, time.perf_counter())


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    started = getattr(context, _START_ATTR, None) if context is not None else None
    if started is None or not query_recorder.active:
        return
    query_recorder.on_query(
        statement,
        started,
        time.perf_counter(),
        {"name": classify_statement(statement, context.execution_options), "executemany": executemany},
    )


def install_query_listener() -> bool:
    """Subscribe to every SQLAlchemy engine once per process.

    Returns ``True`` when this call registered the listeners.
    """
    with _install_lock:
        if event.contains(Engine, "after_cursor_execute", _after_cursor_execute):
            return False
        event.listen(Engine, "before_cursor_execute", _before_cursor_execute)
        event.listen(Engine, "after_cursor_execute", _after_cursor_execute)
        logger.info("SQL query listener installed.")
        return True


def uninstall_query_listener() -> None:
    with _install_lock:
        if event.contains(Engine, "after_cursor_execute", _after_cursor_execute):
            event.remove(Engine, "before_cursor_execute", _before_cursor_execute)
            event.remove(Engine, "after_cursor_execute", _after_cursor_execute)
