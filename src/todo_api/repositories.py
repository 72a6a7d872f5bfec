from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from threading import RLock
from typing import Any, Iterable, List, Optional, Tuple

from .errors import ValidationError
from .models import TodoRecord
from .schemas import TodoUpdate
from .settings import get_settings

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = frozenset({"created_at", "due_at"})
DEFAULT_SORT = "-created_at"


@dataclass(frozen=True)
class ListQuery:
    """
    Query parameters for listing todos.
    """
    limit: int = 50
    offset: int = 0
    completed: Optional[bool] = None
    search: Optional[str] = None
    sort: str = DEFAULT_SORT  # allowed: created_at, -created_at, due_at, -due_at


def parse_sort(sort: Optional[str]) -> Tuple[str, bool]:
    """Split a sort key like '-created_at' into (field, descending); unknown fields fall back to the default."""
    key = sort.strip().lower() if sort else DEFAULT_SORT
    descending = key.startswith("-")
    field = key[1:] if descending else key
    if field not in SORTABLE_FIELDS:
        return DEFAULT_SORT[1:], True
    return field, descending


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract repository contract for todo storage backends."""

    @abstractmethod
    def create(self, record: TodoRecord) -> TodoRecord:
        """
        Persist a transient record and return it with its generated id.

        The record is validated first, then its on_create hook runs. Any id the
        caller put on the record is replaced by the generated one.
        """

    @abstractmethod
    def get(self, todo_id: int) -> Optional[TodoRecord]:
        """Return a TodoRecord by id, or None if not found."""

    @abstractmethod
    def update(self, todo_id: int, data: TodoUpdate) -> Optional[TodoRecord]:
        """Update fields of an existing TodoRecord. Return updated record or None if not found."""

    @abstractmethod
    def delete(self, todo_id: int) -> bool:
        """Delete a TodoRecord by id. Return True if deleted, False if not found."""

    @abstractmethod
    def list(self, query: Optional[ListQuery] = None) -> Tuple[List[TodoRecord], int]:
        """
        Return a slice of TodoRecords and total count matching filters.
        - Supports limit/offset
        - Filter by completed
        - Substring search across title and description (case-insensitive)
        - Sorting by created_at/due_at (asc/desc), ties broken by id
        """

    def _prepare_insert(self, record: TodoRecord) -> None:
        # A record rejected below must stay transient
        record.id = None
        try:
            record.validate()
        except ValidationError:
            logger.warning("Rejected todo before insert: blank title")
            raise
        record.on_create()
        record.normalize_timestamps()

    def _apply_update(self, current: TodoRecord, data: TodoUpdate) -> TodoRecord:
        changes: dict[str, Any] = data.changes()
        # id and created_at are fixed once persisted
        changes.pop("id", None)
        changes.pop("created_at", None)
        updated = current.copy(**changes)
        try:
            updated.validate()
        except ValidationError:
            logger.warning("Rejected update of todo %s: blank title", current.id)
            raise
        return updated


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: dict[int, TodoRecord] = {}
        self._next_id = 1

    def _allocate_id(self) -> int:
        with self._lock:
            i = self._next_id
            self._next_id += 1
            return i

    def create(self, record: TodoRecord) -> TodoRecord:
        self._prepare_insert(record)
        with self._lock:
            record.id = self._allocate_id()
            self._items[record.id] = record.copy()
        logger.info("Created todo %s", record.id)
        return record

    def get(self, todo_id: int) -> Optional[TodoRecord]:
        with self._lock:
            item = self._items.get(todo_id)
            return None if item is None else item.copy()

    def update(self, todo_id: int, data: TodoUpdate) -> Optional[TodoRecord]:
        with self._lock:
            existing = self._items.get(todo_id)
            if existing is None:
                return None
            updated = self._apply_update(existing, data)
            self._items[todo_id] = updated
        logger.info("Updated todo %s", todo_id)
        return updated.copy()

    def delete(self, todo_id: int) -> bool:
        with self._lock:
            deleted = self._items.pop(todo_id, None) is not None
        if deleted:
            logger.info("Deleted todo %s", todo_id)
        return deleted

    def list(self, query: Optional[ListQuery] = None) -> Tuple[List[TodoRecord], int]:
        q = query or ListQuery()
        with self._lock:
            items: Iterable[TodoRecord] = list(self._items.values())

            if q.completed is not None:
                items = [t for t in items if t.completed == q.completed]

            if q.search:
                s = q.search.lower()

                def matches(t: TodoRecord) -> bool:
                    title_ok = s in (t.title or "").lower()
                    desc_ok = s in t.description.lower() if t.description else False
                    return title_ok or desc_ok

                items = [t for t in items if matches(t)]

            items = list(items)
            total = len(items)

            # Records without a value sort first ascending, last descending
            field, descending = parse_sort(q.sort)

            def sort_key(t: TodoRecord) -> Tuple[bool, datetime, int]:
                value = getattr(t, field)
                return (value is not None, value or datetime.min, t.id or 0)

            items_sorted = sorted(items, key=sort_key, reverse=descending)

            start = max(q.offset, 0)
            end = start + max(q.limit, 0)
            page = items_sorted[start:end]

            return [t.copy() for t in page], total


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_repository() -> Repository:
    """
    Return the configured repository based on settings, created once per process.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("Using sqlite persistence at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path)
    logger.info("Using in-memory persistence")
    return InMemoryRepository()
