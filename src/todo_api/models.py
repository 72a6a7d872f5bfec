from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ValidationError
from .utils import parse_timestamp, to_naive_utc, utcnow

TABLE_NAME = "todo"


@dataclass(frozen=True)
class FieldMapping:
    """One TodoRecord attribute with its JSON key and its storage column."""

    attribute: str
    wire: str
    column: str


# Wire names and column names are relied on by API clients and stored rows.
FIELD_MAPPINGS: Tuple[FieldMapping, ...] = (
    FieldMapping("id", "id", "id"),
    FieldMapping("title", "todo_title", "todo_title"),
    FieldMapping("description", "todo_description", "todo_description"),
    FieldMapping("created_at", "todo_created_at", "todo_created_at"),
    FieldMapping("due_at", "todo_due_at", "todo_due_at"),
    FieldMapping("completed", "todo_completed", "todo_completed"),
)

WIRE_NAMES: Dict[str, str] = {m.attribute: m.wire for m in FIELD_MAPPINGS}
COLUMN_NAMES: Dict[str, str] = {m.attribute: m.column for m in FIELD_MAPPINGS}

_TIMESTAMP_FIELDS = ("created_at", "due_at")


# PUBLIC_INTERFACE
@dataclass
class TodoRecord:
    """
    A single Todo item as stored in the `todo` table and exchanged over the API.

    Fields:
    - id: assigned by the repository on insert; None while the record is transient
    - title: required, must contain a non-whitespace character (see validate)
    - description: optional free text
    - created_at: naive UTC timestamp; filled by on_create if not supplied, never updated
    - due_at: optional naive UTC timestamp
    - completed: completion flag, False by default

    Any subset of fields may be passed as keywords; omitted fields take the
    defaults above.
    """

    id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    completed: bool = False

    def __post_init__(self) -> None:
        self.normalize_timestamps()

    def normalize_timestamps(self) -> None:
        """Convert timezone-aware created_at/due_at to naive UTC in place."""
        if self.created_at is not None:
            self.created_at = to_naive_utc(self.created_at)
        if self.due_at is not None:
            self.due_at = to_naive_utc(self.due_at)

    @property
    def is_persistent(self) -> bool:
        """True once the storage layer has assigned an id."""
        return self.id is not None

    # PUBLIC_INTERFACE
    def on_create(self, now: Optional[datetime] = None) -> None:
        """
        Pre-persistence hook, run by repositories right before the first insert.

        Sets created_at to `now` (or the current UTC time) when it is unset.
        A created_at that is already present is left untouched.
        """
        if self.created_at is None:
            self.created_at = to_naive_utc(now) if now is not None else utcnow()

    # PUBLIC_INTERFACE
    def validate(self) -> None:
        """Raise ValidationError if the title is missing or only whitespace."""
        if self.title is None or not self.title.strip():
            raise ValidationError("blank title", field="title")

    def copy(self, **changes: Any) -> "TodoRecord":
        return replace(self, **changes)

    # PUBLIC_INTERFACE
    def to_wire(self) -> Dict[str, Any]:
        """Return a JSON-ready dict keyed by wire names; timestamps as ISO text."""
        out: Dict[str, Any] = {}
        for m in FIELD_MAPPINGS:
            value = getattr(self, m.attribute)
            if m.attribute in _TIMESTAMP_FIELDS and value is not None:
                value = value.isoformat()
            out[m.wire] = value
        return out

    # PUBLIC_INTERFACE
    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "TodoRecord":
        """Build a record from a wire-named mapping. Missing keys take defaults."""
        kwargs: Dict[str, Any] = {}
        for m in FIELD_MAPPINGS:
            if m.wire not in data:
                continue
            value = data[m.wire]
            if m.attribute in _TIMESTAMP_FIELDS:
                value = parse_timestamp(value, m.wire)
            elif m.attribute == "completed":
                if not isinstance(value, bool):
                    raise ValueError(f"Invalid {m.wire}; expected a JSON boolean, got {value!r}.")
            kwargs[m.attribute] = value
        return cls(**kwargs)

    def to_row(self) -> Dict[str, Any]:
        """
        Return a dict keyed by storage column; flag as 0/1.

        Timestamps are written as `YYYY-MM-DD HH:MM:SS[.ffffff]`, the same shape as
        SQLite CURRENT_TIMESTAMP, so text ordering stays chronological.
        """
        row: Dict[str, Any] = {}
        for m in FIELD_MAPPINGS:
            value = getattr(self, m.attribute)
            if m.attribute in _TIMESTAMP_FIELDS and value is not None:
                value = value.isoformat(sep=" ")
            elif m.attribute == "completed":
                value = 1 if value else 0
            row[m.column] = value
        return row

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TodoRecord":
        """Inverse of to_row. Accepts sqlite3.Row or any mapping keyed by column."""
        return cls(
            id=int(row[COLUMN_NAMES["id"]]),
            title=str(row[COLUMN_NAMES["title"]]),
            description=row[COLUMN_NAMES["description"]],
            created_at=parse_timestamp(row[COLUMN_NAMES["created_at"]], "created_at"),
            due_at=parse_timestamp(row[COLUMN_NAMES["due_at"]], "due_at"),
            completed=bool(row[COLUMN_NAMES["completed"]]),
        )
