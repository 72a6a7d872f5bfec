from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import WIRE_NAMES, TodoRecord
from .utils import TimestampInput, parse_timestamp


def _check_title(v: Optional[str]) -> str:
    if v is None or not v.strip():
        raise ValueError("blank title")
    return v


# PUBLIC_INTERFACE
class TodoCreate(BaseModel):
    """
    Schema for creating (or fully replacing) a Todo item.

    Keys are the wire names. An `id` sent by the client is ignored; ids are
    always assigned by the repository.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "todo_title": "Buy groceries",
                "todo_description": "Milk, eggs, bread",
                "todo_completed": False,
                "todo_due_at": "2025-02-01",
            }
        },
    )

    title: str = Field(..., alias=WIRE_NAMES["title"], description="Short title for the todo item")
    description: Optional[str] = Field(
        default=None, alias=WIRE_NAMES["description"], description="Optional detailed description"
    )
    completed: bool = Field(default=False, alias=WIRE_NAMES["completed"], description="Completion status flag")
    due_at: Optional[datetime] = Field(
        default=None,
        alias=WIRE_NAMES["due_at"],
        description="Due date/time of the todo item. Accepts ISO8601 date or datetime; dates are set to 00:00",
    )
    created_at: Optional[datetime] = Field(
        default=None,
        alias=WIRE_NAMES["created_at"],
        description="Creation timestamp; defaults to the time of insertion when omitted",
    )

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Reject titles that are empty or only whitespace."""
        return _check_title(v)

    @field_validator("due_at", "created_at", mode="before")
    @classmethod
    def parse_timestamps(cls, v: Optional[TimestampInput]) -> Optional[datetime]:
        """Normalize timestamps from str/date/datetime to naive UTC datetime."""
        return parse_timestamp(v)

    def to_record(self) -> TodoRecord:
        """Build a transient TodoRecord from the payload."""
        return TodoRecord(
            title=self.title,
            description=self.description,
            completed=self.completed,
            due_at=self.due_at,
            created_at=self.created_at,
        )


# PUBLIC_INTERFACE
class TodoUpdate(BaseModel):
    """
    Schema for updating an existing Todo item.
    All fields are optional; only provided fields will be updated.
    Sending null for description or due_at clears it. The creation timestamp
    and id cannot be changed.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "todo_title": "Buy groceries and supplies",
                "todo_description": "Milk, eggs, bread, and paper towels",
                "todo_completed": True,
                "todo_due_at": "2025-02-02T09:30:00",
            }
        },
    )

    title: Optional[str] = Field(default=None, alias=WIRE_NAMES["title"], description="Short title for the todo item")
    description: Optional[str] = Field(
        default=None, alias=WIRE_NAMES["description"], description="Optional detailed description"
    )
    completed: Optional[bool] = Field(default=None, alias=WIRE_NAMES["completed"], description="Completion status flag")
    due_at: Optional[datetime] = Field(
        default=None,
        alias=WIRE_NAMES["due_at"],
        description="Due date/time of the todo item. Accepts ISO8601 date or datetime; dates are set to 00:00",
    )

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> str:
        """A title that is sent must not be null or blank."""
        return _check_title(v)

    @field_validator("due_at", mode="before")
    @classmethod
    def parse_due_at(cls, v: Optional[TimestampInput]) -> Optional[datetime]:
        """Normalize due_at from str/date/datetime to naive UTC datetime."""
        return parse_timestamp(v, "due_at")

    def changes(self) -> Dict[str, Any]:
        """Return the explicitly provided fields, keyed by TodoRecord attribute."""
        out = {name: getattr(self, name) for name in self.model_fields_set}
        if out.get("completed", False) is None:
            del out["completed"]
        return out

    @classmethod
    def replacing(cls, payload: TodoCreate) -> "TodoUpdate":
        """Turn a full create payload into an update that sets every mutable field."""
        return cls.model_validate(
            {
                WIRE_NAMES["title"]: payload.title,
                WIRE_NAMES["description"]: payload.description,
                WIRE_NAMES["completed"]: payload.completed,
                WIRE_NAMES["due_at"]: payload.due_at,
            }
        )


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a Todo item.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 123,
                "todo_title": "Buy groceries",
                "todo_description": "Milk, eggs, bread",
                "todo_completed": False,
                "todo_due_at": "2025-02-01T00:00:00",
                "todo_created_at": "2025-01-25T10:15:30.123456",
            }
        },
    )

    id: int = Field(..., description="Unique identifier of the todo item")
    title: str = Field(..., alias=WIRE_NAMES["title"], description="Short title for the todo item")
    description: Optional[str] = Field(
        default=None, alias=WIRE_NAMES["description"], description="Optional detailed description"
    )
    created_at: datetime = Field(..., alias=WIRE_NAMES["created_at"], description="Creation timestamp")
    due_at: Optional[datetime] = Field(
        default=None, alias=WIRE_NAMES["due_at"], description="Due date/time of the todo item as an ISO8601 datetime"
    )
    completed: bool = Field(..., alias=WIRE_NAMES["completed"], description="Completion status flag")

    @classmethod
    def from_record(cls, record: TodoRecord) -> "TodoOut":
        return cls.model_validate(record.to_wire())
