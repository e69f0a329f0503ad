"""Delivery event contract between the change notifier and session subscribers.

Every event has this shape on the wire:
{
    "table": "participants" | "messages" | "conversations",
    "operation": "INSERT" | "UPDATE" | "DELETE",
    "record": dict | None,      # row state after the change
    "old_record": dict | None   # row state before the change
}

and is published on exactly one user's channel, ``user:<userId>``.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel

USER_CHANNEL_PREFIX = "user:"


class ChangeTable(str, Enum):
    """Tables whose mutations are fanned out."""

    PARTICIPANTS = "participants"
    MESSAGES = "messages"
    CONVERSATIONS = "conversations"


class ChangeOperation(str, Enum):
    """Row-level mutation kinds."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class DeliveryEvent(BaseModel):
    """One row change addressed to one user."""

    table: ChangeTable
    operation: ChangeOperation
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None

    def row(self) -> Dict[str, Any]:
        """Return whichever row state is present, preferring the new one."""
        return self.record or self.old_record or {}

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


def user_channel(user_id: Any) -> str:
    """Channel name for a user's private event stream."""
    return f"{USER_CHANNEL_PREFIX}{user_id}"
