"""
Queue message types.

The queue itself treats payloads as opaque JSON objects. The reconciliation
pipeline parses them into ReconcilePayload at the boundary so a malformed
message fails fast with PayloadValidationError instead of surfacing as a
KeyError halfway through processing.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Literal, Mapping, Optional, Union
import json

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class PayloadValidationError(Exception):
    """Queue payload could not be parsed."""

    def __init__(self, message: str, raw: Any = None):
        self.message = message
        self.raw = raw
        super().__init__(message)


class FailureEntry(BaseModel):
    """One failed processing attempt."""
    attempt: int
    error_type: str
    error: str
    at: datetime


class ReconcilePayload(BaseModel):
    """Payload of a main-queue message: refresh stats for one entity."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: Literal["reconcile"] = "reconcile"
    identity_key: str = Field(min_length=1)
    attempt_count: int = Field(default=0, ge=0)
    last_attempt_at: Optional[datetime] = None
    next_eligible_at: Optional[datetime] = None
    last_error: Optional[str] = None
    failure_history: List[FailureEntry] = Field(default_factory=list)
    failed_at: Optional[datetime] = None

    @classmethod
    def new(cls, identity_key: str) -> "ReconcilePayload":
        """Fresh payload with zeroed retry metadata."""
        return cls(identity_key=identity_key)

    def with_failure(
        self,
        error_type: str,
        error: str,
        now: datetime,
        next_eligible_at: Optional[datetime],
    ) -> "ReconcilePayload":
        """Copy with the attempt counted and the failure appended to history."""
        entry = FailureEntry(attempt=self.attempt_count, error_type=error_type, error=error, at=now)
        return self.model_copy(update={
            "attempt_count": self.attempt_count + 1,
            "last_attempt_at": now,
            "next_eligible_at": next_eligible_at,
            "last_error": error,
            "failure_history": [*self.failure_history, entry],
        })

    def dead_lettered(self, error_type: str, error: str, now: datetime) -> "ReconcilePayload":
        """Copy for the dead-letter queue, carrying the final failure."""
        entry = FailureEntry(attempt=self.attempt_count, error_type=error_type, error=error, at=now)
        return self.model_copy(update={
            "last_attempt_at": now,
            "last_error": error,
            "failed_at": now,
            "failure_history": [*self.failure_history, entry],
        })

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


def parse_payload(raw: Union[Mapping[str, Any], str, bytes, None]) -> ReconcilePayload:
    """
    Parse a raw queue payload.

    Raises:
        PayloadValidationError: If the payload is not a valid reconcile message
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise PayloadValidationError(f"Payload is not valid JSON: {e}", raw) from e
    if not isinstance(raw, Mapping):
        raise PayloadValidationError(f"Payload must be an object, got {type(raw).__name__}", raw)
    try:
        return ReconcilePayload.model_validate(dict(raw))
    except ValidationError as e:
        raise PayloadValidationError(f"Invalid queue payload: {e.errors()[0]['msg']}", raw) from e


@dataclass(frozen=True)
class QueueMessage:
    """A unit of deferred work as returned by dequeue."""
    queue_name: str
    message_id: str
    payload: Dict[str, Any]
    enqueued_at: datetime
    next_eligible_at: Optional[datetime] = None
    invisible_until: Optional[datetime] = None

    @property
    def identity_key(self) -> Optional[str]:
        """Best-effort key for logging, before the payload is validated."""
        value = self.payload.get("identity_key") if isinstance(self.payload, Mapping) else None
        return value if isinstance(value, str) else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queue_name": self.queue_name,
            "message_id": self.message_id,
            "payload": self.payload,
            "enqueued_at": self.enqueued_at.isoformat(),
            "next_eligible_at": self.next_eligible_at.isoformat() if self.next_eligible_at else None,
            "invisible_until": self.invisible_until.isoformat() if self.invisible_until else None,
        }
