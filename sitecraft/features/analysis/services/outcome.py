import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class OutcomeKind(enum.Enum):
    ok = "ok"
    skipped = "skipped"  # duplicate delivery, nothing to do
    retryable = "retryable"  # transient store/queue trouble; redeliver with backoff
    terminal = "terminal"  # domain failure already recorded; do not retry


@dataclass(frozen=True)
class TaskOutcome:
    """What a worker component reports back to the Celery task wrapper."""

    kind: OutcomeKind
    message: str = ""
    detail: Dict[str, Any] = field(default_factory=dict)
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, message: str = "", **detail: Any) -> "TaskOutcome":
        return cls(OutcomeKind.ok, message, detail)

    @classmethod
    def skipped(cls, message: str, **detail: Any) -> "TaskOutcome":
        return cls(OutcomeKind.skipped, message, detail)

    @classmethod
    def retryable(cls, message: str, error: Optional[BaseException] = None, **detail: Any) -> "TaskOutcome":
        return cls(OutcomeKind.retryable, message, detail, error)

    @classmethod
    def terminal(cls, message: str, **detail: Any) -> "TaskOutcome":
        return cls(OutcomeKind.terminal, message, detail)

    @property
    def should_retry(self) -> bool:
        return self.kind is OutcomeKind.retryable

    def as_result(self) -> Dict[str, Any]:
        """JSON-serializable task return value."""
        return {"outcome": self.kind.value, "message": self.message, **self.detail}
