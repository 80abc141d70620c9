"""
Value types passed between the stages of a bulk user import.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from app.core.config import settings


class UserRole(str, Enum):
    MANAGER = "manager"
    MEMBER = "member"


@dataclass(frozen=True)
class ImportRecord:
    """One accepted CSV row. The password never appears in repr or serialized output."""
    username: str
    email: str
    password: str = field(repr=False)
    role: str
    line_number: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "line_number": self.line_number,
        }


@dataclass(frozen=True)
class ImportOutcome:
    record: ImportRecord
    success: bool
    error: Optional[str] = None
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "record": self.record.to_dict(),
            "success": self.success,
        }
        if self.error is not None:
            payload["error"] = self.error
        if self.user_id is not None:
            payload["user_id"] = self.user_id
        return payload


@dataclass(frozen=True)
class SkippedRow:
    """A row dropped before dispatch because it repeats an earlier row of the same file."""
    line_number: int
    username: str
    email: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line_number": self.line_number,
            "username": self.username,
            "email": self.email,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ImportConfig:
    """Per-run knobs. ``max_records == 0`` means the input size is the only bound."""
    worker_count: int = 5
    batch_size: int = 100
    timeout_seconds: float = 30.0
    max_records: int = 1000
    skip_duplicates: bool = True

    def __post_init__(self):
        if self.worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {self.worker_count}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_records < 0:
            raise ValueError(f"max_records must be >= 0, got {self.max_records}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worker_count": self.worker_count,
            "batch_size": self.batch_size,
            "max_records": self.max_records,
            "timeout_seconds": self.timeout_seconds,
            "skip_duplicates": self.skip_duplicates,
        }


def default_import_config() -> ImportConfig:
    """Build the default configuration from application settings."""
    return ImportConfig(
        worker_count=max(1, settings.import_worker_count),
        batch_size=max(1, settings.import_batch_size),
        timeout_seconds=settings.import_timeout_seconds,
        max_records=max(0, settings.import_max_records),
        skip_duplicates=settings.import_skip_duplicates,
    )


def format_duration(seconds: float) -> str:
    """Render a duration the way operators read it in logs: 850.2µs, 12.4ms, 1.52s, 2m3.5s."""
    if seconds < 0:
        seconds = 0.0
    if seconds < 1e-3:
        return f"{seconds * 1e6:.1f}µs"
    if seconds < 1:
        return f"{seconds * 1e3:.1f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, remainder = divmod(seconds, 60)
    return f"{int(minutes)}m{remainder:.1f}s"


@dataclass(frozen=True)
class ImportSummary:
    """
    Aggregate result of one run.

    ``outcomes`` is in completion order, not input order; match on
    ``record.line_number`` to correlate with the source file. For a run that
    was not cancelled, success_count + failure_count == total_records ==
    len(outcomes).

    ``skipped`` lists in-file duplicates dropped before dispatch. They are not
    part of ``total_records``.
    """
    total_records: int
    success_count: int
    failure_count: int
    duration_seconds: float
    outcomes: Tuple[ImportOutcome, ...] = ()
    cancelled: bool = False
    skipped: Tuple[SkippedRow, ...] = ()

    @classmethod
    def empty(cls, duration_seconds: float = 0.0, skipped: Tuple[SkippedRow, ...] = ()) -> "ImportSummary":
        return cls(
            total_records=0,
            success_count=0,
            failure_count=0,
            duration_seconds=duration_seconds,
            outcomes=(),
            skipped=tuple(skipped),
        )

    @property
    def processing_time(self) -> str:
        return format_duration(self.duration_seconds)

    @property
    def failed_outcomes(self) -> List[ImportOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_records": self.total_records,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "processing_time": self.processing_time,
            "cancelled": self.cancelled,
            "results": [outcome.to_dict() for outcome in self.outcomes],
            "skipped_duplicates": [row.to_dict() for row in self.skipped],
        }
