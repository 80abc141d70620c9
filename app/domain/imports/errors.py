"""
Exceptions raised by the bulk import pipeline.

Row-level problems never surface here (rows are skipped and logged) and
record-level problems become failed outcomes. Only run-level conditions are
raised out of ``run_import``.
"""
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .records import ImportSummary


class ImportPipelineError(Exception):
    """Base class for run-level import failures."""


class HeaderMismatchError(ImportPipelineError):
    """The CSV header does not start with the expected columns."""


class ImportReadError(ImportPipelineError):
    """The uploaded content could not be read at all."""


class InvalidRoleError(ValueError):
    """A record carries a role outside the supported set."""


class ImportCancelled(Exception):
    """Raised inside the pipeline when the run's token fires during a blocking call."""

    def __init__(self, reason: str = "cancelled"):
        super().__init__(reason)
        self.reason = reason


class ChannelClosedError(Exception):
    """Receive on a closed, drained channel or send on a closed channel."""


class ImportTimeoutError(ImportPipelineError):
    """
    The run was cancelled before every record produced an outcome.

    ``summary`` holds the partial result when at least one outcome completed,
    otherwise it is None.
    """

    def __init__(self, message: str, summary: Optional["ImportSummary"] = None):
        super().__init__(message)
        self.summary = summary
