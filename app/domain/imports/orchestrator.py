"""
Entry point for bulk user imports.

Wires configuration into parser -> dispatcher -> worker pool -> summary so
every caller (HTTP endpoint, console) gets the same behavior.
"""
import logging
import time
from typing import Optional

from .channels import CancellationToken
from .dispatcher import ImportDispatcher, OutcomeHook
from .errors import ImportTimeoutError
from .parser import CsvSource, parse_import_file
from .records import ImportConfig, ImportSummary, default_import_config, format_duration
from .workers import UserCreator, WorkerPool

logger = logging.getLogger(__name__)


def run_import(
    source: CsvSource,
    create_user: UserCreator,
    config: Optional[ImportConfig] = None,
    *,
    token: Optional[CancellationToken] = None,
    on_outcome: Optional[OutcomeHook] = None,
) -> ImportSummary:
    """
    Import users from CSV content.

    Args:
        source: CSV text, bytes or readable file object
        create_user: Thread-safe callable creating one user and returning its id
        config: Run configuration (defaults from settings when omitted)
        token: Optional caller cancellation; combined with ``config.timeout_seconds``,
            whichever fires first wins
        on_outcome: Optional progress hook called with (outcome, completed, total)

    Returns:
        ImportSummary. A normal return does not mean every record succeeded;
        check ``failure_count``.

    Raises:
        HeaderMismatchError / ImportReadError: the file could not be parsed
        ImportTimeoutError: the run was cancelled before every record finished
    """
    config = config or default_import_config()
    started = time.monotonic()

    logger.info(
        "Starting CSV user import (worker_count=%d, batch_size=%d, max_records=%d, timeout=%ss)",
        config.worker_count,
        config.batch_size,
        config.max_records,
        config.timeout_seconds,
    )

    run_token = CancellationToken.with_timeout(config.timeout_seconds, parent=token)

    parsed = parse_import_file(
        source,
        config.max_records,
        skip_duplicates=config.skip_duplicates,
    )
    records = parsed.records
    skipped = tuple(parsed.duplicates)
    if skipped:
        logger.warning("Skipped %d duplicate rows within the file", len(skipped))

    if not records:
        logger.info("CSV contains no importable rows; nothing to do")
        return ImportSummary.empty(duration_seconds=time.monotonic() - started, skipped=skipped)

    pool = WorkerPool(config.worker_count, create_user)
    dispatcher = ImportDispatcher(pool, config.batch_size, on_outcome=on_outcome)
    result = dispatcher.dispatch(records, run_token)
    duration = time.monotonic() - started

    summary = ImportSummary(
        total_records=len(records),
        success_count=result.success_count,
        failure_count=result.failure_count,
        duration_seconds=duration,
        outcomes=tuple(result.outcomes),
        cancelled=not result.completed,
        skipped=skipped,
    )

    if not result.completed:
        logger.error(
            "CSV import cancelled (%s) after %s: %d/%d records processed",
            result.cancel_reason,
            format_duration(duration),
            len(result.outcomes),
            len(records),
        )
        if not result.outcomes:
            raise ImportTimeoutError(f"processing timed out ({result.cancel_reason}); no records were processed")
        raise ImportTimeoutError(
            f"processing timed out ({result.cancel_reason}); "
            f"{len(result.outcomes)} of {len(records)} records processed",
            summary=summary,
        )

    logger.info(
        "CSV import completed: total=%d success=%d failed=%d duration=%s",
        summary.total_records,
        summary.success_count,
        summary.failure_count,
        summary.processing_time,
    )
    return summary
