"""
Bulk user import endpoints.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from app.api.schemas.imports import (
    ImportConfigView,
    ImportFileInfo,
    ImportSummaryView,
    ImportTimeoutResponse,
    ImportUsersResponse,
)
from app.core.config import settings
from app.domain.imports.errors import HeaderMismatchError, ImportReadError, ImportTimeoutError
from app.domain.imports.orchestrator import run_import
from app.domain.imports.parser import EXPECTED_HEADERS
from app.domain.imports.records import ImportConfig, UserRole, default_import_config
from app.domain.users.service import UserService, get_user_service

router = APIRouter(prefix="/import-users", tags=["imports"])

logger = logging.getLogger(__name__)

IMPORT_TEMPLATE = """username,email,password,role
john.doe,john.doe@example.com,password123,manager
jane.smith,jane.smith@example.com,password456,member
bob.wilson,bob.wilson@example.com,password789,member
"""


def _parse_bounded_int(raw: Optional[str], minimum: int, maximum: int) -> Optional[int]:
    """Return the integer value of ``raw`` if it parses and lies within bounds, else None."""
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    if value < minimum or value > maximum:
        return None
    return value


def parse_import_config(
    worker_count: Optional[str] = None,
    batch_size: Optional[str] = None,
    max_records: Optional[str] = None,
    timeout_seconds: Optional[str] = None,
    skip_duplicates: Optional[str] = None,
) -> ImportConfig:
    """
    Build a run configuration from raw form values.

    Values that are malformed or outside the allowed range are ignored and
    the default is kept.
    """
    config = default_import_config()
    values = config.to_dict()

    parsed = _parse_bounded_int(worker_count, 1, settings.import_max_workers)
    if parsed is not None:
        values["worker_count"] = parsed

    parsed = _parse_bounded_int(batch_size, 1, settings.import_max_batch_size)
    if parsed is not None:
        values["batch_size"] = parsed

    parsed = _parse_bounded_int(max_records, 1, settings.import_max_records_limit)
    if parsed is not None:
        values["max_records"] = parsed

    parsed = _parse_bounded_int(timeout_seconds, 1, settings.import_max_timeout_seconds)
    if parsed is not None:
        values["timeout_seconds"] = float(parsed)

    if skip_duplicates is not None and skip_duplicates.strip() != "":
        values["skip_duplicates"] = skip_duplicates.strip().lower() in {"true", "1"}

    return ImportConfig(**values)


def _is_csv_upload(upload: UploadFile) -> bool:
    filename = upload.filename or ""
    return upload.content_type == "text/csv" or (len(filename) > 4 and filename.lower().endswith(".csv"))


@router.post("")
async def import_users(
    csv_file: Optional[UploadFile] = File(None),
    worker_count: Optional[str] = Form(None),
    batch_size: Optional[str] = Form(None),
    max_records: Optional[str] = Form(None),
    timeout_seconds: Optional[str] = Form(None),
    skip_duplicates: Optional[str] = Form(None),
    user_service: UserService = Depends(get_user_service),
):
    """
    Create users in bulk from an uploaded CSV file.

    The file must have the header ``username,email,password,role``. Each row
    is created independently; a failed row does not stop the others.

    Returns:
    - 200 when every row succeeded
    - 206 when some rows failed
    - 400 when every row failed, or the file/header is invalid
    - 504 when the import timed out (with the partial summary if any rows finished)
    """
    if csv_file is None:
        raise HTTPException(
            status_code=400,
            detail="CSV file is required. Please upload a file with key 'csv_file'",
        )

    if not _is_csv_upload(csv_file):
        logger.warning(
            "Invalid file type uploaded: filename=%s content_type=%s",
            csv_file.filename,
            csv_file.content_type,
        )
        raise HTTPException(
            status_code=400,
            detail="File must be a CSV file (.csv extension or text/csv content type)",
        )

    file_content = await csv_file.read()
    max_file_size = settings.upload_max_file_size_mb * 1024 * 1024
    if len(file_content) > max_file_size:
        logger.warning(
            "File too large: filename=%s size_bytes=%d max_size_bytes=%d",
            csv_file.filename,
            len(file_content),
            max_file_size,
        )
        raise HTTPException(
            status_code=400,
            detail=f"File size too large. Maximum allowed: {settings.upload_max_file_size_mb} MB",
        )

    config = parse_import_config(worker_count, batch_size, max_records, timeout_seconds, skip_duplicates)
    logger.info(
        "Received user import '%s' (%d bytes) with config %s",
        csv_file.filename,
        len(file_content),
        config.to_dict(),
    )

    try:
        summary = await run_in_threadpool(run_import, file_content, user_service.create_user, config)
    except (HeaderMismatchError, ImportReadError) as e:
        logger.warning("CSV import rejected: %s", e)
        raise HTTPException(status_code=400, detail=f"Failed to process CSV import: {e}")
    except ImportTimeoutError as e:
        logger.error("CSV import timed out: %s", e)
        payload = ImportTimeoutResponse(
            error=str(e),
            summary=ImportSummaryView.from_summary(e.summary) if e.summary is not None else None,
        )
        return JSONResponse(status_code=504, content=payload.model_dump())
    except Exception as e:
        logger.exception("CSV import failed: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to process CSV import: {e}")

    response = ImportUsersResponse(
        message="CSV import completed",
        summary=ImportSummaryView.from_summary(summary),
        file_info=ImportFileInfo(
            filename=csv_file.filename,
            size_bytes=len(file_content),
            content_type=csv_file.content_type,
        ),
        config=ImportConfigView.from_config(config),
        processed_at=datetime.now(timezone.utc).isoformat(),
    )

    status_code = 200
    if summary.failure_count > 0 and summary.success_count == 0:
        status_code = 400
    elif summary.failure_count > 0:
        status_code = 206

    logger.info(
        "CSV import '%s' finished: total=%d success=%d failed=%d in %s",
        csv_file.filename,
        summary.total_records,
        summary.success_count,
        summary.failure_count,
        summary.processing_time,
    )
    return JSONResponse(status_code=status_code, content=response.model_dump())


@router.get("/template")
async def get_import_template():
    """Download a CSV template for user import."""
    return Response(
        content=IMPORT_TEMPLATE,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=user_import_template.csv"},
    )


@router.get("/status")
async def get_import_status():
    """Describe import limits and capabilities. Imports currently run synchronously."""
    defaults = default_import_config()
    return {
        "import_capabilities": {
            "max_file_size_mb": settings.upload_max_file_size_mb,
            "max_records": settings.import_max_records_limit,
            "max_workers": settings.import_max_workers,
            "max_batch_size": settings.import_max_batch_size,
            "max_timeout_seconds": settings.import_max_timeout_seconds,
            "supported_formats": ["CSV"],
            "required_columns": EXPECTED_HEADERS,
            "supported_roles": [role.value for role in UserRole],
        },
        "defaults": defaults.to_dict(),
        "current_limits": {
            "concurrent_imports": 1,
            "queue_size": 0,
        },
    }
