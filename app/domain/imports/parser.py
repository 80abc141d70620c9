"""
CSV parsing for bulk user imports.

Turns an uploaded file into a list of ``ImportRecord``. A bad header aborts
the whole import; a bad row is logged and skipped so one broken line never
blocks the rest of the file.
"""
import csv
import io
import logging
from dataclasses import dataclass, field
from typing import IO, Dict, Iterator, List, Optional, Union

from .errors import HeaderMismatchError, ImportReadError
from .records import ImportRecord, SkippedRow

logger = logging.getLogger(__name__)

EXPECTED_HEADERS = ["username", "email", "password", "role"]

CsvSource = Union[str, bytes, IO[str], IO[bytes]]


@dataclass
class ParsedImport:
    records: List[ImportRecord] = field(default_factory=list)
    duplicates: List[SkippedRow] = field(default_factory=list)


def _read_text(source: CsvSource) -> str:
    if hasattr(source, "read"):
        source = source.read()
    if isinstance(source, bytes):
        try:
            return source.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ImportReadError(f"failed to read CSV: content is not valid UTF-8 ({e})") from e
    if isinstance(source, str):
        return source.lstrip("\ufeff")
    raise ImportReadError(f"failed to read CSV: unsupported source type {type(source).__name__}")


def validate_header(header: List[str], expected: List[str] = EXPECTED_HEADERS) -> bool:
    """Return True when ``expected`` is a case-insensitive prefix of ``header``."""
    if len(header) < len(expected):
        return False
    for actual, wanted in zip(header, expected):
        if actual.strip().lower() != wanted:
            return False
    return True


def _iter_rows(reader) -> Iterator[tuple]:
    """
    Yield ``(line_number, row, error)`` for each CSV record after the header.

    ``line_number`` is the physical line the record starts on. Rows the csv
    module rejects come back with ``row=None`` and the error attached.
    """
    previous_line = reader.line_num
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            yield previous_line + 1, None, e
            previous_line = reader.line_num
            continue
        yield previous_line + 1, row, None
        previous_line = reader.line_num


def parse_import_records(
    source: CsvSource,
    max_records: int = 0,
    *,
    skip_duplicates: bool = False,
) -> List[ImportRecord]:
    """Parse CSV content and return only the accepted records, in file order."""
    return parse_import_file(source, max_records, skip_duplicates=skip_duplicates).records


def _duplicate_reason(
    username: str,
    email: str,
    username_lines: Dict[str, int],
    email_lines: Dict[str, int],
) -> Optional[str]:
    email_line = email_lines.get(email.lower())
    if email_line is not None:
        return f"duplicate email in file (first seen at line {email_line})"
    username_line = username_lines.get(username.lower())
    if username_line is not None:
        return f"duplicate username in file (first seen at line {username_line})"
    return None


def parse_import_file(
    source: CsvSource,
    max_records: int = 0,
    *,
    skip_duplicates: bool = False,
) -> ParsedImport:
    """
    Parse CSV content into import records.

    Args:
        source: CSV as text, bytes, or a readable file object
        max_records: Stop after this many accepted records (0 = no limit)
        skip_duplicates: Drop rows whose username or email repeats an earlier
            accepted row in the same file and report them in ``duplicates``

    Returns:
        ParsedImport with the accepted records in file order and the rows
        dropped as in-file duplicates

    Raises:
        HeaderMismatchError: header missing or not starting with
            username,email,password,role
        ImportReadError: content cannot be decoded or the header line is unreadable
    """
    text_content = _read_text(source)
    reader = csv.reader(io.StringIO(text_content), skipinitialspace=True, strict=True)

    try:
        header = next(reader)
    except StopIteration:
        raise HeaderMismatchError(
            f"failed to read CSV header: input is empty. Expected: {EXPECTED_HEADERS}"
        )
    except csv.Error as e:
        raise ImportReadError(f"failed to read CSV header: {e}") from e

    if not validate_header(header, EXPECTED_HEADERS):
        raise HeaderMismatchError(
            f"invalid CSV header. Expected: {EXPECTED_HEADERS}, Got: {header}"
        )

    result = ParsedImport()
    records = result.records
    username_lines: Dict[str, int] = {}
    email_lines: Dict[str, int] = {}
    skipped = 0

    rows = _iter_rows(reader)
    while True:
        if max_records > 0 and len(records) >= max_records:
            logger.warning("Reached maximum record limit (max_records=%d); remaining rows ignored", max_records)
            break

        try:
            line_number, row, error = next(rows)
        except StopIteration:
            break

        if error is not None:
            logger.error("Error reading CSV row at line %d: %s", line_number, error)
            skipped += 1
            continue

        if not row:
            # blank line
            continue

        if len(row) < len(EXPECTED_HEADERS):
            logger.warning("Skipping incomplete row at line %d (%d columns)", line_number, len(row))
            skipped += 1
            continue

        username, email, password, role = (value.strip() for value in row[:4])

        if not username or not email or not password:
            logger.warning("Skipping row with empty required fields at line %d", line_number)
            skipped += 1
            continue

        if skip_duplicates:
            reason = _duplicate_reason(username, email, username_lines, email_lines)
            if reason is not None:
                logger.warning(
                    "Skipping row at line %d (username=%s, email=%s): %s",
                    line_number,
                    username,
                    email,
                    reason,
                )
                result.duplicates.append(
                    SkippedRow(line_number=line_number, username=username, email=email, reason=reason)
                )
                skipped += 1
                continue
            username_lines.setdefault(username.lower(), line_number)
            email_lines.setdefault(email.lower(), line_number)

        records.append(
            ImportRecord(
                username=username,
                email=email,
                password=password,
                role=role,
                line_number=line_number,
            )
        )

    logger.info("Parsed %d CSV records (%d rows skipped)", len(records), skipped)
    return result
