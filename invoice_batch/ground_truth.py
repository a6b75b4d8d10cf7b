"""
Ground truth spreadsheet loading.

Authoritative spreadsheets are maintained by hand, so this module makes no
assumption about their shape:
- Rows are read as raw arrays and the header row is detected explicitly
  (the first row with any non-blank cell)
- Columns are addressed by header name through a per-source ColumnMapping
- Amounts are normalized from localized currency strings
- Rows without a vendor or a usable amount are silently dropped

Load failures never raise to the caller: they are reported on the returned
GroundTruthSet with status "error" and, where known, the detected columns.
"""

import csv
import io
from pathlib import Path
from typing import Any, Optional

import openpyxl
import xlrd

from .config import logger
from .exceptions import GroundTruthError
from .parsing import parse_amount
from .schemas import (
    ColumnMapping,
    GroundTruthRecord,
    GroundTruthSet,
    GroundTruthStatus,
    SourceDocument,
)

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}
XLS_SUFFIXES = {".xls"}
CSV_SUFFIXES = {".csv"}


# ============================================================================
# Raw Row Reading
# ============================================================================

def _read_excel_rows(content: bytes) -> list[list[Any]]:
    wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        if not wb.worksheets:
            return []
        ws = wb.worksheets[0]
        return [list(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def _read_xls_rows(content: bytes) -> list[list[Any]]:
    """Legacy .xls workbooks; empty cells come back as ""."""
    book = xlrd.open_workbook(file_contents=content)
    try:
        if book.nsheets == 0:
            return []
        sheet = book.sheet_by_index(0)
        return [list(sheet.row_values(r)) for r in range(sheet.nrows)]
    finally:
        book.release_resources()


def _read_csv_rows(content: bytes) -> list[list[Any]]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("latin-1")

    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=";,\t")
    except csv.Error:
        dialect = csv.excel

    return [list(row) for row in csv.reader(io.StringIO(text), dialect)]


def read_rows(file_name: str, content: bytes) -> list[list[Any]]:
    """
    Read the first sheet of a spreadsheet as a list of row arrays.

    Raises:
        GroundTruthError: If the format is unsupported
    """
    suffix = Path(file_name).suffix.lower()
    if suffix in EXCEL_SUFFIXES:
        return _read_excel_rows(content)
    if suffix in XLS_SUFFIXES:
        return _read_xls_rows(content)
    if suffix in CSV_SUFFIXES:
        return _read_csv_rows(content)
    raise GroundTruthError(f"Unsupported spreadsheet format: {suffix or file_name}")


# ============================================================================
# Header Detection and Row Mapping
# ============================================================================

def _is_blank(cell: Any) -> bool:
    return cell is None or (isinstance(cell, str) and not cell.strip())


def detect_header(rows: list[list[Any]]) -> tuple[int, dict[int, str]]:
    """
    Find the header row: the first row with at least one non-blank cell.

    Returns:
        Tuple of (row index, {column position: header name}) for the
        non-blank header cells

    Raises:
        GroundTruthError: If every row is blank
    """
    for index, row in enumerate(rows):
        header = {
            position: str(cell).strip()
            for position, cell in enumerate(row)
            if not _is_blank(cell)
        }
        if header:
            return index, header
    raise GroundTruthError("No header row found.")


def rows_to_maps(rows: list[list[Any]], header_index: int, header: dict[int, str]) -> list[dict[str, Any]]:
    """
    Convert the rows after the header into {header name: raw cell} maps.

    Unlabeled columns are dropped; rows blank across every labeled column
    are discarded.
    """
    mapped: list[dict[str, Any]] = []
    for row in rows[header_index + 1:]:
        values = {
            name: row[position] if position < len(row) else None
            for position, name in header.items()
        }
        if all(_is_blank(v) for v in values.values()):
            continue
        mapped.append(values)
    return mapped


def normalize_records(rows: list[dict[str, Any]], mapping: ColumnMapping) -> list[GroundTruthRecord]:
    """Keep rows with a vendor and a parseable amount."""
    records: list[GroundTruthRecord] = []
    for row in rows:
        raw_vendor = row.get(mapping.vendor_column)
        vendor = "" if raw_vendor is None else str(raw_vendor).strip()
        amount = parse_amount(row.get(mapping.amount_column))
        if not vendor or amount is None:
            continue
        records.append(GroundTruthRecord(vendor=vendor, amount=amount))
    return records


# ============================================================================
# Main Entry Point
# ============================================================================

def _load(document: SourceDocument, mapping: ColumnMapping) -> tuple[list[str], list[GroundTruthRecord]]:
    rows = read_rows(document.name, document.content)
    header_index, header = detect_header(rows)
    detected = list(header.values())
    logger.debug(f"{document.name}: header at row {header_index}: {detected}")

    data_rows = rows_to_maps(rows, header_index, header)
    if not data_rows:
        raise GroundTruthError("No data rows found.", detected)

    if mapping.vendor_column not in detected or mapping.amount_column not in detected:
        raise GroundTruthError(
            f"Required columns '{mapping.vendor_column}' and '{mapping.amount_column}' "
            f"not found. Detected columns: {', '.join(detected)}",
            detected,
        )

    return detected, normalize_records(data_rows, mapping)


def parse_ground_truth(
    document: SourceDocument,
    mapping: ColumnMapping,
    label: Optional[str] = None,
) -> GroundTruthSet:
    """
    Load one spreadsheet into a normalized GroundTruthSet.

    Args:
        document: The spreadsheet file (.xlsx, .xlsm, .xls or .csv)
        mapping: Which columns hold the vendor name and the amount
        label: Name shown in verdicts (defaults to the file name)

    Returns:
        A GroundTruthSet with status "success", or status "error" and a
        descriptive message when the file cannot be used
    """
    label = label or document.name

    try:
        detected, records = _load(document, mapping)
    except GroundTruthError as e:
        logger.warning(f"Ground truth {document.name} rejected: {e}")
        return GroundTruthSet(
            source=document.name,
            label=label,
            status=GroundTruthStatus.ERROR,
            message=str(e),
            detected_columns=e.detected_columns,
        )
    except Exception as e:
        logger.error(f"Could not read ground truth {document.name}: {e}")
        return GroundTruthSet(
            source=document.name,
            label=label,
            status=GroundTruthStatus.ERROR,
            message=f"Could not read spreadsheet: {e}",
        )

    logger.info(f"Loaded {len(records)} ground truth record(s) from {document.name}")
    return GroundTruthSet(
        source=document.name,
        label=label,
        status=GroundTruthStatus.SUCCESS,
        message=f"{len(records)} record(s) loaded.",
        detected_columns=detected,
        records=records,
    )
