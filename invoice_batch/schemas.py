"""
Pydantic models for batch extraction and ground truth validation.

This module defines the core data structures used throughout the service:
- SourceDocument and Task for the units of extraction work
- BasicInvoiceData and DetailedInvoiceData for AI extraction payloads
- The ExtractionRecord tagged union (pending/processing/success/error)
- GroundTruthSet and Verdict for validation against spreadsheets
- Batch and validation summaries, layouts and saved extractions
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from .parsing import parse_date


# ============================================================================
# Inputs and Tasks
# ============================================================================

class SourceDocument(BaseModel):
    """A file selected for extraction, held in memory."""
    name: str = Field(..., min_length=1, description="Original file name")
    content: bytes = Field(..., repr=False, description="Raw file bytes")

    model_config = {"frozen": True}

    @classmethod
    def from_path(cls, path: Path) -> "SourceDocument":
        return cls(name=path.name, content=path.read_bytes())

    @property
    def is_pdf(self) -> bool:
        return self.name.lower().endswith(".pdf")


class ExtractionMode(str, Enum):
    """Which pages of each file become tasks."""
    FIRST_PAGE = "first_page"
    ALL_PAGES = "all_pages"


class Task(BaseModel):
    """
    One page of one file to be extracted.

    Attributes:
        id: Unique identifier, shared with the task's ExtractionRecord
        document: The owning file
        page_number: Target page, 1-based
        total_pages: Page count of the file when known (informational)
    """
    id: str
    document: SourceDocument
    page_number: int = Field(..., ge=1)
    total_pages: Optional[int] = Field(None, ge=1)

    model_config = {"frozen": True}


# ============================================================================
# Extraction Payloads
# ============================================================================

class BasicInvoiceData(BaseModel):
    """
    The four fields collected for the review/export table.

    All fields may be corrected by the user after a successful extraction.
    """
    vendor: str = Field(..., min_length=1, description="Service provider name or legal name")
    invoice_number: str = Field(..., min_length=1, description="Invoice number")
    issue_date: str = Field(..., min_length=1, description="Issue date, YYYY-MM-DD when recognizable")
    net_amount: float = Field(..., description="Net amount of the invoice")

    @field_validator("vendor", "invoice_number")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator("issue_date")
    @classmethod
    def normalize_issue_date(cls, v: str) -> str:
        """Normalize recognizable dates to ISO, keep anything else verbatim."""
        parsed = parse_date(v)
        return parsed.isoformat() if parsed else v.strip()


class DetailedInvoiceData(BaseModel):
    """
    The detailed service-invoice field set.

    The model is instructed to answer 0 for numeric fields and "" for text
    fields that are not visible on the document, so every field is required.
    """
    invoice_number: str
    issue_date: str
    vendor_tax_id: str
    vendor_legal_name: str
    customer_tax_id: str
    customer_legal_name: str
    place_of_service: str
    place_of_tax_incidence: str
    service_code: str
    gross_total: float
    service_tax_rate: float
    social_security_withholding: float
    tax_withheld: float


InvoiceData = Union[BasicInvoiceData, DetailedInvoiceData]

# Fields the user may edit after a successful basic extraction
EDITABLE_FIELDS: tuple[str, ...] = ("vendor", "invoice_number", "issue_date", "net_amount")


# ============================================================================
# Extraction Records
# ============================================================================

class _RecordBase(BaseModel):
    id: str
    file_name: str
    page_number: int = Field(..., ge=1)
    total_pages: Optional[int] = None

    model_config = {"frozen": True}

    def _carry(self) -> dict:
        return {
            "id": self.id,
            "file_name": self.file_name,
            "page_number": self.page_number,
            "total_pages": self.total_pages,
        }


class _OpenRecord(_RecordBase):
    """A record that has not reached a terminal state yet."""

    def fail(self, message: str) -> "ErrorRecord":
        return ErrorRecord(**self._carry(), error=message)


class PendingRecord(_OpenRecord):
    """Planned, not yet started."""
    status: Literal["pending"] = "pending"

    @classmethod
    def for_task(cls, task: Task) -> "PendingRecord":
        return cls(
            id=task.id,
            file_name=task.document.name,
            page_number=task.page_number,
            total_pages=task.total_pages,
        )

    def start(self) -> "ProcessingRecord":
        return ProcessingRecord(**self._carry())


class ProcessingRecord(_OpenRecord):
    """Currently being rasterized or extracted; provisional for readers."""
    status: Literal["processing"] = "processing"

    def succeed(self, data: InvoiceData, total_pages: Optional[int] = None) -> "SuccessRecord":
        carried = self._carry()
        if total_pages is not None:
            carried["total_pages"] = total_pages
        return SuccessRecord(**carried, data=data)


class SuccessRecord(_RecordBase):
    status: Literal["success"] = "success"
    data: InvoiceData

    def correct(self, **fields) -> "SuccessRecord":
        """
        Return a copy with user corrections applied to the editable fields.

        Raises:
            ValueError: If the payload is not a basic one or a field is not editable
        """
        if not isinstance(self.data, BasicInvoiceData):
            raise ValueError("Only basic extraction records can be corrected")

        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        updated = self.data.model_dump()
        updated.update({k: v for k, v in fields.items() if v is not None})
        return SuccessRecord(**self._carry(), data=BasicInvoiceData.model_validate(updated))


class ErrorRecord(_RecordBase):
    status: Literal["error"] = "error"
    error: str


ExtractionRecord = Annotated[
    Union[PendingRecord, ProcessingRecord, SuccessRecord, ErrorRecord],
    Field(discriminator="status"),
]

RECORDS_ADAPTER: TypeAdapter[list[ExtractionRecord]] = TypeAdapter(list[ExtractionRecord])


class BatchSummary(BaseModel):
    """Aggregated counts for one extraction batch."""
    total_tasks: int = Field(..., ge=0)
    succeeded: int = Field(..., ge=0)
    failed: int = Field(..., ge=0, description="Errors, including quota skips")
    skipped_for_quota: int = Field(0, ge=0)
    total_net_amount: float = Field(0.0, description="Sum of net amounts of successful basic records")


# ============================================================================
# Layouts and History
# ============================================================================

class Layout(BaseModel):
    """A named natural-language extraction instruction."""
    id: str
    name: str = Field(..., min_length=1)
    prompt: str


class SavedExtraction(BaseModel):
    """A finished batch kept for later review (without file contents)."""
    id: str
    name: str
    timestamp: datetime
    records: list[ExtractionRecord]
    total_net_amount: float


# ============================================================================
# Ground Truth and Validation
# ============================================================================

class ColumnMapping(BaseModel):
    """Column names holding the vendor and the amount in one spreadsheet source."""
    vendor_column: str = Field(..., min_length=1)
    amount_column: str = Field(..., min_length=1)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"vendor_column": "Razão Social", "amount_column": "Valor Pagto R$"}
            ]
        }
    }


class GroundTruthRecord(BaseModel):
    vendor: str
    amount: float


class GroundTruthStatus(str, Enum):
    IDLE = "idle"
    SUCCESS = "success"
    ERROR = "error"


class GroundTruthSet(BaseModel):
    """
    One loaded spreadsheet's normalized state.

    Replaced wholesale when the spreadsheet is selected again.
    """
    source: Optional[str] = Field(None, description="Originating file name")
    label: str = Field(..., description="Name shown in verdicts, e.g. 'Accounts payable'")
    status: GroundTruthStatus = GroundTruthStatus.IDLE
    message: str = "Waiting for file..."
    detected_columns: list[str] = Field(default_factory=list)
    records: list[GroundTruthRecord] = Field(default_factory=list)

    @property
    def is_ready(self) -> bool:
        return self.status == GroundTruthStatus.SUCCESS


class VerdictStatus(str, Enum):
    OK = "OK"
    DIVERGENT = "Divergent"
    NOT_FOUND = "NotFound"


class Verdict(BaseModel):
    """Outcome of comparing one extracted record to ground truth."""
    status: VerdictStatus
    source: str = Field("", description="Label of the ground truth set that matched")
    expected_amount: Optional[float] = Field(None, description="Ground truth amount when divergent")


class VerdictSummary(BaseModel):
    ok: int = Field(0, ge=0)
    divergent: int = Field(0, ge=0)
    not_found: int = Field(0, ge=0)


# ============================================================================
# API Request/Response Models
# ============================================================================

class ExtractResponse(BaseModel):
    """Response for the /extract endpoint."""
    records: list[ExtractionRecord]
    summary: BatchSummary


class ValidateRequest(BaseModel):
    """Request body for the /validate endpoint."""
    records: list[ExtractionRecord]
    ground_truth: list[GroundTruthSet] = Field(
        ...,
        min_length=1,
        description="Ground truth sets in priority order",
    )


class ValidateResponse(BaseModel):
    verdicts: dict[str, Verdict]
    summary: VerdictSummary


class QuotaResponse(BaseModel):
    count: int
    limit: int
    remaining: int
