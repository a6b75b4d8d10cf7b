"""
FastAPI application for the Invoice Batch Extraction Service.

Provides REST API endpoints for:
- Health check and quota status
- Layout management
- Batch extraction of uploaded PDFs
- Ground truth spreadsheet loading and validation
"""

from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import API_HOST, API_PORT, DAILY_EXTRACTION_LIMIT, MAX_UPLOAD_SIZE_MB, logger
from .exceptions import QuotaExhaustedError
from .gemini import GeminiExtractor, InvoiceExtractor
from .ground_truth import parse_ground_truth
from .history import ExtractionHistory
from .layouts import LayoutRegistry
from .planner import start_batch
from .quota import QuotaTracker
from .rasterizer import PdfRasterizer
from .runner import ExtractionRunner, summarize_batch
from .schemas import (
    ColumnMapping,
    ExtractionMode,
    ExtractResponse,
    GroundTruthSet,
    Layout,
    QuotaResponse,
    SourceDocument,
    ValidateRequest,
    ValidateResponse,
)
from .store import KeyValueStore, get_store
from .validator import summarize_verdicts, validate_records


# ============================================================================
# FastAPI App Configuration
# ============================================================================

app = FastAPI(
    title="Invoice Batch API",
    description="""
    Invoice Batch Extraction & Ground Truth Validation API.

    ## Features

    - **Extract**: Upload PDF invoices; each page is sent to an AI model for structured extraction
    - **Ground truth**: Load accounts spreadsheets with arbitrary column names
    - **Validate**: Match extracted vendors and amounts against the loaded spreadsheets
    - **Daily quota**: AI calls are capped per calendar day
    """,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Request/Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class LayoutCreate(BaseModel):
    """Request body for creating a layout."""
    name: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)


# ============================================================================
# Dependencies
# ============================================================================

@lru_cache(maxsize=None)
def get_state_store() -> KeyValueStore:
    return get_store()


def get_rasterizer() -> PdfRasterizer:
    return PdfRasterizer()


def get_extractor(request: Request) -> InvoiceExtractor:
    extractor = getattr(request.app.state, "extractor", None)
    if extractor is None:
        raise HTTPException(status_code=503, detail="Extraction AI is not configured")
    return extractor


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """Return the service status and version information."""
    from . import __version__
    return HealthResponse(status="ok", version=__version__)


@app.get("/quota", response_model=QuotaResponse, tags=["System"])
async def get_quota(store: KeyValueStore = Depends(get_state_store)) -> QuotaResponse:
    """Today's extraction count against the daily limit."""
    tracker = QuotaTracker(store)
    return QuotaResponse(
        count=tracker.current_count(),
        limit=DAILY_EXTRACTION_LIMIT,
        remaining=tracker.remaining(),
    )


@app.get("/layouts", response_model=List[Layout], tags=["Layouts"])
async def list_layouts(store: KeyValueStore = Depends(get_state_store)) -> List[Layout]:
    return LayoutRegistry(store).all_layouts()


@app.post("/layouts", response_model=Layout, status_code=201, tags=["Layouts"])
async def create_layout(
    body: LayoutCreate,
    store: KeyValueStore = Depends(get_state_store),
) -> Layout:
    return LayoutRegistry(store).add(body.name, body.prompt)


@app.delete("/layouts/{layout_id}", status_code=204, tags=["Layouts"])
async def delete_layout(layout_id: str, store: KeyValueStore = Depends(get_state_store)) -> None:
    if not LayoutRegistry(store).remove(layout_id):
        raise HTTPException(status_code=404, detail=f"Unknown layout: {layout_id}")


@app.post(
    "/extract",
    response_model=ExtractResponse,
    tags=["Extraction"],
    summary="Extract invoice fields from PDFs",
)
async def extract(
    files: List[UploadFile] = File(..., description="PDF invoice files to process"),
    mode: ExtractionMode = Form(ExtractionMode.FIRST_PAGE),
    layout_id: Optional[str] = Form(None),
    detailed: bool = Form(False),
    save: bool = Form(True, description="Add the batch to the extraction history"),
    store: KeyValueStore = Depends(get_state_store),
    rasterizer: PdfRasterizer = Depends(get_rasterizer),
    extractor: InvoiceExtractor = Depends(get_extractor),
) -> ExtractResponse:
    """
    Extract structured fields from every uploaded PDF.

    **Processing Steps:**
    1. Plan one task per file (first page) or per page (all pages)
    2. Pages beyond today's remaining quota become error records up front
    3. Each remaining page is rendered and sent to the AI, one at a time
    4. Return every record with a batch summary

    **Limitations:**
    - Maximum file size: 10MB per file
    - Supported formats: PDF only
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    try:
        layout = LayoutRegistry(store).get(layout_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown layout: {layout_id}")

    max_size = MAX_UPLOAD_SIZE_MB * 1024 * 1024
    documents: List[SourceDocument] = []
    errors: List[str] = []

    for file in files:
        if not (file.filename or "").lower().endswith(".pdf"):
            errors.append(f"{file.filename}: Not a PDF file")
            continue

        content = await file.read()
        if len(content) > max_size:
            errors.append(f"{file.filename}: File too large (max {MAX_UPLOAD_SIZE_MB}MB)")
            continue

        documents.append(SourceDocument(name=file.filename, content=content))

    if not documents:
        raise HTTPException(
            status_code=422,
            detail=f"No usable PDF files. Errors: {'; '.join(errors)}",
        )
    for error in errors:
        logger.warning(f"Skipping upload: {error}")

    quota = QuotaTracker(store)
    try:
        batch = await run_in_threadpool(start_batch, documents, mode, quota, rasterizer.page_count)
    except QuotaExhaustedError as e:
        raise HTTPException(status_code=429, detail=str(e))

    runner = ExtractionRunner(rasterizer, extractor, quota)
    await run_in_threadpool(runner.run, batch, layout.prompt, detailed=detailed)

    if save and not detailed:
        ExtractionHistory(store).save_batch(batch.records)

    return ExtractResponse(records=batch.records, summary=summarize_batch(batch.records))


@app.post(
    "/ground-truth",
    response_model=GroundTruthSet,
    tags=["Validation"],
    summary="Load a ground truth spreadsheet",
)
async def load_ground_truth(
    file: UploadFile = File(..., description="Spreadsheet (.xlsx, .xlsm, .xls or .csv)"),
    vendor_column: str = Form(..., description="Header of the vendor name column"),
    amount_column: str = Form(..., description="Header of the amount column"),
    label: Optional[str] = Form(None),
) -> GroundTruthSet:
    """
    Parse one spreadsheet into a ground truth set.

    Unusable files are reported on the returned set (status "error" with a
    message and the detected columns) rather than as an HTTP error, so the
    client can show which columns were found.
    """
    document = SourceDocument(name=file.filename or "upload", content=await file.read())
    mapping = ColumnMapping(vendor_column=vendor_column, amount_column=amount_column)
    return await run_in_threadpool(parse_ground_truth, document, mapping, label)


@app.post(
    "/validate",
    response_model=ValidateResponse,
    tags=["Validation"],
    summary="Validate records against ground truth",
)
async def validate(request: ValidateRequest) -> ValidateResponse:
    """
    Compare successful records with ground truth sets in priority order.

    The first set containing a matching vendor decides each verdict.
    """
    logger.info(
        f"Received validation request for {len(request.records)} records "
        f"against {len(request.ground_truth)} ground truth set(s)"
    )
    verdicts = validate_records(request.records, request.ground_truth)
    return ValidateResponse(verdicts=verdicts, summary=summarize_verdicts(verdicts))


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# ============================================================================
# Startup/Shutdown Events
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Build the extraction client; a missing API key aborts startup."""
    app.state.extractor = GeminiExtractor.from_env()
    logger.info(f"Invoice Batch API starting on {API_HOST}:{API_PORT}")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Invoice Batch API shutting down")


# ============================================================================
# Main Entry Point
# ============================================================================

def run_server():
    """Run the API server using uvicorn."""
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run_server()
