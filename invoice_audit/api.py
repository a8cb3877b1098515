"""
FastAPI application for the Invoice Audit Service.

Provides REST API endpoints for:
- Health check
- Invoice processing (PDF upload or extracted text)
- Historical statistics
- Saved discrepancy reports
"""

from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from pydantic import BaseModel

from .config import API_HOST, API_PORT, HISTORY_FILE, MAX_UPLOAD_SIZE_MB, REPORTS_DIR, logger
from .extractor import ExtractionError
from .pipeline import ProcessingOutcome, process_invoice_bytes, process_invoice_text
from .report import format_report_html, format_report_text, load_report, write_report
from .schemas import (
    Aggregates,
    ProcessInvoiceResponse,
    ProcessTextRequest,
    StatisticsResponse,
)
from .stats import update_statistics
from .store import HistoryStore, HistoryWriteError, JsonFileBackend


# ============================================================================
# FastAPI App Configuration
# ============================================================================

app = FastAPI(
    title="Invoice Audit Service API",
    description="""
    Invoice discrepancy detection API.

    Parses invoices, compares line items and totals with historical averages,
    and flags values that deviate beyond configurable thresholds.

    ## Features

    - **Process PDF**: Upload an invoice PDF for parsing and discrepancy detection
    - **Process Text**: Submit already-extracted invoice text
    - **Statistics**: Inspect or recalculate the per-item and per-vendor baselines
    - **Reports**: Retrieve saved reports as HTML or plain text
    """,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Dependencies
# ============================================================================

_default_store = HistoryStore(JsonFileBackend(HISTORY_FILE))


def get_store() -> HistoryStore:
    """History store used by the endpoints."""
    return _default_store


def get_reports_dir() -> Path:
    """Directory where discrepancy reports are written."""
    return Path(REPORTS_DIR)


# ============================================================================
# Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class RecalculateResponse(BaseModel):
    """Response for the statistics recalculation endpoint."""
    message: str
    item_count: int
    vendor_count: int
    stats: Aggregates


def _to_response(outcome: ProcessingOutcome, reports_dir: Path) -> ProcessInvoiceResponse:
    saved = write_report(outcome.report, reports_dir)
    return ProcessInvoiceResponse(
        invoice=outcome.invoice,
        discrepancies=outcome.discrepancies,
        report=outcome.report,
        record_id=outcome.record.id if outcome.record else None,
        saved=saved.name,
    )


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns the service status and version information.
    """
    from . import __version__
    return HealthResponse(status="ok", version=__version__)


@app.post(
    "/process-invoice",
    response_model=ProcessInvoiceResponse,
    tags=["Processing"],
    summary="Process an invoice PDF",
)
async def process_invoice(
    pdf: UploadFile = File(..., description="Invoice PDF"),
    percentage_threshold: Optional[str] = Form(None),
    std_dev_threshold: Optional[str] = Form(None),
    mode: Optional[str] = Form(None),
    min_samples: Optional[str] = Form(None),
    store: HistoryStore = Depends(get_store),
    reports_dir: Path = Depends(get_reports_dir),
) -> ProcessInvoiceResponse:
    """
    Extract, parse and check an uploaded invoice, then add it to history.

    Detection options are optional form fields; values that are missing or
    invalid fall back to the defaults.
    """
    filename = Path(pdf.filename or "uploaded.pdf").name
    if not filename.lower().endswith(".pdf") and pdf.content_type != "application/pdf":
        raise HTTPException(status_code=400, detail="Only PDF files are allowed")

    content = await pdf.read()
    if len(content) > MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"File too large (max {MAX_UPLOAD_SIZE_MB}MB)")

    overrides = {
        "percentage_threshold": percentage_threshold,
        "std_dev_threshold": std_dev_threshold,
        "mode": mode,
        "min_samples": min_samples,
    }

    try:
        outcome = process_invoice_bytes(content, filename, store, config=overrides)
    except ExtractionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except HistoryWriteError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return _to_response(outcome, reports_dir)


@app.post(
    "/process-text",
    response_model=ProcessInvoiceResponse,
    tags=["Processing"],
    summary="Process extracted invoice text",
)
async def process_text(
    request: ProcessTextRequest,
    store: HistoryStore = Depends(get_store),
    reports_dir: Path = Depends(get_reports_dir),
) -> ProcessInvoiceResponse:
    """Parse and check invoice text that was extracted elsewhere."""
    try:
        outcome = process_invoice_text(
            request.text,
            store,
            filename=request.filename,
            config=request.config,
            persist=request.persist,
        )
    except HistoryWriteError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return _to_response(outcome, reports_dir)


@app.get("/statistics", response_model=StatisticsResponse, tags=["Statistics"])
async def get_statistics(store: HistoryStore = Depends(get_store)) -> StatisticsResponse:
    """Current historical statistics."""
    history = store.load()

    return StatisticsResponse(
        invoice_count=len(history.invoices),
        item_count=len(history.item_averages),
        vendor_count=len(history.vendor_averages),
        item_averages=history.item_averages,
        vendor_averages=history.vendor_averages,
        last_updated=history.last_updated,
    )


@app.post("/recalculate-statistics", response_model=RecalculateResponse, tags=["Statistics"])
async def recalculate_statistics(store: HistoryStore = Depends(get_store)) -> RecalculateResponse:
    """Rebuild the statistics from the full history."""
    try:
        aggregates = update_statistics(store)
    except HistoryWriteError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return RecalculateResponse(
        message="Statistics recalculated successfully",
        item_count=len(aggregates.item_averages),
        vendor_count=len(aggregates.vendor_averages),
        stats=aggregates,
    )


@app.delete("/history", tags=["Statistics"])
async def clear_history(store: HistoryStore = Depends(get_store)):
    """Remove all invoice history and statistics."""
    try:
        store.clear()
    except HistoryWriteError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return {"message": "History cleared"}


@app.get("/report/{name}", response_class=HTMLResponse, tags=["Reports"])
async def get_report_html(name: str, reports_dir: Path = Depends(get_reports_dir)) -> HTMLResponse:
    """HTML report for a processed invoice."""
    try:
        saved = load_report(name, reports_dir)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Report not found. Make sure to process the invoice first.")

    return HTMLResponse(format_report_html(saved))


@app.get("/report/{name}/text", response_class=PlainTextResponse, tags=["Reports"])
async def get_report_text(name: str, reports_dir: Path = Depends(get_reports_dir)) -> PlainTextResponse:
    """Plain text report for a processed invoice."""
    try:
        saved = load_report(name, reports_dir)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Report not found. Make sure to process the invoice first.")

    return PlainTextResponse(format_report_text(saved))


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
    """Log startup information."""
    logger.info(f"Invoice Audit Service API starting on {API_HOST}:{API_PORT}")
    logger.info(f"Using invoice history: {HISTORY_FILE}")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Invoice Audit Service API shutting down")


# ============================================================================
# Main Entry Point
# ============================================================================

def run_server():
    """Run the API server using uvicorn."""
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run_server()
