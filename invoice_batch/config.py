"""
Configuration constants for the Invoice Batch Extraction Service.
"""

import logging
import os
from pathlib import Path
from typing import Final, Optional

# ============================================================================
# Extraction Quota
# ============================================================================

# Daily cap on calls to the external extraction AI
DAILY_EXTRACTION_LIMIT: Final[int] = int(os.getenv("DAILY_EXTRACTION_LIMIT", "250"))

# ============================================================================
# Rendering
# ============================================================================

# Upscaling factor applied when rasterizing a PDF page (1.0 = 72 dpi)
RENDER_SCALE: Final[float] = float(os.getenv("RENDER_SCALE", "1.5"))

# ============================================================================
# Validation Tolerances
# ============================================================================

# Absolute tolerance for extracted vs. ground truth amounts (one cent)
AMOUNT_TOLERANCE: Final[float] = float(os.getenv("AMOUNT_TOLERANCE", "0.01"))

# ============================================================================
# External AI
# ============================================================================

GEMINI_API_KEY: Final[Optional[str]] = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
GEMINI_MODEL: Final[str] = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

# ============================================================================
# Persistent State
# ============================================================================

STATE_FILE: Final[Path] = Path(
    os.getenv("INVOICE_BATCH_STATE_FILE", str(Path.home() / ".invoice_batch" / "state.json"))
)

QUOTA_STORE_KEY: Final[str] = "dailyExtractionCount"
LAYOUTS_STORE_KEY: Final[str] = "invoice-layouts"
HISTORY_STORE_KEY: Final[str] = "saved-extractions"

MAX_SAVED_EXTRACTIONS: Final[int] = 20

# ============================================================================
# Date Formats
# ============================================================================

# Issue dates are normalized to ISO when they match one of these.
# Day-first formats come before month-first ones (Brazilian documents).
DATE_FORMATS: Final[list[str]] = [
    "%Y-%m-%d",      # ISO format: 2024-01-15
    "%d/%m/%Y",      # Brazilian: 15/01/2024
    "%d-%m-%Y",      # With dashes: 15-01-2024
    "%d.%m.%Y",      # With dots: 15.01.2024
    "%d/%m/%y",      # Short year: 15/01/24
    "%Y/%m/%d",      # 2024/01/15
    "%d %B %Y",      # Long: 15 January 2024
    "%B %d, %Y",     # Long US: January 15, 2024
]

# ============================================================================
# User-facing Messages
# ============================================================================

PASSWORD_PROTECTED_MESSAGE: Final[str] = "File is password protected."
QUOTA_EXCEEDED_MESSAGE: Final[str] = "Daily extraction limit exceeded."
CANCELLED_MESSAGE: Final[str] = "Extraction cancelled before this page was processed."

# ============================================================================
# Layouts
# ============================================================================

DEFAULT_LAYOUT_ID: Final[str] = "default-1"
DEFAULT_LAYOUT_NAME: Final[str] = "Default Gemini layout"
DEFAULT_LAYOUT_PROMPT: Final[str] = (
    "Extract the service provider name, the invoice number, "
    "the issue date and the total net amount."
)

# ============================================================================
# API Configuration
# ============================================================================

API_HOST: Final[str] = os.getenv("API_HOST", "0.0.0.0")
API_PORT: Final[int] = int(os.getenv("API_PORT", "8000"))
MAX_UPLOAD_SIZE_MB: Final[int] = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")

def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("invoice_batch")


logger = setup_logging()
