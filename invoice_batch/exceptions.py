"""
Exceptions raised by the batch extraction and validation engine.
"""

from typing import Optional


class InvoiceBatchError(Exception):
    """Base exception for all invoice batch errors"""
    pass


class ConfigurationError(InvoiceBatchError):
    """Raised at startup when a required setting (e.g. the AI credential) is missing"""
    pass


class DocumentError(InvoiceBatchError):
    """Base exception for failures opening or rendering a single document"""
    pass


class PasswordProtectedError(DocumentError):
    """Raised when no candidate password opens a protected document"""

    def __init__(self, file_name: str):
        super().__init__("file is password protected")
        self.file_name = file_name


class PageOutOfRangeError(DocumentError):
    """Raised when the requested page does not exist in the document"""

    def __init__(self, page_number: int, page_count: int):
        super().__init__(
            f"Page {page_number} requested but the document has {page_count} page(s)"
        )
        self.page_number = page_number
        self.page_count = page_count


class RenderError(DocumentError):
    """Raised when a page cannot be rasterized or encoded"""
    pass


class ExtractionError(InvoiceBatchError):
    """Raised when the external AI call fails or returns an unusable payload"""
    pass


class QuotaExhaustedError(InvoiceBatchError):
    """Raised when a batch is requested with no daily quota left"""

    def __init__(self, limit: int):
        super().__init__(f"Daily limit of {limit} extractions reached")
        self.limit = limit


class GroundTruthError(InvoiceBatchError):
    """Raised while loading a ground truth spreadsheet"""

    def __init__(self, message: str, detected_columns: Optional[list[str]] = None):
        super().__init__(message)
        self.detected_columns = detected_columns or []
