"""
Page rasterization for PDF invoices.

Wraps pdfplumber to:
- Open documents from memory, retrying protected files with candidate
  passwords derived from the file name
- Validate the requested page against the document's page count
- Render a single page to PNG bytes at a fixed upscaling factor
"""

import io
from contextlib import contextmanager
from typing import Iterator, NamedTuple, Optional

import pdfplumber
from pdfminer.pdfdocument import PDFPasswordIncorrect

from .config import RENDER_SCALE, logger
from .exceptions import DocumentError, PageOutOfRangeError, PasswordProtectedError, RenderError
from .passwords import candidate_passwords
from .schemas import SourceDocument

# pdfplumber renders at 72 dpi for scale 1.0
_BASE_RESOLUTION = 72


class RenderedPage(NamedTuple):
    image: bytes
    page_count: int


def is_password_error(error: BaseException) -> bool:
    """
    Tell whether an open failure means "password required or wrong".

    pdfplumber may raise pdfminer's error directly or wrap it, so the
    wrapped arguments and the exception chain are inspected as well.
    """
    seen: set[int] = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, PDFPasswordIncorrect):
            return True
        if any(isinstance(arg, PDFPasswordIncorrect) for arg in current.args):
            return True
        current = current.__cause__ or current.__context__
    return False


class PdfRasterizer:
    """
    Opens PDF documents and renders pages to PNG.

    Args:
        scale: Upscaling factor; 1.5 balances legible text against the
            payload size sent to the extraction AI
    """

    def __init__(self, scale: float = RENDER_SCALE):
        self.scale = scale

    def _open(self, document: SourceDocument) -> pdfplumber.PDF:
        try:
            return pdfplumber.open(io.BytesIO(document.content))
        except Exception as e:
            if not is_password_error(e):
                raise DocumentError(f"Could not open {document.name}: {e}") from e
            original = e

        candidates = candidate_passwords(document.name)
        logger.debug(f"{document.name} is protected, trying {len(candidates)} candidate password(s)")

        for attempt, password in enumerate(candidates, start=1):
            try:
                pdf = pdfplumber.open(io.BytesIO(document.content), password=password)
            except Exception as e:
                if is_password_error(e):
                    continue
                raise DocumentError(f"Could not open {document.name}: {e}") from e
            logger.debug(f"Opened {document.name} with candidate #{attempt}")
            return pdf

        raise PasswordProtectedError(document.name) from original

    @contextmanager
    def open_document(self, document: SourceDocument) -> Iterator[pdfplumber.PDF]:
        pdf = self._open(document)
        try:
            yield pdf
        finally:
            pdf.close()

    def page_count(self, document: SourceDocument) -> int:
        with self.open_document(document) as pdf:
            return len(pdf.pages)

    def render_page(self, document: SourceDocument, page_number: int) -> RenderedPage:
        """
        Render one page of a document to PNG.

        Args:
            document: The PDF to render
            page_number: 1-based page to render

        Returns:
            RenderedPage with the PNG bytes and the document's page count

        Raises:
            PasswordProtectedError: If no candidate password opens the file
            PageOutOfRangeError: If page_number is outside 1..page_count
            RenderError: If the page cannot be rasterized
        """
        with self.open_document(document) as pdf:
            page_count = len(pdf.pages)
            if not 1 <= page_number <= page_count:
                raise PageOutOfRangeError(page_number, page_count)

            try:
                page_image = pdf.pages[page_number - 1].to_image(
                    resolution=_BASE_RESOLUTION * self.scale
                )
                buffer = io.BytesIO()
                page_image.original.save(buffer, format="PNG")
            except Exception as e:
                raise RenderError(
                    f"Could not render page {page_number} of {document.name}: {e}"
                ) from e

        return RenderedPage(image=buffer.getvalue(), page_count=page_count)
