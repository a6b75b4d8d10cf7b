"""
Shared fixtures and fakes for the test suite.
"""

import threading
from datetime import date
from typing import Optional

import pytest

from invoice_batch.rasterizer import RenderedPage
from invoice_batch.schemas import BasicInvoiceData, SourceDocument


class InMemoryStore:
    """KeyValueStore kept in a dict."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def locked(self):
        return self._lock


class FakeClock:
    """Calendar date that tests can move forward."""

    def __init__(self, today: date):
        self.current = today

    def __call__(self) -> date:
        return self.current


class FakeRasterizer:
    """
    Renders every page to placeholder bytes.

    Args:
        page_counts: Page count per file name (default 1)
        failures: Exception to raise per file name
    """

    def __init__(self, page_counts: Optional[dict] = None, failures: Optional[dict] = None):
        self.page_counts = page_counts or {}
        self.failures = failures or {}
        self.rendered: list[tuple[str, int]] = []

    def page_count(self, document: SourceDocument) -> int:
        if document.name in self.failures:
            raise self.failures[document.name]
        return self.page_counts.get(document.name, 1)

    def render_page(self, document: SourceDocument, page_number: int) -> RenderedPage:
        if document.name in self.failures:
            raise self.failures[document.name]
        self.rendered.append((document.name, page_number))
        return RenderedPage(
            image=f"{document.name}:{page_number}".encode(),
            page_count=self.page_counts.get(document.name, 1),
        )


class FakeExtractor:
    """Returns a fixed payload, or raises, and records every call."""

    def __init__(self, data=None, error: Optional[Exception] = None):
        self.data = data or BasicInvoiceData(
            vendor="ACME LTDA",
            invoice_number="123",
            issue_date="2024-01-15",
            net_amount=100.0,
        )
        self.error = error
        self.calls: list[tuple[bytes, str, bool]] = []

    def extract(self, image: bytes, instruction: str, detailed: bool = False):
        self.calls.append((image, instruction, detailed))
        if self.error is not None:
            raise self.error
        return self.data


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(date(2024, 3, 10))


def make_document(name: str = "invoice.pdf", content: bytes = b"%PDF-1.4 fake") -> SourceDocument:
    return SourceDocument(name=name, content=content)
