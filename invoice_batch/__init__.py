"""
Invoice Batch Extraction Service

A Python service for extracting structured fields from invoice PDFs with an
AI vision model, under a daily quota, and validating the extracted amounts
against ground truth spreadsheets.
"""

__version__ = "0.1.0"
__author__ = "Invoice Batch Team"

from .schemas import (
    BasicInvoiceData,
    DetailedInvoiceData,
    ExtractionRecord,
    GroundTruthSet,
    Verdict,
)
from .planner import start_batch
from .runner import ExtractionRunner
from .ground_truth import parse_ground_truth
from .validator import validate_records

__all__ = [
    "BasicInvoiceData",
    "DetailedInvoiceData",
    "ExtractionRecord",
    "GroundTruthSet",
    "Verdict",
    "start_batch",
    "ExtractionRunner",
    "parse_ground_truth",
    "validate_records",
]
