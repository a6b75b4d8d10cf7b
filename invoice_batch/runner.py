"""
Sequential extraction runner.

Drives each planned task through rasterization, the external extraction
call and the record state update. Tasks run strictly one at a time, in
planned order, to respect the extraction provider's rate limits; a failing
task is recorded as an error and never aborts the batch.
"""

import threading
from typing import Callable, Optional

from .config import CANCELLED_MESSAGE, PASSWORD_PROTECTED_MESSAGE, QUOTA_EXCEEDED_MESSAGE, logger
from .exceptions import PasswordProtectedError
from .gemini import InvoiceExtractor
from .planner import ExtractionBatch
from .quota import QuotaTracker
from .rasterizer import PdfRasterizer
from .schemas import (
    BasicInvoiceData,
    BatchSummary,
    ErrorRecord,
    ExtractionRecord,
    PendingRecord,
    SuccessRecord,
    Task,
)

# Called after every task as on_progress(done, total, record)
ProgressCallback = Callable[[int, int, ExtractionRecord], None]


class ExtractionRunner:
    """
    Runs the tasks of an ExtractionBatch one after another.

    The quota is only consulted at planning time; the runner increments it
    after each successful extraction call but does not re-check it.
    """

    def __init__(
        self,
        rasterizer: PdfRasterizer,
        extractor: InvoiceExtractor,
        quota: QuotaTracker,
    ):
        self.rasterizer = rasterizer
        self.extractor = extractor
        self.quota = quota

    def run(
        self,
        batch: ExtractionBatch,
        instruction: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        detailed: bool = False,
    ) -> ExtractionBatch:
        """
        Process every task of the batch, updating its records in place.

        Args:
            batch: Planned batch; its records are replaced as tasks progress
            instruction: The active layout's natural-language prompt
            on_progress: Invoked after every task, whatever its outcome
            cancel_event: When set, remaining tasks are recorded as cancelled
            detailed: Request the detailed field set instead of the basic one

        Returns:
            The same batch, with every processed record in a terminal state
        """
        total = len(batch.to_process)
        logger.info(f"Starting extraction of {total} page(s)")

        for done, task in enumerate(batch.to_process, start=1):
            record = self._run_task(batch, task, instruction, cancel_event, detailed)
            if on_progress is not None:
                on_progress(done, total, record)

        summary = summarize_batch(batch.records)
        logger.info(
            f"Extraction complete: {summary.succeeded} succeeded, {summary.failed} failed"
        )
        return batch

    def _run_task(
        self,
        batch: ExtractionBatch,
        task: Task,
        instruction: str,
        cancel_event: Optional[threading.Event],
        detailed: bool,
    ) -> ExtractionRecord:
        pending = batch.get(task.id)
        if not isinstance(pending, PendingRecord):
            raise ValueError(f"Task {task.id} was already processed")

        if cancel_event is not None and cancel_event.is_set():
            cancelled = pending.fail(CANCELLED_MESSAGE)
            batch.put(cancelled)
            return cancelled

        processing = pending.start()
        batch.put(processing)
        label = f"{task.document.name} (page {task.page_number})"

        try:
            rendered = self.rasterizer.render_page(task.document, task.page_number)
        except PasswordProtectedError:
            logger.warning(f"{label}: password protected, no candidate password worked")
            failed = processing.fail(PASSWORD_PROTECTED_MESSAGE)
            batch.put(failed)
            return failed
        except Exception as e:
            logger.warning(f"{label}: rasterization failed: {e}")
            failed = processing.fail(str(e))
            batch.put(failed)
            return failed

        try:
            data = self.extractor.extract(rendered.image, instruction, detailed=detailed)
        except Exception as e:
            logger.error(f"{label}: extraction failed: {e}")
            failed = processing.fail(str(e))
            batch.put(failed)
            return failed

        self.quota.increment()
        succeeded = processing.succeed(data, total_pages=rendered.page_count)
        batch.put(succeeded)
        logger.info(f"{label}: extracted")
        return succeeded


def total_net_amount(records: list[ExtractionRecord]) -> float:
    """Sum of net amounts over successful basic records."""
    return sum(
        r.data.net_amount
        for r in records
        if isinstance(r, SuccessRecord) and isinstance(r.data, BasicInvoiceData)
    )


def summarize_batch(records: list[ExtractionRecord]) -> BatchSummary:
    failed = [r for r in records if isinstance(r, ErrorRecord)]
    return BatchSummary(
        total_tasks=len(records),
        succeeded=sum(1 for r in records if isinstance(r, SuccessRecord)),
        failed=len(failed),
        skipped_for_quota=sum(1 for r in failed if r.error == QUOTA_EXCEEDED_MESSAGE),
        total_net_amount=round(total_net_amount(records), 2),
    )


def format_batch_text(summary: BatchSummary) -> str:
    """
    Format a BatchSummary as human-readable text for CLI output.
    """
    lines = [
        "=" * 50,
        "EXTRACTION SUMMARY",
        "=" * 50,
        f"Pages planned:            {summary.total_tasks}",
        f"Extracted:                {summary.succeeded}",
        f"Failed:                   {summary.failed}",
    ]

    if summary.skipped_for_quota > 0:
        lines.append(f"  over the daily limit:   {summary.skipped_for_quota}")

    lines.append(f"Total net amount:         {summary.total_net_amount:,.2f}")
    lines.append("=" * 50)

    return "\n".join(lines)
