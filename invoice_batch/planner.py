"""
Task planning for extraction batches.

A batch is planned completely before any page is processed:
1. Files are expanded into (file, page) tasks
2. Tasks are partitioned against the remaining daily quota
3. One record per task is created up front; tasks beyond the quota are
   recorded as errors immediately, so the whole intended scope is visible
"""

import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .config import QUOTA_EXCEEDED_MESSAGE, logger
from .exceptions import QuotaExhaustedError
from .quota import QuotaTracker
from .schemas import (
    ErrorRecord,
    ExtractionMode,
    ExtractionRecord,
    PendingRecord,
    SourceDocument,
    Task,
)

PageCounter = Callable[[SourceDocument], int]


def new_task_id(document: SourceDocument, page_number: int) -> str:
    return f"{document.name}-p{page_number}-{uuid.uuid4().hex[:12]}"


def load_documents_from_dir(pdf_dir: Path) -> list[SourceDocument]:
    """
    Load every PDF file in a directory, sorted by name.

    Raises:
        FileNotFoundError: If the directory does not exist
    """
    if not pdf_dir.exists():
        raise FileNotFoundError(f"Directory not found: {pdf_dir}")

    pdf_files = sorted(
        (p for p in pdf_dir.iterdir() if p.is_file() and p.suffix.lower() == ".pdf"),
        key=lambda p: p.name,
    )

    if not pdf_files:
        logger.warning(f"No PDF files found in: {pdf_dir}")

    return [SourceDocument.from_path(p) for p in pdf_files]


def plan_tasks(
    documents: list[SourceDocument],
    mode: ExtractionMode,
    page_counter: Optional[PageCounter] = None,
) -> list[Task]:
    """
    Expand files into an ordered list of extraction tasks.

    In first-page mode each file yields one task for page 1 and its page
    count stays unresolved. In all-pages mode each file's page count is
    resolved first; a file whose count cannot be resolved is treated as a
    single page rather than aborting the batch.
    """
    tasks: list[Task] = []

    for document in documents:
        if mode == ExtractionMode.FIRST_PAGE:
            tasks.append(Task(id=new_task_id(document, 1), document=document, page_number=1))
            continue

        if page_counter is None:
            raise ValueError("A page counter is required to plan all pages")

        try:
            total_pages = page_counter(document)
        except Exception as e:
            logger.warning(f"Could not count pages of {document.name}, assuming 1: {e}")
            total_pages = 1
        total_pages = max(total_pages, 1)

        for page in range(1, total_pages + 1):
            tasks.append(Task(
                id=new_task_id(document, page),
                document=document,
                page_number=page,
                total_pages=total_pages,
            ))

    return tasks


def partition_tasks(tasks: list[Task], remaining: int) -> tuple[list[Task], list[Task]]:
    """Split tasks into (to process, skipped for quota), preserving order."""
    remaining = max(remaining, 0)
    return tasks[:remaining], tasks[remaining:]


@dataclass
class ExtractionBatch:
    """
    The records of one batch run, in planned order.

    The runner is the only writer; readers must treat pending and
    processing records as provisional.
    """
    records: list[ExtractionRecord]
    to_process: list[Task]
    skipped: int = 0
    _index: dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self._index = {record.id: i for i, record in enumerate(self.records)}

    def get(self, record_id: str) -> ExtractionRecord:
        return self.records[self._index[record_id]]

    def put(self, record: ExtractionRecord) -> None:
        """Replace the record sharing the given record's id."""
        self.records[self._index[record.id]] = record


def build_batch(to_process: list[Task], skipped: list[Task]) -> ExtractionBatch:
    records: list[ExtractionRecord] = [PendingRecord.for_task(t) for t in to_process]
    records.extend(
        ErrorRecord(
            id=t.id,
            file_name=t.document.name,
            page_number=t.page_number,
            total_pages=t.total_pages,
            error=QUOTA_EXCEEDED_MESSAGE,
        )
        for t in skipped
    )
    return ExtractionBatch(records=records, to_process=to_process, skipped=len(skipped))


def start_batch(
    documents: list[SourceDocument],
    mode: ExtractionMode,
    quota: QuotaTracker,
    page_counter: Optional[PageCounter] = None,
) -> ExtractionBatch:
    """
    Plan a batch and allocate its records before any processing begins.

    Raises:
        QuotaExhaustedError: If there are files but no quota left at all
    """
    remaining = quota.remaining()
    if documents and remaining <= 0:
        raise QuotaExhaustedError(quota.limit)

    tasks = plan_tasks(documents, mode, page_counter)
    to_process, skipped = partition_tasks(tasks, remaining)

    logger.info(
        f"Planned {len(tasks)} task(s) from {len(documents)} file(s): "
        f"{len(to_process)} to process, {len(skipped)} over the daily limit"
    )
    return build_batch(to_process, skipped)
