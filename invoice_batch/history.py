"""
History of finished extraction batches.

Batches with at least one successful record are saved newest first and the
list is capped, so the store does not grow without bound.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from .config import HISTORY_STORE_KEY, MAX_SAVED_EXTRACTIONS, logger
from .runner import total_net_amount
from .schemas import ExtractionRecord, SavedExtraction, SuccessRecord
from .store import KeyValueStore

_HISTORY_ADAPTER: TypeAdapter[list[SavedExtraction]] = TypeAdapter(list[SavedExtraction])


class ExtractionHistory:

    def __init__(
        self,
        store: KeyValueStore,
        key: str = HISTORY_STORE_KEY,
        max_items: int = MAX_SAVED_EXTRACTIONS,
    ):
        self.store = store
        self.key = key
        self.max_items = max_items

    def entries(self) -> list[SavedExtraction]:
        raw = self.store.get(self.key)
        if not raw:
            return []
        try:
            return _HISTORY_ADAPTER.validate_json(raw)
        except ValidationError as e:
            logger.error(f"Malformed extraction history, ignoring it: {e.error_count()} error(s)")
            return []

    def _save(self, items: list[SavedExtraction]) -> None:
        self.store.set(self.key, _HISTORY_ADAPTER.dump_json(items).decode("utf-8"))

    def get(self, item_id: str) -> Optional[SavedExtraction]:
        return next((item for item in self.entries() if item.id == item_id), None)

    def save_batch(self, records: list[ExtractionRecord], folder_name: str = "") -> Optional[SavedExtraction]:
        """
        Save a finished batch unless it has no successful record.

        Returns:
            The saved entry, or None when nothing was saved
        """
        if not any(isinstance(r, SuccessRecord) for r in records):
            return None

        now = datetime.now()
        item = SavedExtraction(
            id=f"ext-{uuid.uuid4().hex[:12]}",
            name=f"Extraction: {folder_name}" if folder_name else f"Batch of {now:%d/%m/%Y %H:%M:%S}",
            timestamp=now,
            records=records,
            total_net_amount=round(total_net_amount(records), 2),
        )
        with self.store.locked():
            self._save(([item] + self.entries())[: self.max_items])
        logger.info(f"Saved '{item.name}' to history")
        return item

    def delete(self, item_id: str) -> bool:
        with self.store.locked():
            items = self.entries()
            remaining = [i for i in items if i.id != item_id]
            if len(remaining) == len(items):
                return False
            self._save(remaining)
        return True
