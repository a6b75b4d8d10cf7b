"""
Saved extraction layouts (named natural-language instructions).
"""

import json
import uuid
from typing import Optional

from pydantic import ValidationError

from .config import (
    DEFAULT_LAYOUT_ID,
    DEFAULT_LAYOUT_NAME,
    DEFAULT_LAYOUT_PROMPT,
    LAYOUTS_STORE_KEY,
    logger,
)
from .schemas import Layout
from .store import KeyValueStore

DEFAULT_LAYOUT = Layout(id=DEFAULT_LAYOUT_ID, name=DEFAULT_LAYOUT_NAME, prompt=DEFAULT_LAYOUT_PROMPT)


class LayoutRegistry:
    """Layouts persisted in a key-value store; never empty."""

    def __init__(self, store: KeyValueStore, key: str = LAYOUTS_STORE_KEY):
        self.store = store
        self.key = key

    def all_layouts(self) -> list[Layout]:
        raw = self.store.get(self.key)
        if not raw:
            return [DEFAULT_LAYOUT]
        try:
            layouts = [Layout.model_validate(item) for item in json.loads(raw)]
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.error(f"Malformed layouts in store, using default: {e}")
            return [DEFAULT_LAYOUT]
        return layouts or [DEFAULT_LAYOUT]

    def _save(self, layouts: list[Layout]) -> None:
        self.store.set(self.key, json.dumps([l.model_dump() for l in layouts], ensure_ascii=False))

    def get(self, layout_id: Optional[str] = None) -> Layout:
        """
        Return the layout with this id, or the first layout when id is None.

        Raises:
            KeyError: If no layout has this id
        """
        layouts = self.all_layouts()
        if layout_id is None:
            return layouts[0]
        for layout in layouts:
            if layout.id == layout_id:
                return layout
        raise KeyError(layout_id)

    def add(self, name: str, prompt: str) -> Layout:
        layout = Layout(id=f"layout-{uuid.uuid4().hex[:8]}", name=name, prompt=prompt)
        with self.store.locked():
            self._save(self.all_layouts() + [layout])
        logger.info(f"Saved layout '{name}' ({layout.id})")
        return layout

    def remove(self, layout_id: str) -> bool:
        with self.store.locked():
            layouts = self.all_layouts()
            remaining = [l for l in layouts if l.id != layout_id]
            if len(remaining) == len(layouts):
                return False
            self._save(remaining)
        return True
