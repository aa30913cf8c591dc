"""
Logseq JSON importer for Noteforge.

Reads the JSON produced by Logseq's "Export graph > Export as JSON" command:
``{"version": 1, "blocks": [...]}`` where each top-level entry is a page
(it carries ``page-name``) and nested ``children`` are its outline.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..graph import GraphStore
from ..models import Block, Page, ViewType, page_id_for_title
from ..tags import add_tags, extract_inline_tags
from .base import BaseImporter, is_daily_note_title, parse_heading, parse_pointer


PROPERTY_LINE_PATTERN = re.compile(r'^\s*([A-Za-z0-9_.\-]+)::\s*(.*)$')


def _as_values(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value]
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(value)]


def _strip_property_lines(content: str) -> str:
    lines = [line for line in content.splitlines() if not PROPERTY_LINE_PATTERN.match(line)]
    return "\n".join(lines).strip()


class LogseqJSONImporter(BaseImporter):
    """
    Importer for Logseq JSON graph exports.
    """

    def __init__(self, export_path: str):
        """
        Initialize the importer.

        Args:
            export_path: Path to the exported JSON file
        """
        self.export_path = Path(export_path)
        logging.info(f"Initialized Logseq JSON importer for: {self.export_path}")

    def load(self, store: GraphStore) -> int:
        with open(self.export_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return self.load_data(data, store)

    def load_data(self, data: Dict[str, Any], store: GraphStore) -> int:
        """
        Insert pages from already-parsed export data.

        Args:
            data: The decoded JSON document
            store: An unfrozen graph store

        Returns:
            The number of pages inserted
        """
        version = data.get("version", 1)
        if version != 1:
            logging.warning(f"Unexpected Logseq JSON export version {version}")

        count = 0
        for entry in data.get("blocks") or []:
            title = entry.get("page-name")
            if not title:
                continue

            page = Page(
                id=page_id_for_title(title),
                title=title,
                is_journal=bool(entry.get("journal?")) or is_daily_note_title(title),
                attributes={
                    name: _as_values(value)
                    for name, value in (entry.get("properties") or {}).items()
                },
                created_at=entry.get("created-at"),
                edited_at=entry.get("updated-at"),
            )
            if store.find_page(page.id) is not None:
                logging.warning(f"Skipping duplicate page '{title}'")
                continue

            store.insert_page(page)
            for order, child in enumerate(entry.get("children") or []):
                self._insert_block(store, page.id, child, None, order)
            count += 1

        logging.info(f"Loaded {count} pages from {self.export_path}")
        return count

    def _insert_block(
        self,
        store: GraphStore,
        page_id: str,
        item: Dict[str, Any],
        parent_id: Optional[str],
        order: int
    ) -> None:
        properties = item.get("properties") or {}
        raw = _strip_property_lines(item.get("content") or "")
        heading, contents = parse_heading(raw)
        if "heading" in properties:
            value = properties["heading"]
            heading = int(value) if str(value).isdigit() else max(heading, 1 if value else 0)

        view_type = ViewType.parse(properties.get("view-type"))
        if str(properties.get("logseq.order-list-type", "")) == "number":
            view_type = ViewType.NUMBERED

        ref_target, ref_kind = parse_pointer(contents)
        tags = add_tags(extract_inline_tags(contents), _as_values(properties.get("tags")))

        block = store.insert_block(
            Block(
                id=str(item.get("id") or ""),
                page_id=page_id,
                contents=contents,
                order=order,
                tags=tags,
                attributes={name: _as_values(value) for name, value in properties.items()},
                ref_target=ref_target,
                ref_kind=ref_kind,
                view_type=view_type,
                heading=heading,
                created_at=item.get("created-at"),
                edited_at=item.get("updated-at"),
            ),
            parent_id
        )
        if block is None:
            return

        for child_order, child in enumerate(item.get("children") or []):
            self._insert_block(store, page_id, child, block.id, child_order)
