"""
Roam EDN importer for Noteforge.

Reads a Roam Research ``#datascript/DB`` EDN dump. The database is a flat
vector of ``[entity attribute value tx]`` datoms; entities with a
``:node/title`` are pages, entities with a ``:block/uid`` are blocks.
"""

import collections.abc
import logging
from pathlib import Path
from typing import Any, Dict, List

import edn_format

from ..graph import GraphStore
from ..models import Block, Page, ViewType, page_id_for_title
from ..tags import extract_inline_tags
from .base import BaseImporter, is_daily_note_title, parse_pointer


_SINGLE_ATTRIBUTES = {
    edn_format.Keyword("node/title"): "title",
    edn_format.Keyword("block/string"): "string",
    edn_format.Keyword("block/uid"): "uid",
    edn_format.Keyword("block/heading"): "heading",
    edn_format.Keyword("children/view-type"): "view_type",
    edn_format.Keyword("block/page"): "page",
    edn_format.Keyword("block/order"): "order",
    edn_format.Keyword("create/time"): "create_time",
    edn_format.Keyword("edit/time"): "edit_time",
}
_CHILDREN = edn_format.Keyword("block/children")
_DATOMS = edn_format.Keyword("datoms")


def _keyword_name(value: Any) -> str:
    if isinstance(value, edn_format.Keyword):
        return value.name
    return str(value)


class RoamEDNImporter(BaseImporter):
    """
    Importer for Roam Research EDN database dumps.
    """

    def __init__(self, export_path: str):
        self.export_path = Path(export_path)
        logging.info(f"Initialized Roam EDN importer for: {self.export_path}")

    def load(self, store: GraphStore) -> int:
        with open(self.export_path, 'r', encoding='utf-8') as f:
            content = f.read()
        return self.load_text(content, store)

    def load_text(self, content: str, store: GraphStore) -> int:
        """
        Parse EDN text and insert its pages and blocks.

        Args:
            content: The EDN dump, with or without the ``#datascript/DB`` tag
            store: An unfrozen graph store

        Returns:
            The number of pages inserted

        Raises:
            ValueError: If the dump has no datoms vector
        """
        entities = self._parse_entities(content)

        count = 0
        for entity_id, entity in entities.items():
            title = entity.get("title")
            if not title:
                continue

            page = Page(
                id=page_id_for_title(title),
                title=title,
                is_journal=is_daily_note_title(title),
                created_at=entity.get("create_time"),
                edited_at=entity.get("edit_time"),
            )
            if store.find_page(page.id) is not None:
                logging.warning(f"Skipping duplicate page '{title}'")
                continue
            store.insert_page(page)
            root = store.block(page.root_block_id)
            root.view_type = ViewType.parse(_keyword_name(entity.get("view_type", "")))

            self._insert_children(store, entities, page.id, entity_id)
            count += 1

        logging.info(f"Loaded {count} pages from {self.export_path}")
        return count

    def _parse_entities(self, content: str) -> Dict[int, Dict[str, Any]]:
        # The parser does not know the #datascript/DB tag or ##NaN
        start = content.find('{')
        if start < 0:
            raise ValueError("No EDN map found in Roam export")
        parsed = edn_format.loads(content[start:].replace("##NaN", "0"))

        datoms = parsed.get(_DATOMS) if isinstance(parsed, collections.abc.Mapping) else None
        if not isinstance(datoms, collections.abc.Sequence) or isinstance(datoms, str):
            raise ValueError(":datoms was not found in Roam export")

        entities: Dict[int, Dict[str, Any]] = {}
        for datom in datoms:
            if not isinstance(datom, collections.abc.Sequence) or len(datom) < 3:
                logging.warning(f"Ignoring malformed datom {datom!r}")
                continue
            entity_id, attribute, value = datom[0], datom[1], datom[2]
            entity = entities.setdefault(entity_id, {"children": []})
            if attribute == _CHILDREN:
                entity["children"].append(value)
                continue
            name = _SINGLE_ATTRIBUTES.get(attribute)
            if name is not None:
                entity[name] = value
        return entities

    def _insert_children(
        self,
        store: GraphStore,
        entities: Dict[int, Dict[str, Any]],
        page_id: str,
        page_entity: int
    ) -> None:
        stack = [(child, None) for child in reversed(self._ordered(entities, page_entity))]
        seen = set()

        while stack:
            entity_id, parent_id = stack.pop()
            if entity_id in seen:
                continue
            seen.add(entity_id)

            entity = entities.get(entity_id)
            if entity is None:
                logging.warning(f"Page {page_id} references unknown entity {entity_id}")
                continue

            contents = str(entity.get("string", ""))
            ref_target, ref_kind = parse_pointer(contents)
            block = store.insert_block(
                Block(
                    id=str(entity.get("uid", "")),
                    page_id=page_id,
                    contents=contents,
                    order=int(entity.get("order", 0)),
                    tags=extract_inline_tags(contents),
                    ref_target=ref_target,
                    ref_kind=ref_kind,
                    view_type=ViewType.parse(_keyword_name(entity.get("view_type", ""))),
                    heading=int(entity.get("heading", 0) or 0),
                    created_at=entity.get("create_time"),
                    edited_at=entity.get("edit_time"),
                ),
                parent_id
            )
            if block is None:
                continue

            for child in reversed(self._ordered(entities, entity_id)):
                stack.append((child, block.id))

    @staticmethod
    def _ordered(entities: Dict[int, Dict[str, Any]], entity_id: int) -> List[int]:
        children = entities.get(entity_id, {}).get("children", [])
        return sorted(children, key=lambda child: entities.get(child, {}).get("order", 0))
