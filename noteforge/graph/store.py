"""
Graph store for Noteforge.

Owns every Page and Block record of one export run in flat id-indexed
tables. Parent links, children lists and reference targets are all plain ids,
so cyclic reference graphs never create ownership cycles.
"""

import logging
import threading
from typing import Dict, Iterator, List, Optional, Set

from ..errors import IssueKind, IssueLog, NotFound
from ..models import Block, BlockInclude, Page


ROOT_PREFIX = "__root__:"

_BLOCK_POLICY_FIELDS = ("tags", "view_type", "heading", "include")
_PAGE_POLICY_FIELDS = (
    "title", "url_base", "url_name", "path_base", "path_name",
    "include", "allow_embedding", "tags", "attributes",
)


class GraphStore:
    """
    In-memory page/block graph for one run.

    Ingestion inserts pages and blocks (possibly from several threads, one
    page per thread), then calls freeze() once. After freezing the store is
    read-many; only the worker owning a page mutates that page's policy fields.
    """

    def __init__(self, issues: Optional[IssueLog] = None):
        self.issues = issues or IssueLog()
        self._pages: Dict[str, Page] = {}
        self._blocks: Dict[str, Block] = {}
        self._titles: Dict[str, str] = {}
        self._backrefs: Dict[str, Set[str]] = {}
        self._block_snapshot: Dict[str, Dict] = {}
        self._page_snapshot: Dict[str, Dict] = {}
        self._frozen = False
        self._lock = threading.Lock()

    # Ingestion

    def insert_page(self, page: Page) -> Page:
        """
        Insert a page and create its synthetic depth-0 root block.

        Args:
            page: The page record

        Returns:
            The stored page
        """
        if self._frozen:
            raise RuntimeError("Graph store is frozen")

        root_id = ROOT_PREFIX + page.id
        with self._lock:
            if page.id in self._pages:
                raise ValueError(f"Duplicate page id: {page.id}")
            page.root_block_id = root_id
            self._pages[page.id] = page
            self._titles[page.title] = page.id
            self._blocks[root_id] = Block(id=root_id, page_id=page.id)
        return page

    def insert_block(self, block: Block, parent_id: Optional[str] = None) -> Optional[Block]:
        """
        Insert a block under a parent block, or as a root block of its page.

        Args:
            block: The block record; ``block.page_id`` must name an inserted page
            parent_id: Parent block id, or None for a root block

        Returns:
            The stored block, or None if the record was malformed
        """
        if self._frozen:
            raise RuntimeError("Graph store is frozen")

        if not block.id:
            self.issues.report(
                IssueKind.MALFORMED_BLOCK_RECORD,
                "Block record has no id",
                page_id=block.page_id
            )
            return None

        page = self.page(block.page_id)
        if parent_id is None:
            parent_id = page.root_block_id

        with self._lock:
            duplicate = block.id in self._blocks
        if duplicate:
            self.issues.report(
                IssueKind.MALFORMED_BLOCK_RECORD,
                f"Duplicate block id {block.id}; keeping the first record",
                page_id=block.page_id,
                block_id=block.id
            )
            return None

        with self._lock:
            parent = self._blocks.get(parent_id)
            if parent is None:
                raise NotFound("Block", parent_id)
            block.parent_id = parent_id
            if block.id not in parent.children:
                parent.children.append(block.id)
            self._blocks[block.id] = block
        return block

    def freeze(self) -> None:
        """
        Finish ingestion: validate every page forest, build the backreference
        index and snapshot the ingested policy state.
        """
        if self._frozen:
            return

        for page in self._pages.values():
            self._validate_page(page)
        self._validate_parent_chains()
        self._build_backrefs()

        for block_id, block in self._blocks.items():
            self._block_snapshot[block_id] = block.model_dump(include=set(_BLOCK_POLICY_FIELDS))
        for page_id, page in self._pages.items():
            self._page_snapshot[page_id] = page.model_dump(include=set(_PAGE_POLICY_FIELDS))

        self._frozen = True
        logging.info(
            f"Graph frozen: {len(self._pages)} pages, "
            f"{len(self._blocks) - len(self._pages)} blocks, "
            f"{sum(len(v) for v in self._backrefs.values())} backreferences"
        )

    def _validate_page(self, page: Page) -> None:
        seen: Set[str] = set()
        stack = [page.root_block_id]
        seen.add(page.root_block_id)

        while stack:
            block = self._blocks[stack.pop()]
            kept = []
            for child_id in block.children:
                child = self._blocks.get(child_id)
                if child is None:
                    self.issues.report(
                        IssueKind.MALFORMED_BLOCK_RECORD,
                        f"Child id {child_id} of block {block.id} does not exist",
                        page_id=page.id,
                        block_id=child_id
                    )
                    continue
                if child_id in seen:
                    self.issues.report(
                        IssueKind.MALFORMED_BLOCK_RECORD,
                        f"Block {child_id} is reachable twice in the page tree",
                        page_id=page.id,
                        block_id=child_id
                    )
                    child.include = BlockInclude.EXCLUDE
                    continue
                seen.add(child_id)
                kept.append(child_id)
                stack.append(child_id)
            block.children = kept

    def _validate_parent_chains(self) -> None:
        for block in self._blocks.values():
            chain: Set[str] = {block.id}
            parent_id = block.parent_id
            while parent_id is not None:
                if parent_id in chain:
                    self.issues.report(
                        IssueKind.MALFORMED_BLOCK_RECORD,
                        f"Parent chain of block {block.id} is cyclic",
                        page_id=block.page_id,
                        block_id=block.id
                    )
                    block.include = BlockInclude.EXCLUDE
                    break
                chain.add(parent_id)
                parent = self._blocks.get(parent_id)
                parent_id = parent.parent_id if parent else None

    def _build_backrefs(self) -> None:
        self._backrefs = {}
        for block in self._blocks.values():
            if block.is_pointer:
                self._backrefs.setdefault(block.ref_target, set()).add(block.id)

    def reset_policy(self, page_id: str) -> None:
        """
        Restore the ingested policy fields of a page and all of its blocks,
        so every evaluation of the page starts from the same state.
        """
        page = self.page(page_id)
        snapshot = self._page_snapshot.get(page_id)
        if snapshot is not None:
            for name, value in snapshot.items():
                setattr(page, name, _copy(value))

        for block in self.walk(page.root_block_id):
            saved = self._block_snapshot.get(block.id)
            if saved is None:
                continue
            for name, value in saved.items():
                setattr(block, name, _copy(value))

    # Lookup

    def page(self, page_id: str) -> Page:
        page = self._pages.get(page_id)
        if page is None:
            raise NotFound("Page", page_id)
        return page

    def block(self, block_id: str) -> Block:
        block = self._blocks.get(block_id)
        if block is None:
            raise NotFound("Block", block_id)
        return block

    def find_page(self, page_id: str) -> Optional[Page]:
        return self._pages.get(page_id)

    def find_block(self, block_id: str) -> Optional[Block]:
        return self._blocks.get(block_id)

    def page_by_title(self, title: str) -> Page:
        page_id = self._titles.get(title)
        if page_id is None:
            raise NotFound("Page", title)
        return self._pages[page_id]

    def pages(self) -> List[Page]:
        return list(self._pages.values())

    def root_ids(self, page_id: str) -> List[str]:
        """Ordered ids of a page's root blocks."""
        return list(self.block(self.page(page_id).root_block_id).children)

    def children(self, block_id: str) -> List[Block]:
        """Existing child records of a block, in order."""
        return [
            self._blocks[child_id]
            for child_id in self.block(block_id).children
            if child_id in self._blocks
        ]

    def backrefs(self, target_id: str) -> Set[str]:
        """Ids of the blocks that reference or embed ``target_id``."""
        return set(self._backrefs.get(target_id, ()))

    def walk(self, block_id: str) -> Iterator[Block]:
        """Pre-order walk of a block's subtree, visiting each block once."""
        seen: Set[str] = set()
        stack = [block_id]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            block = self._blocks.get(current)
            if block is None:
                continue
            yield block
            stack.extend(reversed(block.children))

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._blocks) - len(self._pages)


def _copy(value):
    if isinstance(value, list):
        return list(value)
    if isinstance(value, dict):
        return {k: list(v) if isinstance(v, list) else v for k, v in value.items()}
    return value


def is_root_block(block_id: str) -> bool:
    return block_id.startswith(ROOT_PREFIX)
