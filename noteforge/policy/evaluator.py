"""
Policy evaluator for Noteforge.

Runs the page script over one page at a time and finalizes the page's
inclusion, tags and title. Evaluation only touches the page being evaluated,
so pages can be evaluated in parallel; anything that reads other pages'
finalized state happens after every page has been evaluated.
"""

import logging
from typing import Callable, List, Mapping, Optional, Set, Union

from pydantic import BaseModel, Field

from .. import tags as tag_engine
from ..config import UNBOUNDED, EvaluatorSettings
from ..errors import IssueKind, IssueLog, ScriptExecutionError
from ..graph import GraphStore
from ..models import AllowEmbed, BlockInclude, RenderedBlock, ViewType
from ..resolver import ReferenceResolver, is_embeddable
from ..writer import title_to_slug
from .facade import BlockFacade, PageFacade
from .script import PageScript


class PageOutcome(BaseModel):
    """Result of evaluating one page."""

    page_id: str
    title: str
    include: bool = False
    embeddable: bool = False
    tags: List[str] = Field(default_factory=list)
    surviving_blocks: List[str] = Field(
        default_factory=list,
        description="Ids of the blocks that survive include resolution, in render order"
    )
    script_failed: bool = False


class PolicyEvaluator:
    """
    Applies the default policy and the page script to pages of a frozen store.
    """

    def __init__(
        self,
        store: GraphStore,
        settings: Optional[EvaluatorSettings] = None,
        script: Optional[PageScript] = None,
        issues: Optional[IssueLog] = None
    ):
        """
        Initialize the evaluator.

        Args:
            store: The frozen graph store
            settings: Evaluator settings; defaults apply if omitted
            script: The page script; without one no page is included
            issues: Issue log; defaults to the store's
        """
        self.store = store
        self.settings = settings or EvaluatorSettings()
        self.script = script
        self.issues = issues or store.issues
        self.resolver = ReferenceResolver(store, self.settings, self.issues)

    def traverse(
        self,
        page_id: str,
        max_depth: int,
        visit: Callable[[BlockFacade, int], None]
    ) -> None:
        """
        Pre-order walk of a page's block tree from its synthetic root.

        ``visit`` is called once per node, before the node's children. Depth 0
        is the page root; ``max_depth`` of UNBOUNDED walks the whole tree.
        """
        page = self.store.page(page_id)
        seen: Set[str] = set()
        stack = [(page.root_block_id, 0)]

        while stack:
            block_id, depth = stack.pop()
            if block_id in seen:
                continue
            seen.add(block_id)

            block = self.store.find_block(block_id)
            if block is None:
                self.issues.report(
                    IssueKind.MALFORMED_BLOCK_RECORD,
                    f"Block {block_id} is missing from the store",
                    page_id=page_id,
                    block_id=block_id
                )
                continue

            if depth == 0 and block.view_type is ViewType.INHERIT:
                block.view_type = ViewType.DOCUMENT

            visit(BlockFacade(block), depth)

            if max_depth != UNBOUNDED and depth >= max_depth:
                continue
            for child_id in reversed(block.children):
                stack.append((child_id, depth + 1))

    def autotag(self, mapping: Optional[Mapping[str, str]], block: Union[str, BlockFacade]) -> List[str]:
        """Tags from ``mapping`` whose keywords occur in a block's text."""
        if mapping is None:
            mapping = self.settings.autotag
        block_id = block.id if isinstance(block, BlockFacade) else block
        record = self.store.find_block(block_id)
        if record is None:
            return []
        return tag_engine.autotag(mapping, record.contents)

    def namespace(self, page: PageFacade) -> dict:
        """Names visible to the page script."""
        return {
            "page": page,
            "autotag": self.autotag,
            "ViewType": ViewType,
            "BlockInclude": BlockInclude,
            "AllowEmbed": AllowEmbed,
            "UNBOUNDED": UNBOUNDED,
            "settings": self.settings,
        }

    def evaluate_page(self, page_id: str) -> PageOutcome:
        """
        Evaluate and finalize one page.

        The page always starts from its ingested state, so evaluating it
        again yields the same result.

        Args:
            page_id: The page to evaluate

        Returns:
            The page outcome
        """
        settings = self.settings
        self.store.reset_policy(page_id)
        page = self.store.page(page_id)

        page.tags = tag_engine.add_tags(
            page.tags, tag_engine.attribute_tags(page.attributes, settings.tags_attr)
        )

        if self.script is not None:
            try:
                self.script.run(page_id, self.namespace(PageFacade(page, self)))
            except ScriptExecutionError as e:
                self.issues.report(IssueKind.SCRIPT_EXECUTION_ERROR, str(e), page_id=page_id)
                page.include = False
                page.allow_embedding = AllowEmbed.NO
                return PageOutcome(
                    page_id=page_id,
                    title=page.title,
                    tags=list(page.tags),
                    script_failed=True
                )

        if not page.url_name:
            page.url_name = title_to_slug(page.title)

        survivors = self.resolver.render_page(page_id, expand=False)
        surviving_ids = _flatten(survivors)

        if settings.use_all_hashtags and page.include:
            for block_id in surviving_ids:
                page.tags = tag_engine.add_tags(page.tags, self.store.block(block_id).tags)

        if settings.namespace_tags:
            title, ns_tags = tag_engine.namespace_tags(
                page.title, settings.namespace_tags, settings.namespace_separator
            )
            page.title = title
            page.tags = tag_engine.add_tags(page.tags, ns_tags)

        if settings.omit_tags:
            page.tags = tag_engine.omit_tags(page.tags, settings.omit_tags)
            for block in self.store.walk(page.root_block_id):
                block.tags = tag_engine.omit_tags(block.tags, settings.omit_tags)

        if page.include and set(page.tags) & set(settings.exclude_tags):
            logging.debug(f"Page {page_id} excluded by tag")
            page.include = False

        return PageOutcome(
            page_id=page_id,
            title=page.title,
            include=page.include,
            embeddable=is_embeddable(page, settings.include_all_page_embeds),
            tags=list(page.tags),
            surviving_blocks=surviving_ids
        )


def _flatten(nodes: List[RenderedBlock]) -> List[str]:
    result = []
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        result.append(node.block_id)
        stack.extend(reversed(node.children))
    return result
