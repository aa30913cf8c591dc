"""
Reference resolution and render-tree assembly for Noteforge.

The resolver turns a page's evaluated block tree into RenderedBlock nodes:
it applies the bottom-up inclusion rules (OnlyChildren substitution,
IfChildrenPresent), resolves inherited view types, and expands block
references, block embeds and page embeds with cycle and depth guards.

Cross-page reads (page embeds, backlinks, references into other pages) are
only valid once every page has finished policy evaluation.
"""

import logging
from typing import FrozenSet, List, Optional

from .config import EvaluatorSettings
from .errors import IssueKind, IssueLog
from .graph import GraphStore
from .models import (
    AllowEmbed,
    Block,
    BlockInclude,
    ContentKind,
    EffectiveContent,
    Page,
    RefKind,
    RenderedBlock,
    ViewType,
)
from .models.render import BROKEN_PLACEHOLDER, CYCLE_PLACEHOLDER, TRUNCATED_PLACEHOLDER


_RENDERING_STATES = (
    BlockInclude.INCLUDE,
    BlockInclude.ONLY_CHILDREN,
    BlockInclude.IF_CHILDREN_PRESENT,
)


def effective_include(block: Block, carried: bool) -> BlockInclude:
    """
    Resolve a block's include value against its ancestry.

    An unset block is carried as Include under an ancestor that renders,
    and is excluded otherwise.
    """
    if block.include is BlockInclude.UNSET:
        return BlockInclude.INCLUDE if carried else BlockInclude.EXCLUDE
    return block.include


def is_embeddable(page: Page, include_all_page_embeds: bool = False) -> bool:
    """Whether other pages may embed ``page``, given its finalized flags."""
    if page.allow_embedding is AllowEmbed.NO:
        return False
    if page.allow_embedding is AllowEmbed.YES:
        return True
    return page.include or include_all_page_embeds


class ReferenceResolver:
    """
    Expands references and embeds and assembles render trees.
    """

    def __init__(
        self,
        store: GraphStore,
        settings: Optional[EvaluatorSettings] = None,
        issues: Optional[IssueLog] = None
    ):
        """
        Initialize the resolver.

        Args:
            store: The frozen graph store
            settings: Evaluator settings (embed depth, page embed policy)
            issues: Issue log for recovered problems; defaults to the store's
        """
        self.store = store
        self.settings = settings or EvaluatorSettings()
        self.issues = issues or store.issues

    # Page rendering

    def render_page(self, page_id: str, expand: bool = True) -> List[RenderedBlock]:
        """
        Build the final render tree for a page's root blocks.

        Args:
            page_id: The page to render
            expand: When False, pointer blocks keep their raw text and no
                other page is read. Used during policy evaluation.

        Returns:
            The surviving root nodes, in order
        """
        page = self.store.page(page_id)
        root = self.store.block(page.root_block_id)
        carried = root.include in _RENDERING_STATES
        view = root.view_type.resolve_with_parent(ViewType.DOCUMENT)

        nodes: List[RenderedBlock] = []
        for child in self.store.children(root.id):
            nodes.extend(self._render_block(
                child,
                carried=carried,
                honor_include=True,
                parent_view=view,
                visited=frozenset([page.id]),
                depth=0,
                expand=expand
            ))
        return nodes

    def _render_block(
        self,
        block: Block,
        carried: bool,
        honor_include: bool,
        parent_view: ViewType,
        visited: FrozenSet[str],
        depth: int,
        expand: bool
    ) -> List[RenderedBlock]:
        include = effective_include(block, carried) if honor_include else BlockInclude.INCLUDE
        if include is BlockInclude.EXCLUDE:
            return []

        view = block.view_type.resolve_with_parent(parent_view)

        children: List[RenderedBlock] = []
        if include is not BlockInclude.JUST_BLOCK:
            for child in self.store.children(block.id):
                children.extend(self._render_block(
                    child,
                    carried=True,
                    honor_include=honor_include,
                    parent_view=view,
                    visited=visited,
                    depth=depth,
                    expand=expand
                ))

        if include is BlockInclude.ONLY_CHILDREN:
            return children
        if include is BlockInclude.IF_CHILDREN_PRESENT and not children:
            return []

        node = self._make_node(block, view, visited, depth, expand)
        node.children = children
        if node.is_blank():
            return []
        return [node]

    def _make_node(
        self,
        block: Block,
        view: ViewType,
        visited: FrozenSet[str],
        depth: int,
        expand: bool
    ) -> RenderedBlock:
        node = RenderedBlock(
            block_id=block.id,
            content=block.contents,
            view_type=view,
            heading=block.heading,
        )

        if not expand:
            return node

        node.backlinks = self._backlinks(block.id)
        if not block.is_pointer:
            return node

        effective = self.resolve(
            block.ref_target,
            block.ref_kind,
            visited=visited | {block.id},
            source_block_id=block.id,
            depth=depth,
            parent_view=view
        )
        node.kind = effective.kind
        node.content = effective.text
        node.target_id = effective.target_id
        node.source_block_id = effective.source_block_id
        node.embedded = effective.embedded
        return node

    def _backlinks(self, block_id: str) -> List[str]:
        result = []
        for referrer_id in self.store.backrefs(block_id):
            referrer = self.store.find_block(referrer_id)
            if referrer is None:
                continue
            page = self.store.find_page(referrer.page_id)
            if page is not None and page.include:
                result.append(referrer_id)
        return sorted(result)

    # Pointer resolution

    def resolve(
        self,
        target_id: str,
        kind: RefKind,
        visited: Optional[FrozenSet[str]] = None,
        source_block_id: Optional[str] = None,
        depth: int = 0,
        parent_view: ViewType = ViewType.BULLET
    ) -> EffectiveContent:
        """
        Resolve a pointer into literal content.

        Args:
            target_id: Id of the referenced block, or page for page embeds
            kind: Reference, Embed or PageEmbed
            visited: Ids already being expanded on the current path
            source_block_id: Id of the pointing block
            depth: Current embed expansion depth
            parent_view: View type the embedded subtree inherits from

        Returns:
            The effective content; placeholders for cycles, missing targets
            and exceeded depth
        """
        visited = visited or frozenset()
        page_id = self._page_of(source_block_id)

        if target_id in visited:
            self.issues.report(
                IssueKind.CYCLE_DETECTED,
                f"Cyclic {kind.value} to {target_id}",
                page_id=page_id,
                block_id=source_block_id
            )
            return EffectiveContent(
                kind=ContentKind.CYCLE,
                text=CYCLE_PLACEHOLDER,
                target_id=target_id,
                source_block_id=source_block_id
            )

        if kind is RefKind.REFERENCE:
            return self._resolve_reference(target_id, visited, source_block_id, page_id)

        if depth >= self.settings.max_embed_depth:
            self.issues.report(
                IssueKind.MAX_EMBED_DEPTH_EXCEEDED,
                f"Embed of {target_id} exceeds depth {self.settings.max_embed_depth}",
                page_id=page_id,
                block_id=source_block_id
            )
            return EffectiveContent(
                kind=ContentKind.TRUNCATED,
                text=TRUNCATED_PLACEHOLDER,
                target_id=target_id,
                source_block_id=source_block_id
            )

        if kind is RefKind.PAGE_EMBED:
            return self._resolve_page_embed(
                target_id, visited, source_block_id, page_id, depth, parent_view
            )
        return self._resolve_block_embed(
            target_id, visited, source_block_id, page_id, depth, parent_view
        )

    def _resolve_reference(
        self,
        target_id: str,
        visited: FrozenSet[str],
        source_block_id: Optional[str],
        page_id: Optional[str]
    ) -> EffectiveContent:
        target = self.store.find_block(target_id)
        if target is None:
            return self._broken(target_id, source_block_id, page_id)

        if target.is_pointer and target.ref_kind is RefKind.REFERENCE:
            chained = self.resolve(
                target.ref_target,
                RefKind.REFERENCE,
                visited=visited | {target_id},
                source_block_id=source_block_id
            )
            if chained.kind is ContentKind.REFERENCE:
                chained.target_id = target_id
            return chained

        return EffectiveContent(
            kind=ContentKind.REFERENCE,
            text=target.contents,
            target_id=target_id,
            source_block_id=source_block_id
        )

    def _resolve_block_embed(
        self,
        target_id: str,
        visited: FrozenSet[str],
        source_block_id: Optional[str],
        page_id: Optional[str],
        depth: int,
        parent_view: ViewType
    ) -> EffectiveContent:
        target = self.store.find_block(target_id)
        if target is None:
            return self._broken(target_id, source_block_id, page_id)

        owner = self.store.find_page(target.page_id)
        if owner is not None and owner.allow_embedding is AllowEmbed.NO:
            logging.debug(f"Page {owner.id} does not allow embedding; omitting embed of {target_id}")
            return EffectiveContent(
                kind=ContentKind.OMITTED,
                target_id=target_id,
                source_block_id=source_block_id
            )

        subtree = self._render_block(
            target,
            carried=True,
            honor_include=False,
            parent_view=parent_view,
            visited=visited | {target_id},
            depth=depth + 1,
            expand=True
        )
        return EffectiveContent(
            kind=ContentKind.EMBED,
            target_id=target_id,
            source_block_id=source_block_id,
            embedded=subtree
        )

    def _resolve_page_embed(
        self,
        target_id: str,
        visited: FrozenSet[str],
        source_block_id: Optional[str],
        page_id: Optional[str],
        depth: int,
        parent_view: ViewType
    ) -> EffectiveContent:
        page = self.store.find_page(target_id)
        if page is None:
            return self._broken(target_id, source_block_id, page_id)

        if not is_embeddable(page, self.settings.include_all_page_embeds):
            logging.debug(f"Page {target_id} does not allow embedding; omitting embed")
            return EffectiveContent(
                kind=ContentKind.OMITTED,
                target_id=target_id,
                source_block_id=source_block_id
            )

        root = self.store.block(page.root_block_id)
        view = root.view_type.resolve_with_parent(parent_view)
        carried = root.include in _RENDERING_STATES
        embedded: List[RenderedBlock] = []
        for child in self.store.children(root.id):
            embedded.extend(self._render_block(
                child,
                carried=carried,
                honor_include=True,
                parent_view=view,
                visited=visited | {target_id},
                depth=depth + 1,
                expand=True
            ))

        return EffectiveContent(
            kind=ContentKind.PAGE_EMBED,
            text=page.title,
            target_id=target_id,
            source_block_id=source_block_id,
            embedded=embedded
        )

    def _broken(
        self,
        target_id: str,
        source_block_id: Optional[str],
        page_id: Optional[str]
    ) -> EffectiveContent:
        self.issues.report(
            IssueKind.MISSING_REFERENCE_TARGET,
            f"Reference target {target_id} not found",
            page_id=page_id,
            block_id=source_block_id
        )
        return EffectiveContent(
            kind=ContentKind.BROKEN,
            text=BROKEN_PLACEHOLDER,
            target_id=target_id,
            source_block_id=source_block_id
        )

    def _page_of(self, block_id: Optional[str]) -> Optional[str]:
        if block_id is None:
            return None
        block = self.store.find_block(block_id)
        return block.page_id if block else None
