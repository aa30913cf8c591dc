"""
Render output models for Noteforge.

These are the finalized structures handed to the page writer after policy
evaluation and reference resolution.
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

from .graph import ViewType


class ContentKind(str, Enum):
    """What produced a block's effective content."""

    TEXT = "text"
    REFERENCE = "reference"
    EMBED = "embed"
    PAGE_EMBED = "page_embed"
    CYCLE = "cycle"
    BROKEN = "broken"
    TRUNCATED = "truncated"
    OMITTED = "omitted"


CYCLE_PLACEHOLDER = "[cyclic reference]"
BROKEN_PLACEHOLDER = "[broken reference]"
TRUNCATED_PLACEHOLDER = "[embed depth exceeded]"


class RenderedBlock(BaseModel):
    """A block that survived inclusion, with its content fully resolved."""

    block_id: str = Field(
        ...,
        description="Id of the block this node renders"
    )

    content: str = Field(
        default="",
        description="Literal content with references and embeds expanded"
    )

    kind: ContentKind = ContentKind.TEXT

    source_block_id: Optional[str] = Field(
        default=None,
        description="For references, the id of the original pointing block"
    )

    target_id: Optional[str] = Field(
        default=None,
        description="For pointers, the id of the referenced block or page"
    )

    view_type: ViewType = ViewType.BULLET
    heading: int = 0

    embedded: List['RenderedBlock'] = Field(
        default_factory=list,
        description="Subtree pulled in by a block or page embed"
    )

    children: List['RenderedBlock'] = Field(
        default_factory=list,
        description="The block's own surviving children"
    )

    backlinks: List[str] = Field(
        default_factory=list,
        description="Ids of blocks on included pages that point at this block"
    )

    def is_blank(self) -> bool:
        return not self.content.strip() and not self.embedded and not self.children


class EffectiveContent(BaseModel):
    """Result of resolving a single block's content."""

    kind: ContentKind = ContentKind.TEXT
    text: str = ""
    target_id: Optional[str] = None
    source_block_id: Optional[str] = None
    embedded: List[RenderedBlock] = Field(default_factory=list)


class RenderedPage(BaseModel):
    """A finalized page ready for the writer."""

    page_id: str
    title: str
    path: str = Field(
        ...,
        description="Output file path; also the render cache key"
    )
    url: str = ""
    tags: List[str] = Field(default_factory=list)
    include: bool = True
    view_type: ViewType = ViewType.DOCUMENT
    blocks: List[RenderedBlock] = Field(default_factory=list)
    created_at: Optional[int] = None
    edited_at: Optional[int] = None


RenderedBlock.model_rebuild()
