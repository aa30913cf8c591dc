"""
Graph data models for Noteforge.

This module defines the Page and Block records that every importer produces
and that the policy evaluator, resolver and writer operate on. Records are
stored flat in a GraphStore and point at each other by id only.
"""

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class ViewType(str, Enum):
    """Rendering hint for a block's children."""

    INHERIT = "inherit"
    BULLET = "bullet"
    NUMBERED = "numbered"
    DOCUMENT = "document"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ViewType":
        """Parse a view type name as found in exports (":document", "numbered", ...)."""
        if not value:
            return cls.INHERIT
        name = str(value).lstrip(":").lower()
        try:
            return cls(name)
        except ValueError:
            return cls.INHERIT

    def resolve_with_parent(self, parent: "ViewType") -> "ViewType":
        return parent if self is ViewType.INHERIT else self


class BlockInclude(str, Enum):
    """Inclusion policy for a block."""

    UNSET = "unset"
    INCLUDE = "include"
    EXCLUDE = "exclude"
    ONLY_CHILDREN = "only_children"
    IF_CHILDREN_PRESENT = "if_children_present"
    JUST_BLOCK = "just_block"


class AllowEmbed(str, Enum):
    """Whether other pages may embed a page."""

    DEFAULT = "default"
    YES = "yes"
    NO = "no"


class RefKind(str, Enum):
    """Kind of pointer a block represents instead of original content."""

    REFERENCE = "reference"
    EMBED = "embed"
    PAGE_EMBED = "page_embed"


class Block(BaseModel):
    """
    One node in a page's outline tree.

    Children are held as an ordered list of ids owned by this block; the
    parent is a plain id back-reference.
    """

    id: str = Field(
        ...,
        description="Identifier, stable within the export"
    )

    page_id: str = Field(
        ...,
        description="Id of the owning page"
    )

    parent_id: Optional[str] = Field(
        default=None,
        description="Id of the parent block, or the page root block for top-level blocks"
    )

    children: List[str] = Field(
        default_factory=list,
        description="Ordered ids of the child blocks"
    )

    contents: str = Field(
        default="",
        description="Raw text of the block as exported"
    )

    order: int = Field(
        default=0,
        description="Position among siblings in the source"
    )

    tags: List[str] = Field(
        default_factory=list,
        description="Tags in first-seen order, without duplicates"
    )

    attributes: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Attribute name to ordered values"
    )

    ref_target: Optional[str] = Field(
        default=None,
        description="Id of the block or page this block points at"
    )

    ref_kind: Optional[RefKind] = Field(
        default=None,
        description="How the pointer target is included"
    )

    view_type: ViewType = ViewType.INHERIT
    heading: int = 0
    include: BlockInclude = BlockInclude.UNSET

    created_at: Optional[int] = None
    edited_at: Optional[int] = None

    @property
    def is_pointer(self) -> bool:
        return self.ref_target is not None and self.ref_kind is not None


class Page(BaseModel):
    """
    A top-level exportable document: a note or a journal entry.

    The ordered root blocks are the children of the synthetic root block
    referenced by ``root_block_id``, which stands for the page itself at
    traversal depth 0.
    """

    id: str = Field(
        ...,
        description="Stable key derived from the source title or filename"
    )

    title: str = Field(
        ...,
        description="Display title; may be rewritten by namespace splitting"
    )

    is_journal: bool = Field(
        default=False,
        description="True for daily notes pages"
    )

    root_block_id: str = Field(
        default="",
        description="Id of the synthetic depth-0 block, assigned by the store"
    )

    url_base: str = ""
    url_name: str = ""
    path_base: str = ""
    path_name: str = ""

    include: bool = False
    allow_embedding: AllowEmbed = AllowEmbed.DEFAULT

    tags: List[str] = Field(default_factory=list)
    attributes: Dict[str, List[str]] = Field(default_factory=dict)

    created_at: Optional[int] = None
    edited_at: Optional[int] = None


def page_id_for_title(title: str) -> str:
    """Derive the page id used for lookups and page embeds from a title."""
    return title.strip().lower()
