"""Data models for Noteforge."""

from .graph import (
    AllowEmbed,
    Block,
    BlockInclude,
    Page,
    RefKind,
    ViewType,
    page_id_for_title,
)
from .render import ContentKind, EffectiveContent, RenderedBlock, RenderedPage
from .cache import CacheDecision, CacheRecord

__all__ = [
    "AllowEmbed",
    "Block",
    "BlockInclude",
    "Page",
    "RefKind",
    "ViewType",
    "page_id_for_title",
    "ContentKind",
    "EffectiveContent",
    "RenderedBlock",
    "RenderedPage",
    "CacheDecision",
    "CacheRecord"
]
