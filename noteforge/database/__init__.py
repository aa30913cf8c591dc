"""Render cache storage."""

from .manager import RenderCache

__all__ = ["RenderCache"]
