"""Page/block graph storage."""

from .store import GraphStore, is_root_block

__all__ = ["GraphStore", "is_root_block"]
