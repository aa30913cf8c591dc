"""
Cache models for Noteforge.
"""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field


class CacheDecision(str, Enum):
    """Outcome of comparing a render against the stored fingerprint."""

    SKIP = "skip"
    WRITE = "write"


class CacheRecord(BaseModel):
    """
    Represents the last rendered state of one output file.
    """

    filename: str = Field(
        ...,
        description="Output filename, unique across a run"
    )

    fingerprint: str = Field(
        ...,
        description="SHA-256 hex digest of the rendered bytes"
    )

    created_at: datetime = Field(
        default_factory=datetime.now,
        description="When the file was first rendered"
    )

    edited_at: datetime = Field(
        default_factory=datetime.now,
        description="When the rendered content last changed"
    )
