"""
Base importer interface for Noteforge.

This module defines the abstract interface that all export importers must
implement, plus the text helpers they share for recognising pointer blocks,
headings and daily-note titles.
"""

import re
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from ..graph import GraphStore
from ..models import RefKind, page_id_for_title


BLOCK_REF_PATTERN = re.compile(r'^\(\(([^()\s]+)\)\)$')
BLOCK_EMBED_PATTERN = re.compile(r'^\{\{\s*(?:\[\[)?embed(?:\]\])?\s*:?\s*\(\(([^()\s]+)\)\)\s*\}\}$', re.IGNORECASE)
PAGE_EMBED_PATTERN = re.compile(r'^\{\{\s*(?:\[\[)?embed(?:\]\])?\s*:?\s*\[\[(.+?)\]\]\s*\}\}$', re.IGNORECASE)
HEADING_PATTERN = re.compile(r'^(#{1,6})\s+')

_MONTHS = (
    "Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?"
    "|Sep(?:tember)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?"
)
DAILY_NOTE_PATTERN = re.compile(
    rf'^(?:(?:{_MONTHS}) \d{{1,2}}(?:st|nd|rd|th), \d{{4}}'
    r'|\d{4}[-_]\d{2}[-_]\d{2})$'
)


def parse_pointer(contents: str) -> Tuple[Optional[str], Optional[RefKind]]:
    """
    Recognise a block whose whole content is a reference or an embed.

    Args:
        contents: Raw block text

    Returns:
        Tuple of (target id, kind), or (None, None) for ordinary text
    """
    text = contents.strip()
    match = BLOCK_REF_PATTERN.match(text)
    if match:
        return match.group(1), RefKind.REFERENCE
    match = BLOCK_EMBED_PATTERN.match(text)
    if match:
        return match.group(1), RefKind.EMBED
    match = PAGE_EMBED_PATTERN.match(text)
    if match:
        return page_id_for_title(match.group(1)), RefKind.PAGE_EMBED
    return None, None


def parse_heading(contents: str) -> Tuple[int, str]:
    """Split a leading Markdown heading marker off block text."""
    match = HEADING_PATTERN.match(contents)
    if not match:
        return 0, contents
    return len(match.group(1)), contents[match.end():]


def is_daily_note_title(title: str) -> bool:
    return bool(DAILY_NOTE_PATTERN.match(title.strip()))


class BaseImporter(ABC):
    """
    Abstract base class for all export importers.

    Each importer reads one export format (Logseq JSON, Roam EDN) and inserts
    Page and Block records into a GraphStore. Importers only ingest; they
    never freeze the store.
    """

    @abstractmethod
    def load(self, store: GraphStore) -> int:
        """
        Insert every page and block of the export into ``store``.

        Args:
            store: An unfrozen graph store

        Returns:
            The number of pages inserted
        """
        pass
