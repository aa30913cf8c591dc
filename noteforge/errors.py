"""
Error taxonomy and run issue tracking for Noteforge.

Most problems met while exporting a graph are recovered locally and recorded
in an IssueLog so that a run can finish and report them at the end. Only an
unreachable cache store stops a run.
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class IssueKind(str, Enum):
    CYCLE_DETECTED = "CycleDetected"
    MISSING_REFERENCE_TARGET = "MissingReferenceTarget"
    MAX_EMBED_DEPTH_EXCEEDED = "MaxEmbedDepthExceeded"
    MALFORMED_BLOCK_RECORD = "MalformedBlockRecord"
    SCRIPT_EXECUTION_ERROR = "ScriptExecutionError"
    CACHE_STORE_UNAVAILABLE = "CacheStoreUnavailable"


class NoteforgeError(Exception):
    """Base class for all Noteforge exceptions."""


class NotFound(NoteforgeError, KeyError):
    """Raised when a page or block id is not present in the graph store."""

    def __init__(self, kind: str, item_id: str):
        super().__init__(f"{kind} not found: {item_id}")
        self.kind = kind
        self.item_id = item_id

    def __str__(self) -> str:
        return self.args[0]


class ScriptExecutionError(NoteforgeError):
    """Raised when the page script fails for a page."""

    def __init__(self, page_id: str, message: str):
        super().__init__(f"Script failed on page '{page_id}': {message}")
        self.page_id = page_id


class CacheStoreUnavailable(NoteforgeError):
    """Raised when the render cache cannot be reached. Fatal for a run."""


@dataclass(frozen=True)
class Issue:
    """A recovered (or fatal) problem noticed during a run."""

    kind: IssueKind
    message: str
    page_id: Optional[str] = None
    block_id: Optional[str] = None

    @property
    def fatal(self) -> bool:
        return self.kind is IssueKind.CACHE_STORE_UNAVAILABLE


class IssueLog:
    """
    Thread-safe collector of issues reported by pipeline workers.
    """

    def __init__(self):
        self._issues: List[Issue] = []
        self._lock = threading.Lock()

    def report(
        self,
        kind: IssueKind,
        message: str,
        page_id: Optional[str] = None,
        block_id: Optional[str] = None
    ) -> Issue:
        """
        Record an issue and log it.

        Args:
            kind: The issue category
            message: Human-readable description
            page_id: Affected page, if known
            block_id: Affected block, if known

        Returns:
            The recorded issue
        """
        issue = Issue(kind=kind, message=message, page_id=page_id, block_id=block_id)
        with self._lock:
            self._issues.append(issue)

        where = ""
        if page_id:
            where = f" [page={page_id}, block={block_id}]" if block_id else f" [page={page_id}]"
        if issue.fatal or kind is IssueKind.SCRIPT_EXECUTION_ERROR:
            logging.error(f"{kind.value}: {message}{where}")
        else:
            logging.warning(f"{kind.value}: {message}{where}")
        return issue

    @property
    def issues(self) -> List[Issue]:
        with self._lock:
            return list(self._issues)

    def by_kind(self, kind: IssueKind) -> List[Issue]:
        return [issue for issue in self.issues if issue.kind is kind]

    def counts(self) -> Dict[IssueKind, int]:
        return dict(Counter(issue.kind for issue in self.issues))

    @property
    def has_fatal(self) -> bool:
        return any(issue.fatal for issue in self.issues)

    @property
    def has_warnings(self) -> bool:
        return any(not issue.fatal for issue in self.issues)

    def summary(self) -> List[str]:
        """
        Build the end-of-run summary: a count per kind followed by the
        affected page/block ids.
        """
        lines = []
        grouped: Dict[IssueKind, List[Issue]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.kind, []).append(issue)

        for kind in IssueKind:
            items = grouped.get(kind)
            if not items:
                continue
            lines.append(f"{kind.value}: {len(items)}")
            for issue in items:
                target = issue.page_id or "-"
                if issue.block_id:
                    target += f"/{issue.block_id}"
                lines.append(f"  {target}: {issue.message}")
        return lines

    def exit_code(self, fail_on_warnings: bool = False) -> int:
        if self.has_fatal:
            return 2
        if fail_on_warnings and self.has_warnings:
            return 1
        return 0
