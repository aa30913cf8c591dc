"""
Markdown page writer for Noteforge.

Serialises a RenderedPage into Markdown with YAML front matter. The output
must be deterministic for a given render tree: the render cache fingerprints
these bytes to decide whether a file changed.
"""

import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import yaml

from .models import ContentKind, RenderedBlock, RenderedPage, ViewType


def title_to_slug(title: str) -> str:
    """
    Build a URL-safe slug from a page title.

    Words are split on whitespace, '/', '-' and ':', reduced to lowercase
    letters and digits, and joined with underscores.
    """
    words = []
    for word in _split_words(title):
        cleaned = "".join(c.lower() for c in word if c.isalnum())
        if cleaned:
            words.append(cleaned)
    return "_".join(words)


def _split_words(title: str) -> List[str]:
    words, current = [], []
    for c in title:
        if c.isspace() or c in "/-:":
            words.append("".join(current))
            current = []
        else:
            current.append(c)
    words.append("".join(current))
    return words


def render_markdown(page: RenderedPage) -> str:
    """
    Render a page to Markdown.

    Args:
        page: The finalized page

    Returns:
        The Markdown text, front matter first
    """
    front_matter = {
        "title": page.title,
        "tags": list(page.tags),
        "url": page.url,
    }
    if page.created_at is not None:
        front_matter["created"] = page.created_at
    if page.edited_at is not None:
        front_matter["edited"] = page.edited_at

    lines = ["---", yaml.safe_dump(front_matter, sort_keys=True, allow_unicode=True).rstrip(), "---", ""]
    _render_nodes(page.blocks, page.view_type, "", lines)
    return "\n".join(lines).rstrip() + "\n"


def _node_text(node: RenderedBlock) -> str:
    if node.kind is ContentKind.PAGE_EMBED:
        return f"**{node.content}**"
    return node.content


def _render_nodes(nodes: List[RenderedBlock], style: ViewType, indent: str, lines: List[str]) -> None:
    for number, node in enumerate(nodes, 1):
        text = _node_text(node)

        if style is ViewType.DOCUMENT:
            if text:
                prefix = "#" * node.heading + " " if node.heading else ""
                lines.append(_indent_lines(indent + prefix, indent, text))
                lines.append("")
            child_indent = indent
        else:
            marker = f"{number}. " if style is ViewType.NUMBERED else "- "
            if node.heading and text:
                text = "#" * node.heading + " " + text
            lines.append(_indent_lines(indent + marker, indent + " " * len(marker), text))
            child_indent = indent + " " * len(marker)

        _render_nodes(node.embedded, node.view_type, child_indent, lines)
        _render_nodes(node.children, node.view_type, child_indent, lines)


def _indent_lines(first: str, rest: str, text: str) -> str:
    parts = text.splitlines() or [""]
    return "\n".join([first + parts[0]] + [rest + part for part in parts[1:]])


def write_page(path: str, data: bytes, edited_at: Optional[datetime] = None) -> None:
    """
    Write rendered bytes to ``path``, creating parent directories.

    Args:
        path: Output file path
        data: Rendered bytes
        edited_at: When set, the file's mtime is set to this time
    """
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, 'wb') as f:
        f.write(data)
    if edited_at is not None:
        timestamp = edited_at.timestamp()
        os.utime(output, (timestamp, timestamp))
