"""
Tag engine for Noteforge.

Tag sets are plain lists kept unique in first-seen order. All operations here
are pure: they return new lists and never touch the graph, so callers decide
when additions and removals happen. Within one page evaluation every addition
(explicit, autotagged, propagated, namespace) is applied before omit_tags().
"""

import re
from typing import Dict, Iterable, List, Mapping, Tuple


INLINE_TAG_PATTERN = re.compile(r'(?:^|(?<=\s))#(?:\[\[([^\]]+)\]\]|([^\s#\[\],.;:!?"\']+))')


def add_tags(current: Iterable[str], new: Iterable[str]) -> List[str]:
    """
    Union ``new`` into ``current``, preserving first-seen order.

    Args:
        current: The existing tag set
        new: Tags to add

    Returns:
        The combined tag list
    """
    result = list(dict.fromkeys(current))
    seen = set(result)
    for tag in new:
        if tag and tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result


def remove_tag(current: Iterable[str], name: str) -> List[str]:
    """Remove one tag; a no-op if it is absent."""
    return [tag for tag in current if tag != name]


def autotag(mapping: Mapping[str, str], text: str) -> List[str]:
    """
    Case-insensitive substring scan of ``text`` against the mapping keys.

    Args:
        mapping: Keyword to tag mapping
        text: Text to scan

    Returns:
        The matched tags, in mapping order, without duplicates
    """
    lowered = text.lower()
    matched = [tag for keyword, tag in mapping.items() if keyword and keyword.lower() in lowered]
    return add_tags([], matched)


def split_namespace(title: str, separator: str = "/") -> List[str]:
    """Split a title into its namespace segments, dropping empty ones."""
    return [segment.strip() for segment in title.split(separator) if segment.strip()]


def namespace_tags(
    title: str,
    mapping: Mapping[str, str],
    separator: str = "/"
) -> Tuple[str, List[str]]:
    """
    Derive tags from a namespaced page title.

    All segments but the last are looked up in ``mapping``; matched values
    become tags. The last segment becomes the new display title.

    Args:
        title: Page title such as "Book/Project X/A Book"
        mapping: Segment to tag mapping
        separator: Namespace separator

    Returns:
        Tuple of (display title, tags)
    """
    segments = split_namespace(title, separator)
    if len(segments) < 2:
        return title, []

    display = segments.pop()
    tags = [mapping[segment] for segment in segments if segment in mapping]
    return display, add_tags([], tags)


def omit_tags(current: Iterable[str], omitted: Iterable[str]) -> List[str]:
    """Subtract the omit set from a final tag set."""
    omit = set(omitted)
    return [tag for tag in current if tag not in omit]


def extract_inline_tags(text: str) -> List[str]:
    """Lexically extract ``#tag`` and ``#[[multi word tag]]`` from block text."""
    found = []
    for match in INLINE_TAG_PATTERN.finditer(text):
        found.append(match.group(1) or match.group(2))
    return add_tags([], found)


def attribute_tags(attributes: Dict[str, List[str]], attr_name) -> List[str]:
    """Tags declared through a page attribute such as ``tags:: a, b``."""
    if not attr_name:
        return []
    for name, values in attributes.items():
        if name.lower() == attr_name.lower():
            return add_tags([], (value.strip().strip("#").strip("[]") for value in values))
    return []
