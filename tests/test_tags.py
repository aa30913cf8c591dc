"""
Tests for the tag engine.
"""

import unittest

from noteforge import tags


class TestTagSets(unittest.TestCase):
    """Test tag set operations."""

    def test_add_tags_preserves_first_seen_order(self):
        result = tags.add_tags(["b", "a"], ["c", "a", "d", "c"])
        self.assertEqual(result, ["b", "a", "c", "d"])

    def test_remove_missing_tag_is_noop(self):
        self.assertEqual(tags.remove_tag(["a", "b"], "z"), ["a", "b"])
        self.assertEqual(tags.remove_tag(["a", "b"], "a"), ["b"])

    def test_add_then_omit(self):
        current = tags.add_tags([], ["Articles", "SQL"])
        self.assertEqual(tags.omit_tags(current, ["Articles"]), ["SQL"])


class TestAutotag(unittest.TestCase):
    """Test keyword autotagging."""

    def test_case_insensitive_substring(self):
        mapping = {"postgres": "Databases", "SQL": "SQL", "rust": "Rust"}
        result = tags.autotag(mapping, "Tuning PostgreSQL queries")
        self.assertEqual(result, ["Databases", "SQL"])

    def test_no_match(self):
        self.assertEqual(tags.autotag({"rust": "Rust"}, "Gardening notes"), [])

    def test_duplicate_values_collapsed(self):
        mapping = {"sql": "Databases", "duckdb": "Databases"}
        self.assertEqual(tags.autotag(mapping, "DuckDB speaks SQL"), ["Databases"])


class TestNamespaceTags(unittest.TestCase):
    """Test namespace-derived tagging."""

    def test_namespace_split(self):
        title, found = tags.namespace_tags("Book/Project X/A Book", {"Book": "Books"})
        self.assertEqual(title, "A Book")
        self.assertEqual(found, ["Books"])

    def test_title_without_namespace_unchanged(self):
        self.assertEqual(tags.namespace_tags("Plain", {"Plain": "x"}), ("Plain", []))

    def test_custom_separator(self):
        title, found = tags.namespace_tags("Talks::Rust Conf", {"Talks": "Talks"}, "::")
        self.assertEqual(title, "Rust Conf")
        self.assertEqual(found, ["Talks"])

    def test_split_namespace_pop(self):
        segments = tags.split_namespace("a/b/c")
        self.assertEqual(segments.pop(), "c")
        self.assertEqual(segments, ["a", "b"])


class TestTagExtraction(unittest.TestCase):
    """Test lexical tag extraction."""

    def test_inline_tags(self):
        text = "Reading #books and #[[machine learning]] notes, not a#tag"
        self.assertEqual(tags.extract_inline_tags(text), ["books", "machine learning"])

    def test_attribute_tags(self):
        attributes = {"Tags": ["#Public", "[[Rust]]", "notes"]}
        self.assertEqual(tags.attribute_tags(attributes, "tags"), ["Public", "Rust", "notes"])

    def test_attribute_tags_disabled(self):
        self.assertEqual(tags.attribute_tags({"tags": ["a"]}, None), [])
