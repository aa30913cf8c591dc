"""
Unit tests for core Noteforge components.

Tests configuration management, data models, the render cache, the issue
log and the page writer.
"""

import os
import shutil
import tempfile
import unittest
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from noteforge.config import UNBOUNDED, ConfigManager, EvaluatorSettings
from noteforge.database import RenderCache
from noteforge.errors import CacheStoreUnavailable, IssueKind, IssueLog, NotFound
from noteforge.models import (
    Block,
    BlockInclude,
    CacheDecision,
    ContentKind,
    Page,
    RenderedBlock,
    RenderedPage,
    ViewType,
    page_id_for_title,
)
from noteforge.writer import render_markdown, title_to_slug, write_page


class TestConfigManager(unittest.TestCase):
    """Test configuration management functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.temp_dir) / "test_config.yaml"

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_config_creation_with_defaults(self):
        """Test config manager falls back to defaults when file missing."""
        config = ConfigManager(str(self.config_path))

        self.assertEqual(config.output_directory, "pages")
        self.assertEqual(config.product, "logseq")
        self.assertEqual(config.cache_filename, "noteforge.db")
        self.assertIsNone(config.script_path)
        self.assertFalse(config.fail_on_warnings)

    def test_config_loading_from_file(self):
        """Test loading configuration from YAML file."""
        test_config = """
paths:
  output: "site/pages"
  script: "publish.py"

tags:
  omit: ["Draft"]
  namespace:
    Book: "Books"

embeds:
  max_depth: 2
"""
        with open(self.config_path, 'w') as f:
            f.write(test_config)

        config = ConfigManager(str(self.config_path))

        self.assertEqual(config.output_directory, "site/pages")
        self.assertEqual(config.script_path, "publish.py")
        self.assertEqual(config.get("tags.namespace.Book"), "Books")
        # Untouched keys in a partially given section keep their defaults
        self.assertEqual(config.get("paths.cache_db"), "noteforge.db")
        self.assertEqual(config.get("embeds.include_all_page_embeds"), False)

    def test_dot_notation_access(self):
        """Test accessing config values with dot notation."""
        config = ConfigManager(str(self.config_path))

        self.assertEqual(config.get("embeds.max_depth"), 4)
        self.assertEqual(config.get("traversal.max_depth"), UNBOUNDED)
        self.assertIsNone(config.get("nonexistent.key"))
        self.assertEqual(config.get("nonexistent.key", "default"), "default")
        self.assertIsInstance(config.get_section("tags"), dict)

    def test_invalid_yaml_falls_back_to_defaults(self):
        with open(self.config_path, 'w') as f:
            f.write("tags: [unclosed")

        config = ConfigManager(str(self.config_path))
        self.assertEqual(config.output_directory, "pages")

    def test_config_reload_and_set(self):
        """Test configuration reloading and overrides."""
        with open(self.config_path, 'w') as f:
            f.write("performance:\n  workers: 2\n")

        config = ConfigManager(str(self.config_path))
        self.assertEqual(config.get("performance.workers"), 2)

        config.set("performance.workers", 8)
        config.set("output.base_url", "https://example.com/notes")
        self.assertEqual(config.get("performance.workers"), 8)

        with open(self.config_path, 'w') as f:
            f.write("performance:\n  workers: 3\n")
        config.reload()
        self.assertEqual(config.get("performance.workers"), 3)
        self.assertEqual(config.get("output.base_url"), "")

    def test_evaluator_settings(self):
        with open(self.config_path, 'w') as f:
            f.write(
                "tags:\n"
                "  omit: [Articles]\n"
                "  autotag: {rust: Rust}\n"
                "embeds:\n"
                "  max_depth: 3\n"
            )

        settings = ConfigManager(str(self.config_path)).evaluator_settings()
        self.assertIsInstance(settings, EvaluatorSettings)
        self.assertEqual(settings.omit_tags, ["Articles"])
        self.assertEqual(settings.autotag, {"rust": "Rust"})
        self.assertEqual(settings.max_embed_depth, 3)
        self.assertEqual(settings.max_depth, UNBOUNDED)
        with self.assertRaises(Exception):
            settings.workers = 1


class TestDataModels(unittest.TestCase):
    """Test data model validation and creation."""

    def test_block_defaults(self):
        block = Block(id="b1", page_id="p")
        self.assertEqual(block.include, BlockInclude.UNSET)
        self.assertEqual(block.view_type, ViewType.INHERIT)
        self.assertEqual(block.children, [])
        self.assertFalse(block.is_pointer)

    def test_page_defaults_to_excluded(self):
        page = Page(id="p", title="P")
        self.assertFalse(page.include)
        self.assertEqual(page.tags, [])

    def test_view_type_parse(self):
        self.assertEqual(ViewType.parse(":document"), ViewType.DOCUMENT)
        self.assertEqual(ViewType.parse("Numbered"), ViewType.NUMBERED)
        self.assertEqual(ViewType.parse(None), ViewType.INHERIT)
        self.assertEqual(ViewType.parse("sideways"), ViewType.INHERIT)

    def test_view_type_inheritance(self):
        self.assertEqual(ViewType.INHERIT.resolve_with_parent(ViewType.NUMBERED), ViewType.NUMBERED)
        self.assertEqual(ViewType.BULLET.resolve_with_parent(ViewType.NUMBERED), ViewType.BULLET)

    def test_page_id_for_title(self):
        self.assertEqual(page_id_for_title("  Rust Notes "), "rust notes")


class TestRenderCache(unittest.TestCase):
    """Test render cache functionality."""

    def setUp(self):
        """Set up test database."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.temp_dir) / "test.db"

    def tearDown(self):
        """Clean up test database."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_database_initialization(self):
        """Test database creation and table initialization."""
        with RenderCache(str(self.db_path)) as cache:
            self.assertTrue(self.db_path.exists())
            self.assertIsNotNone(cache.connection)
            self.assertEqual(cache.count(), 0)

    def test_identical_render_is_skipped(self):
        with RenderCache(str(self.db_path)) as cache:
            self.assertEqual(cache.decide("pages/a.md", b"hello"), CacheDecision.WRITE)
            first = cache.lookup("pages/a.md")

            self.assertEqual(cache.decide("pages/a.md", b"hello"), CacheDecision.SKIP)
            second = cache.lookup("pages/a.md")

        self.assertEqual(first.edited_at, second.edited_at)
        self.assertEqual(first.created_at, second.created_at)
        self.assertEqual(first.fingerprint, RenderCache.calculate_fingerprint(b"hello"))

    def test_changed_render_is_written(self):
        with RenderCache(str(self.db_path)) as cache:
            cache.decide("pages/a.md", b"hello")
            first = cache.lookup("pages/a.md")

            self.assertEqual(cache.decide("pages/a.md", b"hello, world"), CacheDecision.WRITE)
            second = cache.lookup("pages/a.md")

        self.assertNotEqual(first.fingerprint, second.fingerprint)
        self.assertGreaterEqual(second.edited_at, first.edited_at)
        self.assertEqual(first.created_at, second.created_at)

    def test_records_survive_reconnect(self):
        with RenderCache(str(self.db_path)) as cache:
            cache.decide("pages/a.md", b"hello")

        with RenderCache(str(self.db_path)) as cache:
            self.assertEqual(cache.decide("pages/a.md", b"hello"), CacheDecision.SKIP)

    def test_rename_inherits_timestamps(self):
        with RenderCache(str(self.db_path)) as cache:
            cache.decide("pages/old.md", b"same content")
            old = cache.lookup("pages/old.md")

            self.assertEqual(cache.decide("pages/new.md", b"same content"), CacheDecision.WRITE)
            new = cache.lookup("pages/new.md")

        self.assertEqual(new.created_at, old.created_at)
        self.assertEqual(new.edited_at, old.edited_at)

    def test_concurrent_decisions_share_one_cache(self):
        """Test many workers deciding distinct files against one connection."""
        filenames = [f"pages/page_{i}.md" for i in range(40)]

        def decide_all(cache):
            with ThreadPoolExecutor(max_workers=8) as executor:
                futures = {
                    executor.submit(cache.decide, name, name.encode('utf-8')): name
                    for name in filenames
                }
                return {futures[future]: future.result() for future in as_completed(futures)}

        with RenderCache(str(self.db_path)) as cache:
            first = decide_all(cache)
            self.assertEqual(set(first.values()), {CacheDecision.WRITE})
            self.assertEqual(cache.count(), len(filenames))
            for name in filenames:
                self.assertIsNotNone(cache.lookup(name))

            second = decide_all(cache)
            self.assertEqual(set(second.values()), {CacheDecision.SKIP})
            self.assertEqual(cache.count(), len(filenames))

    def test_unavailable_store_is_fatal(self):
        cache = RenderCache(str(self.db_path))
        with self.assertRaises(CacheStoreUnavailable):
            cache.decide("pages/a.md", b"hello")


class TestIssueLog(unittest.TestCase):
    """Test issue collection and exit codes."""

    def test_summary_and_counts(self):
        issues = IssueLog()
        issues.report(IssueKind.MISSING_REFERENCE_TARGET, "gone", page_id="p", block_id="b")
        issues.report(IssueKind.MISSING_REFERENCE_TARGET, "gone too", page_id="q")
        issues.report(IssueKind.CYCLE_DETECTED, "loop", page_id="p")

        self.assertEqual(issues.counts()[IssueKind.MISSING_REFERENCE_TARGET], 2)
        summary = issues.summary()
        self.assertIn("MissingReferenceTarget: 2", summary)
        self.assertIn("  p/b: gone", summary)

    def test_exit_codes(self):
        issues = IssueLog()
        self.assertEqual(issues.exit_code(fail_on_warnings=True), 0)

        issues.report(IssueKind.MALFORMED_BLOCK_RECORD, "bad")
        self.assertEqual(issues.exit_code(), 0)
        self.assertEqual(issues.exit_code(fail_on_warnings=True), 1)

        issues.report(IssueKind.CACHE_STORE_UNAVAILABLE, "down")
        self.assertEqual(issues.exit_code(), 2)

    def test_not_found_is_key_error(self):
        error = NotFound("Block", "abc")
        self.assertIsInstance(error, KeyError)
        self.assertEqual(str(error), "Block not found: abc")


class TestWriter(unittest.TestCase):
    """Test page serialisation and slugs."""

    def test_title_to_slug(self):
        self.assertEqual(title_to_slug("Rust: Ownership/Borrowing - Notes"), "rust_ownership_borrowing_notes")
        self.assertEqual(title_to_slug("What's New?"), "whats_new")
        self.assertEqual(title_to_slug("  "), "")

    def test_render_markdown(self):
        page = RenderedPage(
            page_id="p",
            title="Recipes",
            path="pages/recipes.md",
            url="recipes",
            tags=["food"],
            view_type=ViewType.DOCUMENT,
            blocks=[
                RenderedBlock(block_id="h", content="Pancakes", heading=2, view_type=ViewType.NUMBERED, children=[
                    RenderedBlock(block_id="s1", content="Mix", view_type=ViewType.NUMBERED),
                    RenderedBlock(block_id="s2", content="Fry", view_type=ViewType.NUMBERED),
                ]),
                RenderedBlock(block_id="r", content="Shared idea", kind=ContentKind.REFERENCE,
                              source_block_id="r", target_id="t"),
            ],
        )

        text = render_markdown(page)
        self.assertTrue(text.startswith("---\n"))
        self.assertIn("title: Recipes", text)
        self.assertIn("## Pancakes", text)
        self.assertIn("1. Mix", text)
        self.assertIn("2. Fry", text)
        self.assertIn("Shared idea", text)
        self.assertEqual(text, render_markdown(page))

    def test_write_page_sets_mtime(self):
        from datetime import datetime

        temp_dir = tempfile.mkdtemp()
        try:
            path = Path(temp_dir) / "nested" / "page.md"
            edited = datetime(2023, 5, 1, 12, 0, 0)
            write_page(str(path), b"content", edited)
            self.assertEqual(path.read_bytes(), b"content")
            self.assertAlmostEqual(os.path.getmtime(path), edited.timestamp(), places=0)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)


if __name__ == '__main__':
    # Run all tests
    unittest.main(verbosity=2)
