"""
End-to-end tests for the two-phase export pipeline.
"""

import json
import os
from unittest.mock import MagicMock

import pytest

from noteforge.config import EvaluatorSettings
from noteforge.database import RenderCache
from noteforge.errors import CacheStoreUnavailable, IssueKind
from noteforge.models import AllowEmbed, CacheDecision, RefKind
from noteforge.pipeline import ExportPipeline
from noteforge.policy import PageScript


PUBLISH_SCRIPT = """
def visit(block, depth):
    if depth == 1:
        block.include = BlockInclude.INCLUDE

if page.tagged_with_any(["Public"]):
    page.include = True
    page.each_block(UNBOUNDED, visit)

if page.title == "Snippets":
    page.allow_embedding = AllowEmbed.YES
    page.each_block(UNBOUNDED, visit)
"""


@pytest.fixture
def graph(builder):
    home = builder.page("Home", attributes={"tags": ["Public"]})
    snippets = builder.page("Snippets")
    secret = builder.page("Secret")
    builder.block(home, "h1", "Welcome")
    builder.block(home, "h2", "{{embed [[Snippets]]}}", ref_target=snippets, ref_kind=RefKind.PAGE_EMBED)
    builder.block(home, "h3", "{{embed [[Secret]]}}", ref_target=secret, ref_kind=RefKind.PAGE_EMBED)
    builder.block(snippets, "s1", "Reusable text")
    builder.block(secret, "x1", "Do not publish")
    return builder.build()


def _pipeline(store, tmp_path, cache=None):
    settings = EvaluatorSettings(output_dir=str(tmp_path / "out"), workers=2)
    return ExportPipeline(store, settings, PageScript.from_source(PUBLISH_SCRIPT), cache=cache)


def test_run_writes_included_pages(graph, tmp_path):
    result = _pipeline(graph, tmp_path).run()

    assert result.pages_evaluated == 3
    assert result.pages_included == 1
    output = tmp_path / "out" / "home.md"
    assert result.written == [str(output)]

    text = output.read_text()
    assert "Welcome" in text
    assert "Reusable text" in text
    assert "Do not publish" not in text

    manifest = json.loads((tmp_path / "out" / "manifest.json").read_text())
    assert manifest == {str(output): {"title": "Home", "page_id": "home"}}


def test_cache_skips_unchanged_pages(graph, tmp_path):
    with RenderCache(str(tmp_path / "cache.db")) as cache:
        first = _pipeline(graph, tmp_path, cache).run()
        output = tmp_path / "out" / "home.md"
        mtime = os.path.getmtime(output)
        record = cache.lookup(str(output))

        second = _pipeline(graph, tmp_path, cache).run()
        assert first.written == [str(output)]
        assert second.written == []
        assert second.skipped == [str(output)]
        assert os.path.getmtime(output) == mtime
        assert cache.lookup(str(output)).edited_at == record.edited_at

        graph.block("s1").contents = "Edited reusable text"
        third = _pipeline(graph, tmp_path, cache).run()
        assert third.written == [str(output)]
        assert "Edited reusable text" in output.read_text()
        assert cache.lookup(str(output)).edited_at >= record.edited_at


def test_missing_output_file_is_rewritten(graph, tmp_path):
    with RenderCache(str(tmp_path / "cache.db")) as cache:
        _pipeline(graph, tmp_path, cache).run()
        output = tmp_path / "out" / "home.md"
        output.unlink()

        result = _pipeline(graph, tmp_path, cache).run()
        assert result.written == [str(output)]
        assert output.exists()


def test_cache_failure_aborts_run(graph, tmp_path):
    cache = MagicMock(spec=RenderCache)
    cache.decide.side_effect = CacheStoreUnavailable("database is locked")
    pipeline = _pipeline(graph, tmp_path, cache)

    with pytest.raises(CacheStoreUnavailable):
        pipeline.run()

    assert pipeline.issues.has_fatal
    assert pipeline.issues.exit_code() == 2
    assert not (tmp_path / "out" / "manifest.json").exists()


def test_phase_two_sees_final_embed_flags(graph, tmp_path):
    pipeline = _pipeline(graph, tmp_path)
    outcomes = pipeline.evaluate_all()

    assert outcomes["snippets"].include is False
    assert outcomes["snippets"].embeddable is True
    assert graph.page("snippets").allow_embedding is AllowEmbed.YES
    assert outcomes["secret"].embeddable is False

    rendered = pipeline.render_page("home")
    assert [block.block_id for block in rendered.blocks] == ["h1", "h2"]


def test_page_path_and_url_overrides(builder, tmp_path):
    page_id = builder.page("About Me")
    builder.block(page_id, "a", "Hello")
    store = builder.build()

    source = """
page.include = True
page.path_base = OUT
page.path_name = "index.html"
page.url_base = "https://example.com/"
page.url_name = "about"
page.each_block(-1, lambda block, depth: setattr(block, "include", BlockInclude.INCLUDE) if depth else None)
""".replace("OUT", repr(str(tmp_path / "custom")))
    settings = EvaluatorSettings(output_dir=str(tmp_path / "out"))
    pipeline = ExportPipeline(store, settings, PageScript.from_source(source))
    result = pipeline.run()

    assert result.written == [str(tmp_path / "custom" / "index.html")]
    rendered = pipeline.render_page(page_id)
    assert rendered.url == "https://example.com/about"


def test_colliding_output_paths_keep_first_page(builder, tmp_path):
    first = builder.page("Alpha")
    second = builder.page("Beta")
    builder.block(first, "a", "A")
    builder.block(second, "b", "B")
    store = builder.build()

    source = """
page.include = True
page.url_name = "same"
page.each_block(-1, lambda block, depth: setattr(block, "include", BlockInclude.INCLUDE) if depth else None)
"""
    settings = EvaluatorSettings(output_dir=str(tmp_path / "out"))
    result = ExportPipeline(store, settings, PageScript.from_source(source)).run()

    assert result.written == [str(tmp_path / "out" / "same.md")]
    assert result.manifest[str(tmp_path / "out" / "same.md")]["page_id"] == "alpha"


def test_script_errors_reported_without_stopping_run(builder, tmp_path):
    good = builder.page("Good")
    builder.page("Broken")
    builder.block(good, "g", "Fine")
    store = builder.build()

    source = """
if page.title == "Broken":
    raise KeyError("missing")
page.include = True
page.each_block(-1, lambda block, depth: setattr(block, "include", BlockInclude.INCLUDE) if depth else None)
"""
    settings = EvaluatorSettings(output_dir=str(tmp_path / "out"))
    pipeline = ExportPipeline(store, settings, PageScript.from_source(source))
    result = pipeline.run()

    assert result.written == [str(tmp_path / "out" / "good.md")]
    assert len(pipeline.issues.by_kind(IssueKind.SCRIPT_EXECUTION_ERROR)) == 1
    assert pipeline.issues.exit_code() == 0
    assert pipeline.issues.exit_code(fail_on_warnings=True) == 1


def test_included_page_with_empty_render_is_skipped(builder, tmp_path):
    builder.page("Empty")
    store = builder.build()

    settings = EvaluatorSettings(output_dir=str(tmp_path / "out"))
    result = ExportPipeline(store, settings, PageScript.from_source("page.include = True")).run()

    assert result.written == []
    assert result.empty == ["empty"]


def test_publish_without_cache_always_writes(graph, tmp_path):
    pipeline = _pipeline(graph, tmp_path)
    pipeline.evaluate_all()
    rendered = pipeline.render_page("home")

    assert pipeline.publish(rendered) is CacheDecision.WRITE
    assert pipeline.publish(rendered) is CacheDecision.WRITE
