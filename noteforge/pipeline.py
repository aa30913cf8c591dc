"""
Export pipeline for Noteforge.

A run has two phases separated by a barrier. Phase 1 evaluates the page
script for every page, fixing each page's own inclusion, tags and title.
Phase 2 starts only when every page has finished phase 1; it resolves
cross-page content (page embeds, references, backlinks), renders each
included page and consults the render cache before writing.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .config import EvaluatorSettings
from .database import RenderCache
from .errors import CacheStoreUnavailable, IssueKind, IssueLog
from .graph import GraphStore
from .models import CacheDecision, RenderedBlock, RenderedPage, ViewType
from .policy import PageOutcome, PageScript, PolicyEvaluator
from .writer import render_markdown, write_page


class RunResult(BaseModel):
    """Summary of one export run."""

    pages_evaluated: int = 0
    pages_included: int = 0
    written: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    empty: List[str] = Field(
        default_factory=list,
        description="Included pages whose render tree was empty"
    )
    manifest: Dict[str, Dict[str, str]] = Field(default_factory=dict)


class ExportPipeline:
    """
    Runs policy evaluation, rendering and caching over a frozen graph.
    """

    def __init__(
        self,
        store: GraphStore,
        settings: Optional[EvaluatorSettings] = None,
        script: Optional[PageScript] = None,
        cache: Optional[RenderCache] = None,
        issues: Optional[IssueLog] = None,
        write_manifest: bool = True
    ):
        """
        Initialize the pipeline.

        Args:
            store: Graph store holding the ingested export
            settings: Evaluator settings
            script: The page script
            cache: Connected render cache; without one every page is written
            issues: Issue log; defaults to the store's
            write_manifest: Write manifest.json to the output directory
        """
        self.store = store
        self.settings = settings or EvaluatorSettings()
        self.issues = issues or store.issues
        self.evaluator = PolicyEvaluator(store, self.settings, script, self.issues)
        self.resolver = self.evaluator.resolver
        self.cache = cache
        self.write_manifest = write_manifest

    def evaluate_all(self) -> Dict[str, PageOutcome]:
        """
        Phase 1: evaluate every page on the worker pool.

        Returns:
            Page id to outcome
        """
        if not self.store.frozen:
            self.store.freeze()

        outcomes: Dict[str, PageOutcome] = {}
        page_ids = [page.id for page in self.store.pages()]
        with ThreadPoolExecutor(max_workers=self.settings.workers) as executor:
            futures = {executor.submit(self.evaluator.evaluate_page, page_id): page_id for page_id in page_ids}
            for future in as_completed(futures):
                outcome = future.result()
                outcomes[outcome.page_id] = outcome

        included = sum(1 for outcome in outcomes.values() if outcome.include)
        logging.info(f"Evaluated {len(outcomes)} pages, {included} included")
        return outcomes

    def output_path(self, page_id: str) -> str:
        page = self.store.page(page_id)
        base = page.path_base or self.settings.output_dir
        name = page.path_name or f"{page.url_name}.{self.settings.extension}"
        return str(Path(base) / name)

    def page_url(self, page_id: str) -> str:
        page = self.store.page(page_id)
        base = page.url_base or self.settings.base_url
        if not base:
            return page.url_name
        return f"{base.rstrip('/')}/{page.url_name}"

    def render_page(self, page_id: str) -> Optional[RenderedPage]:
        """
        Build the final render output for an included page.

        Only valid after phase 1 has completed for every page.

        Returns:
            The rendered page, or None if nothing survived inclusion
        """
        page = self.store.page(page_id)
        blocks = self.resolver.render_page(page_id)
        if not blocks:
            return None

        edited_times = [page.edited_at] + [
            block.edited_at for block in self._rendered_blocks(blocks)
        ]
        edited_times = [t for t in edited_times if t is not None]

        return RenderedPage(
            page_id=page.id,
            title=page.title,
            path=self.output_path(page_id),
            url=self.page_url(page_id),
            tags=list(page.tags),
            include=page.include,
            view_type=self.store.block(page.root_block_id).view_type.resolve_with_parent(ViewType.DOCUMENT),
            blocks=blocks,
            created_at=page.created_at,
            edited_at=max(edited_times) if edited_times else None,
        )

    def _rendered_blocks(self, nodes: List[RenderedBlock]):
        stack = list(nodes)
        while stack:
            node = stack.pop()
            block = self.store.find_block(node.block_id)
            if block is not None:
                yield block
            stack.extend(node.children)
            stack.extend(node.embedded)

    def publish(self, rendered: RenderedPage) -> CacheDecision:
        """
        Serialise a rendered page and write it unless the cache says it is unchanged.

        Raises:
            CacheStoreUnavailable: If the cache cannot be queried
        """
        data = render_markdown(rendered).encode('utf-8')

        if self.cache is None:
            write_page(rendered.path, data)
            logging.info(f"Wrote: \"{rendered.title}\" to {rendered.path}")
            return CacheDecision.WRITE

        decision = self.cache.decide(rendered.path, data)
        if decision is CacheDecision.SKIP and Path(rendered.path).exists():
            logging.info(f"Unchanged: \"{rendered.title}\" at {rendered.path}")
            return decision

        record = self.cache.lookup(rendered.path)
        write_page(rendered.path, data, record.edited_at if record else None)
        logging.info(f"Wrote: \"{rendered.title}\" to {rendered.path}")
        return CacheDecision.WRITE

    def _render_and_publish(self, page_id: str):
        rendered = self.render_page(page_id)
        if rendered is None:
            logging.info(f"Page {page_id} rendered empty; skipping")
            return page_id, None, None
        return page_id, rendered, self.publish(rendered)

    def run(self) -> RunResult:
        """
        Run both phases and write the manifest.

        Returns:
            The run result

        Raises:
            CacheStoreUnavailable: If the render cache fails; pending pages
                are cancelled
        """
        outcomes = self.evaluate_all()
        included = sorted(page_id for page_id, outcome in outcomes.items() if outcome.include)
        result = RunResult(pages_evaluated=len(outcomes), pages_included=len(included))

        claimed: Dict[str, str] = {}
        targets = []
        for page_id in included:
            path = self.output_path(page_id)
            owner = claimed.setdefault(path, page_id)
            if owner != page_id:
                logging.warning(f"Output path {path} of page {page_id} already used by page {owner}; skipping")
                continue
            targets.append(page_id)

        with ThreadPoolExecutor(max_workers=self.settings.workers) as executor:
            futures = [executor.submit(self._render_and_publish, page_id) for page_id in targets]
            try:
                for future in as_completed(futures):
                    page_id, rendered, decision = future.result()
                    if rendered is None:
                        result.empty.append(page_id)
                        continue
                    if decision is CacheDecision.SKIP:
                        result.skipped.append(rendered.path)
                    else:
                        result.written.append(rendered.path)
                    result.manifest[rendered.path] = {"title": rendered.title, "page_id": page_id}
            except CacheStoreUnavailable as e:
                for pending in futures:
                    pending.cancel()
                self.issues.report(IssueKind.CACHE_STORE_UNAVAILABLE, str(e))
                raise

        result.written.sort()
        result.skipped.sort()
        result.empty.sort()

        if self.write_manifest:
            self._write_manifest(result.manifest)

        logging.info(
            f"Export complete: {len(result.written)} written, {len(result.skipped)} unchanged, "
            f"{len(result.empty)} empty"
        )
        return result

    def _write_manifest(self, manifest: Dict[str, Dict[str, str]]) -> None:
        output_dir = Path(self.settings.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        manifest_path = output_dir / "manifest.json"
        with open(manifest_path, 'w', encoding='utf-8') as f:
            json.dump(dict(sorted(manifest.items())), f, indent=2, ensure_ascii=False)
        logging.info(f"Manifest written to {manifest_path}")
