"""
Promotion of a staged session into the production content and asset roots.

Sequence for one session:

    ensure staging → load staged manifest
    ── lock ──
    load production manifest → merge
    clear stale content (keeps .staging and preserved pages)
    reconcile assets → copy staged HTML → save manifest → rebuild indexes
    ── unlock ──
    remove the session's staging directories

One coordinator owns one (content root, assets root) pair and its lock, so
promotions into the same site never interleave their destructive steps while
independent sites in the same process don't wait on each other.  Nothing is
rolled back on failure: a retry with the same staged inputs is the recovery
path.
"""

import asyncio
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path

from indexes import parent_folder
from manifest import Manifest, ManifestStore, PipelineSignature
from merge import MergeResult, PageDiff, merge_manifests
from reconcile import AssetSyncResult, apply_asset_plan, plan_for_roots
from staging import STAGING_DIR_NAME, WORKING_ENTRIES, ContentStager, clear_root_except, copy_tree

_BODY_OPEN_RE = re.compile(r'<div class="markdown-body">')
_DIV_TAG_RE = re.compile(r"<div\b|</div>", re.IGNORECASE)
_FIRST_H1_RE = re.compile(r"<h1[^>]*>.*?</h1>", re.IGNORECASE | re.DOTALL)


@dataclass
class PromotionResult:
    session_id: str
    manifest: Manifest
    diff: PageDiff
    assets: AssetSyncResult
    deleted_files: list[str] = field(default_factory=list)
    copied_files: list[str] = field(default_factory=list)
    # HTML files of removed or moved pages, and old route → new route
    stale_files: list[str] = field(default_factory=list)
    slug_changes: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Custom index extraction
# ---------------------------------------------------------------------------

def extract_body_content(html: str) -> str:
    """Return the inner HTML of the outer ``markdown-body`` div.

    Falls back to the whole document when the wrapper is missing.
    """
    m = _BODY_OPEN_RE.search(html)
    if m is None:
        return html.strip()
    depth = 1
    for tag in _DIV_TAG_RE.finditer(html, m.end()):
        depth += -1 if tag.group(0).startswith("</") else 1
        if depth == 0:
            return html[m.end():tag.start()].strip()
    return html[m.end():].strip()


def collect_custom_indexes(manifest: Manifest, content_root: Path) -> dict[str, str]:
    """Folder path → custom HTML taken from the pages flagged as custom index.

    The page's own heading is dropped; the folder index renders its title.
    """
    custom = {}
    for page in manifest.pages:
        if not page.is_custom_index:
            continue
        html_file = content_root / page.html_path()
        if not html_file.is_file():
            print(f"  [warn] Custom index HTML not found for {page.route}")
            continue
        body = extract_body_content(html_file.read_text(encoding="utf-8"))
        custom[parent_folder(page.route)] = _FIRST_H1_RE.sub("", body, count=1).strip()
    return custom


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

async def _finish_uncancelled(work: asyncio.Future, session_id: str):
    """Await the critical section; a cancelled caller still waits for it.

    The worker thread cannot be interrupted, so the lock and the staging
    directories stay held until it returns.  The cancellation is re-raised
    afterwards.
    """
    try:
        return await asyncio.shield(work)
    except asyncio.CancelledError:
        print(f"  [warn] {session_id}: cancelled; waiting for the running promotion to finish")
        while not work.done():
            try:
                await asyncio.wait({work})
            except asyncio.CancelledError:
                continue
        if work.exception() is not None:
            print(f"  [promote] {session_id}: failed after cancel: {work.exception()}", file=sys.stderr)
        raise


class PromotionCoordinator:

    def __init__(self, content_root: Path | str, assets_root: Path | str):
        self.content_root = Path(content_root)
        self.assets_root = Path(assets_root)
        self.stager = ContentStager(self.content_root, self.assets_root)
        self.store = ManifestStore(self.content_root)
        self._lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    async def promote_session(
        self,
        session_id: str,
        all_collected_routes: list[str] | None = None,
        pipeline_signature: PipelineSignature | None = None,
    ) -> PromotionResult:
        """Merge a staged session into production.

        Args:
            session_id:           Session whose staging directories to promote.
            all_collected_routes: Every route the vault scan produced.  Previous
                                  pages whose route is missing are deleted; when
                                  ``None`` no page is deleted.
            pipeline_signature:   Replaces the staged manifest's signature.

        Errors inside the critical section propagate after the lock is
        released and the staging directories are removed.  Cancelling the
        caller does not stop a critical section that already started: the
        lock is held until it completes, then ``CancelledError`` is raised.
        """
        self.stager.ensure(session_id)

        staged = await asyncio.to_thread(self.stager.load_manifest, session_id)
        if staged is None:
            print(f"  [warn] No staged manifest for session {session_id}; promoting an empty one.")
            staged = Manifest.empty(session_id)
        if not staged.session_id:
            staged.session_id = session_id
        if pipeline_signature is not None:
            staged.pipeline_signature = pipeline_signature

        try:
            async with self._lock:
                print(f"  [promote] {session_id}: lock acquired")
                work = asyncio.ensure_future(asyncio.to_thread(
                    self._promote_locked, session_id, staged, all_collected_routes
                ))
                result = await _finish_uncancelled(work, session_id)
            print(f"  [promote] {session_id}: lock released")
        finally:
            self.stager.discard(session_id)

        diff = result.diff
        print(
            f"  [promote] {session_id}: added={len(diff.added)} updated={len(diff.updated)} "
            f"unchanged={len(diff.unchanged)} removed={len(diff.removed)}"
        )
        return result

    async def purge(self) -> None:
        """Empty both production roots, waiting for running promotions."""
        async with self._lock:
            await asyncio.to_thread(self.stager.purge)

    # -- critical section -----------------------------------------------------

    def _promote_locked(
        self,
        session_id: str,
        staged: Manifest,
        all_collected_routes: list[str] | None,
    ) -> PromotionResult:
        previous = self.store.load()
        merged: MergeResult = merge_manifests(previous, staged, all_collected_routes)
        final = merged.manifest

        content_stage = self.stager.content_staging_path(session_id)
        assets_stage = self.stager.assets_staging_path(session_id)

        # Step 1: clear stale content, keeping staging and preserved pages
        keep_files = {page.html_path() for page in merged.preserved_pages}
        deleted = clear_root_except(self.content_root, {STAGING_DIR_NAME}, keep_files)

        # Step 2: reconcile assets against the final manifest
        plan = plan_for_roots(final.asset_paths(), assets_stage, self.assets_root)
        asset_result = apply_asset_plan(plan, assets_stage, self.assets_root)

        # Step 3: staged HTML into production
        copied = copy_tree(content_stage, self.content_root, skip=WORKING_ENTRIES)

        # Step 4: persist the manifest, then derive the folder indexes from it
        self.store.save(final)
        custom = collect_custom_indexes(final, self.content_root)
        self.store.rebuild_index(final, custom)

        return PromotionResult(
            session_id=session_id,
            manifest=final,
            diff=merged.diff,
            assets=asset_result,
            deleted_files=deleted,
            copied_files=copied,
            stale_files=merged.stale_files,
            slug_changes=merged.slug_changes,
        )
