"""
Manifest merge for promotion.

Combines the production manifest, the manifest a session just staged and
(optionally) the complete list of routes found in the vault into the
manifest that will be published.

Rules:
  1. Pages are correlated across manifests by vault path (falling back to
     relative path), never by route, since slugs change while notes don't.
  2. A staged page always wins over the previous page it correlates with.
  3. A previous page the session did not re-render is deleted when the
     route list is given and lacks its route, and preserved otherwise.
  4. The staged pipeline signature replaces the previous one.
  5. Route changes of correlated pages become redirect entries in the
     canonical map.
  6. An asset survives when any surviving page still embeds it.
"""

from dataclasses import dataclass, field
from datetime import datetime

from manifest import Manifest, ManifestAsset, ManifestPage, normalize_path, utcnow

# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Correlated:
    key: str


@dataclass(frozen=True)
class Uncorrelated:
    """The page carries neither vault path nor relative path."""


CorrelationKey = Correlated | Uncorrelated


def correlation_key(page: ManifestPage) -> CorrelationKey:
    for value in (page.vault_path, page.relative_path):
        if value:
            return Correlated(normalize_path(value))
    return Uncorrelated()


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class PageDiff:
    """Routes of the final manifest grouped by what happened to them."""

    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)


@dataclass
class MergeResult:
    manifest: Manifest
    diff: PageDiff
    # HTML files (relative to the content root) no page points at any more.
    stale_files: list[str]
    slug_changes: dict[str, str]
    preserved_pages: list[ManifestPage] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Canonical map
# ---------------------------------------------------------------------------

def detect_slug_changes(previous: Manifest | None, staged: Manifest) -> dict[str, str]:
    """Map old route → new route for correlated pages whose route changed."""
    if previous is None:
        return {}
    old_by_key = {}
    for page in previous.pages:
        key = correlation_key(page)
        if isinstance(key, Correlated):
            old_by_key[key.key] = page

    changes = {}
    for page in staged.pages:
        key = correlation_key(page)
        if not isinstance(key, Correlated):
            continue
        old = old_by_key.get(key.key)
        if old is not None and old.route != page.route:
            changes[old.route] = page.route
    return changes


def cleanup_canonical_map(canonical_map: dict[str, str], live_routes: set[str]) -> dict[str, str]:
    """Collapse redirect chains and drop mappings that lead nowhere.

    A → B, B → C becomes A → C, B → C.  A mapping is dropped when its
    source is a live page again or its final destination is not live.
    """
    cleaned = {}
    for source, target in canonical_map.items():
        if source in live_routes:
            continue
        seen = {source}
        while target in canonical_map and target not in seen and target not in live_routes:
            seen.add(target)
            target = canonical_map[target]
        if target in live_routes and target != source:
            cleaned[source] = target
    return dict(sorted(cleaned.items()))


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def _dedupe_staged(pages: list[ManifestPage]) -> list[ManifestPage]:
    """Keep one staged page per route; the last one rendered wins."""
    by_route: dict[str, ManifestPage] = {}
    for page in pages:
        if page.route in by_route:
            print(f"  [warn] Duplicate staged route {page.route}; keeping the last page.")
        by_route[page.route] = page
    return list(by_route.values())


def _merge_assets(
    previous: Manifest | None,
    staged: Manifest,
    pages: list[ManifestPage],
) -> list[ManifestAsset]:
    referenced = {path for page in pages for path in page.assets}
    merged: dict[str, ManifestAsset] = {}

    if previous is not None:
        for asset in previous.assets or []:
            if asset.path in referenced:
                merged[asset.path] = asset
    for asset in staged.assets or []:
        merged[asset.path] = asset

    return [merged[path] for path in sorted(merged)]


def merge_manifests(
    previous: Manifest | None,
    staged: Manifest,
    all_collected_routes: list[str] | None = None,
    now: datetime | None = None,
) -> MergeResult:
    """Compute the manifest to publish.

    Deterministic for the same three inputs and the same *now*.
    """
    now = now or utcnow()
    staged_pages = _dedupe_staged(staged.pages)
    staged_keys = set()
    for page in staged_pages:
        key = correlation_key(page)
        if isinstance(key, Correlated):
            staged_keys.add(key.key)
    staged_routes = {page.route for page in staged_pages}
    route_set = set(all_collected_routes) if all_collected_routes is not None else None

    diff = PageDiff()
    replaced: dict[str, ManifestPage] = {}
    preserved: list[ManifestPage] = []
    stale_files = []

    for page in previous.pages if previous else []:
        key = correlation_key(page)
        if isinstance(key, Correlated) and key.key in staged_keys:
            replaced[key.key] = page
            continue
        if page.route in staged_routes:
            # Route collision with an unrelated staged page: staged wins.
            stale_files.append(page.html_path())
            continue
        if route_set is not None and page.route not in route_set:
            diff.removed.append(page.route)
            stale_files.append(page.html_path())
            continue
        preserved.append(page)
        diff.unchanged.append(page.route)

    for page in staged_pages:
        key = correlation_key(page)
        old = replaced.get(key.key) if isinstance(key, Correlated) else None
        if old is None:
            diff.added.append(page.route)
        else:
            diff.updated.append(page.route)
            if old.html_path() != page.html_path():
                stale_files.append(old.html_path())

    pages = sorted(staged_pages + preserved, key=lambda p: p.route)
    live_routes = {page.route for page in pages}
    stale_files = sorted(set(stale_files) - {page.html_path() for page in pages})

    slug_changes = detect_slug_changes(previous, staged)
    for old_route, new_route in slug_changes.items():
        print(f"  [merge] Slug change detected: {old_route} → {new_route}")

    canonical_map = dict(previous.canonical_map or {}) if previous else {}
    canonical_map.update(staged.canonical_map or {})
    canonical_map.update(slug_changes)
    canonical_map = cleanup_canonical_map(canonical_map, live_routes)

    folder_names = dict(previous.folder_display_names or {}) if previous else {}
    folder_names.update(staged.folder_display_names or {})

    for bucket in (diff.added, diff.updated, diff.unchanged, diff.removed):
        bucket.sort()

    manifest = Manifest(
        session_id=staged.session_id,
        created_at=previous.created_at if previous else staged.created_at,
        last_updated_at=now,
        pages=pages,
        assets=_merge_assets(previous, staged, pages),
        pipeline_signature=staged.pipeline_signature,
        folder_display_names=folder_names or None,
        canonical_map=canonical_map or None,
    )
    return MergeResult(
        manifest=manifest,
        diff=diff,
        stale_files=stale_files,
        slug_changes=slug_changes,
        preserved_pages=preserved,
    )
