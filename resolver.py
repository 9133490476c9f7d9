"""
Resolution logic for the renderer.

Builds lookups from a vault scan and resolves [[wiki-links]] and
![[embeds]] to site routes and asset paths.
"""

import re
from dataclasses import dataclass, field

from manifest import slugify
from vault import VaultScan


@dataclass
class LinkIndex:
    by_path: dict = field(default_factory=dict)
    by_name: dict = field(default_factory=dict)
    by_title: dict = field(default_factory=dict)
    by_route: dict = field(default_factory=dict)
    assets_by_path: dict = field(default_factory=dict)
    assets_by_name: dict = field(default_factory=dict)


def _strip_md(target: str) -> str:
    return target[:-3] if target.lower().endswith(".md") else target


def build_link_index(scan: VaultScan) -> LinkIndex:
    """Index notes by vault path, filename, title and route; assets by path
    and filename.  Keys are lowercase."""
    index = LinkIndex()
    for note in scan.notes:
        path_key = _strip_md(note.vault_path).lower()
        index.by_path[path_key] = note
        index.by_name.setdefault(path_key.rsplit("/", 1)[-1], []).append(note)
        index.by_title.setdefault(note.title.lower(), []).append(note)
        index.by_route[note.route.lstrip("/")] = note
    for asset in scan.assets:
        vault_rel = asset.path.split("/", 1)[1]
        index.assets_by_path[vault_rel.lower()] = asset.path
        index.assets_by_name.setdefault(asset.name.lower(), []).append(asset.path)
    return index


def slugify_heading(text: str) -> str:
    """Convert heading text to a URL-friendly slug for anchor IDs.

    e.g. "Practice Problem" → "practice-problem"
         "What is O(n log n)?" → "what-is-on-log-n"
    """
    slug = re.sub(r"<[^>]+>", "", text)
    slug = slug.lower()
    slug = re.sub(r"[()?!.,:;'\"`]", "", slug)
    slug = re.sub(r"[^a-z0-9-]+", "-", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def _unique(matches: list | None):
    if matches and len(matches) == 1:
        return matches[0]
    return None


def find_note(target: str, index: LinkIndex):
    """Tries, in order: vault path, filename, title, slugified route."""
    key = _strip_md(target.strip()).lower()
    if key in index.by_path:
        return index.by_path[key]
    note = _unique(index.by_name.get(key)) or _unique(index.by_title.get(key))
    if note is not None:
        return note
    route_key = "/".join(slugify(part) for part in key.split("/"))
    return index.by_route.get(route_key)


def resolve_wiki_link(target: str, index: LinkIndex) -> tuple[str, str]:
    """Resolve a wiki-link target to (href, display_text).

    Handles [[page|display]] and [[page#heading]]; unresolved targets
    become '#' so the page still renders.
    """
    if "|" in target:
        target_part, display = target.split("|", 1)
        display = display.strip()
    else:
        target_part, display = target, None

    target_part, _, heading = target_part.partition("#")
    anchor = f"#{slugify_heading(heading)}" if heading else ""
    target_clean = target_part.strip()

    if not target_clean:
        return anchor or "#", display or heading.strip()

    note = find_note(target_clean, index)
    if note is None:
        return "#", display or target_clean
    return note.route + anchor, display or note.title


def resolve_embed(filename: str, index: LinkIndex) -> str | None:
    """Resolve an embed target to an asset path ('_assets/...') or None.

    Obsidian embeds may carry a size suffix ("img.png|350") and may or may
    not include a directory prefix.
    """
    filename = filename.split("|", 1)[0].strip()
    key = filename.lower().lstrip("/")
    if key in index.assets_by_path:
        return index.assets_by_path[key]
    basename = key.rsplit("/", 1)[-1]
    matches = index.assets_by_name.get(basename)
    if matches:
        # Same filename in several folders: first in scan order wins.
        return matches[0]
    return None
