"""
Vault scanner.

Walks an Obsidian vault and collects what a publishing session needs:

  1. Notes — every .md file with its route, title, flags and source hash.
     The README.md or index.md of a folder (case-insensitive) becomes that
     folder's custom index page.
  2. Assets — images and PDFs anywhere in the vault, stored under _assets/.
  3. Routes — the complete route list of the vault, the signal the
     promotion uses to delete pages whose note disappeared.

Hidden/system directories (.obsidian, .excalidraw, .trash, .git) and
.DS_Store are ignored, as are notes with ``publish: false``.
"""

import hashlib
from dataclasses import dataclass, field
from pathlib import Path

from frontmatter import extract_frontmatter, read_flags
from manifest import make_title, slugify


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

IGNORE_DIRS = {".obsidian", ".excalidraw", ".trash", ".git"}
IGNORE_FILES = {".DS_Store"}
ASSET_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".bmp", ".pdf"}
ASSETS_PREFIX = "_assets"
README_NAME = "readme.md"
INDEX_SLUG = "index"
INDEX_PAGE_FILENAME = "index-page.html"


@dataclass
class Note:
    vault_path: str
    route: str
    slug: str
    title: str
    relative_path: str
    body: str
    raw: str
    source_hash: str
    source_size: int
    is_custom_index: bool = False
    no_index: bool = False
    metadata: dict = field(default_factory=dict)


@dataclass
class VaultAsset:
    source: Path
    path: str

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


@dataclass
class VaultScan:
    notes: list[Note] = field(default_factory=list)
    assets: list[VaultAsset] = field(default_factory=list)
    folder_display_names: dict[str, str] = field(default_factory=dict)

    def routes(self) -> list[str]:
        return sorted(note.route for note in self.notes)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def should_ignore(path: Path) -> bool:
    """Check if a file or directory should be ignored."""
    if path.name in IGNORE_FILES:
        return True
    if path.is_dir() and (path.name in IGNORE_DIRS or path.name.startswith(".")):
        return True
    return False


def folder_route(rel_dir: Path) -> str:
    """'Moss/Moss 1' → '/moss/moss-1', '.' → '/'"""
    parts = [slugify(part) or "untitled" for part in rel_dir.parts if part != "."]
    return "/" + "/".join(parts) if parts else "/"


def _join(folder: str, slug: str) -> str:
    return f"/{slug}" if folder == "/" else f"{folder}/{slug}"


def read_note(path: Path, vault_root: Path, route_folder: str) -> Note | None:
    """Build a Note from a markdown file, or None when it is unpublished."""
    data = path.read_bytes()
    raw = data.decode("utf-8")
    metadata, body = extract_frontmatter(raw)
    flags = read_flags(metadata)
    if not flags.publish:
        return None

    # README.md and index.md are the folder's front page.  Their HTML must not
    # live at <folder>/index.html, which the generated folder index owns.
    is_readme = path.name.lower() == README_NAME
    stem_slug = slugify(path.stem) or "untitled"
    if is_readme or stem_slug == INDEX_SLUG:
        slug = INDEX_SLUG
        route = _join(route_folder, INDEX_SLUG)
        folder_path = route_folder.strip("/")
        page_file = "readme.html" if is_readme else INDEX_PAGE_FILENAME
        relative_path = f"{folder_path}/{page_file}" if folder_path else page_file
        default_title = make_title(path.parent.name) if path.parent != vault_root else "Home"
        is_custom_index = True
    else:
        slug = stem_slug
        route = _join(route_folder, slug)
        relative_path = route.lstrip("/") + ".html"
        default_title = make_title(path.stem)
        is_custom_index = False

    return Note(
        vault_path=path.relative_to(vault_root).as_posix(),
        route=route,
        slug=slug,
        title=flags.title or default_title,
        relative_path=relative_path,
        body=body,
        raw=raw,
        source_hash=hashlib.sha256(data).hexdigest(),
        source_size=len(data),
        is_custom_index=is_custom_index,
        no_index=flags.no_index,
        metadata=flags.metadata,
    )


# ---------------------------------------------------------------------------
# Core: recursive directory walker
# ---------------------------------------------------------------------------

def walk_directory(dir_path: Path, vault_root: Path, scan: VaultScan, seen_routes: set[str]) -> None:
    """Recursively collect notes and assets below *dir_path* into *scan*."""
    rel_dir = dir_path.relative_to(vault_root)
    route_folder = folder_route(rel_dir)
    if dir_path != vault_root:
        scan.folder_display_names[route_folder] = dir_path.name

    entries = sorted(dir_path.iterdir(), key=lambda e: (not e.is_dir(), e.name.lower()))

    for entry in entries:
        if should_ignore(entry):
            continue

        if entry.is_dir():
            walk_directory(entry, vault_root, scan, seen_routes)
            continue

        suffix = entry.suffix.lower()
        if suffix in ASSET_EXTENSIONS:
            rel = entry.relative_to(vault_root).as_posix()
            scan.assets.append(VaultAsset(source=entry, path=f"{ASSETS_PREFIX}/{rel}"))
            continue

        if suffix != ".md":
            continue

        note = read_note(entry, vault_root, route_folder)
        if note is None:
            continue

        # Ensure unique route if two filenames slugify the same way
        if note.route in seen_routes:
            base, n = note.route, 2
            while f"{base}-{n}" in seen_routes:
                n += 1
            print(f"  [warn] Route {base} already taken; {note.vault_path} published as {base}-{n}")
            note.route = f"{base}-{n}"
            note.slug = f"{note.slug}-{n}"
            note.relative_path = note.route.lstrip("/") + ".html"
            # Only the first front page of a folder feeds its index
            note.is_custom_index = False
        seen_routes.add(note.route)
        scan.notes.append(note)


def scan_vault(vault_path: Path | str) -> VaultScan:
    """Scan a vault directory; raises NotADirectoryError for a bad path."""
    vault_root = Path(vault_path).resolve()
    if not vault_root.is_dir():
        raise NotADirectoryError(f"'{vault_path}' is not a valid directory.")

    scan = VaultScan()
    walk_directory(vault_root, vault_root, scan, set())
    print(f"  [vault] {len(scan.notes)} note(s), {len(scan.assets)} asset(s) found.")
    return scan
