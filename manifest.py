"""
Manifest model and store for the published site.

The manifest (``_manifest.json`` at the content root) is the source of truth
for the front end: every published page and asset is listed there.  This
module owns:

  1. The data model — ``Manifest``, ``ManifestPage``, ``ManifestAsset`` and
     ``PipelineSignature``.
  2. JSON (de)serialisation — camelCase keys on disk, ISO-8601 dates.
  3. ``ManifestStore`` — load / save a manifest under a root directory and
     rebuild the derived folder ``index.html`` files from it.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MANIFEST_FILENAME = "_manifest.json"
INDEX_FILENAME = "index.html"

# Keys ManifestPage knows about; anything else is carried in ``extra``.
_PAGE_KEYS = {
    "id", "title", "route", "slug", "relativePath", "publishedAt",
    "lastModifiedAt", "sourceHash", "sourceSize", "isCustomIndex", "noIndex",
    "canonicalSlug", "vaultPath", "assets",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def slugify(text: str) -> str:
    """Convert a string to a URL-friendly kebab-case slug."""
    text = text.strip().lower()
    text = re.sub(r"[^a-z0-9\s\-_/]", "", text)
    text = re.sub(r"[\s_]+", "-", text)
    text = re.sub(r"-+", "-", text)
    return text.strip("-")


def make_title(name: str) -> str:
    """Derive a display title from a filename or directory name.

    'golden_file' → 'Golden File'
    'moss 1'      → 'Moss 1'
    """
    name = name.replace("_", " ").replace("-", " ")
    return name.title()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_date(value: datetime) -> str:
    """Serialise a datetime as ISO-8601, treating naive values as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_date(value, name: str = "date") -> datetime:
    """Parse an ISO-8601 string (or pass through a datetime) as aware UTC.

    A missing value is an error; nothing is invented for it.
    """
    if isinstance(value, datetime):
        parsed = value
    elif value in (None, ""):
        raise ValueError(f"Manifest field '{name}' is missing")
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_path(path: str) -> str:
    """'dir\\a.html', './dir/a.html', '/dir/a.html' → 'dir/a.html'"""
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineSignature:
    """Identifies the rendering configuration that produced a manifest."""

    version: str
    render_settings_hash: str
    git_commit: str | None = None

    def to_dict(self) -> dict:
        data = {
            "version": self.version,
            "renderSettingsHash": self.render_settings_hash,
        }
        if self.git_commit:
            data["gitCommit"] = self.git_commit
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineSignature":
        return cls(
            version=str(data.get("version", "")),
            render_settings_hash=str(data.get("renderSettingsHash", "")),
            git_commit=data.get("gitCommit"),
        )


@dataclass
class ManifestPage:
    id: str
    title: str
    route: str
    slug: str
    relative_path: str | None
    published_at: datetime
    last_modified_at: datetime | None = None
    source_hash: str | None = None
    source_size: int | None = None
    is_custom_index: bool = False
    no_index: bool = False
    canonical_slug: str | None = None
    vault_path: str | None = None
    # Storage-relative paths of the assets this page embeds.
    assets: list[str] = field(default_factory=list)
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "title": self.title,
            "route": self.route,
            "slug": self.slug,
            "publishedAt": format_date(self.published_at),
        })
        if self.relative_path is not None:
            data["relativePath"] = self.relative_path
        if self.last_modified_at is not None:
            data["lastModifiedAt"] = format_date(self.last_modified_at)
        if self.source_hash is not None:
            data["sourceHash"] = self.source_hash
        if self.source_size is not None:
            data["sourceSize"] = self.source_size
        if self.is_custom_index:
            data["isCustomIndex"] = True
        if self.no_index:
            data["noIndex"] = True
        if self.canonical_slug is not None:
            data["canonicalSlug"] = self.canonical_slug
        if self.vault_path is not None:
            data["vaultPath"] = self.vault_path
        if self.assets:
            data["assets"] = list(self.assets)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ManifestPage":
        route = str(data.get("route", "/"))
        slug = data.get("slug")
        # Older manifests store the slug as {"value": ...}
        if isinstance(slug, dict):
            slug = slug.get("value")
        if not slug:
            slug = route.rstrip("/").rsplit("/", 1)[-1]
        last_modified = data.get("lastModifiedAt")
        return cls(
            id=str(data.get("id") or route),
            title=str(data.get("title", "")),
            route=route,
            slug=str(slug),
            relative_path=data.get("relativePath"),
            published_at=parse_date(data.get("publishedAt"), "publishedAt"),
            last_modified_at=parse_date(last_modified) if last_modified else None,
            source_hash=data.get("sourceHash"),
            source_size=data.get("sourceSize"),
            is_custom_index=bool(data.get("isCustomIndex", False)),
            no_index=bool(data.get("noIndex", False)),
            canonical_slug=data.get("canonicalSlug"),
            vault_path=data.get("vaultPath"),
            assets=list(data.get("assets") or []),
            extra={k: v for k, v in data.items() if k not in _PAGE_KEYS},
        )

    def html_path(self) -> str:
        """Location of the page's HTML under the content root."""
        if self.relative_path:
            return normalize_path(self.relative_path)
        return self.route.strip("/") + ".html"


@dataclass
class ManifestAsset:
    path: str
    hash: str
    size: int
    mime_type: str
    uploaded_at: datetime

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "hash": self.hash,
            "size": self.size,
            "mimeType": self.mime_type,
            "uploadedAt": format_date(self.uploaded_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ManifestAsset":
        return cls(
            path=str(data["path"]),
            hash=str(data.get("hash", "")),
            size=int(data.get("size", 0)),
            mime_type=str(data.get("mimeType", "application/octet-stream")),
            uploaded_at=parse_date(data.get("uploadedAt"), "uploadedAt"),
        )


@dataclass
class Manifest:
    """Root aggregate for one deployed site."""

    session_id: str
    created_at: datetime
    last_updated_at: datetime
    pages: list[ManifestPage] = field(default_factory=list)
    assets: list[ManifestAsset] | None = None
    pipeline_signature: PipelineSignature | None = None
    folder_display_names: dict[str, str] | None = None
    canonical_map: dict[str, str] | None = None

    @classmethod
    def empty(cls, session_id: str = "") -> "Manifest":
        now = utcnow()
        return cls(session_id=session_id, created_at=now, last_updated_at=now)

    def page_by_route(self) -> dict[str, ManifestPage]:
        return {page.route: page for page in self.pages}

    def asset_paths(self) -> set[str]:
        return {asset.path for asset in self.assets or []}

    def to_dict(self) -> dict:
        data = {
            "sessionId": self.session_id,
            "createdAt": format_date(self.created_at),
            "lastUpdatedAt": format_date(self.last_updated_at),
            "pages": [page.to_dict() for page in self.pages],
        }
        if self.assets is not None:
            data["assets"] = [asset.to_dict() for asset in self.assets]
        if self.pipeline_signature is not None:
            data["pipelineSignature"] = self.pipeline_signature.to_dict()
        if self.folder_display_names:
            data["folderDisplayNames"] = dict(self.folder_display_names)
        if self.canonical_map:
            data["canonicalMap"] = dict(self.canonical_map)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Manifest":
        if not isinstance(data, dict):
            raise ValueError("Manifest document must be a JSON object")
        pages = data.get("pages")
        assets = data.get("assets")
        signature = data.get("pipelineSignature")
        return cls(
            session_id=str(data.get("sessionId", "")),
            created_at=parse_date(data.get("createdAt"), "createdAt"),
            last_updated_at=parse_date(data.get("lastUpdatedAt"), "lastUpdatedAt"),
            pages=[ManifestPage.from_dict(p) for p in pages] if isinstance(pages, list) else [],
            assets=[ManifestAsset.from_dict(a) for a in assets] if isinstance(assets, list) else None,
            pipeline_signature=PipelineSignature.from_dict(signature) if signature else None,
            folder_display_names=data.get("folderDisplayNames") or None,
            canonical_map=data.get("canonicalMap") or None,
        )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ManifestStore:
    """Reads and writes ``_manifest.json`` under *root*.

    The same store is used for the production content root and for a
    session's content staging directory.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)

    @property
    def path(self) -> Path:
        return self.root / MANIFEST_FILENAME

    def load(self) -> Manifest | None:
        """Load the manifest, or ``None`` when the file does not exist yet.

        Any other read or parse failure propagates to the caller.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return Manifest.from_dict(json.loads(raw))

    def save(self, manifest: Manifest) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False)
        self.path.write_text(payload + "\n", encoding="utf-8")

    def rebuild_index(
        self,
        manifest: Manifest,
        custom_content_by_folder: dict[str, str] | None = None,
    ) -> list[Path]:
        """Write one ``index.html`` per folder implied by the page routes.

        The folder tree comes from ``pages[].route`` only, never from the
        filesystem.  Custom HTML is looked up by exact folder path.
        """
        import indexes

        custom = custom_content_by_folder or {}
        folders = indexes.build_folder_map(manifest.pages)
        labels = manifest.folder_display_names or {}
        owned = {page.html_path() for page in manifest.pages}
        written = []

        for folder, node in folders.items():
            rel = "/".join([*indexes.route_segments(folder), INDEX_FILENAME])
            if rel in owned:
                print(f"  [warn] {rel} belongs to a page; folder index for {folder} not written.")
                continue

            subfolders = []
            for name in node.subfolders:
                sub_path = indexes.join_route(folder, name)
                sub_node = folders[sub_path]
                subfolders.append(indexes.FolderEntry(
                    name=name,
                    link=sub_path,
                    count=len(sub_node.pages) + len(sub_node.subfolders),
                    label=labels.get(sub_path),
                ))

            html = indexes.render_folder_index(
                folder,
                node.pages,
                subfolders,
                custom_content=custom.get(folder),
                label=labels.get(folder),
            )
            out_file = self.root / rel
            out_file.parent.mkdir(parents=True, exist_ok=True)
            out_file.write_text(html, encoding="utf-8")
            written.append(out_file)

        print(f"  [index] {len(written)} folder index(es) written.")
        return written
