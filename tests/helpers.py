"""Builders shared by the test modules."""

from datetime import datetime, timezone
from pathlib import Path

from manifest import Manifest, ManifestAsset, ManifestPage, PipelineSignature

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T1 = datetime(2024, 1, 2, tzinfo=timezone.utc)


def make_page(route: str, **overrides) -> ManifestPage:
    slug = route.rstrip("/").rsplit("/", 1)[-1] or "index"
    fields = {
        "id": route,
        "title": slug.replace("-", " ").title(),
        "route": route,
        "slug": slug,
        "relative_path": route.strip("/") + ".html",
        "published_at": T0,
        "vault_path": route.strip("/") + ".md",
    }
    fields.update(overrides)
    return ManifestPage(**fields)


def make_asset(path: str, digest: str = "h", when: datetime = T0) -> ManifestAsset:
    return ManifestAsset(path=path, hash=digest, size=3, mime_type="image/png", uploaded_at=when)


def make_manifest(pages, assets=None, session_id="s", when=T0, **overrides) -> Manifest:
    fields = {
        "session_id": session_id,
        "created_at": when,
        "last_updated_at": when,
        "pages": list(pages),
        "assets": assets,
    }
    fields.update(overrides)
    return Manifest(**fields)


def signature(version: str, settings_hash: str, commit: str | None = None) -> PipelineSignature:
    return PipelineSignature(version=version, render_settings_hash=settings_hash, git_commit=commit)


def write_file(root: Path, rel: str, content: str | bytes = "x") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    return path
