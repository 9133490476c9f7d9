"""
Session staging for a vault.

Renders a vault into a session's staging directories:

  - HTML fragments for every note that changed since the production
    manifest (every note when the pipeline signature changed)
  - a raw copy of each rendered note under _raw-notes/
  - the assets those notes embed, unless production already has them
  - the staged _manifest.json and the session file with the full route list

Unchanged notes are left out of the staged manifest on purpose: the merge
carries them forward from production because their route is still listed.
"""

import hashlib
import json
import mimetypes
import uuid
from dataclasses import dataclass, field
from pathlib import Path

import renderer
from manifest import Manifest, ManifestAsset, ManifestPage, PipelineSignature, utcnow
from resolver import build_link_index
from staging import ContentStager, SessionInfo
from vault import Note, VaultScan, scan_vault

DEFAULT_VERSION = "1.0.0"


@dataclass
class StagedSession:
    session_id: str
    all_collected_routes: list[str]
    pipeline_signature: PipelineSignature
    rendered: list[str] = field(default_factory=list)
    reused: list[str] = field(default_factory=list)
    staged_assets: list[str] = field(default_factory=list)


def new_session_id() -> str:
    return uuid.uuid4().hex


def compute_pipeline_signature(
    version: str = DEFAULT_VERSION,
    settings: dict | None = None,
    git_commit: str | None = None,
) -> PipelineSignature:
    """Signature = version + sha256 of the settings as sorted-key JSON."""
    payload = json.dumps(settings or {}, sort_keys=True, separators=(",", ":"))
    return PipelineSignature(
        version=version,
        render_settings_hash=hashlib.sha256(payload.encode("utf-8")).hexdigest(),
        git_commit=git_commit,
    )


def page_id(note: Note) -> str:
    return hashlib.sha256(note.vault_path.encode("utf-8")).hexdigest()[:16]


def _is_unchanged(note: Note, old: ManifestPage | None) -> bool:
    return (
        old is not None
        and old.source_hash == note.source_hash
        and old.route == note.route
        and old.relative_path == note.relative_path
    )


def _stage_assets(
    scan: VaultScan,
    referenced: set[str],
    previous: Manifest | None,
    assets_stage: Path,
    session: StagedSession,
) -> list[ManifestAsset]:
    by_path = {asset.path: asset for asset in scan.assets}
    prev_assets = {a.path: a for a in (previous.assets or [])} if previous else {}
    now = utcnow()
    entries = []

    for path in sorted(referenced):
        if path not in by_path:
            print(f"  [warn] Embedded asset no longer in the vault: {path}")
            continue
        data = by_path[path].source.read_bytes()
        digest = hashlib.sha256(data).hexdigest()
        old = prev_assets.get(path)
        if old is not None and old.hash == digest:
            # Production already holds these bytes
            entries.append(old)
            continue

        dst = assets_stage / path
        dst.parent.mkdir(parents=True, exist_ok=True)
        dst.write_bytes(data)
        session.staged_assets.append(path)
        entries.append(ManifestAsset(
            path=path,
            hash=digest,
            size=len(data),
            mime_type=mimetypes.guess_type(path)[0] or "application/octet-stream",
            uploaded_at=now,
        ))
    return entries


def stage_vault(
    vault_path: Path | str,
    stager: ContentStager,
    session_id: str,
    previous: Manifest | None = None,
    version: str = DEFAULT_VERSION,
    settings: dict | None = None,
    force: bool = False,
) -> StagedSession:
    """Render *vault_path* into the staging area of *session_id*.

    Args:
        vault_path: Root of the source vault.
        stager:     Stager of the target site.
        session_id: Session to stage into.
        previous:   Production manifest, used to skip unchanged notes and
                    assets.  ``None`` renders everything.
        version:    Pipeline version recorded in the signature.
        settings:   Render settings hashed into the signature.
        force:      Re-render every note regardless of hashes.
    """
    scan = scan_vault(vault_path)
    signature = compute_pipeline_signature(version, settings)
    full_render = force or previous is None or previous.pipeline_signature != signature
    if previous is not None and previous.pipeline_signature != signature:
        print("  [stage] Pipeline signature changed; re-rendering every note.")

    session = StagedSession(
        session_id=session_id,
        all_collected_routes=scan.routes(),
        pipeline_signature=signature,
    )
    prev_pages = {p.vault_path: p for p in previous.pages if p.vault_path} if previous else {}

    stager.ensure(session_id)
    content_stage = stager.content_staging_path(session_id)
    raw_dir = stager.raw_notes_path(session_id)
    md = renderer.create_parser(build_link_index(scan))
    now = utcnow()

    pages = []
    referenced: set[str] = set()
    for note in scan.notes:
        old = prev_pages.get(note.vault_path)
        if not full_render and _is_unchanged(note, old):
            session.reused.append(note.route)
            # Embedded files may have changed even though the note did not
            referenced.update(old.assets)
            continue

        rendered = renderer.render_note(md, note)
        out_file = content_stage / note.relative_path
        out_file.parent.mkdir(parents=True, exist_ok=True)
        out_file.write_text(rendered.html, encoding="utf-8")

        raw_file = raw_dir / note.vault_path
        raw_file.parent.mkdir(parents=True, exist_ok=True)
        raw_file.write_text(note.raw, encoding="utf-8")

        referenced.update(rendered.assets)
        session.rendered.append(note.route)
        pages.append(ManifestPage(
            id=old.id if old else page_id(note),
            title=note.title,
            route=note.route,
            slug=note.slug,
            relative_path=note.relative_path,
            published_at=old.published_at if old else now,
            last_modified_at=now,
            source_hash=note.source_hash,
            source_size=note.source_size,
            is_custom_index=note.is_custom_index,
            no_index=note.no_index,
            vault_path=note.vault_path,
            assets=rendered.assets,
            extra={"tags": note.metadata["tags"]} if "tags" in note.metadata else {},
        ))

    assets = _stage_assets(scan, referenced, previous, stager.assets_staging_path(session_id), session)

    stager.save_manifest(session_id, Manifest(
        session_id=session_id,
        created_at=now,
        last_updated_at=now,
        pages=pages,
        assets=assets,
        pipeline_signature=signature,
        folder_display_names=scan.folder_display_names or None,
    ))
    stager.save_session(SessionInfo(
        session_id=session_id,
        all_collected_routes=session.all_collected_routes,
        pipeline_signature=signature,
    ))

    print(
        f"  [stage] {session_id}: rendered={len(session.rendered)} reused={len(session.reused)} "
        f"assets staged={len(session.staged_assets)}"
    )
    return session
