"""
Per-session staging areas.

Every session renders into its own scratch directories:

    <content_root>/.staging/<session_id>/   ← HTML, staged manifest, raw notes
    <assets_root>/.staging/<session_id>/    ← uploaded assets

Nothing here is visible to readers until the promotion coordinator copies
it into the production roots.  Also holds the small filesystem helpers the
promotion steps share (recursive listing, tree copy, selective clearing).
"""

import json
import shutil
from dataclasses import dataclass
from pathlib import Path

from manifest import MANIFEST_FILENAME, Manifest, ManifestStore, PipelineSignature

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

STAGING_DIR_NAME = ".staging"
RAW_NOTES_DIR_NAME = "_raw-notes"
SESSION_FILENAME = "_session.json"

# Entries of a content staging directory that are never promoted.
WORKING_ENTRIES = {RAW_NOTES_DIR_NAME, SESSION_FILENAME, MANIFEST_FILENAME}


@dataclass
class SessionInfo:
    """What the vault scan knew when the session was staged."""

    session_id: str
    all_collected_routes: list[str] | None = None
    pipeline_signature: PipelineSignature | None = None

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "allCollectedRoutes": self.all_collected_routes,
            "pipelineSignature": (
                self.pipeline_signature.to_dict() if self.pipeline_signature else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionInfo":
        signature = data.get("pipelineSignature")
        routes = data.get("allCollectedRoutes")
        return cls(
            session_id=str(data.get("sessionId", "")),
            all_collected_routes=list(routes) if routes is not None else None,
            pipeline_signature=PipelineSignature.from_dict(signature) if signature else None,
        )


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------

def list_files(root: Path, exclude: set[str] | frozenset[str] = frozenset()) -> list[str]:
    """Recursively list files under *root* as sorted posix relative paths.

    Directories or files whose name is in *exclude* are skipped at any
    depth.  A missing root yields an empty list.
    """
    if not root.is_dir():
        return []
    files = []
    for entry in sorted(root.iterdir()):
        if entry.name in exclude:
            continue
        if entry.is_dir():
            files.extend(f"{entry.name}/{sub}" for sub in list_files(entry, exclude))
        elif entry.is_file():
            files.append(entry.name)
    return files


def copy_tree(src: Path, dest: Path, skip: set[str] | frozenset[str] = frozenset()) -> list[str]:
    """Copy the contents of *src* into *dest*, merging with what is there.

    Top-level entries named in *skip* are not copied.  Returns the copied
    files as posix paths relative to *dest*.
    """
    dest.mkdir(parents=True, exist_ok=True)
    copied = []
    if not src.is_dir():
        return copied
    for entry in sorted(src.iterdir()):
        if entry.name in skip:
            continue
        if entry.is_dir():
            copied.extend(f"{entry.name}/{sub}" for sub in copy_tree(entry, dest / entry.name))
        elif entry.is_file():
            shutil.copy2(entry, dest / entry.name)
            copied.append(entry.name)
    return copied


def clear_root_except(root: Path, keep_names: set[str], keep_files: set[str] = frozenset()) -> list[str]:
    """Delete everything under *root* except the named top-level entries and
    the given relative file paths.  Directories left empty are removed.

    Returns the deleted files as posix relative paths.
    """
    root.mkdir(parents=True, exist_ok=True)
    deleted = []

    def _clear(directory: Path, prefix: str) -> bool:
        # Returns True when the directory still holds something.
        occupied = False
        for entry in sorted(directory.iterdir()):
            rel = f"{prefix}{entry.name}"
            if entry.is_dir() and not entry.is_symlink():
                if _clear(entry, rel + "/"):
                    occupied = True
                else:
                    entry.rmdir()
            elif rel in keep_files:
                occupied = True
            else:
                entry.unlink()
                deleted.append(rel)
        return occupied

    for entry in sorted(root.iterdir()):
        if entry.name in keep_names:
            continue
        if entry.is_dir() and not entry.is_symlink():
            if not _clear(entry, entry.name + "/"):
                entry.rmdir()
        elif entry.name not in keep_files:
            entry.unlink()
            deleted.append(entry.name)
    return deleted


# ---------------------------------------------------------------------------
# Stager
# ---------------------------------------------------------------------------

class ContentStager:
    """Owns the staging directory pair of each session."""

    def __init__(self, content_root: Path | str, assets_root: Path | str):
        self.content_root = Path(content_root)
        self.assets_root = Path(assets_root)

    def content_staging_path(self, session_id: str) -> Path:
        return self.content_root / STAGING_DIR_NAME / session_id

    def assets_staging_path(self, session_id: str) -> Path:
        return self.assets_root / STAGING_DIR_NAME / session_id

    def raw_notes_path(self, session_id: str) -> Path:
        return self.content_staging_path(session_id) / RAW_NOTES_DIR_NAME

    def ensure(self, session_id: str) -> None:
        self.content_staging_path(session_id).mkdir(parents=True, exist_ok=True)
        self.assets_staging_path(session_id).mkdir(parents=True, exist_ok=True)

    def discard(self, session_id: str) -> None:
        """Remove both staging subtrees of a session; missing ones are fine."""
        shutil.rmtree(self.content_staging_path(session_id), ignore_errors=True)
        shutil.rmtree(self.assets_staging_path(session_id), ignore_errors=True)

    def purge(self) -> None:
        """Empty both production roots, staging included."""
        clear_root_except(self.content_root, set())
        clear_root_except(self.assets_root, set())
        print("  [warn] Content and assets purged.")

    # -- staged manifest ----------------------------------------------------

    def load_manifest(self, session_id: str) -> Manifest | None:
        return ManifestStore(self.content_staging_path(session_id)).load()

    def save_manifest(self, session_id: str, manifest: Manifest) -> None:
        ManifestStore(self.content_staging_path(session_id)).save(manifest)

    # -- session info -------------------------------------------------------

    def save_session(self, info: SessionInfo) -> None:
        path = self.content_staging_path(info.session_id) / SESSION_FILENAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(info.to_dict(), indent=2) + "\n", encoding="utf-8")

    def load_session(self, session_id: str) -> SessionInfo | None:
        path = self.content_staging_path(session_id) / SESSION_FILENAME
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return SessionInfo.from_dict(json.loads(raw))
