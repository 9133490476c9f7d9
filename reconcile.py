"""
Asset reconciliation between a session's staging area and production.

Given the final manifest's asset paths, the files staged by the session and
the files already in production, decide what to copy, keep and delete:

  - to_copy   every staged file (staged content is authoritative)
  - to_keep   production files still referenced and not re-staged
  - to_delete production files neither referenced nor re-staged

Paths are compared case-sensitively after normalising separators.
"""

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from manifest import normalize_path
from staging import RAW_NOTES_DIR_NAME, STAGING_DIR_NAME, list_files

# Working directories that are never copied and never considered for deletion.
EXCLUDED_PREFIXES = (STAGING_DIR_NAME, RAW_NOTES_DIR_NAME)


def normalize_asset_path(path: str) -> str:
    """'_assets\\img.png', './_assets/img.png', '/_assets/img.png' → '_assets/img.png'"""
    return normalize_path(path)


def is_excluded(path: str) -> bool:
    return path.split("/", 1)[0] in EXCLUDED_PREFIXES


@dataclass
class AssetPlan:
    to_copy: list[str] = field(default_factory=list)
    to_keep: list[str] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)
    # Referenced by the manifest but present nowhere on disk.
    missing: list[str] = field(default_factory=list)


@dataclass
class BatchResult:
    """Outcome of a best-effort batch: what worked and what failed."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, OSError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class AssetSyncResult:
    copied: list[str]
    kept: list[str]
    deletions: BatchResult


def plan_assets(referenced, staged_files, production_files) -> AssetPlan:
    """Pure decision step; the three returned action lists are disjoint."""
    referenced = {normalize_asset_path(p) for p in referenced}
    staged = {normalize_asset_path(p) for p in staged_files}
    staged = {p for p in staged if not is_excluded(p)}
    production = {normalize_asset_path(p) for p in production_files}
    production = {p for p in production if not is_excluded(p)}

    return AssetPlan(
        to_copy=sorted(staged),
        to_keep=sorted((production & referenced) - staged),
        to_delete=sorted(production - referenced - staged),
        missing=sorted(referenced - staged - production),
    )


def plan_for_roots(referenced, staging_root: Path, assets_root: Path) -> AssetPlan:
    staged_files = list_files(staging_root, set(EXCLUDED_PREFIXES))
    production_files = list_files(assets_root, set(EXCLUDED_PREFIXES))
    return plan_assets(referenced, staged_files, production_files)


def apply_asset_plan(plan: AssetPlan, staging_root: Path, assets_root: Path) -> AssetSyncResult:
    """Copy staged assets, then delete obsolete ones.

    A failed copy propagates.  Deletions are best-effort: each failure is
    recorded and reported, the remaining deletions still run.
    """
    for rel in plan.to_copy:
        dst = assets_root / rel
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(staging_root / rel, dst)

    deletions = BatchResult()
    for rel in plan.to_delete:
        try:
            (assets_root / rel).unlink(missing_ok=True)
        except OSError as exc:
            print(f"  [warn] Could not delete obsolete asset {rel}: {exc}")
            deletions.failed.append((rel, exc))
        else:
            deletions.succeeded.append(rel)

    for rel in plan.missing:
        print(f"  [warn] Referenced asset not found in staging or production: {rel}")

    print(
        f"  [assets] copied={len(plan.to_copy)} kept={len(plan.to_keep)} "
        f"deleted={len(deletions.succeeded)} failed={len(deletions.failed)}"
    )
    return AssetSyncResult(copied=list(plan.to_copy), kept=list(plan.to_keep), deletions=deletions)
