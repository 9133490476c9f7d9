"""
Publishing CLI for Obsidian Vault → static site.

Commands:
  stage          render a vault into a new (or given) staging session
  promote        promote a staged session into production
  publish        stage + promote in one go
  discard        drop a session's staging directories
  rebuild-index  regenerate folder index.html files from the manifest

Usage:
    python publish.py publish /path/to/vault
    python publish.py stage /path/to/vault --session abc123
    python publish.py promote abc123
    python publish.py --content-root site/content --assets-root site/assets rebuild-index
"""

import argparse
import asyncio
import os
import sys

from pipeline import DEFAULT_VERSION, new_session_id, stage_vault
from promotion import PromotionCoordinator, collect_custom_indexes

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_CONTENT_ROOT = os.environ.get("PUBLISH_CONTENT_ROOT", "content")
DEFAULT_ASSETS_ROOT = os.environ.get("PUBLISH_ASSETS_ROOT", "assets")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_stage(coordinator: PromotionCoordinator, args) -> str:
    session_id = args.session or new_session_id()
    print(f"[stage] Rendering {args.vault_path} into session {session_id}")
    previous = None if args.force else coordinator.store.load()
    stage_vault(
        args.vault_path,
        coordinator.stager,
        session_id,
        previous=previous,
        version=args.version,
        force=args.force,
    )
    print(f"Session staged: {session_id}")
    return session_id


def cmd_promote(coordinator: PromotionCoordinator, args, session_id: str | None = None) -> None:
    session_id = session_id or args.session
    info = coordinator.stager.load_session(session_id)
    routes = None
    signature = None
    if info is not None:
        routes = None if args.no_routes else info.all_collected_routes
        signature = info.pipeline_signature
    else:
        print(f"  [warn] No session file for {session_id}; no page will be deleted.")

    print(f"[promote] Promoting session {session_id}")
    result = asyncio.run(coordinator.promote_session(session_id, routes, signature))
    print(f"Done. {len(result.manifest.pages)} page(s), {len(result.manifest.assets or [])} asset(s) published.")


def cmd_publish(coordinator: PromotionCoordinator, args) -> None:
    args.session = None
    session_id = cmd_stage(coordinator, args)
    cmd_promote(coordinator, args, session_id=session_id)


def cmd_discard(coordinator: PromotionCoordinator, args) -> None:
    coordinator.stager.discard(args.session)
    print(f"Discarded session {args.session}")


def cmd_rebuild_index(coordinator: PromotionCoordinator, args) -> None:
    store = coordinator.store
    manifest = store.load()
    if manifest is None:
        print(f"Error: no manifest found at {store.path}", file=sys.stderr)
        sys.exit(1)
    store.rebuild_index(manifest, collect_custom_indexes(manifest, coordinator.content_root))


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Stage and promote an Obsidian vault into a static content tree."
    )
    ap.add_argument(
        "--content-root",
        default=DEFAULT_CONTENT_ROOT,
        help=f"Production content root (default: {DEFAULT_CONTENT_ROOT}, env PUBLISH_CONTENT_ROOT).",
    )
    ap.add_argument(
        "--assets-root",
        default=DEFAULT_ASSETS_ROOT,
        help=f"Production assets root (default: {DEFAULT_ASSETS_ROOT}, env PUBLISH_ASSETS_ROOT).",
    )
    sub = ap.add_subparsers(dest="command", required=True)

    def add_vault_args(p):
        p.add_argument("vault_path", help="Path to the root of the Obsidian vault.")
        p.add_argument(
            "--version",
            default=DEFAULT_VERSION,
            help=f"Pipeline version recorded in the manifest (default: {DEFAULT_VERSION}).",
        )
        p.add_argument(
            "--force",
            action="store_true",
            help="Re-render every note even when its source is unchanged.",
        )

    p_stage = sub.add_parser("stage", help="Render a vault into a staging session.")
    add_vault_args(p_stage)
    p_stage.add_argument("--session", default=None, help="Session id (default: random).")
    p_stage.set_defaults(func=cmd_stage)

    p_promote = sub.add_parser("promote", help="Promote a staged session.")
    p_promote.add_argument("session", help="Session id to promote.")
    p_promote.add_argument(
        "--no-routes",
        action="store_true",
        help="Ignore the session's route list: keep every previously published page.",
    )
    p_promote.set_defaults(func=cmd_promote)

    p_publish = sub.add_parser("publish", help="Stage a vault and promote it.")
    add_vault_args(p_publish)
    p_publish.add_argument("--no-routes", action="store_true", help=argparse.SUPPRESS)
    p_publish.set_defaults(func=cmd_publish)

    p_discard = sub.add_parser("discard", help="Remove a session's staging directories.")
    p_discard.add_argument("session", help="Session id to discard.")
    p_discard.set_defaults(func=cmd_discard)

    p_index = sub.add_parser("rebuild-index", help="Regenerate folder index pages.")
    p_index.set_defaults(func=cmd_rebuild_index)

    return ap


def main(argv: list[str] | None = None) -> None:
    args = build_arg_parser().parse_args(argv)
    coordinator = PromotionCoordinator(args.content_root, args.assets_root)
    try:
        args.func(coordinator, args)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
