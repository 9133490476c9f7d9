"""Tests for the promotion merge and the canonical map."""

from merge import (
    Correlated,
    Uncorrelated,
    cleanup_canonical_map,
    correlation_key,
    detect_slug_changes,
    merge_manifests,
)
from tests.helpers import T0, T1, make_asset, make_manifest, make_page, signature


def routes(manifest) -> list[str]:
    return [page.route for page in manifest.pages]


class TestCorrelationKey:

    def test_prefers_vault_path(self) -> None:
        page = make_page("/a", vault_path="notes\\a.md", relative_path="a.html")
        assert correlation_key(page) == Correlated("notes/a.md")

    def test_falls_back_to_relative_path(self) -> None:
        page = make_page("/a", vault_path=None, relative_path="/a.html")
        assert correlation_key(page) == Correlated("a.html")

    def test_without_either_path_is_uncorrelated(self) -> None:
        page = make_page("/a", vault_path=None, relative_path=None)
        assert correlation_key(page) == Uncorrelated()


class TestPreservation:

    def test_unchanged_pages_survive_when_listed(self) -> None:
        previous = make_manifest([make_page("/a", source_hash="1"), make_page("/b", source_hash="2")])
        staged = make_manifest([make_page("/b", source_hash="3")], session_id="s2")

        result = merge_manifests(previous, staged, ["/a", "/b"], now=T1)

        assert routes(result.manifest) == ["/a", "/b"]
        assert result.manifest.page_by_route()["/a"].source_hash == "1"
        assert result.manifest.page_by_route()["/b"].source_hash == "3"
        assert result.diff.unchanged == ["/a"]
        assert result.diff.updated == ["/b"]
        assert [p.route for p in result.preserved_pages] == ["/a"]

    def test_no_route_list_keeps_everything(self) -> None:
        previous = make_manifest([make_page("/a"), make_page("/b")])
        staged = make_manifest([])

        result = merge_manifests(previous, staged, None, now=T1)

        assert routes(result.manifest) == ["/a", "/b"]
        assert result.diff.removed == []
        assert result.stale_files == []

    def test_first_promotion_adds_everything(self) -> None:
        staged = make_manifest([make_page("/b"), make_page("/a")])

        result = merge_manifests(None, staged, ["/a", "/b"], now=T1)

        assert routes(result.manifest) == ["/a", "/b"]
        assert result.diff.added == ["/a", "/b"]
        assert result.manifest.created_at == T0
        assert result.manifest.canonical_map is None


class TestDeletion:

    def test_pages_missing_from_route_list_are_removed(self) -> None:
        previous = make_manifest([make_page("/keep"), make_page("/gone")])
        staged = make_manifest([])

        result = merge_manifests(previous, staged, ["/keep"], now=T1)

        assert routes(result.manifest) == ["/keep"]
        assert result.diff.removed == ["/gone"]
        assert result.stale_files == ["gone.html"]

    def test_empty_route_list_removes_everything_not_staged(self) -> None:
        previous = make_manifest([make_page("/a"), make_page("/b")])
        staged = make_manifest([make_page("/c")])

        result = merge_manifests(previous, staged, [], now=T1)

        assert routes(result.manifest) == ["/c"]
        assert result.diff.removed == ["/a", "/b"]


class TestStagedWins:

    def test_title_update_with_same_content(self) -> None:
        previous = make_manifest([
            make_page("/stable", vault_path="note.md", title="Old", source_hash="abc"),
        ])
        staged = make_manifest([
            make_page("/stable", vault_path="note.md", title="New", source_hash="abc"),
        ], session_id="s2")

        result = merge_manifests(previous, staged, ["/stable"], now=T1)
        page = result.manifest.page_by_route()["/stable"]

        assert page.source_hash == "abc"
        assert page.title == "New"
        assert result.diff.updated == ["/stable"]

    def test_route_collision_with_unrelated_page(self) -> None:
        previous = make_manifest([make_page("/p", vault_path="a.md", relative_path="old/p.html")])
        staged = make_manifest([make_page("/p", vault_path="b.md")])

        result = merge_manifests(previous, staged, ["/p"], now=T1)

        assert len(result.manifest.pages) == 1
        assert result.manifest.pages[0].vault_path == "b.md"
        assert result.diff.added == ["/p"]
        assert result.stale_files == ["old/p.html"]

    def test_duplicate_staged_routes_keep_the_last(self, capsys) -> None:
        staged = make_manifest([
            make_page("/p", vault_path="a.md"),
            make_page("/p", vault_path="b.md"),
        ])

        result = merge_manifests(None, staged, ["/p"], now=T1)

        assert [p.vault_path for p in result.manifest.pages] == ["b.md"]
        assert "Duplicate staged route /p" in capsys.readouterr().out

    def test_uncorrelated_pages_are_always_new(self) -> None:
        previous = make_manifest([make_page("/a", vault_path=None, relative_path=None)])
        staged = make_manifest([make_page("/b", vault_path=None, relative_path=None)])

        result = merge_manifests(previous, staged, ["/a", "/b"], now=T1)

        assert routes(result.manifest) == ["/a", "/b"]
        assert result.diff.added == ["/b"]
        assert result.diff.unchanged == ["/a"]


class TestPipelineSignature:

    def test_latest_signature_replaces_previous(self) -> None:
        previous = make_manifest([make_page("/a")], pipeline_signature=signature("1.0.0", "h1"))
        staged = make_manifest([make_page("/a")], pipeline_signature=signature("1.1.0", "h2"))

        result = merge_manifests(previous, staged, ["/a"], now=T1)

        assert result.manifest.pipeline_signature == signature("1.1.0", "h2")

    def test_staged_without_signature_clears_it(self) -> None:
        previous = make_manifest([], pipeline_signature=signature("1.0.0", "h1"))
        staged = make_manifest([])

        result = merge_manifests(previous, staged, None, now=T1)

        assert result.manifest.pipeline_signature is None


class TestCanonicalMap:

    def test_route_change_becomes_redirect(self) -> None:
        previous = make_manifest([make_page("/old", vault_path="n.md")])
        staged = make_manifest([make_page("/new", vault_path="n.md")])

        result = merge_manifests(previous, staged, ["/new"], now=T1)

        assert result.slug_changes == {"/old": "/new"}
        assert result.manifest.canonical_map == {"/old": "/new"}
        assert result.diff.updated == ["/new"]
        assert result.stale_files == ["old.html"]

    def test_chains_collapse_on_second_rename(self) -> None:
        previous = make_manifest(
            [make_page("/b", vault_path="n.md")],
            canonical_map={"/a": "/b"},
        )
        staged = make_manifest([make_page("/c", vault_path="n.md")])

        result = merge_manifests(previous, staged, ["/c"], now=T1)

        assert result.manifest.canonical_map == {"/a": "/c", "/b": "/c"}

    def test_mapping_dropped_when_source_is_live_again(self) -> None:
        previous = make_manifest(
            [make_page("/new", vault_path="n.md")],
            canonical_map={"/old": "/new"},
        )
        staged = make_manifest([make_page("/old", vault_path="n.md")])

        result = merge_manifests(previous, staged, ["/old"], now=T1)

        assert result.manifest.canonical_map == {"/new": "/old"}

    def test_cleanup_drops_dead_destinations_and_cycles(self) -> None:
        cleaned = cleanup_canonical_map(
            {"/a": "/b", "/b": "/a", "/x": "/gone", "/y": "/live"},
            {"/live"},
        )
        assert cleaned == {"/y": "/live"}

    def test_detect_slug_changes_without_previous(self) -> None:
        assert detect_slug_changes(None, make_manifest([make_page("/a")])) == {}


class TestMergeMetadata:

    def test_timestamps_and_session(self) -> None:
        previous = make_manifest([], session_id="s1", when=T0)
        staged = make_manifest([], session_id="s2", when=T1)

        result = merge_manifests(previous, staged, None, now=T1)

        assert result.manifest.session_id == "s2"
        assert result.manifest.created_at == T0
        assert result.manifest.last_updated_at == T1

    def test_folder_display_names_are_merged(self) -> None:
        previous = make_manifest([], folder_display_names={"/a": "A", "/b": "Old B"})
        staged = make_manifest([], folder_display_names={"/b": "New B"})

        result = merge_manifests(previous, staged, None, now=T1)

        assert result.manifest.folder_display_names == {"/a": "A", "/b": "New B"}

    def test_assets_follow_surviving_pages(self) -> None:
        previous = make_manifest(
            [make_page("/a", assets=["_assets/a.png"]), make_page("/gone", assets=["_assets/b.png"])],
            assets=[make_asset("_assets/a.png"), make_asset("_assets/b.png")],
        )
        staged = make_manifest(
            [make_page("/d", assets=["_assets/d.webp"])],
            assets=[make_asset("_assets/d.webp", digest="d")],
        )

        result = merge_manifests(previous, staged, ["/a", "/d"], now=T1)

        assert sorted(result.manifest.asset_paths()) == ["_assets/a.png", "_assets/d.webp"]

    def test_staged_asset_entry_wins(self) -> None:
        previous = make_manifest(
            [make_page("/a", assets=["_assets/a.png"])],
            assets=[make_asset("_assets/a.png", digest="old")],
        )
        staged = make_manifest(
            [make_page("/a", assets=["_assets/a.png"])],
            assets=[make_asset("_assets/a.png", digest="new")],
        )

        result = merge_manifests(previous, staged, ["/a"], now=T1)

        assert [a.hash for a in result.manifest.assets] == ["new"]

    def test_merge_is_idempotent(self) -> None:
        previous = make_manifest(
            [make_page("/a"), make_page("/old", vault_path="b.md")],
            assets=[make_asset("_assets/x.png")],
        )
        staged = make_manifest([make_page("/new", vault_path="b.md")], session_id="s2")

        once = merge_manifests(previous, staged, ["/a", "/new"], now=T1).manifest
        twice = merge_manifests(once, staged, ["/a", "/new"], now=T1).manifest

        assert once == twice
