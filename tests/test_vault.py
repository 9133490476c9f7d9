"""Tests for the vault scanner and front matter parsing."""

from pathlib import Path

from frontmatter import extract_frontmatter, read_flags
from tests.helpers import write_file
from vault import folder_route, scan_vault


class TestFrontmatter:

    def test_splits_yaml_from_body(self) -> None:
        meta, body = extract_frontmatter("---\ntitle: Hi\ndate: 2024-01-05\n---\nBody\n")

        assert meta == {"title": "Hi", "date": "2024-01-05"}
        assert body == "Body\n"

    def test_malformed_yaml_is_ignored(self) -> None:
        text = "---\ntitle: [unclosed\n---\nBody\n"
        assert extract_frontmatter(text) == ({}, text)

    def test_no_frontmatter(self) -> None:
        assert extract_frontmatter("# Just text\n") == ({}, "# Just text\n")

    def test_flags(self) -> None:
        flags = read_flags({"title": "T", "publish": "no", "noindex": True, "tags": ["x"]})

        assert flags.title == "T"
        assert flags.publish is False
        assert flags.no_index is True
        assert flags.metadata == {"tags": ["x"]}

    def test_publish_defaults_to_true(self) -> None:
        assert read_flags({}).publish is True
        assert read_flags({"publish": None}).publish is True


class TestScanVault:

    def test_collects_published_notes_and_assets(self, vault) -> None:
        scan = scan_vault(vault)

        assert scan.routes() == ["/getting-started", "/guide/index", "/guide/step-one", "/other-note"]
        assert [a.path for a in scan.assets] == ["_assets/img/pic.png"]
        assert scan.folder_display_names == {"/guide": "Guide", "/img": "img"}

    def test_readme_becomes_custom_index(self, vault) -> None:
        scan = scan_vault(vault)
        readme = next(n for n in scan.notes if n.vault_path == "Guide/README.md")

        assert readme.route == "/guide/index"
        assert readme.slug == "index"
        assert readme.relative_path == "guide/readme.html"
        assert readme.title == "Guide"
        assert readme.is_custom_index

    def test_root_readme_is_titled_home(self, tmp_path) -> None:
        write_file(tmp_path, "readme.md", "hello\n")
        note = scan_vault(tmp_path).notes[0]

        assert note.route == "/index"
        assert note.relative_path == "readme.html"
        assert note.title == "Home"

    def test_root_index_note_is_front_page(self, tmp_path) -> None:
        write_file(tmp_path, "index.md", "hello\n")
        note = scan_vault(tmp_path).notes[0]

        assert note.route == "/index"
        assert note.relative_path == "index-page.html"
        assert note.is_custom_index
        assert note.title == "Home"

    def test_second_front_page_in_folder_is_a_plain_note(self, tmp_path) -> None:
        write_file(tmp_path, "Guide/index.md", "one\n")
        write_file(tmp_path, "Guide/README.md", "two\n")

        first, second = scan_vault(tmp_path).notes

        assert (first.vault_path, first.route, first.relative_path) == (
            "Guide/index.md", "/guide/index", "guide/index-page.html",
        )
        assert first.is_custom_index
        assert (second.route, second.relative_path) == ("/guide/index-2", "guide/index-2.html")
        assert not second.is_custom_index

    def test_colliding_routes_get_suffixes(self, tmp_path, capsys) -> None:
        write_file(tmp_path, "My Note.md", "a\n")
        write_file(tmp_path, "my-note.md", "b\n")

        scan = scan_vault(tmp_path)

        assert scan.routes() == ["/my-note", "/my-note-2"]
        assert scan.notes[1].relative_path == "my-note-2.html"
        assert "already taken" in capsys.readouterr().out

    def test_source_hash_tracks_bytes(self, tmp_path) -> None:
        write_file(tmp_path, "a.md", "one\n")
        first = scan_vault(tmp_path).notes[0].source_hash
        write_file(tmp_path, "a.md", "two\n")

        assert scan_vault(tmp_path).notes[0].source_hash != first

    def test_folder_route(self) -> None:
        assert folder_route(Path(".")) == "/"
        assert folder_route(Path("Moss/Moss 1")) == "/moss/moss-1"
