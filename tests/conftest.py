from pathlib import Path

import pytest

from tests.helpers import write_file


@pytest.fixture
def vault(tmp_path) -> Path:
    """A small vault with links, an embed, a folder README and noise."""
    root = tmp_path / "vault"
    write_file(root, "Getting Started.md", "---\ntags: [intro]\n---\nSee [[Other Note]].\n\n![[pic.png]]\n")
    write_file(root, "Other Note.md", "# Big Idea\n\nSome text.\n")
    write_file(root, "img/pic.png", b"\x89PNG-one")
    write_file(root, "Guide/README.md", "# Guide\n\nWelcome to the guide.\n")
    write_file(root, "Guide/Step One.md", "---\ntitle: First Step\n---\nDo this.\n")
    write_file(root, "Draft.md", "---\npublish: false\n---\nNot yet.\n")
    write_file(root, ".obsidian/app.json", "{}")
    write_file(root, ".DS_Store", b"\x00")
    return root
