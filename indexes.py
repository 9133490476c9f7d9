"""
Folder index rendering.

Derives the folder tree of the site from page routes and renders the
``index.html`` fragment for each folder: optional custom content, the
sorted list of subfolders (with entry counts) and the sorted list of pages.
"""

from dataclasses import dataclass, field

from mistune import escape as escape_text

from manifest import ManifestPage, make_title


@dataclass
class FolderNode:
    pages: list[ManifestPage] = field(default_factory=list)
    subfolders: set[str] = field(default_factory=set)


@dataclass
class FolderEntry:
    name: str
    link: str
    count: int
    label: str | None = None


# ---------------------------------------------------------------------------
# Route helpers
# ---------------------------------------------------------------------------

def route_segments(route: str) -> list[str]:
    return [seg for seg in route.split("/") if seg]


def join_route(folder: str, name: str) -> str:
    return f"/{name}" if folder == "/" else f"{folder}/{name}"


def parent_folder(route: str) -> str:
    """'/guide/start' → '/guide', '/start' → '/'"""
    segs = route_segments(route)
    return "/" + "/".join(segs[:-1]) if len(segs) > 1 else "/"


def is_listed(page: ManifestPage) -> bool:
    """Custom index pages feed their folder's index instead of being listed."""
    return not page.is_custom_index and page.slug != "index"


# ---------------------------------------------------------------------------
# Folder tree
# ---------------------------------------------------------------------------

def build_folder_map(pages: list[ManifestPage]) -> dict[str, FolderNode]:
    """Build folder path → node from page routes. Root is always present."""
    folders: dict[str, FolderNode] = {"/": FolderNode()}

    for page in pages:
        segs = route_segments(page.route)

        parent = "/"
        for seg in segs[:-1]:
            folder = join_route(parent, seg)
            folders.setdefault(folder, FolderNode())
            folders[parent].subfolders.add(seg)
            parent = folder

        if is_listed(page):
            folders[parent].pages.append(page)

    return {path: folders[path] for path in sorted(folders, key=lambda p: (p != "/", p))}


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _sort_key(text: str) -> tuple[str, str]:
    return text.casefold(), text


def _folder_title(folder: str, label: str | None) -> str:
    if label:
        return label
    segs = route_segments(folder)
    return make_title(segs[-1]) if segs else "Home"


def render_folder_index(
    folder: str,
    pages: list[ManifestPage],
    subfolders: list[FolderEntry],
    custom_content: str | None = None,
    label: str | None = None,
) -> str:
    """Render a folder's index fragment.

    Subfolders are sorted by name and pages by title (then route) so the
    output is reproducible.
    """
    sub_items = "".join(
        f'<li><a class="index-link" href="{escape_text(entry.link)}/index">'
        f"{escape_text(entry.label or make_title(entry.name))}</a>"
        f'<span class="index-count">({entry.count})</span></li>'
        for entry in sorted(subfolders, key=lambda e: _sort_key(e.name))
    )
    page_items = "".join(
        f'<li><a class="index-link" href="{escape_text(page.route)}">'
        f"{escape_text(page.title)}</a></li>"
        for page in sorted(pages, key=lambda p: (*_sort_key(p.title), p.route))
    )

    return (
        '<div class="markdown-body">\n'
        f"  {custom_content or ''}\n"
        f"  <h1>{escape_text(_folder_title(folder, label))}</h1>\n"
        "  <section>\n"
        "    <h2>Folders</h2>\n"
        f'    <ul class="index-list">{sub_items or "<li><em>No folders</em></li>"}</ul>\n'
        "  </section>\n"
        "  <section>\n"
        "    <h2>Pages</h2>\n"
        f'    <ul class="index-list">{page_items or "<li><em>No pages</em></li>"}</ul>\n'
        "  </section>\n"
        "</div>\n"
    )
