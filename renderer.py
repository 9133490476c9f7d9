"""
Renderer for vault notes.

Configures Mistune with custom plugins and renderers for:
- Obsidian wiki-links and embeds (embedded assets are recorded per page)
- Math (KaTeX compatible)
- Heading anchors and copyable code blocks
"""

import re
from dataclasses import dataclass
from urllib.parse import quote

import mistune
from mistune import escape as escape_text

import resolver
from vault import Note

ASSETS_URL_PREFIX = "/assets/"

_DANGEROUS_BLOCKS = [
    re.compile(rf"<{tag}[^>]*>.*?</{tag}>", re.DOTALL | re.IGNORECASE)
    for tag in ("style", "script", "iframe")
]
_EVENT_HANDLERS = [
    re.compile(r'\s+on\w+\s*=\s*"[^"]*"', re.IGNORECASE),
    re.compile(r"\s+on\w+\s*=\s*'[^']*'", re.IGNORECASE),
]


@dataclass
class RenderedNote:
    html: str
    assets: list[str]


# ---------------------------------------------------------------------------
# Mistune plugins for Obsidian syntax
# ---------------------------------------------------------------------------

def plugin_wiki_embed(md: mistune.Markdown) -> None:
    """Plugin for ![[image.png]] embeds.

    Must be registered BEFORE wiki_link plugin since ![[...]] should
    match before [[...]].  Uses a named capture group because mistune v3
    combines all inline patterns into one regex.
    """
    WIKI_EMBED_PATTERN = r"!\[\[(?P<wiki_embed_target>[^\]]+)\]\]"

    def parse_wiki_embed(inline, m, state):
        state.append_token({"type": "wiki_embed", "raw": m.group("wiki_embed_target")})
        return m.end()

    md.inline.register("wiki_embed", WIKI_EMBED_PATTERN, parse_wiki_embed, before="link")

    def render_wiki_embed(text):
        target, _, size = text.partition("|")
        path = resolver.resolve_embed(target, md.renderer._link_index)

        if path is None:
            # ![[Other Note]] embeds a note; render it as a link
            href, display = resolver.resolve_wiki_link(target, md.renderer._link_index)
            if href != "#":
                return f'<a class="embed-link" href="{escape_text(href)}">{escape_text(display)}</a>'
            return f'<span class="missing-embed">{escape_text(target.strip())}</span>'

        md.renderer._referenced_assets.add(path)
        src = ASSETS_URL_PREFIX + quote(path)
        basename = path.rsplit("/", 1)[-1]
        alt = basename.rsplit(".", 1)[0] if "." in basename else basename
        width = f' width="{size.strip()}"' if size.strip().isdigit() else ""
        if path.lower().endswith(".pdf"):
            return f'<a class="embed-pdf" href="{src}">{escape_text(basename)}</a>'
        return f'<img src="{src}" alt="{escape_text(alt)}"{width} />'

    md.renderer.wiki_embed = render_wiki_embed


def plugin_wiki_link(md: mistune.Markdown) -> None:
    """Plugin for [[page]], [[page|display]] and [[page#heading]] links."""
    WIKI_LINK_PATTERN = r"\[\[(?P<wiki_link_target>[^\]]+)\]\]"

    def parse_wiki_link(inline, m, state):
        state.append_token({"type": "wiki_link", "raw": m.group("wiki_link_target")})
        return m.end()

    md.inline.register("wiki_link", WIKI_LINK_PATTERN, parse_wiki_link, before="link")

    def render_wiki_link(text):
        href, display = resolver.resolve_wiki_link(text, md.renderer._link_index)
        css = ' class="broken-link"' if href == "#" else ""
        return f'<a{css} href="{escape_text(href)}">{escape_text(display)}</a>'

    md.renderer.wiki_link = render_wiki_link


# ---------------------------------------------------------------------------
# Parser factory
# ---------------------------------------------------------------------------

def sanitize_html(html: str) -> str:
    """Strip <style>, <script>, <iframe> blocks and on* event handlers."""
    for pattern in _DANGEROUS_BLOCKS + _EVENT_HANDLERS:
        html = pattern.sub("", html)
    return html


def create_parser(link_index: resolver.LinkIndex) -> mistune.Markdown:
    """Create a configured mistune Markdown parser with Obsidian plugins.

    The link index is attached to the renderer so plugins can resolve
    links and embeds at render time.
    """
    md = mistune.create_markdown(
        escape=False,
        hard_wrap=True,
        plugins=["math", plugin_wiki_embed, plugin_wiki_link],
    )
    md.renderer._link_index = link_index
    md.renderer._referenced_assets = set()
    md.renderer._heading_counts = {}

    def block_code(code, info=None):
        escaped = escape_text(code)
        if info:
            lang = info.split()[0]
            lang_attr = f' class="language-{lang}"'
            lang_label = f'<span class="code-lang">{lang}</span>'
        else:
            lang_attr = ""
            lang_label = ""
        return (
            f'<div class="code-block">'
            f"{lang_label}"
            f'<button class="copy-btn" aria-label="Copy code">Copy</button>'
            f"<pre><code{lang_attr}>{escaped}</code></pre>"
            f"</div>\n"
        )

    md.renderer.block_code = block_code

    # Repeated headings get "-1", "-2" suffixes; counts reset per note
    def heading(text, level, **attrs):
        counts = md.renderer._heading_counts
        slug = resolver.slugify_heading(text)
        if slug in counts:
            counts[slug] += 1
            slug = f"{slug}-{counts[slug]}"
        else:
            counts[slug] = 0
        return f'<h{level} id="{slug}"><a class="heading-anchor" href="#{slug}" data-link>{text}</a></h{level}>\n'

    md.renderer.heading = heading

    # Emit \( \) and \[ \] consistently for KaTeX on the client
    def render_inline_math(renderer, text):
        return f'<span class="math">\\({text}\\)</span>'

    def render_block_math(renderer, text):
        return f'<div class="math">\\[{text}\\]</div>\n'

    md.renderer.register("inline_math", render_inline_math)
    md.renderer.register("block_math", render_block_math)

    # Single-line $$...$$ inside a paragraph; the group name must not clash
    # with the ones the math plugin defines
    def parse_inline_display_math(inline, m, state):
        state.append_token({"type": "block_math", "raw": m.group("single_display_math")})
        return m.end()

    md.inline.register(
        "inline_display_math",
        r"\$\$(?P<single_display_math>.+?)\$\$",
        parse_inline_display_math,
        before="inline_math",
    )

    return md


def render_note(md: mistune.Markdown, note: Note) -> RenderedNote:
    """Render a note body into a page fragment and list the assets it embeds."""
    md.renderer._referenced_assets = set()
    md.renderer._heading_counts = {}
    body = sanitize_html(md(note.body))
    html = (
        '<div class="markdown-body">\n'
        f"<h1>{escape_text(note.title)}</h1>\n"
        f"{body}"
        "</div>\n"
    )
    return RenderedNote(html=html, assets=sorted(md.renderer._referenced_assets))
