"""Assembling a book into an EPUB archive."""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
import uuid
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union
from xml.sax.saxutils import escape

import requests

from rrepub.cache import Cache
from rrepub.images import download_image, extract_image_name, parse_images, rewrite_images
from rrepub.models import ID_META_NAME, Book, Chapter

log = logging.getLogger(__name__)

MIMETYPE = "application/epub+zip"
XHTML_NS = "http://www.w3.org/1999/xhtml"
OPF_NS = "http://www.idpf.org/2007/opf"
DC_NS = "http://purl.org/dc/elements/1.1/"
NCX_NS = "http://www.daisy.org/z3986/2005/ncx/"
CONTAINER_NS = "urn:oasis:names:tc:opendocument:xmlns:container"

STYLESHEET = """\
body { margin: 0 5%; line-height: 1.4; }
img.cover { display: block; max-width: 100%; margin: 0 auto; }
h1.title, h2.author, h1.chapter-title { text-align: center; }
.chapter-content img { max-width: 100%; }
.authors-note-start, .authors-note-end {
  border: 1px solid #888;
  padding: 0.5em;
  margin: 1em 0;
  font-style: italic;
}
"""

_FORBIDDEN_NAME_CHARS = re.compile(r'[/\\:*?"<>|]')
_CONTENT_CLEANUPS = (
    re.compile(r"font-family:.*?;"),
    re.compile(r"font-weight:\s?normal"),
    re.compile(r"font-weight:\s?400"),
    re.compile(r"overflow:\s?auto"),
)


@dataclass
class _Text:
    value: str
    escaped: bool = True


@dataclass
class _Element:
    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: list[Union["_Element", _Text]] = field(default_factory=list)


def _el(tag: str, attrs: dict[str, str] | None = None, *children: _Element | _Text | str) -> _Element:
    nodes = [_Text(child) if isinstance(child, str) else child for child in children]
    return _Element(tag, dict(attrs or {}), nodes)


def _attr_escape(value: str) -> str:
    return escape(value, {'"': "&quot;"})


def _text_value(node: _Text) -> str:
    return escape(node.value) if node.escaped else node.value


def _render(node: _Element, depth: int, lines: list[str]) -> None:
    indent = "  " * depth
    attrs = "".join(f' {name}="{_attr_escape(value)}"' for name, value in node.attrs.items())
    if not node.children:
        lines.append(f"{indent}<{node.tag}{attrs} />")
        return
    if all(isinstance(child, _Text) for child in node.children):
        text = "".join(_text_value(child) for child in node.children)  # type: ignore[arg-type]
        lines.append(f"{indent}<{node.tag}{attrs}>{text}</{node.tag}>")
        return
    lines.append(f"{indent}<{node.tag}{attrs}>")
    for child in node.children:
        if isinstance(child, _Text):
            lines.append("  " * (depth + 1) + _text_value(child))
        else:
            _render(child, depth + 1, lines)
    lines.append(f"{indent}</{node.tag}>")


def _document(root: _Element) -> str:
    lines = ['<?xml version="1.0" encoding="utf-8"?>']
    _render(root, 0, lines)
    return "\n".join(lines)


def container_xml() -> str:
    """The META-INF/container.xml pointing at the package document."""
    root = _el(
        "container",
        {"xmlns:a": CONTAINER_NS, "version": "1.0"},
        _el(
            "rootfiles",
            None,
            _el(
                "rootfile",
                {"full-path": "OEBPS/content.opf", "media-type": "application/oebps-package+xml"},
            ),
        ),
    )
    return _document(root)


def content_opf(book: Book) -> str:
    """The OPF package document: metadata, manifest and spine."""
    book_id = str(book.id)
    metadata = _el(
        "metadata",
        {"xmlns:dc": DC_NS},
        _el("dc:title", None, book.title),
        _el("dc:creator", None, book.author),
        _el("dc:description", None, book.description),
        _el("dc:date", None, book.date_published),
        _el("dc:identifier", {"id": "bookid"}, book_id),
        _el("dc:language", None, "en"),
        _el("meta", {"name": "cover", "content": "cover"}),
        _el("meta", {"name": "primary-writing-mode", "content": "horizontal-lr"}),
        _el("meta", {"name": ID_META_NAME, "content": book_id}),
    )
    manifest = _el(
        "manifest",
        None,
        _el("item", {"id": "title", "href": "text/title.xhtml", "media-type": "application/xhtml+xml"}),
        _el("item", {"id": "cover", "href": "images/cover.jpeg", "media-type": "image/jpeg"}),
        _el("item", {"id": "stylesheet", "href": "styles/stylesheet.css", "media-type": "text/css"}),
        _el("item", {"id": "toc", "href": "toc.ncx", "media-type": "application/xhtml+xml"}),
        *(
            _el(
                "item",
                {
                    "id": str(chapter.id),
                    "href": f"text/{chapter.id}.xhtml",
                    "media-type": "application/xhtml+xml",
                },
            )
            for chapter in book.chapters
        ),
    )
    spine = _el(
        "spine",
        {"toc": "ncx"},
        _el("itemref", {"idref": "title"}),
        *(_el("itemref", {"idref": str(chapter.id)}) for chapter in book.chapters),
    )
    root = _el(
        "package",
        {"xmlns": OPF_NS, "version": "3.0", "unique-identifier": "bookid"},
        metadata,
        manifest,
        spine,
    )
    return _document(root)


def toc_ncx(book: Book) -> str:
    """The NCX table of contents: the cover page, then each chapter in order."""
    head = _el(
        "head",
        None,
        _el("meta", {"name": "dtb:uid", "content": str(book.id)}),
        _el("meta", {"name": "dtb:depth", "content": "2"}),
        _el("meta", {"name": "dtb:totalPageCount", "content": "0"}),
        _el("meta", {"name": "dtb:maxPageNumber", "content": "0"}),
    )
    cover_point = _el(
        "navPoint",
        {"id": "cover", "playOrder": "0"},
        _el("navLabel", None, _el("text", None, "Cover")),
        _el("content", {"src": "text/title.xhtml"}),
    )
    chapter_points = (
        _el(
            "navPoint",
            {"id": str(chapter.id), "playOrder": str(order)},
            _el("navLabel", None, _el("text", None, chapter.title)),
            _el("content", {"src": f"text/{chapter.id}.xhtml"}),
        )
        for order, chapter in enumerate(book.chapters, start=1)
    )
    root = _el(
        "ncx",
        {"xmlns": NCX_NS, "version": "2005-1"},
        head,
        _el("docTitle", None, _el("text", None, book.title)),
        _el("navMap", None, cover_point, *chapter_points),
    )
    return _document(root)


def title_html(book: Book) -> str:
    """The title page showing the cover, title and author."""
    root = _el(
        "html",
        {"xmlns": XHTML_NS},
        _el(
            "head",
            None,
            _el("title", None, book.title),
            _el("link", {"rel": "stylesheet", "type": "text/css", "href": "../styles/stylesheet.css"}),
            _el(
                "body",
                None,
                _el("img", {"src": "../images/cover.jpeg", "alt": "Cover", "class": "cover"}),
                _el("h1", {"class": "title"}, book.title),
                _el("h2", {"class": "author"}, book.author),
            ),
        ),
    )
    return _document(root)


def _clean_content(content: str) -> str:
    for pattern in _CONTENT_CLEANUPS:
        content = pattern.sub("", content)
    return content


def chapter_html(chapter: Chapter) -> str:
    """A chapter page; its HTML content and notes are embedded without escaping."""
    body = _el("body", None, _el("h1", {"class": "chapter-title"}, _Text(chapter.title, False)))
    if chapter.authors_note_start is not None:
        body.children.append(
            _el("div", {"class": "authors-note-start"},
                _Text(rewrite_images(chapter.authors_note_start), False))
        )
    if chapter.content is not None:
        body.children.append(
            _el("div", {"class": "chapter-content"},
                _Text(rewrite_images(_clean_content(chapter.content)), False))
        )
    if chapter.authors_note_end is not None:
        body.children.append(
            _el("div", {"class": "authors-note-end"},
                _Text(rewrite_images(chapter.authors_note_end), False))
        )
    root = _el(
        "html",
        {"xmlns": XHTML_NS, "xml:lang": "en"},
        _el(
            "head",
            None,
            _el("title", None, _Text(chapter.title, False)),
            _el("meta", {"name": "generator", "content": "text/html; charset=UTF-8"}),
            _el("link", {"href": "../styles/stylesheet.css", "rel": "stylesheet", "type": "text/css"}),
        ),
        body,
    )
    return _document(root)


def default_output_name(title: str) -> str:
    """A file name for the book: its title with unsafe characters replaced by '-'."""
    return f"{_FORBIDDEN_NAME_CHARS.sub('-', title)}.epub"


def _chapter_images(chapter: Chapter) -> list[str]:
    images: list[str] = []
    for body in (chapter.content, chapter.authors_note_start, chapter.authors_note_end):
        images.extend(parse_images(body or ""))
    return images


def write_epub(
    book: Book,
    outfile: str | Path | None = None,
    session: requests.Session | None = None,
    cache: Cache | None = None,
) -> Path:
    """Write the book as an EPUB and return the path written to."""
    session = session if session is not None else requests.Session()
    cache = cache if cache is not None else Cache()
    destination = Path(outfile) if outfile is not None else Path(default_output_name(book.title))

    with tempfile.TemporaryDirectory() as temp_dir:
        epub_path = Path(temp_dir) / f"{uuid.uuid4()}.epub"
        log.debug("Writing epub to %s", epub_path)
        with zipfile.ZipFile(epub_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.writestr("mimetype", MIMETYPE, compress_type=zipfile.ZIP_STORED)
            archive.writestr(zipfile.ZipInfo("META-INF/"), "")
            archive.writestr("META-INF/container.xml", container_xml())
            archive.writestr("OEBPS/content.opf", content_opf(book))
            archive.writestr("OEBPS/toc.ncx", toc_ncx(book))

            written_images: set[str] = set()
            for chapter in book.chapters:
                archive.writestr(f"OEBPS/text/{chapter.id}.xhtml", chapter_html(chapter))
                images = _chapter_images(chapter)
                if images:
                    log.info("Downloading inline images for chapter '%s'.", chapter.title)
                for url in images:
                    name = f"OEBPS/images/{extract_image_name(url)}"
                    if name in written_images:
                        continue
                    written_images.add(name)
                    data = download_image(session, cache, book.id, url)
                    archive.writestr(name, data or b"")

            cover = download_image(session, cache, book.id, book.cover_url)
            archive.writestr("OEBPS/images/cover.jpeg", cover or b"")
            archive.writestr("OEBPS/text/title.xhtml", title_html(book))
            archive.writestr("OEBPS/styles/stylesheet.css", STYLESHEET)

        log.debug("Copying epub from %s to %s", epub_path, destination)
        shutil.copyfile(epub_path, destination)

    log.info("Wrote EPUB to %s", destination)
    return destination