import xml.etree.ElementTree as ET
import zipfile

import pytest
import requests
import responses

from rrepub.cache import Cache
from rrepub.epub import (
    MIMETYPE,
    chapter_html,
    container_xml,
    content_opf,
    default_output_name,
    title_html,
    toc_ncx,
    write_epub,
)
from rrepub.models import Book, Chapter, book_id_from_epub

OPF = "{http://www.idpf.org/2007/opf}"
DC = "{http://purl.org/dc/elements/1.1/}"
NCX = "{http://www.daisy.org/z3986/2005/ncx/}"
XHTML = "{http://www.w3.org/1999/xhtml}"

COVER_URL = "https://example.com/covers/cover.jpg"
IMAGE_URL = "https://example.com/img/pic.png?x=1"


@pytest.fixture
def rsps():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as mock:
        yield mock


def make_book(**overrides):
    chapters = [
        Chapter(
            id=11,
            date="2024-01-01",
            slug="one",
            title="First",
            url="/fiction/1/c/11",
            content=(
                '<div class="chapter-inner chapter-content">'
                '<p style="font-family: Arial; color: red">Hello</p>'
                f'<img src="{IMAGE_URL}"/></div>'
            ),
        ),
        Chapter(
            id=12,
            date="2024-01-02",
            slug="two",
            title="Second",
            url="/fiction/1/c/12",
            content="<p>World</p>",
        ),
    ]
    values = dict(
        id=1,
        title="A & B",
        author="Writer",
        description="Desc",
        date_published="2024-01-01",
        cover_url=COVER_URL,
        chapters=chapters,
    )
    values.update(overrides)
    return Book(**values)


def test_container_points_at_package_document():
    root = ET.fromstring(container_xml())
    rootfile = root.find("rootfiles/rootfile")
    assert rootfile.get("full-path") == "OEBPS/content.opf"
    assert rootfile.get("media-type") == "application/oebps-package+xml"


def test_content_opf_metadata_and_spine():
    book = make_book()
    root = ET.fromstring(content_opf(book))
    metadata = root.find(f"{OPF}metadata")
    assert metadata.find(f"{DC}title").text == "A & B"
    assert metadata.find(f"{DC}identifier").text == "1"
    spine = [item.get("idref") for item in root.find(f"{OPF}spine")]
    assert spine == ["title", "11", "12"]
    hrefs = [item.get("href") for item in root.find(f"{OPF}manifest")]
    assert "text/11.xhtml" in hrefs and "text/12.xhtml" in hrefs


def test_content_opf_records_royal_road_id():
    root = ET.fromstring(content_opf(make_book(id=42)))
    metas = {m.get("name"): m.get("content") for m in root.iter(f"{OPF}meta")}
    assert metas["rr-to-epub:royal-road-id"] == "42"


def test_toc_ncx_orders_chapters():
    root = ET.fromstring(toc_ncx(make_book()))
    points = list(root.find(f"{NCX}navMap"))
    assert [p.get("playOrder") for p in points] == ["0", "1", "2"]
    labels = [p.find(f"{NCX}navLabel/{NCX}text").text for p in points]
    assert labels == ["Cover", "First", "Second"]


def test_title_html_escapes_text():
    text = title_html(make_book())
    root = ET.fromstring(text)
    assert root.find(f".//{XHTML}h1").text == "A & B"
    assert root.find(f".//{XHTML}h2").text == "Writer"


def test_chapter_html_cleans_and_rewrites_content():
    book = make_book()
    text = chapter_html(book.chapters[0])
    assert "font-family" not in text
    assert 'src="../images/pic.png"' in text
    root = ET.fromstring(text)
    div = root.find(f".//{XHTML}div[@class='chapter-content']")
    assert div is not None
    assert root.find(f".//{XHTML}div[@class='authors-note-start']") is None


def test_chapter_html_includes_author_notes():
    chapter = Chapter(
        id=5, date="d", slug="s", title="T", url="/u",
        content="<p>body</p>", authors_note_start="<p>before</p>", authors_note_end="<p>after</p>",
    )
    text = chapter_html(chapter)
    assert text.index("authors-note-start") < text.index("chapter-content") < text.index("authors-note-end")
    assert "<p>before</p>" in text and "<p>after</p>" in text


def test_default_output_name_replaces_unsafe_characters():
    assert default_output_name('a/b:c?"d') == "a-b-c--d.epub"
    assert default_output_name("Plain") == "Plain.epub"


def test_write_epub_round_trip(tmp_path):
    cache = Cache(tmp_path / "cache")
    cache.write_inline_image(1, "cover.jpg", b"coverdata")
    cache.write_inline_image(1, "pic.png", b"picdata")
    out = tmp_path / "book.epub"
    result = write_epub(make_book(), out, requests.Session(), cache)
    assert result == out
    assert book_id_from_epub(out) == 1
    with zipfile.ZipFile(out) as archive:
        assert archive.namelist()[0] == "mimetype"
        assert archive.read("mimetype").decode() == MIMETYPE
        assert archive.read("OEBPS/images/cover.jpeg") == b"coverdata"
        assert archive.read("OEBPS/images/pic.png") == b"picdata"
        names = set(archive.namelist())
    assert {"OEBPS/text/11.xhtml", "OEBPS/text/12.xhtml", "OEBPS/text/title.xhtml",
            "OEBPS/toc.ncx", "OEBPS/styles/stylesheet.css"} <= names


def test_write_epub_default_name(tmp_path, monkeypatch):
    cache = Cache(tmp_path / "cache")
    cache.write_inline_image(1, "cover.jpg", b"c")
    cache.write_inline_image(1, "pic.png", b"p")
    monkeypatch.chdir(tmp_path)
    result = write_epub(make_book(title="My:Book"), None, requests.Session(), cache)
    assert result.name == "My-Book.epub"
    assert (tmp_path / "My-Book.epub").exists()


def test_write_epub_failed_cover_leaves_empty_entry(tmp_path, rsps):
    rsps.add(responses.GET, COVER_URL, status=404)
    cache = Cache(tmp_path / "cache")
    book = make_book(chapters=[])
    out = tmp_path / "out.epub"
    write_epub(book, out, requests.Session(), cache)
    with zipfile.ZipFile(out) as archive:
        assert archive.read("OEBPS/images/cover.jpeg") == b""


def test_write_epub_rejects_relative_image_url(tmp_path):
    chapter = Chapter(id=3, date="d", slug="s", title="T", url="/u",
                      content='<img src="relative/pic.png"/>')
    book = make_book(chapters=[chapter])
    with pytest.raises(ValueError):
        write_epub(book, tmp_path / "x.epub", requests.Session(), Cache(tmp_path / "cache"))