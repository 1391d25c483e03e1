import pytest
import requests
import responses

from rrepub.client import (
    RoyalRoadClient,
    parse_chapter_page,
    parse_fiction_page,
)
from rrepub.models import USER_AGENT, Book, Chapter

COVER_URL = "https://images.example.com/covers/cover-42.jpg"

FICTION_PAGE = """<html><head><script>
window.fictionCover = "https://images.example.com/covers/cover-42.jpg";
window.chapters = [{"id": 7, "date": "2020-01-01T00:00:00Z", "slug": "one", "title": "Chapter One", "url": "/fiction/42/book/chapter/7/one", "visible": 1}, {"id": 8, "date": "2020-02-01T00:00:00Z", "slug": "two", "title": "Chapter Two", "url": "/fiction/42/book/chapter/8/two"}];
</script></head><body>
<h1>My Book</h1>
<h4>by <a href="/profile/1">Writer</a></h4>
<div class="description"><div class="hidden-content"><p>Desc</p></div></div>
</body></html>
"""

CHAPTER_PAGE = """<html><body>
<hr/><div class="portlet"><div class="author-note">Start note</div></div>
<div class="chapter-inner chapter-content"><p>Hello</p><span class="xyz">stolen text</span><p>World</p></div>
<div class="portlet"><div class="author-note">End note</div></div>
</body></html>
"""


@pytest.fixture
def rsps():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as mock:
        yield mock


def test_parse_fiction_page_metadata():
    book = parse_fiction_page(42, FICTION_PAGE)
    assert book.id == 42
    assert book.title == "My Book"
    assert book.author == "Writer"
    assert book.description == "<p>Desc</p>"
    assert book.cover_url == COVER_URL
    assert book.cover is None


def test_parse_fiction_page_chapters():
    book = parse_fiction_page(42, FICTION_PAGE)
    assert [c.id for c in book.chapters] == [7, 8]
    assert book.chapters[1].url == "/fiction/42/book/chapter/8/two"
    assert book.date_published == book.chapters[0].date
    assert all(c.content is None for c in book.chapters)


@pytest.mark.parametrize(
    "needle, message",
    [
        ("<h1>My Book</h1>", "title"),
        ('<a href="/profile/1">Writer</a>', "author"),
        ('class="hidden-content"', "description"),
        ("window.fictionCover", "cover"),
        ("window.chapters", "chapters"),
    ],
)
def test_parse_fiction_page_missing_parts(needle, message):
    page = FICTION_PAGE.replace(needle, "")
    with pytest.raises(ValueError, match=message):
        parse_fiction_page(42, page)


def test_parse_fiction_page_empty_chapters():
    start = FICTION_PAGE.index("window.chapters = ")
    end = FICTION_PAGE.index("];", start) + 2
    page = FICTION_PAGE[:start] + "window.chapters = [];" + FICTION_PAGE[end:]
    with pytest.raises(ValueError):
        parse_fiction_page(42, page)


def test_parse_chapter_page_strips_spans():
    content, start, end = parse_chapter_page(CHAPTER_PAGE, False)
    assert content == '<div class="chapter-inner chapter-content"><p>Hello</p><p>World</p></div>'
    assert start is None
    assert end is None


def test_parse_chapter_page_author_notes():
    content, start, end = parse_chapter_page(CHAPTER_PAGE, True)
    assert "stolen" not in content
    assert start == "Start note"
    assert end == "End note"


def test_parse_chapter_page_empty_note_is_none():
    page = CHAPTER_PAGE.replace("Start note", "")
    _content, start, end = parse_chapter_page(page, True)
    assert start is None
    assert end == "End note"


def test_parse_chapter_page_missing_content():
    with pytest.raises(ValueError, match="content"):
        parse_chapter_page("<html><body><p>nothing</p></body></html>", False)


def test_fetch_book_sends_user_agent(rsps):
    rsps.add(responses.GET, "https://www.royalroad.com/fiction/42", body=FICTION_PAGE)
    book = RoyalRoadClient().fetch_book(42)
    assert book.title == "My Book"
    assert rsps.calls[0].request.headers["User-Agent"] == USER_AGENT


def test_fetch_book_http_error(rsps):
    rsps.add(responses.GET, "https://www.royalroad.com/fiction/42", status=404)
    with pytest.raises(requests.HTTPError):
        RoyalRoadClient(requests.Session()).fetch_book(42)


def _book():
    return Book(
        id=42,
        title="My Book",
        author="Writer",
        description="",
        date_published="2020-01-01",
        cover_url=COVER_URL,
        chapters=[
            Chapter(id=7, date="2020-01-01", slug="one", title="One", url="/chapter/7"),
        ],
    )


def test_fetch_cover_stores_bytes(rsps):
    rsps.add(responses.GET, COVER_URL, body=b"\xff\xd8\xffimage")
    book = _book()
    RoyalRoadClient().fetch_cover(book)
    assert book.cover == b"\xff\xd8\xffimage"


def test_fetch_chapter_content_fills_chapter(rsps):
    rsps.add(responses.GET, "https://www.royalroad.com/chapter/7", body=CHAPTER_PAGE)
    book = _book()
    RoyalRoadClient().fetch_chapter_content(book, 0, True)
    chapter = book.chapters[0]
    assert "<p>Hello</p>" in chapter.content
    assert chapter.authors_note_start == "Start note"
    assert chapter.authors_note_end == "End note"


def test_fetch_chapter_content_keeps_notes_when_disabled(rsps):
    rsps.add(responses.GET, "https://www.royalroad.com/chapter/7", body=CHAPTER_PAGE)
    book = _book()
    book.chapters[0].authors_note_start = "old"
    RoyalRoadClient().fetch_chapter_content(book, 0, False)
    assert book.chapters[0].authors_note_start == "old"
    assert book.chapters[0].authors_note_end is None