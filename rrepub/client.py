"""Fetching and parsing fiction and chapter pages."""

from __future__ import annotations

import json
import logging
import re

import requests
from bs4 import BeautifulSoup, Tag

from rrepub.models import USER_AGENT, Book, Chapter

log = logging.getLogger(__name__)

BASE_URL = "https://www.royalroad.com"

_COVER_RE = re.compile(r'window\.fictionCover = "(.*)";')
_CHAPTERS_RE = re.compile(r"window\.chapters = (\[.*]);")
_STOLEN_RE = re.compile(r'<span class="[^"]+">(?:.|\n)*?</span>')

_CONTENT_SELECTOR = ".chapter-inner.chapter-content"
# The page gives no direct way to tell whether an author's note sits before or
# after the chapter, so its position is inferred from the preceding sibling.
_NOTE_START_SELECTOR = "hr + .portlet > .author-note"
_NOTE_END_SELECTOR = "div + .portlet > .author-note"


def _inner_html(element: Tag) -> str:
    return "".join(str(child) for child in element.contents)


def _select_inner(soup: BeautifulSoup, selector: str, what: str) -> str:
    element = soup.select_one(selector)
    if element is None:
        raise ValueError(f"No {what} found")
    return _inner_html(element)


def parse_fiction_page(book_id: int, html: str) -> Book:
    """Build a book (without chapter content or cover bytes) from a fiction page."""
    soup = BeautifulSoup(html, "html.parser")
    title = _select_inner(soup, "h1", "title")
    author = _select_inner(soup, "h4 a", "author")
    description = _select_inner(soup, ".description > .hidden-content", "description")

    cover_match = _COVER_RE.search(html)
    if cover_match is None:
        raise ValueError("No cover found")
    chapters_match = _CHAPTERS_RE.search(html)
    if chapters_match is None:
        raise ValueError("No chapters found")

    raw_chapters = json.loads(chapters_match.group(1))
    if not isinstance(raw_chapters, list):
        raise ValueError("Chapters list is not an array")
    chapters = [Chapter.from_dict(item) for item in raw_chapters]
    if not chapters:
        raise ValueError("Book has no chapters")

    return Book(
        id=book_id,
        title=title,
        author=author,
        description=description,
        date_published=chapters[0].date,
        cover_url=cover_match.group(1),
        cover=None,
        chapters=chapters,
    )


def parse_chapter_page(
    html: str, author_notes: bool
) -> tuple[str, str | None, str | None]:
    """Return (content, starting note, ending note) from a chapter page.

    Notes are None when not requested, absent or empty.
    """
    soup = BeautifulSoup(html, "html.parser")
    element = soup.select_one(_CONTENT_SELECTOR)
    if element is None:
        raise ValueError("No content found")
    content = _STOLEN_RE.sub("", str(element))

    note_start: str | None = None
    note_end: str | None = None
    if author_notes:
        start = soup.select_one(_NOTE_START_SELECTOR)
        if start is not None:
            note_start = _inner_html(start) or None
        end = soup.select_one(_NOTE_END_SELECTOR)
        if end is not None:
            note_end = _inner_html(end) or None
    return content, note_start, note_end


class RoyalRoadClient:
    """Downloads book metadata, covers and chapter content over HTTP."""

    def __init__(self, session: requests.Session | None = None) -> None:
        self.session = session if session is not None else requests.Session()

    def _get(self, url: str) -> requests.Response:
        response = self.session.get(url, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
        return response

    def fetch_book(self, book_id: int) -> Book:
        """Fetch a fiction page and parse its metadata and chapter list."""
        response = self._get(f"{BASE_URL}/fiction/{book_id}")
        return parse_fiction_page(book_id, response.text)

    def fetch_cover(self, book: Book) -> None:
        """Download the cover image into ``book.cover``."""
        book.cover = self._get(book.cover_url).content

    def fetch_chapter_content(self, book: Book, index: int, author_notes: bool) -> None:
        """Download one chapter's content (and author's notes if asked) into the book."""
        chapter = book.chapters[index]
        log.info(
            "Downloading chapter '%s' (%d of %d)",
            chapter.title,
            index + 1,
            len(book.chapters),
        )
        response = self._get(f"{BASE_URL}{chapter.url}")
        content, note_start, note_end = parse_chapter_page(response.text, author_notes)
        chapter.content = content
        if note_start is not None:
            chapter.authors_note_start = note_start
        if note_end is not None:
            chapter.authors_note_end = note_end