"""Fetching a book while reusing and refreshing the local cache."""

from __future__ import annotations

import dataclasses
import logging

from rrepub.cache import Cache
from rrepub.client import RoyalRoadClient
from rrepub.models import Book

log = logging.getLogger(__name__)


def get_book(
    client: RoyalRoadClient, cache: Cache, book_id: int, author_notes: bool
) -> Book:
    """Fetch a book, downloading only chapters that are new, changed or empty in the cache."""
    book = client.fetch_book(book_id)

    log.info("Updating cover.")
    client.fetch_cover(book)

    cached = cache.read_book(book_id)
    if cached is None:
        for index in range(len(book.chapters)):
            client.fetch_chapter_content(book, index, author_notes)
            cache.write_book(book)
        return book

    cached.cover_url = book.cover_url
    for index, chapter in enumerate(book.chapters):
        match = next((c for c in cached.chapters if c.url == chapter.url), None)
        if match is None:
            cached.chapters.append(dataclasses.replace(chapter))
        elif match.date == chapter.date and match.content is not None:
            continue
        client.fetch_chapter_content(cached, index, author_notes)
        cache.write_book(cached)
    return cached