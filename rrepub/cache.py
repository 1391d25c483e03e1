"""On-disk cache of downloaded books and inline images."""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path

from rrepub.models import Book

log = logging.getLogger(__name__)


def default_cache_dir() -> Path:
    """The cache directory under the user's home directory."""
    return Path.home() / ".cache" / "rr-to-epub"


class Cache:
    """Stores each book as JSON and its converted inline images, keyed by book id."""

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root) if root is not None else default_cache_dir()

    def _book_dir(self, book_id: int) -> Path:
        return self.root / str(book_id)

    def write_book(self, book: Book) -> None:
        """Save a book, leaving out its cover image."""
        directory = self._book_dir(book.id)
        directory.mkdir(parents=True, exist_ok=True)
        stripped = dataclasses.replace(book, cover=None)
        (directory / "book.json").write_text(json.dumps(stripped.to_dict()), encoding="utf-8")

    def read_book(self, book_id: int) -> Book | None:
        """Load a cached book; None if absent or unreadable as a book."""
        path = self._book_dir(book_id) / "book.json"
        if not path.exists():
            return None
        contents = path.read_text(encoding="utf-8")
        try:
            return Book.from_dict(json.loads(contents))
        except (ValueError, KeyError, TypeError, AttributeError) as err:
            log.error("Failed to parse book from cache: %r", err)
            return None

    def write_inline_image(self, book_id: int, filename: str, data: bytes) -> None:
        directory = self._book_dir(book_id) / "images"
        directory.mkdir(parents=True, exist_ok=True)
        (directory / filename).write_bytes(data)

    def read_inline_image(self, book_id: int, filename: str) -> bytes | None:
        path = self._book_dir(book_id) / "images" / filename
        if not path.exists():
            return None
        return path.read_bytes()