"""Book and chapter records, and identification of managed EPUB files."""

from __future__ import annotations

import io
import re
import zipfile
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

USER_AGENT = "rr-to-epub"
ID_META_NAME = "rr-to-epub:royal-road-id"

_U32_MAX = 2**32 - 1
_UNSIGNED = re.compile(r"\+?[0-9]+")


def _parse_u32(text: str) -> int:
    if not _UNSIGNED.fullmatch(text):
        raise ValueError(f"invalid book id: {text!r}")
    value = int(text)
    if value > _U32_MAX:
        raise ValueError(f"book id out of range: {text!r}")
    return value


def _field(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"missing field {key!r}") from None


def _int_field(data: Mapping[str, Any], key: str) -> int:
    value = _field(data, key)
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _U32_MAX:
        raise ValueError(f"field {key!r} must be an unsigned 32-bit integer")
    return value


def _str_field(data: Mapping[str, Any], key: str) -> str:
    value = _field(data, key)
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _optional_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string or null")
    return value


@dataclass
class Chapter:
    """One chapter of a book, with its downloaded content once fetched."""

    id: int
    date: str
    slug: str
    title: str
    url: str
    content: str | None = None
    authors_note_start: str | None = None
    authors_note_end: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "slug": self.slug,
            "title": self.title,
            "url": self.url,
            "content": self.content,
            "authors_note_start": self.authors_note_start,
            "authors_note_end": self.authors_note_end,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Chapter:
        """Build a chapter from a mapping; unknown keys are ignored."""
        return cls(
            id=_int_field(data, "id"),
            date=_str_field(data, "date"),
            slug=_str_field(data, "slug"),
            title=_str_field(data, "title"),
            url=_str_field(data, "url"),
            content=_optional_str(data, "content"),
            authors_note_start=_optional_str(data, "authors_note_start"),
            authors_note_end=_optional_str(data, "authors_note_end"),
        )


@dataclass
class Book:
    """A fiction's metadata, cover image and chapters."""

    id: int
    title: str
    author: str
    description: str
    date_published: str
    cover_url: str
    cover: bytes | None = None
    chapters: list[Chapter] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "description": self.description,
            "date_published": self.date_published,
            "cover_url": self.cover_url,
            "cover": None if self.cover is None else list(self.cover),
            "chapters": [chapter.to_dict() for chapter in self.chapters],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Book:
        """Build a book from a mapping; unknown keys are ignored."""
        cover = data.get("cover")
        chapters = _field(data, "chapters")
        if not isinstance(chapters, list):
            raise ValueError("field 'chapters' must be a list")
        return cls(
            id=_int_field(data, "id"),
            title=_str_field(data, "title"),
            author=_str_field(data, "author"),
            description=_str_field(data, "description"),
            date_published=_str_field(data, "date_published"),
            cover_url=_str_field(data, "cover_url"),
            cover=None if cover is None else bytes(cover),
            chapters=[Chapter.from_dict(item) for item in chapters],
        )


def _local_name(name: str) -> str:
    return name.rsplit("}", 1)[-1]


def book_id_from_epub(path: str | Path) -> int | None:
    """Return the fiction id recorded in an EPUB's content.opf, or None if unmanaged."""
    with zipfile.ZipFile(path) as archive:
        contents = archive.read("OEBPS/content.opf")

    try:
        for _event, element in ET.iterparse(io.BytesIO(contents), events=("start",)):
            attributes = {_local_name(key): value for key, value in element.attrib.items()}
            if attributes.get("name") == ID_META_NAME:
                content = attributes.get("content")
                if content is None:
                    return None
                return _parse_u32(content)
    except ET.ParseError:
        return None
    return None