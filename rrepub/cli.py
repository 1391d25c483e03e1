"""Command-line interface: download a fiction as an EPUB, or refresh existing ones."""

from __future__ import annotations

import argparse
import logging
import re
import zipfile
from pathlib import Path
from typing import Sequence
from urllib.parse import urlsplit

import requests

from rrepub.api import get_book
from rrepub.cache import Cache
from rrepub.client import RoyalRoadClient
from rrepub.epub import write_epub
from rrepub.models import book_id_from_epub

log = logging.getLogger(__name__)

_U32_MAX = 2**32 - 1
_UNSIGNED = re.compile(r"\+?[0-9]+")


def _parse_u32(text: str) -> int:
    if not _UNSIGNED.fullmatch(text):
        raise ValueError(f"not an unsigned integer: {text!r}")
    value = int(text)
    if value > _U32_MAX:
        raise ValueError(f"out of range: {text!r}")
    return value


def _book_id_type(text: str) -> int:
    try:
        return _parse_u32(text)
    except ValueError as err:
        raise argparse.ArgumentTypeError(str(err)) from None


def _add_global_options(parser: argparse.ArgumentParser, default: object) -> None:
    parser.add_argument(
        "--ignore-cache",
        action="store_true",
        default=default,
        help="Ignore the cache and redownload all chapters even if the book wasn't modified.",
    )
    parser.add_argument(
        "--author-notes",
        action="store_true",
        default=default,
        help="Parse author notes.",
    )


def build_parser() -> argparse.ArgumentParser:
    """The argument parser; the global options may appear before or after the command."""
    parser = argparse.ArgumentParser(
        prog="rr-to-epub", description="Convert Royal Road books into EPUB format."
    )
    _add_global_options(parser, False)

    # Options given after the command must not be reset by the command's defaults.
    shared = argparse.ArgumentParser(add_help=False)
    _add_global_options(shared, argparse.SUPPRESS)

    commands = parser.add_subparsers(dest="command", required=True)

    download = commands.add_parser(
        "download", parents=[shared], help="Download a book from Royal Road."
    )
    download.add_argument(
        "output_file",
        nargs="?",
        default=None,
        help="The file path to write the EPUB to. Defaults to <book-title>.epub.",
    )
    download.add_argument(
        "-b",
        "--book-id",
        type=_book_id_type,
        default=None,
        help="The ID of the book to download. One of --book-id or --book-url is required.",
    )
    download.add_argument(
        "-u",
        "--book-url",
        default=None,
        help="The URL of the book to download. One of --book-id or --book-url is required.",
    )

    update = commands.add_parser(
        "update", parents=[shared], help="Update all books in a folder."
    )
    update.add_argument(
        "folder_or_file",
        help="The folder of books to update, or the path to a single book file.",
    )
    return parser


def book_id_from_url(url: str) -> int:
    """The fiction id from a book URL: the second segment of its path."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.path.startswith("/"):
        raise ValueError(f"Invalid book URL: {url}")
    segments = parts.path[1:].split("/")
    if len(segments) < 2:
        raise ValueError(f"Invalid book URL: {url}")
    try:
        return _parse_u32(segments[1])
    except ValueError:
        raise ValueError(f"Invalid book URL: {url}") from None


class _Refresher:
    """Fetches a book and writes it out, sharing one session and cache."""

    def __init__(self, author_notes: bool) -> None:
        self.author_notes = author_notes
        self.session = requests.Session()
        self.client = RoyalRoadClient(self.session)
        self.cache = Cache()

    def __call__(self, book_id: int, outfile: str | None) -> None:
        book = get_book(self.client, self.cache, book_id, self.author_notes)
        write_epub(book, outfile, self.session, self.cache)


def _download(args: argparse.Namespace) -> int:
    if args.book_id is not None:
        book_id = args.book_id
    elif args.book_url is not None:
        try:
            book_id = book_id_from_url(args.book_url)
        except ValueError:
            log.error("Invalid book URL: %s", args.book_url)
            return 1
    else:
        log.error("One of --book-id or --book-url is required.")
        return 1

    _Refresher(args.author_notes)(book_id, args.output_file)
    return 0


def _update(args: argparse.Namespace) -> int:
    target = args.folder_or_file
    path = Path(target)
    if not path.exists():
        log.error('Folder or file "%s" does not exist, aborting.', target)
        return 0

    refresh = _Refresher(args.author_notes)
    if path.is_file():
        if not target.endswith(".epub"):
            log.error(
                'File "%s" is not an EPUB file or does not have the .epub extension, aborting.',
                target,
            )
            return 0
        book_id = book_id_from_epub(path.resolve())
        if book_id is None:
            log.error('Book file at "%s" is unmanaged, aborting.', target)
            return 0
        log.info('Found book file "%s", updating.', target)
        refresh(book_id, target)
        return 0

    for entry in sorted(path.iterdir()):
        name = entry.name
        if not name.endswith(".epub"):
            continue
        book_id = book_id_from_epub(entry)
        if book_id is None:
            log.warning('Found unmanaged book file "%s", skipping.', name)
            continue
        log.info('Found book file "%s", updating.', name)
        refresh(book_id, name)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line; returns the process exit status."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)
    try:
        if args.command == "download":
            return _download(args)
        return _update(args)
    except (
        requests.RequestException,
        zipfile.BadZipFile,
        OSError,
        ValueError,
        KeyError,
    ) as err:
        log.error("%r", err)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())