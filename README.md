# rrepub

Turn a Royal Road fiction into an EPUB file you can read on any e-reader, and refresh the
books you have already downloaded when new chapters come out.

## Installation

```
pip install .
```

This puts the `rrepub` command on your path. To run the tests, install the `test` extra
(`pip install .[test]`) and run `pytest`.

## Downloading a book

Give either the numeric book ID or the fiction's URL:

```
rrepub download --book-id 12345
rrepub download --book-url https://www.royalroad.com/fiction/12345/some-title
```

The short forms are `-b` and `-u`. If both are given, `--book-id` wins. The ID is taken from
the second segment of the URL's path; a URL without one is rejected and the command exits
with status 1, as it does when neither option is given.

The EPUB is written to `<book title>.epub` in the current directory. Characters that are
not allowed in file names (`/ \ : * ? " < > |`) are replaced with `-`. To pick the file
yourself, pass a path, which should end in `.epub`:

```
rrepub download my-book.epub -b 12345
```

## Updating books

Every EPUB made by `rrepub` records the Royal Road ID of its book in its `content.opf`.
To bring one file up to date in place:

```
rrepub update my-book.epub
```

or to update every `.epub` file in a folder:

```
rrepub update ~/Books
```

When a folder is given, each updated book is written under its own file name in the
current directory, not back into the folder, so run the command from inside the folder to
update the files in place. Files that were not made by `rrepub` are skipped with a warning;
a single such file, a file without the `.epub` extension, or a path that does not exist is
reported as an error.

## Options

These may be given before or after the command:

- `--author-notes` includes the author's notes at the start and end of each chapter.
- `--ignore-cache` is accepted, but has no effect yet: cached chapters are always reused
  when they are unchanged.

## Cache

Chapter text is kept in `~/.cache/rr-to-epub/<book id>/book.json`, and resized PNG, JPEG
and WebP inline images in `~/.cache/rr-to-epub/<book id>/images/`. An update only
downloads chapters that are new, have a changed date, or have no content yet. A cache file
that cannot be read as a book is ignored. Delete the folder to start fresh.

## Images

Inline images are fitted to a width of 600 pixels. JPEG images stay JPEG (quality 80),
while PNG and WebP images are saved as PNG because some e-readers cannot show WebP. GIF
and SVG images are kept exactly as downloaded. An image that cannot be fetched, returns an
HTML page, or is a WebP that cannot be decoded gets an empty file in the book, and the
download goes on. An image in any other format stops the run with `UnsupportedImageError`.

## Using it from Python

```python
import requests

from rrepub.api import get_book
from rrepub.cache import Cache, default_cache_dir
from rrepub.client import RoyalRoadClient
from rrepub.epub import write_epub

session = requests.Session()
cache = Cache(default_cache_dir())
book = get_book(RoyalRoadClient(session), cache, 12345, author_notes=False)
path = write_epub(book, None, session, cache)
```

`rrepub.models` holds the `Book` and `Chapter` records and `book_id_from_epub`, which
reads the recorded ID back out of an EPUB (or returns `None`). `rrepub.client` also offers
`parse_fiction_page` and `parse_chapter_page` for working on pages you already have, and
`rrepub.epub` the functions that render each document of the book (`content_opf`,
`toc_ncx`, `chapter_html`, `title_html`, `container_xml`).