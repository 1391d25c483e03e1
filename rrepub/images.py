"""Inline image discovery, format sniffing, conversion and download."""

from __future__ import annotations

import io
import logging
from urllib.parse import urlsplit

import requests
from bs4 import BeautifulSoup
from PIL import Image

from rrepub.cache import Cache
from rrepub.models import USER_AGENT

log = logging.getLogger(__name__)

MAX_WIDTH = 600
JPEG_QUALITY = 80


class UnsupportedImageError(ValueError):
    """Raised when downloaded image bytes are in a format that cannot be handled."""

    def __init__(self, url: str) -> None:
        super().__init__(
            "Unsupported inline image format. Please report this as a bug and "
            f"include the following URL: {url}"
        )
        self.url = url


def is_png(data: bytes) -> bool:
    return len(data) > 8 and data[:8] == b"\x89PNG\r\n\x1a\n"


def is_jpeg(data: bytes) -> bool:
    return len(data) > 3 and data[:3] == b"\xff\xd8\xff"


def is_webp(data: bytes) -> bool:
    return len(data) > 11 and data[:4] == b"RIFF" and data[8:12] == b"WEBP"


def is_gif(data: bytes) -> bool:
    return len(data) > 3 and data[:4] == b"GIF8"


def _text_start(data: bytes) -> str | None:
    try:
        return data.decode("utf-8").lower().strip()
    except UnicodeDecodeError:
        return None


def is_svg(data: bytes) -> bool:
    text = _text_start(data)
    return text is not None and text.startswith(("<?xml", "<svg"))


def is_html(data: bytes) -> bool:
    text = _text_start(data)
    return text is not None and text.startswith(("<!doctype html>", "<html"))


def extract_image_name(url: str) -> str:
    """The last path segment of an absolute URL, without query or fragment."""
    parts = urlsplit(url)
    if not parts.scheme:
        raise ValueError(f"Invalid image URL: {url}")
    if not parts.netloc and not parts.path.startswith("/"):
        raise ValueError(f"Invalid image URL: {url}")
    return parts.path.rsplit("/", 1)[-1]


def parse_images(body: str) -> list[str]:
    """The src of every img element in an HTML fragment, in document order."""
    soup = BeautifulSoup(body, "html.parser")
    return [img["src"] for img in soup.find_all("img") if img.has_attr("src")]


def rewrite_images(body: str) -> str:
    """Point every img src in the fragment at the packaged images folder."""
    for src in parse_images(body):
        body = body.replace(src, f"../images/{extract_image_name(src)}")
    return body


def _is_passthrough(data: bytes) -> bool:
    return is_gif(data) or is_svg(data)


def convert_image(data: bytes, url: str) -> bytes | None:
    """Prepare image bytes for the EPUB.

    HTML pages and undecodable WebP give None; GIF and SVG pass through unchanged;
    PNG, JPEG and WebP are scaled to the maximum width and re-encoded (WebP as PNG).
    """
    if is_html(data):
        return None
    if _is_passthrough(data):
        return data

    if is_webp(data):
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except Exception:  # any decoder failure means the image is skipped
            log.warning(
                "Failed to decode webp image. Please report this as a bug and "
                "include the following URL: %s",
                url,
            )
            return None
    elif is_jpeg(data) or is_png(data):
        image = Image.open(io.BytesIO(data))
        image.load()
    else:
        raise UnsupportedImageError(url)

    width, height = image.size
    new_height = max(1, MAX_WIDTH * height // width)
    image = image.resize((MAX_WIDTH, new_height), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    if is_png(data) or is_webp(data):
        # WebP is stored as PNG because some e-readers cannot display it.
        image.save(buffer, format="PNG", compress_level=1)
    else:
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        image.save(buffer, format="JPEG", quality=JPEG_QUALITY)
    return buffer.getvalue()


def download_image(
    session: requests.Session, cache: Cache, book_id: int, url: str
) -> bytes | None:
    """Fetch an inline image, using and filling the cache; None when it is skipped."""
    filename = extract_image_name(url)
    cached = cache.read_inline_image(book_id, filename)
    if cached is not None:
        return cached

    try:
        response = session.get(url, headers={"User-Agent": USER_AGENT})
    except requests.RequestException as err:
        log.warning("Failed to download image from URL (%s): %s.", url, err)
        return None

    if not 200 <= response.status_code < 300:
        log.warning(
            "Failed to download image from URL (HTTP %s): %s.", response.status_code, url
        )
        return None

    data = response.content
    converted = convert_image(data, url)
    if converted is None or _is_passthrough(data):
        return converted

    cache.write_inline_image(book_id, filename, converted)
    return converted