"""Download Royal Road fictions as EPUB books and keep them up to date."""

__version__ = "0.1.0"