"""Exception taxonomy for document loading and navigation."""

from __future__ import annotations


class ReaderError(Exception):
    """Base class for all engine errors."""


class DocumentCorruptError(ReaderError):
    """The container could not be opened (corrupt archive, encryption, password)."""


class OutlineResolutionError(ReaderError):
    """A single outline entry could not be resolved to a page."""


class EncodingAmbiguityError(ReaderError):
    """Text could not be decoded with the requested encoding."""

    def __init__(self, encoding: str, reason: str = "") -> None:
        super().__init__(f"Cannot decode text as {encoding}: {reason}".rstrip(": "))
        self.encoding = encoding


class UnsupportedFormatError(ReaderError, ValueError):
    """No chapter builder handles the given file."""


class ContentFetchError(ReaderError):
    """Raw document content could not be fetched."""
