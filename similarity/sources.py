import io
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import BinaryIO


logger = logging.getLogger(__name__)

Source = str | os.PathLike | bytes | bytearray | BinaryIO

READ_SIZE = 64 * 1024


class SimilarityError(Exception):
    """Base class for errors raised while estimating similarity."""


class SourceError(SimilarityError):
    """
    Opening or reading an input failed.

    The underlying OSError is chained as ``__cause__``; ``name`` holds the
    path (or a description of the stream) the error refers to.
    """

    def __init__(self, message: str, name: str) -> None:
        super().__init__(message)
        self.name = name


def describe(source: Source) -> str:
    """Returns a human readable name for a source, used in error messages."""
    if isinstance(source, (str, os.PathLike)):
        return os.fspath(source)
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    return getattr(source, 'name', None) or repr(source)


@contextmanager
def open_source(source: Source) -> Iterator[BinaryIO]:
    """
    Yields a binary stream for the given source.

    Args:
        source:
            - str / PathLike: Opens the file in 'rb' mode and closes it afterwards.
            - bytes / bytearray: Wraps the data in a BytesIO.
            - file-like object: Uses the provided binary stream directly (not closed).

    Raises:
        SourceError: If the file cannot be opened, or if reading from the
            stream fails inside the ``with`` block.
    """
    name = describe(source)

    if isinstance(source, (str, os.PathLike)):
        try:
            stream = open(source, 'rb')
        except OSError as e:
            raise SourceError(f"failed to open file {name}", name) from e
        owns_handle = True
    elif isinstance(source, (bytes, bytearray)):
        stream = io.BytesIO(bytes(source))
        owns_handle = True
    elif hasattr(source, 'read'):
        stream = source
        owns_handle = False
    else:
        raise ValueError("Invalid input type. Expected file path, bytes, or binary file-like object.")

    try:
        yield stream
    except OSError as e:
        raise SourceError(f"failed to read from {name}", name) from e
    finally:
        if owns_handle:
            stream.close()
