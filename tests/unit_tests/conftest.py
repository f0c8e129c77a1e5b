import pytest


class ReadOnlyStream:
    """Minimal binary source: only read(), no readline, not iterable."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def read(self, size: int = -1) -> bytes:
        end = len(self._data) if size < 0 else self._pos + size
        chunk = self._data[self._pos:end]
        self._pos += len(chunk)
        return chunk

@pytest.fixture
def read_only_stream():
    return ReadOnlyStream
