import hashlib
import logging
from collections import defaultdict, namedtuple
from collections.abc import Iterator
from typing import BinaryIO

from similarity.sources import READ_SIZE, Source, describe, open_source


logger = logging.getLogger(__name__)

MAX_SPAN_LENGTH = 64


class Spanhash(namedtuple('Spanhash', ['data', 'hashval', 'occurrences'])):
    """
    One distinct span of a file.

    Attributes:
        data (bytes): The exact span content (CR already stripped in text mode).
        hashval (int): Stable 64-bit hash of ``data``.
        occurrences (int): Total bytes this span contributes across the file.
    """
    __slots__ = ()

    def __repr__(self) -> str:
        text = self.data.decode('utf-8', errors='replace').replace('\n', '\\n')
        return f"Spanhash(data={self.data!r} ({text}), hashval=0x{self.hashval:x}, occurrences={self.occurrences})"


# Marks exhaustion of a span sequence; never matches anything.
EMPTY_SPANHASH = Spanhash(b"", 0, 0)


def span_hash(data: bytes) -> int:
    """64-bit hash of a span, identical across processes and platforms."""
    return int.from_bytes(hashlib.blake2b(data, digest_size=8).digest(), 'big')


def iter_spans(stream: BinaryIO,
    binary: bool = False,
    max_length: int = MAX_SPAN_LENGTH,
    read_size: int = READ_SIZE,
) -> Iterator[bytes]:
    """
    Splits a binary stream into spans.

    A span ends after the first newline found within the next ``max_length``
    bytes, or after exactly ``max_length`` bytes if that window holds no
    newline. The stream is read in blocks of ``read_size`` bytes, so the
    whole file never has to be in memory.

    In text mode a span ending in CRLF is yielded with the CR removed.
    A short span left at end of stream (no newline) is yielded as is.
    """
    buf = b""
    eof = False
    while not eof:
        block = stream.read(read_size)
        if not block:
            eof = True
        buf += block

        pos = 0
        buf_len = len(buf)
        while pos < buf_len:
            window_end = min(pos + max_length, buf_len)
            idx = buf.find(b"\n", pos, window_end)
            if idx >= 0:
                end = idx + 1
            elif window_end - pos == max_length or eof:
                end = window_end
            else:
                # Wait for more data before deciding where this span ends.
                break

            span = buf[pos:end]
            pos = end
            if not binary and span.endswith(b"\r\n"):
                span = span[:-2] + b"\n"
            yield span

        buf = buf[pos:]


class SpanhashTop:
    """
    Multiset of the spans of one file, keyed by exact span content.

    Spans are accumulated in plain dicts; ordering only exists once the
    records are materialized:

    - iterating yields the merge order: ascending hash value, with
      zero-occurrence records last.
    - ``ranked()`` yields descending occurrence, then ascending hash.
    """

    def __init__(self, binary: bool = False) -> None:
        self.binary = binary
        self._hashes: dict[bytes, int] = {}
        self._occurrences: dict[bytes, int] = defaultdict(int)

    @classmethod
    def from_stream(cls,
        stream: BinaryIO,
        binary: bool = False,
        max_length: int = MAX_SPAN_LENGTH,
        read_size: int = READ_SIZE,
    ) -> 'SpanhashTop':
        """Builds the multiset by reading ``stream`` to exhaustion."""
        top = cls(binary)
        for span in iter_spans(stream, binary=binary, max_length=max_length, read_size=read_size):
            top.add(span)
        return top

    @classmethod
    def from_source(cls,
        source: Source,
        binary: bool = False,
        max_length: int = MAX_SPAN_LENGTH,
        read_size: int = READ_SIZE,
    ) -> 'SpanhashTop':
        """
        Builds the multiset for a path, bytes, or binary stream.

        Raises:
            SourceError: If the source cannot be opened or read.
        """
        with open_source(source) as stream:
            top = cls.from_stream(stream, binary=binary, max_length=max_length, read_size=read_size)
        logger.debug(f"Hashed {describe(source)}: {len(top)} distinct spans, {top.size} bytes")
        return top

    def add(self, span: bytes) -> None:
        """Counts one occurrence of ``span``, weighted by its length."""
        if span not in self._hashes:
            self._hashes[span] = span_hash(span)
        self._occurrences[span] += len(span)

    @property
    def size(self) -> int:
        """Total bytes over all spans (after CR stripping in text mode)."""
        return sum(self._occurrences.values())

    def __len__(self) -> int:
        return len(self._hashes)

    def __bool__(self) -> bool:
        return bool(self._hashes)

    def __contains__(self, span: bytes) -> bool:
        return span in self._hashes

    def __getitem__(self, span: bytes) -> Spanhash:
        return Spanhash(span, self._hashes[span], self._occurrences[span])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SpanhashTop):
            return NotImplemented
        return self._occurrences == other._occurrences

    def records(self) -> list[Spanhash]:
        return [Spanhash(data, hashval, self._occurrences[data]) for data, hashval in self._hashes.items()]

    def __iter__(self) -> Iterator[Spanhash]:
        return iter(sorted(self.records(), key=lambda s: (s.occurrences == 0, s.hashval, s.data)))

    def ranked(self) -> Iterator[Spanhash]:
        """Yields non-empty records by descending occurrence, then ascending hash."""
        records = [s for s in self.records() if s.occurrences]
        return iter(sorted(records, key=lambda s: (-s.occurrences, s.hashval, s.data)))

    def most_common(self, n: int | None = None) -> list[Spanhash]:
        """Returns the ``n`` spans contributing the most bytes (all if ``n`` is None)."""
        ranked = list(self.ranked())
        return ranked if n is None else ranked[:n]
