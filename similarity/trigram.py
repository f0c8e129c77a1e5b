import logging
from collections import defaultdict, namedtuple
from collections.abc import Iterable, Iterator
from typing import BinaryIO

from similarity.sources import READ_SIZE, Source, describe, open_source


logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.40

IndexEntry = namedtuple('IndexEntry', ['line', 'weight'])


def slice_to_trigram(data: bytes) -> int:
    """
    Packs up to 3 bytes into a 24-bit integer, most significant byte first.

    Shorter slices are left-aligned: b"a" -> 0x610000, b"ab" -> 0x616200.
    """
    if len(data) > 3:
        raise AssertionError(f"too many bytes for a trigram: expected at most 3, got {len(data)}")
    value = 0
    for shift, byte in zip((16, 8, 0), data):
        value |= byte << shift
    return value


def make_trigrams(line: bytes) -> set[int]:
    """
    Returns the set of trigrams of one line.

    Lines shorter than 3 bytes have no full window; they contribute their
    1-byte and 2-byte suffixes instead, so every non-empty line yields at
    least one trigram.
    """
    trigrams = {slice_to_trigram(line[i:i + 3]) for i in range(len(line) - 2)}
    if len(line) < 3:
        if len(line) > 0:
            trigrams.add(slice_to_trigram(line[-1:]))
        if len(line) > 1:
            trigrams.add(slice_to_trigram(line[-2:]))
    return trigrams


def read_lines(stream: BinaryIO, binary: bool = False, read_size: int = READ_SIZE) -> Iterator[bytes]:
    """
    Yields the lines of a binary stream, each terminated by exactly one LF.

    Only ``stream.read()`` is used, in blocks of ``read_size`` bytes.
    The final line gets an LF even when the file does not end with one.
    In text mode a CR directly before an LF is dropped; a CR at end of
    stream with no LF after it is kept, as the span hasher does.
    """
    pending: list[bytes] = []
    while True:
        block = stream.read(read_size)
        if not block:
            break
        pieces = block.split(b"\n")
        pending.append(pieces[0])
        if len(pieces) == 1:
            continue

        yield _terminate(b"".join(pending), binary)
        for line in pieces[1:-1]:
            yield _terminate(line, binary)
        pending = [pieces[-1]]

    tail = b"".join(pending)
    if tail:
        yield tail + b"\n"


def _terminate(line: bytes, binary: bool) -> bytes:
    if not binary and line.endswith(b"\r"):
        line = line[:-1]
    return line + b"\n"


class TrigramIndex:
    """
    Maps every trigram of the source file to the lines containing it.

    Each line registers its trigrams with weight ``1 / len(trigrams)``, so a
    line that shares all its trigrams with another line scores 1.0 against it.
    Line numbers are 1-based and entry lists are in ascending line order.
    """

    def __init__(self) -> None:
        self._table: dict[int, list[IndexEntry]] = defaultdict(list)
        self.line_count = 0

    @classmethod
    def from_lines(cls, lines: Iterable[bytes]) -> 'TrigramIndex':
        index = cls()
        for line in lines:
            index.add_line(line)
        return index

    @classmethod
    def from_source(cls, source: Source, binary: bool = False, read_size: int = READ_SIZE) -> 'TrigramIndex':
        with open_source(source) as stream:
            index = cls.from_lines(read_lines(stream, binary=binary, read_size=read_size))
        logger.debug(f"Indexed {describe(source)}: {index.line_count} lines, {len(index)} distinct trigrams")
        return index

    def add_line(self, line: bytes) -> int:
        """Indexes the next line and returns its line number."""
        self.line_count += 1
        trigrams = make_trigrams(line)
        if trigrams:
            weight = 1.0 / len(trigrams)
            for trigram in trigrams:
                self._table[trigram].append(IndexEntry(self.line_count, weight))
        return self.line_count

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, trigram: int) -> bool:
        return trigram in self._table

    def lookup(self, trigram: int) -> list[IndexEntry]:
        return self._table.get(trigram, [])

    def match(self, trigrams: Iterable[int], threshold: float = MATCH_THRESHOLD) -> dict[int, float]:
        """
        Scores one destination line against every source line.

        Returns:
            {source_line: accumulated weight} for the lines whose weight
            exceeds ``threshold``, in ascending line order.
        """
        scores: dict[int, float] = defaultdict(float)
        for trigram in sorted(trigrams):
            for line, weight in self.lookup(trigram):
                scores[line] += weight
        return {line: scores[line] for line in sorted(scores) if scores[line] > threshold}


def match_lines(index: TrigramIndex, lines: Iterable[bytes], threshold: float = MATCH_THRESHOLD) -> list[dict[int, float]]:
    """Returns one match map per destination line, in line order."""
    return [index.match(make_trigrams(line), threshold) for line in lines]
