"""
Span-overlap similarity, after git's ``estimate_similarity`` in diffcore-rename.

Both files are reduced to a multiset of spans (see ``spanhash``). A merge-join
over the hash-sorted multisets counts how many bytes of the destination are
accounted for by spans that also occur in the source ("copied") and how many
are not ("added"). The score is the copied byte count relative to the larger
file, on a 0..MAX_SCORE scale.
"""
import logging

from similarity.sources import READ_SIZE, Source
from similarity.spanhash import EMPTY_SPANHASH, MAX_SPAN_LENGTH, SpanhashTop


logger = logging.getLogger(__name__)

MAX_SCORE = 60000.0
MIN_SCORE = 30000.0


def count_changes(left: SpanhashTop, right: SpanhashTop) -> tuple[int, int]:
    """
    Merge-compares two span multisets.

    Both sides are walked in ascending hash order. For every source span the
    destination cursor first consumes all spans with a smaller hash (these
    exist only in the destination), then, on an equal hash, the smaller of
    the two occurrences counts as copied and any destination excess as added.

    Returns:
        (copied, added) byte counts.
    """
    dest_top = iter(right)
    d = next(dest_top, EMPTY_SPANHASH)
    literal_added = 0
    source_copied = 0

    for s in left:
        while d.occurrences and d.hashval < s.hashval:
            literal_added += d.occurrences
            d = next(dest_top, EMPTY_SPANHASH)

        src_cnt = s.occurrences
        dst_cnt = 0
        if d.occurrences and d.hashval == s.hashval:
            dst_cnt = d.occurrences
            d = next(dest_top, EMPTY_SPANHASH)

        if src_cnt < dst_cnt:
            literal_added += dst_cnt - src_cnt
            source_copied += src_cnt
        else:
            source_copied += dst_cnt

    while d.occurrences:
        literal_added += d.occurrences
        d = next(dest_top, EMPTY_SPANHASH)

    return source_copied, literal_added


def score_to_percent(score: float, max_score: float = MAX_SCORE) -> float:
    """Rescales a 0..max_score score to 0..100."""
    return score * 100.0 / max_score


def estimate_similarity(
    left: SpanhashTop | Source,
    right: SpanhashTop | Source,
    binary: bool = False,
    percent: bool = False,
    max_score: float = MAX_SCORE,
    min_score: float = MIN_SCORE,
    max_length: int = MAX_SPAN_LENGTH,
    read_size: int = READ_SIZE,
) -> float:
    """
    Estimates how much of the larger file is made of spans shared with the other.

    Args:
        left: Source file, as a SpanhashTop or anything ``open_source`` accepts.
        right: Destination file, same forms as ``left``.
        binary: Keep CR in CRLF line endings when hashing sources.
        percent: Return 0..100 instead of 0..max_score.
        max_score: Score of identical files.
        min_score: Sizes differing by ``(max_score - min_score) / max_score``
            of the larger file or more score 0.
        max_length: Maximum span length when hashing sources.
        read_size: Block size when reading sources.

    Returns:
        max_score for two empty files, 0 if exactly one is empty or the sizes
        differ too much to be a copy, otherwise ``copied * max_score / max_size``.

    Raises:
        SourceError: If a source cannot be opened or read.
        ValueError: If the two sides were hashed in different modes (text vs
            binary), e.g. a prebuilt text-mode SpanhashTop with ``binary=True``.
    """
    if not isinstance(left, SpanhashTop):
        left = SpanhashTop.from_source(left, binary=binary, max_length=max_length, read_size=read_size)
    if not isinstance(right, SpanhashTop):
        right = SpanhashTop.from_source(right, binary=binary, max_length=max_length, read_size=read_size)

    if left.binary != right.binary:
        raise ValueError("Cannot compare a text-mode SpanhashTop with a binary-mode one.")

    score = _estimate(left, right, max_score, min_score)
    return score_to_percent(score, max_score) if percent else score


def _estimate(left: SpanhashTop, right: SpanhashTop, max_score: float, min_score: float) -> float:
    left_size = left.size
    right_size = right.size

    if left_size == 0 and right_size == 0:
        return max_score
    if left_size == 0 or right_size == 0:
        return 0.0

    max_size = max(left_size, right_size)
    delta_size = max_size - min(left_size, right_size)
    # Edits that change the size this drastically are not copies. This also
    # keeps the division below away from zero.
    if delta_size * max_score >= max_size * (max_score - min_score):
        logger.debug(f"Size delta {delta_size} too large for max size {max_size}")
        return 0.0

    copied, added = count_changes(left, right)
    logger.debug(f"Span overlap: copied={copied} added={added} max_size={max_size}")
    return copied * max_score / max_size
