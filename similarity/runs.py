"""
Line-level similarity from diagonal runs of trigram matches.

Every destination line is scored against the source lines through a
``TrigramIndex``. Matches where destination line i+1 pairs with source line
s+1 right after i paired with s are stitched into runs; short runs are noise
and dropped. Each destination line keeps its best percentage over all runs,
and the mean over all destination lines is the similarity.
"""
import logging
from collections.abc import Iterable, Mapping

from similarity.sources import READ_SIZE, Source, describe, open_source
from similarity.trigram import MATCH_THRESHOLD, TrigramIndex, match_lines, read_lines


logger = logging.getLogger(__name__)

MIN_RUN_LENGTH = 4


class Run:
    """
    A diagonal block of matching lines.

    Covers source lines ``source_start..source_end`` and destination lines
    ``dest_start..dest_end`` (inclusive, 1-based), with one match percentage
    per destination line.
    """

    def __init__(self, source_line: int, dest_line: int, percentage: float) -> None:
        self.source_start = self.source_end = source_line
        self.dest_start = self.dest_end = dest_line
        self.percentages: list[float] = [percentage]

    def extend(self, percentage: float) -> None:
        self.source_end += 1
        self.dest_end += 1
        self.percentages.append(percentage)

    def __len__(self) -> int:
        return self.dest_end - self.dest_start + 1

    @property
    def source_range(self) -> range:
        return range(self.source_start, self.source_end + 1)

    @property
    def dest_range(self) -> range:
        return range(self.dest_start, self.dest_end + 1)

    def __repr__(self) -> str:
        return (f"Run(source={self.source_start}..{self.source_end}, "
                f"dest={self.dest_start}..{self.dest_end}, percentages={self.percentages!r})")


def find_runs(matches: Iterable[Mapping[int, float]], min_length: int = MIN_RUN_LENGTH) -> list[Run]:
    """
    Stitches per-line match maps into diagonal runs.

    Args:
        matches: For each destination line in order, {source_line: percentage}.
        min_length: Runs covering fewer destination lines are discarded.

    Returns:
        The kept runs, sorted by (dest_start, source_start).
    """
    open_runs: dict[int, Run] = {}  # keyed by the last source line of the run
    found_runs: list[Run] = []

    def close(runs: Iterable[Run]) -> None:
        for run in runs:
            if len(run) >= min_length:
                found_runs.append(run)

    for dest_line, line_matches in enumerate(matches, start=1):
        expected_runs: dict[int, Run] = {}
        for source_line in sorted(line_matches):
            percentage = line_matches[source_line]
            run = open_runs.pop(source_line - 1, None)
            if run is None:
                run = Run(source_line, dest_line, percentage)
            else:
                run.extend(percentage)
            expected_runs[source_line] = run

        # Whatever was not extended by this line is finished.
        close(open_runs.values())
        open_runs = expected_runs

    close(open_runs.values())
    found_runs.sort(key=lambda r: (r.dest_start, r.source_start))
    return found_runs


def runs_to_percent(runs: Iterable[Run], line_count: int) -> float:
    """
    Averages the best per-line percentage over all destination lines.

    Raises:
        ValueError: If ``line_count`` is zero; an empty destination has no
            defined average and callers must decide its score.
    """
    if line_count <= 0:
        raise ValueError("Cannot compute a line percentage for an empty destination.")

    best = [0.0] * (line_count + 1)
    for run in runs:
        for line, percentage in zip(run.dest_range, run.percentages):
            best[line] = max(best[line], percentage)
    return sum(best[1:]) / line_count * 100.0


def trigram_similarity(
    left: Source,
    right: Source,
    binary: bool = False,
    threshold: float = MATCH_THRESHOLD,
    min_length: int = MIN_RUN_LENGTH,
    read_size: int = READ_SIZE,
) -> float:
    """
    Percentage (0..100) of destination lines found, in order, in the source.

    Args:
        left: Source file (path, bytes, or binary stream).
        right: Destination file, same forms as ``left``.
        binary: Keep a CR before LF as part of each line.
        threshold: Minimum accumulated trigram weight of a line match.
        min_length: Minimum run length in destination lines.
        read_size: Block size when reading sources.

    Returns:
        100.0 if both files are empty, 0.0 if only the destination is.

    Raises:
        SourceError: If a source cannot be opened or read.
    """
    index = TrigramIndex.from_source(left, binary=binary, read_size=read_size)
    with open_source(right) as stream:
        matches = match_lines(index, read_lines(stream, binary=binary, read_size=read_size), threshold)

    if not matches:
        if index.line_count:
            logger.warning(f"Destination {describe(right)} is empty; reporting 0% similarity.")
            return 0.0
        return 100.0

    runs = find_runs(matches, min_length)
    logger.debug(f"Found {len(runs)} runs over {len(matches)} destination lines")
    return runs_to_percent(runs, len(matches))
