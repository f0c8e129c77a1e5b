import random

import pytest

from similarity.estimate import estimate_similarity
from similarity.runs import MIN_RUN_LENGTH, Run, find_runs, runs_to_percent, trigram_similarity
from similarity.sources import SourceError


def diagonal(length: int, source_start: int = 1, percentage: float = 1.0) -> list[dict[int, float]]:
    return [{source_start + i: percentage} for i in range(length)]

def make_lines(num_lines: int, seed: int) -> list[bytes]:
    rng = random.Random(seed)
    words = ["alpha", "beta", "gamma", "delta", "omega", "sigma", "kappa", "theta"]
    return [" ".join(rng.choice(words) for _ in range(6)).encode() + f" {rng.randrange(10**6)}\n".encode()
            for _ in range(num_lines)]

# --- Run ---

def test_run_extend():
    run = Run(5, 1, 0.5)
    run.extend(1.0)
    assert len(run) == 2
    assert run.source_range == range(5, 7)
    assert run.dest_range == range(1, 3)
    assert run.percentages == [0.5, 1.0]

# --- find_runs ---

def test_full_diagonal_is_one_run():
    runs = find_runs(diagonal(6))
    assert len(runs) == 1
    run = runs[0]
    assert (run.source_start, run.source_end, run.dest_start, run.dest_end) == (1, 6, 1, 6)
    assert run.percentages == [1.0] * 6

def test_short_runs_are_discarded():
    assert find_runs(diagonal(MIN_RUN_LENGTH - 1)) == []
    assert len(find_runs(diagonal(MIN_RUN_LENGTH))) == 1

def test_break_in_continuity_splits_runs():
    matches = diagonal(4, source_start=10) + [{}] + diagonal(5, source_start=20)
    runs = find_runs(matches)
    assert [(r.source_start, r.dest_start, len(r)) for r in runs] == [(10, 1, 4), (20, 6, 5)]

def test_offset_diagonal():
    # destination lines 3.. copy source lines 1..
    matches = [{}, {}] + diagonal(5)
    runs = find_runs(matches)
    assert len(runs) == 1
    assert runs[0].dest_range == range(3, 8)
    assert runs[0].source_range == range(1, 6)

def test_non_diagonal_matches_do_not_chain():
    # same source line matched by consecutive destination lines
    matches = [{7: 1.0}] * 6
    assert find_runs(matches) == []

def test_runs_sorted_by_destination_then_source():
    matches = [{1: 1.0, 11: 0.5} for _ in range(1)]
    matches += [{2: 1.0, 12: 0.5}, {3: 1.0, 13: 0.5}, {4: 1.0, 14: 0.5}]
    runs = find_runs(matches)
    assert [r.source_start for r in runs] == [1, 11]

def test_min_length_override():
    assert len(find_runs(diagonal(2), min_length=2)) == 1

# --- runs_to_percent ---

def test_percent_takes_best_per_line():
    low = Run(1, 1, 0.5)
    for _ in range(3):
        low.extend(0.5)
    high = Run(20, 3, 1.0)
    for _ in range(3):
        high.extend(1.0)
    # lines 1-2: 0.5, lines 3-6: 1.0, lines 7-8: 0
    assert runs_to_percent([low, high], 8) == pytest.approx((0.5 * 2 + 1.0 * 4) / 8 * 100)

def test_percent_without_runs():
    assert runs_to_percent([], 5) == 0.0

def test_percent_of_empty_destination_is_undefined():
    with pytest.raises(ValueError):
        runs_to_percent([], 0)

# --- trigram_similarity ---

def test_repeated_short_lines_are_identical():
    data = b"a\n" * 10
    assert trigram_similarity(data, data) == pytest.approx(100.0)
    assert f"{trigram_similarity(data, data):.2f}" == "100.00"

def test_identical_files(tmp_path):
    path = tmp_path / "code.txt"
    path.write_bytes(b"".join(make_lines(40, seed=1)))
    assert trigram_similarity(path, path) == pytest.approx(100.0)

def test_unrelated_files():
    left = b"".join(f"{i * 7919:08d} {i}\n".encode() for i in range(30))
    right = b"".join(make_lines(30, seed=2))
    assert trigram_similarity(left, right) == 0.0

def test_copied_block():
    block = make_lines(10, seed=3)
    left = b"".join(make_lines(10, seed=4) + block)
    right = b"".join(block + [b"#\n"] * 10)
    assert trigram_similarity(left, right) == pytest.approx(50.0)

def test_block_shorter_than_min_run_is_ignored():
    block = make_lines(MIN_RUN_LENGTH - 1, seed=5)
    left = b"".join(block)
    right = b"".join(block + [b"#\n"])
    assert trigram_similarity(left, right) == 0.0

def test_crlf_handling():
    lf = b"".join(make_lines(8, seed=6))
    crlf = lf.replace(b"\n", b"\r\n")
    assert trigram_similarity(lf, crlf) == pytest.approx(100.0)
    assert trigram_similarity(lf, crlf, binary=True) < 100.0

def test_empty_destination():
    assert trigram_similarity(b"", b"") == 100.0
    assert trigram_similarity(b"line\n", b"") == 0.0

def test_empty_source():
    assert trigram_similarity(b"", b"line\n") == 0.0

def test_missing_file(tmp_path):
    with pytest.raises(SourceError):
        trigram_similarity(tmp_path / "nope", b"x\n")

def test_read_only_streams(read_only_stream):
    data = b"".join(make_lines(12, seed=7))
    assert trigram_similarity(read_only_stream(data), read_only_stream(data), read_size=16) == pytest.approx(100.0)

def test_trailing_cr_agrees_with_span_hasher():
    lines = make_lines(4, seed=8)
    left = b"".join(lines[:3]) + lines[3][:-1] + b"\r"
    right = b"".join(lines)
    assert trigram_similarity(left, right) < 100.0
    assert estimate_similarity(left, right, percent=True) < 100.0
