# ruff: noqa: T201
import argparse
import logging
import os
import sys

from similarity.estimate import estimate_similarity
from similarity.runs import trigram_similarity
from similarity.sources import SimilarityError


logger = logging.getLogger(__name__)

METHODS = ("trigram", "span")


def _get_default_method() -> str:
    """Comparison method from SIMILARITY_METHOD, falling back to 'trigram'."""
    method = os.environ.get("SIMILARITY_METHOD", "trigram")
    if method not in METHODS:
        logger.warning(f"Ignoring unknown SIMILARITY_METHOD '{method}'.")
        return "trigram"
    return method


def _get_log_level(verbose: bool) -> int:
    if verbose:
        return logging.DEBUG
    level = logging.getLevelName(os.environ.get("SIMILARITY_LOG_LEVEL", "WARNING").upper())
    return level if isinstance(level, int) else logging.WARNING


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="file-similarity",
        description="Prints how similar (from 0 to 100%) two files are.",
    )
    parser.add_argument("left", help="Left file to check")
    parser.add_argument("right", help="Right file to check")
    parser.add_argument("--binary", action="store_true",
        help="Treat files as binary files (don't ignore CRLF)")
    parser.add_argument("--method", choices=METHODS, default=None,
        help="'trigram' (line runs, default) or 'span' (content overlap). Default from SIMILARITY_METHOD.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug statistics to stderr")
    return parser


def print_error(error: BaseException) -> None:
    """Writes the error and its chain of causes to stderr."""
    print(f"error: {error}", file=sys.stderr)
    cause = error.__cause__
    while cause is not None:
        print(f"caused by: {cause}", file=sys.stderr)
        cause = cause.__cause__


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if not logging.root.handlers:
        logging.basicConfig(format='%(levelname)s: %(message)s')
    logging.getLogger("similarity").setLevel(_get_log_level(args.verbose))

    method = args.method or _get_default_method()
    try:
        if method == "span":
            similarity = estimate_similarity(args.left, args.right, binary=args.binary, percent=True)
        else:
            similarity = trigram_similarity(args.left, args.right, binary=args.binary)
    except SimilarityError as e:
        logger.error(f"Comparison of '{args.left}' and '{args.right}' failed", exc_info=args.verbose)
        print_error(e)
        return 1

    print(f"{similarity:.2f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
