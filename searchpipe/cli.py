"""
Command line entry point.

Usage:
    searchpipe export http://localhost:9200/myindex [-c 4] [-q '{"term":{"a":1}}'] [-s 500] > docs.ndjson
    searchpipe import http://localhost:9200/copy [-c 4] [-s 500] < docs.ndjson

Documents flow through stdout/stdin, one JSON document per line, so the two
commands can be chained to copy between clusters. Progress is logged to
stderr.
"""

import argparse
import logging
import sys

from searchpipe import __version__
from searchpipe.config import Config, get_opensearch_client
from searchpipe.exceptions import SearchpipeError
from searchpipe.services.bulk_import import run_import
from searchpipe.services.export import run_export
from searchpipe.services.query import DEFAULT_FILTER
from searchpipe.services.streams import LineSink, open_input, open_output
from searchpipe.services.target import parse_cluster

logger = logging.getLogger(__name__)

# progress lines ("Fetched another batch, ...", "err: ...") are printed bare
PROGRESS_FORMAT = "%(message)s"
VERBOSE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"


def build_log_handler(*, verbose: bool = False) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    if verbose:
        handler.setFormatter(logging.Formatter(VERBOSE_FORMAT, datefmt="%H:%M:%S"))
    else:
        handler.setFormatter(logging.Formatter(PROGRESS_FORMAT))
    return handler


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from e
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value!r}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="searchpipe",
        description="Stream documents between a search cluster and stdio",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    export_parser = subparsers.add_parser("export", help="Export documents from a cluster to stdout")
    export_parser.add_argument("source", help="Source host to export documents from")
    export_parser.add_argument(
        "-c",
        "--concurrency",
        type=_positive_int,
        default=Config.DEFAULT_CONCURRENCY,
        help="Number of parallel scroll slices",
    )
    export_parser.add_argument(
        "-q",
        "--query",
        default=DEFAULT_FILTER,
        help="A query to use to filter exported documents",
    )
    export_parser.add_argument(
        "-s",
        "--size",
        type=_positive_int,
        default=Config.DEFAULT_SIZE,
        help="The amount of documents to pull per request",
    )
    export_parser.add_argument("-z", "--compress", action="store_true", help="Gzip the output stream")

    import_parser = subparsers.add_parser("import", help="Import documents from stdin into a cluster")
    import_parser.add_argument("target", help="Target host to import documents to")
    import_parser.add_argument(
        "-c",
        "--concurrency",
        type=_positive_int,
        default=Config.DEFAULT_CONCURRENCY,
        help="Maximum number of bulk requests in flight",
    )
    import_parser.add_argument(
        "-s",
        "--size",
        type=_positive_int,
        default=Config.DEFAULT_SIZE,
        help="The amount of documents to index per request",
    )
    import_parser.add_argument("-z", "--compress", action="store_true", help="Read a gzipped input stream")

    return parser


def _export(args: argparse.Namespace) -> None:
    target = parse_cluster(args.source)
    client = get_opensearch_client(target)
    with open_output(sys.stdout.buffer, compress=args.compress) as out:
        run_export(
            client,
            target,
            LineSink(out),
            query=args.query,
            size=args.size,
            concurrency=args.concurrency,
        )


def _import(args: argparse.Namespace) -> None:
    target = parse_cluster(args.target)
    client = get_opensearch_client(target)
    with open_input(sys.stdin.buffer, compress=args.compress) as stream:
        run_import(client, target, stream, size=args.size, concurrency=args.concurrency)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        handlers=[build_log_handler(verbose=args.verbose)],
    )
    # keep per-request transport logs out of the progress stream
    logging.getLogger("opensearch").setLevel(logging.WARNING)

    commands = {"export": _export, "import": _import}
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 0

    try:
        command(args)
    except SearchpipeError as e:
        logger.error("%s failed: %s", args.command.capitalize(), e)  # noqa: TRY400
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
