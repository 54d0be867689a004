#!/usr/bin/env python3
"""Bulk index newline-delimited JSON from a file or stdin into Elasticsearch."""
import argparse
import cProfile
import logging
import os
import sys
import tracemalloc
from typing import List, Optional

from esbulk import __version__
from esbulk.es_client import ES_PASSWORD, ES_URL, ES_USERNAME
from esbulk.exceptions import EsbulkError
from esbulk.line_source import read_records
from esbulk.options import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DOC_TYPE,
    DEFAULT_HOST,
    DEFAULT_PORT,
    Options,
    parse_credentials,
    parse_server,
)
from esbulk.session import IndexingSession

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="esbulk",
        description="Bulk index newline-delimited JSON into Elasticsearch.",
    )
    parser.add_argument("file", nargs="?", help="Input file (default: stdin)")
    parser.add_argument("-v", "--version", action="version", version=__version__)
    parser.add_argument("-index", "--index", default="", help="Index name")
    parser.add_argument("-type", "--type", dest="doc_type", default=DEFAULT_DOC_TYPE,
                        help="Elasticsearch doc type, sent as _type only when set (default: none)")
    parser.add_argument("-server", "--server", default=ES_URL,
                        help="Elasticsearch server, http or https (default: ES_URL or http://localhost:9200)")
    parser.add_argument("-host", "--host", default=DEFAULT_HOST,
                        help="Elasticsearch host (deprecated: use --server instead)")
    parser.add_argument("-port", "--port", type=int, default=DEFAULT_PORT,
                        help="Elasticsearch port (deprecated: use --server instead)")
    parser.add_argument("-size", "--size", type=int, default=DEFAULT_BATCH_SIZE, help="Bulk batch size")
    parser.add_argument("-w", "--workers", type=int, default=os.cpu_count() or 1,
                        help="Number of workers to use (default: CPU count)")
    parser.add_argument("-verbose", "--verbose", action="store_true", help="Output basic progress")
    parser.add_argument("-z", "--gzip", action="store_true", help="Unzip gz'd input on the fly")
    parser.add_argument("-mapping", "--mapping", default="",
                        help="Mapping string or filename to apply before indexing")
    parser.add_argument("-purge", "--purge", action="store_true", help="Purge any existing index before indexing")
    parser.add_argument("-id", "--id", dest="id_field", default="",
                        help="Name of field to use as id field, by default ids are autogenerated")
    parser.add_argument("-u", "--user", default="", help="HTTP basic auth username:password, like curl -u")
    parser.add_argument("-0", "--zero-replica", action="store_true",
                        help="Set the number of replicas to 0 during indexing")
    parser.add_argument("--strict", action="store_true", help="Abort when any document is rejected")
    parser.add_argument("-cpuprofile", "--cpuprofile", default="", help="Write cpu profile to file")
    parser.add_argument("-memprofile", "--memprofile", default="", help="Write heap snapshot to file")
    return parser


def options_from_args(args: argparse.Namespace) -> Options:
    """Turn parsed arguments into session options; raises ConfigurationError."""
    username, password = ES_USERNAME, ES_PASSWORD
    if args.user:
        username, password = parse_credentials(args.user)

    # The older --host and --port win only when moved off their defaults.
    if args.host == DEFAULT_HOST and args.port == DEFAULT_PORT:
        scheme, host, port = parse_server(args.server)
    else:
        scheme, host, port = "http", args.host, args.port

    options = Options(
        index=args.index,
        scheme=scheme,
        host=host,
        port=port,
        doc_type=args.doc_type,
        batch_size=args.size,
        num_workers=args.workers,
        id_field=args.id_field,
        username=username,
        password=password,
        verbose=args.verbose,
        purge=args.purge,
        mapping=args.mapping,
        zero_replica=args.zero_replica,
        fail_on_doc_errors=args.strict,
    )
    options.validate()
    return options


def run(args: argparse.Namespace) -> None:
    options = options_from_args(args)
    session = IndexingSession(options)
    if args.file:
        with open(args.file, "rb") as f:
            session.run(read_records(f, gzipped=args.gzip))
    else:
        session.run(read_records(sys.stdin.buffer, gzipped=args.gzip))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(threadName)s %(levelname)s %(message)s",
    )

    profiler = None
    if args.cpuprofile:
        profiler = cProfile.Profile()
        profiler.enable()
    if args.memprofile:
        tracemalloc.start()

    try:
        run(args)
    except (OSError, EsbulkError) as e:
        print(f"esbulk: {e}", file=sys.stderr)
        return 1
    finally:
        if profiler is not None:
            profiler.disable()
            profiler.dump_stats(args.cpuprofile)
        if args.memprofile:
            tracemalloc.take_snapshot().dump(args.memprofile)
            tracemalloc.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
