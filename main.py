"""
CsvQL: SQL over a CSV file
==========================
Entry point for the query engine.

Usage:
    csvql data.csv                         Interactive REPL
    csvql data.csv -e "SELECT ..."         Execute statement(s) and exit
    csvql data.csv -f script.sql           Execute SQL script and exit

The file's stem is the table name: data.csv is queried as `data`.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

logger = logging.getLogger("csvql")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="csvql",
        description="Run SQL queries against a CSV file.",
    )
    parser.add_argument("path", help="CSV file to query; its file name (without extension) is the table name")
    parser.add_argument("-d", "--delimiter", default=",",
                        help="field delimiter (default: ',')")
    parser.add_argument("-e", "--execute", metavar="SQL",
                        help="execute SQL (one or more ;-separated statements) and exit")
    parser.add_argument("-f", "--file", metavar="SCRIPT",
                        help="execute a SQL script file and exit")
    parser.add_argument("--execution-plan", action="store_true",
                        help="print the physical plan after each query result")
    parser.add_argument("--nulls", choices=("first", "last"), default="last",
                        help="NULL position in ascending order (default: last)")
    parser.add_argument("--infer-rows", type=int, default=100, metavar="N",
                        help="data rows sampled for type inference (default: 100)")
    parser.add_argument("--output-dir", default=None, metavar="DIR",
                        help="base directory for relative COPY targets (default: cwd)")
    parser.add_argument("--mode", choices=("table", "vertical", "raw", "csv"), default="table",
                        help="result output mode (default: table)")
    parser.add_argument("--log-level", default="WARNING",
                        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
                        help="logging level for diagnostics on stderr (default: WARNING)")
    return parser


def _delimiter(raw: str) -> str:
    """Accept '\\t' spelled out on the command line."""
    return "\t" if raw in ("\\t", "tab") else raw


def _is_blank(statement: str) -> bool:
    """True for text that holds only comments."""
    from parser import tokenize, ParseError
    try:
        return len(tokenize(statement)) == 1  # EOF only
    except ParseError:
        return False


def run_statements(repl, statements: List[str]) -> int:
    """Execute statements in order. Errors stop execution. Returns exit code."""
    for stmt_text in statements:
        if _is_blank(stmt_text):
            continue
        # Meta-commands in scripts
        if stmt_text.startswith("."):
            print(f"-- meta-command not supported in script mode: {stmt_text}", file=sys.stderr)
            continue
        if not repl.execute_statement(stmt_text):
            print(f"Error in statement: {stmt_text[:80]}", file=sys.stderr)
            return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Parse CLI arguments and dispatch."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    from cli.session import Session
    from cli.renderer import Renderer
    from cli.repl import REPL, split_statements
    from storage.csv_source import CsvSourceError
    from storage.types import NullOrder

    if not os.path.isfile(args.path):
        print(f"Error: CSV file not found: {args.path}", file=sys.stderr)
        return 1

    try:
        session = Session(
            args.path,
            delimiter=_delimiter(args.delimiter),
            infer_rows=args.infer_rows,
            null_order=NullOrder(args.nulls),
            output_dir=args.output_dir,
        )
        # Resolve the schema up front so a bad file fails here
        schema = session.source.schema
        logger.info("Loaded %s: %s", session.source.file_name, schema)
    except (ValueError, CsvSourceError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    renderer = Renderer()
    renderer.mode = args.mode
    repl = REPL(session, renderer, show_plan=args.execution_plan)

    if args.execute is not None or args.file is not None:
        renderer.show_timer = False  # Cleaner script output
        if args.file is not None:
            try:
                with open(args.file, "r", encoding="utf-8") as f:
                    content = f.read()
            except OSError as e:
                print(f"Error: cannot read script file {args.file}: {e.strerror}", file=sys.stderr)
                return 1
        else:
            content = args.execute

        with session:
            return run_statements(repl, split_statements(content))

    # Interactive REPL
    repl.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
