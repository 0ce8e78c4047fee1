#!/usr/bin/env python3

import argparse
import io
import json
import logging
import sys
import time
from importlib.metadata import PackageNotFoundError, version

from pegdsl.pegex_config import MatchConfig
from pegdsl.pegex_errors import PegexError
from pegdsl.pegex_parser import PEGEX_DSL_VERSION
from pegdsl.pegex_registry import load_grammar

__version__ = "0.1.0"


def get_lark_version() -> str:
    try:
        return version("lark")
    except PackageNotFoundError:
        return "unknown"


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Parse an input file with a pegex grammar and emit capture trees as JSON."
    )
    parser.add_argument("grammar_file", nargs="?", help="Path to grammar source file")
    parser.add_argument("input_file", nargs="?", help="Path to input text file")
    parser.add_argument(
        "--start",
        default="TOP",
        help="Rule to start matching with (default: TOP)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--subparse",
        action="store_true",
        help="Match the start rule at the beginning of the input without requiring it to consume everything",
    )
    mode.add_argument(
        "--scan",
        action="store_true",
        help="Emit every non-overlapping match of the start rule in the input",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Abort when matching nests deeper than this",
    )
    parser.add_argument(
        "--pretty-print",
        action="store_true",
        help="Emit all results in a single pretty-printed JSON array",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Set logging level",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument(
        "--show-timing",
        action="store_true",
        help="Show detailed timing information",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Write output to this file (UTF-8, LF line endings). If omitted, output goes to stdout.",
    )
    return parser


def run_grammar(args, logger) -> list:
    """Load the grammar, match the input and return JSON-ready results."""
    grammar_start = time.time()
    registry = load_grammar(args.grammar_file)
    if args.show_timing:
        sys.stderr.write(f"Grammar compile time: {time.time() - grammar_start:.3f}s\n")

    with open(args.input_file, "r", encoding="utf-8") as f:
        text = f.read()

    config = MatchConfig(max_depth=args.max_depth)
    match_start = time.time()
    output = []
    if args.scan:
        logger.info("Scanning input with rule '%s'", args.start)
        for tree in registry.scan(text, args.start, config=config):
            output.append(tree.to_dict())
    elif args.subparse:
        logger.info("Subparsing input with rule '%s'", args.start)
        found = registry.subparse(text, args.start, config=config)
        if found is not None:
            output.append(found[0].to_dict())
    else:
        logger.info("Parsing input with rule '%s'", args.start)
        tree = registry.parse(text, args.start, config=config)
        if tree is not None:
            output.append(tree.to_dict())
    if args.show_timing:
        sys.stderr.write(f"Matching time: {time.time() - match_start:.3f}s\n")
    return output


def main(argv=None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.version:
        print("Version information:")
        print(f"  lark: {get_lark_version()}")
        print(f"  pegex: {__version__}")
        print(f"  DSL: {PEGEX_DSL_VERSION}")
        return 0

    if not args.grammar_file or not args.input_file:
        parser.error("the following arguments are required: grammar_file, input_file")

    logging.basicConfig(
        level=getattr(logging, args.log_level), format="[%(levelname)s] %(message)s"
    )
    logger = logging.getLogger("pegex")

    try:
        output = run_grammar(args, logger)
    except PegexError as e:
        logger.error("%s", e)
        return 2

    if not output:
        sys.stderr.write(f"Input did not match rule '{args.start}'\n")
        return 1

    if args.output:
        output_stream = open(args.output, "w", encoding="utf-8", newline="\n")
    else:
        # Ensure UTF-8 encoding for stdout
        output_stream = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8")

    try:
        if args.pretty_print:
            json.dump(output, output_stream, indent=2, ensure_ascii=False)
            output_stream.write("\n")
        else:
            for item in output:
                output_stream.write(json.dumps(item, ensure_ascii=False))
                output_stream.write("\n")
    finally:
        if args.output:
            output_stream.close()
        else:
            output_stream.flush()
            output_stream.detach()
    return 0


if __name__ == "__main__":
    sys.exit(main())
