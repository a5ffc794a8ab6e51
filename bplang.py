"""bp entry point and REPL wiring."""

from __future__ import annotations
import argparse
import os
import sys
from typing import List, Optional

from interpreter import Interpreter, TracebackFormatter
from lexer import KIND_IO, BPError
from tape import STANDARDS, LanguageStandard


SOURCE_EXTENSION = "bp"


def load_source(path: str) -> str:
    """Read a .bp file, joining its stripped lines into one program string."""
    name = os.path.basename(path)
    extension = ""
    dot = name.rfind(".")
    if dot > 0:
        extension = name[dot + 1:]
    if not os.path.isfile(path):
        raise BPError(f"File {name} does not exist.", kind=KIND_IO)
    if extension != SOURCE_EXTENSION:
        raise BPError(f"Unsupported extension, expected .{SOURCE_EXTENSION} but found {extension}", kind=KIND_IO)
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return "".join(line.strip() for line in handle)
    except OSError as exc:
        raise BPError(f"Error attempting to open file {name}: {exc}", kind=KIND_IO) from exc


def report_error(error: BPError) -> None:
    print(f"[ERROR]: {error.message}", flush=True)


def report_stats(interpreter: Interpreter) -> None:
    tape = interpreter.tape
    print(
        f"standard={interpreter.language_standard} low_ops={tape.low_ops} high_ops={tape.high_ops}"
        f" steps={interpreter.logger.next_step_index}",
        file=sys.stderr,
    )


def run_repl(interpreter: Interpreter) -> int:
    print(f"bp REPL ({interpreter.language_standard}). One program per line, the tape is kept between lines.")
    while True:
        try:
            line = input(">>> ")
        except EOFError:
            print()
            break
        if not line.strip():
            continue
        try:
            interpreter.run(line)
        except BPError as error:
            print()
            report_error(error)
            continue
        print()
    return 0


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="bp reference interpreter")
    parser.add_argument("program", nargs="?", help="Source file path (.bp) or literal source with -source")
    parser.add_argument(
        "standard",
        nargs="?",
        default=LanguageStandard.tacobell().name,
        help=f"Language standard ({', '.join(STANDARDS)}); unknown names keep the default",
    )
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit a step trace on stderr when a program fails")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit the failure trace as JSON on stderr")
    parser.add_argument("--stats", action="store_true", help="Print operation counters on stderr after the run")
    args = parser.parse_args(argv)

    interpreter = Interpreter(verbose=args.verbose or args.traceback_json)
    if not interpreter.set_language_standard(args.standard):
        print(
            f"Unknown language standard '{args.standard}', keeping {interpreter.language_standard}",
            file=sys.stderr,
        )

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return 1
        return run_repl(interpreter)

    try:
        source_text = args.program if args.source_mode else load_source(args.program)
        interpreter.run(source_text)
    except BPError as error:
        report_error(error)
        formatter = TracebackFormatter(interpreter)
        if args.verbose:
            print(formatter.format_text(error), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1
    finally:
        if args.stats:
            report_stats(interpreter)
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
