#!/usr/bin/env python3
"""
dsl-evalkit CLI: evaluation matrices, reports, splitting and mapping demos.

Usage:
    python cli/dsl_eval.py run --matrix-config configs/domainmodel_matrix.yaml
    python cli/dsl_eval.py report [--history eval_history] [--take 3] [--markdown summary.md]
    python cli/dsl_eval.py splitter [FILE] [--node-type entity] [--no-comments]
    python cli/dsl_eval.py program-map [FILE]
    python cli/dsl_eval.py analyze [FILE] [--exclude MANY] [--no-hidden]

Set ANTHROPIC_API_KEY before running matrices with claude runners.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Ensure src/ is importable
_SCRIPT_DIR = Path(__file__).resolve().parent
_SRC_DIR = _SCRIPT_DIR.parent / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from dsl_analyzer import AnalysisOptions, collect_syntax_usage_statistics
from domainmodel import create_domainmodel_services, outline_mapping_rules
from dsl_splitter import SplitterOptions, split_by_node
from eval_case import EvalCaseError
from eval_matrix import DuplicateRunnerError, EvalMatrix, load_matrix_config
from evaluator import load_last_results
from evaluator_registry import build_evaluator
from paths import DOMAINMODEL_SAMPLE_PATH, HISTORY_DIR
from program_map import ProgramMapper
from report_summary import export_markdown, summary_table
from runners import build_runner


def _read_document(path: str | None) -> str:
    return Path(path or DOMAINMODEL_SAMPLE_PATH).read_text(encoding="utf-8")


# ============================================================
# Commands
# ============================================================

def cmd_run(args: argparse.Namespace) -> int:
    document = load_matrix_config(args.matrix_config)
    services = create_domainmodel_services()
    matrix = EvalMatrix(
        config=document.config,
        runners=[build_runner(spec) for spec in document.runners],
        evaluators=[build_evaluator(name, services) for name in document.evaluators],
        cases=document.cases,
    )
    results = asyncio.run(matrix.run())
    print(summary_table(results))
    print(f"\nReport saved: {matrix.report_path}")
    return 0


def cmd_report(args: argparse.Namespace) -> int:
    results = load_last_results(args.history, take=args.take)
    print(summary_table(results))
    if args.markdown:
        Path(args.markdown).write_text(export_markdown(results), encoding="utf-8")
        print(f"\nMarkdown saved: {args.markdown}")
    return 0


def cmd_splitter(args: argparse.Namespace) -> int:
    services = create_domainmodel_services()
    options = SplitterOptions(comment_rule_names=None) if args.no_comments else SplitterOptions()
    chunks = split_by_node(
        _read_document(args.file),
        [lambda n, t=t: n.type == t for t in args.node_type],
        services,
        options,
    )
    for i, chunk in enumerate(chunks, 1):
        print(f"--- chunk {i} ---")
        print(chunk)
    print(f"\n{len(chunks)} chunk(s)")
    return 0


def cmd_program_map(args: argparse.Namespace) -> int:
    mapper = ProgramMapper(create_domainmodel_services(), outline_mapping_rules())
    for line in mapper.map(_read_document(args.file)):
        print(line)
    return 0


def cmd_analyze(args: argparse.Namespace) -> int:
    services = create_domainmodel_services()
    result = services.build(_read_document(args.file))
    for diagnostic in result.diagnostics:
        print(diagnostic, file=sys.stderr)
    options = AnalysisOptions(
        exclude_rules=frozenset(args.exclude),
        include_hidden_rules=not args.no_hidden,
    )
    statistics = collect_syntax_usage_statistics(result.root, services, options)
    print(json.dumps(statistics.to_dict(), indent=2))
    return 0


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dsl-eval",
        description="Evaluate generated DSL documents and explore their structure",
        epilog="Set ANTHROPIC_API_KEY env var before running claude runners.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run an evaluation matrix")
    run.add_argument("--matrix-config", type=Path, required=True, help="Path to matrix YAML config")
    run.set_defaults(func=cmd_run)

    report = sub.add_parser("report", help="Summarize the last report(s)")
    report.add_argument("--history", type=Path, default=HISTORY_DIR, help="History folder")
    report.add_argument("--take", type=int, default=None, help="Read the N most recent reports")
    report.add_argument("--markdown", type=str, default=None, help="Also write a Markdown summary here")
    report.set_defaults(func=cmd_report)

    splitter = sub.add_parser("splitter", help="Split a DomainModel document into chunks")
    splitter.add_argument("file", nargs="?", default=None)
    splitter.add_argument("--node-type", action="append", default=None, help="Node type to split on (repeatable)")
    splitter.add_argument("--no-comments", action="store_true", help="Do not attach preceding comments")
    splitter.set_defaults(func=cmd_splitter)

    program_map = sub.add_parser("program-map", help="Print an outline of a DomainModel document")
    program_map.add_argument("file", nargs="?", default=None)
    program_map.set_defaults(func=cmd_program_map)

    analyze = sub.add_parser("analyze", help="Print syntax usage statistics as JSON")
    analyze.add_argument("file", nargs="?", default=None)
    analyze.add_argument("--exclude", action="append", default=[], help="Rule to exclude (repeatable)")
    analyze.add_argument("--no-hidden", action="store_true", help="Ignore hidden (comment) rules")
    analyze.set_defaults(func=cmd_analyze)

    args = parser.parse_args(argv)
    if getattr(args, "node_type", None) is None and args.command == "splitter":
        args.node_type = ["entity"]
    return args


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except (EvalCaseError, DuplicateRunnerError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
