#!/usr/bin/env python3
"""
dsl-evalkit MCP server: DomainModel checking, splitting and outlining as tools.

Install:
    pip install mcp

Run standalone (for testing):
    python cli/mcp_server.py

Configure in an MCP client (e.g. a project .mcp.json):
    {
      "mcpServers": {
        "dsl-evalkit": {
          "command": "python",
          "args": ["cli/mcp_server.py"],
          "env": {}
        }
      }
    }
"""

from __future__ import annotations

import inspect
import json
import sys
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = PROJECT_ROOT / "src"

# Ensure src/ is importable
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

try:
    from mcp.server.fastmcp import FastMCP
except ImportError:
    print("Error: mcp package not installed. Run: pip install mcp", file=sys.stderr)
    sys.exit(1)

from domainmodel import create_domainmodel_services, outline_mapping_rules
from dsl_analyzer import DocumentAnalyzer
from dsl_services import Diagnostic
from dsl_splitter import SplitterOptions, split_by_node
from evaluator import extract_code_block
from program_map import ProgramMapper

_MCP_INSTRUCTIONS = (
    "DomainModel language tools. Use check_syntax to list diagnostics for "
    "generated code, evaluate_document for validation counts and syntax "
    "usage statistics, split_document to cut a document into per-node "
    "chunks, and map_program for a one-line-per-declaration outline."
)

_SEVERITY_NAMES = {1: "Error", 2: "Warning", 3: "Information", 4: "Hint"}


def _build_mcp_server() -> FastMCP:
    """Instantiate FastMCP across mcp package versions."""
    sig = inspect.signature(FastMCP.__init__)
    if "instructions" in sig.parameters:
        return FastMCP("dsl-evalkit", instructions=_MCP_INSTRUCTIONS)
    if "description" in sig.parameters:
        return FastMCP("dsl-evalkit", description=_MCP_INSTRUCTIONS)
    return FastMCP("dsl-evalkit")


mcp = _build_mcp_server()
services = create_domainmodel_services()


def describe_diagnostic(diagnostic: Diagnostic) -> str:
    start = diagnostic.range.start
    severity = _SEVERITY_NAMES.get(diagnostic.severity, "Unknown")
    return f"{severity}: {diagnostic.message} at line {start.line + 1}, column {start.character + 1}"


# ── Tools ────────────────────────────────────────────────────────────

@mcp.tool()
def check_syntax(code: str) -> str:
    """Check DomainModel code for lexer, parser and validation errors.

    Args:
        code: DomainModel source, optionally wrapped in a Markdown code block
    """
    diagnostics = services.build(extract_code_block(code)).diagnostics
    if not diagnostics:
        return "The provided DomainModel code has no issues."
    return "\n".join(describe_diagnostic(d) for d in diagnostics)


@mcp.tool()
async def evaluate_document(code: str) -> str:
    """Validate DomainModel code and collect syntax usage statistics.

    Args:
        code: DomainModel source, optionally wrapped in a Markdown code block
    """
    result = await DocumentAnalyzer(services).evaluate(code)
    return json.dumps(result.to_dict(), indent=2)


@mcp.tool()
def split_document(document: str, node_types: list[str] | None = None, include_comments: bool = True) -> str:
    """Split a DomainModel document into chunks, one per matching node.

    Args:
        document: DomainModel source
        node_types: Node types to split on (default: ["entity"])
        include_comments: Extend chunks to the comment directly above each node
    """
    options = SplitterOptions() if include_comments else SplitterOptions(comment_rule_names=None)
    chunks = split_by_node(
        document,
        [lambda n, t=t: n.type == t for t in (node_types or ["entity"])],
        services,
        options,
    )
    return json.dumps({"count": len(chunks), "chunks": chunks}, indent=2)


@mcp.tool()
def map_program(document: str) -> str:
    """Outline a DomainModel document: packages, data types, entities and features.

    Args:
        document: DomainModel source
    """
    return "\n".join(ProgramMapper(services, outline_mapping_rules()).map(document))


# ── Entry Point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    mcp.run()
