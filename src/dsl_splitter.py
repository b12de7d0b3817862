"""
Document splitter: cut a DSL document into chunks keyed on node types.

Nodes are visited in document order (pre-order). A node is tested against
every predicate; each predicate that matches emits one chunk, in predicate
order. A node matched by two predicates therefore yields two chunks.

Text chunks span the node's own range, extended backwards to an attached
comment (a comment of one of the configured rule types that directly
precedes the node). Chunks that are blank after trimming are dropped.

Malformed input never raises: a document that cannot be parsed produces no
chunks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Union

from dsl_services import (
    DEFAULT_COMMENT_RULES,
    LanguageServices,
    ParseResult,
    Range,
    SyntaxNode,
    find_comment_node,
    stream_ast,
)

logger = logging.getLogger(__name__)

NodePredicate = Callable[[SyntaxNode], bool]
Predicates = Union[NodePredicate, list[NodePredicate]]


@dataclass(frozen=True)
class SplitterOptions:
    # comment rule types to include in a chunk; empty disables comment lookup
    comment_rule_names: tuple[str, ...] | None = field(default=DEFAULT_COMMENT_RULES)


def parse_document(document: str, services: LanguageServices) -> ParseResult:
    """Parse a document, logging (not raising) lexer and parser errors."""
    result = services.parse(document)
    for diagnostic in result.lexer_errors + result.parser_errors:
        logger.warning("Could not split document: %s", diagnostic)
    return result


def _as_list(node_predicates: Predicates) -> list[NodePredicate]:
    if isinstance(node_predicates, (list, tuple)):
        return list(node_predicates)
    return [node_predicates]


def _matches(document: str, node_predicates: Predicates, services: LanguageServices) -> list[SyntaxNode]:
    if document.strip() == "":
        return []
    result = parse_document(document, services)
    if result.root is None:
        return []
    predicates = _as_list(node_predicates)
    matched = []
    for node in stream_ast(result.root):
        for predicate in predicates:
            if predicate(node):
                matched.append(node)
    return matched


def split_by_node(
    document: str,
    node_predicates: Predicates,
    services: LanguageServices,
    options: SplitterOptions | None = None,
) -> list[str]:
    """Split a document into text chunks, one per (node, matching predicate)."""
    options = options or SplitterOptions()
    chunks = []
    for node in _matches(document, node_predicates, services):
        start = node.range.start
        if options.comment_rule_names:
            comment = find_comment_node(node, options.comment_rule_names)
            if comment is not None:
                start = comment.range.start

        chunk = node.document.get_text(Range(start, node.range.end))
        if chunk.strip():
            chunks.append(chunk)
    return chunks


def split_by_node_to_ast(
    document: str,
    node_predicates: Predicates,
    services: LanguageServices,
) -> list[SyntaxNode]:
    """Like split_by_node, but return the matched nodes themselves."""
    return _matches(document, node_predicates, services)
