"""
Program mapper: a repo-map like outline of a DSL document.

Every node selected by any mapping rule is offered to every rule, in rule
order, so one node can contribute several lines.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from dsl_services import LanguageServices, SyntaxNode
from dsl_splitter import split_by_node_to_ast


@dataclass(frozen=True)
class MappingRule:
    # which nodes to map with this rule
    predicate: Callable[[SyntaxNode], bool]
    # how to render a matched node
    map: Callable[[SyntaxNode], str]


class ProgramMapper:
    """Maps a document to a list of strings, one per (node, matching rule)."""

    def __init__(self, services: LanguageServices, mapping_rules: list[MappingRule]):
        self.services = services
        self.mapping_rules = list(mapping_rules)

    def map(self, document: str) -> list[str]:
        if not self.mapping_rules:
            return []
        rules = self.mapping_rules

        def selected(node: SyntaxNode) -> bool:
            return any(rule.predicate(node) for rule in rules)

        chunks = []
        for node in split_by_node_to_ast(document, selected, self.services):
            for rule in rules:
                if rule.predicate(node):
                    chunks.append(rule.map(node))
        return chunks
