"""
DomainModel language: packages of data types and entities with typed features.

Grammar lives in references/grammars/domainmodel.lark. The services returned by
create_domainmodel_services() add linking and naming checks on top of the
parser, so unresolved feature types or super types surface as error
diagnostics.

Usage:
    from domainmodel import create_domainmodel_services

    services = create_domainmodel_services()
    result = services.build("package shop { datatype String entity Item { name: String } }")
    assert not result.has_errors
"""

from __future__ import annotations

from dsl_services import (
    SEVERITY_ERROR,
    SEVERITY_WARNING,
    LanguageServices,
    SyntaxNode,
    stream_ast,
)
from paths import DOMAINMODEL_GRAMMAR_PATH
from program_map import MappingRule

DECLARATION_TYPES = ("data_type", "entity")


def load_grammar_text() -> str:
    return DOMAINMODEL_GRAMMAR_PATH.read_text(encoding="utf-8")


def create_domainmodel_services() -> LanguageServices:
    """Build DomainModel services with linking and naming checks registered."""
    services = LanguageServices(
        load_grammar_text(),
        name="DomainModel",
        file_extension="dmodel",
    )
    services.register_check("start", check_references)
    services.register_check("data_type", check_type_name)
    services.register_check("entity", check_type_name)
    services.register_check("entity", check_feature_names)
    return services


# ============================================================
# Name helpers
# ============================================================

def qualified_name_text(node: SyntaxNode | None) -> str:
    """Join the IDs of a qualified_name node with dots."""
    if node is None:
        return ""
    return ".".join(t.value for t in node.tokens("ID"))


def node_name(node: SyntaxNode) -> str:
    """Declared name of a package, data type, entity or feature."""
    if node.type == "package_declaration":
        return qualified_name_text(node.child("qualified_name"))
    token = node.first_token("ID")
    return token.value if token is not None else ""


def package_path(node: SyntaxNode) -> list[str]:
    """Names of enclosing packages, outermost first."""
    names = []
    parent = node.container
    while parent is not None:
        if parent.type == "package_declaration":
            names.append(node_name(parent))
        parent = parent.container
    return list(reversed(names))


def qualified_name_of(node: SyntaxNode) -> str:
    return ".".join(package_path(node) + [node_name(node)])


def super_type_reference(entity: SyntaxNode) -> SyntaxNode | None:
    if entity.first_token("EXTENDS") is None:
        return None
    return entity.child("qualified_name")


# ============================================================
# Checks
# ============================================================

def check_type_name(node: SyntaxNode, accept) -> None:
    name = node_name(node)
    if name and not name[0].isupper():
        kind = "Entity" if node.type == "entity" else "Data type"
        accept(SEVERITY_WARNING, f"{kind} name '{name}' should start with a capital.", node, code="naming")


def check_feature_names(entity: SyntaxNode, accept) -> None:
    seen: set[str] = set()
    for feature in entity.children_of_type("feature"):
        name = node_name(feature)
        if name in seen:
            accept(SEVERITY_ERROR, f"Duplicate feature '{name}' in entity '{node_name(entity)}'.", feature, code="duplicate-feature")
        seen.add(name)


def check_references(root: SyntaxNode, accept) -> None:
    """Resolve super types and feature types against declared names."""
    declared: dict[str, SyntaxNode] = {}
    for node in stream_ast(root):
        if node.type not in DECLARATION_TYPES:
            continue
        qualified = qualified_name_of(node)
        if qualified in declared:
            accept(SEVERITY_ERROR, f"Duplicate name '{qualified}'.", node, code="duplicate-name")
            continue
        declared[qualified] = node

    for node in stream_ast(root):
        if node.type == "entity":
            reference = super_type_reference(node)
            if reference is not None:
                _check_reference(reference, declared, ("entity",), "Entity", accept)
        elif node.type == "feature":
            _check_reference(node.child("qualified_name"), declared, DECLARATION_TYPES, "Type", accept)


def _check_reference(reference: SyntaxNode | None, declared: dict[str, SyntaxNode], allowed, label: str, accept) -> None:
    if reference is None:
        return
    name = qualified_name_text(reference)
    target = _resolve(name, package_path(reference), declared)
    if target is None or target.type not in allowed:
        accept(
            SEVERITY_ERROR,
            f"Could not resolve reference to {label} named '{name}'.",
            reference,
            code="linking-error",
        )


def _resolve(name: str, packages: list[str], declared: dict[str, SyntaxNode]) -> SyntaxNode | None:
    # innermost package scope first, then outward, then global
    for depth in range(len(packages), 0, -1):
        candidate = ".".join(packages[:depth] + [name])
        if candidate in declared:
            return declared[candidate]
    return declared.get(name)


# ============================================================
# Outline
# ============================================================

def outline_mapping_rules() -> list[MappingRule]:
    """Program map rules: one line per package, data type, entity and feature."""

    def describe_entity(node: SyntaxNode) -> str:
        parent = super_type_reference(node)
        suffix = f" extends {qualified_name_text(parent)}" if parent is not None else ""
        return f"entity {node_name(node)}{suffix}"

    def describe_feature(node: SyntaxNode) -> str:
        many = "many " if node.first_token("MANY") is not None else ""
        return f"  {many}{node_name(node)}: {qualified_name_text(node.child('qualified_name'))}"

    return [
        MappingRule(lambda n: n.type == "package_declaration", lambda n: f"package {node_name(n)}"),
        MappingRule(lambda n: n.type == "data_type", lambda n: f"datatype {node_name(n)}"),
        MappingRule(lambda n: n.type == "entity", describe_entity),
        MappingRule(lambda n: n.type == "feature", describe_feature),
    ]
