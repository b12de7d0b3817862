"""
DSL language services: grammar text → parser, syntax tree, diagnostics.

Uses Lark (LALR, positions propagated, all tokens kept) to turn source text
into a tree of SyntaxNode objects that carry a type tag, a 0-indexed
line/character range and a back-reference to the grammar rule that produced
them. Hidden comment tokens are captured through lexer callbacks and placed
into the tree as hidden leaves so that comment attachment can be resolved
positionally.

Lexer and parser errors never raise out of parse(): they are reported as
error diagnostics and the resulting tree is None.

Usage:
    from dsl_services import LanguageServices, stream_ast

    services = LanguageServices(grammar_text, name="DomainModel")
    result = services.build("package foo { datatype String }")
    for node in stream_ast(result.root):
        print(node.type, node.range)
"""

from __future__ import annotations

import bisect
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedCharacters, UnexpectedInput, UnexpectedToken

SEVERITY_ERROR = 1
SEVERITY_WARNING = 2
SEVERITY_INFO = 3
SEVERITY_HINT = 4

# Reserved name of the whitespace terminal
WHITESPACE_RULE = "WS"

DEFAULT_COMMENT_RULES = ("ML_COMMENT", "SL_COMMENT")


class ImportResolutionError(Exception):
    """An imported grammar rule could not be found in the compiled grammar."""


# ============================================================
# Positions and text
# ============================================================

@dataclass(frozen=True)
class Position:
    """A 0-indexed (line, character) location."""
    line: int
    character: int

    def to_dict(self) -> dict[str, int]:
        return {"line": self.line, "character": self.character}


@dataclass(frozen=True)
class Range:
    """An end-exclusive span between two positions."""
    start: Position
    end: Position

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}


_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


class TextDocument:
    """Line/character addressable view over a source text."""

    def __init__(self, text: str, uri: str = "memory://document"):
        self.text = text
        self.uri = uri
        self._line_offsets = [0] + [m.end() for m in _LINE_BREAK_RE.finditer(text)]

    @property
    def line_count(self) -> int:
        return len(self._line_offsets)

    def offset_at(self, position: Position) -> int:
        if position.line >= len(self._line_offsets):
            return len(self.text)
        if position.line < 0:
            return 0
        line_offset = self._line_offsets[position.line]
        if position.line + 1 < len(self._line_offsets):
            next_line_offset = self._line_offsets[position.line + 1]
        else:
            next_line_offset = len(self.text)
        return max(min(line_offset + position.character, next_line_offset), line_offset)

    def position_at(self, offset: int) -> Position:
        offset = max(min(offset, len(self.text)), 0)
        line = bisect.bisect_right(self._line_offsets, offset) - 1
        return Position(line, offset - self._line_offsets[line])

    def get_text(self, range: Range | None = None) -> str:
        if range is None:
            return self.text
        return self.text[self.offset_at(range.start):self.offset_at(range.end)]


@dataclass
class Diagnostic:
    """A single lexer, parser or validation finding."""
    severity: int
    message: str
    range: Range
    source: str = "validator"
    code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity,
            "message": self.message,
            "source": self.source,
            "code": self.code,
            "range": self.range.to_dict(),
        }

    def __str__(self) -> str:
        start = self.range.start
        return f"[{self.severity}] {self.source}: {self.message} (line {start.line + 1}, col {start.character + 1})"


# ============================================================
# Syntax tree
# ============================================================

@dataclass(frozen=True)
class GrammarSource:
    """Link from a syntax node back to the grammar element that produced it.

    kind is "rule_call" for rule and named terminal invocations, "keyword"
    for literal tokens. rule is None when a rule call cannot be resolved to a
    declared or imported rule (aliases, anonymous patterns).
    """
    kind: str
    rule: str | None = None

    @property
    def is_rule_call(self) -> bool:
        return self.kind == "rule_call"


@dataclass(eq=False)
class SyntaxNode:
    """A node of the parsed document: structural (rule) node or token leaf."""
    type: str
    offset: int
    end_offset: int
    document: TextDocument = field(repr=False)
    grammar_source: GrammarSource | None = None
    leaf: bool = False
    hidden: bool = False
    value: str | None = None
    children: list[SyntaxNode] = field(default_factory=list, repr=False)
    container: SyntaxNode | None = field(default=None, repr=False)

    @property
    def range(self) -> Range:
        return Range(
            self.document.position_at(self.offset),
            self.document.position_at(self.end_offset),
        )

    @property
    def text(self) -> str:
        return self.document.text[self.offset:self.end_offset]

    def tokens(self, type: str | None = None) -> list[SyntaxNode]:
        """Direct leaf children, optionally of a single token type."""
        return [c for c in self.children if c.leaf and not c.hidden and (type is None or c.type == type)]

    def first_token(self, type: str | None = None) -> SyntaxNode | None:
        found = self.tokens(type)
        return found[0] if found else None

    def child(self, type: str) -> SyntaxNode | None:
        for c in self.children:
            if not c.leaf and c.type == type:
                return c
        return None

    def children_of_type(self, type: str) -> list[SyntaxNode]:
        return [c for c in self.children if not c.leaf and c.type == type]


def stream_tree(root: SyntaxNode | None, include_hidden: bool = True) -> Iterator[SyntaxNode]:
    """Yield every node of the tree in pre-order (document order)."""
    if root is None:
        return
    stack = [root]
    while stack:
        node = stack.pop()
        if node.hidden and not include_hidden:
            continue
        yield node
        stack.extend(reversed(node.children))


def stream_ast(root: SyntaxNode | None) -> Iterator[SyntaxNode]:
    """Yield structural (non-leaf) nodes in pre-order."""
    for node in stream_tree(root, include_hidden=False):
        if not node.leaf:
            yield node


def previous_node(node: SyntaxNode, hidden: bool = True) -> SyntaxNode | None:
    """The node immediately before this one, climbing to ancestors at a first child."""
    while node.container is not None:
        parent = node.container
        index = _index_of(parent.children, node)
        while index > 0:
            index -= 1
            candidate = parent.children[index]
            if hidden or not candidate.hidden:
                return candidate
        node = parent
    return None


def find_comment_node(node: SyntaxNode | None, comment_names: list[str] | tuple[str, ...]) -> SyntaxNode | None:
    """Return the comment attached to (directly preceding) a node, if any."""
    if node is None or not comment_names:
        return None
    previous = previous_node(node)
    if previous is not None and _is_comment(previous, comment_names):
        return previous
    if node.container is None:
        # root: nearest comment before the first non-hidden child
        end_index = next((i for i, c in enumerate(node.children) if not c.hidden), len(node.children))
        for child in reversed(node.children[:end_index]):
            if _is_comment(child, comment_names):
                return child
    return None


def _is_comment(node: SyntaxNode, comment_names) -> bool:
    return node.leaf and node.hidden and node.type in comment_names


def _index_of(items: list[SyntaxNode], node: SyntaxNode) -> int:
    for i, item in enumerate(items):
        if item is node:
            return i
    raise ValueError(f"{node.type} is not a child of its container")


# ============================================================
# Grammar introspection
# ============================================================

_DEF_RE = re.compile(r"^[ \t]*[?!]?([A-Za-z_][A-Za-z_0-9]*)(?:\{[^}]*\})?(?:\.-?\d+)?[ \t]*:", re.MULTILINE)
_IMPORT_RE = re.compile(r"^[ \t]*%import\s+([\w.]+)(?:\s*->\s*(\w+))?\s*$", re.MULTILINE)
_IMPORT_GROUP_RE = re.compile(r"^[ \t]*%import\s+[\w.]+\s*\(([^)]*)\)", re.MULTILINE)
_IGNORE_RE = re.compile(r"^[ \t]*%ignore\s+([A-Z_][A-Z_0-9]*)\s*$", re.MULTILINE)
_GRAMMAR_COMMENT_RE = re.compile(r"^[ \t]*//.*$", re.MULTILINE)


@dataclass
class GrammarInfo:
    """Rule-level view of a Lark grammar source."""
    name: str
    entry_rule: str
    rules: list[str] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)
    hidden: list[str] = field(default_factory=list)

    @property
    def terminals(self) -> list[str]:
        return [r for r in self.rules if r.isupper()]


def load_grammar_info(grammar_text: str, name: str = "grammar", start: str = "start") -> GrammarInfo:
    """Scan a Lark grammar for declared rules, imports and ignored terminals."""
    source = _GRAMMAR_COMMENT_RE.sub("", grammar_text)
    rules: list[str] = []
    for m in _DEF_RE.finditer(source):
        rule = m.group(1)
        if rule not in rules:
            rules.append(rule)

    imports: list[str] = []
    for m in _IMPORT_RE.finditer(source):
        imported = m.group(2) or m.group(1).rsplit(".", 1)[-1]
        if imported not in imports:
            imports.append(imported)
    for m in _IMPORT_GROUP_RE.finditer(source):
        for imported in m.group(1).split(","):
            imported = imported.strip()
            if imported and imported not in imports:
                imports.append(imported)

    hidden = [m.group(1) for m in _IGNORE_RE.finditer(source)]
    return GrammarInfo(name=name, entry_rule=start, rules=rules, imports=imports, hidden=hidden)


# ============================================================
# Parse results and services
# ============================================================

@dataclass
class ParseResult:
    """Outcome of parsing (and optionally validating) one document."""
    document: TextDocument
    root: SyntaxNode | None
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def lexer_errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.source == "lexer"]

    @property
    def parser_errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.source == "parser"]

    @property
    def has_errors(self) -> bool:
        return any(d.severity == SEVERITY_ERROR for d in self.diagnostics)


Accept = Callable[..., None]
ValidationCheck = Callable[[SyntaxNode, Accept], None]


class LanguageServices:
    """Parser, grammar metadata and validation registry for one language."""

    def __init__(
        self,
        grammar_text: str,
        name: str = "grammar",
        start: str = "start",
        file_extension: str = "",
    ):
        self.name = name
        self.file_extension = file_extension
        self.grammar = load_grammar_info(grammar_text, name=name, start=start)
        self._checks: dict[str, list[ValidationCheck]] = {}
        self._local = threading.local()
        self._lark = Lark(
            grammar_text,
            parser="lalr",
            start=start,
            propagate_positions=True,
            keep_all_tokens=True,
            maybe_placeholders=False,
            lexer_callbacks={h: self._collect_hidden for h in self.grammar.hidden},
        )
        known = set(self.grammar.rules) | set(self.grammar.imports)
        self._known_rules = known
        self._literal_terminals = {
            t.name for t in self._lark.terminals
            if t.pattern.type == "str" and t.name not in known
        }

    # --- Grammar metadata ---

    @property
    def entry_rule(self) -> str:
        return self.grammar.entry_rule

    @property
    def hidden_rules(self) -> set[str]:
        return set(self.grammar.hidden)

    def is_hidden_rule(self, name: str) -> bool:
        return name in self.hidden_rules

    def all_rules(self) -> list[str]:
        """Rules and terminals declared directly in the grammar."""
        return list(self.grammar.rules)

    def resolve_imported_rules(self) -> list[str]:
        """Names imported from other grammars, checked against the compiled grammar."""
        compiled = {t.name for t in self._lark.terminals}
        compiled |= {str(r.origin.name) for r in self._lark.rules}
        missing = [name for name in self.grammar.imports if name not in compiled]
        if missing:
            raise ImportResolutionError(
                f"Imported rules not found in compiled grammar '{self.name}': {missing}"
            )
        return list(self.grammar.imports)

    # --- Validation registry ---

    def register_check(self, node_type: str, check: ValidationCheck) -> None:
        self._checks.setdefault(node_type, []).append(check)

    # --- Parsing ---

    def parse(self, text: str, uri: str | None = None) -> ParseResult:
        """Parse text into a syntax tree; syntax errors become diagnostics."""
        document = TextDocument(text, uri or f"memory://document.{self.file_extension or 'txt'}")
        self._local.hidden = []
        try:
            tree = self._lark.parse(text)
        except UnexpectedInput as exc:
            return ParseResult(document, None, [_syntax_diagnostic(exc, document)])
        finally:
            hidden = self._local.hidden
            self._local.hidden = []

        root = self._convert(tree, document, None, 0)
        root.offset, root.end_offset = 0, len(text)
        for token in hidden:
            _insert_hidden(root, self._hidden_leaf(token, document))
        return ParseResult(document, root, [])

    def build(self, text: str, validation: bool = True, uri: str | None = None) -> ParseResult:
        """Parse text and run registered validation checks over the tree."""
        result = self.parse(text, uri=uri)
        if not validation or result.root is None:
            return result

        def accept(severity: int, message: str, node: SyntaxNode, code: str | None = None) -> None:
            result.diagnostics.append(Diagnostic(severity, message, node.range, "validator", code))

        for node in stream_tree(result.root, include_hidden=False):
            for check in self._checks.get(node.type, []):
                check(node, accept)
        return result

    # --- Tree construction ---

    def _collect_hidden(self, token: Token) -> Token:
        if token.strip():
            self._local.hidden.append(token)
        return token

    def _rule_source(self, name: str) -> GrammarSource:
        return GrammarSource("rule_call", name if name in self._known_rules else None)

    def _token_source(self, name: str) -> GrammarSource:
        if name in self._literal_terminals:
            return GrammarSource("keyword")
        return self._rule_source(name)

    def _convert(self, item: Tree | Token, document: TextDocument, parent: SyntaxNode | None, fallback: int) -> SyntaxNode:
        if isinstance(item, Token):
            return SyntaxNode(
                type=item.type,
                offset=item.start_pos,
                end_offset=item.end_pos,
                document=document,
                grammar_source=self._token_source(item.type),
                leaf=True,
                value=str(item),
                container=parent,
            )

        rule = str(item.data)
        meta = item.meta
        if getattr(meta, "empty", True):
            offset = end_offset = fallback
        else:
            offset, end_offset = meta.start_pos, meta.end_pos
        node = SyntaxNode(
            type=rule,
            offset=offset,
            end_offset=end_offset,
            document=document,
            grammar_source=self._rule_source(rule),
            container=parent,
        )
        position = offset
        for child in item.children:
            converted = self._convert(child, document, node, position)
            node.children.append(converted)
            position = converted.end_offset
        return node

    def _hidden_leaf(self, token: Token, document: TextDocument) -> SyntaxNode:
        return SyntaxNode(
            type=token.type,
            offset=token.start_pos,
            end_offset=token.end_pos,
            document=document,
            leaf=True,
            hidden=True,
            value=str(token),
        )


def _insert_hidden(root: SyntaxNode, leaf: SyntaxNode) -> None:
    """Place a hidden leaf under the deepest structural node spanning it."""
    node = root
    while True:
        inner = next(
            (c for c in node.children
             if not c.leaf and c.offset <= leaf.offset and leaf.end_offset <= c.end_offset and c.offset < c.end_offset),
            None,
        )
        if inner is None:
            break
        node = inner
    index = bisect.bisect_right([c.offset for c in node.children], leaf.offset)
    leaf.container = node
    node.children.insert(index, leaf)


def _syntax_diagnostic(exc: UnexpectedInput, document: TextDocument) -> Diagnostic:
    offset = getattr(exc, "pos_in_stream", None)
    if offset is None or (isinstance(exc, UnexpectedToken) and exc.token.type == "$END"):
        offset = len(document.text)
    start = document.position_at(offset)
    end = document.position_at(offset + 1)

    if isinstance(exc, UnexpectedCharacters):
        char = document.text[offset:offset + 1]
        return Diagnostic(SEVERITY_ERROR, f"Unexpected character '{char}'", Range(start, end), "lexer", "lexing-error")

    if isinstance(exc, UnexpectedToken):
        found = "end of input" if exc.token.type == "$END" else f"'{exc.token}'"
        expected = ", ".join(sorted(exc.expected)) if exc.expected else "nothing"
        message = f"Expecting one of [{expected}] but found {found}"
    else:
        message = str(exc).strip().splitlines()[0]
    return Diagnostic(SEVERITY_ERROR, message, Range(start, end), "parser", "parsing-error")
