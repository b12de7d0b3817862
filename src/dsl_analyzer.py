"""
Syntax usage statistics: how a document exercises the rules of its grammar.

Walks a parsed tree and tallies rule invocations, then derives:
  - coverage: percentage of candidate rules used at least once
  - entropy: Shannon entropy (base 2) of the usage distribution
  - gini_coefficient: inequality of usage (0 = equal, 1 = maximally unequal)
  - simpson_index: Simpson's diversity index in its 1 - D form

Candidate rules are the grammar's declared rules (plus imported ones when
enabled), minus the whitespace terminal, excluded rules and the entry rule.
Hidden terminals (comments) are candidates and are tallied only when
include_hidden_rules is set.

DocumentAnalyzer attaches the statistics to a validation result whenever the
document built without failures.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from document_evaluator import EvaluationContext, ValidationEvaluator
from dsl_services import (
    WHITESPACE_RULE,
    ImportResolutionError,
    LanguageServices,
    ParseResult,
    SyntaxNode,
    stream_tree,
)
from evaluator import EvaluatorResult

logger = logging.getLogger(__name__)

UNKNOWN_RULE = "unknown"


class AnalysisMode(Enum):
    """Which analysis operations to perform."""
    ALL = "ALL"
    NO_STATISTIC = "NO_STATISTIC"


@dataclass(frozen=True)
class AnalysisOptions:
    analysis_mode: AnalysisMode = AnalysisMode.ALL
    # rules (e.g. deprecated ones) left out of the analysis; WS is always left out
    exclude_rules: frozenset[str] = frozenset()
    include_imported_rules: bool = True
    include_hidden_rules: bool = True
    compute_diversity: bool = True


@dataclass
class Diversity:
    entropy: float = 0.0
    gini_coefficient: float = 0.0
    simpson_index: float = 0.0


@dataclass
class SyntaxStatistic:
    """Rule usage counts and the metrics derived from them."""
    rule_usage: dict[str, int] = field(default_factory=dict)
    coverage: float = 0.0
    diversity: Diversity = field(default_factory=Diversity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_usage": dict(self.rule_usage),
            "coverage": self.coverage,
            "diversity": {
                "entropy": self.diversity.entropy,
                "gini_coefficient": self.diversity.gini_coefficient,
                "simpson_index": self.diversity.simpson_index,
            },
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SyntaxStatistic:
        diversity = raw.get("diversity", {})
        return cls(
            rule_usage=dict(raw.get("rule_usage", {})),
            coverage=raw.get("coverage", 0.0),
            diversity=Diversity(
                entropy=diversity.get("entropy", 0.0),
                gini_coefficient=diversity.get("gini_coefficient", 0.0),
                simpson_index=diversity.get("simpson_index", 0.0),
            ),
        )


# ============================================================
# Metrics
# ============================================================

def compute_coverage(rule_usage: dict[str, int]) -> float:
    """Percentage of used rules over all available rules."""
    used = sum(1 for count in rule_usage.values() if count > 0)
    return used / len(rule_usage) * 100 if used > 0 else 0.0


def compute_entropy(rule_usage: dict[str, int]) -> float:
    """Shannon entropy; higher values mean more diverse usage."""
    total = sum(rule_usage.values())
    if total == 0:
        return 0.0
    entropy = 0.0
    for count in rule_usage.values():
        if count > 0:
            p = count / total
            entropy -= p * math.log2(p)
    return entropy


def compute_gini_coefficient(rule_usage: dict[str, int]) -> float:
    """Gini coefficient; 0 = perfect equality, 1 = maximum inequality."""
    counts = sorted(rule_usage.values())
    n = len(counts)
    if n == 0:
        return 0.0
    total = sum(counts)
    if total == 0:
        return 0.0
    numerator = sum((2 * (i + 1) - n - 1) * c for i, c in enumerate(counts))
    return numerator / (n * total)


def compute_simpson_index(rule_usage: dict[str, int]) -> float:
    """Probability that two randomly drawn rule usages differ."""
    total = sum(rule_usage.values())
    if total == 0:
        return 0.0
    return 1 - sum((count / total) ** 2 for count in rule_usage.values())


# ============================================================
# Collection
# ============================================================

def candidate_rules(services: LanguageServices, include_imported: bool = True) -> list[str]:
    """Declared rules, plus imported ones when requested and resolvable."""
    rules = services.all_rules()
    if include_imported:
        try:
            imported = services.resolve_imported_rules()
        except ImportResolutionError as e:
            logger.error("Error resolving imports: %s", e)
            imported = []
        rules += [r for r in imported if r not in rules]
    return rules


def collect_syntax_usage_statistics(
    root: SyntaxNode | None,
    services: LanguageServices,
    options: AnalysisOptions | None = None,
) -> SyntaxStatistic:
    """Tally rule invocations over a tree and compute coverage and diversity."""
    options = options or AnalysisOptions()
    if root is None:
        return SyntaxStatistic()

    excluded = set(options.exclude_rules) | {WHITESPACE_RULE}

    rule_usage: dict[str, int] = {}
    for rule in candidate_rules(services, options.include_imported_rules):
        if rule in excluded or rule == services.entry_rule:
            continue
        if services.is_hidden_rule(rule) and not options.include_hidden_rules:
            continue
        rule_usage[rule] = 0

    for node in stream_tree(root, include_hidden=options.include_hidden_rules):
        if node is root:
            continue
        if node.hidden:
            name = node.type
        elif node.grammar_source is not None and node.grammar_source.is_rule_call:
            name = node.grammar_source.rule or UNKNOWN_RULE
        else:
            continue
        if name not in excluded:
            rule_usage[name] = rule_usage.get(name, 0) + 1

    diversity = Diversity()
    if options.compute_diversity:
        diversity = Diversity(
            entropy=compute_entropy(rule_usage),
            gini_coefficient=compute_gini_coefficient(rule_usage),
            simpson_index=compute_simpson_index(rule_usage),
        )
    return SyntaxStatistic(
        rule_usage=rule_usage,
        coverage=compute_coverage(rule_usage),
        diversity=diversity,
    )


class DocumentAnalyzer(ValidationEvaluator):
    """Validation evaluator that also reports syntax usage statistics.

    Example:
        analyzer = DocumentAnalyzer(services, AnalysisOptions(
            exclude_rules=frozenset({"MANY"}),
            compute_diversity=False,
        ))
    """

    METADATA_KEY = "syntax_statistics"

    def __init__(self, services: LanguageServices, analysis_options: AnalysisOptions | None = None):
        super().__init__(services)
        self.analysis_options = analysis_options or AnalysisOptions()

    def evaluate_document(self, result: ParseResult, ctx: EvaluationContext) -> EvaluatorResult:
        evaluation = super().evaluate_document(result, ctx)
        if self.analysis_options.analysis_mode != AnalysisMode.NO_STATISTIC and evaluation.data["failures"] == 0:
            statistics = self.collect_syntax_usage_statistics(result.root)
            evaluation.metadata[self.METADATA_KEY] = statistics.to_dict()
        return evaluation

    def collect_syntax_usage_statistics(self, root: SyntaxNode | None) -> SyntaxStatistic:
        return collect_syntax_usage_statistics(root, self.services, self.analysis_options)

    @classmethod
    def extract_statistics_from_result(cls, result: EvaluatorResult | None) -> SyntaxStatistic | None:
        if result is None or not result.metadata.get(cls.METADATA_KEY):
            return None
        return SyntaxStatistic.from_dict(result.metadata[cls.METADATA_KEY])
