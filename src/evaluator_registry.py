"""Named evaluators selectable from matrix YAML, the REST server and MCP tools."""

from __future__ import annotations

from dsl_analyzer import DocumentAnalyzer
from dsl_services import LanguageServices
from document_evaluator import ValidationEvaluator
from edit_distance import EditDistanceEvaluator
from eval_matrix import NamedEvaluator
from evaluator import Evaluator, merge_evaluators

EVALUATOR_NAMES = ("validation", "analyzer", "edit_distance", "analyzer+edit_distance")


def create_evaluator(name: str, services: LanguageServices) -> Evaluator:
    if name == "validation":
        return ValidationEvaluator(services)
    if name == "analyzer":
        return DocumentAnalyzer(services)
    if name == "edit_distance":
        return EditDistanceEvaluator()
    if name == "analyzer+edit_distance":
        return merge_evaluators(DocumentAnalyzer(services), EditDistanceEvaluator())
    raise ValueError(f"Unknown evaluator '{name}'. Available: {', '.join(EVALUATOR_NAMES)}")


def build_evaluator(name: str, services: LanguageServices) -> NamedEvaluator:
    return NamedEvaluator(name, create_evaluator(name, services))
