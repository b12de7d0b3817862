"""
Document evaluators: score a response by building it as a DSL document.

DocumentEvaluator takes the first fenced code block of a response (if any),
builds it with validation and hands the ParseResult to evaluate_document().
ValidationEvaluator counts diagnostics per severity.

A response the parser cannot turn into a tree, or whose build raises, is
not an exception for the caller: it is reported as failures=1 so that a
batch of malformed generations still yields comparable numbers.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any

from dsl_services import (
    SEVERITY_ERROR,
    SEVERITY_HINT,
    SEVERITY_INFO,
    SEVERITY_WARNING,
    LanguageServices,
    ParseResult,
)
from evaluator import Evaluator, EvaluatorResult, extract_code_block

logger = logging.getLogger(__name__)

_SEVERITY_KEYS = {
    SEVERITY_ERROR: "errors",
    SEVERITY_WARNING: "warnings",
    SEVERITY_INFO: "infos",
    SEVERITY_HINT: "hints",
}


@dataclass
class EvaluationContext:
    """What the evaluator saw: the (code-block extracted) input text."""
    input: str


class DocumentEvaluator(Evaluator):
    """Base class for evaluators working on a built document."""

    def __init__(self, services: LanguageServices):
        self.services = services

    async def evaluate(self, response: str, expected_response: str = "") -> EvaluatorResult:
        text = extract_code_block(response)
        context = EvaluationContext(input=text)
        try:
            result = self.services.build(text, validation=True)
        except Exception as e:
            return self.handle_build_error(e, context)
        return self.evaluate_document(result, context)

    @abstractmethod
    def evaluate_document(self, result: ParseResult, ctx: EvaluationContext) -> EvaluatorResult:
        """Score an already built document."""

    def handle_build_error(self, error: Exception, ctx: EvaluationContext) -> EvaluatorResult:
        logger.exception("Error during evaluation of %d chars: %s", len(ctx.input), error)
        return EvaluatorResult(name=type(self).__name__, data={"failures": 1})


class ValidationEvaluator(DocumentEvaluator):
    """Counts diagnostics of a built document by severity."""

    def evaluate_document(self, result: ParseResult, ctx: EvaluationContext) -> EvaluatorResult:
        return EvaluatorResult(data=validation_data(result, ctx.input))


def validation_data(result: ParseResult, text: str) -> dict[str, Any]:
    data: dict[str, Any] = {
        "failures": 0 if result.root is not None else 1,
        "errors": 0,
        "warnings": 0,
        "infos": 0,
        "hints": 0,
        "unassigned": 0,
        "response_length": len(text),
        "diagnostics": [d.to_dict() for d in result.diagnostics],
    }
    for diagnostic in result.diagnostics:
        data[_SEVERITY_KEYS.get(diagnostic.severity, "unassigned")] += 1
    return data
