"""
Evaluator base types, result aggregation and report persistence.

An Evaluator (scorer) turns an (actual, expected) text pair into an
EvaluatorResult holding a metadata map and a data map of named metrics.

Aggregation:
  - average_across_cases: group by result name, average numeric data fields
  - average_across_runners: average_across_cases, then group by runner

Both aggregations seed each group with the first member's data. Numeric
fields of the other members are summed into the seed; non-numeric fields
only survive from the seed record.
"""

from __future__ import annotations

import json
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from paths import LAST_REPORT_POINTER

_FENCE_RE = re.compile(r"```[a-z-]*")


@dataclass
class EvaluatorResult:
    """Outcome of one scorer call. An empty name means "not set by the scorer"."""
    name: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "metadata": self.metadata, "data": self.data}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> EvaluatorResult:
        return cls(
            name=raw.get("name", ""),
            metadata=dict(raw.get("metadata") or {}),
            data=dict(raw.get("data") or {}),
        )


class Evaluator(ABC):
    """Scores an agent response against an expected response."""

    @abstractmethod
    async def evaluate(self, response: str, expected_response: str) -> EvaluatorResult:
        """Return a (possibly unnamed) result for this response."""


class MergedEvaluator(Evaluator):
    """Runs evaluators in sequence and shallow-merges their results."""

    def __init__(self, evaluators: list[Evaluator]):
        self.evaluators = list(evaluators)

    async def evaluate(self, response: str, expected_response: str) -> EvaluatorResult:
        metadata: dict[str, Any] = {}
        data: dict[str, Any] = {}
        for evaluator in self.evaluators:
            result = await evaluator.evaluate(response, expected_response)
            metadata.update(result.metadata)
            data.update(result.data)
        return EvaluatorResult(metadata=metadata, data=data)


def merge_evaluators(*evaluators: Evaluator) -> Evaluator:
    """Combine evaluators left to right; later keys override earlier ones."""
    if not evaluators:
        raise ValueError("merge_evaluators needs at least one evaluator")
    if len(evaluators) == 1:
        return evaluators[0]
    return MergedEvaluator(list(evaluators))


def extract_code_block(text: str) -> str:
    """Content of the first ``` fenced block, or the text itself when unfenced."""
    if "```" not in text:
        return text
    return _FENCE_RE.split(text)[1]


# ============================================================
# Aggregation
# ============================================================

def is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _round2(value: float) -> float:
    if not math.isfinite(value):
        return value
    # half-up, not banker's rounding
    return math.floor(value * 100 + 0.5) / 100


def _average_groups(groups: dict[str, list[EvaluatorResult]], name_key: str | None) -> list[EvaluatorResult]:
    averaged = []
    for grouped in groups.values():
        seed = grouped[0]
        avg_data = dict(seed.data)

        for result in grouped[1:]:
            for key, value in result.data.items():
                if is_numeric(value):
                    base = avg_data.get(key, 0)
                    avg_data[key] = (base if is_numeric(base) else 0) + value

        for key, value in avg_data.items():
            if is_numeric(value):
                avg_data[key] = _round2(value / len(grouped))

        name = seed.metadata.get(name_key) if name_key else seed.name
        averaged.append(EvaluatorResult(name=name, metadata=seed.metadata, data=avg_data))
    return averaged


def average_across_cases(results: list[EvaluatorResult]) -> list[EvaluatorResult]:
    """Average all runs of each runner-case-evaluator combination (grouped by name)."""
    groups: dict[str, list[EvaluatorResult]] = {}
    for result in results:
        groups.setdefault(result.name, []).append(result)
    return _average_groups(groups, None)


def average_across_runners(results: list[EvaluatorResult]) -> list[EvaluatorResult]:
    """Average everything down to a single result per runner."""
    groups: dict[str, list[EvaluatorResult]] = {}
    for result in average_across_cases(results):
        groups.setdefault(result.metadata.get("runner"), []).append(result)
    return _average_groups(groups, "runner")


# ============================================================
# Reports
# ============================================================

@dataclass
class Report:
    """One persisted matrix run."""
    config: dict[str, Any]
    date: str
    run_time: str
    results: list[EvaluatorResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": self.config,
            "date": self.date,
            "runTime": self.run_time,
            "results": [r.to_dict() for r in self.results],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Report:
        return cls(
            config=raw.get("config", {}),
            date=raw.get("date", ""),
            run_time=raw.get("runTime", ""),
            results=[EvaluatorResult.from_dict(r) for r in raw.get("results", [])],
        )


def load_report(path: str | Path) -> Report:
    """Load a single report file."""
    with open(path, encoding="utf-8") as f:
        return Report.from_dict(json.load(f))


def load_last_results(directory: str | Path, take: int | None = None) -> list[EvaluatorResult]:
    """Load results of the last report, or of the `take` most recent reports.

    Raises:
        FileNotFoundError: If the directory or the last-report pointer is missing.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Directory does not exist: {directory}")

    if not take:
        pointer = directory / LAST_REPORT_POINTER
        if not pointer.exists():
            raise FileNotFoundError(
                f"Last file does not exist in directory: {directory}. "
                "Try running an evaluation matrix first."
            )
        files = [pointer.read_text(encoding="utf-8").strip()]
    else:
        # report names start with their timestamp, so name order is time order
        files = sorted((p.name for p in directory.glob("*.json")), reverse=True)[:take]

    results: list[EvaluatorResult] = []
    for name in files:
        results.extend(load_report(directory / name).results)
    return results
