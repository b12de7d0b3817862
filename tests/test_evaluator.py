"""Tests for evaluator.py: merging, code block extraction, aggregation and report loading."""

from __future__ import annotations

import asyncio
import json
import math
import sys
from pathlib import Path

import pytest

# Ensure src/ is importable
_SCRIPT_DIR = Path(__file__).resolve().parent
_SRC_DIR = _SCRIPT_DIR.parent / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from evaluator import (
    Evaluator,
    EvaluatorResult,
    MergedEvaluator,
    Report,
    average_across_cases,
    average_across_runners,
    extract_code_block,
    is_numeric,
    load_last_results,
    load_report,
    merge_evaluators,
)


class FixedEvaluator(Evaluator):
    def __init__(self, data, metadata=None):
        self.data = data
        self.metadata = metadata or {}
        self.calls = []

    async def evaluate(self, response, expected_response):
        self.calls.append((response, expected_response))
        return EvaluatorResult(metadata=dict(self.metadata), data=dict(self.data))


def _result(name, runner, **data):
    return EvaluatorResult(name=name, metadata={"runner": runner}, data=data)


class TestMergeEvaluators:
    def test_later_keys_win(self):
        a = FixedEvaluator({"only_a": 1, "shared": "a"}, {"from": "a", "a_meta": True})
        b = FixedEvaluator({"only_b": 2, "shared": "b"}, {"from": "b"})
        result = asyncio.run(merge_evaluators(a, b).evaluate("actual", "expected"))
        assert result.data == {"only_a": 1, "only_b": 2, "shared": "b"}
        assert result.metadata == {"from": "b", "a_meta": True}
        assert a.calls == b.calls == [("actual", "expected")]

    def test_single_evaluator_is_returned_as_is(self):
        a = FixedEvaluator({})
        assert merge_evaluators(a) is a

    def test_needs_an_evaluator(self):
        with pytest.raises(ValueError):
            merge_evaluators()

    def test_nested_merge(self):
        merged = merge_evaluators(
            merge_evaluators(FixedEvaluator({"x": 1}), FixedEvaluator({"y": 2})),
            FixedEvaluator({"x": 3}),
        )
        assert isinstance(merged, MergedEvaluator)
        assert asyncio.run(merged.evaluate("", "")).data == {"x": 3, "y": 2}


class TestExtractCodeBlock:
    def test_fenced_with_language(self):
        text = "Here you go:\n```dmodel\ndatatype A\n```\nAnything else?"
        assert extract_code_block(text) == "\ndatatype A\n"

    def test_first_block_wins(self):
        assert extract_code_block("```\none\n```\n```\ntwo\n```") == "\none\n"

    def test_unfenced_text_is_unchanged(self):
        assert extract_code_block("datatype A") == "datatype A"


class TestAverageAcrossCases:
    def test_groups_by_name(self):
        results = [
            _result("r - c1 - e", "r", score=1, label="first"),
            _result("r - c2 - e", "r", score=10),
            _result("r - c1 - e", "r", score=2, label="second", note="dropped"),
        ]
        averaged = average_across_cases(results)
        assert [r.name for r in averaged] == ["r - c1 - e", "r - c2 - e"]
        assert averaged[0].data == {"score": 1.5, "label": "first"}
        assert averaged[1].data == {"score": 10}

    def test_numeric_fields_missing_from_seed_are_summed_from_zero(self):
        results = [_result("n", "r", a=2), _result("n", "r", a=4, b=3)]
        assert average_across_cases(results)[0].data == {"a": 3.0, "b": 1.5}

    def test_rounds_half_up_to_two_decimals(self):
        results = [_result("n", "r", x=0.125), _result("m", "r", y=1 / 3)]
        averaged = average_across_cases(results)
        assert averaged[0].data["x"] == 0.13
        assert averaged[1].data["y"] == 0.33

    def test_booleans_are_not_averaged(self):
        results = [_result("n", "r", ok=True), _result("n", "r", ok=False)]
        assert average_across_cases(results)[0].data == {"ok": True}

    def test_seed_is_not_mutated(self):
        seed = _result("n", "r", score=1)
        average_across_cases([seed, _result("n", "r", score=3)])
        assert seed.data == {"score": 1}

    def test_single_result_and_idempotence(self):
        single = [_result("n", "r", score=0.5, count=3)]
        once = average_across_cases(single)
        assert once[0].data == {"score": 0.5, "count": 3}
        assert average_across_cases(once)[0].data == once[0].data

    def test_non_finite_values_pass_through(self):
        averaged = average_across_cases([_result("n", "r", x=float("inf")), _result("m", "r", y=float("-inf"))])
        assert averaged[0].data["x"] == float("inf")
        assert averaged[1].data["y"] == float("-inf")

    def test_empty(self):
        assert average_across_cases([]) == []
        assert average_across_runners([]) == []


class TestAverageAcrossRunners:
    def test_one_result_per_runner(self):
        results = [
            _result("a - c1 - e", "a", score=1),
            _result("a - c1 - e", "a", score=3),
            _result("a - c2 - e", "a", score=4),
            _result("b - c1 - e", "b", score=0),
        ]
        averaged = average_across_runners(results)
        assert [r.name for r in averaged] == ["a", "b"]
        # case averages are 2 and 4
        assert averaged[0].data == {"score": 3.0}
        assert averaged[1].data == {"score": 0.0}

    def test_nan_metric_does_not_break_averaging(self):
        results = [_result("a - c1 - e", "a", sim=float("nan"), score=1), _result("a - c2 - e", "a", sim=0.5, score=2)]
        averaged = average_across_runners(results)
        assert math.isnan(averaged[0].data["sim"])
        assert averaged[0].data["score"] == 1.5


class TestIsNumeric:
    def test_is_numeric(self):
        assert is_numeric(1)
        assert is_numeric(0.5)
        assert not is_numeric(True)
        assert not is_numeric("1")
        assert not is_numeric(None)


class TestReports:
    def _write(self, folder: Path, file_name: str, results) -> None:
        report = Report(config={"name": file_name}, date="2024-01-01T00:00:00.000Z", run_time="1.5s", results=results)
        (folder / file_name).write_text(json.dumps(report.to_dict()), encoding="utf-8")

    def test_report_dict_shape(self):
        report = Report(config={"name": "x"}, date="d", run_time="0.1s", results=[_result("n", "r", a=1)])
        raw = report.to_dict()
        assert set(raw) == {"config", "date", "runTime", "results"}
        assert raw["results"][0] == {"name": "n", "metadata": {"runner": "r"}, "data": {"a": 1}}
        assert Report.from_dict(raw) == report

    def test_load_last_results_reads_pointer(self, tmp_path: Path):
        self._write(tmp_path, "2024-01-01-old.json", [_result("old", "r")])
        self._write(tmp_path, "2024-01-02-new.json", [_result("new", "r"), _result("new2", "r")])
        (tmp_path / "last.txt").write_text("2024-01-01-old.json", encoding="utf-8")
        assert [r.name for r in load_last_results(tmp_path)] == ["old"]

    def test_load_last_results_take(self, tmp_path: Path):
        self._write(tmp_path, "2024-01-01-a.json", [_result("a", "r")])
        self._write(tmp_path, "2024-01-02-b.json", [_result("b", "r")])
        self._write(tmp_path, "2024-01-03-c.json", [_result("c", "r")])
        assert [r.name for r in load_last_results(tmp_path, take=2)] == ["c", "b"]

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError, match="Directory does not exist"):
            load_last_results(tmp_path / "nope")

    def test_missing_pointer(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError, match="Last file does not exist"):
            load_last_results(tmp_path)

    def test_load_report(self, tmp_path: Path):
        self._write(tmp_path, "one.json", [_result("x", "r", v=2)])
        report = load_report(tmp_path / "one.json")
        assert report.run_time == "1.5s"
        assert report.results[0].data == {"v": 2}
