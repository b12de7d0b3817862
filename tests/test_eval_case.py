"""Tests for eval_case.py: case decoding and YAML loading."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure src/ is importable
_SCRIPT_DIR = Path(__file__).resolve().parent
_SRC_DIR = _SCRIPT_DIR.parent / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from eval_case import (
    EvalCase,
    EvalCaseError,
    Message,
    decode_eval_case,
    decode_eval_cases,
    load_cases_file,
    load_from_yaml,
)
from paths import DOMAINMODEL_CASES_PATH

VALID = {"name": "n", "prompt": "p", "expected_response": "e"}


class TestDecodeEvalCase:
    def test_minimal_case_defaults(self):
        case = decode_eval_case(dict(VALID), 0)
        assert case == EvalCase(name="n", prompt="p", expected_response="e")
        assert case.history == []
        assert case.tags == []
        assert case.only_check_codeblocks is False

    def test_full_case(self):
        raw = dict(
            VALID,
            history=[{"role": "system", "content": "be brief"}, {"role": "user", "content": "hi"}],
            tags=["a", "b"],
            only_check_codeblocks=True,
            context=["doc"],
        )
        case = decode_eval_case(raw, 0)
        assert case.history == [Message("system", "be brief"), Message("user", "hi")]
        assert case.tags == ["a", "b"]
        assert case.only_check_codeblocks is True
        assert case.context == ["doc"]

    @pytest.mark.parametrize("missing", ["name", "prompt", "expected_response"])
    def test_required_fields(self, missing):
        raw = dict(VALID)
        del raw[missing]
        with pytest.raises(EvalCaseError, match=rf'eval_cases\[3\]: "{missing}" must be a string'):
            decode_eval_case(raw, 3)

    @pytest.mark.parametrize(
        "field, value, message",
        [
            ("history", "nope", '"history" must be an array'),
            ("history", [{"role": "robot", "content": "x"}], '"role" must be one of'),
            ("history", [{"role": "user", "content": 5}], '"content" must be a string'),
            ("history", ["hi"], "must be an object"),
            ("tags", "a", '"tags" must be an array'),
            ("tags", ["a", 1], '"tags" must only contain strings'),
            ("only_check_codeblocks", "yes", '"only_check_codeblocks" must be a boolean'),
        ],
    )
    def test_wrongly_typed_optional_fields(self, field, value, message):
        with pytest.raises(EvalCaseError, match=message):
            decode_eval_case(dict(VALID, **{field: value}), 1)

    def test_not_a_mapping(self):
        with pytest.raises(EvalCaseError, match=r"eval_cases\[0\]: must be an object"):
            decode_eval_case(["n"], 0)


class TestDecodeEvalCases:
    def test_first_malformed_case_aborts(self):
        data = {"eval_cases": [dict(VALID), {"name": "x"}, dict(VALID)]}
        with pytest.raises(EvalCaseError, match=r"eval_cases\[1\]"):
            decode_eval_cases(data)

    def test_requires_top_level_list(self):
        with pytest.raises(EvalCaseError, match="eval_cases"):
            decode_eval_cases({"cases": []})
        with pytest.raises(EvalCaseError):
            decode_eval_cases(None)


class TestLoadFromYaml:
    def test_load(self):
        cases = load_from_yaml(
            "eval_cases:\n"
            "  - name: one\n"
            "    prompt: Write one\n"
            "    expected_response: datatype One\n"
            "    tags: [smoke]\n"
        )
        assert len(cases) == 1
        assert cases[0].tags == ["smoke"]

    def test_errors_are_wrapped(self):
        with pytest.raises(EvalCaseError, match=r"Failed to load eval cases: eval_cases\[0\]"):
            load_from_yaml("eval_cases:\n  - name: one\n")

    def test_invalid_yaml(self):
        with pytest.raises(EvalCaseError, match="Failed to load eval cases"):
            load_from_yaml("eval_cases: [unclosed")

    def test_bundled_cases(self):
        cases = load_cases_file(DOMAINMODEL_CASES_PATH)
        assert [c.name for c in cases] == ["Single entity", "Package with inheritance", "Follow-up with history"]
        assert [m.role for m in cases[2].history] == ["system", "user", "assistant"]


class TestSnapshot:
    def test_snapshot_is_a_deep_copy(self):
        case = EvalCase("n", "p", "e", history=[Message("user", "hi")], tags=["t"])
        snapshot = case.snapshot()
        snapshot["tags"].append("changed")
        snapshot["history"][0]["content"] = "changed"
        assert case.tags == ["t"]
        assert case.history[0].content == "hi"
        assert snapshot["name"] == "n"
