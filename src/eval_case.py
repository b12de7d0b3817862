"""
Evaluation cases: a prompt, optional history, and the expected response.

Cases are written in code or loaded from a YAML document with a top-level
`eval_cases` list:

    eval_cases:
      - name: Person entity
        prompt: Write an entity Person with a name.
        expected_response: |
          entity Person { name: String }
        tags: [entities]
        only_check_codeblocks: true

Decoding is strict: the first malformed case aborts loading with an
EvalCaseError naming its index and the offending field.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

MESSAGE_ROLES = ("user", "system", "assistant")


class EvalCaseError(ValueError):
    """A case document or a single case in it is malformed."""


@dataclass
class Message:
    """One turn of prompt history."""
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class EvalCase:
    name: str
    prompt: str
    expected_response: str
    history: list[Message] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    only_check_codeblocks: bool = False
    # retrieved context for RAG style runners
    context: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "prompt": self.prompt,
            "expected_response": self.expected_response,
            "history": [m.to_dict() for m in self.history],
            "tags": list(self.tags),
            "only_check_codeblocks": self.only_check_codeblocks,
            "context": list(self.context),
        }

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self.to_dict())


def _decode_message(raw: Any, index: int, position: int) -> Message:
    where = f'eval_cases[{index}]: "history"[{position}]'
    if not isinstance(raw, dict):
        raise EvalCaseError(f"{where} must be an object")
    if raw.get("role") not in MESSAGE_ROLES:
        raise EvalCaseError(f'{where}: "role" must be one of {", ".join(MESSAGE_ROLES)}')
    if not isinstance(raw.get("content"), str):
        raise EvalCaseError(f'{where}: "content" must be a string')
    return Message(role=raw["role"], content=raw["content"])


def _string_list(raw: dict, key: str, index: int) -> list[str]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise EvalCaseError(f'eval_cases[{index}]: "{key}" must be an array')
    if not all(isinstance(v, str) for v in value):
        raise EvalCaseError(f'eval_cases[{index}]: "{key}" must only contain strings')
    return list(value)


def decode_eval_case(raw: Any, index: int) -> EvalCase:
    """Decode one case from a generic mapping.

    Args:
        raw: Candidate case data.
        index: Position of the case, used in error messages.

    Raises:
        EvalCaseError: If a required field is missing or a field has the wrong type.
    """
    if not isinstance(raw, dict):
        raise EvalCaseError(f"eval_cases[{index}]: must be an object")

    for key in ("name", "prompt", "expected_response"):
        if not isinstance(raw.get(key), str):
            raise EvalCaseError(f'eval_cases[{index}]: "{key}" must be a string')

    history = raw.get("history")
    if history is not None and not isinstance(history, list):
        raise EvalCaseError(f'eval_cases[{index}]: "history" must be an array')

    only_check_codeblocks = raw.get("only_check_codeblocks")
    if only_check_codeblocks is not None and not isinstance(only_check_codeblocks, bool):
        raise EvalCaseError(f'eval_cases[{index}]: "only_check_codeblocks" must be a boolean')

    return EvalCase(
        name=raw["name"],
        prompt=raw["prompt"],
        expected_response=raw["expected_response"],
        history=[_decode_message(m, index, i) for i, m in enumerate(history or [])],
        tags=_string_list(raw, "tags", index),
        only_check_codeblocks=bool(only_check_codeblocks),
        context=_string_list(raw, "context", index),
    )


def decode_eval_cases(data: Any) -> list[EvalCase]:
    if not isinstance(data, dict) or not isinstance(data.get("eval_cases"), list):
        raise EvalCaseError('Document must contain an "eval_cases" array at the top level')
    return [decode_eval_case(raw, i) for i, raw in enumerate(data["eval_cases"])]


def load_from_yaml(yaml_str: str) -> list[EvalCase]:
    """Load evaluation cases from a YAML string.

    Raises:
        EvalCaseError: If the YAML is invalid or any case is malformed.
    """
    try:
        return decode_eval_cases(yaml.safe_load(yaml_str))
    except (EvalCaseError, yaml.YAMLError) as e:
        raise EvalCaseError(f"Failed to load eval cases: {e}") from e


def load_cases_file(path: str | Path) -> list[EvalCase]:
    """Load evaluation cases from a YAML file."""
    return load_from_yaml(Path(path).read_text(encoding="utf-8"))
