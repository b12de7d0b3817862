"""
Runner backends for the evaluation matrix.

    claude_runner("sonnet", "claude-sonnet-4-20250514")   # Anthropic API
    static_runner("reference", "entity Person { }")        # fixed response

Runners own their own timeouts and retries; the matrix calls each runner
exactly once per case repetition and lets any exception abort the run.
"""

from __future__ import annotations

import os
from typing import Any

from eval_case import Message
from eval_matrix import Runner

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 4096


def split_history(prompt: str, history: list[Message]) -> tuple[str, list[dict]]:
    """Fold system turns into one system prompt; the rest become chat messages."""
    system = "\n\n".join(m.content for m in history if m.role == "system")
    messages = [m.to_dict() for m in history if m.role != "system"]
    messages.append({"role": "user", "content": prompt})
    return system, messages


def claude_runner(
    name: str,
    model: str = DEFAULT_MODEL,
    system_prompt: str | None = None,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    api_key: str | None = None,
) -> Runner:
    """Runner backed by the Anthropic Messages API."""
    key = api_key or os.environ.get("ANTHROPIC_API_KEY")
    if not key:
        raise ValueError(
            "No API key provided. Set ANTHROPIC_API_KEY environment variable "
            "or pass api_key to claude_runner()."
        )
    import anthropic
    client = anthropic.AsyncAnthropic(api_key=key)

    async def run(prompt: str, history: list[Message]) -> str:
        system, messages = split_history(prompt, history)
        if system_prompt:
            system = f"{system_prompt}\n\n{system}" if system else system_prompt
        kwargs: dict[str, Any] = {"model": model, "max_tokens": max_tokens, "messages": messages}
        if system:
            kwargs["system"] = system
        response = await client.messages.create(**kwargs)
        return response.content[0].text

    return Runner(name=name, run=run)


def static_runner(name: str, response: str) -> Runner:
    """Runner that always answers with the same text."""

    async def run(prompt: str, history: list[Message]) -> str:
        return response

    return Runner(name=name, run=run)


def build_runner(spec: dict[str, Any]) -> Runner:
    """Create a runner from a matrix YAML entry ({name, type, ...})."""
    kind = spec.get("type", "claude")
    if kind == "claude":
        return claude_runner(
            spec["name"],
            model=spec.get("model", DEFAULT_MODEL),
            system_prompt=spec.get("system_prompt"),
            max_tokens=int(spec.get("max_tokens", DEFAULT_MAX_TOKENS)),
        )
    if kind == "static":
        return static_runner(spec["name"], spec.get("response", ""))
    raise ValueError(f"Unknown runner type '{kind}' for runner '{spec.get('name')}'")
