"""
Embedding evaluator: cosine similarity of response and expected embeddings.

The embedding backend is injected as an async callable so any provider can
be used (a local model, a hosted API, a cache in front of either).
"""

from __future__ import annotations

from typing import Awaitable, Callable, Sequence

import numpy as np

from evaluator import Evaluator, EvaluatorResult

Embed = Callable[[str], Awaitable[Sequence[float]]]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0 when either vector has zero magnitude."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class EmbeddingEvaluator(Evaluator):
    def __init__(self, embed: Embed):
        self.embed = embed

    async def evaluate(self, response: str, expected_response: str) -> EvaluatorResult:
        response_embedding = await self.embed(response)
        expected_embedding = await self.embed(expected_response)
        return EvaluatorResult(data={
            "similarity": cosine_similarity(response_embedding, expected_embedding),
        })
