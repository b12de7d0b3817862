"""Edit distance evaluator: Levenshtein distance between response and expectation."""

from __future__ import annotations

from rapidfuzz.distance import Levenshtein

from evaluator import Evaluator, EvaluatorResult


class EditDistanceEvaluator(Evaluator):
    """Scores edit_distance (absolute) and similarity (normalized, 0-1)."""

    async def evaluate(self, response: str, expected_response: str) -> EvaluatorResult:
        return EvaluatorResult(data={
            "edit_distance": Levenshtein.distance(response, expected_response),
            "similarity": Levenshtein.normalized_similarity(response, expected_response),
        })
