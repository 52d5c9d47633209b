from __future__ import annotations

import math
from typing import Any, Iterable, Sequence

from ..config import DEFAULT_SCORING_WEIGHTS
from ..entities import CompatibilityScore, Member, canonical_pair
from ..errors import InvalidConfiguration

COMPONENTS = ("specialty", "interests", "city", "availability")


def validate_weights(weights: dict[str, Any]) -> dict[str, float]:
    if set(weights) != set(COMPONENTS):
        raise InvalidConfiguration(f"Scoring weights must define exactly {', '.join(COMPONENTS)}; got {sorted(weights)}")
    out: dict[str, float] = {}
    for key in COMPONENTS:
        try:
            w = float(weights[key])
        except (TypeError, ValueError) as exc:
            raise InvalidConfiguration(f"Scoring weight {key} is not a number", cause=exc)
        if math.isnan(w) or w < 0.0 or w > 1.0:
            raise InvalidConfiguration(f"Scoring weight {key}={w} must be within [0, 1]")
        out[key] = w
    total = sum(out.values())
    if abs(total - 1.0) > 1e-6:
        raise InvalidConfiguration(f"Scoring weights must sum to 1.0; got {total:.6f}")
    return out


def overlap_ratio(a: Iterable[str], b: Iterable[str]) -> float:
    set_a = set(a or ())
    set_b = set(b or ())
    return len(set_a & set_b) / max(len(set_a), len(set_b), 1)


def _same(a: str | None, b: str | None) -> float:
    if not a or not b:
        return 0.0
    return 1.0 if a == b else 0.0


def component_scores(a: Member, b: Member) -> dict[str, float]:
    return {
        "specialty": _same(a.specialty, b.specialty),
        "interests": overlap_ratio(a.interests, b.interests),
        "city": _same(a.city, b.city),
        "availability": overlap_ratio(a.availability_slots, b.availability_slots),
    }


class CompatibilityScorer:
    def __init__(self, weights: dict[str, Any] | None = None) -> None:
        self.weights = validate_weights(dict(weights if weights is not None else DEFAULT_SCORING_WEIGHTS))

    def score(self, a: Member, b: Member) -> CompatibilityScore:
        first, second = (a, b) if a.id <= b.id else (b, a)
        components = component_scores(first, second)
        weighted = {key: components[key] * self.weights[key] for key in COMPONENTS}
        total = max(0.0, min(1.0, sum(weighted[key] for key in COMPONENTS)))
        return CompatibilityScore(
            member_a=first.id,
            member_b=second.id,
            value=round(total, 6),
            components={k: round(v, 6) for k, v in components.items()},
            weighted={k: round(v, 6) for k, v in weighted.items()},
        )

    def score_matrix(self, pool: Sequence[Member]) -> "ScoreMatrix":
        scores: dict[tuple[str, str], CompatibilityScore] = {}
        for i in range(len(pool)):
            for j in range(i + 1, len(pool)):
                s = self.score(pool[i], pool[j])
                scores[s.pair] = s
        return ScoreMatrix(self, scores)


class ScoreMatrix:
    """Pairwise scores for one cycle's pool, looked up by unordered pair."""

    def __init__(self, scorer: CompatibilityScorer, scores: dict[tuple[str, str], CompatibilityScore]) -> None:
        self._scorer = scorer
        self._scores = scores

    def __len__(self) -> int:
        return len(self._scores)

    def score(self, a: Member, b: Member) -> CompatibilityScore:
        cached = self._scores.get(canonical_pair(a.id, b.id))
        if cached is None:
            cached = self._scorer.score(a, b)
            self._scores[cached.pair] = cached
        return cached

    def values(self) -> list[float]:
        return [s.value for s in self._scores.values()]
