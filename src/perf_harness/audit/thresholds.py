"""Threshold evaluation for category scores.

A category listed in the thresholds but missing from the scores is scored 0:
a missing category is a failure, not a skip.
"""

from typing import Any, Mapping, Union

from perf_harness.models.perf_models import ThresholdReport, ThresholdVerdict

ScoreValue = Union[int, float, Mapping[str, Any], None]


def normalize_score(value: ScoreValue) -> float:
    """Convert a score to the 0-100 scale.

    Plain numbers are taken as already on the 0-100 scale. Audit-engine
    category objects (``{"score": 0.87}``) are scaled and rounded.
    """
    if value is None:
        return 0
    if isinstance(value, Mapping):
        raw = value.get("score")
        return round(raw * 100) if raw is not None else 0
    return value


def check_thresholds(
    scores: Mapping[str, ScoreValue], thresholds: Mapping[str, float]
) -> ThresholdReport:
    """Compare scores against thresholds.

    Args:
        scores: Category to score (0-100, or engine category objects)
        thresholds: Category to minimum passing score

    Returns:
        One verdict per threshold key and the overall result
    """
    verdicts = []
    for category, threshold in thresholds.items():
        score = normalize_score(scores.get(category))
        verdicts.append(
            ThresholdVerdict(
                category=category,
                score=score,
                threshold=threshold,
                passed=score >= threshold,
            )
        )

    return ThresholdReport(
        verdicts=verdicts,
        all_passed=all(v.passed for v in verdicts),
    )
