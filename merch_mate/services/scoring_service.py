from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

TIMELINESS_KEY = 'timeliness'
COMPLETENESS_KEY = 'completeness'
TOTAL_KEY = 'total_performance'


@dataclass(frozen=True)
class ScoringParams:
    full_text_chars: int = 500
    partial_text_chars: int = 200
    partial_text_score: float = 0.5
    image_score: float = 0.5
    quality_weight: float = 0.6
    completeness_weight: float = 0.4


@dataclass(frozen=True)
class ScoringInput:
    answers: dict[str, dict]
    requirements: dict[str, dict[str, bool]]
    submitted_at: datetime
    scheduled_start: datetime
    month_instruction_count: int
    month_completed_count: int


def metric_score(answer: dict, requirement: dict[str, bool], params: ScoringParams = ScoringParams()) -> float:
    """Score one metric answer as a percentage.

    Long text earns the full point, medium text half of it. A required image
    tops up anything short of a full text answer.
    """
    text = str(answer.get('text') or '')
    text_score = 0.0
    if requirement.get('text'):
        if len(text) >= params.full_text_chars:
            text_score = 1.0
        elif len(text) > params.partial_text_chars:
            text_score = params.partial_text_score

    image_score = 0.0
    if requirement.get('image') and answer.get('image') and text_score < 1.0:
        image_score = params.image_score

    return min(text_score + image_score, 1.0) * 100


def timeliness_score(submitted_at: datetime, scheduled_start: datetime) -> float:
    return 100.0 if submitted_at.date() == scheduled_start.date() else 0.0


def completeness_score(completed: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return completed / total * 100


def compute_scores(data: ScoringInput, params: ScoringParams = ScoringParams()) -> dict[str, float]:
    performance: dict[str, float] = {}
    quality_scores: list[float] = []
    for metric, requirement in data.requirements.items():
        score = metric_score(data.answers.get(metric) or {}, requirement, params)
        performance[metric] = score
        quality_scores.append(score)

    timeliness = timeliness_score(data.submitted_at, data.scheduled_start)
    performance[TIMELINESS_KEY] = timeliness
    quality_scores.append(timeliness)

    completeness = completeness_score(data.month_completed_count, data.month_instruction_count)
    performance[COMPLETENESS_KEY] = completeness

    quality = sum(quality_scores) / len(quality_scores)
    performance[TOTAL_KEY] = quality * params.quality_weight + completeness * params.completeness_weight
    return performance


def fold_scores(current: dict[str, float], new_scores: dict[str, float]) -> dict[str, float]:
    """Blend a new set of scores into a day's running record.

    A metric seen before is averaged with its previous value; a new metric is
    taken as-is.
    """
    merged = dict(current)
    for metric, score in new_scores.items():
        merged[metric] = (merged[metric] + score) / 2 if metric in merged else score
    return merged
