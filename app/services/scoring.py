# app/services/scoring.py

from app.services.types import Weights

DEFAULT_WEIGHTS = Weights(complements=0.35, accessibility=0.25, demand=0.25, competition=0.35)


def score(
    complements: float,
    accessibility: float,
    demand: float,
    competition: float,
    weights: Weights,
) -> float:
    """
    Weighted site score. Competition is subtracted, the other three add.
    Inputs are expected to be normalized upstream; no clamping here.
    """
    return (
        weights.complements * complements
        + weights.accessibility * accessibility
        + weights.demand * demand
        - weights.competition * competition
    )


def score_default(
    complements: float, accessibility: float, demand: float, competition: float
) -> float:
    return score(complements, accessibility, demand, competition, DEFAULT_WEIGHTS)
