# app/services/weights.py

from app.services.types import Weights

# complements + accessibility + demand always share this budget
POSITIVE_BUDGET = 0.65


def from_percentages(
    complements_pct: float,
    accessibility_pct: float,
    demand_pct: float,
    competition_pct: float,
) -> Weights:
    """
    Slider percentages (0~100) -> scoring weights.
    Positive factors are rescaled to sum to 0.65; competition maps directly
    (35 -> 0.35) and is subtracted by the scorer.
    """
    c = max(0.0, complements_pct)
    a = max(0.0, accessibility_pct)
    d = max(0.0, demand_pct)
    pos = c + a + d
    if pos > 1e-9:
        scale = POSITIVE_BUDGET / pos
        c, a, d = c * scale, a * scale, d * scale
    else:
        c = a = d = 0.0
    q = min(100.0, max(0.0, competition_pct)) / 100.0
    return Weights(complements=c, accessibility=a, demand=d, competition=q)
