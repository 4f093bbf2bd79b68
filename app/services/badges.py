# app/services/badges.py
# -----------------------------------------------------------------------------
# Badge policy
# - cell badges: primary (competition beats complements) + supporting badges
# - factor descriptors: severity/tooltip per factor, also used as rationale
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

PRIMARY_THRESHOLD = 0.7
SUPPORTING_THRESHOLD = 0.6

HIGH_COMPETITION = "high_competition"
STRONG_COMPLEMENTS = "strong_complements"
GOOD_ACCESS = "good_access"
HIGH_DEMAND = "high_demand"

# descriptor levels
HIDE_THRESHOLD = 0.20
MEDIUM_THRESHOLD = 0.50
HIGH_THRESHOLD = 0.70

FACTORS = ("competition", "complements", "accessibility", "demand")


class BadgeSeverity(IntEnum):
    NONE = 0
    INFO = 1
    SUCCESS = 2
    WARNING = 3


@dataclass(frozen=True, slots=True)
class BadgeDescriptor:
    title_key: str
    tooltip_key: str
    severity: BadgeSeverity
    value: float

    @property
    def visible(self) -> bool:
        return self.severity != BadgeSeverity.NONE


def primary_badge(ci: float, coi: float) -> Optional[str]:
    if ci > PRIMARY_THRESHOLD:
        return HIGH_COMPETITION
    if coi > PRIMARY_THRESHOLD:
        return STRONG_COMPLEMENTS
    return None


def supporting_badges(ai: float, di: float) -> list[str]:
    out = []
    if ai > SUPPORTING_THRESHOLD:
        out.append(GOOD_ACCESS)
    if di > SUPPORTING_THRESHOLD:
        out.append(HIGH_DEMAND)
    return out


def describe(factor: str, value: float) -> BadgeDescriptor:
    """Severity/tooltip for one normalized factor index."""
    if factor not in FACTORS:
        raise ValueError(f"unknown factor: {factor}")
    v = min(1.0, max(0.0, value))
    title = f"badge_factor_{factor}"
    if v < HIDE_THRESHOLD:
        return BadgeDescriptor(title, f"badge_tt_{factor}_low", BadgeSeverity.NONE, v)
    if v >= HIGH_THRESHOLD:
        # lots of competition is bad news, lots of anything else is good
        severity = (
            BadgeSeverity.WARNING if factor == "competition" else BadgeSeverity.SUCCESS
        )
        return BadgeDescriptor(title, f"badge_tt_{factor}_high", severity, v)
    if v >= MEDIUM_THRESHOLD:
        return BadgeDescriptor(title, f"badge_tt_{factor}_medium", BadgeSeverity.INFO, v)
    return BadgeDescriptor(title, f"badge_tt_{factor}_low", BadgeSeverity.INFO, v)


def rationale(ci: float, coi: float, ai: float, di: float) -> list[str]:
    tokens = []
    for factor, value in zip(FACTORS, (ci, coi, ai, di)):
        d = describe(factor, value)
        if d.visible:
            tokens.append(d.tooltip_key)
    return tokens
