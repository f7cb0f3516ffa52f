"""Deterministic 0-100 lead quality score from five weighted factors."""

from dataclasses import asdict, dataclass
from typing import Optional

EXISTING_ACCOUNT_POINTS = 25

FIRM_TYPE_POINTS = {
    "hedge_fund": 20,
    "pension": 20,
    "asset_manager": 18,
    "endowment": 18,
    "family_office": 15,
    "bank": 12,
    "ria": 10,
    "insurance": 10,
    "corporate": 5,
    "other": 3,
}

# (minimum AUM in millions, points), highest tier first
AUM_TIERS = [
    (10000, 25),
    (5000, 20),
    (1000, 15),
    (500, 10),
    (100, 5),
]
AUM_FLOOR_POINTS = 2

REGISTRATION_TYPE_POINTS = {
    "trial": 15,
    "sample_report": 12,
    "webinar": 10,
    "newsletter": 5,
    "other": 3,
}

TERRITORY_MATCH_POINTS = 15
TERRITORY_MISS_POINTS = 5

MAX_SCORE = 100


@dataclass(frozen=True)
class ScoreBreakdown:
    existing_account: int
    firm_type: int
    aum_tier: int
    registration_type: int
    territory_match: int

    @property
    def subtotal(self) -> int:
        return (self.existing_account + self.firm_type + self.aum_tier
                + self.registration_type + self.territory_match)

    @property
    def total(self) -> int:
        return min(MAX_SCORE, self.subtotal)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total"] = self.total
        return data


def aum_points(aum: Optional[float]) -> int:
    if aum is None:
        return 0
    for minimum, points in AUM_TIERS:
        if aum >= minimum:
            return points
    return AUM_FLOOR_POINTS


def firm_type_points(firm_type: Optional[str]) -> int:
    if not firm_type:
        return 0
    return FIRM_TYPE_POINTS.get(firm_type.strip().lower(), FIRM_TYPE_POINTS["other"])


def registration_points(registration_type: Optional[str]) -> int:
    key = (registration_type or "").strip().lower()
    return REGISTRATION_TYPE_POINTS.get(key, REGISTRATION_TYPE_POINTS["other"])


def score_lead(
    is_existing_account: bool,
    firm_type: Optional[str],
    aum: Optional[float],
    registration_type: Optional[str],
    has_territory_match: bool,
) -> ScoreBreakdown:
    return ScoreBreakdown(
        existing_account=EXISTING_ACCOUNT_POINTS if is_existing_account else 0,
        firm_type=firm_type_points(firm_type),
        aum_tier=aum_points(aum),
        registration_type=registration_points(registration_type),
        territory_match=TERRITORY_MATCH_POINTS if has_territory_match else TERRITORY_MISS_POINTS,
    )


def score_label(score: int) -> str:
    if score >= 75:
        return "Hot"
    if score >= 50:
        return "Warm"
    if score >= 25:
        return "Cool"
    return "Cold"
