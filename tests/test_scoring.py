import itertools
import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.scoring import (
    FIRM_TYPE_POINTS,
    REGISTRATION_TYPE_POINTS,
    aum_points,
    firm_type_points,
    registration_points,
    score_label,
    score_lead,
)


class TestScoringFactors:
    """Individual factor tables."""

    @pytest.mark.parametrize("aum,points", [
        (None, 0),
        (50, 2),
        (100, 5),
        (499.9, 5),
        (500, 10),
        (1000, 15),
        (4500, 15),
        (5000, 20),
        (10000, 25),
        (250000, 25),
    ])
    def test_aum_tiers(self, aum, points):
        assert aum_points(aum) == points

    def test_firm_type_absent_scores_zero(self):
        assert firm_type_points(None) == 0
        assert firm_type_points("") == 0

    def test_firm_type_unknown_scores_as_other(self):
        assert firm_type_points("crypto_desk") == 3

    def test_firm_type_is_case_insensitive(self):
        assert firm_type_points("Hedge_Fund") == 20

    def test_registration_unknown_scores_as_other(self):
        assert registration_points(None) == 3
        assert registration_points("conference") == 3
        assert registration_points("trial") == 15


class TestScoreLead:
    def test_walleye_breakdown(self):
        breakdown = score_lead(
            is_existing_account=True,
            firm_type="hedge_fund",
            aum=4500,
            registration_type="trial",
            has_territory_match=True,
        )

        assert breakdown.to_dict() == {
            "existing_account": 25,
            "firm_type": 20,
            "aum_tier": 15,
            "registration_type": 15,
            "territory_match": 15,
            "total": 90,
        }

    def test_unknown_newsletter_lead(self):
        breakdown = score_lead(False, None, None, "newsletter", True)
        assert breakdown.total == 20

    def test_unrouted_lead_gets_territory_miss_points(self):
        breakdown = score_lead(False, None, None, "other", False)
        assert breakdown.territory_match == 5
        assert breakdown.total == 8

    def test_maximum_is_clamped(self):
        breakdown = score_lead(True, "pension", 50000, "trial", True)
        assert breakdown.subtotal == 100
        assert breakdown.total == 100

    def test_total_is_bounded_sum_for_every_combination(self):
        firm_types = [None, "unknown"] + list(FIRM_TYPE_POINTS)
        aums = [None, 0, 150, 750, 2000, 7000, 20000]
        registrations = [None] + list(REGISTRATION_TYPE_POINTS)

        for firm_type, aum, registration, matched, existing in itertools.product(
            firm_types, aums, registrations, (True, False), (True, False)
        ):
            breakdown = score_lead(existing, firm_type, aum, registration, matched)
            assert 0 <= breakdown.total <= 100
            assert breakdown.total == min(100, breakdown.subtotal)
            assert breakdown.subtotal == sum(
                v for k, v in breakdown.to_dict().items() if k != "total"
            )


class TestScoreLabel:
    @pytest.mark.parametrize("score,label", [
        (100, "Hot"),
        (75, "Hot"),
        (74, "Warm"),
        (50, "Warm"),
        (49, "Cool"),
        (25, "Cool"),
        (24, "Cold"),
        (0, "Cold"),
    ])
    def test_thresholds(self, score, label):
        assert score_label(score) == label
