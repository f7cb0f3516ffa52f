import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.brands import brand_label, match_brand


class TestBrandMatcher:
    def test_exact_slug(self):
        assert match_brand("sankey") == "sankey"
        assert match_brand("  LightShed ") == "lightshed"

    @pytest.mark.parametrize("text,slug", [
        ("Solar equities", "glj"),
        ("telecom carriers", "lightshed"),
        ("Agriculture and farmland", "hjones"),
        ("specialty chemicals", "fermium"),
        ("global macro", "fftt"),
        ("utilities coverage", "schneider"),
    ])
    def test_keyword_match(self, text, slug):
        assert match_brand(text) == slug

    def test_overlapping_sectors_use_default_brand(self):
        assert match_brand("consumer staples") == "optimal"
        assert match_brand("energy") == "sankey"

    def test_keywords_are_substrings(self):
        # "ev" hides inside "developed"
        assert match_brand("developed market banks") == "glj"

    def test_no_match(self):
        assert match_brand("biotech") is None
        assert match_brand("") is None
        assert match_brand(None) is None


class TestBrandLabel:
    def test_known_slug(self):
        assert brand_label("glj") == "GLJ (Solar/EV/Steel)"

    def test_raw_text_passes_through(self):
        assert brand_label("biotech") == "biotech"
        assert brand_label(None) == ""
