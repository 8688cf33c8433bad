"""
Revenue opportunity, threat impact and formatting helpers.

Pure functions, no database.
"""
import math
from datetime import datetime, timedelta, timezone

import pytest

from ghost_cro.services.revenue_opportunity import (
    calculate_revenue_opportunity,
    format_opportunity_range,
    get_methodology_text,
)
from ghost_cro.services.threat_impact import (
    calculate_threat_impact,
    format_recovery_range,
    get_confidence_badge,
    get_estimated_cr_lift,
)
from ghost_cro.utils.helpers import (
    format_currency,
    format_number,
    format_percent,
    format_relative_time,
    normalize_shop_domain,
    round_half_up,
)


class TestRevenueOpportunity:
    """Gap between current and benchmark conversion, priced as a range."""

    def test_reference_scenario(self):
        result = calculate_revenue_opportunity(50000, 0.02, 85, 0.03)

        assert result.current_monthly_revenue == pytest.approx(85000)
        assert result.potential_monthly_revenue == pytest.approx(127500)
        assert result.monthly_opportunity.min == 21250
        assert result.monthly_opportunity.max == 34000
        assert result.annual_opportunity.min == 255000
        assert result.annual_opportunity.max == 408000
        assert result.opportunity_percentage == 40.0
        assert result.benchmark_gap == 1.0

    def test_defaults_for_missing_inputs(self):
        result = calculate_revenue_opportunity(None, None, None, None)

        # 50k visitors, 2.5% CR, $85 AOV, 2.8% benchmark
        assert result.current_monthly_revenue == pytest.approx(106250)
        assert result.potential_monthly_revenue == pytest.approx(119000)

    @pytest.mark.parametrize("args", [
        (math.nan, 0.025, 85, 0.028),
        (50000, math.nan, 85, 0.028),
        (50000, 0.025, math.nan, 0.028),
        (50000, 0.025, 85, math.nan),
    ])
    def test_nan_input_uses_default(self, args):
        result = calculate_revenue_opportunity(*args)

        assert result.current_monthly_revenue == pytest.approx(106250)
        assert result.potential_monthly_revenue == pytest.approx(119000)
        assert not math.isnan(result.monthly_opportunity.min)
        assert not math.isnan(result.annual_opportunity.max)

    @pytest.mark.parametrize("args", [
        (0, 0.025, 85, 0.028),
        (50000, 0, 85, 0.028),
        (50000, 0.025, 0, 0.028),
        (50000, 0.025, 85, 0),
    ])
    def test_zero_input_uses_default(self, args):
        assert calculate_revenue_opportunity(*args).potential_monthly_revenue == pytest.approx(119000)

    @pytest.mark.parametrize("visitors,cr,aov,benchmark", [
        (1000, 0.01, 40, 0.02),
        (50000, 0.025, 85, 0.028),
        (250000, 0.018, 124, 0.038),
        (10, 0.03, 5, 0.03),
    ])
    def test_range_ordering(self, visitors, cr, aov, benchmark):
        result = calculate_revenue_opportunity(visitors, cr, aov, benchmark)

        assert result.monthly_opportunity.max >= result.monthly_opportunity.min >= 0
        assert result.annual_opportunity.max >= result.annual_opportunity.min
        assert result.potential_monthly_revenue >= result.current_monthly_revenue

    def test_to_dict_is_camel_case(self):
        data = calculate_revenue_opportunity(50000, 0.02, 85, 0.03).to_dict()

        assert data["monthlyOpportunity"] == {"min": 21250, "max": 34000}
        assert "opportunityPercentage" in data
        assert "benchmarkGap" in data

    def test_format_range_rounds_by_magnitude(self):
        assert format_opportunity_range(21250, 34000) == "$21,000 - $34,000"
        assert format_opportunity_range(1234, 5678) == "$1,200 - $5,700"
        assert format_opportunity_range(254999, 1408000) == "$250,000 - $1,400,000"

    def test_methodology_text(self):
        text = get_methodology_text(1.0, 0.02, 0.03)
        assert "1.0%" in text
        assert "from 2.0% to 3.0%" in text


class TestThreatImpact:

    def test_recovery_scales_with_lift(self):
        impact = calculate_threat_impact(5, 4, "high", {"min": 0.005, "max": 0.008}, 50000, 85)

        assert impact["estimatedRecoveryMin"] == 21250
        assert impact["estimatedRecoveryMax"] == 34000
        assert impact["buyerAttributionRate"] == 0.8
        assert impact["confidenceLevel"] == "high"
        assert impact["methodology"].startswith("80% of simulated buyers")

    @pytest.mark.parametrize("citing,severity,expected", [
        (4, "medium", "high"),
        (3, "medium", "medium"),
        (3, "critical", "high"),
        (1, "critical", "low"),
        (0, "low", "low"),
    ])
    def test_confidence_levels(self, citing, severity, expected):
        impact = calculate_threat_impact(5, citing, severity, {"min": 0.001, "max": 0.002}, 1000, 50)
        assert impact["confidenceLevel"] == expected

    def test_no_simulated_buyers(self):
        impact = calculate_threat_impact(0, 0, "critical", {"min": 0.001, "max": 0.002}, 1000, 50)
        assert impact["buyerAttributionRate"] == 0
        assert impact["confidenceLevel"] == "low"

    def test_lift_multipliers_by_threat_type(self):
        assert get_estimated_cr_lift("high") == {"min": 0.003, "max": 0.005}
        assert get_estimated_cr_lift("high", "Surprise shipping fees")["max"] == pytest.approx(0.006)
        assert get_estimated_cr_lift("high", "Payment options")["min"] == pytest.approx(0.0039)
        assert get_estimated_cr_lift("high", "Missing trust badges")["min"] == pytest.approx(0.0027)

    def test_recovery_range_collapses_when_narrow(self):
        assert format_recovery_range(10000, 10400) == "$10,000"
        assert format_recovery_range(21250, 34000) == "$21,000 - $34,000"

    def test_confidence_badge(self):
        assert get_confidence_badge("medium")["text"] == "Medium Confidence"


class TestFormatting:

    def test_currency(self):
        assert format_currency(34000) == "$34,000"
        assert format_currency(1234.5) == "$1,235"
        assert format_currency(None) == "$0"

    def test_percent(self):
        assert format_percent(0.0234) == "2.3%"
        assert format_percent(0.65) == "65.0%"

    def test_number(self):
        assert format_number(1250000) == "1,250,000"

    def test_relative_time(self):
        now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert format_relative_time(now - timedelta(seconds=20), now=now) == "Just now"
        assert format_relative_time(now - timedelta(hours=3), now=now) == "3 hours ago"
        assert format_relative_time(now - timedelta(days=1), now=now) == "1 day ago"

    def test_round_half_up_matches_dashboard(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(-2.5) == -2
        assert round_half_up(1.25, 1) == 1.3

    def test_shop_domain_normalization(self):
        assert normalize_shop_domain("My-Store") == "my-store.myshopify.com"
        assert normalize_shop_domain("https://my-store.myshopify.com/") == "my-store.myshopify.com"
