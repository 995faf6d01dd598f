"""Tests for the ESG score aggregator."""

import copy
import logging
from decimal import Decimal
from types import SimpleNamespace

import pytest

from shared.models.exceptions import InvalidParameterException
from services.esg_scoring.models import ESGScoreResult
from services.esg_scoring.numeric import parse_decimal, parse_weight, round_score
from services.esg_scoring.scoring import (
    ESGScoreAggregator,
    build_benchmark_data,
    calculate_esg_score,
    get_esg_rating,
)


def _param(name, category, value, weight="1.0", **extra):
    return {"parameter_name": name, "category": category, "current_value": value, "impact_weight": weight, **extra}


@pytest.fixture
def aggregator() -> ESGScoreAggregator:
    return ESGScoreAggregator()


# ── Overall identity and pillar averages ─────────────────────────────────────


class TestComputeScore:
    def test_sample_portfolio(self, aggregator, sample_parameters):
        result = aggregator.compute_score(sample_parameters)

        assert result.environmental_score == 60.0
        assert result.social_score == 80.0
        assert result.governance_score == 40.0
        assert result.overall_score == 60.0
        assert result.rating == "B"
        assert result.methodology == "MSCI-style weighted"

    def test_overall_is_weighted_blend_of_pillars(self, aggregator):
        result = aggregator.compute_score([
            _param("renewable_energy_percentage", "environmental", "73.5"),
            _param("employee_safety_training", "social", "41.25"),
            _param("board_diversity_ratio", "governance", "88"),
        ])

        expected = Decimal("0.4") * Decimal("73.5") + Decimal("0.3") * Decimal("41.25") + Decimal("0.3") * Decimal("88")
        assert result.overall_score == float(round_score(expected))
        assert abs(
            result.overall_score
            - (0.4 * result.environmental_score + 0.3 * result.social_score + 0.3 * result.governance_score)
        ) <= 0.01

    def test_weights_shape_pillar_average(self, aggregator):
        result = aggregator.compute_score([
            _param("renewable_energy_percentage", "environmental", "90", weight="3"),
            _param("ghg_emissions_reduction", "environmental", "30", weight="1"),
        ])
        assert result.environmental_score == 75.0

    def test_empty_input_scores_zero(self, aggregator):
        result = aggregator.compute_score([])

        assert result.overall_score == 0.0
        assert result.environmental_score == 0.0
        assert result.social_score == 0.0
        assert result.governance_score == 0.0
        assert result.rating == "CCC"
        assert result.score_metrics["unscored_pillars"] == ["environmental", "social", "governance"]

    def test_single_parameter(self, aggregator):
        result = aggregator.compute_score([_param("renewable_energy_percentage", "environmental", "50")])

        assert result.environmental_score == 50.0
        assert result.social_score == 0.0
        assert result.governance_score == 0.0
        assert result.overall_score == 20.0

    def test_missing_pillars_are_reported(self, aggregator):
        result = aggregator.compute_score([_param("renewable_energy_percentage", "environmental", "50")])
        metrics = result.score_metrics

        assert metrics["unscored_pillars"] == ["social", "governance"]
        assert "Governance score based on 0 parameters - not meaningful" in metrics["coverage_notes"]
        assert metrics["parameter_counts"] == {"environmental": 1, "social": 0, "governance": 0}

    def test_zero_weight_pillar_scores_zero(self, aggregator):
        result = aggregator.compute_score([_param("board_diversity_ratio", "governance", "60", weight="0")])

        assert result.governance_score == 0.0
        assert result.score_metrics["unscored_pillars"] == ["environmental", "social", "governance"]
        assert any("zero weight" in note for note in result.score_metrics["coverage_notes"])

    def test_scores_stay_within_bounds(self, aggregator):
        result = aggregator.compute_score([
            _param("renewable_energy_percentage", "environmental", "250"),
            _param("water_efficiency", "environmental", "42"),
            _param("waste_reduction", "social", "80"),
            _param("board_diversity_ratio", "governance", "0"),
        ])

        for score in (result.overall_score, result.environmental_score,
                      result.social_score, result.governance_score):
            assert 0.0 <= score <= 100.0
        assert result.environmental_score == 100.0
        assert result.social_score == 100.0

    def test_input_is_not_mutated(self, aggregator, sample_parameters):
        before = copy.deepcopy(sample_parameters)
        aggregator.compute_score(sample_parameters)
        assert sample_parameters == before

    def test_repeated_calls_are_deterministic(self, aggregator, sample_parameters):
        first = aggregator.compute_score(sample_parameters)
        second = aggregator.compute_score(sample_parameters)
        assert first.model_dump(exclude={"calculation_date"}) == second.model_dump(exclude={"calculation_date"})

    def test_result_is_frozen(self, aggregator, sample_parameters):
        result = aggregator.compute_score(sample_parameters)
        with pytest.raises(Exception):
            result.overall_score = 99.0

    def test_accepts_attribute_objects_and_numbers(self, aggregator):
        rows = [
            SimpleNamespace(parameter_name="renewable_energy_percentage", category="Environmental",
                            current_value=Decimal("40"), impact_weight=Decimal("1")),
            SimpleNamespace(parameter_name="board_diversity_ratio", category="GOVERNANCE",
                            current_value=55.5, impact_weight=None),
        ]
        result = aggregator.compute_score(rows)

        assert result.environmental_score == 40.0
        assert result.governance_score == 55.5

    def test_half_up_rounding(self, aggregator):
        result = aggregator.compute_score([
            _param("renewable_energy_percentage", "environmental", "10.005"),
        ])
        assert result.environmental_score == 10.01

    def test_pillar_scores_property(self, aggregator, sample_parameters):
        result = aggregator.compute_score(sample_parameters)
        assert result.pillar_scores == {"environmental": 60.0, "social": 80.0, "governance": 40.0}


# ── Default rule handling ────────────────────────────────────────────────────


class TestUnknownParameters:
    def test_unknown_name_uses_identity_clamp(self, aggregator):
        result = aggregator.compute_score([_param("community_investment_index", "social", "130")])
        assert result.social_score == 100.0

    def test_unknown_name_is_logged_and_reported(self, aggregator, caplog):
        with caplog.at_level(logging.WARNING):
            result = aggregator.compute_score([
                _param("community_investment_index", "social", "30"),
                _param("community_investment_index", "social", "50"),
            ])

        assert result.score_metrics["default_rule_parameters"] == ["community_investment_index"]
        assert "community_investment_index" in caplog.text

    def test_rule_names_are_case_insensitive(self, aggregator):
        result = aggregator.compute_score([_param("Water_Efficiency", "environmental", "5")])
        assert result.environmental_score == 50.0
        assert result.score_metrics["default_rule_parameters"] == []


# ── Invalid input ────────────────────────────────────────────────────────────


class TestInvalidInput:
    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", "-5", None, ""])
    def test_bad_values_raise(self, aggregator, value):
        with pytest.raises(InvalidParameterException) as exc_info:
            aggregator.compute_score([_param("renewable_energy_percentage", "environmental", value)])

        assert exc_info.value.parameter_name == "renewable_energy_percentage"
        assert exc_info.value.field == "current_value"

    @pytest.mark.parametrize("value", ["1e999999999", "1e12", "100000000000"])
    def test_out_of_range_values_raise(self, aggregator, value):
        with pytest.raises(InvalidParameterException) as exc_info:
            aggregator.compute_score([_param("water_efficiency", "environmental", value)])

        assert exc_info.value.parameter_name == "water_efficiency"
        assert exc_info.value.field == "current_value"

    def test_largest_accepted_value_scores(self, aggregator):
        result = aggregator.compute_score([_param("water_efficiency", "environmental", "99999999999.9999",
                                                  weight="9999.9999")])
        assert 0 <= result.environmental_score <= 100

    @pytest.mark.parametrize("weight", ["heavy", "-1", "inf"])
    def test_bad_weights_raise(self, aggregator, weight):
        with pytest.raises(InvalidParameterException) as exc_info:
            aggregator.compute_score([_param("renewable_energy_percentage", "environmental", "50", weight=weight)])
        assert exc_info.value.field == "impact_weight"

    def test_unknown_category_raises(self, aggregator):
        with pytest.raises(InvalidParameterException) as exc_info:
            aggregator.compute_score([_param("renewable_energy_percentage", "economic", "50")])
        assert exc_info.value.field == "category"

    @pytest.mark.parametrize("weight", [None, "", "  "])
    def test_omitted_weight_defaults_to_one(self, aggregator, weight):
        result = aggregator.compute_score([
            _param("renewable_energy_percentage", "environmental", "80", weight=weight),
            _param("ghg_emissions_reduction", "environmental", "40", weight="1"),
        ])
        assert result.environmental_score == 60.0


# ── Ratings and benchmarks ───────────────────────────────────────────────────


class TestRatings:
    @pytest.mark.parametrize("score, rating", [
        (100, "AAA"), (85, "AAA"), (84.99, "AA"), (80, "AA"), (75, "A"), (70, "BBB"),
        (65, "BB"), (60, "B"), (59.99, "CCC"), (0, "CCC"),
    ])
    def test_rating_thresholds(self, score, rating):
        assert get_esg_rating(score) == rating

    def test_benchmark_data(self):
        data = build_benchmark_data(76.5)

        assert data["ftse4good_eligible"] is True
        assert data["djsi_world_eligible"] is False
        assert data["gap_to_sp500"] == 8.5

    def test_convenience_function(self, sample_parameters):
        result = calculate_esg_score(sample_parameters)
        assert isinstance(result, ESGScoreResult)
        assert result.overall_score == 60.0


class TestNumericParsing:
    def test_float_parses_through_text(self):
        assert parse_decimal(0.1, "current_value") == Decimal("0.1")

    def test_bool_is_rejected(self):
        with pytest.raises(InvalidParameterException):
            parse_decimal(True, "current_value")

    def test_negative_allowed_when_requested(self):
        assert parse_decimal("-2.5", "delta", allow_negative=True) == Decimal("-2.5")

    def test_weight_default(self):
        assert parse_weight(None) == Decimal("1.0")
        assert parse_weight("0") == Decimal("0")

    def test_round_score_handles_values_wider_than_default_precision(self):
        assert round_score(Decimal("123456789012345678901234567.785")) == \
            Decimal("123456789012345678901234567.79")
