"""Tests for the parameter and score managers against an in-memory database."""

import logging
from unittest.mock import patch

import pytest

from shared.models.exceptions import (
    DatabaseConnectionException,
    OrganizationNotFoundException,
    ParameterNotFoundException,
)
from services.esg_scoring.models import ESGCategory, OrganizationCreate, ParameterCreate, ParameterUpdate


# ── Parameter manager ────────────────────────────────────────────────────────


class TestParameterManager:
    def test_create_and_list_parameters(self, parameter_manager, seeded_organization):
        parameters = parameter_manager.get_parameters(seeded_organization.id)

        assert len(parameters) == 4
        # Ordered by category, then name
        assert [p.category for p in parameters] == [
            ESGCategory.ENVIRONMENTAL, ESGCategory.ENVIRONMENTAL, ESGCategory.GOVERNANCE, ESGCategory.SOCIAL
        ]
        assert parameters[0].parameter_name == "renewable_energy_percentage"
        assert parameters[0].target_value == 62.0

    def test_filter_by_category(self, parameter_manager, seeded_organization):
        social = parameter_manager.get_parameters(seeded_organization.id, "Social")

        assert [p.parameter_name for p in social] == ["employee_safety_training"]
        assert social[0].impact_weight == 2.0

    def test_unknown_organization(self, parameter_manager):
        with pytest.raises(OrganizationNotFoundException):
            parameter_manager.get_parameters(999)

        with pytest.raises(OrganizationNotFoundException):
            parameter_manager.create_parameter(ParameterCreate(
                organization_id=999, category="social",
                parameter_name="employee_safety_training", current_value="10"
            ))

    def test_weight_defaults_to_one(self, parameter_manager, organization):
        created = parameter_manager.create_parameter(ParameterCreate(
            organization_id=organization.id, category="governance",
            parameter_name="board_diversity_ratio", current_value="35"
        ))
        assert created.impact_weight == 1.0

    def test_zero_weight_and_unknown_name_warn(self, parameter_manager, organization, caplog):
        with caplog.at_level(logging.WARNING):
            parameter_manager.create_parameter(ParameterCreate(
                organization_id=organization.id, category="social",
                parameter_name="supplier_audits", current_value="3", impact_weight="0"
            ))

        assert "impact weight 0" in caplog.text
        assert "no explicit scoring rule" in caplog.text

    def test_update_only_touches_given_fields(self, parameter_manager, seeded_organization):
        parameter = parameter_manager.get_parameters(seeded_organization.id)[0]
        updated = parameter_manager.update_parameter(
            parameter.id, ParameterUpdate(current_value="55", updated_by="analyst@acme.test")
        )

        assert updated.current_value == 55.0
        assert updated.target_value == parameter.target_value
        assert updated.impact_weight == parameter.impact_weight
        assert updated.updated_by == "analyst@acme.test"

    def test_update_with_explicit_null_clears_target(self, parameter_manager, seeded_organization):
        parameter = parameter_manager.get_parameters(seeded_organization.id)[0]
        assert parameter.target_value is not None

        updated = parameter_manager.update_parameter(parameter.id, ParameterUpdate(target_value=None))

        assert updated.target_value is None
        assert updated.current_value == parameter.current_value
        assert parameter_manager.get_parameter(parameter.id).target_value is None

    def test_update_rejects_blank_required_fields(self):
        with pytest.raises(ValueError):
            ParameterUpdate(current_value=None)
        with pytest.raises(ValueError):
            ParameterUpdate(impact_weight="")
        assert ParameterUpdate(target_value="").model_dump(exclude_unset=True) == {"target_value": None}

    def test_update_and_delete_missing_parameter(self, parameter_manager):
        with pytest.raises(ParameterNotFoundException):
            parameter_manager.update_parameter(404, ParameterUpdate(current_value="1"))
        with pytest.raises(ParameterNotFoundException):
            parameter_manager.delete_parameter(404)

    def test_delete(self, parameter_manager, seeded_organization):
        parameter = parameter_manager.get_parameters(seeded_organization.id)[0]
        parameter_manager.delete_parameter(parameter.id)

        remaining = parameter_manager.get_parameters(seeded_organization.id)
        assert parameter.id not in [p.id for p in remaining]

    def test_invalid_values_are_rejected_by_model(self):
        with pytest.raises(ValueError):
            ParameterCreate(organization_id=1, category="social", parameter_name="x", current_value="NaN")
        with pytest.raises(ValueError):
            ParameterCreate(organization_id=1, category="economic", parameter_name="x", current_value="1")
        with pytest.raises(ValueError):
            ParameterUpdate(impact_weight="-1")


# ── Score manager ────────────────────────────────────────────────────────────


class TestScoreManager:
    def test_recalculate_persists_snapshot(self, score_manager, db_manager, seeded_organization):
        score, result = score_manager.recalculate(seeded_organization.id)

        assert score.id is not None
        assert score.overall_score == result.overall_score == 60.0
        assert score.rating == "B"
        assert score.score_metrics["parameter_counts"]["environmental"] == 2
        assert db_manager.get_latest_score(seeded_organization.id).id == score.id

    def test_current_score_is_calculated_once(self, score_manager, seeded_organization):
        first = score_manager.get_current_score(seeded_organization.id)
        second = score_manager.get_current_score(seeded_organization.id)

        assert first.id == second.id
        assert len(score_manager.get_history(seeded_organization.id, 10)) == 1

    def test_organization_without_parameters(self, score_manager, organization):
        score = score_manager.get_current_score(organization.id)

        assert score.overall_score == 0.0
        assert score.score_metrics["unscored_pillars"] == ["environmental", "social", "governance"]

    def test_history_is_latest_first_and_limited(self, score_manager, parameter_manager, seeded_organization):
        parameter = parameter_manager.get_parameters(seeded_organization.id, "environmental")[0]
        score_manager.recalculate(seeded_organization.id)
        for value in ("60", "70"):
            score_manager.commit_parameter_change(parameter.id, ParameterUpdate(current_value=value))

        history = score_manager.get_history(seeded_organization.id, 10)
        assert len(history) == 3
        assert history[0].id > history[1].id > history[2].id
        # renewable 70 with water 70 gives environmental 70
        assert history[0].environmental_score == 70.0

        assert len(score_manager.get_history(seeded_organization.id, 2)) == 2

    def test_commit_parameter_change(self, score_manager, parameter_manager, seeded_organization):
        parameter = parameter_manager.get_parameters(seeded_organization.id, "governance")[0]
        updated, score, result = score_manager.commit_parameter_change(
            parameter.id, ParameterUpdate(current_value="70")
        )

        assert updated.current_value == 70.0
        assert score.governance_score == 70.0
        assert score.overall_score == 69.0
        assert result.rating == "BB"

    def test_save_is_retried(self, score_manager, db_manager, seeded_organization):
        original = db_manager.save_score
        calls = []

        def flaky(organization_id, result):
            calls.append(organization_id)
            if len(calls) < 3:
                raise DatabaseConnectionException("connection reset")
            return original(organization_id, result)

        with patch.object(db_manager, "save_score", side_effect=flaky):
            score, _ = score_manager.recalculate(seeded_organization.id)

        assert len(calls) == 3
        assert score.id is not None

    def test_save_failure_is_raised(self, score_manager, db_manager, seeded_organization):
        with patch.object(db_manager, "save_score", side_effect=DatabaseConnectionException("down")):
            with pytest.raises(DatabaseConnectionException):
                score_manager.recalculate(seeded_organization.id)

        assert db_manager.get_latest_score(seeded_organization.id) is None

    def test_preview_impact_does_not_write(self, score_manager, parameter_manager, seeded_organization):
        parameter = parameter_manager.get_parameters(seeded_organization.id, "environmental")[0]
        impact = score_manager.preview_impact(seeded_organization.id, parameter.id, "62")

        assert impact.environmental_delta == 9.6
        assert impact.overall_delta == 4.70
        assert parameter_manager.get_parameter(parameter.id).current_value == 50
        assert score_manager.get_history(seeded_organization.id, 10) == []

    def test_preview_impact_checks_ownership(self, score_manager, parameter_manager, seeded_organization):
        other = parameter_manager.create_organization(OrganizationCreate(name="Other Co"))
        parameter = parameter_manager.get_parameters(seeded_organization.id)[0]

        with pytest.raises(ParameterNotFoundException):
            score_manager.preview_impact(other.id, parameter.id, "70")

    def test_target_impact(self, score_manager, seeded_organization):
        result = score_manager.target_impact(seeded_organization.id)

        assert len(result.parameters) == 2
        assert all(p.parameter_id is not None for p in result.parameters)
        assert result.total.overall_delta == 9.92
