import logging
from typing import Any, List, Optional, Tuple

import backoff

from shared.models.exceptions import DatabaseConnectionException, ParameterNotFoundException
from .database import DatabaseManager, ESGScoreRecord
from .impact import ESGImpactEstimator
from .models import (
    ESGScoreResult, ImpactResult, ParameterUpdate, ParameterResponse,
    ScoreResponse, TargetImpactResult
)
from .parameter_manager import ParameterManager
from .scoring import ESGScoreAggregator

logger = logging.getLogger(__name__)


class ScoreManager:
    """
    Read and commit paths around the pure scorers.

    Computing a score and persisting its snapshot are separate steps: the
    write is retried on its own, and a write that keeps failing is raised
    rather than dropped, so clients never see scores without a stored snapshot.
    """

    def __init__(self, db_manager: DatabaseManager, parameter_manager: ParameterManager,
                 aggregator: Optional[ESGScoreAggregator] = None,
                 estimator: Optional[ESGImpactEstimator] = None,
                 retry_attempts: int = 3, retry_delay_seconds: float = 0.5):
        self.db_manager = db_manager
        self.parameter_manager = parameter_manager
        self.aggregator = aggregator or ESGScoreAggregator(rule_book=parameter_manager.rule_book)
        self.estimator = estimator or ESGImpactEstimator(rule_book=parameter_manager.rule_book)
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay_seconds = retry_delay_seconds

    def recalculate(self, organization_id: int) -> Tuple[ScoreResponse, ESGScoreResult]:
        """Compute a fresh score from stored parameters and persist it as a new snapshot"""
        parameters = self.parameter_manager.get_parameter_records(organization_id)
        result = self.aggregator.compute_score(parameters)
        record = self._save_with_retry(organization_id, result)
        return ScoreResponse.model_validate(record), result

    def get_current_score(self, organization_id: int) -> ScoreResponse:
        """Latest snapshot, or a freshly computed one when none exists yet"""
        self.parameter_manager.get_organization(organization_id)
        latest = self.db_manager.get_latest_score(organization_id)
        if latest:
            return ScoreResponse.model_validate(latest)

        logger.info(f"No score snapshot for organization {organization_id}; calculating initial score")
        response, _ = self.recalculate(organization_id)
        return response

    def get_history(self, organization_id: int, limit: int) -> List[ScoreResponse]:
        self.parameter_manager.get_organization(organization_id)
        return [ScoreResponse.model_validate(s) for s in self.db_manager.get_score_history(organization_id, limit)]

    def commit_parameter_change(self, parameter_id: int,
                                update: ParameterUpdate) -> Tuple[ParameterResponse, ScoreResponse, ESGScoreResult]:
        """Persist a parameter edit and snapshot the recomputed score"""
        parameter = self.parameter_manager.update_parameter(parameter_id, update)
        score, result = self.recalculate(parameter.organization_id)
        return parameter, score, result

    def preview_impact(self, organization_id: int, parameter_id: int, new_value: Any) -> ImpactResult:
        """What-if estimate for a stored parameter; stored data is left untouched"""
        parameter = self.parameter_manager.get_parameter(parameter_id)
        if parameter.organization_id != organization_id:
            # Treat parameters of another organization as absent
            self.parameter_manager.get_organization(organization_id)
            raise ParameterNotFoundException(
                f"Parameter {parameter_id} not found for organization {organization_id}"
            )

        return self.estimator.estimate_impact(
            parameter.parameter_name,
            parameter.current_value,
            new_value,
            parameter.category,
            parameter.impact_weight,
        )

    def target_impact(self, organization_id: int) -> TargetImpactResult:
        parameters = self.parameter_manager.get_parameter_records(organization_id)
        return self.estimator.estimate_target_impact(parameters)

    def _save_with_retry(self, organization_id: int, result: ESGScoreResult) -> ESGScoreRecord:
        def log_retry(details):
            logger.warning(
                f"Saving score for organization {organization_id} failed "
                f"(attempt {details['tries']}/{self.retry_attempts}), retrying in {details['wait']:.2f}s"
            )

        @backoff.on_exception(
            backoff.expo,
            DatabaseConnectionException,
            max_tries=self.retry_attempts,
            factor=self.retry_delay_seconds,
            jitter=backoff.full_jitter,
            on_backoff=log_retry,
        )
        def save(org_id: int, score_result: ESGScoreResult) -> ESGScoreRecord:
            return self.db_manager.save_score(org_id, score_result)

        try:
            return save(organization_id, result)
        except DatabaseConnectionException as e:
            logger.error(f"Giving up on saving score for organization {organization_id}")
            raise DatabaseConnectionException(
                f"Score computed but snapshot could not be saved after {self.retry_attempts} attempts: {e}"
            )
