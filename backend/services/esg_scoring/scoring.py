import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from shared.models.exceptions import ESGReportingException, ScoringException
from .models import ESGCategory, ESGScoreResult, get_parameter_field
from .numeric import ZERO, parse_decimal, parse_weight, round_score
from .rules import RuleBook, PillarWeights, PILLAR_WEIGHTS

logger = logging.getLogger(__name__)

DEFAULT_METHODOLOGY = "MSCI-style weighted"

# Letter ratings, highest threshold first
RATING_THRESHOLDS = [
    (85, "AAA"),
    (80, "AA"),
    (75, "A"),
    (70, "BBB"),
    (65, "BB"),
    (60, "B"),
]

GLOBAL_BENCHMARKS = {
    "sp500_average": 68,
    "msci_world_esg": 71,
    "ftse4good_threshold": 75,
    "djsi_world_threshold": 78,
}


def get_esg_rating(score: float) -> str:
    """Letter rating for an overall score"""
    for threshold, rating in RATING_THRESHOLDS:
        if score >= threshold:
            return rating
    return "CCC"


def build_benchmark_data(overall_score: float) -> Dict[str, Any]:
    return {
        "sp500_average": GLOBAL_BENCHMARKS["sp500_average"],
        "msci_world_esg": GLOBAL_BENCHMARKS["msci_world_esg"],
        "ftse4good_eligible": overall_score >= GLOBAL_BENCHMARKS["ftse4good_threshold"],
        "djsi_world_eligible": overall_score >= GLOBAL_BENCHMARKS["djsi_world_threshold"],
        "gap_to_sp500": round(overall_score - GLOBAL_BENCHMARKS["sp500_average"], 2),
    }


class ESGScoreAggregator:
    """Turns a subject's parameter list into pillar and overall scores"""

    def __init__(self, rule_book: Optional[RuleBook] = None,
                 pillar_weights: PillarWeights = PILLAR_WEIGHTS,
                 methodology: str = DEFAULT_METHODOLOGY):
        self.rule_book = rule_book or RuleBook()
        self.pillar_weights = pillar_weights
        self.methodology = methodology

    def compute_score(self, parameters: Iterable[Any]) -> ESGScoreResult:
        """
        Compute a Score snapshot from parameters.

        Each pillar is the weight-averaged normalized value of its parameters;
        a pillar with no weight scores 0. The overall score blends the pillars
        with the fixed pillar weights. Invalid values raise
        InvalidParameterException naming the parameter instead of producing a
        poisoned score. The input is only read.
        """
        try:
            weighted_sums = {category: ZERO for category in ESGCategory}
            weight_sums = {category: ZERO for category in ESGCategory}
            counts = {category.value: 0 for category in ESGCategory}
            default_rule_parameters: List[str] = []

            for parameter in parameters:
                name = get_parameter_field(parameter, 'parameter_name', 'name')
                if not name:
                    raise ScoringException("Parameter without a name cannot be scored")

                category = ESGCategory.parse(get_parameter_field(parameter, 'category'), parameter_name=name)
                value = parse_decimal(get_parameter_field(parameter, 'current_value'), 'current_value', name)
                weight = parse_weight(get_parameter_field(parameter, 'impact_weight'), name)

                rule, known = self.rule_book.lookup(name)
                if not known and name not in default_rule_parameters:
                    logger.warning(f"[DEFAULT RULE] No scoring rule for parameter '{name}'; using default normalization")
                    default_rule_parameters.append(name)

                normalized = rule.normalization.apply(value)
                weighted_sums[category] += normalized * weight
                weight_sums[category] += weight
                counts[category.value] += 1

                logger.debug(
                    f"Parameter {name} ({category.value}): value={value} normalized={normalized} weight={weight}"
                )

            pillar_scores = {
                category: (weighted_sums[category] / weight_sums[category]) if weight_sums[category] > 0 else ZERO
                for category in ESGCategory
            }

            environmental = pillar_scores[ESGCategory.ENVIRONMENTAL]
            social = pillar_scores[ESGCategory.SOCIAL]
            governance = pillar_scores[ESGCategory.GOVERNANCE]
            overall = self.pillar_weights.blend(environmental, social, governance)

            overall_score = float(round_score(overall))
            rounded = {category.value: float(round_score(score)) for category, score in pillar_scores.items()}

            score_metrics = self._build_score_metrics(rounded, counts, weight_sums, default_rule_parameters)

            result = ESGScoreResult(
                overall_score=overall_score,
                environmental_score=rounded[ESGCategory.ENVIRONMENTAL.value],
                social_score=rounded[ESGCategory.SOCIAL.value],
                governance_score=rounded[ESGCategory.GOVERNANCE.value],
                methodology=self.methodology,
                calculation_date=datetime.utcnow(),
                rating=get_esg_rating(overall_score),
                benchmark_data=build_benchmark_data(overall_score),
                score_metrics=score_metrics,
            )

            logger.info(
                f"Calculated ESG score: overall={overall_score:.2f}, "
                f"pillars={rounded}, parameters={sum(counts.values())}"
            )
            return result

        except ESGReportingException:
            raise
        except Exception as e:
            logger.error(f"Unexpected error in ESG scoring: {e}")
            raise ScoringException(f"Unexpected error during score calculation: {e}")

    def _build_score_metrics(self, pillar_scores: Dict[str, float], counts: Dict[str, int],
                             weight_sums: Dict[ESGCategory, Decimal],
                             default_rule_parameters: List[str]) -> Dict[str, Any]:
        unscored = [category.value for category in ESGCategory if weight_sums[category] <= 0]
        coverage_notes = []
        for pillar in unscored:
            if counts[pillar] == 0:
                coverage_notes.append(
                    f"{pillar.capitalize()} score based on 0 parameters - not meaningful"
                )
            else:
                coverage_notes.append(
                    f"{pillar.capitalize()} parameters all carry zero weight - score not meaningful"
                )

        values = list(pillar_scores.values())
        return {
            "parameter_counts": counts,
            "unscored_pillars": unscored,
            "coverage_notes": coverage_notes,
            "default_rule_parameters": default_rule_parameters,
            "pillar_weights": self.pillar_weights.as_dict(),
            "score_distribution": {
                "min": min(values),
                "max": max(values),
                "std": round(float(np.std(values)), 2),
            },
        }


def calculate_esg_score(parameters: Iterable[Any], rule_book: Optional[RuleBook] = None) -> ESGScoreResult:
    """Compute a Score with the default aggregator configuration"""
    return ESGScoreAggregator(rule_book=rule_book).compute_score(parameters)
