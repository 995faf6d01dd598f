import logging
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Union

import numpy as np

from .models import (
    ESGCategory, ImpactResult, ImpactPoint, ParameterTargetImpact, TargetImpactResult,
    get_parameter_field
)
from .numeric import ZERO, parse_decimal, parse_weight, round_score
from .rules import RuleBook, PillarWeights, PILLAR_WEIGHTS, BLEED_THROUGH

logger = logging.getLogger(__name__)


class ESGImpactEstimator:
    """
    Estimates how a single parameter change moves each pillar score.

    The model works on raw value deltas scaled by a per-parameter multiplier;
    it does not re-run normalization. The parameter's own pillar receives the
    full base impact and the other pillars a fixed fractional spillover of the
    same amount, so the three deltas are not a partition of one quantity.
    Stateless: nothing passed in or held globally is mutated.
    """

    def __init__(self, rule_book: Optional[RuleBook] = None,
                 pillar_weights: PillarWeights = PILLAR_WEIGHTS,
                 bleed_through=None):
        self.rule_book = rule_book or RuleBook()
        self.pillar_weights = pillar_weights
        self.bleed_through = bleed_through or BLEED_THROUGH

    def estimate_impact(self, parameter_name: str, current_value: Any, new_value: Any,
                        category: Union[str, ESGCategory], weight: Any = "1.0") -> ImpactResult:
        own_category = ESGCategory.parse(category, parameter_name=parameter_name)
        current = parse_decimal(current_value, 'current_value', parameter_name)
        new = parse_decimal(new_value, 'new_value', parameter_name)
        weight_value = parse_weight(weight, parameter_name)

        rule, known = self.rule_book.lookup(parameter_name)
        if not known:
            logger.warning(f"[DEFAULT RULE] No impact multiplier for parameter '{parameter_name}'; using default")

        delta = new - current
        base_impact = delta * weight_value * rule.impact_multiplier
        return self._distribute(own_category, base_impact, delta)

    def _distribute(self, own_category: ESGCategory, base_impact: Decimal, delta: Decimal) -> ImpactResult:
        shares = self.bleed_through[own_category]
        environmental = base_impact * shares[ESGCategory.ENVIRONMENTAL]
        social = base_impact * shares[ESGCategory.SOCIAL]
        governance = base_impact * shares[ESGCategory.GOVERNANCE]
        overall = self.pillar_weights.blend(environmental, social, governance)

        return ImpactResult(
            environmental_delta=float(round_score(environmental)),
            social_delta=float(round_score(social)),
            governance_delta=float(round_score(governance)),
            overall_delta=float(round_score(overall)),
            parameter_change=float(delta),
        )

    def impact_curve(self, parameter_name: str, current_value: Any, category: Union[str, ESGCategory],
                     weight: Any = "1.0", lower: float = 0.0, upper: float = 100.0,
                     steps: int = 11) -> List[ImpactPoint]:
        """Evaluate the estimate over an evenly spaced grid of candidate values"""
        if steps < 2:
            raise ValueError("steps must be at least 2")

        points = []
        for candidate in np.linspace(lower, upper, steps):
            # Trim float noise from linspace before it reaches Decimal parsing
            value = Decimal(str(round(float(candidate), 6)))
            impact = self.estimate_impact(parameter_name, current_value, value, category, weight)
            points.append(ImpactPoint(value=float(value), impact=impact))
        return points

    def estimate_target_impact(self, parameters: Iterable[Any]) -> TargetImpactResult:
        """
        Project the combined effect of moving every parameter to its target.

        Parameters without a target are skipped. Totals are summed from the
        unrounded per-parameter impacts and rounded once.
        """
        per_parameter: List[ParameterTargetImpact] = []
        totals = {category: ZERO for category in ESGCategory}
        total_change = ZERO

        for parameter in parameters:
            target = get_parameter_field(parameter, 'target_value')
            if target is None or target == "":
                continue

            name = get_parameter_field(parameter, 'parameter_name', 'name')
            category = ESGCategory.parse(get_parameter_field(parameter, 'category'), parameter_name=name)
            current = parse_decimal(get_parameter_field(parameter, 'current_value'), 'current_value', name)
            target_value = parse_decimal(target, 'target_value', name)
            weight = parse_weight(get_parameter_field(parameter, 'impact_weight'), name)

            rule, _ = self.rule_book.lookup(name)
            delta = target_value - current
            base_impact = delta * weight * rule.impact_multiplier
            shares = self.bleed_through[category]
            for pillar in ESGCategory:
                totals[pillar] += base_impact * shares[pillar]
            total_change += delta

            per_parameter.append(ParameterTargetImpact(
                parameter_id=get_parameter_field(parameter, 'id'),
                parameter_name=name,
                category=category,
                current_value=float(current),
                target_value=float(target_value),
                impact=self._distribute(category, base_impact, delta),
            ))

        overall = self.pillar_weights.blend(
            totals[ESGCategory.ENVIRONMENTAL], totals[ESGCategory.SOCIAL], totals[ESGCategory.GOVERNANCE]
        )
        total = ImpactResult(
            environmental_delta=float(round_score(totals[ESGCategory.ENVIRONMENTAL])),
            social_delta=float(round_score(totals[ESGCategory.SOCIAL])),
            governance_delta=float(round_score(totals[ESGCategory.GOVERNANCE])),
            overall_delta=float(round_score(overall)),
            parameter_change=float(total_change),
        )

        logger.info(f"Estimated target impact for {len(per_parameter)} parameters: overall={total.overall_delta}")
        return TargetImpactResult(parameters=per_parameter, total=total)


def calculate_parameter_impact(parameter_name: str, current_value: Any, new_value: Any,
                               category: Union[str, ESGCategory], weight: Any = "1.0",
                               rule_book: Optional[RuleBook] = None) -> ImpactResult:
    """Estimate one parameter change with the default estimator configuration"""
    return ESGImpactEstimator(rule_book=rule_book).estimate_impact(
        parameter_name, current_value, new_value, category, weight
    )
