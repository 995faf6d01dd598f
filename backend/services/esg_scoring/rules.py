"""
Scoring rule tables shared by the score aggregator and the impact estimator.

Parameters are matched by lower-cased exact name. Names without a row fall
through to the explicit default rule. The impact multipliers and the
bleed-through shares are hand-picked heuristics, not calibrated figures.
"""

import json
import logging
from decimal import Decimal
from enum import Enum
from typing import Dict, Any, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from shared.models.exceptions import InvalidParameterException
from .models import ESGCategory
from .numeric import HUNDRED, parse_decimal

logger = logging.getLogger(__name__)


class NormalizationKind(str, Enum):
    CLAMP_PERCENTAGE = "clamp-percentage"
    SCALE_BY_10_CLAMP = "scale-by-10-clamp"
    SCALE_BY_2_CLAMP = "scale-by-2-clamp"
    CLAMP_IDENTITY = "clamp-identity"


NORMALIZATION_FACTORS = {
    NormalizationKind.CLAMP_PERCENTAGE: Decimal("1"),
    NormalizationKind.SCALE_BY_10_CLAMP: Decimal("10"),
    NormalizationKind.SCALE_BY_2_CLAMP: Decimal("2"),
    NormalizationKind.CLAMP_IDENTITY: Decimal("1"),
}


class NormalizationRule(BaseModel):
    """Maps a raw value onto the 0-100 scale; only the upper bound is clamped"""
    model_config = ConfigDict(frozen=True)

    kind: NormalizationKind = NormalizationKind.CLAMP_IDENTITY

    @property
    def factor(self) -> Decimal:
        return NORMALIZATION_FACTORS[self.kind]

    def apply(self, value: Decimal) -> Decimal:
        return min(value * self.factor, HUNDRED)


class ParameterRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    normalization: NormalizationRule = NormalizationRule()
    impact_multiplier: Decimal = Decimal("0.5")


DEFAULT_PARAMETER_RULE = ParameterRule(
    normalization=NormalizationRule(kind=NormalizationKind.CLAMP_IDENTITY),
    impact_multiplier=Decimal("0.5"),
)

DEFAULT_PARAMETER_RULES: Dict[str, ParameterRule] = {
    'renewable_energy_percentage': ParameterRule(
        normalization=NormalizationRule(kind=NormalizationKind.CLAMP_PERCENTAGE),
        impact_multiplier=Decimal("0.8"),
    ),
    'ghg_emissions_reduction': ParameterRule(
        normalization=NormalizationRule(kind=NormalizationKind.CLAMP_PERCENTAGE),
        impact_multiplier=Decimal("1.2"),
    ),
    'employee_safety_training': ParameterRule(
        normalization=NormalizationRule(kind=NormalizationKind.CLAMP_PERCENTAGE),
        impact_multiplier=Decimal("0.6"),
    ),
    'board_diversity_ratio': ParameterRule(
        normalization=NormalizationRule(kind=NormalizationKind.CLAMP_PERCENTAGE),
        impact_multiplier=Decimal("0.7"),
    ),
    'water_efficiency': ParameterRule(
        normalization=NormalizationRule(kind=NormalizationKind.SCALE_BY_10_CLAMP),
        impact_multiplier=Decimal("0.5"),
    ),
    # No dedicated multiplier; impact uses the default 0.5
    'waste_reduction': ParameterRule(
        normalization=NormalizationRule(kind=NormalizationKind.SCALE_BY_2_CLAMP),
        impact_multiplier=Decimal("0.5"),
    ),
}


class PillarWeights(BaseModel):
    """Fixed blend of pillar scores into the overall score"""
    model_config = ConfigDict(frozen=True)

    environmental: Decimal = Decimal("0.4")
    social: Decimal = Decimal("0.3")
    governance: Decimal = Decimal("0.3")

    def blend(self, environmental: Decimal, social: Decimal, governance: Decimal) -> Decimal:
        return (
            environmental * self.environmental
            + social * self.social
            + governance * self.governance
        )

    def as_dict(self) -> Dict[str, float]:
        return {
            ESGCategory.ENVIRONMENTAL.value: float(self.environmental),
            ESGCategory.SOCIAL.value: float(self.social),
            ESGCategory.GOVERNANCE.value: float(self.governance),
        }


PILLAR_WEIGHTS = PillarWeights()

# Share of a parameter's base impact applied to each pillar, keyed by the parameter's own pillar.
# The own pillar always takes the full impact; the others receive a spillover of the same amount.
BLEED_THROUGH: Dict[ESGCategory, Dict[ESGCategory, Decimal]] = {
    ESGCategory.ENVIRONMENTAL: {
        ESGCategory.ENVIRONMENTAL: Decimal("1.00"),
        ESGCategory.SOCIAL: Decimal("0.20"),
        ESGCategory.GOVERNANCE: Decimal("0.10"),
    },
    ESGCategory.SOCIAL: {
        ESGCategory.ENVIRONMENTAL: Decimal("0.15"),
        ESGCategory.SOCIAL: Decimal("1.00"),
        ESGCategory.GOVERNANCE: Decimal("0.25"),
    },
    ESGCategory.GOVERNANCE: {
        ESGCategory.ENVIRONMENTAL: Decimal("0.10"),
        ESGCategory.SOCIAL: Decimal("0.20"),
        ESGCategory.GOVERNANCE: Decimal("1.00"),
    },
}


class RuleBook:
    """Name-keyed lookup of normalization rules and impact multipliers"""

    def __init__(self, rules: Optional[Mapping[str, ParameterRule]] = None,
                 default: ParameterRule = DEFAULT_PARAMETER_RULE):
        source = DEFAULT_PARAMETER_RULES if rules is None else rules
        self.rules: Dict[str, ParameterRule] = {
            self.canonical_name(name): rule for name, rule in source.items()
        }
        self.default = default

    @staticmethod
    def canonical_name(name: str) -> str:
        return str(name).strip().lower()

    def lookup(self, parameter_name: str) -> Tuple[ParameterRule, bool]:
        """Return the rule for a parameter and whether it had an explicit row"""
        rule = self.rules.get(self.canonical_name(parameter_name))
        if rule is None:
            return self.default, False
        return rule, True

    def is_known(self, parameter_name: str) -> bool:
        return self.canonical_name(parameter_name) in self.rules

    @classmethod
    def from_config(cls, config: Mapping[str, Mapping[str, Any]],
                    base: Optional[Mapping[str, ParameterRule]] = None) -> "RuleBook":
        """
        Build a rule book from rows of ``{normalizationRule, impactMultiplier}``.

        Rows override or extend ``base`` (the built-in table by default).
        Either key may be omitted, in which case the default rule's value is used.
        """
        rules = dict(DEFAULT_PARAMETER_RULES if base is None else base)

        for name, row in config.items():
            if not isinstance(row, Mapping):
                raise InvalidParameterException(
                    f"Rule for {name!r} must be an object", parameter_name=name
                )

            kind_value = row.get('normalizationRule', DEFAULT_PARAMETER_RULE.normalization.kind.value)
            try:
                kind = NormalizationKind(kind_value)
            except ValueError:
                raise InvalidParameterException(
                    f"Unknown normalization rule {kind_value!r}; expected one of "
                    f"{[k.value for k in NormalizationKind]}",
                    parameter_name=name,
                    field="normalizationRule"
                )

            multiplier = parse_decimal(
                row.get('impactMultiplier', DEFAULT_PARAMETER_RULE.impact_multiplier),
                "impactMultiplier",
                name
            )
            if multiplier == 0:
                raise InvalidParameterException(
                    "Impact multiplier must be positive", parameter_name=name, field="impactMultiplier"
                )

            rules[cls.canonical_name(name)] = ParameterRule(
                normalization=NormalizationRule(kind=kind),
                impact_multiplier=multiplier,
            )

        logger.info(f"Loaded {len(config)} parameter rule rows ({len(rules)} rules total)")
        return cls(rules)

    @classmethod
    def from_file(cls, path: str) -> "RuleBook":
        with open(path, encoding="utf-8") as handle:
            config = json.load(handle)
        if not isinstance(config, dict):
            raise InvalidParameterException(f"Rule file {path} must contain a JSON object")
        return cls.from_config(config)

    def describe(self) -> Dict[str, Any]:
        """Serializable view of the rule tables for API consumers"""
        return {
            "parameters": {
                name: {
                    "normalizationRule": rule.normalization.kind.value,
                    "impactMultiplier": float(rule.impact_multiplier),
                }
                for name, rule in sorted(self.rules.items())
            },
            "default": {
                "normalizationRule": self.default.normalization.kind.value,
                "impactMultiplier": float(self.default.impact_multiplier),
            },
            "pillar_weights": PILLAR_WEIGHTS.as_dict(),
            "bleed_through": {
                own.value: {target.value: float(share) for target, share in shares.items()}
                for own, shares in BLEED_THROUGH.items()
            },
            "heuristic": True,
            "note": "Impact multipliers and bleed-through shares are hand-picked heuristics, not calibrated figures.",
        }


def load_rule_book(path: Optional[str] = None) -> RuleBook:
    """Built-in rules, extended by a JSON rule file when one is configured"""
    if path:
        logger.info(f"Loading parameter rules from {path}")
        return RuleBook.from_file(path)
    return RuleBook()
