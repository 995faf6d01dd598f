from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any, List, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shared.models.exceptions import InvalidParameterException
from .numeric import parse_decimal, DEFAULT_IMPACT_WEIGHT


class ESGCategory(str, Enum):
    ENVIRONMENTAL = "environmental"
    SOCIAL = "social"
    GOVERNANCE = "governance"

    @classmethod
    def parse(cls, value: Union[str, "ESGCategory"], parameter_name: Optional[str] = None) -> "ESGCategory":
        """Case-insensitive lookup; anything outside the three pillars is invalid"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidParameterException(
                f"Category {value!r} must be one of: {[c.value for c in cls]}",
                parameter_name=parameter_name,
                field="category"
            )


def get_parameter_field(parameter: Any, *names: str) -> Any:
    """Read the first present attribute or key, so ORM rows, models and dicts all work"""
    for name in names:
        if isinstance(parameter, dict):
            if name in parameter:
                return parameter[name]
        elif hasattr(parameter, name):
            return getattr(parameter, name)
    return None


def _validated_decimal(value: Any, field: str) -> Decimal:
    # ValueError lets FastAPI answer malformed bodies with a 422
    try:
        return parse_decimal(value, field)
    except InvalidParameterException as e:
        raise ValueError(str(e))


# Organizations

class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, description="Organization display name")
    industry: Optional[str] = Field(None, description="Industry sector")
    size: Optional[int] = Field(None, ge=0, description="Number of employees")
    headquarters: Optional[str] = None


class OrganizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    industry: Optional[str] = None
    size: Optional[int] = None
    headquarters: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Parameters

class ParameterCreate(BaseModel):
    organization_id: int
    category: ESGCategory
    parameter_name: str = Field(..., min_length=1, description="Identifier such as 'renewable_energy_percentage'")
    current_value: Decimal
    target_value: Optional[Decimal] = None
    unit: Optional[str] = None
    impact_weight: Decimal = Field(default=DEFAULT_IMPACT_WEIGHT, description="Relative importance within its category")
    updated_by: Optional[str] = None

    @field_validator('category', mode='before')
    @classmethod
    def validate_category(cls, v):
        try:
            return ESGCategory.parse(v)
        except InvalidParameterException as e:
            raise ValueError(str(e))

    @field_validator('parameter_name')
    @classmethod
    def normalize_name(cls, v):
        name = v.strip()
        if not name:
            raise ValueError("parameter_name must not be blank")
        return name

    @field_validator('current_value', mode='before')
    @classmethod
    def validate_current_value(cls, v):
        return _validated_decimal(v, 'current_value')

    @field_validator('target_value', mode='before')
    @classmethod
    def validate_target_value(cls, v):
        if v is None or v == "":
            return None
        return _validated_decimal(v, 'target_value')

    @field_validator('impact_weight', mode='before')
    @classmethod
    def validate_impact_weight(cls, v):
        if v is None or v == "":
            return DEFAULT_IMPACT_WEIGHT
        return _validated_decimal(v, 'impact_weight')


class ParameterUpdate(BaseModel):
    current_value: Optional[Decimal] = None
    target_value: Optional[Decimal] = None
    unit: Optional[str] = None
    impact_weight: Optional[Decimal] = None
    updated_by: Optional[str] = None

    @field_validator('current_value', 'impact_weight', mode='before')
    @classmethod
    def validate_required_numbers(cls, v, info):
        if v is None or v == "":
            raise ValueError(f"'{info.field_name}' must not be blank; omit it to keep the stored value")
        return _validated_decimal(v, info.field_name)

    @field_validator('target_value', mode='before')
    @classmethod
    def validate_target_value(cls, v):
        # An explicit null clears the target
        if v is None or v == "":
            return None
        return _validated_decimal(v, 'target_value')


class ParameterResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    category: ESGCategory
    parameter_name: str
    current_value: float
    target_value: Optional[float] = None
    unit: Optional[str] = None
    impact_weight: float
    last_updated: Optional[datetime] = None
    updated_by: Optional[str] = None


# Scores

class ESGScoreResult(BaseModel):
    """Immutable snapshot produced by the aggregator"""
    model_config = ConfigDict(frozen=True)

    overall_score: float
    environmental_score: float
    social_score: float
    governance_score: float
    methodology: str
    calculation_date: datetime
    rating: str
    benchmark_data: Dict[str, Any] = Field(default_factory=dict)
    score_metrics: Dict[str, Any] = Field(default_factory=dict)

    @property
    def pillar_scores(self) -> Dict[str, float]:
        return {
            ESGCategory.ENVIRONMENTAL.value: self.environmental_score,
            ESGCategory.SOCIAL.value: self.social_score,
            ESGCategory.GOVERNANCE.value: self.governance_score,
        }


class ScoreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    overall_score: float
    environmental_score: float
    social_score: float
    governance_score: float
    methodology: str
    rating: Optional[str] = None
    calculation_date: datetime
    benchmark_data: Optional[Dict[str, Any]] = None
    score_metrics: Optional[Dict[str, Any]] = None


class ParameterCommitResponse(BaseModel):
    """A committed parameter edit together with the snapshot it produced"""
    parameter: ParameterResponse
    score: ScoreResponse


# Impact estimation

class ImpactResult(BaseModel):
    """Projected score deltas for one parameter change; never persisted"""
    model_config = ConfigDict(frozen=True)

    environmental_delta: float
    social_delta: float
    governance_delta: float
    overall_delta: float
    parameter_change: float


class ImpactRequest(BaseModel):
    parameter_name: str
    current_value: str
    new_value: str
    category: str
    weight: Optional[str] = None

    @field_validator('current_value', 'new_value', 'weight', mode='before')
    @classmethod
    def coerce_to_text(cls, v):
        # Sliders post numbers; the estimator validates the text itself
        if isinstance(v, (int, float, Decimal)) and not isinstance(v, bool):
            return str(v)
        return v


class StoredParameterImpactRequest(BaseModel):
    organization_id: int
    parameter_id: int
    new_value: str

    @field_validator('new_value', mode='before')
    @classmethod
    def coerce_to_text(cls, v):
        if isinstance(v, (int, float, Decimal)) and not isinstance(v, bool):
            return str(v)
        return v


class ImpactCurveRequest(BaseModel):
    parameter_name: str
    current_value: str
    category: str
    weight: Optional[str] = None
    lower: float = 0.0
    upper: float = 100.0
    steps: int = Field(default=11, ge=2, le=201)

    @field_validator('current_value', 'weight', mode='before')
    @classmethod
    def coerce_to_text(cls, v):
        if isinstance(v, (int, float, Decimal)) and not isinstance(v, bool):
            return str(v)
        return v

    @model_validator(mode='after')
    def check_bounds(self):
        if self.upper < self.lower:
            raise ValueError("upper must be greater than or equal to lower")
        return self


class ImpactPoint(BaseModel):
    value: float
    impact: ImpactResult


class ParameterTargetImpact(BaseModel):
    parameter_id: Optional[int] = None
    parameter_name: str
    category: ESGCategory
    current_value: float
    target_value: float
    impact: ImpactResult


class TargetImpactResult(BaseModel):
    parameters: List[ParameterTargetImpact] = Field(default_factory=list)
    total: ImpactResult
