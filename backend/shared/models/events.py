from datetime import datetime
from typing import Dict, Any, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class EventType(str, Enum):
    PARAMETER_UPDATED = "parameter_updated"
    SCORE_CALCULATED = "score_calculated"
    ERROR_OCCURRED = "error_occurred"


class BaseEvent(BaseModel):
    """Base event model for Kafka messages"""
    model_config = ConfigDict(use_enum_values=True)

    event_type: EventType
    organization_id: Optional[int] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ParameterUpdatedEvent(BaseEvent):
    """Event emitted by writers when a parameter value has been committed"""
    event_type: EventType = EventType.PARAMETER_UPDATED
    organization_id: int
    parameter_id: Optional[int] = None
    parameter_name: Optional[str] = None


class ScoreCalculatedEvent(BaseEvent):
    """Event when a new score snapshot has been persisted"""
    event_type: EventType = EventType.SCORE_CALCULATED
    organization_id: int
    score_id: Optional[int] = None
    overall_score: float
    pillar_scores: Dict[str, float]
    rating: Optional[str] = None
    processing_time_ms: Optional[float] = None


class ErrorEvent(BaseEvent):
    """Event for error conditions"""
    event_type: EventType = EventType.ERROR_OCCURRED
    error_type: str
    error_message: str
    error_details: Dict[str, Any] = Field(default_factory=dict)


class EventFactory:
    """Factory for building outgoing events"""

    @staticmethod
    def create_score_calculated_event(organization_id: int, overall_score: float,
                                      pillar_scores: Dict[str, float], score_id: Optional[int] = None,
                                      rating: Optional[str] = None,
                                      processing_time_ms: Optional[float] = None,
                                      **kwargs) -> ScoreCalculatedEvent:
        return ScoreCalculatedEvent(
            organization_id=organization_id,
            score_id=score_id,
            overall_score=overall_score,
            pillar_scores=pillar_scores,
            rating=rating,
            processing_time_ms=processing_time_ms,
            **kwargs
        )

    @staticmethod
    def create_error_event(organization_id: Optional[int], error_type: str, error_message: str,
                           error_details: Dict[str, Any] = None, user_id: Optional[str] = None,
                           **kwargs) -> ErrorEvent:
        return ErrorEvent(
            organization_id=organization_id,
            user_id=user_id,
            error_type=error_type,
            error_message=error_message,
            error_details=error_details or {},
            **kwargs
        )
