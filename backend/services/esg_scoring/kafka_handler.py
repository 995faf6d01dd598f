import asyncio
from datetime import datetime
from typing import Dict, Any, Optional
import logging

import backoff
from pydantic import ValidationError

from shared.kafka_utils import create_kafka_consumer, create_kafka_producer
from shared.models.events import EventFactory, EventType, ParameterUpdatedEvent
from shared.models.exceptions import (
    KafkaConnectionException, InvalidParameterException, OrganizationNotFoundException,
    ScoringException, DatabaseConnectionException
)
from .models import ESGScoreResult, ScoreResponse
from .score_manager import ScoreManager
from .config import settings

logger = logging.getLogger(__name__)


class ESGKafkaHandler:
    """Recalculates scores when parameter updates arrive and announces new snapshots"""

    def __init__(self, score_manager: ScoreManager):
        self.score_manager = score_manager
        self.consumer = None
        self.producer = None
        self.running = False

    @backoff.on_exception(
        backoff.expo,
        KafkaConnectionException,
        max_tries=5,
        max_time=60,
        jitter=backoff.full_jitter
    )
    async def start(self):
        """Start Kafka consumer and producer"""
        try:
            self.consumer = await create_kafka_consumer(
                topics=[settings.parameter_updates_topic],
                group_id=settings.kafka_consumer_group_id,
                auto_offset_reset=settings.kafka_auto_offset_reset,
                bootstrap_servers=settings.kafka_bootstrap_servers
            )
            self.producer = await create_kafka_producer(bootstrap_servers=settings.kafka_bootstrap_servers)

            self.running = True
            logger.info("Kafka handler started successfully")

        except Exception as e:
            logger.error(f"Failed to start Kafka handler: {e}")
            raise KafkaConnectionException(f"Failed to connect to Kafka: {e}")

    async def stop(self):
        """Stop Kafka consumer and producer"""
        self.running = False

        try:
            if self.consumer:
                await self.consumer.stop()
            if self.producer:
                await self.producer.stop()
            logger.info("Kafka handler stopped successfully")
        except Exception as e:
            logger.error(f"Error stopping Kafka handler: {e}")

    def is_running(self) -> bool:
        return self.running

    async def consume_messages(self):
        """Main consumer loop"""
        logger.info("Starting Kafka message consumer")

        while self.running:
            try:
                async for message in self.consumer:
                    logger.debug(
                        f"Received message on {message.topic} "
                        f"partition {message.partition} offset {message.offset}"
                    )
                    await self._process_message(message.value)
            except Exception as e:
                logger.exception(f"Error in consumer loop: {e}")
                if self.running:
                    await asyncio.sleep(5)

    async def _process_message(self, message_data: Dict[str, Any]):
        """Recalculate the organization's score for a parameter_updated event"""
        organization_id = None

        try:
            if not isinstance(message_data, dict) or message_data.get('event_type') != EventType.PARAMETER_UPDATED:
                event_type = message_data.get('event_type') if isinstance(message_data, dict) else None
                logger.debug(f"Ignoring message with event_type: {event_type}")
                return

            organization_id = message_data.get('organization_id')
            event = ParameterUpdatedEvent(**message_data)
            organization_id = event.organization_id
            logger.info(
                f"Parameter update for organization {organization_id} "
                f"(parameter {event.parameter_name or event.parameter_id}); recalculating score"
            )

            start_time = datetime.utcnow()
            score, result = await asyncio.to_thread(self.score_manager.recalculate, organization_id)
            processing_time = (datetime.utcnow() - start_time).total_seconds() * 1000

            await self.publish_score_calculated(score, result, processing_time)
            logger.info(f"Recalculated score for organization {organization_id} in {processing_time:.2f}ms")

        except ValidationError as e:
            logger.error(f"Malformed parameter update event: {e}")
            await self._publish_error_event(organization_id, "invalid_event", str(e))

        except (InvalidParameterException, OrganizationNotFoundException) as e:
            logger.error(f"Invalid parameter data for organization {organization_id}: {e}")
            await self._publish_error_event(organization_id, e.error_code, e.message)

        except ScoringException as e:
            logger.error(f"Scoring error for organization {organization_id}: {e}")
            await self._publish_error_event(organization_id, "scoring_error", e.message)

        except DatabaseConnectionException as e:
            logger.error(f"Database error for organization {organization_id}: {e}")
            await self._publish_error_event(organization_id, "database_error", e.message)

        except Exception as e:
            logger.exception(f"Unexpected error processing parameter update for organization {organization_id}: {e}")
            await self._publish_error_event(organization_id, "processing_error", str(e))

    async def publish_score_calculated(self, score: ScoreResponse, result: ESGScoreResult,
                                       processing_time_ms: Optional[float] = None):
        """Announce a persisted snapshot; publishing failures never undo the snapshot"""
        if not self.producer:
            logger.debug("Kafka producer not available; skipping score event")
            return

        try:
            event = EventFactory.create_score_calculated_event(
                organization_id=score.organization_id,
                score_id=score.id,
                overall_score=result.overall_score,
                pillar_scores=result.pillar_scores,
                rating=result.rating,
                processing_time_ms=processing_time_ms
            )
            await self.producer.send(settings.esg_scores_topic, event.model_dump())
            logger.info(f"Published score event for organization {score.organization_id}")

        except Exception as e:
            logger.error(f"Failed to publish score event: {e}")

    async def _publish_error_event(self, organization_id: Optional[int], error_type: str, error_message: str):
        if not self.producer:
            return

        try:
            event = EventFactory.create_error_event(
                organization_id=organization_id if isinstance(organization_id, int) else None,
                error_type=error_type,
                error_message=error_message
            )
            await self.producer.send(settings.error_events_topic, event.model_dump())
            logger.info(f"Published error event for organization {organization_id}: {error_type}")

        except Exception as e:
            logger.error(f"Failed to publish error event: {e}")
