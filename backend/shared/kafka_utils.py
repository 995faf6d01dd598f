import os
import logging
import json
from aiokafka import AIOKafkaProducer, AIOKafkaConsumer

logger = logging.getLogger(__name__)


class KafkaConfig:
    """Shared Kafka configuration"""
    BOOTSTRAP_SERVERS       = os.getenv("KAFKA_BOOTSTRAP", "kafka:9092")
    RETRY_BACKOFF           = int(os.getenv("KAFKA_RETRY_BACKOFF", "1000"))
    REQUEST_TIMEOUT         = int(os.getenv("KAFKA_REQUEST_TIMEOUT", "30000"))

    # Services consume from these
    ESG_PARAMETER_UPDATES_TOPIC = os.getenv("ESG_PARAMETER_UPDATES_TOPIC", "esg-parameter-updates")

    # Services produce to these
    ESG_SCORES_TOPIC            = os.getenv("ESG_SCORES_TOPIC", "esg-scores")
    ERROR_EVENTS_TOPIC          = os.getenv("ERROR_EVENTS_TOPIC", "error-events-topic")


def serialize_message(value) -> bytes:
    return json.dumps(value, default=str).encode('utf-8')


def deserialize_message(raw: bytes):
    return json.loads(raw.decode('utf-8'))


async def create_kafka_producer(bootstrap_servers: str = KafkaConfig.BOOTSTRAP_SERVERS) -> AIOKafkaProducer:
    """Create standardized Kafka producer"""
    producer = AIOKafkaProducer(
        bootstrap_servers=bootstrap_servers,
        retry_backoff_ms=KafkaConfig.RETRY_BACKOFF,
        request_timeout_ms=KafkaConfig.REQUEST_TIMEOUT,
        compression_type="gzip",
        acks='all',
        enable_idempotence=True,
        value_serializer=serialize_message
    )
    await producer.start()
    logger.info(f"Kafka producer connected to {bootstrap_servers}")
    return producer


async def create_kafka_consumer(
    topics: list,
    group_id: str,
    auto_offset_reset: str = 'latest',
    bootstrap_servers: str = KafkaConfig.BOOTSTRAP_SERVERS
) -> AIOKafkaConsumer:
    """Create standardized Kafka consumer"""
    consumer = AIOKafkaConsumer(
        *topics,
        bootstrap_servers=bootstrap_servers,
        group_id=group_id,
        value_deserializer=deserialize_message,
        auto_offset_reset=auto_offset_reset,
    )
    await consumer.start()
    logger.info(f"Kafka consumer subscribed to {topics} as group {group_id}")
    return consumer
