from typing import List, Dict, Any, Optional, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.pool import StaticPool

from shared.kafka_utils import KafkaConfig
from shared.database import get_database_url, is_sqlite_url


class EsgScoringSettings(BaseSettings):
    """esg_scoring service configuration settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="ESG_SCORING_",
        extra="ignore"
    )

    # Service identity
    service_name: str = "esg-scoring-service"
    version: str = "0.1.0"

    # Database configuration
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_pre_ping: bool = True
    database_pool_recycle: int = 3600  # 1 hour

    # Kafka configuration
    kafka_enabled: bool = True
    kafka_bootstrap_servers: str = KafkaConfig.BOOTSTRAP_SERVERS
    kafka_consumer_group_id: str = "esg-scoring-service"
    kafka_auto_offset_reset: str = "latest"

    # Kafka topics
    parameter_updates_topic: str = KafkaConfig.ESG_PARAMETER_UPDATES_TOPIC
    esg_scores_topic: str = KafkaConfig.ESG_SCORES_TOPIC
    error_events_topic: str = KafkaConfig.ERROR_EVENTS_TOPIC

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8007
    api_workers: int = 1

    cors_origins: Union[List[str], str] = "*"
    cors_allow_credentials: bool = True
    cors_allow_methods: Union[List[str], str] = "*"
    cors_allow_headers: Union[List[str], str] = "*"

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"

    # Score snapshot persistence
    retry_attempts: int = 3
    retry_delay_seconds: float = 0.5

    # Scoring
    methodology: str = "MSCI-style weighted"
    parameter_rules_path: Optional[str] = None
    default_history_limit: int = 10
    max_history_limit: int = 100

    # Health check settings
    kafka_health_check_enabled: bool = True
    database_health_check_enabled: bool = True

    @field_validator('cors_origins', 'cors_allow_headers', mode='before')
    @classmethod
    def parse_csv_list(cls, v):
        if v is None or (isinstance(v, str) and v.strip() in ("", "*")):
            return ["*"]
        if isinstance(v, str):
            return [item.strip() for item in v.split(',') if item.strip()]
        if isinstance(v, list):
            return [str(item).strip() for item in v if str(item).strip()]
        return ["*"]

    @field_validator('cors_allow_methods', mode='before')
    @classmethod
    def parse_cors_methods(cls, v):
        if v is None or (isinstance(v, str) and v.strip() in ("", "*")):
            return ["*"]
        if isinstance(v, str):
            return [method.strip().upper() for method in v.split(',') if method.strip()]
        if isinstance(v, list):
            return [str(method).strip().upper() for method in v if str(method).strip()]
        return ["*"]

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Invalid log level. Must be one of: {valid_levels}')
        return v.upper()

    @field_validator('max_history_limit', 'default_history_limit')
    @classmethod
    def validate_history_limit(cls, v):
        if v < 1:
            raise ValueError("History limits must be at least 1")
        return v

    @property
    def database_url(self) -> str:
        """Resolved from ESG_SCORING_DATABASE_URL or the ESG_SCORING_DB_* parts"""
        return get_database_url("esg_scoring")

    def engine_config_for(self, url: str) -> Dict[str, Any]:
        if is_sqlite_url(url):
            # Pool sizing does not apply to SQLite; share one connection across threads
            return {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            }
        return {
            "pool_size": self.database_pool_size,
            "max_overflow": self.database_max_overflow,
            "pool_pre_ping": self.database_pool_pre_ping,
            "pool_recycle": self.database_pool_recycle,
        }


# Global settings instance
settings = EsgScoringSettings()
