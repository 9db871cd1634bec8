"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

from datetime import timedelta
from typing import Literal

from pydantic_settings import BaseSettings


class MonitoringConfig(BaseSettings):
    """Status poller configuration."""

    model_config = {"env_prefix": "DOCTRACK_MONITOR_"}

    poll_interval_seconds: float = 300.0  # every 5 minutes
    max_age: timedelta = timedelta(hours=24)
    max_check_count: int = 100
    max_workers: int = 8


class ProcessorConfig(BaseSettings):
    """External document processing API configuration."""

    model_config = {"env_prefix": "DOCTRACK_PROCESSOR_"}

    base_url: str = "http://localhost:8080"
    subscription_key: str = ""
    subscription_key_header: str = "Ocp-Apim-Subscription-Key"
    timeout_seconds: float = 30.0
    submit_path: str = "/documents"
    status_path: str = "/documents/{key}/status"


class ResilienceConfig(BaseSettings):
    """Retry policy for calls to the external processor."""

    model_config = {"env_prefix": "DOCTRACK_RESILIENCE_"}

    max_attempts: int = 3
    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 30.0


class DynamoDBConfig(BaseSettings):
    """DynamoDB tracking table configuration."""

    model_config = {"env_prefix": "DOCTRACK_DYNAMO_"}

    table_name: str = "doctrack-request-tracking"
    table_suffix: str = ""  # "-dev", "-uat", or "" for prod
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class RedisConfig(BaseSettings):
    """Redis tracking store configuration."""

    model_config = {"env_prefix": "DOCTRACK_REDIS_"}

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    key_prefix: str = "doctrack"


class S3Config(BaseSettings):
    """S3 content store configuration."""

    model_config = {"env_prefix": "DOCTRACK_S3_"}

    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class MessagingConfig(BaseSettings):
    """SNS topics for outbound notifications."""

    model_config = {"env_prefix": "DOCTRACK_SNS_"}

    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override
    status_topic_arn: str = ""
    notification_topic_arn: str = ""


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "DOCTRACK_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"
    tracking_backend: Literal["dynamodb", "redis", "memory"] = "dynamodb"

    monitoring: MonitoringConfig = MonitoringConfig()
    processor: ProcessorConfig = ProcessorConfig()
    resilience: ResilienceConfig = ResilienceConfig()
    dynamodb: DynamoDBConfig = DynamoDBConfig()
    redis: RedisConfig = RedisConfig()
    s3: S3Config = S3Config()
    messaging: MessagingConfig = MessagingConfig()
