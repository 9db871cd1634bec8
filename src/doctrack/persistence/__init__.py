"""Pluggable persistence backends behind Protocol interfaces."""

from __future__ import annotations

from doctrack.core.config import AppSettings
from doctrack.core.protocols import IContentStore, IMessageBus, ITrackingStore
from doctrack.messaging.sns_bus import SNSMessageBus
from doctrack.persistence.dynamodb_backend import DynamoDBTrackingStore
from doctrack.persistence.memory_backend import (
    MemoryContentStore,
    MemoryMessageBus,
    MemoryTrackingStore,
)
from doctrack.persistence.redis_backend import RedisTrackingStore
from doctrack.persistence.s3_backend import S3ContentStore


def create_tracking_store(settings: AppSettings) -> ITrackingStore:
    if settings.tracking_backend == "memory":
        return MemoryTrackingStore()
    if settings.tracking_backend == "redis":
        return RedisTrackingStore(
            host=settings.redis.host,
            port=settings.redis.port,
            db=settings.redis.db,
            key_prefix=settings.redis.key_prefix,
        )
    return DynamoDBTrackingStore(
        table_name=settings.dynamodb.table_name,
        table_suffix=settings.dynamodb.table_suffix,
        region=settings.dynamodb.region,
        endpoint_url=settings.dynamodb.endpoint_url,
    )


def create_persistence(
    settings: AppSettings | None = None,
) -> tuple[ITrackingStore, IContentStore, IMessageBus]:
    """Create wired-up persistence backends from application settings.

    Returns:
        Tuple of (tracking_store, content_store, message_bus).
    """
    if settings is None:
        settings = AppSettings()

    tracking_store = create_tracking_store(settings)

    if settings.tracking_backend == "memory":
        return tracking_store, MemoryContentStore(), MemoryMessageBus()

    content_store = S3ContentStore(
        region=settings.s3.region,
        endpoint_url=settings.s3.endpoint_url,
    )

    message_bus = SNSMessageBus(
        topic_arns={
            "status": settings.messaging.status_topic_arn,
            "notification": settings.messaging.notification_topic_arn,
        },
        region=settings.messaging.region,
        endpoint_url=settings.messaging.endpoint_url,
    )

    return tracking_store, content_store, message_bus
