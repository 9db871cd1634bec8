"""SNS message bus implementing IMessageBus."""

from __future__ import annotations

import json
import logging
from typing import Any

import boto3
from botocore.exceptions import ClientError

from doctrack.core.exceptions import NotificationError

logger = logging.getLogger(__name__)


class SNSMessageBus:
    """Production IMessageBus publishing JSON envelopes to SNS topics.

    ``topic_arns`` maps logical topic names (``status``, ``notification``)
    to topic ARNs.
    """

    def __init__(self, topic_arns: dict[str, str], region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        self._topic_arns = dict(topic_arns)
        self._region = region
        self._endpoint_url = endpoint_url
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._client = boto3.client("sns", **kwargs)

    def publish(self, topic: str, envelope: dict[str, Any]) -> str:
        arn = self._topic_arns.get(topic)
        if not arn:
            raise NotificationError(f"No SNS topic configured for {topic!r}")

        attributes = {
            "contentType": {"DataType": "String", "StringValue": "application/json"},
        }
        event_type = envelope.get("eventType")
        if event_type:
            attributes["eventType"] = {"DataType": "String", "StringValue": str(event_type)}

        try:
            resp = self._client.publish(
                TopicArn=arn,
                Message=json.dumps(envelope, separators=(",", ":")),
                MessageAttributes=attributes,
            )
        except ClientError as exc:
            raise NotificationError(f"SNS publish to {topic!r} failed: {exc}") from exc

        message_id = resp["MessageId"]
        logger.debug("Published message %s to topic %s", message_id, topic)
        return message_id
