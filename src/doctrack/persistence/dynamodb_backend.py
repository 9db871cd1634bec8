"""DynamoDB backend implementing ITrackingStore."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal
from functools import reduce
from typing import Any

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from doctrack.core.exceptions import TrackingStoreError
from doctrack.models.tracking import (
    Deleted,
    DeleteResult,
    Found,
    GetResult,
    NotFound,
    StoreFailure,
    TrackingQuery,
    TrackingRecord,
)
from doctrack.models.work_item import ContentLocator

logger = logging.getLogger(__name__)

SORT_KEY = "TRACKING"
# Fixed-width so stored timestamps compare correctly as strings
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _ts(value: datetime) -> str:
    return value.astimezone(UTC).strftime(_TS_FORMAT)


def _parse_ts(value: str) -> datetime:
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=UTC)


def _decode_decimals(item: dict[str, Any]) -> dict[str, Any]:
    """Convert Decimal values in a DynamoDB item to int/float."""
    out: dict[str, Any] = {}
    for k, v in item.items():
        if isinstance(v, Decimal):
            out[k] = int(v) if v == int(v) else float(v)
        elif isinstance(v, dict):
            out[k] = _decode_decimals(v)
        else:
            out[k] = v
    return out


def _partition_key(request_id: str) -> str:
    return f"REQUEST#{request_id}"


def record_to_item(record: TrackingRecord) -> dict[str, Any]:
    item: dict[str, Any] = {
        "PK": _partition_key(record.request_id),
        "SK": SORT_KEY,
        "requestId": record.request_id,
        "internalKey": record.internal_key,
        "sourceContainer": record.source.container,
        "sourceName": record.source.name,
        "destinationContainer": record.destination.container,
        "destinationName": record.destination.name,
        "createdAt": _ts(record.created_at),
        "submittedAt": _ts(record.submitted_at),
        "lastCheckedAt": _ts(record.last_checked_at),
        "checkCount": record.check_count,
        "status": record.status.value,
        "lastExternalStatus": record.last_external_status,
    }
    if record.event_received_at is not None:
        item["eventReceivedAt"] = _ts(record.event_received_at)
    return item


def item_to_record(item: dict[str, Any]) -> TrackingRecord:
    item = _decode_decimals(item)
    received = item.get("eventReceivedAt")
    return TrackingRecord(
        request_id=item["requestId"],
        internal_key=item["internalKey"],
        source=ContentLocator(container=item["sourceContainer"], name=item["sourceName"]),
        destination=ContentLocator(
            container=item["destinationContainer"], name=item["destinationName"]
        ),
        created_at=_parse_ts(item["createdAt"]),
        event_received_at=_parse_ts(received) if received else None,
        submitted_at=_parse_ts(item["submittedAt"]),
        last_checked_at=_parse_ts(item["lastCheckedAt"]),
        check_count=item.get("checkCount", 0),
        status=item["status"],
        last_external_status=item.get("lastExternalStatus", ""),
    )


class DynamoDBTrackingStore:
    """Production ITrackingStore backed by a single DynamoDB table.

    Each request lives under its own partition key, so writers to different
    requests never contend. Queries are filtered scans; the active set is
    expected to stay small relative to a scan page.
    """

    def __init__(self, table_name: str = "doctrack-request-tracking", table_suffix: str = "",
                 region: str = "us-east-1", endpoint_url: str | None = None) -> None:
        self._table_name = f"{table_name}{table_suffix}"
        self._region = region
        self._endpoint_url = endpoint_url
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._ddb = boto3.resource("dynamodb", **kwargs)
        self._table = self._ddb.Table(self._table_name)

    @property
    def table_name(self) -> str:
        return self._table_name

    @staticmethod
    def _filter_expression(query: TrackingQuery):
        conditions = [Attr("SK").eq(SORT_KEY)]
        if query.status is not None:
            conditions.append(Attr("status").eq(query.status.value))
        if query.submitted_before is not None:
            conditions.append(Attr("submittedAt").lt(_ts(query.submitted_before)))
        if query.submitted_after is not None:
            conditions.append(Attr("submittedAt").gt(_ts(query.submitted_after)))
        return reduce(lambda a, b: a & b, conditions)

    # ---- ITrackingStore methods ----

    def get(self, request_id: str) -> GetResult:
        try:
            resp = self._table.get_item(
                Key={"PK": _partition_key(request_id), "SK": SORT_KEY},
                ConsistentRead=True,
            )
        except ClientError as exc:
            logger.error("DynamoDB get failed for request %s: %s", request_id, exc)
            return StoreFailure(request_id=request_id, error=str(exc))
        item = resp.get("Item")
        if not item:
            return NotFound(request_id=request_id)
        return Found(record=item_to_record(item))

    def query(self, query: TrackingQuery) -> list[TrackingRecord]:
        kwargs: dict[str, Any] = {"FilterExpression": self._filter_expression(query)}
        records: list[TrackingRecord] = []
        try:
            while True:
                resp = self._table.scan(**kwargs)
                records.extend(item_to_record(i) for i in resp.get("Items", []))
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except ClientError as exc:
            raise TrackingStoreError(f"DynamoDB scan of {self._table_name} failed: {exc}") from exc
        return records

    def upsert(self, record: TrackingRecord) -> None:
        try:
            self._table.put_item(Item=record_to_item(record))
        except ClientError as exc:
            raise TrackingStoreError(
                f"DynamoDB upsert failed for request {record.request_id!r}: {exc}"
            ) from exc

    def delete(self, request_id: str) -> DeleteResult:
        try:
            self._table.delete_item(
                Key={"PK": _partition_key(request_id), "SK": SORT_KEY},
                ConditionExpression="attribute_exists(PK)",
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return NotFound(request_id=request_id)
            logger.error("DynamoDB delete failed for request %s: %s", request_id, exc)
            return StoreFailure(request_id=request_id, error=str(exc))
        return Deleted(request_id=request_id)
