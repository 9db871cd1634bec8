"""S3 content store implementing IContentStore."""

from __future__ import annotations

import boto3
from botocore.exceptions import ClientError

from doctrack.core.exceptions import ContentStoreError
from doctrack.models.work_item import ContentLocator

DEFAULT_CONTENT_TYPE = "application/octet-stream"
CONTENT_TYPE_KEY = "contentType"


class S3ContentStore:
    """Production IContentStore backed by S3. A locator's container is the bucket."""

    def __init__(self, region: str = "us-east-1", endpoint_url: str | None = None) -> None:
        self._region = region
        self._endpoint_url = endpoint_url
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._client = boto3.client("s3", **kwargs)

    def read(self, locator: ContentLocator) -> tuple[bytes, dict[str, str]]:
        try:
            resp = self._client.get_object(Bucket=locator.container, Key=locator.name)
            data = resp["Body"].read()
        except ClientError as exc:
            raise ContentStoreError(f"S3 read failed for {locator}: {exc}") from exc
        metadata = dict(resp.get("Metadata", {}))
        metadata.setdefault(CONTENT_TYPE_KEY, resp.get("ContentType", DEFAULT_CONTENT_TYPE))
        return data, metadata

    def write(self, locator: ContentLocator, data: bytes, metadata: dict[str, str]) -> str:
        """Store ``data`` and return the new object's ETag."""
        user_metadata = dict(metadata)
        content_type = user_metadata.pop(CONTENT_TYPE_KEY, DEFAULT_CONTENT_TYPE)
        try:
            resp = self._client.put_object(
                Bucket=locator.container,
                Key=locator.name,
                Body=data,
                ContentType=content_type,
                Metadata=user_metadata,
            )
        except ClientError as exc:
            raise ContentStoreError(f"S3 write failed for {locator}: {exc}") from exc
        return resp.get("ETag", "").strip('"')
