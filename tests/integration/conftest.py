"""Integration test fixtures: LocalStack DynamoDB, S3 and SNS."""

from __future__ import annotations

import os
import sys

import boto3
import pytest

# Default LocalStack endpoint
LOCALSTACK_URL = os.environ.get("LOCALSTACK_URL", "http://localhost:4566")
TABLE_SUFFIX = "-inttest"


def _localstack_available() -> bool:
    """Check if LocalStack is reachable."""
    try:
        client = boto3.client("dynamodb", region_name="us-east-1", endpoint_url=LOCALSTACK_URL)
        client.list_tables()
        return True
    except Exception:
        return False


skip_no_localstack = pytest.mark.skipif(
    not _localstack_available(),
    reason="LocalStack not available",
)


@pytest.fixture(scope="session")
def localstack_ddb():
    """DynamoDB resource pointing at LocalStack."""
    return boto3.resource("dynamodb", region_name="us-east-1", endpoint_url=LOCALSTACK_URL)


@pytest.fixture(scope="session")
def localstack_sns():
    """SNS client pointing at LocalStack."""
    return boto3.client("sns", region_name="us-east-1", endpoint_url=LOCALSTACK_URL)


@pytest.fixture(scope="session")
def bootstrapped(localstack_ddb, localstack_sns):
    """Create the tracking table and topics via the bootstrap script."""
    sys.path.insert(0, str(os.path.join(os.path.dirname(__file__), "..", "..", "scripts")))
    from bootstrap_aws import create_topics, create_tracking_table

    table_name = create_tracking_table(localstack_ddb, suffix=TABLE_SUFFIX)
    topic_arns = create_topics(localstack_sns, suffix=TABLE_SUFFIX)
    return {"table_name": table_name, "topic_arns": topic_arns}
