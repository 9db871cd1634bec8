"""Create the tracking table and notification topics.

Usage:
    python scripts/bootstrap_aws.py --endpoint-url http://localhost:4566
"""

from __future__ import annotations

import argparse
from typing import Any

import boto3

TABLE_NAME = "doctrack-request-tracking"
TOPIC_NAMES = ("doctrack-status", "doctrack-notification")


def create_tracking_table(ddb: Any, table_name: str = TABLE_NAME, suffix: str = "") -> str:
    """Create the tracking table. Skips if it already exists."""
    client = ddb.meta.client
    full_name = f"{table_name}{suffix}"
    existing = client.list_tables().get("TableNames", [])
    if full_name in existing:
        print(f"  Table {full_name} already exists, skipping")
        return full_name

    client.create_table(
        TableName=full_name,
        KeySchema=[
            {"AttributeName": "PK", "KeyType": "HASH"},
            {"AttributeName": "SK", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "PK", "AttributeType": "S"},
            {"AttributeName": "SK", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    print(f"  Created table {full_name}")
    return full_name


def create_topics(sns: Any, suffix: str = "") -> dict[str, str]:
    """Create the status and notification topics; returns name -> ARN.

    CreateTopic is idempotent, so reruns return the existing ARNs.
    """
    arns: dict[str, str] = {}
    for name in TOPIC_NAMES:
        full_name = f"{name}{suffix}"
        arns[full_name] = sns.create_topic(Name=full_name)["TopicArn"]
        print(f"  Topic {full_name}: {arns[full_name]}")
    return arns


def main() -> None:
    parser = argparse.ArgumentParser(description="Bootstrap AWS resources for DocTrack")
    parser.add_argument("--endpoint-url", default=None, help="AWS endpoint (e.g. http://localhost:4566)")
    parser.add_argument("--table-suffix", default="", help="Resource name suffix (e.g. -dev)")
    parser.add_argument("--region", default="us-east-1", help="AWS region")
    args = parser.parse_args()

    kwargs: dict[str, Any] = {"region_name": args.region}
    if args.endpoint_url:
        kwargs["endpoint_url"] = args.endpoint_url

    print("Creating tracking table...")
    create_tracking_table(boto3.resource("dynamodb", **kwargs), suffix=args.table_suffix)

    print("Creating topics...")
    create_topics(boto3.client("sns", **kwargs), suffix=args.table_suffix)

    print("Done!")


if __name__ == "__main__":
    main()
