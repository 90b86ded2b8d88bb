from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class DynamoDBConfig:
    """Runtime configuration for DynamoDB control-plane calls.

    `endpoint_url` is only needed for DynamoDB Local or other compatible endpoints,
    e.g. "http://localhost:8000".
    """

    region_name: Optional[str] = None
    endpoint_url: Optional[str] = None

    @staticmethod
    def from_env() -> "DynamoDBConfig":
        region_name = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION")
        endpoint_url = (os.getenv("DYNAMODB_ENDPOINT_URL") or "").strip() or None

        return DynamoDBConfig(region_name=region_name, endpoint_url=endpoint_url)
