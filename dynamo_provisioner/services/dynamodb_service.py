from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import aioboto3
from botocore.exceptions import ClientError

from dynamo_provisioner.services.config import DynamoDBConfig


logger = logging.getLogger(__name__)


class DynamoDBServiceError(RuntimeError):
    pass


class TableStatus(str, Enum):
    CREATING = "CREATING"
    ACTIVE = "ACTIVE"
    UPDATING = "UPDATING"
    DELETING = "DELETING"
    ERROR = "ERROR"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "TableStatus":
        # Statuses outside the known set (ARCHIVING, INACCESSIBLE_ENCRYPTION_CREDENTIALS, ...)
        # are not usable for serving, so they collapse to ERROR.
        try:
            return cls((raw or "").upper())
        except ValueError:
            return cls.ERROR


@dataclass(frozen=True)
class TableDescriptor:
    """Remote-observed state of a table that exists."""

    table_name: str
    status: TableStatus
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_active(self) -> bool:
        return self.status is TableStatus.ACTIVE

    @staticmethod
    def from_describe_response(resp: dict[str, Any]) -> "TableDescriptor":
        table = resp.get("Table") or {}
        return TableDescriptor(
            table_name=str(table.get("TableName", "")),
            status=TableStatus.parse(table.get("TableStatus")),
            raw=table,
        )


def _error_code(exc: ClientError) -> str:
    return str((exc.response.get("Error") or {}).get("Code", ""))


class DynamoDBService:
    """Minimal DynamoDB control-plane service (describe/create/list tables).

    A new aioboto3 client is opened per call, so one instance can be shared by
    many concurrently running coroutines.
    """

    def __init__(self, config: DynamoDBConfig) -> None:
        self._config = config
        self._session = aioboto3.Session()

    @property
    def config(self) -> DynamoDBConfig:
        return self._config

    def _client(self) -> Any:
        return self._session.client(
            "dynamodb",
            region_name=self._config.region_name,
            endpoint_url=self._config.endpoint_url,
        )

    @staticmethod
    def _validate_table_name(table_name: str) -> None:
        if not table_name or not table_name.strip():
            raise ValueError("table_name must be provided")

    async def describe_table(self, *, table_name: str) -> Optional[TableDescriptor]:
        """Return the table's descriptor, or None if the table does not exist."""

        self._validate_table_name(table_name)

        try:
            client: Any = self._client()
            async with client as dynamodb:
                resp = await dynamodb.describe_table(TableName=table_name)
        except ClientError as exc:
            if _error_code(exc) == "ResourceNotFoundException":
                return None
            logger.exception("DynamoDB describe_table failed (table=%s)", table_name)
            raise DynamoDBServiceError(f"Failed to describe DynamoDB table (table={table_name})") from exc
        except Exception as exc:
            logger.exception("DynamoDB describe_table failed (table=%s)", table_name)
            raise DynamoDBServiceError(f"Failed to describe DynamoDB table (table={table_name})") from exc

        return TableDescriptor.from_describe_response(resp)

    async def create_table(self, **params: Any) -> dict[str, Any]:
        """Issue CreateTable and return the acknowledged TableDescription.

        The table is normally still CREATING when this returns.
        """

        table_name = str(params.get("TableName") or "")
        self._validate_table_name(table_name)

        try:
            client: Any = self._client()
            async with client as dynamodb:
                resp = await dynamodb.create_table(**params)
        except Exception as exc:
            logger.exception("DynamoDB create_table failed (table=%s)", table_name)
            raise DynamoDBServiceError(f"Failed to create DynamoDB table (table={table_name})") from exc

        return resp.get("TableDescription") or {}

    async def list_table_names(self) -> list[str]:
        names: list[str] = []
        try:
            client: Any = self._client()
            async with client as dynamodb:
                kwargs: dict[str, Any] = {}
                while True:
                    resp = await dynamodb.list_tables(**kwargs)
                    names.extend(resp.get("TableNames") or [])
                    last = resp.get("LastEvaluatedTableName")
                    if not last:
                        break
                    kwargs["ExclusiveStartTableName"] = last
        except Exception as exc:
            logger.exception("DynamoDB list_tables failed")
            raise DynamoDBServiceError("Failed to list DynamoDB tables") from exc

        return names
