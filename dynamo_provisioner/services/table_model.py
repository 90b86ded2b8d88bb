from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from dynamo_provisioner.services.dynamodb_service import DynamoDBService, TableDescriptor


_ATTRIBUTE_TYPES = {"S", "N", "B"}
PROVISIONED = "PROVISIONED"
PAY_PER_REQUEST = "PAY_PER_REQUEST"


@dataclass(frozen=True)
class TableOptions:
    """Per-model provisioning options passed through to CreateTable.

    `index_throughput` maps a global secondary index name to (read, write) capacity.
    Indexes without an entry inherit the table's capacity.
    """

    read_capacity: int = 1
    write_capacity: int = 1
    billing_mode: str = PROVISIONED
    index_throughput: dict[str, tuple[int, int]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.billing_mode not in (PROVISIONED, PAY_PER_REQUEST):
            raise ValueError(f"Unsupported billing_mode: {self.billing_mode!r}")
        if self.read_capacity < 1 or self.write_capacity < 1:
            raise ValueError("read_capacity and write_capacity must be >= 1")

    def throughput_for_index(self, index_name: str) -> dict[str, int]:
        read, write = self.index_throughput.get(index_name, (self.read_capacity, self.write_capacity))
        return {"ReadCapacityUnits": read, "WriteCapacityUnits": write}

    @property
    def table_throughput(self) -> dict[str, int]:
        return {"ReadCapacityUnits": self.read_capacity, "WriteCapacityUnits": self.write_capacity}


@dataclass(frozen=True)
class KeyAttribute:
    name: str
    type: str = "S"

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("key attribute name must be provided")
        if self.type not in _ATTRIBUTE_TYPES:
            raise ValueError(f"Unsupported key attribute type: {self.type!r}")


@dataclass(frozen=True)
class IndexSchema:
    name: str
    hash_key: KeyAttribute
    range_key: Optional[KeyAttribute] = None
    projection: str = "ALL"


@dataclass(frozen=True)
class TableSchema:
    """Key layout of a model's table.

    Only what CreateTable needs: key attributes and global secondary indexes.
    """

    hash_key: KeyAttribute
    range_key: Optional[KeyAttribute] = None
    global_indexes: tuple[IndexSchema, ...] = ()
    version: int = 0

    def attribute_definitions(self) -> list[dict[str, str]]:
        seen: dict[str, str] = {}
        keys = [self.hash_key, self.range_key]
        for index in self.global_indexes:
            keys.extend([index.hash_key, index.range_key])

        for attr in keys:
            if attr is None:
                continue
            existing = seen.get(attr.name)
            if existing is not None and existing != attr.type:
                raise ValueError(f"Conflicting types for key attribute {attr.name!r}: {existing} vs {attr.type}")
            seen[attr.name] = attr.type

        return [{"AttributeName": name, "AttributeType": type_} for name, type_ in seen.items()]

    @staticmethod
    def key_schema(hash_key: KeyAttribute, range_key: Optional[KeyAttribute]) -> list[dict[str, str]]:
        schema = [{"AttributeName": hash_key.name, "KeyType": "HASH"}]
        if range_key is not None:
            schema.append({"AttributeName": range_key.name, "KeyType": "RANGE"})
        return schema


class TableCapability(ABC):
    """What the provisioning orchestrator needs from a model.

    Every compiled model implements this; test doubles subclass it directly.
    """

    @abstractmethod
    def table_name(self) -> str:
        ...

    @abstractmethod
    async def describe_table(self) -> Optional[TableDescriptor]:
        """Current remote state, or None when the table does not exist."""

    @abstractmethod
    async def create_table(self, options: TableOptions) -> dict[str, Any]:
        """Issue the create call; returns the acknowledgment, not an ACTIVE table."""


class TableModel(TableCapability):
    """A compiled, versioned model bound to one table and one DynamoDB service."""

    def __init__(
        self,
        name: str,
        schema: TableSchema,
        service: DynamoDBService,
        *,
        table_name: Optional[str] = None,
    ) -> None:
        if not name or not name.strip():
            raise ValueError("model name must be provided")
        self._name = name
        self._schema = schema
        self._service = service
        # extremely simple table names: Widget -> widgets
        self._table_name = table_name or f"{name.lower()}s"

    def __repr__(self) -> str:
        return f"TableModel(name={self._name!r}, version={self.version}, table={self._table_name!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> int:
        return self._schema.version

    @property
    def schema(self) -> TableSchema:
        return self._schema

    def table_name(self) -> str:
        return self._table_name

    async def describe_table(self) -> Optional[TableDescriptor]:
        return await self._service.describe_table(table_name=self._table_name)

    async def create_table(self, options: TableOptions) -> dict[str, Any]:
        return await self._service.create_table(**self.create_table_params(options))

    def create_table_params(self, options: TableOptions) -> dict[str, Any]:
        schema = self._schema
        params: dict[str, Any] = {
            "TableName": self._table_name,
            "AttributeDefinitions": schema.attribute_definitions(),
            "KeySchema": TableSchema.key_schema(schema.hash_key, schema.range_key),
            "BillingMode": options.billing_mode,
        }
        provisioned = options.billing_mode == PROVISIONED
        if provisioned:
            params["ProvisionedThroughput"] = options.table_throughput

        if schema.global_indexes:
            indexes = []
            for index in schema.global_indexes:
                index_spec: dict[str, Any] = {
                    "IndexName": index.name,
                    "KeySchema": TableSchema.key_schema(index.hash_key, index.range_key),
                    "Projection": {"ProjectionType": index.projection},
                }
                if provisioned:
                    index_spec["ProvisionedThroughput"] = options.throughput_for_index(index.name)
                indexes.append(index_spec)
            params["GlobalSecondaryIndexes"] = indexes

        return params
