from __future__ import annotations

import asyncio
from typing import Any, Optional, Union

from botocore.exceptions import ClientError

from dynamo_provisioner.services.config import DynamoDBConfig
from dynamo_provisioner.services.dynamodb_service import DynamoDBService, TableDescriptor, TableStatus
from dynamo_provisioner.services.table_model import TableCapability, TableOptions


Step = Union[None, TableStatus, BaseException]


class InFlightTracker:
    """Counts models between their first describe and their final ACTIVE answer."""

    def __init__(self) -> None:
        self.current = 0
        self.peak = 0

    def enter(self) -> None:
        self.current += 1
        self.peak = max(self.peak, self.current)

    def leave(self) -> None:
        self.current -= 1


class ScriptedModel(TableCapability):
    """In-memory model whose describe answers follow a script.

    Each describe call consumes the next step; the last step repeats forever.
    A step is None (table absent), a TableStatus, or an exception to raise.
    """

    def __init__(
        self,
        table_name: str,
        describes: list[Step],
        *,
        create_error: Optional[BaseException] = None,
        tracker: Optional[InFlightTracker] = None,
    ) -> None:
        self._table_name = table_name
        self._script = list(describes)
        self._create_error = create_error
        self._tracker = tracker
        self.describe_calls = 0
        self.create_calls: list[TableOptions] = []
        self.became_active = False

    def table_name(self) -> str:
        return self._table_name

    async def describe_table(self) -> Optional[TableDescriptor]:
        await asyncio.sleep(0)
        if self.describe_calls == 0 and self._tracker is not None:
            self._tracker.enter()
        step = self._script[min(self.describe_calls, len(self._script) - 1)]
        self.describe_calls += 1

        if isinstance(step, BaseException):
            raise step
        if step is None:
            return None
        if step is TableStatus.ACTIVE and self.create_calls and not self.became_active:
            self.became_active = True
            if self._tracker is not None:
                self._tracker.leave()
        return TableDescriptor(table_name=self._table_name, status=step)

    async def create_table(self, options: TableOptions) -> dict[str, Any]:
        await asyncio.sleep(0)
        self.create_calls.append(options)
        if self._create_error is not None:
            raise self._create_error
        return {"TableName": self._table_name, "TableStatus": "CREATING"}


class InMemoryDynamoDBService(DynamoDBService):
    """DynamoDBService backed by a dict; a created table turns ACTIVE on the next describe."""

    def __init__(self) -> None:
        super().__init__(DynamoDBConfig(region_name="us-east-1"))
        self.tables: dict[str, TableStatus] = {}
        self.create_params: list[dict[str, Any]] = []

    async def describe_table(self, *, table_name: str) -> Optional[TableDescriptor]:
        status = self.tables.get(table_name)
        if status is None:
            return None
        if status is TableStatus.CREATING:
            self.tables[table_name] = TableStatus.ACTIVE
        return TableDescriptor(table_name=table_name, status=status)

    async def create_table(self, **params: Any) -> dict[str, Any]:
        self.create_params.append(params)
        self.tables[params["TableName"]] = TableStatus.CREATING
        return {"TableName": params["TableName"], "TableStatus": "CREATING"}

    async def list_table_names(self) -> list[str]:
        return sorted(self.tables)


class StubDynamoDBClient:
    def __init__(self, **responses: Any) -> None:
        self._responses = responses
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def __aenter__(self) -> "StubDynamoDBClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)

        async def _call(**kwargs: Any) -> Any:
            self.calls.append((name, kwargs))
            result = self._responses[name]
            if callable(result):
                result = result(**kwargs)
            if isinstance(result, BaseException):
                raise result
            return result

        return _call


def client_error(code: str, operation: str = "DescribeTable") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)
