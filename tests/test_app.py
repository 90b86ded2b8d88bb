from __future__ import annotations

import httpx
import pytest

from dynamo_provisioner.main import create_app, lifespan
from dynamo_provisioner.services.config import ProvisioningConfig
from dynamo_provisioner.services.dynamodb_service import DynamoDBServiceError, TableStatus
from dynamo_provisioner.services.registry import ModelRegistry
from dynamo_provisioner.services.table_model import KeyAttribute, TableOptions, TableSchema


def _registry(service) -> ModelRegistry:
    registry = ModelRegistry(service)
    registry.define("Widget", TableSchema(hash_key=KeyAttribute("id")))
    registry.define("Gadget", TableSchema(hash_key=KeyAttribute("id"), version=1))
    return registry


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_list_tables_reports_remote_status(in_memory_service) -> None:
    in_memory_service.tables["widgets"] = TableStatus.UPDATING
    in_memory_service.tables["legacy-orders"] = TableStatus.ACTIVE
    app = create_app(registry=_registry(in_memory_service))

    async with _client(app) as client:
        r = await client.get("/tables")

    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert body["tables"] == [
        {"model_name": "Gadget", "version": 1, "table_name": "gadgets", "exists": False, "status": None},
        {"model_name": "Widget", "version": 0, "table_name": "widgets", "exists": True, "status": "UPDATING"},
    ]
    assert body["unmanaged_tables"] == ["legacy-orders"]


@pytest.mark.asyncio
async def test_provision_endpoint_creates_missing_tables(in_memory_service) -> None:
    in_memory_service.tables["widgets"] = TableStatus.ACTIVE
    app = create_app(
        registry=_registry(in_memory_service),
        provisioning_config=ProvisioningConfig(poll_interval_seconds=0),
    )

    async with _client(app) as client:
        r = await client.post("/tables/provision")

    assert r.status_code == 200
    assert r.json() == {"created": ["gadgets"], "existing": ["widgets"]}
    assert in_memory_service.tables["gadgets"] is TableStatus.ACTIVE


@pytest.mark.asyncio
async def test_provisioning_failure_maps_to_502(in_memory_service, monkeypatch) -> None:
    async def _failing_create(**params):
        raise DynamoDBServiceError("LimitExceededException")

    monkeypatch.setattr(in_memory_service, "create_table", _failing_create)
    in_memory_service.tables["widgets"] = TableStatus.ACTIVE
    app = create_app(
        registry=_registry(in_memory_service),
        provisioning_config=ProvisioningConfig(poll_interval_seconds=0),
    )

    async with _client(app) as client:
        r = await client.post("/tables/provision")

    assert r.status_code == 502
    body = r.json()
    assert body["model_name"] == "Gadget"
    assert body["table_name"] == "gadgets"
    assert "gadgets" in body["detail"]


@pytest.mark.asyncio
async def test_startup_provisioning_is_opt_in(in_memory_service, monkeypatch) -> None:
    app = create_app(
        registry=_registry(in_memory_service),
        provisioning_config=ProvisioningConfig(poll_interval_seconds=0),
    )

    monkeypatch.delenv("TABLE_PROVISION_ON_STARTUP", raising=False)
    async with lifespan(app):
        pass
    assert in_memory_service.create_params == []

    monkeypatch.setenv("TABLE_PROVISION_ON_STARTUP", "1")
    async with lifespan(app):
        pass
    assert sorted(in_memory_service.tables) == ["gadgets", "widgets"]


@pytest.mark.asyncio
async def test_provision_endpoint_uses_table_options(in_memory_service) -> None:
    app = create_app(
        registry=_registry(in_memory_service),
        provisioning_config=ProvisioningConfig(poll_interval_seconds=0),
        table_options={"Gadget": TableOptions(read_capacity=5, write_capacity=2)},
    )

    async with _client(app) as client:
        r = await client.post("/tables/provision")

    assert r.status_code == 200
    throughput = {p["TableName"]: p["ProvisionedThroughput"] for p in in_memory_service.create_params}
    assert throughput == {
        "gadgets": {"ReadCapacityUnits": 5, "WriteCapacityUnits": 2},
        "widgets": {"ReadCapacityUnits": 1, "WriteCapacityUnits": 1},
    }


@pytest.mark.asyncio
async def test_startup_provisioning_uses_table_options(in_memory_service, monkeypatch) -> None:
    app = create_app(
        registry=_registry(in_memory_service),
        provisioning_config=ProvisioningConfig(poll_interval_seconds=0),
        table_options={"Widget": TableOptions(read_capacity=8, write_capacity=3)},
    )

    monkeypatch.setenv("TABLE_PROVISION_ON_STARTUP", "1")
    async with lifespan(app):
        pass

    widget = next(p for p in in_memory_service.create_params if p["TableName"] == "widgets")
    assert widget["ProvisionedThroughput"] == {"ReadCapacityUnits": 8, "WriteCapacityUnits": 3}


@pytest.mark.asyncio
async def test_models_module_registers_models_and_options(in_memory_service) -> None:
    registry = ModelRegistry(in_memory_service)
    app = create_app(
        registry=registry,
        provisioning_config=ProvisioningConfig(poll_interval_seconds=0),
        models_module="widget_models",
    )

    assert sorted(registry.latest_version_models()) == ["Order", "Widget"]
    assert app.state.table_options == {"Widget": TableOptions(read_capacity=4, write_capacity=2)}

    async with _client(app) as client:
        r = await client.post("/tables/provision")

    assert r.status_code == 200
    assert sorted(r.json()["created"]) == ["orders", "widgets"]
    widget = next(p for p in in_memory_service.create_params if p["TableName"] == "widgets")
    assert widget["ProvisionedThroughput"] == {"ReadCapacityUnits": 4, "WriteCapacityUnits": 2}


def test_explicit_table_options_override_models_module(in_memory_service) -> None:
    app = create_app(
        registry=ModelRegistry(in_memory_service),
        table_options={"Widget": TableOptions(read_capacity=9, write_capacity=9)},
        models_module="widget_models",
    )

    assert app.state.table_options == {"Widget": TableOptions(read_capacity=9, write_capacity=9)}


def test_models_module_without_hook_is_rejected(in_memory_service) -> None:
    with pytest.raises(ValueError, match="register_models"):
        create_app(registry=ModelRegistry(in_memory_service), models_module="no_register_models")
