from __future__ import annotations

from typing import Mapping

from fastapi import FastAPI, Request

from dynamo_provisioner.services.config import DynamoDBConfig, ProvisioningConfig
from dynamo_provisioner.services.dynamodb_service import DynamoDBService
from dynamo_provisioner.services.registry import ModelRegistry
from dynamo_provisioner.services.setup.table_setup_service import TableSetupService
from dynamo_provisioner.services.table_model import TableOptions


def get_dynamodb_service() -> DynamoDBService:
    """Provider for a DynamoDBService built from environment configuration."""

    return DynamoDBService(DynamoDBConfig.from_env())


def get_model_registry_from_app(app: FastAPI) -> ModelRegistry:
    registry = getattr(app.state, "model_registry", None)
    if registry is None:
        raise RuntimeError("Model registry not initialized (app.state.model_registry)")
    if not isinstance(registry, ModelRegistry):
        raise RuntimeError("Unexpected model_registry type")
    return registry


def get_model_registry(request: Request) -> ModelRegistry:
    """FastAPI dependency provider for the app's model registry."""

    return get_model_registry_from_app(request.app)


def get_table_options_from_app(app: FastAPI) -> Mapping[str, TableOptions]:
    return getattr(app.state, "table_options", None) or {}


def get_table_options(request: Request) -> Mapping[str, TableOptions]:
    """Per-model CreateTable options, keyed by model name."""

    return get_table_options_from_app(request.app)


def get_table_setup_service_from_app(app: FastAPI) -> TableSetupService:
    """One setup service per app, so detached provisioning tasks stay referenced.

    Built lazily; the config comes from app.state.provisioning_config or the environment.
    """

    setup = getattr(app.state, "table_setup_service", None)
    if setup is None:
        config = getattr(app.state, "provisioning_config", None)
        if config is None:
            config = ProvisioningConfig.from_env()
        if not isinstance(config, ProvisioningConfig):
            raise RuntimeError("Unexpected provisioning_config type")
        setup = TableSetupService(config)
        app.state.table_setup_service = setup
    return setup


def get_table_setup_service(request: Request) -> TableSetupService:
    return get_table_setup_service_from_app(request.app)
