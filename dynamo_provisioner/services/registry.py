from __future__ import annotations

from typing import Mapping, Optional

from dynamo_provisioner.services.config import ProvisioningConfig
from dynamo_provisioner.services.dynamodb_service import DynamoDBService
from dynamo_provisioner.services.setup.table_setup_service import ProvisioningReport, TableSetupService
from dynamo_provisioner.services.table_model import TableModel, TableOptions, TableSchema


class ModelRegistry:
    """Versioned model registry.

    Each model name maps to one or more versions; provisioning only ever looks at
    the latest version of each. The DynamoDB service is fixed at construction, so
    every model compiled here talks to the same store for its whole lifetime.
    """

    def __init__(self, service: DynamoDBService) -> None:
        self._service = service
        self._models: dict[str, dict[int, TableModel]] = {}
        self._internal_models: dict[str, TableModel] = {}

    @property
    def service(self) -> DynamoDBService:
        return self._service

    def define(
        self,
        name: str,
        schema: TableSchema,
        *,
        table_name: Optional[str] = None,
        internal: bool = False,
    ) -> TableModel:
        model = TableModel(name, schema, self._service, table_name=table_name)
        if internal:
            self._internal_models[name] = model
            return model
        return self.register(name, model)

    def register(self, name: str, model: TableModel, version: Optional[int] = None) -> TableModel:
        if version is None:
            version = model.version
        self._models.setdefault(name, {})[version] = model
        return model

    def model(self, name: str, version: Optional[int] = None) -> Optional[TableModel]:
        versions = self._models.get(name)
        if not versions:
            return None
        if version is None:
            version = max(versions)
        return versions.get(version)

    def internal_model(self, name: str) -> Optional[TableModel]:
        return self._internal_models.get(name)

    def latest_version_models(self) -> dict[str, TableModel]:
        return {name: versions[max(versions)] for name, versions in self._models.items() if versions}

    def reset(self) -> None:
        self._models = {}
        self._internal_models = {}

    async def create_tables(
        self,
        options: Optional[Mapping[str, TableOptions]] = None,
        config: Optional[ProvisioningConfig] = None,
    ) -> ProvisioningReport:
        """Provision tables for the latest version of every registered model."""

        setup = TableSetupService(config or ProvisioningConfig())
        return await setup.provision_all(self.latest_version_models(), options or {})
