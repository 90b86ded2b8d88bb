from __future__ import annotations

import pytest

from dynamo_provisioner.services.config import ProvisioningConfig

from fakes import InMemoryDynamoDBService


@pytest.fixture
def fast_config() -> ProvisioningConfig:
    return ProvisioningConfig(poll_interval_seconds=0, wait_timeout_seconds=None)


@pytest.fixture
def in_memory_service() -> InMemoryDynamoDBService:
    return InMemoryDynamoDBService()
