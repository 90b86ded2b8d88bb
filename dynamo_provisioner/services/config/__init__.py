"""Configuration package (Facade).

Re-exports the public config types so callers import from a single, stable path:

	from dynamo_provisioner.services.config import DynamoDBConfig, ProvisioningConfig
"""

from dynamo_provisioner.services.config.dynamodb_config import DynamoDBConfig
from dynamo_provisioner.services.config.provisioning_config import FailurePolicy, ProvisioningConfig

__all__ = ["DynamoDBConfig", "FailurePolicy", "ProvisioningConfig"]
