"""Setup (provisioning) services.

Orchestration helpers that *provision* or *verify* the DynamoDB tables the app's
models depend on.
"""

from dynamo_provisioner.services.setup.table_setup_service import (
    CreateError,
    DescribeError,
    PollError,
    PollTimeoutError,
    ProvisioningError,
    ProvisioningReport,
    ProvisioningState,
    ProvisioningTask,
    TableSetupService,
)

__all__ = [
    "CreateError",
    "DescribeError",
    "PollError",
    "PollTimeoutError",
    "ProvisioningError",
    "ProvisioningReport",
    "ProvisioningState",
    "ProvisioningTask",
    "TableSetupService",
]
