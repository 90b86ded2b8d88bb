from __future__ import annotations

from typing import Mapping

from fastapi import APIRouter, Depends

from dynamo_provisioner.models.tables import (
    ProvisionResponse,
    ProvisioningErrorResponse,
    TableListResponse,
    TableStatusItem,
)
from dynamo_provisioner.services.dependencies import (
    get_model_registry,
    get_table_options,
    get_table_setup_service,
)
from dynamo_provisioner.services.registry import ModelRegistry
from dynamo_provisioner.services.setup.table_setup_service import TableSetupService
from dynamo_provisioner.services.table_model import TableOptions

router = APIRouter(prefix="/tables", tags=["tables"])


@router.get("", response_model=TableListResponse)
async def list_tables(registry: ModelRegistry = Depends(get_model_registry)) -> TableListResponse:
    items: list[TableStatusItem] = []
    for name, model in sorted(registry.latest_version_models().items()):
        descriptor = await model.describe_table()
        items.append(
            TableStatusItem(
                model_name=name,
                version=model.version,
                table_name=model.table_name(),
                exists=descriptor is not None,
                status=descriptor.status.value if descriptor is not None else None,
            )
        )

    managed = {item.table_name for item in items}
    store_tables = await registry.service.list_table_names()
    unmanaged = sorted(name for name in store_tables if name not in managed)

    return TableListResponse(count=len(items), tables=items, unmanaged_tables=unmanaged)


@router.post(
    "/provision",
    response_model=ProvisionResponse,
    responses={502: {"model": ProvisioningErrorResponse}},
)
async def provision_tables(
    registry: ModelRegistry = Depends(get_model_registry),
    setup: TableSetupService = Depends(get_table_setup_service),
    options: Mapping[str, TableOptions] = Depends(get_table_options),
) -> ProvisionResponse:
    report = await setup.provision_all(registry.latest_version_models(), options)
    return ProvisionResponse(created=list(report.created), existing=list(report.existing))
