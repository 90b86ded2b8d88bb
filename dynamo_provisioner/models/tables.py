from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TableStatusItem(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_name: str
    version: int
    table_name: str
    exists: bool
    status: Optional[str] = Field(default=None, description="Remote TableStatus when the table exists")


class TableListResponse(BaseModel):
    count: int
    tables: list[TableStatusItem]
    unmanaged_tables: list[str] = Field(default_factory=list, description="Store tables no registered model maps to")


class ProvisionResponse(BaseModel):
    created: list[str]
    existing: list[str]


class ProvisioningErrorResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    detail: str
    model_name: str
    table_name: str
