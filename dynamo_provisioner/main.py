"""FastAPI app exposing the table provisioner.

Models are registered by a user module named in DYNAMO_PROVISIONER_MODELS (or the
`models_module` argument of `create_app`). That module must define
`register_models(registry)` and may define `TABLE_OPTIONS`, a mapping of model
name to TableOptions used whenever tables are created:

    # myapp/tables.py
    TABLE_OPTIONS = {"Widget": TableOptions(read_capacity=5, write_capacity=5)}

    def register_models(registry):
        registry.define("Widget", TableSchema(hash_key=KeyAttribute("id")))

    $ DYNAMO_PROVISIONER_MODELS=myapp.tables uvicorn dynamo_provisioner.main:app
"""

from contextlib import asynccontextmanager
import importlib
import logging
import os
from typing import Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status

from dynamo_provisioner.routes.tables import router as tables_router
from dynamo_provisioner.services.config import ProvisioningConfig
from dynamo_provisioner.services.dependencies import (
    get_dynamodb_service,
    get_model_registry_from_app,
    get_table_options_from_app,
    get_table_setup_service_from_app,
)
from dynamo_provisioner.services.dynamodb_service import DynamoDBServiceError
from dynamo_provisioner.services.registry import ModelRegistry
from dynamo_provisioner.services.setup.table_setup_service import ProvisioningError
from dynamo_provisioner.services.table_model import TableOptions


logger = logging.getLogger(__name__)


def _ensure_logging() -> None:
    formatter = logging.Formatter("%(levelname)s: %(message)s")
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    else:
        root.setLevel(logging.INFO)
        for handler in root.handlers:
            handler.setFormatter(formatter)


def _provision_on_startup() -> bool:
    return (os.getenv("TABLE_PROVISION_ON_STARTUP") or "").strip().lower() in {"1", "true", "yes", "on"}


def _load_models_module(module_name: str, registry: ModelRegistry) -> Mapping[str, TableOptions]:
    module = importlib.import_module(module_name)
    register = getattr(module, "register_models", None)
    if not callable(register):
        raise ValueError(f"Models module {module_name!r} must define register_models(registry)")
    register(registry)
    return dict(getattr(module, "TABLE_OPTIONS", None) or {})


@asynccontextmanager
async def lifespan(app: FastAPI):
    _ensure_logging()
    setup = get_table_setup_service_from_app(app)
    if _provision_on_startup():
        registry = get_model_registry_from_app(app)
        logger.info("Startup table provisioning: %d model(s)", len(registry.latest_version_models()))
        await setup.provision_all(registry.latest_version_models(), get_table_options_from_app(app))
    yield
    await setup.cancel_background()


def create_app(
    *,
    registry: Optional[ModelRegistry] = None,
    provisioning_config: Optional[ProvisioningConfig] = None,
    table_options: Optional[Mapping[str, TableOptions]] = None,
    models_module: Optional[str] = None,
) -> FastAPI:
    app = FastAPI(lifespan=lifespan)
    registry = registry or ModelRegistry(get_dynamodb_service())
    options = dict(table_options or {})

    module_name = models_module or (os.getenv("DYNAMO_PROVISIONER_MODELS") or "").strip()
    if module_name:
        # explicit table_options win over the module's
        options = {**_load_models_module(module_name, registry), **options}

    app.state.model_registry = registry
    app.state.provisioning_config = provisioning_config
    app.state.table_options = options

    app.include_router(tables_router)

    @app.exception_handler(ProvisioningError)
    async def provisioning_error_handler(request: Request, exc: ProvisioningError) -> JSONResponse:
        """Map a failed table provisioning run to 502 Bad Gateway.

        The body names the model and table that failed first:
            {"detail": "...", "model_name": "...", "table_name": "..."}
        """
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": str(exc), "model_name": exc.model_name, "table_name": exc.table_name},
        )

    @app.exception_handler(DynamoDBServiceError)
    async def dynamodb_service_error_handler(request: Request, exc: DynamoDBServiceError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": str(exc)},
        )

    @app.get("/")
    async def root():
        return {"message": "DynamoDB table provisioner is running."}

    return app


app = create_app()
