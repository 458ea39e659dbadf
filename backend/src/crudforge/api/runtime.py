"""Startup wiring: metadata, engine, components and composed routes."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Any

from crudforge.auth.gate import AuthGate
from crudforge.auth.handlers import AuthResource
from crudforge.auth.jwt_service import JWTService
from crudforge.auth.password import PasswordService
from crudforge.components import AUTH_COMPONENT, FILE_UPLOAD_COMPONENT, ComponentRegistry
from crudforge.config import AppConfig
from crudforge.handlers.crud import ModelResource
from crudforge.metadata.loader import MetadataLoader
from crudforge.metadata.validator import validate_metadata_dir
from crudforge.persistence import DataEngine, create_engine_for
from crudforge.pipeline.composer import ComposedRoute, PipelineComposer
from crudforge.relations.catalog import RelationCatalog
from crudforge.relations.resolver import RelationResolver
from crudforge.uploads import FileUploadResource, UploadStorage
from crudforge.validation.backends import get_backend

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything built once at startup and shared by all requests."""

    config: AppConfig
    loader: MetadataLoader
    catalog: RelationCatalog
    engine: DataEngine
    components: ComponentRegistry
    routes: list[ComposedRoute]
    jwt_service: JWTService
    password_service: PasswordService


def _report_schema_issues(config: AppConfig) -> None:
    """Log metadata schema problems; startup continues regardless."""
    if config.metadata_path is None or not config.metadata_path.is_dir():
        return
    issues = validate_metadata_dir(config.metadata_path)
    for issue in issues:
        if issue.severity == "error":
            logger.error("Metadata schema error: %s", issue)
        else:
            logger.warning("Metadata schema warning: %s", issue)
    if issues:
        logger.warning(
            "Metadata validation found %d issue(s). "
            "Run 'crudforge metadata validate' for details.",
            len(issues),
        )


def build_runtime(
    config: AppConfig,
    loader: MetadataLoader | None = None,
    engine: DataEngine | None = None,
    components: ComponentRegistry | None = None,
) -> Runtime:
    """Load metadata and compose every route pipeline.

    Args:
        config: Application settings
        loader: Pre-loaded metadata; read from ``config.metadata_path`` if None
        engine: Data engine; built from ``config.database`` if None
        components: Hooks, artifacts and routers; discovered from
            ``config.modules_package`` if None

    Raises:
        ValueError: If authentication is enabled without a user model, or the
            validation resolver is unknown.
    """
    if loader is None:
        _report_schema_issues(config)
        loader = MetadataLoader(config.metadata_path)
        loader.load_all()

    auth = config.auth
    user_model = loader.get_model(auth.user_model)
    if auth.enabled and user_model is None:
        raise ValueError(
            f"Authentication is enabled but the user model '{auth.user_model}' is not defined"
        )

    catalog = RelationCatalog.from_loader(loader)
    resolver = RelationResolver(catalog)
    password_service = PasswordService(rounds=auth.bcrypt_rounds)
    jwt_service = JWTService(auth.secret_key, expires_in=auth.expires_in)

    if engine is None:
        engine = create_engine_for(
            config.database, loader, password_service=password_service, user_model=auth.user_model
        )
    if components is None:
        # The modules package lives in the project, not in site-packages
        if config.base_path is not None and str(config.base_path) not in sys.path:
            sys.path.insert(0, str(config.base_path))
        components = ComponentRegistry.discover(config.modules_package, loader.list_models())
    backend = get_backend(config.validation_resolver)

    gate = None
    if user_model is not None:
        gate = AuthGate(engine, jwt_service, auth, user_model)

    resources: dict[str, Any] = {
        name: ModelResource(model, engine, resolver) for name, model in loader.models.items()
    }
    if auth.enabled:
        resources[AUTH_COMPONENT] = AuthResource(
            user_model, engine, resolver, jwt_service, password_service, auth
        )

    upload = config.file_upload
    if upload.enabled:
        resources[FILE_UPLOAD_COMPONENT] = FileUploadResource(
            UploadStorage(config.upload_root, upload.restrictions),
            mount=f"{config.api_prefix.rstrip('/')}{upload.base_route}",
        )

    composer = PipelineComposer(loader, components, config, gate, backend, resources)
    return Runtime(
        config=config,
        loader=loader,
        catalog=catalog,
        engine=engine,
        components=components,
        routes=composer.compose_all(),
        jwt_service=jwt_service,
        password_service=password_service,
    )
