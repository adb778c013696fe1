"""Global reusable FastAPI dependencies (cluster handles, domain, JWT)."""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from topicmesh.core.config import Settings, get_settings
from topicmesh.core.security import TokenValidationError, decode_jwt
from topicmesh.domain.models.domain import Domain
from topicmesh.domain.services.reconciler import Reconciler
from topicmesh.domain.services.telemetry import TelemetryAggregator
from topicmesh.infra.kafka.admin import KafkaAdminFacade
from topicmesh.infra.kafka.protocols import ClusterAdmin, SchemaRegistry
from topicmesh.infra.loader import load_domain
from topicmesh.infra.schema_registry import SchemaRegistryClient


async def require_jwt(
    authorization: str | None = Header(default=None, alias="Authorization")
) -> dict:
    """Validate a Bearer JWT and return the decoded claims."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="Missing token")
    token = authorization.removeprefix("Bearer ").strip()
    try:
        return decode_jwt(token)
    except TokenValidationError as exc:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


# The admin connection is process-wide and reused across requests.
@lru_cache
def get_admin() -> ClusterAdmin:
    return KafkaAdminFacade(get_settings())


@lru_cache
def get_schema_registry() -> Optional[SchemaRegistry]:
    return SchemaRegistryClient.from_settings(get_settings())


def get_domain(settings: Settings = Depends(get_settings)) -> Domain:
    """Load and resolve the configured document (once per request)."""
    return load_domain(settings.spec_path, settings.known_domains)


def get_reconciler(
    admin: ClusterAdmin = Depends(get_admin),
    registry: Optional[SchemaRegistry] = Depends(get_schema_registry),
) -> Reconciler:
    return Reconciler(admin, registry)


def get_telemetry(
    admin: ClusterAdmin = Depends(get_admin),
    settings: Settings = Depends(get_settings),
) -> TelemetryAggregator:
    return TelemetryAggregator(
        admin,
        max_workers=settings.telemetry_max_workers,
        query_timeout=settings.telemetry_query_timeout_sec,
    )
