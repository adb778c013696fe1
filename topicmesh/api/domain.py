# topicmesh/api/domain.py
from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from topicmesh.api.dependencies import get_domain, get_reconciler, get_telemetry, require_jwt
from topicmesh.core.config import Settings, get_settings
from topicmesh.core.security import may_provision
from topicmesh.domain.models.domain import Domain
from topicmesh.domain.models.telemetry import GroupOffsetTotal, TopicTelemetry
from topicmesh.domain.services.access import derive_bindings
from topicmesh.domain.services.reconciler import Reconciler
from topicmesh.domain.services.telemetry import TelemetryAggregator
from topicmesh.models.domain import ChannelView, DomainView

router = APIRouter(prefix="/domain", tags=["domain"])


@router.get("", response_model=DomainView)
def describe_domain(domain: Domain = Depends(get_domain)):
    """
    Returns the resolved domain: canonical topic per channel and derived grants.
    """
    channels = [
        ChannelView(
            topic=t.name,
            channel=t.channel.name,
            owner=t.owner,
            direction=t.channel.direction.value,
            partitions=t.channel.partitions,
            replicationFactor=t.channel.replication_factor,
            retentionMs=t.channel.retention_ms,
            schemaRef=t.channel.schema_ref.path if t.channel.schema_ref else None,
        )
        for t in domain.topics.values()
    ]
    return DomainView(id=domain.id, channels=channels, bindings=derive_bindings(domain))


@router.post("/provision")
def provision(
    dry_run: bool = Query(True, description="If true, only compute the plan."),
    clean_unspecified: bool = Query(
        False, description="Also revoke ACLs and delete topics the document no longer declares."
    ),
    domain: Domain = Depends(get_domain),
    reconciler: Reconciler = Depends(get_reconciler),
    settings: Settings = Depends(get_settings),
    claims: dict = Depends(require_jwt),
):
    """
    Plan (and unless dry_run, apply) the changes converging the cluster onto the document.
    Responds 207 when some operations failed; each operation carries its outcome.
    """
    if not may_provision(claims, domain.id):
        raise HTTPException(
            status.HTTP_403_FORBIDDEN, detail=f"token does not grant provisioning of {domain.id}"
        )
    result = reconciler.reconcile(
        domain,
        clean_unspecified=clean_unspecified,
        dry_run=dry_run,
        schema_base_path=settings.schema_base_path,
    )
    return JSONResponse(
        status_code=200 if result.success else 207,
        content=result.model_dump(mode="json"),
    )


@router.get("/storage", response_model=Dict[str, TopicTelemetry])
def storage(
    domain: Domain = Depends(get_domain),
    telemetry: TelemetryAggregator = Depends(get_telemetry),
):
    """
    Storage (replication included) and produced-offset totals per owned topic:
      { topic: { storage, offset-total }, ... }
    """
    names = sorted(t.name for t in domain.owned_topics())
    return telemetry.report(names).topics


@router.get("/consumption", response_model=List[GroupOffsetTotal])
def consumption(
    prefix: Optional[str] = Query(None, description="Topic prefix; defaults to the domain id."),
    domain: Domain = Depends(get_domain),
    telemetry: TelemetryAggregator = Depends(get_telemetry),
):
    """Committed-offset totals of consumer groups reading the domain's topics."""
    return telemetry.group_offsets(prefix or domain.id)
