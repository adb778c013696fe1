from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

from topicmesh.api.dependencies import get_domain, get_telemetry
from topicmesh.domain.models.domain import Domain
from topicmesh.domain.services.telemetry import TelemetryAggregator

router = APIRouter()


@router.get("/metrics")
def metrics(
    domain: Domain = Depends(get_domain),
    telemetry: TelemetryAggregator = Depends(get_telemetry),
):
    names = sorted(t.name for t in domain.owned_topics())
    report = telemetry.report(names, group_prefix=domain.id)

    reg = CollectorRegistry()
    g_storage = Gauge("topicmesh_topic_storage_bytes", "On-disk bytes incl. replicas per topic", ["domain", "topic"], registry=reg)
    g_offset = Gauge("topicmesh_topic_offset_total", "Sum of partition end offsets per topic", ["domain", "topic"], registry=reg)
    g_group = Gauge("topicmesh_group_offset_total", "Committed offset total per consumer group", ["domain", "group"], registry=reg)

    for topic, usage in report.topics.items():
        g_storage.labels(domain=domain.id, topic=topic).set(usage.storage)
        g_offset.labels(domain=domain.id, topic=topic).set(usage.offset_total)
    for group in report.groups:
        g_group.labels(domain=domain.id, group=group.group_id).set(group.offset_total)

    return Response(generate_latest(reg), media_type=CONTENT_TYPE_LATEST)
