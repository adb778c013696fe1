"""Build the immutable :class:`Domain` from a parsed document."""
from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Iterable, List

from topicmesh.core.exceptions import NamingCollision, SpecResourceNotFound
from topicmesh.domain.models.document import ApiDocument, ChannelDocument, MessageDocument
from topicmesh.domain.models.domain import Domain
from topicmesh.domain.models.topic import ChannelSpec, Direction, SchemaFormat, SchemaRef
from topicmesh.domain.services.canonicalizer import resolve_topics

logger = logging.getLogger(__name__)

GRANT_ACCESS_TAG = "grant-access:"
_DOMAIN_ID = re.compile(r"^[\w\-]+(\.[\w\-]+)*$")
_EXTENSION_FORMATS = {
    ".avsc": SchemaFormat.AVRO,
    ".avro": SchemaFormat.AVRO,
    ".json": SchemaFormat.JSON,
    ".proto": SchemaFormat.PROTOBUF,
}


def domain_id_from(raw_id: str) -> str:
    """``urn:simple:streetlights`` -> ``simple.streetlights``."""
    value = raw_id.strip()
    if value.lower().startswith("urn:"):
        value = value[len("urn:"):]
    value = value.replace(":", ".").replace("/", ".").strip(".")
    if not _DOMAIN_ID.match(value):
        raise NamingCollision(
            f"document id {raw_id!r} is not a valid domain identifier",
            resource=raw_id,
            action="resolve-domain",
        )
    return value


def _schema_format(message: MessageDocument) -> SchemaFormat:
    declared = (message.schema_format or "").lower()
    for token, fmt in (("avro", SchemaFormat.AVRO), ("protobuf", SchemaFormat.PROTOBUF), ("json", SchemaFormat.JSON)):
        if token in declared:
            return fmt
    suffix = PurePosixPath(message.schema_ref or "").suffix.lower()
    return _EXTENSION_FORMATS.get(suffix, SchemaFormat.AVRO)


def channel_spec(name: str, doc: ChannelDocument) -> ChannelSpec:
    if doc.publish is not None:
        direction, operation = Direction.PRODUCED, doc.publish
    elif doc.subscribe is not None:
        direction, operation = Direction.CONSUMED, doc.subscribe
    else:
        raise SpecResourceNotFound(
            f"channel {name!r} declares neither publish nor subscribe",
            resource=name,
            action="resolve-domain",
        )

    grants: List[str] = []
    for op in (doc.publish, doc.subscribe):
        for tag in op.tags if op is not None else ():
            if tag.name.startswith(GRANT_ACCESS_TAG):
                grantee = tag.name[len(GRANT_ACCESS_TAG):].strip()
                if grantee and grantee not in grants:
                    grants.append(grantee)

    schema_ref = None
    if operation.message is not None and operation.message.schema_ref:
        schema_ref = SchemaRef(
            path=operation.message.schema_ref,
            format=_schema_format(operation.message),
        )

    kafka = doc.bindings.kafka
    return ChannelSpec(
        name=name,
        direction=direction,
        partitions=kafka.partitions,
        replication_factor=kafka.replicas,
        retention_ms=kafka.retention,
        configs=kafka.configs,
        schema_ref=schema_ref,
        grants=tuple(grants),
    )


def resolve_domain(document: ApiDocument, known_domains: Iterable[str] = ()) -> Domain:
    """Resolve *document* into a :class:`Domain`.

    Raises
    ------
    NamingCollision
        Bad domain id, colliding channels, or absolute references to unknown domains.
    SpecResourceNotFound
        A channel with neither a publish nor a subscribe operation.
    """
    domain_id = domain_id_from(document.id)
    known = tuple(known_domains)
    channels = [channel_spec(name, doc) for name, doc in document.channels.items()]
    topics = resolve_topics(domain_id, channels, known)
    children = {k for k in known if k.startswith(domain_id + ".")}
    children.update(t.owner for t in topics.values() if t.owner.startswith(domain_id + "."))
    domain = Domain(id=domain_id, topics=topics, child_domains=tuple(sorted(children)))
    logger.debug(
        "Resolved domain %s: %d owned, %d foreign topics",
        domain_id, len(domain.owned_topics()), len(domain.foreign_topics()),
    )
    return domain
