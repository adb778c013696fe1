"""Read the live, namespace-scoped state of a domain's resources."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from topicmesh.domain.models.access import AccessBinding
from topicmesh.domain.models.cluster import ClusterSnapshot, SchemaRegistration
from topicmesh.domain.models.domain import in_namespace
from topicmesh.domain.models.topic import Topic
from topicmesh.infra.kafka.protocols import ClusterAdmin, SchemaRegistry

logger = logging.getLogger(__name__)


class ClusterStateReader:
    """Builds a :class:`ClusterSnapshot` for one domain.

    Nothing outside the domain namespace is ever returned. Missing topics are
    simply absent from the snapshot; transport failures propagate as
    ``ClusterUnavailable``.
    """

    def __init__(
        self,
        admin: ClusterAdmin,
        schema_registry: Optional[SchemaRegistry] = None,
        max_workers: int = 8,
    ) -> None:
        self._admin = admin
        self._registry = schema_registry
        self._max_workers = max_workers

    def read(
        self,
        domain_id: str,
        topics: Optional[Iterable[str]] = None,
        child_domains: Iterable[str] = (),
    ) -> ClusterSnapshot:
        """Snapshot the domain namespace, or only *topics* within it when given.

        Resources inside a *child_domains* namespace belong to those tenants
        and are left out.
        """
        scope = _Scope(domain_id, tuple(child_domains))
        wanted = None if topics is None else {t for t in topics if scope.covers(t)}
        with ThreadPoolExecutor(max_workers=3) as ex:
            topics_f = ex.submit(self._read_topics, scope, wanted)
            acls_f = ex.submit(self._read_acls, scope)
            schemas_f = None
            if self._registry is not None:
                schemas_f = ex.submit(self._read_schemas, self._registry, scope)
            observed_topics = topics_f.result()
            acls = acls_f.result()
            schemas = schemas_f.result() if schemas_f is not None else None

        logger.debug(
            "Snapshot %s: %d topics, %d acls, %s schemas",
            domain_id, len(observed_topics), len(acls), "n/a" if schemas is None else len(schemas),
        )
        return ClusterSnapshot(domain_id=domain_id, topics=observed_topics, acls=acls, schemas=schemas)

    # ------------------------------------------------------------------ #
    # Resource readers                                                    #
    # ------------------------------------------------------------------ #
    def _read_topics(self, scope: _Scope, wanted: Optional[set]) -> Dict[str, Topic]:
        names = [n for n in self._admin.list_topics() if scope.covers(n)]
        if wanted is not None:
            names = [n for n in names if n in wanted]
        if not names:
            return {}
        descriptions = self._admin.describe_topics(names)
        configs = self._admin.describe_topic_configs([d.name for d in descriptions])
        return {
            d.name: Topic(
                name=d.name,
                partitions=len(d.partitions),
                replication_factor=d.replication_factor,
                configs=configs.get(d.name, {}),
            )
            for d in descriptions
        }

    def _read_acls(self, scope: _Scope) -> List[AccessBinding]:
        return [acl for acl in self._admin.describe_acls() if scope.covers(acl.resource_name.rstrip("."))]

    def _read_schemas(self, registry: SchemaRegistry, scope: _Scope) -> Dict[str, SchemaRegistration]:
        subjects = [s for s in registry.list_subjects() if s != scope.domain_id and scope.covers(s)]
        if not subjects:
            return {}
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(subjects))) as ex:
            latest = list(ex.map(registry.latest_schema, subjects))
        return {reg.subject: reg for reg in latest if reg is not None}


@dataclass(frozen=True)
class _Scope:
    domain_id: str
    child_domains: Tuple[str, ...] = ()

    def covers(self, name: str) -> bool:
        return in_namespace(name, self.domain_id, self.child_domains)
