"""Observed cluster state: partition layout, log directories, snapshot."""
from __future__ import annotations

from typing import Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field

from topicmesh.domain.models.access import AccessBinding
from topicmesh.domain.models.topic import SchemaFormat, Topic


class PartitionReplicas(BaseModel):
    """Leader and replica placement of one partition."""

    partition: int = Field(..., ge=0)
    leader: int | None = None
    replicas: List[int] = Field(default_factory=list)


class TopicDescription(BaseModel):
    """Partition layout of a topic as reported by cluster metadata."""

    name: str
    partitions: List[PartitionReplicas] = Field(default_factory=list)

    @property
    def replication_factor(self) -> int:
        return len(self.partitions[0].replicas) if self.partitions else 0

    def replica_targets(self) -> List[Tuple[int, int]]:
        """Every (partition, broker_id) pair hosting a replica of this topic."""
        return [(p.partition, broker) for p in self.partitions for broker in p.replicas]


class ReplicaLogDir(BaseModel):
    """On-disk size of one partition replica inside a broker log directory."""

    broker_id: int
    log_dir: str
    topic: str
    partition: int
    size: int = Field(..., ge=0)
    is_future: bool = False


class SchemaRegistration(BaseModel):
    """Latest schema registered under a subject."""

    subject: str
    schema_str: str
    schema_type: SchemaFormat = SchemaFormat.AVRO
    version: int | None = None
    schema_id: int | None = None


class ClusterSnapshot(BaseModel):
    """Namespace-scoped view of the cluster, rebuilt on every pass.

    ``schemas`` is ``None`` when no schema registry is configured, which is
    different from a registry holding no subjects for the domain.
    """

    model_config = ConfigDict(frozen=True)

    domain_id: str
    topics: Dict[str, Topic] = Field(default_factory=dict)
    acls: List[AccessBinding] = Field(default_factory=list)
    schemas: Dict[str, SchemaRegistration] | None = None
