"""Capability interfaces for the cluster admin and schema registry.

Services depend on these protocols only, so they run unchanged against
:class:`~topicmesh.infra.kafka.admin.KafkaAdminFacade`, the HTTP schema
registry client, or in-memory fakes.

Every method raises :class:`~topicmesh.core.exceptions.ClusterUnavailable` on
transport failure and :class:`~topicmesh.core.exceptions.ClusterOperationError`
(or ``SchemaRegistryError``) when the request is rejected.
"""
from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable

from topicmesh.domain.models.access import AccessBinding
from topicmesh.domain.models.cluster import ReplicaLogDir, SchemaRegistration, TopicDescription
from topicmesh.domain.models.topic import SchemaFormat


@runtime_checkable
class ClusterAdmin(Protocol):
    """Topic, config, ACL, log-directory and consumer-group operations."""

    # ---------- topics ----------
    def list_topics(self) -> List[str]:
        ...

    def describe_topics(self, names: Sequence[str]) -> List[TopicDescription]:
        """Partition layout of the named topics; absent topics are omitted."""
        ...

    def describe_topic_configs(self, names: Sequence[str]) -> Dict[str, Dict[str, str]]:
        ...

    def create_topic(
        self, name: str, partitions: int, replication_factor: int, configs: Mapping[str, str]
    ) -> None:
        ...

    def alter_topic_configs(self, name: str, configs: Mapping[str, str]) -> None:
        """Set *configs* on *name*; overrides not named in *configs* are kept."""
        ...

    def create_partitions(self, name: str, total: int) -> None:
        ...

    def delete_topic(self, name: str) -> None:
        ...

    # ---------- ACLs ----------
    def describe_acls(self) -> List[AccessBinding]:
        ...

    def create_acl(self, binding: AccessBinding) -> None:
        ...

    def delete_acl(self, binding: AccessBinding) -> None:
        ...

    # ---------- storage / offsets ----------
    def describe_log_dirs(
        self, broker_id: int, topic: str, partitions: Sequence[int]
    ) -> List[ReplicaLogDir]:
        """Replica sizes held by *broker_id* for the given partitions of *topic*."""
        ...

    def end_offsets(self, topic: str, partitions: Sequence[int]) -> Dict[int, int]:
        ...

    def list_consumer_groups(self) -> List[str]:
        ...

    def consumer_group_offsets(self, group_id: str) -> Dict[Tuple[str, int], int]:
        """Committed offset per (topic, partition) for *group_id*."""
        ...


@runtime_checkable
class SchemaRegistry(Protocol):
    def list_subjects(self) -> List[str]:
        ...

    def latest_schema(self, subject: str) -> Optional[SchemaRegistration]:
        """Latest version under *subject*, or ``None`` when the subject does not exist."""
        ...

    def register_schema(self, subject: str, schema_str: str, schema_type: SchemaFormat) -> int:
        """Register and return the schema id."""
        ...
