"""In-memory cluster and schema registry used across the test-suite."""
from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from topicmesh.core.exceptions import ClusterOperationError, ClusterUnavailable, SchemaRegistryError
from topicmesh.domain.models.access import AccessBinding
from topicmesh.domain.models.cluster import (
    PartitionReplicas,
    ReplicaLogDir,
    SchemaRegistration,
    TopicDescription,
)
from topicmesh.domain.models.topic import SchemaFormat
from topicmesh.infra.loader import load_document, load_domain

RESOURCES = Path(__file__).parent / "resources"
STREETLIGHTS = RESOURCES / "streetlights-api.yaml"
KNOWN_DOMAINS = ("london.hammersmith.transport",)

MUTATIONS = {
    "create_topic",
    "alter_topic_configs",
    "create_partitions",
    "delete_topic",
    "create_acl",
    "delete_acl",
}


class FakeClusterAdmin:
    """Keeps topics, configs, ACLs, log dirs and group offsets in dictionaries.

    Every call is recorded in ``calls`` as ``(method, resource)``. Set
    ``unavailable`` to make every call fail with ``ClusterUnavailable``, or
    put an exception in ``fail_on[(method, resource)]`` to fail one call.
    """

    def __init__(self, brokers: Sequence[int] = (0, 1, 2)) -> None:
        self.brokers = list(brokers)
        self.topics: Dict[str, TopicDescription] = {}
        self.configs: Dict[str, Dict[str, str]] = {}
        self.acls: List[AccessBinding] = []
        self.sizes: Dict[Tuple[str, int, int], int] = {}
        self.future_sizes: Dict[Tuple[str, int, int], int] = {}
        self.end: Dict[Tuple[str, int], int] = {}
        self.groups: Dict[str, Dict[Tuple[str, int], int]] = {}
        self.calls: List[Tuple[str, Optional[str]]] = []
        self.log_dir_requests: List[Tuple[int, str, Tuple[int, ...]]] = []
        self.unavailable = False
        self.fail_on: Dict[Tuple[str, Optional[str]], Exception] = {}
        self.log_dir_delay = 0.0
        self._lock = threading.Lock()

    # ---------- seeding ----------
    def add_topic(
        self,
        name: str,
        partitions: int = 1,
        replication_factor: int = 1,
        configs: Optional[Mapping[str, str]] = None,
    ) -> TopicDescription:
        n = len(self.brokers)
        desc = TopicDescription(
            name=name,
            partitions=[
                PartitionReplicas(
                    partition=p,
                    leader=self.brokers[p % n],
                    replicas=[self.brokers[(p + i) % n] for i in range(replication_factor)],
                )
                for p in range(partitions)
            ],
        )
        self.topics[name] = desc
        self.configs[name] = dict(configs or {})
        return desc

    def mutations(self) -> List[Tuple[str, Optional[str]]]:
        return [c for c in self.calls if c[0] in MUTATIONS]

    def _call(self, method: str, resource: Optional[str] = None) -> None:
        with self._lock:
            self.calls.append((method, resource))
        if self.unavailable:
            raise ClusterUnavailable("broker unreachable", resource=resource, action=method)
        exc = self.fail_on.get((method, resource))
        if exc is not None:
            raise exc

    # ---------- topics ----------
    def list_topics(self) -> List[str]:
        self._call("list_topics")
        return sorted(self.topics)

    def describe_topics(self, names: Sequence[str]) -> List[TopicDescription]:
        self._call("describe_topics", ",".join(names))
        return [self.topics[n] for n in names if n in self.topics]

    def describe_topic_configs(self, names: Sequence[str]) -> Dict[str, Dict[str, str]]:
        self._call("describe_topic_configs", ",".join(names))
        return {n: dict(self.configs[n]) for n in names if n in self.configs}

    def create_topic(
        self, name: str, partitions: int, replication_factor: int, configs: Mapping[str, str]
    ) -> None:
        self._call("create_topic", name)
        if name not in self.topics:
            self.add_topic(name, partitions, replication_factor, configs)

    def alter_topic_configs(self, name: str, configs: Mapping[str, str]) -> None:
        self._call("alter_topic_configs", name)
        self.configs.setdefault(name, {}).update(configs)

    def create_partitions(self, name: str, total: int) -> None:
        self._call("create_partitions", name)
        desc = self.topics[name]
        rf = desc.replication_factor
        self.add_topic(name, total, rf, self.configs.get(name))

    def delete_topic(self, name: str) -> None:
        self._call("delete_topic", name)
        if name not in self.topics:
            raise ClusterOperationError("UnknownTopicOrPartitionError", resource=name, action="delete-topic")
        del self.topics[name]
        self.configs.pop(name, None)

    # ---------- ACLs ----------
    def describe_acls(self) -> List[AccessBinding]:
        self._call("describe_acls")
        return list(self.acls)

    def create_acl(self, binding: AccessBinding) -> None:
        self._call("create_acl", binding.describe())
        if all(b.key != binding.key for b in self.acls):
            self.acls.append(binding)

    def delete_acl(self, binding: AccessBinding) -> None:
        self._call("delete_acl", binding.describe())
        self.acls = [b for b in self.acls if b.key != binding.key]

    # ---------- storage / offsets ----------
    def describe_log_dirs(
        self, broker_id: int, topic: str, partitions: Sequence[int]
    ) -> List[ReplicaLogDir]:
        self._call("describe_log_dirs", f"{topic}@{broker_id}")
        with self._lock:
            self.log_dir_requests.append((broker_id, topic, tuple(partitions)))
        if self.log_dir_delay:
            time.sleep(self.log_dir_delay)
        out = []
        for (t, p, b), size in self.sizes.items():
            if t == topic and b == broker_id and p in partitions:
                out.append(ReplicaLogDir(broker_id=b, log_dir="/var/lib/kafka", topic=t, partition=p, size=size))
        for (t, p, b), size in self.future_sizes.items():
            if t == topic and b == broker_id and p in partitions:
                out.append(
                    ReplicaLogDir(
                        broker_id=b, log_dir="/mnt/kafka2", topic=t, partition=p, size=size, is_future=True
                    )
                )
        return out

    def end_offsets(self, topic: str, partitions: Sequence[int]) -> Dict[int, int]:
        self._call("end_offsets", topic)
        return {p: self.end.get((topic, p), 0) for p in partitions}

    def list_consumer_groups(self) -> List[str]:
        self._call("list_consumer_groups")
        return list(self.groups)

    def consumer_group_offsets(self, group_id: str) -> Dict[Tuple[str, int], int]:
        self._call("consumer_group_offsets", group_id)
        return dict(self.groups.get(group_id, {}))


class FakeSchemaRegistry:
    """Subjects with their version history; ``reject`` holds subjects that refuse registration."""

    def __init__(self) -> None:
        self.subjects: Dict[str, List[SchemaRegistration]] = {}
        self.reject: set = set()
        self.registered: List[str] = []
        self._next_id = 1

    def seed(self, subject: str, schema_str: str, schema_type: SchemaFormat = SchemaFormat.AVRO) -> None:
        self._store(subject, schema_str, schema_type)

    def _store(self, subject: str, schema_str: str, schema_type: SchemaFormat) -> int:
        versions = self.subjects.setdefault(subject, [])
        reg = SchemaRegistration(
            subject=subject,
            schema_str=schema_str,
            schema_type=schema_type,
            version=len(versions) + 1,
            schema_id=self._next_id,
        )
        self._next_id += 1
        versions.append(reg)
        return reg.schema_id

    def list_subjects(self) -> List[str]:
        return sorted(self.subjects)

    def latest_schema(self, subject: str) -> Optional[SchemaRegistration]:
        versions = self.subjects.get(subject)
        return versions[-1] if versions else None

    def register_schema(self, subject: str, schema_str: str, schema_type: SchemaFormat) -> int:
        if subject in self.reject:
            raise SchemaRegistryError("Schema being registered is incompatible", resource=subject, action="register-schema")
        self.registered.append(subject)
        return self._store(subject, schema_str, schema_type)


@pytest.fixture
def admin() -> FakeClusterAdmin:
    return FakeClusterAdmin()


@pytest.fixture
def registry() -> FakeSchemaRegistry:
    return FakeSchemaRegistry()


@pytest.fixture
def resources() -> Path:
    return RESOURCES


@pytest.fixture
def streetlights_doc():
    return load_document(STREETLIGHTS)


@pytest.fixture
def streetlights():
    return load_domain(STREETLIGHTS, KNOWN_DOMAINS)
