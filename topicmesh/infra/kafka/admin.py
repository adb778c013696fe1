"""Kafka Admin façade built on kafka-python.

Implements :class:`~topicmesh.infra.kafka.protocols.ClusterAdmin`. The admin
client is created lazily and reused; kafka-python exceptions never leak out:
transport problems become ``ClusterUnavailable``, rejected requests become
``ClusterOperationError``.
"""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from kafka import KafkaConsumer, TopicPartition  # kafka-python
from kafka.admin import (
    ACL,
    ACLFilter,
    ACLOperation,
    ACLPermissionType,
    ACLResourcePatternType,
    ConfigResource,
    ConfigResourceType,
    KafkaAdminClient,
    NewPartitions,
    NewTopic,
    ResourcePattern,
    ResourcePatternFilter,
)
from kafka.admin import ResourceType as KafkaResourceType
from kafka.errors import (
    KafkaConnectionError,
    KafkaError,
    KafkaTimeoutError,
    NoBrokersAvailable,
    NodeNotReadyError,
    RequestTimedOutError,
    TopicAlreadyExistsError,
    UnknownTopicOrPartitionError,
    for_code,
)
from kafka.protocol.admin import DescribeLogDirsRequest

from topicmesh.core.config import Settings, get_settings
from topicmesh.core.exceptions import ClusterOperationError, ClusterUnavailable
from topicmesh.domain.models.access import AccessBinding, Operation, PatternType, ResourceType
from topicmesh.domain.models.cluster import PartitionReplicas, ReplicaLogDir, TopicDescription

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (
    KafkaTimeoutError,
    NoBrokersAvailable,
    NodeNotReadyError,
    KafkaConnectionError,
    RequestTimedOutError,
)
_MANAGED_OPERATIONS = {op.value for op in Operation}
_MANAGED_RESOURCES = {rt.value for rt in ResourceType}
_MANAGED_PATTERNS = {pt.value for pt in PatternType}
# ConfigSource.DYNAMIC_TOPIC_CONFIG
_DYNAMIC_TOPIC_CONFIG = 1


@contextmanager
def _translate(action: str, resource: str | None = None) -> Iterator[None]:
    """Map kafka-python failures onto the topicmesh error kinds."""
    try:
        yield
    except _TRANSPORT_ERRORS as exc:
        raise ClusterUnavailable(f"{type(exc).__name__}: {exc}", resource=resource, action=action) from exc
    except OSError as exc:
        raise ClusterUnavailable(str(exc), resource=resource, action=action) from exc
    except KafkaError as exc:
        raise ClusterOperationError(f"{type(exc).__name__}: {exc}", resource=resource, action=action) from exc


def _raise_for_code(error_code: int, message: str | None, action: str, resource: str) -> None:
    """Raise for a non-zero protocol error code; retriable codes mean the cluster is unavailable."""
    if not error_code:
        return
    error_type = for_code(error_code)
    text = f"{error_type.__name__}: {message or ''}".rstrip(": ")
    if getattr(error_type, "retriable", False):
        raise ClusterUnavailable(text, resource=resource, action=action)
    raise ClusterOperationError(text, resource=resource, action=action)


def _is_override(entry) -> bool:
    # DescribeConfigs v0 carries is_default, v1+ carries config_source
    flag = entry[3]
    if isinstance(flag, bool):
        return not flag
    return flag == _DYNAMIC_TOPIC_CONFIG


class KafkaAdminFacade:
    """Encapsulates admin operations against a Kafka cluster."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self.bootstrap = self._settings.kafka_bootstrap
        self._admin: KafkaAdminClient | None = None

    # ---------- bootstrap common kwargs ----------
    def _common_kwargs(self) -> dict:
        s = self._settings
        kw = dict(
            bootstrap_servers=self.bootstrap,
            client_id=s.client_id,
            request_timeout_ms=s.request_timeout_ms,
            metadata_max_age_ms=s.metadata_max_age_ms,
            api_version_auto_timeout_ms=s.api_version_auto_timeout_ms,
            security_protocol=s.security_protocol,
        )
        if s.kafka_api_version:
            kw["api_version"] = tuple(int(p) for p in s.kafka_api_version.split("."))
        if s.security_protocol.startswith("SASL"):
            kw.update(
                sasl_mechanism=s.sasl_mechanism or "PLAIN",
                sasl_plain_username=s.sasl_plain_username,
                sasl_plain_password=s.sasl_plain_password,
            )
        if s.security_protocol.endswith("SSL"):
            kw.update(ssl_cafile=s.ssl_cafile)
        return kw

    def _ensure_admin(self) -> KafkaAdminClient:
        if self._admin is not None:
            return self._admin

        last_exc: Exception | None = None
        tries = self._settings.admin_connect_max_tries
        for attempt in range(1, tries + 1):
            try:
                self._admin = KafkaAdminClient(**self._common_kwargs())
                return self._admin
            except _TRANSPORT_ERRORS as exc:
                last_exc = exc
                logger.warning("Admin connection attempt %d/%d failed: %s", attempt, tries, exc)
                if attempt < tries:
                    time.sleep(self._settings.admin_connect_backoff_sec * attempt)
        raise ClusterUnavailable(
            f"could not connect to {self.bootstrap}: {last_exc}", action="connect"
        ) from last_exc

    def _consumer(self, **kw) -> KafkaConsumer:
        return KafkaConsumer(**{**self._common_kwargs(), **kw})

    def close(self) -> None:
        if self._admin is not None:
            self._admin.close()
            self._admin = None

    # ---------- Topics ----------
    def list_topics(self) -> List[str]:
        with _translate("list-topics"):
            return sorted(self._ensure_admin().list_topics())

    def describe_topics(self, names: Sequence[str]) -> List[TopicDescription]:
        # only describe topics that exist; a metadata request may auto-create unknown ones
        existing = set(self.list_topics())
        wanted = [n for n in names if n in existing]
        if not wanted:
            return []
        with _translate("describe-topics", ",".join(wanted)):
            described = self._ensure_admin().describe_topics(wanted)
        out: List[TopicDescription] = []
        for t in described:
            error_code = t.get("error_code", 0)
            if error_code == UnknownTopicOrPartitionError.errno:
                # deleted since it was listed
                continue
            _raise_for_code(error_code, None, "describe-topics", t["topic"])
            out.append(
                TopicDescription(
                    name=t["topic"],
                    partitions=sorted(
                        (
                            PartitionReplicas(
                                partition=p["partition"],
                                leader=p.get("leader"),
                                replicas=list(p.get("replicas", [])),
                            )
                            for p in t.get("partitions", [])
                        ),
                        key=lambda p: p.partition,
                    ),
                )
            )
        return out

    def _config_entries(self, names: Sequence[str]) -> Dict[str, list]:
        resources = [ConfigResource(ConfigResourceType.TOPIC, name) for name in names]
        with _translate("describe-configs", ",".join(names)):
            responses = self._ensure_admin().describe_configs(resources)
        entries_by_topic: Dict[str, list] = {}
        for response in responses:
            for error_code, error_message, _rtype, name, entries in response.resources:
                _raise_for_code(error_code, error_message, "describe-configs", name)
                entries_by_topic[name] = list(entries)
        return entries_by_topic

    def describe_topic_configs(self, names: Sequence[str]) -> Dict[str, Dict[str, str]]:
        """Effective config values (defaults included) per topic."""
        if not names:
            return {}
        return {
            name: {e[0]: e[1] for e in entries if e[1] is not None}
            for name, entries in self._config_entries(names).items()
        }

    def _topic_overrides(self, name: str) -> Dict[str, str]:
        """Dynamic per-topic overrides only; broker and static defaults are left out."""
        entries = self._config_entries([name]).get(name, [])
        return {e[0]: e[1] for e in entries if e[1] is not None and _is_override(e)}

    def create_topic(
        self, name: str, partitions: int, replication_factor: int, configs: Mapping[str, str]
    ) -> None:
        """Create a new topic if it does not exist."""
        new_topic = NewTopic(
            name=name,
            num_partitions=partitions,
            replication_factor=replication_factor,
            topic_configs=dict(configs),
        )
        with _translate("create-topic", name):
            try:
                self._ensure_admin().create_topics([new_topic])
            except TopicAlreadyExistsError:
                logger.info("Topic %s already exists", name)

    def alter_topic_configs(self, name: str, configs: Mapping[str, str]) -> None:
        """Set *configs* on *name*, keeping its other overrides.

        AlterConfigs replaces the whole override set, so the current overrides
        are sent along with the new values.
        """
        merged = {**self._topic_overrides(name), **configs}
        resource = ConfigResource(ConfigResourceType.TOPIC, name, configs=merged)
        with _translate("alter-configs", name):
            response = self._ensure_admin().alter_configs([resource])
        for error_code, error_message, _rtype, rname in getattr(response, "resources", []):
            _raise_for_code(error_code, error_message, "alter-configs", rname)

    def create_partitions(self, name: str, total: int) -> None:
        with _translate("create-partitions", name):
            self._ensure_admin().create_partitions({name: NewPartitions(total_count=total)})

    def delete_topic(self, name: str) -> None:
        with _translate("delete-topic", name):
            self._ensure_admin().delete_topics([name])

    # ---------- ACLs ----------
    def describe_acls(self) -> List[AccessBinding]:
        """ALLOW grants the cluster holds, limited to the shapes topicmesh manages."""
        acl_filter = ACLFilter(
            principal=None,
            host=None,
            operation=ACLOperation.ANY,
            permission_type=ACLPermissionType.ALLOW,
            resource_pattern=ResourcePatternFilter(KafkaResourceType.ANY, None, ACLResourcePatternType.ANY),
        )
        with _translate("describe-acls"):
            result = self._ensure_admin().describe_acls(acl_filter)
        acls = result[0] if isinstance(result, tuple) else result
        out: List[AccessBinding] = []
        for acl in acls:
            pattern = acl.resource_pattern
            if (
                acl.permission_type != ACLPermissionType.ALLOW
                or acl.operation.name not in _MANAGED_OPERATIONS
                or pattern.resource_type.name not in _MANAGED_RESOURCES
                or pattern.pattern_type.name not in _MANAGED_PATTERNS
            ):
                continue
            out.append(
                AccessBinding(
                    principal=acl.principal,
                    resource_type=ResourceType(pattern.resource_type.name),
                    pattern_type=PatternType(pattern.pattern_type.name),
                    resource_name=pattern.resource_name,
                    operation=Operation(acl.operation.name),
                    host=acl.host or "*",
                )
            )
        return out

    @staticmethod
    def _pattern(binding: AccessBinding) -> Tuple[KafkaResourceType, ACLResourcePatternType]:
        return (
            KafkaResourceType[binding.resource_type.value],
            ACLResourcePatternType[binding.pattern_type.value],
        )

    def create_acl(self, binding: AccessBinding) -> None:
        resource_type, pattern_type = self._pattern(binding)
        acl = ACL(
            principal=binding.principal,
            host=binding.host,
            operation=ACLOperation[binding.operation.value],
            permission_type=ACLPermissionType.ALLOW,
            resource_pattern=ResourcePattern(resource_type, binding.resource_name, pattern_type),
        )
        with _translate("create-acl", binding.describe()):
            result = self._ensure_admin().create_acls([acl])
        failed = result.get("failed", []) if isinstance(result, dict) else []
        if failed:
            _acl, error = failed[0]
            raise ClusterOperationError(str(error), resource=binding.describe(), action="create-acl")

    def delete_acl(self, binding: AccessBinding) -> None:
        resource_type, pattern_type = self._pattern(binding)
        acl_filter = ACLFilter(
            principal=binding.principal,
            host=binding.host,
            operation=ACLOperation[binding.operation.value],
            permission_type=ACLPermissionType.ALLOW,
            resource_pattern=ResourcePatternFilter(resource_type, binding.resource_name, pattern_type),
        )
        with _translate("delete-acl", binding.describe()):
            results = self._ensure_admin().delete_acls([acl_filter])
        for _filter, _matches, error in results:
            if error is not None and getattr(error, "errno", 0):
                raise ClusterOperationError(str(error), resource=binding.describe(), action="delete-acl")

    # ---------- Storage / offsets ----------
    def describe_log_dirs(
        self, broker_id: int, topic: str, partitions: Sequence[int]
    ) -> List[ReplicaLogDir]:
        # null topics asks for every replica on the broker; filtered below
        request = DescribeLogDirsRequest[0](topics=None)
        wanted = set(partitions)
        with _translate("describe-log-dirs", f"{topic}@broker-{broker_id}"):
            admin = self._ensure_admin()
            future = admin._send_request_to_node(broker_id, request)
            admin._wait_for_futures([future])
            response = future.value

        out: List[ReplicaLogDir] = []
        for error_code, log_dir, topics in response.log_dirs:
            _raise_for_code(error_code, None, "describe-log-dirs", log_dir)
            for name, parts in topics:
                if name != topic:
                    continue
                for partition_index, partition_size, _offset_lag, is_future in parts:
                    if partition_index not in wanted:
                        continue
                    out.append(
                        ReplicaLogDir(
                            broker_id=broker_id,
                            log_dir=log_dir,
                            topic=name,
                            partition=partition_index,
                            size=partition_size,
                            is_future=bool(is_future),
                        )
                    )
        return out

    def end_offsets(self, topic: str, partitions: Sequence[int]) -> Dict[int, int]:
        tps = [TopicPartition(topic, p) for p in partitions]
        with _translate("end-offsets", topic):
            c = self._consumer()
            try:
                end = c.end_offsets(tps)
            finally:
                c.close()
        return {tp.partition: int(off) for tp, off in end.items()}

    # ---------- Consumer Groups ----------
    def list_consumer_groups(self) -> List[str]:
        with _translate("list-consumer-groups"):
            pairs = self._ensure_admin().list_consumer_groups()
        return sorted({gid for gid, _protocol in pairs})

    def consumer_group_offsets(self, group_id: str) -> Dict[Tuple[str, int], int]:
        with _translate("list-consumer-group-offsets", group_id):
            offsets = self._ensure_admin().list_consumer_group_offsets(group_id)
        return {
            (tp.topic, tp.partition): meta.offset
            for tp, meta in offsets.items()
            if meta is not None and meta.offset is not None and meta.offset >= 0
        }
