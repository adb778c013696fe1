"""Converge cluster topics, ACLs and schemas onto a domain's declared state.

Each managed resource is classified as missing, divergent, matching or
orphaned against a fresh :class:`ClusterSnapshot`; the classification yields a
:class:`ReconciliationPlan` in a fixed order:

1. register-schema
2. create-topic
3. update-topic-config
4. grant-permission
5. revoke-permission   (only with ``clean_unspecified``)
6. delete-topic        (only with ``clean_unspecified``)

Only resources inside the domain namespace are ever planned. Callers must
serialize reconciliation of the same domain; there is no internal locking.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from topicmesh.core.exceptions import TopicMeshError
from topicmesh.domain.models.access import AccessBinding
from topicmesh.domain.models.cluster import ClusterSnapshot, SchemaRegistration
from topicmesh.domain.models.domain import Domain
from topicmesh.domain.models.plan import (
    PLAN_ORDER,
    OperationKind,
    Outcome,
    PlanOperation,
    ReconciliationPlan,
    ReconciliationResult,
    ResourceState,
)
from topicmesh.domain.models.topic import ChannelSpec, SchemaFormat, Topic
from topicmesh.domain.services.access import derive_bindings
from topicmesh.domain.services.state_reader import ClusterStateReader
from topicmesh.infra.kafka.protocols import ClusterAdmin, SchemaRegistry
from topicmesh.infra.loader import read_schema

logger = logging.getLogger(__name__)

VALUE_SUBJECT_SUFFIX = "-value"


@dataclass(frozen=True)
class DesiredSchema:
    subject: str
    topic: str
    schema_str: str
    schema_type: SchemaFormat


# --------------------------------------------------------------------------- #
# Classification                                                              #
# --------------------------------------------------------------------------- #
def normalize_schema(schema_str: str, schema_type: SchemaFormat) -> str:
    """Whitespace- and key-order-insensitive form for JSON-based schemas."""
    if schema_type in (SchemaFormat.AVRO, SchemaFormat.JSON):
        try:
            return json.dumps(json.loads(schema_str), sort_keys=True, separators=(",", ":"))
        except ValueError:
            pass
    return schema_str.strip()


def classify_topic(channel: ChannelSpec, observed: Optional[Topic]) -> ResourceState:
    if observed is None:
        return ResourceState.MISSING
    if channel.partitions > observed.partitions or _config_changes(channel, observed):
        return ResourceState.DIVERGENT
    return ResourceState.MATCHING


def classify_schema(desired: DesiredSchema, observed: Optional[SchemaRegistration]) -> ResourceState:
    if observed is None:
        return ResourceState.MISSING
    if observed.schema_type is not desired.schema_type or normalize_schema(
        observed.schema_str, observed.schema_type
    ) != normalize_schema(desired.schema_str, desired.schema_type):
        return ResourceState.DIVERGENT
    return ResourceState.MATCHING


def _config_changes(channel: ChannelSpec, observed: Topic) -> Dict[str, List[Optional[str]]]:
    """Declared configs whose observed value differs; undeclared keys are ignored."""
    return {
        key: [observed.configs.get(key), value]
        for key, value in channel.topic_configs().items()
        if observed.configs.get(key) != value
    }


def _sort_key(op: PlanOperation):
    return (PLAN_ORDER.index(op.kind), op.target)


class Reconciler:
    """Plans and applies the changes that bring a cluster in line with a domain."""

    def __init__(
        self,
        admin: ClusterAdmin,
        schema_registry: Optional[SchemaRegistry] = None,
        reader: Optional[ClusterStateReader] = None,
    ) -> None:
        self._admin = admin
        self._registry = schema_registry
        self._reader = reader or ClusterStateReader(admin, schema_registry)
        self._handlers: Dict[OperationKind, Callable[[PlanOperation], None]] = {
            OperationKind.REGISTER_SCHEMA: self._register_schema,
            OperationKind.CREATE_TOPIC: self._create_topic,
            OperationKind.UPDATE_TOPIC_CONFIG: self._update_topic,
            OperationKind.GRANT_PERMISSION: self._grant,
            OperationKind.REVOKE_PERMISSION: self._revoke,
            OperationKind.DELETE_TOPIC: self._delete_topic,
        }

    # ------------------------------------------------------------------ #
    # Public API                                                          #
    # ------------------------------------------------------------------ #
    def plan(
        self,
        domain: Domain,
        *,
        clean_unspecified: bool = False,
        schema_base_path: str | Path = ".",
    ) -> ReconciliationPlan:
        """Compute the operations needed; nothing is mutated."""
        # schema files are read before the cluster is touched
        desired_schemas = self._desired_schemas(domain, schema_base_path)
        snapshot = self._reader.read(domain.id, child_domains=domain.child_domains)

        operations = (
            self._plan_schemas(desired_schemas, snapshot)
            + self._plan_topics(domain, snapshot, clean_unspecified)
            + self._plan_acls(domain, snapshot, clean_unspecified)
        )
        operations.sort(key=_sort_key)
        return ReconciliationPlan(domain_id=domain.id, operations=operations)

    def reconcile(
        self,
        domain: Domain,
        *,
        clean_unspecified: bool = False,
        dry_run: bool = False,
        schema_base_path: str | Path = ".",
    ) -> ReconciliationResult:
        """Plan and, unless *dry_run*, apply.

        Failures are recorded on the failing operation and do not stop
        independent operations; check ``result.success`` or call
        ``result.raise_for_failures()``.
        """
        plan = self.plan(domain, clean_unspecified=clean_unspecified, schema_base_path=schema_base_path)
        logger.info("Reconciling %s: %d operation(s)%s", domain.id, len(plan.operations), " (dry run)" if dry_run else "")
        if dry_run:
            return ReconciliationResult(plan=plan, dry_run=True)
        self._apply(plan)
        result = ReconciliationResult(plan=plan)
        if not result.success:
            logger.warning("Reconciliation of %s finished with %d failure(s)", domain.id, len(result.failed))
        return result

    # ------------------------------------------------------------------ #
    # Planning                                                            #
    # ------------------------------------------------------------------ #
    def _desired_schemas(self, domain: Domain, base_path: str | Path) -> List[DesiredSchema]:
        with_schema = [t for t in domain.owned_topics() if t.channel.schema_ref is not None]
        if self._registry is None:
            if with_schema:
                logger.info(
                    "No schema registry configured; skipping %d schema(s) for %s",
                    len(with_schema), domain.id,
                )
            return []
        return [
            DesiredSchema(
                subject=t.name + VALUE_SUBJECT_SUFFIX,
                topic=t.name,
                schema_str=read_schema(base_path, t.channel.schema_ref.path),
                schema_type=t.channel.schema_ref.format,
            )
            for t in with_schema
        ]

    def _plan_schemas(self, desired: List[DesiredSchema], snapshot: ClusterSnapshot) -> List[PlanOperation]:
        if snapshot.schemas is None:
            return []
        ops = []
        for schema in desired:
            state = classify_schema(schema, snapshot.schemas.get(schema.subject))
            if state is ResourceState.MATCHING:
                continue
            ops.append(
                PlanOperation(
                    kind=OperationKind.REGISTER_SCHEMA,
                    target=schema.subject,
                    payload={
                        "topic": schema.topic,
                        "schema": schema.schema_str,
                        "schema_type": schema.schema_type.value,
                        "state": state.value,
                    },
                )
            )
        return ops

    def _plan_topics(self, domain: Domain, snapshot: ClusterSnapshot, clean_unspecified: bool) -> List[PlanOperation]:
        ops: List[PlanOperation] = []
        desired_names = set()
        for topic in domain.owned_topics():
            desired_names.add(topic.name)
            channel = topic.channel
            observed = snapshot.topics.get(topic.name)
            if observed is None:
                ops.append(
                    PlanOperation(
                        kind=OperationKind.CREATE_TOPIC,
                        target=topic.name,
                        payload={
                            "partitions": channel.partitions,
                            "replication_factor": channel.replication_factor,
                            "configs": channel.topic_configs(),
                        },
                    )
                )
                continue

            if channel.partitions < observed.partitions:
                logger.warning(
                    "Topic %s has %d partitions, document declares %d; partitions cannot be removed",
                    topic.name, observed.partitions, channel.partitions,
                )
            if observed.replication_factor and channel.replication_factor != observed.replication_factor:
                logger.warning(
                    "Topic %s has replication factor %d, document declares %d; not changed",
                    topic.name, observed.replication_factor, channel.replication_factor,
                )
            if classify_topic(channel, observed) is ResourceState.DIVERGENT:
                ops.append(
                    PlanOperation(
                        kind=OperationKind.UPDATE_TOPIC_CONFIG,
                        target=topic.name,
                        payload={
                            "configs": channel.topic_configs(),
                            "changed": _config_changes(channel, observed),
                            "partitions": channel.partitions if channel.partitions > observed.partitions else None,
                        },
                    )
                )

        for name in snapshot.topics:
            if name in desired_names or not domain.owns(name):
                continue
            if clean_unspecified:
                ops.append(PlanOperation(kind=OperationKind.DELETE_TOPIC, target=name))
            else:
                logger.debug("Topic %s is not declared by %s; leaving it", name, domain.id)
        return ops

    def _plan_acls(self, domain: Domain, snapshot: ClusterSnapshot, clean_unspecified: bool) -> List[PlanOperation]:
        desired: Dict[tuple, AccessBinding] = {}
        for binding in derive_bindings(domain):
            if binding.foreign:
                logger.info("%s must be granted by the owning domain; not applied", binding.describe())
                continue
            desired[binding.key] = binding
        observed = {b.key: b for b in snapshot.acls}

        ops = [
            PlanOperation(
                kind=OperationKind.GRANT_PERMISSION,
                target=binding.describe(),
                payload={"binding": binding.model_dump(mode="json")},
            )
            for key, binding in desired.items()
            if key not in observed
        ]
        if clean_unspecified:
            ops.extend(
                PlanOperation(
                    kind=OperationKind.REVOKE_PERMISSION,
                    target=binding.describe(),
                    payload={"binding": binding.model_dump(mode="json")},
                )
                for key, binding in observed.items()
                if key not in desired and domain.owns(binding.resource_name.rstrip("."))
            )
        return ops

    # ------------------------------------------------------------------ #
    # Execution                                                           #
    # ------------------------------------------------------------------ #
    def _apply(self, plan: ReconciliationPlan) -> None:
        failed_schema_topics = set()
        for op in plan.operations:
            if op.kind is OperationKind.CREATE_TOPIC and op.target in failed_schema_topics:
                op.outcome = Outcome.SKIPPED
                op.error = "schema registration failed"
                logger.warning("Skipped %s: schema registration failed", op.target)
                continue
            try:
                self._handlers[op.kind](op)
            except TopicMeshError as exc:
                op.outcome = Outcome.FAILED
                op.error = str(exc)
                logger.error("Failed %s: %s", op.describe(), exc)
                if op.kind is OperationKind.REGISTER_SCHEMA:
                    failed_schema_topics.add(op.payload["topic"])
            else:
                if op.outcome is Outcome.PENDING:
                    op.outcome = Outcome.APPLIED
                logger.info("Applied %s", op.describe())

    def _register_schema(self, op: PlanOperation) -> None:
        if self._registry is None:
            op.outcome = Outcome.SKIPPED
            return
        schema_id = self._registry.register_schema(
            op.target, op.payload["schema"], SchemaFormat(op.payload["schema_type"])
        )
        op.payload["schema_id"] = schema_id

    def _create_topic(self, op: PlanOperation) -> None:
        self._admin.create_topic(
            op.target,
            op.payload["partitions"],
            op.payload["replication_factor"],
            op.payload["configs"],
        )

    def _update_topic(self, op: PlanOperation) -> None:
        if op.payload.get("partitions"):
            self._admin.create_partitions(op.target, op.payload["partitions"])
        if op.payload.get("changed"):
            self._admin.alter_topic_configs(op.target, op.payload["configs"])

    def _grant(self, op: PlanOperation) -> None:
        self._admin.create_acl(AccessBinding.model_validate(op.payload["binding"]))

    def _revoke(self, op: PlanOperation) -> None:
        self._admin.delete_acl(AccessBinding.model_validate(op.payload["binding"]))

    def _delete_topic(self, op: PlanOperation) -> None:
        self._admin.delete_topic(op.target)
