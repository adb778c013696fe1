"""Reconciliation plan: ordered, uniformly shaped operations plus outcomes."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field, computed_field

from topicmesh.core.exceptions import PartialReconciliationFailure


class ResourceState(str, Enum):
    """Classification of one managed resource against the snapshot."""

    MISSING = "missing"
    DIVERGENT = "divergent"
    MATCHING = "matching"
    ORPHANED = "orphaned"


class OperationKind(str, Enum):
    """Operation kinds, declared in execution order."""

    REGISTER_SCHEMA = "register-schema"
    CREATE_TOPIC = "create-topic"
    UPDATE_TOPIC_CONFIG = "update-topic-config"
    GRANT_PERMISSION = "grant-permission"
    REVOKE_PERMISSION = "revoke-permission"
    DELETE_TOPIC = "delete-topic"

    @property
    def destructive(self) -> bool:
        return self in (OperationKind.REVOKE_PERMISSION, OperationKind.DELETE_TOPIC)


PLAN_ORDER: List[OperationKind] = list(OperationKind)


class Outcome(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"


class PlanOperation(BaseModel):
    """One step of a plan: what to do (kind), to what (target), with what (payload)."""

    kind: OperationKind
    target: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    outcome: Outcome = Outcome.PENDING
    error: str | None = None

    def describe(self) -> str:
        """Single-line rendering used for dry-run reports and logs."""
        details = ""
        if self.kind is OperationKind.CREATE_TOPIC:
            details = (
                f" partitions={self.payload.get('partitions')}"
                f" replication={self.payload.get('replication_factor')}"
            )
        elif self.kind is OperationKind.UPDATE_TOPIC_CONFIG:
            changed = self.payload.get("changed") or {}
            details = "".join(f" {k}: {old!r} -> {new!r}" for k, (old, new) in sorted(changed.items()))
            if self.payload.get("partitions") is not None:
                details += f" partitions -> {self.payload['partitions']}"
        elif self.kind is OperationKind.REGISTER_SCHEMA:
            details = f" type={self.payload.get('schema_type')}"
        line = f"{self.kind.value} {self.target}{details}"
        if self.outcome is not Outcome.PENDING:
            line += f" [{self.outcome.value}]"
        if self.error:
            line += f" error={self.error}"
        return line


class ReconciliationPlan(BaseModel):
    domain_id: str
    operations: List[PlanOperation] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.operations

    def of_kind(self, kind: OperationKind) -> List[PlanOperation]:
        return [op for op in self.operations if op.kind is kind]

    def render(self) -> str:
        if self.is_empty:
            return f"{self.domain_id}: nothing to do"
        return "\n".join([f"{self.domain_id}:"] + [f"  {op.describe()}" for op in self.operations])


class ReconciliationResult(BaseModel):
    """The plan annotated with per-operation outcomes."""

    plan: ReconciliationPlan
    dry_run: bool = False

    @computed_field  # type: ignore[misc]
    @property
    def success(self) -> bool:
        return all(op.outcome is not Outcome.FAILED for op in self.plan.operations)

    @property
    def failed(self) -> List[PlanOperation]:
        return [op for op in self.plan.operations if op.outcome is Outcome.FAILED]

    def raise_for_failures(self) -> None:
        """Raise :class:`PartialReconciliationFailure` if any operation failed."""
        if not self.success:
            raise PartialReconciliationFailure(self.plan.domain_id, self.failed)
