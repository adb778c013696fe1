"""Error kinds raised by the domain services plus RFC 7807 *Problem Details*."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class TopicMeshError(Exception):
    """Base class for every error raised by topicmesh.

    Attributes
    ----------
    resource : str | None
        Name of the topic, ACL, subject or file the error concerns.
    action : str | None
        Operation that was being attempted (``describe-topics``, ``create-topic`` ...).
    """

    title = "TopicMesh Error"

    def __init__(
        self,
        message: str,
        *,
        resource: str | None = None,
        action: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.resource = resource
        self.action = action

    def __str__(self) -> str:
        context = [f"{k}={v}" for k, v in (("action", self.action), ("resource", self.resource)) if v]
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class SpecResourceNotFound(TopicMeshError):
    """The API document, or a schema file it references, is missing or unreadable."""

    title = "Spec Resource Not Found"


class NamingCollision(TopicMeshError):
    """Channel naming is ambiguous, illegal, or references an unknown domain."""

    title = "Naming Collision"


class ClusterUnavailable(TopicMeshError):
    """Transport failure or timeout talking to the cluster or schema registry.

    Never means "resource absent".
    """

    title = "Cluster Unavailable"


class ClusterOperationError(TopicMeshError):
    """The cluster was reachable but rejected the request."""

    title = "Cluster Operation Failed"


class SchemaRegistryError(TopicMeshError):
    """The schema registry was reachable but rejected the request."""

    title = "Schema Registry Error"


class PartialReconciliationFailure(TopicMeshError):
    """One or more plan operations failed while others were applied."""

    title = "Partial Reconciliation Failure"

    def __init__(self, domain_id: str, failed: Sequence[Any]) -> None:
        self.failed = list(failed)
        summary = ", ".join(f"{op.kind.value} {op.target}: {op.error}" for op in self.failed)
        super().__init__(
            f"{len(self.failed)} operation(s) failed: {summary}",
            resource=domain_id,
            action="reconcile",
        )


class ProblemDetail(BaseModel):
    """Data model that serialises to RFC 7807 JSON.

    Attributes
    ----------
    type : str
        A URI reference that identifies the problem type.
    title : str
        A short human-readable summary of the problem type.
    status : int
        The HTTP status code.
    detail : str | None
        A human-readable explanation specific to this occurrence.
    instance : str
        A URI reference that identifies the specific occurrence.
    resource, action : str | None
        Context copied from the originating :class:`TopicMeshError`.
    errors : list | None
        Per-operation failures for partial reconciliation.
    """

    model_config = ConfigDict(json_schema_extra={"required": ["type", "title", "status"]})

    type: str = Field(..., examples=["/naming-collision"])
    title: str
    status: int = Field(..., ge=200, le=599)
    detail: Optional[str] = None
    instance: str = Field(default_factory=lambda: f"urn:uuid:{uuid4()}")
    resource: Optional[str] = None
    action: Optional[str] = None
    errors: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def from_error(cls, status: int, exc: TopicMeshError) -> "ProblemDetail":
        slug = "/" + "-".join(exc.title.lower().split())
        errors = None
        if isinstance(exc, PartialReconciliationFailure):
            errors = [op.model_dump(mode="json") for op in exc.failed]
        return cls(
            type=slug,
            title=exc.title,
            status=status,
            detail=str(exc),
            resource=exc.resource,
            action=exc.action,
            errors=errors,
        )
