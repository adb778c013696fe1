"""Permission grants (Kafka ACLs) derived from a domain document."""
from __future__ import annotations

from enum import Enum
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field

ANY_PRINCIPAL = "User:*"


def principal_for(domain_id: str) -> str:
    """Kafka principal a domain authenticates as."""
    return f"User:{domain_id}"


class Operation(str, Enum):
    READ = "READ"
    WRITE = "WRITE"
    DESCRIBE = "DESCRIBE"


class ResourceType(str, Enum):
    TOPIC = "TOPIC"
    GROUP = "GROUP"


class PatternType(str, Enum):
    LITERAL = "LITERAL"
    PREFIXED = "PREFIXED"


class AccessBinding(BaseModel):
    """An ALLOW grant of one operation on one resource pattern to one principal."""

    model_config = ConfigDict(frozen=True)

    principal: str = Field(..., examples=["User:simple.streetlights"])
    resource_type: ResourceType = ResourceType.TOPIC
    pattern_type: PatternType = PatternType.LITERAL
    resource_name: str
    operation: Operation
    host: str = "*"
    foreign: bool = Field(
        default=False,
        description="Resource belongs to another domain; reported, never applied",
    )

    @property
    def key(self) -> Tuple[str, str, str, str, str, str]:
        """Identity used to compare desired and observed grants."""
        return (
            self.principal,
            self.resource_type.value,
            self.pattern_type.value,
            self.resource_name,
            self.operation.value,
            self.host,
        )

    def describe(self) -> str:
        return (
            f"{self.principal} {self.operation.value} "
            f"{self.resource_type.value}:{self.pattern_type.value}:{self.resource_name}"
        )
