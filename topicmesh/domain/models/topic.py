"""Channel, canonical-topic and observed-topic models."""
from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Direction(str, Enum):
    """Whether the owning domain writes to or reads from a channel."""

    PRODUCED = "produced"
    CONSUMED = "consumed"


class SchemaFormat(str, Enum):
    AVRO = "AVRO"
    JSON = "JSON"
    PROTOBUF = "PROTOBUF"


class SchemaRef(BaseModel):
    """Pointer to a schema file, relative to the schema base path."""

    model_config = ConfigDict(frozen=True)

    path: str
    format: SchemaFormat = SchemaFormat.AVRO


class ChannelSpec(BaseModel):
    """One channel as declared in the domain document."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Channel name exactly as written")
    direction: Direction
    partitions: int = Field(default=1, ge=1)
    replication_factor: int = Field(default=1, ge=1)
    retention_ms: int | None = None
    configs: Dict[str, str] = Field(default_factory=dict)
    schema_ref: SchemaRef | None = None
    grants: Tuple[str, ...] = Field(
        default=(), description="Domains granted access via grant-access tags"
    )

    @field_validator("configs")
    @classmethod
    def lowercase_keys(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Ensure config keys are case-insensitive."""
        return {k.lower(): val for k, val in v.items()}

    def topic_configs(self) -> Dict[str, str]:
        """Kafka topic configs to apply, retention folded in."""
        configs = dict(self.configs)
        if self.retention_ms is not None:
            configs["retention.ms"] = str(self.retention_ms)
        return configs


class CanonicalTopic(BaseModel):
    """A channel resolved to its cluster-wide topic name."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., pattern=r"^[\w\-.]+$", examples=["simple.streetlights.public.light"])
    owner: str = Field(..., description="Domain that owns the topic")
    channel: ChannelSpec


class Topic(BaseModel):
    """Observed view of a Kafka topic's layout and configuration."""

    name: str = Field(
        ...,
        pattern=r"^[\w\-.]+$",
        examples=["simple.streetlights.public.light.measured"],
        description="Kafka topic name",
    )
    partitions: int = Field(..., ge=0)
    replication_factor: int = Field(..., ge=0)
    configs: Dict[str, str] = Field(default_factory=dict)

    @field_validator("configs")
    @classmethod
    def lowercase_keys(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Ensure config keys are case-insensitive."""
        return {k.lower(): val for k, val in v.items()}
