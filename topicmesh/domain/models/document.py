"""Typed tree of an AsyncAPI-style domain document (as produced by the loader)."""
from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class KafkaBinding(BaseModel):
    """``bindings.kafka`` block of a channel."""

    model_config = ConfigDict(extra="ignore")

    partitions: int = Field(default=1, ge=1)
    replicas: int = Field(default=1, ge=1)
    retention: int | None = Field(
        default=None, ge=-1, description="Retention in ms (-1 = unlimited)"
    )
    configs: Dict[str, str] = Field(default_factory=dict)

    @field_validator("configs", mode="before")
    @classmethod
    def stringify_values(cls, v: Any) -> Dict[str, str]:
        """Kafka configs are strings on the wire; YAML may hand us ints and bools."""
        if v is None:
            return {}
        out: Dict[str, str] = {}
        for key, val in dict(v).items():
            if isinstance(val, bool):
                val = str(val).lower()
            out[str(key)] = "" if val is None else str(val)
        return out


class ChannelBindings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kafka: KafkaBinding = Field(default_factory=KafkaBinding)


class Tag(BaseModel):
    name: str


class MessageDocument(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    schema_ref: str | None = Field(default=None, alias="schemaRef")
    schema_format: str | None = Field(default=None, alias="schemaFormat")


class OperationDocument(BaseModel):
    """A ``publish`` or ``subscribe`` operation on a channel."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    operation_id: str | None = Field(default=None, alias="operationId")
    summary: str | None = None
    tags: List[Tag] = Field(default_factory=list)
    message: MessageDocument | None = None


class ChannelDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str | None = None
    bindings: ChannelBindings = Field(default_factory=ChannelBindings)
    publish: OperationDocument | None = None
    subscribe: OperationDocument | None = None


class ApiDocument(BaseModel):
    """Root of a parsed domain document."""

    model_config = ConfigDict(extra="ignore")

    asyncapi: str | None = None
    id: str = Field(..., examples=["urn:simple:streetlights"])
    channels: Dict[str, ChannelDocument] = Field(default_factory=dict)

    @field_validator("channels", mode="before")
    @classmethod
    def empty_channels(cls, v: Any) -> Any:
        # ``channels:`` with no entries parses as None
        return {} if v is None else v
