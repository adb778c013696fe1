"""Confluent-compatible schema registry client built on httpx."""
from __future__ import annotations

import logging
from typing import Any, List, Optional
from urllib.parse import quote

import httpx

from topicmesh.core.config import Settings
from topicmesh.core.exceptions import ClusterUnavailable, SchemaRegistryError
from topicmesh.domain.models.cluster import SchemaRegistration
from topicmesh.domain.models.topic import SchemaFormat

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/vnd.schemaregistry.v1+json"


class SchemaRegistryClient:
    """Implements :class:`~topicmesh.infra.kafka.protocols.SchemaRegistry` over REST."""

    def __init__(
        self,
        base_url: str,
        *,
        auth: tuple[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=auth,
            timeout=timeout,
            headers={"Accept": CONTENT_TYPE, "Content-Type": CONTENT_TYPE},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["SchemaRegistryClient"]:
        """Return a client, or ``None`` when no registry is configured."""
        if not settings.schema_registry_url:
            return None
        auth = None
        if settings.schema_registry_username:
            auth = (settings.schema_registry_username, settings.schema_registry_password or "")
        return cls(settings.schema_registry_url, auth=auth, timeout=settings.schema_registry_timeout_sec)

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, action: str, subject: str | None = None, **kw: Any) -> httpx.Response:
        try:
            return self._client.request(method, path, **kw)
        except httpx.TransportError as exc:
            raise ClusterUnavailable(
                f"schema registry unreachable: {exc}", resource=subject, action=action
            ) from exc

    @staticmethod
    def _raise_for_status(resp: httpx.Response, action: str, subject: str | None) -> None:
        if resp.is_success:
            return
        try:
            message = resp.json().get("message", resp.text)
        except ValueError:
            message = resp.text
        if resp.status_code >= 500:
            raise ClusterUnavailable(
                f"schema registry returned {resp.status_code}: {message}", resource=subject, action=action
            )
        raise SchemaRegistryError(
            f"schema registry returned {resp.status_code}: {message}", resource=subject, action=action
        )

    # ---------- queries ----------
    def list_subjects(self) -> List[str]:
        resp = self._request("GET", "/subjects", "list-subjects")
        self._raise_for_status(resp, "list-subjects", None)
        return sorted(resp.json())

    def latest_schema(self, subject: str) -> Optional[SchemaRegistration]:
        path = f"/subjects/{quote(subject, safe='')}/versions/latest"
        resp = self._request("GET", path, "get-schema", subject)
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, "get-schema", subject)
        body = resp.json()
        return SchemaRegistration(
            subject=subject,
            schema_str=body["schema"],
            schema_type=SchemaFormat(body.get("schemaType", SchemaFormat.AVRO.value)),
            version=body.get("version"),
            schema_id=body.get("id"),
        )

    # ---------- commands ----------
    def register_schema(self, subject: str, schema_str: str, schema_type: SchemaFormat) -> int:
        payload: dict = {"schema": schema_str}
        if schema_type is not SchemaFormat.AVRO:
            payload["schemaType"] = schema_type.value
        path = f"/subjects/{quote(subject, safe='')}/versions"
        resp = self._request("POST", path, "register-schema", subject, json=payload)
        self._raise_for_status(resp, "register-schema", subject)
        schema_id = int(resp.json()["id"])
        logger.info("Registered %s schema for %s (id=%d)", schema_type.value, subject, schema_id)
        return schema_id
