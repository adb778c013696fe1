"""Load domain documents and schema files from disk."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from topicmesh.core.exceptions import SpecResourceNotFound
from topicmesh.domain.models.document import ApiDocument
from topicmesh.domain.models.domain import Domain
from topicmesh.domain.services.resolver import resolve_domain


def load_document(path: str | Path) -> ApiDocument:
    """Parse the YAML (or JSON) document at *path*.

    Raises
    ------
    SpecResourceNotFound
        If the file is missing, unreadable, not a mapping, or fails validation.
    """
    doc_path = Path(path)
    try:
        with doc_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise SpecResourceNotFound(
            f"API document not found: {doc_path}", resource=str(doc_path), action="load-document"
        ) from exc
    except (OSError, yaml.YAMLError) as exc:
        raise SpecResourceNotFound(
            f"failed to read API document: {exc}", resource=str(doc_path), action="load-document"
        ) from exc

    if not isinstance(data, dict):
        raise SpecResourceNotFound(
            "invalid API document: expected a mapping at the top level",
            resource=str(doc_path),
            action="load-document",
        )
    try:
        return ApiDocument.model_validate(data)
    except ValidationError as exc:
        raise SpecResourceNotFound(
            f"invalid API document: {exc}", resource=str(doc_path), action="load-document"
        ) from exc


def load_domain(path: str | Path, known_domains: Iterable[str] = ()) -> Domain:
    """Load and resolve a document in one step."""
    return resolve_domain(load_document(path), known_domains)


def read_schema(base_path: str | Path, ref: str) -> str:
    """Read a schema file referenced by a channel, relative to *base_path*."""
    schema_path = Path(base_path) / ref.lstrip("/")
    try:
        return schema_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SpecResourceNotFound(
            f"schema file not readable: {schema_path}", resource=ref, action="read-schema"
        ) from exc
