"""Persistent storage for estimate documents.

The whole collection lives under one key of a durable key-value backend as a
JSON array. Every call re-reads the backend; nothing is cached between calls.
Writes are last-writer-wins per document id with no conflict detection.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from .errors import SchemaError, StoreError
from .models import STORAGE_KEY, EstimateDocument, parse_timestamp
from .pricing import recompute_document
from .validation import validate_stored

LOGGER = logging.getLogger(__name__)


class KeyValueBackend(Protocol):
    def read(self, key: str) -> Optional[str]:
        ...

    def write(self, key: str, value: str) -> None:
        ...


class MemoryBackend:
    """In-process backend; contents are lost when the object goes away."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.values: Dict[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def write(self, key: str, value: str) -> None:
        self.values[key] = value


class JsonFileBackend:
    """Stores each key as ``<directory>/<key>.json``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, value: str) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class EstimateStore:
    """List, fetch, upsert and delete estimate documents."""

    def __init__(self, backend: KeyValueBackend, key: str = STORAGE_KEY) -> None:
        self.backend = backend
        self.key = key

    def _load_raw(self) -> List[object]:
        text = self.backend.read(self.key)
        if text is None or not text.strip():
            return []
        try:
            raw = json.loads(text)
        except ValueError as exc:
            LOGGER.error("Estimate collection %s is not valid JSON: %s", self.key, exc)
            raise StoreError(f"Estimate collection {self.key} is corrupt: {exc}") from exc
        if not isinstance(raw, list):
            raise StoreError(f"Estimate collection {self.key} is not a list")
        return raw

    def _save_raw(self, records: List[object]) -> None:
        self.backend.write(self.key, json.dumps(records, indent=2))

    @staticmethod
    def _parse(record: object) -> Optional[EstimateDocument]:
        try:
            return validate_stored(record)
        except (SchemaError, ValueError, TypeError, OverflowError) as exc:
            record_id = record.get("id") if isinstance(record, dict) else None
            LOGGER.warning("Skipping stored estimate %s: %s", record_id or "<unknown>", exc)
            return None

    def list(self) -> List[EstimateDocument]:
        documents = [doc for doc in map(self._parse, self._load_raw()) if doc is not None]
        return sorted(documents, key=lambda doc: parse_timestamp(doc.updated_at), reverse=True)

    def get(self, document_id: str) -> Optional[EstimateDocument]:
        for record in self._load_raw():
            if isinstance(record, dict) and record.get("id") == document_id:
                return self._parse(record)
        return None

    def put(self, document: EstimateDocument) -> EstimateDocument:
        """Recompute and upsert ``document``; an existing id is replaced in place."""

        document = recompute_document(document)
        records = self._load_raw()
        payload = document.to_dict()
        for index, record in enumerate(records):
            if isinstance(record, dict) and record.get("id") == document.id:
                records[index] = payload
                break
        else:
            records.insert(0, payload)
        self._save_raw(records)
        LOGGER.debug("Stored estimate %s (%d in collection)", document.id, len(records))
        return document

    def delete(self, document_id: str) -> bool:
        records = self._load_raw()
        remaining = [
            record
            for record in records
            if not (isinstance(record, dict) and record.get("id") == document_id)
        ]
        if len(remaining) == len(records):
            return False
        self._save_raw(remaining)
        LOGGER.info("Deleted estimate %s", document_id)
        return True


__all__ = ["EstimateStore", "KeyValueBackend", "MemoryBackend", "JsonFileBackend"]
