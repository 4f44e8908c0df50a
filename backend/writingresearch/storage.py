from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

from writingresearch.config import Settings

logger = logging.getLogger("writingresearch.storage")

JSON_INDENT = 2


class StorageError(RuntimeError):
    """Raised when a JSON record cannot be read, written or deleted."""


class JsonStore(Protocol):
    backend_name: str

    def read(self, key: str) -> Any | None: ...

    def write(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...

    def list_keys(self, prefix: str) -> list[str]: ...

    def probe(self) -> dict[str, object]: ...


def _normalize_backend(value: str) -> str:
    normalized = (value or "").strip().lower()
    if normalized in {"", "local", "filesystem", "fs"}:
        return "local"
    if normalized in {"s3"}:
        return "s3"
    raise StorageError(f"Unsupported STORAGE_BACKEND '{value}'. Use 'local' or 's3'.")


def _validate_key(key: str) -> str:
    raw = str(key or "").strip().strip("/")
    if not raw:
        raise StorageError("Missing storage key.")
    if any(part in {"", ".", ".."} for part in raw.split("/")):
        raise StorageError(f"Invalid storage key '{key}'.")
    return raw


def _encode(value: Any) -> bytes:
    return json.dumps(value, ensure_ascii=False, indent=JSON_INDENT).encode("utf-8")


def _decode(raw: bytes, *, location: str) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StorageError(f"Corrupt JSON record at '{location}': {exc}") from exc


class LocalJsonStore:
    backend_name = "local"

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root / _validate_key(key)

    def read(self, key: str) -> Any | None:
        path = self._path(key)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read '{path}': {exc}") from exc
        return _decode(raw, location=str(path))

    def write(self, key: str, value: Any) -> None:
        path = self._path(key)
        # Readers never observe a partially written record.
        temp_path = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_bytes(_encode(value))
            os.replace(temp_path, path)
        except OSError as exc:
            temp_path.unlink(missing_ok=True)
            raise StorageError(f"Failed to write '{path}': {exc}") from exc

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete '{path}': {exc}") from exc

    def list_keys(self, prefix: str) -> list[str]:
        folder = self._path(prefix)
        if not folder.is_dir():
            return []
        base = _validate_key(prefix)
        return sorted(
            f"{base}/{entry.name}"
            for entry in folder.iterdir()
            if entry.is_file() and entry.name.endswith(".json") and not entry.name.startswith(".")
        )

    def probe(self) -> dict[str, object]:
        token = uuid4().hex
        self.write("readyz/probe.json", {"token": token})
        read_back = self.read("readyz/probe.json")
        self.delete("readyz/probe.json")
        if not isinstance(read_back, dict) or read_back.get("token") != token:
            raise StorageError("local storage probe mismatch")
        return {"ok": True, "backend": self.backend_name, "root": str(self.root)}


class S3JsonStore:
    backend_name = "s3"

    def __init__(self, *, bucket: str, prefix: str = "", region: str = "us-east-1", client: Any = None) -> None:
        self.bucket = str(bucket or "").strip()
        if not self.bucket:
            raise StorageError("S3 storage backend selected but S3_BUCKET is not configured.")
        self.prefix = str(prefix or "").strip().strip("/")
        if client is None:
            try:
                import boto3  # type: ignore
            except ImportError as exc:
                raise StorageError("boto3 is required for S3 storage backend.") from exc
            client = boto3.client("s3", region_name=region)
        self.client = client

    def _object_key(self, key: str) -> str:
        base = f"{self.prefix}/" if self.prefix else ""
        return f"{base}{_validate_key(key)}"

    @staticmethod
    def _is_missing(exc: Exception) -> bool:
        response = getattr(exc, "response", None)
        if not isinstance(response, dict):
            return False
        code = str((response.get("Error") or {}).get("Code") or "")
        return code in {"NoSuchKey", "404", "NotFound"}

    def read(self, key: str) -> Any | None:
        object_key = self._object_key(key)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=object_key)
        except Exception as exc:
            if self._is_missing(exc):
                return None
            raise StorageError(f"Failed to read from S3 (bucket={self.bucket}, key={object_key}): {exc}") from exc
        body = response.get("Body")
        if body is None:
            raise StorageError(f"S3 get_object returned no body (bucket={self.bucket}, key={object_key}).")
        return _decode(body.read(), location=f"s3://{self.bucket}/{object_key}")

    def write(self, key: str, value: Any) -> None:
        object_key = self._object_key(key)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=object_key,
                Body=_encode(value),
                ContentType="application/json",
            )
        except Exception as exc:
            raise StorageError(f"Failed to write to S3 (bucket={self.bucket}, key={object_key}): {exc}") from exc

    def delete(self, key: str) -> None:
        object_key = self._object_key(key)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=object_key)
        except Exception as exc:
            if self._is_missing(exc):
                return
            raise StorageError(f"Failed to delete from S3 (bucket={self.bucket}, key={object_key}): {exc}") from exc

    def list_keys(self, prefix: str) -> list[str]:
        folder = self._object_key(prefix) + "/"
        strip = f"{self.prefix}/" if self.prefix else ""
        keys: list[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=folder):
                for item in page.get("Contents") or []:
                    name = str(item.get("Key") or "")
                    if name.endswith(".json"):
                        keys.append(name[len(strip) :])
        except Exception as exc:
            raise StorageError(f"Failed to list S3 objects (bucket={self.bucket}, prefix={folder}): {exc}") from exc
        return sorted(keys)

    def probe(self) -> dict[str, object]:
        token = uuid4().hex
        self.write("readyz/probe.json", {"token": token})
        read_back = self.read("readyz/probe.json")
        if not isinstance(read_back, dict) or read_back.get("token") != token:
            raise StorageError("S3 readiness probe mismatch")
        return {"ok": True, "backend": self.backend_name, "bucket": self.bucket}


def build_json_store(settings: Settings) -> JsonStore:
    backend = _normalize_backend(settings.storage_backend)
    if backend == "local":
        store: JsonStore = LocalJsonStore(settings.storage_root)
    else:
        store = S3JsonStore(bucket=settings.s3_bucket, prefix=settings.s3_prefix, region=settings.aws_region)
    logger.info("json_store_selected", extra={"event": "json_store_selected", "backend": store.backend_name})
    return store
