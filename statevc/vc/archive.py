"""
Snapshot archive - hands engine state to an external byte store.

Durable storage is not the engine's business: it only needs somewhere to
put opaque blobs under string keys. Two stores are provided, an in-memory
one and a directory of files. Blobs larger than the configured threshold
are compressed by the store.
"""

import json
import zlib
from pathlib import Path
from typing import Protocol

from loguru import logger

from statevc.config.schema import VersionControlConfig
from statevc.vc.engine import StateVersionControl
from statevc.vc.hash import canonical_json


INDEX_KEY = "index"
PAYLOAD_PREFIX = "payloads/"

_COMPRESSED_MAGIC = b"SVCZ"


class BlobStore(Protocol):
    """Opaque key/blob store."""

    def put(self, key: str, data: bytes) -> None: ...

    def get(self, key: str) -> bytes | None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


def _pack(data: bytes, threshold: int) -> bytes:
    if len(data) > threshold:
        return _COMPRESSED_MAGIC + zlib.compress(data)
    return data


def _unpack(data: bytes) -> bytes:
    if data.startswith(_COMPRESSED_MAGIC):
        return zlib.decompress(data[len(_COMPRESSED_MAGIC):])
    return data


class MemoryBlobStore:
    """Blob store kept in a dictionary."""

    def __init__(self, compression_threshold: int = 1024):
        self.compression_threshold = compression_threshold
        self._blobs: dict[str, bytes] = {}

    def put(self, key: str, data: bytes) -> None:
        self._blobs[key] = _pack(data, self.compression_threshold)

    def get(self, key: str) -> bytes | None:
        data = self._blobs.get(key)
        return _unpack(data) if data is not None else None

    def raw(self, key: str) -> bytes | None:
        """Stored bytes as written (possibly compressed)."""
        return self._blobs.get(key)

    def delete(self, key: str) -> None:
        self._blobs.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._blobs)


class FileBlobStore:
    """
    Blob store backed by a directory.

    Each key is one file (``<key>.blob``); keys may contain "/" to form
    subdirectories.
    """

    SUFFIX = ".blob"

    def __init__(self, directory: Path, compression_threshold: int = 1024):
        self.directory = directory
        self.compression_threshold = compression_threshold
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.directory / f"{key}{self.SUFFIX}").resolve()
        if self.directory.resolve() not in path.parents:
            raise ValueError(f"Invalid blob key: {key!r}")
        return path

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_bytes(_pack(data, self.compression_threshold))
        tmp.replace(path)

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        if not path.exists():
            return None
        return _unpack(path.read_bytes())

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()

    def keys(self) -> list[str]:
        return sorted(
            p.relative_to(self.directory).with_suffix("").as_posix()
            for p in self.directory.rglob(f"*{self.SUFFIX}")
        )


def _payload_key(version: int) -> str:
    return f"{PAYLOAD_PREFIX}{version}"


def save_engine(engine: StateVersionControl, store: BlobStore) -> int:
    """
    Persist every version, branch and tag of ``engine``.

    Payloads are written first and the index last, so a reader never sees
    an index pointing at payloads that were not written.

    Returns:
        Number of payloads written.
    """
    index = engine.to_index()
    live = {_payload_key(v) for v in engine.store.list_versions()}

    for version in engine.store.list_versions():
        payload = engine.store.get_payload(version)
        store.put(_payload_key(version), canonical_json(payload).encode("utf-8"))

    store.put(INDEX_KEY, json.dumps(index, ensure_ascii=False).encode("utf-8"))

    for key in store.keys():
        if key.startswith(PAYLOAD_PREFIX) and key not in live:
            store.delete(key)

    logger.debug(f"Saved {len(live)} version(s) to blob store")
    return len(live)


def load_engine(
    store: BlobStore,
    config: VersionControlConfig | None = None,
) -> StateVersionControl:
    """
    Rebuild an engine from a blob store.

    An empty store yields a fresh engine.
    """
    engine = StateVersionControl(config)
    raw_index = store.get(INDEX_KEY)
    if raw_index is None:
        return engine

    index = json.loads(raw_index.decode("utf-8"))
    payloads = {}
    for data in index.get("versions", []):
        version = data["version"]
        blob = store.get(_payload_key(version))
        if blob is None:
            continue
        try:
            payloads[version] = json.loads(blob.decode("utf-8"))
        except ValueError as e:
            logger.warning(f"Unreadable payload for v{version}: {e}")

    engine.restore_index(index, payloads)
    logger.debug(f"Loaded {len(payloads)} version(s) from blob store")
    return engine
