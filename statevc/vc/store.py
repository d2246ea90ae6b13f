"""
Version store - append-only table of immutable snapshots.

Metadata and payloads are kept in separate tables keyed by version number
so history can be listed without touching payloads. Entries are only ever
added by commits and removed by retention pruning.
"""

from typing import Any, Iterator

from loguru import logger

from statevc.vc.errors import IntegrityFailure, NotFound
from statevc.vc.hash import verify_checksum
from statevc.vc.version import VersionInfo
from statevc.vc.walk import deep_clone


class VersionStore:
    """
    In-process store of versions.

    Version numbers are allocated from a single counter that never goes
    backwards, even when versions are pruned.
    """

    def __init__(self) -> None:
        self._infos: dict[int, VersionInfo] = {}
        self._payloads: dict[int, Any] = {}
        self._last_version = 0

    @property
    def last_version(self) -> int:
        """Highest version number ever allocated."""
        return self._last_version

    def next_version(self) -> int:
        """Version number the next commit will receive."""
        return self._last_version + 1

    def put(self, info: VersionInfo, payload: Any) -> None:
        """
        Record a version.

        ``payload`` must already be a private copy; the store keeps the
        reference. Both tables are written together or not at all.
        """
        if info.version <= self._last_version:
            raise ValueError(
                f"Version {info.version} is not above the last allocated version {self._last_version}"
            )
        self._payloads[info.version] = payload
        self._infos[info.version] = info
        self._last_version = info.version

    def restore(self, info: VersionInfo, payload: Any) -> None:
        """Re-insert a previously stored version (used when loading an archive)."""
        self._infos[info.version] = info
        self._payloads[info.version] = payload
        self._last_version = max(self._last_version, info.version)

    def set_last_version(self, version: int) -> None:
        self._last_version = max(self._last_version, version)

    def has(self, version: int) -> bool:
        return version in self._infos and version in self._payloads

    def get_info(self, version: int) -> VersionInfo:
        info = self._infos.get(version)
        if info is None:
            raise NotFound(f"Version {version} not found")
        return info

    def get_payload(self, version: int) -> Any:
        """Return the stored payload without copying; callers must not mutate it."""
        if version not in self._payloads:
            raise NotFound(f"Version data for {version} not found")
        return self._payloads[version]

    def read(self, version: int) -> Any:
        """
        Read a verified, independent copy of a version's payload.

        Raises:
            NotFound: The version or its payload is absent.
            IntegrityFailure: The payload does not match its checksum.
        """
        info = self.get_info(version)
        payload = self.get_payload(version)
        if not verify_checksum(payload, info.checksum):
            logger.error(f"Integrity check failed for version {version}")
            raise IntegrityFailure(f"Version {version} data integrity check failed")
        return deep_clone(payload)

    def remove(self, version: int) -> bool:
        """Delete a version's metadata and payload."""
        present = version in self._infos or version in self._payloads
        self._infos.pop(version, None)
        self._payloads.pop(version, None)
        return present

    def iter_infos(self) -> Iterator[VersionInfo]:
        yield from self._infos.values()

    def list_versions(self) -> list[int]:
        return sorted(self._infos)

    def count(self) -> int:
        return len(self._infos)

    def clear(self) -> None:
        """Drop every version; the counter is kept so numbers are never reused."""
        self._infos.clear()
        self._payloads.clear()
