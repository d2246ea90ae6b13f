"""Tag manager: named aliases for versions."""

from loguru import logger

from statevc.vc.errors import AlreadyExists, NotFound
from statevc.vc.store import VersionStore
from statevc.vc.tag import Tag


class TagManager:
    """Maintains tags. Tags are pure metadata and never copy payloads."""

    def __init__(self, store: VersionStore):
        self.store = store
        self._tags: dict[str, Tag] = {}

    def create_tag(
        self,
        name: str,
        version: int,
        description: str = "",
        is_automated: bool = False,
    ) -> Tag:
        """
        Create a tag pointing at ``version``.

        The tag name is also recorded on the version's metadata so history
        queries by tag find it. Deleting the tag removes that label again,
        unless the version already carried it (e.g. an automatic label).

        Raises:
            AlreadyExists: The tag name is taken.
            NotFound: The version does not exist.
        """
        if name in self._tags:
            raise AlreadyExists(f"Tag '{name}' already exists")

        if not self.store.has(version):
            raise NotFound(f"Version {version} not found")

        info = self.store.get_info(version)
        tag = Tag(
            name=name,
            version=version,
            description=description,
            is_automated=is_automated,
            owns_label=name not in info.tags,
        )
        self._tags[name] = tag
        info.add_tag(name)
        logger.info(f"Tagged v{version} as '{name}'")
        return tag

    def find_tag(self, name: str) -> Tag | None:
        return self._tags.get(name)

    def get_tag(self, name: str) -> Tag:
        tag = self._tags.get(name)
        if tag is None:
            raise NotFound(f"Tag '{name}' not found")
        return tag

    def delete_tag(self, name: str) -> Tag:
        tag = self.get_tag(name)
        del self._tags[name]
        if tag.owns_label and self.store.has(tag.version):
            self.store.get_info(tag.version).remove_tag(name)
        return tag

    def list_tags(self) -> list[Tag]:
        """All tags, newest first."""
        return sorted(self._tags.values(), key=lambda t: t.created, reverse=True)

    def pinned_versions(self) -> set[int]:
        """Versions referenced by user (non-automated) tags."""
        return {t.version for t in self._tags.values() if not t.is_automated}

    def drop_for_version(self, version: int) -> list[str]:
        """Remove every tag pointing at a pruned version."""
        names = [name for name, tag in self._tags.items() if tag.version == version]
        for name in names:
            del self._tags[name]
        return names

    def restore(self, tags: list[Tag]) -> None:
        self._tags = {t.name: t for t in tags}

    def clear(self) -> None:
        self._tags.clear()
