"""
Branch manager for the version-control engine.

Maintains named pointers into the version store and tracks which branch is
currently checked out.
"""

from loguru import logger

from statevc.vc.branch import Branch
from statevc.vc.errors import AlreadyExists, LimitExceeded, NotFound, VersionControlError
from statevc.vc.store import VersionStore


class BranchManager:
    """
    Manages version branches.

    Provides operations for:
    - Branch creation and deletion
    - Switching the active branch
    - Advancing a branch head on commit
    """

    def __init__(
        self,
        store: VersionStore,
        default_branch: str = "main",
        max_branches: int = 10,
        protect_default: bool = False,
    ):
        self.store = store
        self.default_branch = default_branch
        self.max_branches = max_branches

        self._branches: dict[str, Branch] = {}
        self._current = default_branch

        self._branches[default_branch] = Branch(
            name=default_branch,
            description="Main development branch",
            is_protected=protect_default,
        )

    def get_current_branch_name(self) -> str:
        """Get the name of the active branch."""
        return self._current

    def get_current_branch(self) -> Branch:
        return self.get_branch(self._current)

    def find_branch(self, name: str) -> Branch | None:
        return self._branches.get(name)

    def get_branch(self, name: str) -> Branch:
        branch = self._branches.get(name)
        if branch is None:
            raise NotFound(f"Branch '{name}' not found")
        return branch

    def has_branch(self, name: str) -> bool:
        return name in self._branches

    def list_branches(self) -> list[Branch]:
        """List all branches in creation order."""
        return list(self._branches.values())

    def create_branch(
        self,
        name: str,
        base_version: int | None = None,
        description: str = "",
    ) -> Branch:
        """
        Create a new branch.

        Args:
            name: Name of the new branch.
            base_version: Version to fork from (default: head of the active branch).
            description: Optional description.

        Returns:
            The created branch.

        Raises:
            AlreadyExists: A branch with this name exists.
            LimitExceeded: The branch-count limit is reached.
            NotFound: The base version does not exist.
        """
        if name in self._branches:
            raise AlreadyExists(f"Branch '{name}' already exists")

        if len(self._branches) >= self.max_branches:
            raise LimitExceeded(f"Maximum number of branches ({self.max_branches}) reached")

        base = base_version if base_version is not None else self.get_current_branch().current_version
        if base is None or not self.store.has(base):
            raise NotFound(f"Base version {base} not found")

        branch = Branch(
            name=name,
            base_version=base,
            current_version=base,
            description=description,
            versions=[base],
        )
        self._branches[name] = branch
        logger.info(f"Created branch '{name}' from v{base}")
        return branch

    def switch_branch(self, name: str) -> Branch:
        """Make ``name`` the active branch."""
        branch = self.get_branch(name)
        self._current = name
        return branch

    def delete_branch(self, name: str) -> Branch:
        """
        Delete a branch pointer.

        The default branch, the active branch and protected branches cannot
        be deleted. Versions are left for retention to collect.
        """
        branch = self.get_branch(name)
        if name == self.default_branch:
            raise VersionControlError(f"Cannot delete default branch '{name}'")
        if name == self._current:
            raise VersionControlError(f"Cannot delete the active branch '{name}'")
        if branch.is_protected:
            raise VersionControlError(f"Branch '{name}' is protected")

        del self._branches[name]
        logger.info(f"Deleted branch '{name}'")
        return branch

    def restore(self, branches: list[Branch], current: str) -> None:
        """Replace all branches (used when loading an archive)."""
        self._branches = {b.name: b for b in branches}
        if self.default_branch not in self._branches:
            self._branches[self.default_branch] = Branch(name=self.default_branch)
        self._current = current if current in self._branches else self.default_branch

    def referenced_versions(self, exclude: str | None = None) -> set[int]:
        """Versions listed in any branch history, optionally skipping one branch."""
        referenced: set[int] = set()
        for branch in self._branches.values():
            if branch.name == exclude:
                continue
            referenced.update(branch.versions)
        return referenced

    def heads(self) -> set[int]:
        return {
            b.current_version for b in self._branches.values()
            if b.current_version is not None
        }

    def forget_version(self, version: int) -> None:
        """Drop a pruned version from every branch history (heads are never pruned)."""
        for branch in self._branches.values():
            if version in branch.versions:
                branch.versions = [v for v in branch.versions if v != version]

    def clear(self) -> None:
        self._branches.clear()
