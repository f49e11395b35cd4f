import dataclasses
import os
from typing import Dict, Iterable, Optional

from storelink.configuration import Configuration
from storelink.identity import Locator, devirtualize_locator, is_virtual_locator

NODE_MODULES = "node_modules"
STORE_DIRNAME = ".store"


@dataclasses.dataclass(slots=True, frozen=True)
class Workspace:
    locator: Locator
    cwd: str


class Project:
    def __init__(
        self,
        cwd: str,
        configuration: Configuration,
        workspaces: Iterable[Workspace] = (),
    ) -> None:
        self.cwd = os.path.abspath(cwd)
        self.configuration = configuration
        self._workspaces: Dict[str, Workspace] = {}
        for workspace in workspaces:
            self.add_workspace(workspace)

    def add_workspace(self, workspace: Workspace) -> None:
        self._workspaces[workspace.locator.locator_hash] = workspace

    @property
    def store_dir(self) -> str:
        return os.path.join(self.cwd, NODE_MODULES, STORE_DIRNAME)

    def try_workspace_by_locator(self, locator: Locator) -> Optional[Workspace]:
        if is_virtual_locator(locator):
            locator = devirtualize_locator(locator)
        return self._workspaces.get(locator.locator_hash)


@dataclasses.dataclass(slots=True, frozen=True)
class LinkOptions:
    project: Project


def resolve_store_locator(project: Project, locator: Locator) -> Locator:
    """The locator under which a package is stored and linked

    Peer-dependency instantiations of a third-party package all share the copy of
    their concrete locator. Workspaces keep one identity per instantiation.
    """
    if not is_virtual_locator(locator):
        return locator
    if project.try_workspace_by_locator(locator) is not None:
        return locator
    return devirtualize_locator(locator)
