import dataclasses
import os
from enum import Enum
from typing import Optional, Sequence, Any, Tuple

from storelink.identity import Descriptor, Locator


class LinkType(Enum):
    # First-party (workspace) package; used where it is, never copied
    SOFT = "soft"
    # Third-party package; copied into the shared store
    HARD = "hard"


KEY2LINK_TYPE = {lt.value: lt for lt in LinkType}


@dataclasses.dataclass(slots=True, frozen=True)
class Package:
    locator: Locator
    link_type: LinkType
    dependencies: Sequence[Descriptor] = tuple()

    @property
    def locator_hash(self) -> str:
        return self.locator.locator_hash

    def __str__(self) -> str:
        return str(self.locator)


@dataclasses.dataclass(slots=True, frozen=True)
class FetchResult:
    """Read-only handle on the content of a fetched package

    The package itself lives at `prefix_path` inside `package_fs_root`; archives
    with a wrapping directory have a non-trivial prefix.
    """

    package_fs_root: str
    prefix_path: str = "."

    @property
    def package_root(self) -> str:
        return os.path.normpath(os.path.join(self.package_fs_root, self.prefix_path))


@dataclasses.dataclass(slots=True, frozen=True)
class InstallRecord:
    package_location: str
    build_directive: Optional[Any] = None


@dataclasses.dataclass(slots=True, frozen=True)
class FinalizeResult:
    custom_data: Any = None


DependencyPair = Tuple[Descriptor, Locator]
