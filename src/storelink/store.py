import asyncio
import os
import shutil
from typing import Dict, List, Optional, NoReturn

from storelink.exceptions import InvariantViolationError, UnregisteredLocatorError
from storelink.identity import Locator, slugify_locator, stringify_locator
from storelink.packages import FetchResult, InstallRecord, Package
from storelink.project import Project, resolve_store_locator
from storelink.util import ensure_dir


class LocationTable:
    """Where every installed locator lives on disk

    Entries are only ever added; an entry, once set, is never changed for the
    rest of the run.
    """

    def __init__(self) -> None:
        self._locations: Dict[str, str] = {}

    def register(self, locator: Locator, path: str) -> None:
        existing = self._locations.get(locator.locator_hash)
        if existing is not None and existing != path:
            raise InvariantViolationError(
                f"{stringify_locator(locator)} was registered at both {existing}"
                f" and {path}"
            )
        self._locations[locator.locator_hash] = path

    def get(self, locator: Locator) -> Optional[str]:
        return self._locations.get(locator.locator_hash)

    def require(self, locator: Locator) -> str:
        path = self._locations.get(locator.locator_hash)
        if path is None:
            raise UnregisteredLocatorError(
                "Assertion failed: Expected the package to have been registered"
                f" ({stringify_locator(locator)})",
                locator,
            )
        return path

    def __contains__(self, locator: Locator) -> bool:
        return locator.locator_hash in self._locations

    def __len__(self) -> int:
        return len(self._locations)


def _raise(e: OSError) -> NoReturn:
    raise e


def _copy_entry(source: str, target: str) -> bool:
    if os.path.lexists(target):
        return False
    if os.path.islink(source):
        os.symlink(os.readlink(source), target)
    else:
        shutil.copy2(source, target)
    return True


def copy_tree_no_overwrite(source_dir: str, target_dir: str) -> int:
    """Copy `source_dir` into `target_dir`, keeping anything already there

    Symlinks are copied as symlinks. Returns the number of entries written.
    """
    written = 0
    ensure_dir(target_dir)
    for dirpath, dirnames, filenames in os.walk(source_dir, onerror=_raise):
        rel = os.path.relpath(dirpath, source_dir)
        dest_dir = target_dir if rel == "." else os.path.join(target_dir, rel)
        for name in list(dirnames):
            source = os.path.join(dirpath, name)
            if os.path.islink(source):
                dirnames.remove(name)
                written += _copy_entry(source, os.path.join(dest_dir, name))
            else:
                ensure_dir(os.path.join(dest_dir, name))
        for name in filenames:
            written += _copy_entry(
                os.path.join(dirpath, name), os.path.join(dest_dir, name)
            )
    return written


class StoreManager:
    def __init__(self, project: Project, locations: LocationTable) -> None:
        self.project = project
        self.locations = locations
        self._pending: Dict[str, "asyncio.Future[int]"] = {}
        self.files_written = 0

    def slot_path(self, locator: Locator) -> str:
        storage_locator = resolve_store_locator(self.project, locator)
        return os.path.join(
            self.project.store_dir, slugify_locator(storage_locator)
        )

    def install_package_soft(
        self,
        pkg: Package,
        fetch_result: FetchResult,
    ) -> InstallRecord:
        pkg_path = os.path.realpath(fetch_result.package_root)
        self.locations.register(pkg.locator, pkg_path)
        return InstallRecord(pkg_path)

    def install_package_hard(
        self,
        pkg: Package,
        fetch_result: FetchResult,
    ) -> InstallRecord:
        storage_locator = resolve_store_locator(self.project, pkg.locator)
        pkg_path = self.slot_path(pkg.locator)
        self.locations.register(pkg.locator, pkg_path)
        if storage_locator != pkg.locator:
            self.locations.register(storage_locator, pkg_path)

        if pkg_path not in self._pending:
            self._pending[pkg_path] = asyncio.ensure_future(
                asyncio.to_thread(self._populate, pkg_path, fetch_result)
            )

        return InstallRecord(pkg_path)

    def _populate(self, pkg_path: str, fetch_result: FetchResult) -> int:
        ensure_dir(pkg_path)
        return copy_tree_no_overwrite(fetch_result.package_root, pkg_path)

    @property
    def pending_population_count(self) -> int:
        return sum(1 for f in self._pending.values() if not f.done())

    async def wait_for_population(self) -> None:
        futures: List["asyncio.Future[int]"] = list(self._pending.values())
        # Every copy settles before a failure is reported, so the slots that
        # did complete are left whole on disk for the next run.
        results = await asyncio.gather(*futures, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        self.files_written = sum(results)
