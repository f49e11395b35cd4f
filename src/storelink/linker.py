import asyncio
import json
from typing import Any, Dict, Optional, Sequence

from storelink.configuration import LinkerStrategy, NODE_LINKER_KEY
from storelink.exceptions import InvariantViolationError, UnsupportedOperationError
from storelink.identity import Locator, stringify_locator
from storelink.packages import (
    DependencyPair,
    FetchResult,
    FinalizeResult,
    InstallRecord,
    LinkType,
    Package,
)
from storelink.project import LinkOptions
from storelink.reconcile import DependencyDirectoryReconciler, ReconcileReport
from storelink.store import LocationTable, StoreManager


def _strategy_is_active(opts: LinkOptions) -> bool:
    return opts.project.configuration.get(NODE_LINKER_KEY) == LinkerStrategy.PNPM


class StoreLinker:
    """Links packages through a content-addressable store

    Third-party packages are copied once into `node_modules/.store` and every
    package sees exactly its declared dependencies through symlinks in its own
    `node_modules` directory.
    """

    def supports_package(self, pkg: Package, opts: LinkOptions) -> bool:
        return _strategy_is_active(opts)

    async def find_package_location(
        self, locator: Locator, opts: LinkOptions
    ) -> Optional[str]:
        # Not tracked between runs by this linker
        return None

    async def find_package_locator(
        self, location: str, opts: LinkOptions
    ) -> Optional[Locator]:
        return None

    def make_installer(self, opts: LinkOptions) -> "StoreInstaller":
        return StoreInstaller(opts)


class StoreInstaller:
    def __init__(self, opts: LinkOptions) -> None:
        self.opts = opts
        self.locations = LocationTable()
        self.store = StoreManager(opts.project, self.locations)
        self.reconciler = DependencyDirectoryReconciler(opts.project, self.locations)
        self.custom_data: Any = {}
        self._dir_locks: Dict[str, asyncio.Lock] = {}

    def get_custom_data_key(self) -> str:
        return json.dumps(
            {
                "name": "StoreInstaller",
                "version": 1,
            }
        )

    def attach_custom_data(self, custom_data: Any) -> None:
        self.custom_data = custom_data

    async def install_package(
        self, pkg: Package, fetch_result: FetchResult
    ) -> InstallRecord:
        if pkg.link_type == LinkType.SOFT:
            return self.store.install_package_soft(pkg, fetch_result)
        if pkg.link_type == LinkType.HARD:
            return self.store.install_package_hard(pkg, fetch_result)
        raise InvariantViolationError(
            f"Assertion failed: Unsupported package link type {pkg.link_type!r}"
            f" for {stringify_locator(pkg.locator)}"
        )

    async def attach_internal_dependencies(
        self,
        locator: Locator,
        dependencies: Sequence[DependencyPair],
    ) -> Optional[ReconcileReport]:
        await self.store.wait_for_population()
        if not self.reconciler.owns_dependency_dir(locator):
            return None

        # A workspace and its virtual instantiations share one directory
        dependency_dir = self.locations.require(locator)
        lock = self._dir_locks.setdefault(dependency_dir, asyncio.Lock())
        async with lock:
            return await asyncio.to_thread(
                self.reconciler.reconcile, locator, dependencies
            )

    async def attach_external_dependents(
        self, locator: Locator, dependent_paths: Sequence[str]
    ) -> None:
        raise UnsupportedOperationError(
            "External dependents have not been implemented for the store linker"
            f" (cannot link {stringify_locator(locator)} outside the project)"
        )

    async def finalize_install(self) -> Optional[FinalizeResult]:
        if not _strategy_is_active(self.opts):
            return None
        return FinalizeResult(custom_data=self.custom_data)
