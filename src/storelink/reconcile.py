import dataclasses
import os
from typing import Dict, Iterable, List, Optional, Set

from storelink.identity import Locator, stringify_ident
from storelink.packages import DependencyPair
from storelink.project import NODE_MODULES, Project, resolve_store_locator
from storelink.store import LocationTable
from storelink.util import ensure_dir, remove_path

SCOPE_MARKER = "@"


@dataclasses.dataclass(slots=True)
class ReconcileReport:
    dependency_dir: str
    created: List[str] = dataclasses.field(default_factory=list)
    kept: List[str] = dataclasses.field(default_factory=list)
    removed: List[str] = dataclasses.field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.removed)


def _scope_of(name: str) -> Optional[str]:
    if name.startswith(SCOPE_MARKER) and "/" in name:
        return name.split("/", 1)[0]
    return None


def _points_to(path: str, link_target: str) -> bool:
    return os.path.islink(path) and os.readlink(path) == link_target


class DependencyDirectoryReconciler:
    """Keeps the `node_modules` directory of an installed package in sync

    Each declared dependency becomes a relative symlink into the location of
    the package it resolved to. Entries that already point at the right place
    are left alone; anything not declared is removed.
    """

    def __init__(self, project: Project, locations: LocationTable) -> None:
        self.project = project
        self.locations = locations

    def owns_dependency_dir(self, locator: Locator) -> bool:
        return resolve_store_locator(self.project, locator) == locator

    def _existing_entries(
        self, nm_path: str, report: ReconcileReport
    ) -> Dict[str, bool]:
        # name -> whether the entry is a symlink
        entries: Dict[str, bool] = {}
        try:
            with os.scandir(nm_path) as it:
                top_level = list(it)
            for entry in top_level:
                if entry.name.startswith("."):
                    continue
                if not entry.name.startswith(SCOPE_MARKER):
                    entries[entry.name] = entry.is_symlink()
                    continue
                if not entry.is_dir(follow_symlinks=False):
                    # A bare scope name is never a valid dependency entry
                    remove_path(entry.path)
                    report.removed.append(entry.name)
                    continue
                with os.scandir(entry.path) as sub_it:
                    for sub_entry in sub_it:
                        entries[f"{entry.name}/{sub_entry.name}"] = (
                            sub_entry.is_symlink()
                        )
        except FileNotFoundError:
            pass
        return entries

    def reconcile(
        self,
        locator: Locator,
        dependencies: Iterable[DependencyPair],
    ) -> Optional[ReconcileReport]:
        if not self.owns_dependency_dir(locator):
            return None

        pkg_path = self.locations.require(locator)
        nm_path = os.path.join(pkg_path, NODE_MODULES)
        ensure_dir(nm_path)

        report = ReconcileReport(nm_path)
        extraneous = self._existing_entries(nm_path, report)
        processed: Set[str] = set()

        for descriptor, dependency in dependencies:
            target = resolve_store_locator(self.project, dependency)
            dep_src_path = self.locations.require(target)

            name = stringify_ident(descriptor)
            dep_dst_path = os.path.join(nm_path, name)
            dep_link_path = os.path.relpath(
                dep_src_path, os.path.dirname(dep_dst_path)
            )

            existing_is_symlink = extraneous.pop(name, None)
            if existing_is_symlink is None and name in processed:
                existing_is_symlink = os.path.islink(dep_dst_path)
            processed.add(name)

            if existing_is_symlink is not None:
                if existing_is_symlink and _points_to(dep_dst_path, dep_link_path):
                    report.kept.append(name)
                    continue
                remove_path(dep_dst_path)

            ensure_dir(os.path.dirname(dep_dst_path))
            os.symlink(dep_link_path, dep_dst_path)
            report.created.append(name)

        emptied_scopes: Set[str] = set()
        for name in sorted(extraneous):
            remove_path(os.path.join(nm_path, name))
            report.removed.append(name)
            scope = _scope_of(name)
            if scope is not None:
                emptied_scopes.add(scope)

        for scope in sorted(emptied_scopes):
            scope_path = os.path.join(nm_path, scope)
            if not os.listdir(scope_path):
                os.rmdir(scope_path)

        return report
