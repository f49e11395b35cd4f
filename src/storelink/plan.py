import dataclasses
import os
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from storelink.exceptions import StorelinkPlanError
from storelink.identity import (
    Locator,
    devirtualize_locator,
    is_virtual_locator,
    parse_descriptor,
    parse_locator,
)
from storelink.packages import (
    KEY2LINK_TYPE,
    DependencyPair,
    FetchResult,
    LinkType,
    Package,
)
from storelink.project import Workspace

DEFAULT_PLAN_FILENAME = "storelink-plan.yml"

PLAN_YAML = YAML()


@dataclasses.dataclass(slots=True, frozen=True)
class PlannedPackage:
    package: Package
    fetch_result: FetchResult
    dependencies: Sequence[DependencyPair]


@dataclasses.dataclass(slots=True, frozen=True)
class InstallPlan:
    workspaces: Sequence[Workspace]
    packages: Sequence[PlannedPackage]


def _require_str(value: Any, path: str) -> str:
    if not isinstance(value, str) or not value:
        raise StorelinkPlanError(f"{path} must be a non-empty string")
    return value


def _require_list(value: Any, path: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise StorelinkPlanError(f"{path} must be a list")
    return value


def _require_mapping(value: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise StorelinkPlanError(f"{path} must be a mapping")
    return value


def _parse_locator_at(value: Any, path: str) -> Locator:
    try:
        return parse_locator(_require_str(value, path))
    except ValueError as e:
        raise StorelinkPlanError(f"{path}: {e}") from e


def _parse_workspaces(raw: Any, project_dir: str) -> List[Workspace]:
    workspaces = []
    for i, entry in enumerate(_require_list(raw, "workspaces")):
        path = f"workspaces[{i}]"
        if isinstance(entry, str):
            entry = {"locator": entry}
        entry = _require_mapping(entry, path)
        locator = _parse_locator_at(entry.get("locator"), f"{path}.locator")
        ws_dir = entry.get("path")
        if ws_dir is None:
            protocol, _, selector = locator.reference.partition(":")
            ws_dir = selector if protocol == "workspace" and selector else "."
        ws_dir = _require_str(ws_dir, f"{path}.path")
        workspaces.append(
            Workspace(locator, os.path.normpath(os.path.join(project_dir, ws_dir)))
        )
    return workspaces


def _parse_dependencies(raw: Any, path: str) -> List[DependencyPair]:
    dependencies = []
    for i, entry in enumerate(_require_list(raw, path)):
        entry_path = f"{path}[{i}]"
        entry = _require_mapping(entry, entry_path)
        descriptor_raw = _require_str(
            entry.get("descriptor"), f"{entry_path}.descriptor"
        )
        try:
            descriptor = parse_descriptor(descriptor_raw)
        except ValueError as e:
            raise StorelinkPlanError(f"{entry_path}.descriptor: {e}") from e
        locator = _parse_locator_at(entry.get("locator"), f"{entry_path}.locator")
        dependencies.append((descriptor, locator))
    return dependencies


def _parse_package(
    entry: Any,
    path: str,
    project_dir: str,
    workspace_dirs: Mapping[str, str],
) -> PlannedPackage:
    entry = _require_mapping(entry, path)
    locator = _parse_locator_at(entry.get("locator"), f"{path}.locator")

    link_type_raw = _require_str(entry.get("link-type", "hard"), f"{path}.link-type")
    link_type = KEY2LINK_TYPE.get(link_type_raw)
    if link_type is None:
        valid = ", ".join(sorted(KEY2LINK_TYPE))
        raise StorelinkPlanError(
            f'{path}.link-type: "{link_type_raw}" is not one of: {valid}'
        )

    fetch_root: Optional[str] = entry.get("fetch-root")
    if fetch_root is None and link_type == LinkType.SOFT:
        ws_locator = (
            devirtualize_locator(locator) if is_virtual_locator(locator) else locator
        )
        fetch_root = workspace_dirs.get(ws_locator.locator_hash)
    fetch_root = _require_str(fetch_root, f"{path}.fetch-root")
    prefix = _require_str(entry.get("prefix", "."), f"{path}.prefix")

    dependencies = _parse_dependencies(
        entry.get("dependencies"), f"{path}.dependencies"
    )
    package = Package(
        locator,
        link_type,
        tuple(d for d, _ in dependencies),
    )
    return PlannedPackage(
        package,
        FetchResult(os.path.join(project_dir, fetch_root), prefix),
        dependencies,
    )


def parse_install_plan(data: Any, project_dir: str) -> InstallPlan:
    project_dir = os.path.abspath(project_dir)
    if data is None:
        return InstallPlan((), ())
    data = _require_mapping(data, "The install plan")
    workspaces = _parse_workspaces(data.get("workspaces"), project_dir)
    workspace_dirs: Dict[str, str] = {
        ws.locator.locator_hash: ws.cwd for ws in workspaces
    }
    packages = [
        _parse_package(entry, f"packages[{i}]", project_dir, workspace_dirs)
        for i, entry in enumerate(_require_list(data.get("packages"), "packages"))
    ]

    seen: Set[str] = set()
    for planned in packages:
        key = planned.package.locator_hash
        if key in seen:
            raise StorelinkPlanError(
                f"The package {planned.package} is listed more than once"
            )
        seen.add(key)
    return InstallPlan(workspaces, packages)


def load_install_plan(plan_path: str, project_dir: str) -> InstallPlan:
    try:
        with open(plan_path, encoding="utf-8") as fd:
            data = PLAN_YAML.load(fd)
    except FileNotFoundError as e:
        raise StorelinkPlanError(f"The install plan {plan_path} does not exist") from e
    except YAMLError as e:
        raise StorelinkPlanError(f"Could not parse {plan_path}: {e}") from e
    return parse_install_plan(data, project_dir)
