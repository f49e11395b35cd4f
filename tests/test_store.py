import os
from pathlib import Path

import pytest

from storelink.exceptions import InvariantViolationError, UnregisteredLocatorError
from storelink.identity import parse_locator, slugify_locator, virtualize_locator
from storelink.packages import FetchResult, LinkType
from storelink.project import Project
from storelink.store import LocationTable, StoreManager, copy_tree_no_overwrite
from tutil import faked_package, run, write_fetched_package


def _install_hard(project: Project, pkgs_and_fetches) -> StoreManager:
    store = StoreManager(project, LocationTable())

    async def _run() -> None:
        for pkg, fetch_result in pkgs_and_fetches:
            store.install_package_hard(pkg, fetch_result)
        await store.wait_for_population()

    run(_run())
    return store


def test_location_table_is_append_only() -> None:
    table = LocationTable()
    locator = parse_locator("left-pad@npm:1.3.0")
    table.register(locator, "/store/left-pad")
    table.register(locator, "/store/left-pad")
    assert table.require(locator) == "/store/left-pad"
    assert locator in table
    assert len(table) == 1
    with pytest.raises(InvariantViolationError):
        table.register(locator, "/elsewhere")


def test_location_table_missing_entry() -> None:
    table = LocationTable()
    locator = parse_locator("left-pad@npm:1.3.0")
    assert table.get(locator) is None
    with pytest.raises(UnregisteredLocatorError) as e_info:
        table.require(locator)
    assert e_info.value.locator == locator
    assert "left-pad@npm:1.3.0" in e_info.value.message


def test_soft_package_is_registered_in_place(project: Project, project_dir: Path) -> None:
    store = StoreManager(project, LocationTable())
    pkg = faked_package("c@workspace:packages/c", LinkType.SOFT)
    record = store.install_package_soft(pkg, FetchResult(str(project_dir), "packages/c"))
    expected = str(project_dir / "packages" / "c")
    assert record.package_location == expected
    assert record.build_directive is None
    assert store.locations.require(pkg.locator) == expected
    assert not os.path.exists(project.store_dir)


def test_hard_package_is_copied_into_store(
    project: Project, project_dir: Path, tmp_path: Path
) -> None:
    pkg = faked_package("left-pad@npm:1.3.0")
    fetch_result = write_fetched_package(
        tmp_path / "cache" / "left-pad",
        {"package.json": '{"name": "left-pad"}', "lib/index.js": "module.exports = 1"},
    )
    store = _install_hard(project, [(pkg, fetch_result)])

    slot = project_dir / "node_modules" / ".store" / slugify_locator(pkg.locator)
    assert store.locations.require(pkg.locator) == str(slot)
    assert (slot / "package.json").read_text() == '{"name": "left-pad"}'
    assert (slot / "lib" / "index.js").read_text() == "module.exports = 1"
    assert store.files_written == 2
    assert store.pending_population_count == 0


def test_second_population_writes_nothing(
    project: Project, project_dir: Path, tmp_path: Path
) -> None:
    pkg = faked_package("left-pad@npm:1.3.0")
    fetch_result = write_fetched_package(
        tmp_path / "cache" / "left-pad", {"index.js": "original"}
    )
    _install_hard(project, [(pkg, fetch_result)])
    slot = project_dir / "node_modules" / ".store" / slugify_locator(pkg.locator)
    (slot / "index.js").write_text("locally patched")

    store = _install_hard(project, [(pkg, fetch_result)])
    assert store.files_written == 0
    assert (slot / "index.js").read_text() == "locally patched"


def test_virtual_instantiations_share_one_slot(
    project: Project, tmp_path: Path
) -> None:
    concrete = parse_locator("peer-user@npm:2.0.0")
    fetch_result = write_fetched_package(
        tmp_path / "cache" / "peer-user", {"index.js": "", "README.md": ""}
    )
    pkgs = [
        faked_package(str(concrete)),
        faked_package(str(virtualize_locator(concrete, "one"))),
        faked_package(str(virtualize_locator(concrete, "two"))),
    ]
    store = _install_hard(project, [(p, fetch_result) for p in pkgs])

    locations = {store.locations.require(p.locator) for p in pkgs}
    assert len(locations) == 1
    assert store.files_written == 2


def test_virtual_package_registers_its_concrete_locator(
    project: Project, tmp_path: Path
) -> None:
    concrete = parse_locator("peer-user@npm:2.0.0")
    fetch_result = write_fetched_package(tmp_path / "cache", {"index.js": ""})
    virtual_pkg = faked_package(str(virtualize_locator(concrete, "one")))
    store = _install_hard(project, [(virtual_pkg, fetch_result)])
    assert store.locations.require(concrete) == store.locations.require(
        virtual_pkg.locator
    )


def test_population_failure_is_fatal(project: Project, tmp_path: Path) -> None:
    pkg = faked_package("left-pad@npm:1.3.0")
    missing = FetchResult(str(tmp_path / "does-not-exist"), "package")
    with pytest.raises(FileNotFoundError):
        _install_hard(project, [(pkg, missing)])


def test_failed_population_keeps_completed_slots(
    project: Project, project_dir: Path, tmp_path: Path
) -> None:
    good = faked_package("left-pad@npm:1.3.0")
    good_fetch = write_fetched_package(
        tmp_path / "cache" / "left-pad",
        {"package.json": "{}", "index.js": "module.exports = pad"},
    )
    broken = faked_package("right-pad@npm:2.0.0")
    broken_root = tmp_path / "cache" / "right-pad"
    broken_fetch = FetchResult(str(broken_root), "package")

    with pytest.raises(FileNotFoundError):
        _install_hard(project, [(good, good_fetch), (broken, broken_fetch)])

    good_slot = project_dir / "node_modules" / ".store" / slugify_locator(good.locator)
    assert (good_slot / "package.json").read_text() == "{}"
    assert (good_slot / "index.js").read_text() == "module.exports = pad"

    write_fetched_package(broken_root, {"index.js": "module.exports = pad"})
    store = _install_hard(project, [(good, good_fetch), (broken, broken_fetch)])
    assert store.files_written == 1
    broken_slot = (
        project_dir / "node_modules" / ".store" / slugify_locator(broken.locator)
    )
    assert (broken_slot / "index.js").is_file()


def test_copy_preserves_symlinks(tmp_path: Path) -> None:
    source = tmp_path / "source"
    (source / "bin").mkdir(parents=True)
    (source / "cli.js").write_text("#!/usr/bin/env node")
    os.symlink("../cli.js", source / "bin" / "cli")
    (source / "dist").mkdir()
    os.symlink("dist", source / "lib")

    target = tmp_path / "target"
    written = copy_tree_no_overwrite(str(source), str(target))

    assert written == 3
    assert os.readlink(target / "bin" / "cli") == "../cli.js"
    assert os.readlink(target / "lib") == "dist"
    assert (target / "dist").is_dir()
    assert copy_tree_no_overwrite(str(source), str(target)) == 0
