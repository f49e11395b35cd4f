import pytest

from storelink.identity import parse_locator, virtualize_locator
from storelink.project import Project, resolve_store_locator


def test_non_virtual_locator_is_unchanged(project: Project) -> None:
    locator = parse_locator("left-pad@npm:1.3.0")
    assert resolve_store_locator(project, locator) is locator


def test_virtual_third_party_locator_is_devirtualized(project: Project) -> None:
    concrete = parse_locator("peer-user@npm:2.0.0")
    virtual = virtualize_locator(concrete, "abc123")
    assert resolve_store_locator(project, virtual) == concrete


def test_peer_instantiations_collapse_to_one_identity(project: Project) -> None:
    concrete = parse_locator("peer-user@npm:2.0.0")
    first = virtualize_locator(concrete, "one")
    second = virtualize_locator(concrete, "two")
    assert first != second
    assert resolve_store_locator(project, first) == resolve_store_locator(
        project, second
    )


def test_virtual_workspace_keeps_its_identity(project: Project) -> None:
    virtual = virtualize_locator(parse_locator("c@workspace:packages/c"), "abc123")
    assert resolve_store_locator(project, virtual) == virtual


@pytest.mark.parametrize(
    "locator,expected",
    [
        ("c@workspace:packages/c", True),
        ("app@workspace:.", True),
        ("left-pad@npm:1.3.0", False),
        ("c@npm:1.0.0", False),
    ],
)
def test_try_workspace_by_locator(project: Project, locator: str, expected: bool) -> None:
    found = project.try_workspace_by_locator(parse_locator(locator))
    assert (found is not None) == expected
    virtual = virtualize_locator(parse_locator(locator), "abc123")
    assert (project.try_workspace_by_locator(virtual) is not None) == expected


def test_store_dir(project: Project, project_dir) -> None:
    assert project.store_dir == str(project_dir / "node_modules" / ".store")
