import os
from pathlib import Path

import pytest

from storelink.configuration import NODE_LINKER_ENV_VAR, Configuration
from storelink.identity import parse_locator
from storelink.linker import StoreInstaller, StoreLinker
from storelink.project import LinkOptions, Project, Workspace

# The linker selection must come from the tests themselves, not from the
# environment of whoever runs them.
os.environ.pop(NODE_LINKER_ENV_VAR, None)


@pytest.fixture()
def project_dir(tmp_path: Path) -> Path:
    d = tmp_path / "project"
    (d / "packages" / "c").mkdir(parents=True)
    return Path(os.path.realpath(d))


@pytest.fixture()
def project(project_dir: Path) -> Project:
    return Project(
        str(project_dir),
        Configuration(),
        [
            Workspace(parse_locator("app@workspace:."), str(project_dir)),
            Workspace(
                parse_locator("c@workspace:packages/c"),
                str(project_dir / "packages" / "c"),
            ),
        ],
    )


@pytest.fixture()
def link_options(project: Project) -> LinkOptions:
    return LinkOptions(project)


@pytest.fixture()
def installer(link_options: LinkOptions) -> StoreInstaller:
    return StoreLinker().make_installer(link_options)
