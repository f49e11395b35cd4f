import os
from pathlib import Path

from storelink.util import ensure_dir, remove_path
from storelink.version import LazyVersion


def test_remove_path_does_not_follow_symlinks(tmp_path: Path) -> None:
    target = tmp_path / "target"
    target.mkdir()
    (target / "keep.txt").write_text("")
    link = tmp_path / "link"
    os.symlink(target, link)

    remove_path(str(link))

    assert not os.path.lexists(link)
    assert (target / "keep.txt").is_file()


def test_remove_path_directory_and_file(tmp_path: Path) -> None:
    d = tmp_path / "d"
    (d / "nested").mkdir(parents=True)
    (d / "nested" / "f").write_text("")
    f = tmp_path / "f"
    f.write_text("")

    remove_path(str(d))
    remove_path(str(f))

    assert os.listdir(tmp_path) == []


def test_remove_dangling_symlink(tmp_path: Path) -> None:
    link = tmp_path / "dangling"
    os.symlink("does-not-exist", link)
    remove_path(str(link))
    assert not os.path.lexists(link)


def test_ensure_dir(tmp_path: Path) -> None:
    d = tmp_path / "a" / "b"
    ensure_dir(str(d))
    ensure_dir(str(d))
    assert d.is_dir()


def test_version_is_resolved_lazily() -> None:
    calls = []

    def _describe() -> str:
        calls.append(1)
        return "1.2.3"

    version = LazyVersion(_describe)
    assert not calls
    assert str(version) == "1.2.3"
    assert str(version) == "1.2.3"
    assert len(calls) == 1
