import subprocess
from typing import Callable, Optional


class LazyVersion:
    """Resolved on first use, so importing the package never shells out"""

    def __init__(self, initializer: Callable[[], str]) -> None:
        self._initializer = initializer
        self._value: Optional[str] = None

    def __str__(self) -> str:
        if self._value is None:
            self._value = self._initializer()
        return self._value


def _describe_checkout() -> str:
    try:
        v = (
            subprocess.check_output(
                ["git", "describe", "--tags"],
                stderr=subprocess.DEVNULL,
            )
            .strip()
            .decode("utf-8")
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return "N/A"
    return v[1:] if v.startswith("v") else v


__version__ = LazyVersion(_describe_checkout)
