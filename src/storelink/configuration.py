import os
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from storelink.exceptions import StorelinkConfigurationError

CONFIG_FILENAME = ".storelinkrc.yml"
NODE_LINKER_KEY = "nodeLinker"
NODE_LINKER_ENV_VAR = "STORELINK_NODE_LINKER"


class LinkerStrategy(Enum):
    PNPM = "pnpm"
    NODE_MODULES = "node-modules"
    PNP = "pnp"


KEY2LINKER_STRATEGY = {s.value: s for s in LinkerStrategy}

CONFIG_YAML = YAML()


def _parse_strategy(raw: Any, source: str) -> LinkerStrategy:
    strategy = KEY2LINKER_STRATEGY.get(raw) if isinstance(raw, str) else None
    if strategy is None:
        valid = ", ".join(sorted(KEY2LINKER_STRATEGY))
        raise StorelinkConfigurationError(
            f'Invalid value "{raw}" for {NODE_LINKER_KEY} (from {source}).'
            f" Valid values are: {valid}"
        )
    return strategy


class Configuration:
    """Project settings, mutable for the lifetime of a run

    Only the linking strategy is modelled. It is read through `get` so the
    installer can re-check it late in the run.
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = {NODE_LINKER_KEY: LinkerStrategy.PNPM}
        if values:
            for key, value in values.items():
                self.set(key, value)

    def get(self, key: str) -> Any:
        try:
            return self._values[key]
        except KeyError:
            raise StorelinkConfigurationError(
                f'Unknown configuration setting "{key}"'
            ) from None

    def set(self, key: str, value: Any) -> None:
        if key != NODE_LINKER_KEY:
            raise StorelinkConfigurationError(
                f'Unknown configuration setting "{key}"'
            )
        if not isinstance(value, LinkerStrategy):
            value = _parse_strategy(value, "the caller")
        self._values[key] = value

    @property
    def node_linker(self) -> LinkerStrategy:
        return self.get(NODE_LINKER_KEY)

    @classmethod
    def load(
        cls,
        project_dir: str,
        *,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Configuration":
        if environ is None:
            environ = os.environ
        config = cls()
        config_path = os.path.join(project_dir, CONFIG_FILENAME)
        try:
            with open(config_path, encoding="utf-8") as fd:
                data = CONFIG_YAML.load(fd)
        except FileNotFoundError:
            data = None
        except YAMLError as e:
            raise StorelinkConfigurationError(
                f"Could not parse {config_path}: {e}"
            ) from e

        if data is not None:
            if not isinstance(data, Mapping):
                raise StorelinkConfigurationError(
                    f"The top level of {config_path} must be a mapping"
                )
            if NODE_LINKER_KEY in data:
                config._values[NODE_LINKER_KEY] = _parse_strategy(
                    data[NODE_LINKER_KEY], config_path
                )

        env_value = environ.get(NODE_LINKER_ENV_VAR)
        if env_value:
            config._values[NODE_LINKER_KEY] = _parse_strategy(
                env_value, f"the {NODE_LINKER_ENV_VAR} environment variable"
            )
        return config
