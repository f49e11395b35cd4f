from typing import cast, TYPE_CHECKING

if TYPE_CHECKING:
    from storelink.identity import Locator


class StorelinkRuntimeError(RuntimeError):
    @property
    def message(self) -> str:
        return cast("str", self.args[0])


class InvariantViolationError(StorelinkRuntimeError):
    pass


class UnregisteredLocatorError(InvariantViolationError):
    @property
    def locator(self) -> "Locator":
        return cast("Locator", self.args[1])


class UnsupportedOperationError(StorelinkRuntimeError):
    pass


class StorelinkConfigurationError(StorelinkRuntimeError):
    pass


class StorelinkPlanError(StorelinkRuntimeError):
    pass
