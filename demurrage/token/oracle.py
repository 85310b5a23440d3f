from typing import Protocol

from demurrage.config import ZERO_ADDRESS


class Oracle(Protocol):
    """
    Reserve-value source consulted when minting.
    """
    address: str

    def locked_value(self) -> int:
        ...


class StaticOracle:
    """
    Oracle reporting a fixed locked value, updatable by whoever holds the object.
    """
    def __init__(self, address: str, locked_value: int):
        self.address = address
        self._locked_value = locked_value

    def locked_value(self) -> int:
        return self._locked_value

    def set_locked_value(self, locked_value: int):
        if locked_value < 0:
            raise Exception("Locked value cannot be negative")
        self._locked_value = locked_value

    def __repr__(self):
        return f'StaticOracle(address={self.address}, locked_value={self._locked_value})'


def is_unset(oracle) -> bool:
    return oracle is None or getattr(oracle, "address", ZERO_ADDRESS) in (None, "", ZERO_ADDRESS)
