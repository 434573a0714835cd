"""
Grid cell identity.

A CellId is the integer pair (x, y) obtained by floor-dividing a
longitude/latitude pair by the grid size. Its canonical key "x_y" is the
form used on the wire and as the set/map key.
"""
from dataclasses import dataclass

from community_grid.domain.shared.value_objects.base_value_object import BaseValueObject

KEY_SEPARATOR = "_"


@dataclass(frozen=True, order=True)
class CellId(BaseValueObject):
    """Discrete integer-pair identity of a grid cell."""

    x: int
    y: int

    def _validate(self) -> None:
        for name, value in (("x", self.x), ("y", self.y)):
            # bool is an int subclass but never a valid cell index
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"CellId.{name} must be an int, got {type(value).__name__}")

    @property
    def key(self) -> str:
        """Canonical string key, e.g. '426536_138552'."""
        return f"{self.x}{KEY_SEPARATOR}{self.y}"

    @classmethod
    def parse(cls, key: str) -> "CellId":
        """
        Parse a canonical key back into a CellId.

        Raises:
            ValueError: If the key is not of the form '<int>_<int>'.
        """
        if not isinstance(key, str):
            raise ValueError(f"Cell key must be a string, got {type(key).__name__}")
        head, sep, tail = key.strip().partition(KEY_SEPARATOR)
        # int() accepts digit-grouping underscores, so a second separator must be rejected here
        if not sep or not head or not tail or KEY_SEPARATOR in tail:
            raise ValueError(f"Cell key '{key}' is not of the form '<x>_<y>'")
        try:
            return cls(x=int(head), y=int(tail))
        except ValueError as e:
            raise ValueError(f"Cell key '{key}' has non-integer parts") from e

    def __str__(self) -> str:
        return self.key
