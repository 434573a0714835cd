"""
Base value object implementation for the domain layer.

Value objects are immutable and compared by their values.
"""
from abc import ABC
from dataclasses import dataclass


@dataclass(frozen=True)
class BaseValueObject(ABC):
    """
    Base class for all value objects in the domain.

    Subclasses are frozen dataclasses; validation runs once, right after creation.
    """

    def __post_init__(self) -> None:
        """Validate value object after creation."""
        self._validate()

    def _validate(self) -> None:
        """Override in subclasses to add validation logic."""
        pass
