from __future__ import annotations

import math
from dataclasses import dataclass

from ..dc_types import BoundsInput
from ..exceptions import InvalidConfigurationError
from ..input_validation import validate_bounds_input


@dataclass(frozen=True)
class Bounds:
    """Closed interval [lower, upper]; infinite sides mean unbounded."""

    lower: float = -math.inf
    upper: float = math.inf

    @classmethod
    def from_input(cls, bounds_input: BoundsInput, context: str = "bounds") -> Bounds:
        """
        Build bounds from the unified user specification.

        Args:
            bounds_input: ``None`` (unbounded), a scalar (fixed value) or a
                ``(lower, upper)`` pair where ``None`` leaves a side open
            context: Description used in error messages

        Raises:
            InvalidConfigurationError: If the bounds input is malformed or empty
        """
        if isinstance(bounds_input, Bounds):
            return bounds_input

        validate_bounds_input(bounds_input, context)

        if bounds_input is None:
            return cls()
        if isinstance(bounds_input, tuple | list):
            lower, upper = bounds_input
            return cls(
                -math.inf if lower is None else float(lower),
                math.inf if upper is None else float(upper),
            )
        return cls(float(bounds_input), float(bounds_input))

    @property
    def is_fixed(self) -> bool:
        return self.lower == self.upper

    @property
    def is_set(self) -> bool:
        return not (math.isinf(self.lower) and math.isinf(self.upper))

    def guess_value(self) -> float:
        """Midpoint of a finite range, the finite side of a half-open one, else 0."""
        lower_finite = not math.isinf(self.lower)
        upper_finite = not math.isinf(self.upper)
        if lower_finite and upper_finite:
            return 0.5 * (self.lower + self.upper)
        if lower_finite:
            return self.lower
        if upper_finite:
            return self.upper
        return 0.0

    def intersect(self, other: Bounds, context: str = "bounds") -> Bounds:
        """Intersection of two ranges; an empty intersection is a configuration error."""
        lower = max(self.lower, other.lower)
        upper = min(self.upper, other.upper)
        if lower > upper:
            raise InvalidConfigurationError(
                f"{self} and {other} do not overlap", f"Empty {context}"
            )
        return Bounds(lower, upper)

    def contains(self, value: float, tolerance: float = 0.0) -> bool:
        return self.lower - tolerance <= value <= self.upper + tolerance

    def __repr__(self) -> str:
        if self.is_fixed:
            return f"Bounds(fixed={self.lower})"
        return f"Bounds({self.lower}, {self.upper})"
