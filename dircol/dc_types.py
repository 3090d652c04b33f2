# dircol/dc_types.py
"""
Core type definitions for the dircol direct collocation framework.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol, TypeAlias

import numpy as np
from numpy.typing import NDArray


if TYPE_CHECKING:
    from .problem.bounds import Bounds


# --- NUMERICAL TYPES ---
FloatArray: TypeAlias = NDArray[np.float64]
IntArray: TypeAlias = NDArray[np.int64]
NumericArrayLike: TypeAlias = (
    NDArray[np.floating[Any]]
    | NDArray[np.integer[Any]]
    | Sequence[float]
    | Sequence[int]
    | list[float]
    | list[int]
)

# --- USER API TYPES ---
BoundsInput: TypeAlias = float | int | tuple[float | int | None, float | int | None] | None
"""
Type alias for bound specification.

Supported input types:
- float/int: Fixed value (lower = upper = value)
- tuple(lower, upper): Range with None for unbounded sides
- None: Unbounded
"""


class DAEOutput(NamedTuple):
    """Output of the differential-algebraic callback: state derivatives and path values."""

    dynamics: Any
    path: Any = ()


# --- CAPABILITY INTERFACE ---
class ProblemProtocol(Protocol):
    """Interface of an optimal control problem as seen by the transcription."""

    name: str

    @property
    def num_states(self) -> int: ...

    @property
    def num_controls(self) -> int: ...

    @property
    def num_path_constraints(self) -> int: ...

    def get_state_names(self) -> list[str]: ...

    def get_control_names(self) -> list[str]: ...

    def get_path_constraint_names(self) -> list[str]: ...

    def get_initial_time_bounds(self) -> Bounds: ...

    def get_final_time_bounds(self) -> Bounds: ...

    def get_state_bounds(self) -> list[Bounds]: ...

    def get_initial_state_bounds(self) -> list[Bounds]: ...

    def get_final_state_bounds(self) -> list[Bounds]: ...

    def get_control_bounds(self) -> list[Bounds]: ...

    def get_initial_control_bounds(self) -> list[Bounds]: ...

    def get_final_control_bounds(self) -> list[Bounds]: ...

    def get_path_constraint_bounds(self) -> list[Bounds]: ...

    def has_dynamics(self) -> bool: ...

    def has_endpoint_cost(self) -> bool: ...

    def has_integral_cost(self) -> bool: ...

    def calc_differential_algebraic_equations(
        self, time: Any, states: Any, controls: Any
    ) -> DAEOutput | tuple[Any, Any]: ...

    def calc_endpoint_cost(self, final_time: Any, final_states: Any) -> Any: ...

    def calc_integral_cost(self, time: Any, states: Any, controls: Any) -> Any: ...
