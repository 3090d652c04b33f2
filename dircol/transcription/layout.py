"""
Positions of the decision variables and constraints of the transcribed NLP.

Decision vector::

    [t0 (if free), tf (if free), x_0, u_0, x_1, u_1, ..., x_{N-1}, u_{N-1}]

Constraint vector::

    [defects of interval 0 (one per state), ..., defects of interval N-2,
     path constraints at point 0, ..., path constraints at point N-1]
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, NamedTuple

import numpy as np

from ..dc_types import FloatArray, IntArray, ProblemProtocol
from ..exceptions import DataIntegrityError
from ..input_validation import validate_array_shape
from ..problem.bounds import Bounds
from .mesh import Mesh


class VariableKind(enum.Enum):
    INITIAL_TIME = "initial_time"
    FINAL_TIME = "final_time"
    STATE = "state"
    CONTROL = "control"


class VariableLocation(NamedTuple):
    kind: VariableKind
    point: int | None
    index: int


class ConstraintKind(enum.Enum):
    DEFECT = "defect"
    PATH = "path"


class ConstraintLocation(NamedTuple):
    """``point`` is the interval index for defects and the mesh point for path rows."""

    kind: ConstraintKind
    point: int
    index: int


@dataclass(frozen=True)
class VariableLayout:
    num_states: int
    num_controls: int
    num_points: int
    initial_time_bounds: Bounds
    final_time_bounds: Bounds

    @property
    def has_free_initial_time(self) -> bool:
        return not self.initial_time_bounds.is_fixed

    @property
    def has_free_final_time(self) -> bool:
        return not self.final_time_bounds.is_fixed

    @property
    def num_time_variables(self) -> int:
        return int(self.has_free_initial_time) + int(self.has_free_final_time)

    @property
    def point_size(self) -> int:
        return self.num_states + self.num_controls

    @property
    def num_variables(self) -> int:
        return self.num_time_variables + self.num_points * self.point_size

    @property
    def initial_time_index(self) -> int | None:
        return 0 if self.has_free_initial_time else None

    @property
    def final_time_index(self) -> int | None:
        if not self.has_free_final_time:
            return None
        return int(self.has_free_initial_time)

    @property
    def time_indices(self) -> list[int]:
        return list(range(self.num_time_variables))

    def index(self, point: int, kind: VariableKind, i: int) -> int:
        """Position of state/control ``i`` at mesh point ``point``."""
        if not 0 <= point < self.num_points:
            raise IndexError(f"Mesh point {point} out of range [0, {self.num_points})")
        offset = self.num_time_variables + point * self.point_size
        if kind is VariableKind.STATE:
            if not 0 <= i < self.num_states:
                raise IndexError(f"State index {i} out of range [0, {self.num_states})")
            return offset + i
        if kind is VariableKind.CONTROL:
            if not 0 <= i < self.num_controls:
                raise IndexError(f"Control index {i} out of range [0, {self.num_controls})")
            return offset + self.num_states + i
        raise ValueError(f"index() addresses states and controls, got {kind}")

    def state_slice(self, point: int) -> slice:
        start = self.num_time_variables + point * self.point_size
        return slice(start, start + self.num_states)

    def control_slice(self, point: int) -> slice:
        start = self.num_time_variables + point * self.point_size + self.num_states
        return slice(start, start + self.num_controls)

    def point_indices(self, point: int) -> IntArray:
        start = self.num_time_variables + point * self.point_size
        return np.arange(start, start + self.point_size, dtype=np.int64)

    def locate(self, position: int) -> VariableLocation:
        """Inverse of :meth:`index`, including the time variables."""
        if not 0 <= position < self.num_variables:
            raise IndexError(f"Variable {position} out of range [0, {self.num_variables})")
        if position == self.initial_time_index:
            return VariableLocation(VariableKind.INITIAL_TIME, None, 0)
        if position == self.final_time_index:
            return VariableLocation(VariableKind.FINAL_TIME, None, 0)
        point, offset = divmod(position - self.num_time_variables, self.point_size)
        if offset < self.num_states:
            return VariableLocation(VariableKind.STATE, point, offset)
        return VariableLocation(VariableKind.CONTROL, point, offset - self.num_states)

    def time_values(self, decision_vector: Any) -> tuple[Any, Any]:
        """(t0, tf) from the decision vector, or the fixed values. Works on SX and numpy."""
        initial = (
            decision_vector[self.initial_time_index]
            if self.has_free_initial_time
            else self.initial_time_bounds.lower
        )
        final = (
            decision_vector[self.final_time_index]
            if self.has_free_final_time
            else self.final_time_bounds.lower
        )
        return initial, final

    def pack(
        self,
        states: FloatArray,
        controls: FloatArray,
        initial_time: float,
        final_time: float,
    ) -> FloatArray:
        """Decision vector from (K, N) states, (M, N) controls and the time span."""
        validate_array_shape(
            np.asarray(states), (self.num_states, self.num_points), "states", "layout pack"
        )
        validate_array_shape(
            np.asarray(controls), (self.num_controls, self.num_points), "controls", "layout pack"
        )
        blocks = np.vstack([states, controls]).reshape(self.point_size, self.num_points)
        times = []
        if self.has_free_initial_time:
            times.append(initial_time)
        if self.has_free_final_time:
            times.append(final_time)
        return np.concatenate(
            [np.asarray(times, dtype=np.float64), blocks.T.reshape(-1)]
        ).astype(np.float64)

    def unpack(self, decision_vector: FloatArray) -> tuple[FloatArray, FloatArray, float, float]:
        """Inverse of :meth:`pack`: (states, controls, t0, tf)."""
        x = np.asarray(decision_vector, dtype=np.float64).reshape(-1)
        if x.size != self.num_variables:
            raise DataIntegrityError(
                f"Decision vector has {x.size} entries, layout expects {self.num_variables}"
            )
        blocks = x[self.num_time_variables :].reshape(self.num_points, self.point_size).T
        initial_time, final_time = self.time_values(x)
        return (
            blocks[: self.num_states].copy(),
            blocks[self.num_states :].copy(),
            float(initial_time),
            float(final_time),
        )


@dataclass(frozen=True)
class ConstraintLayout:
    num_states: int
    num_path_constraints: int
    num_points: int

    @property
    def num_intervals(self) -> int:
        return self.num_points - 1

    @property
    def num_defects(self) -> int:
        return self.num_intervals * self.num_states

    @property
    def num_path_rows(self) -> int:
        return self.num_points * self.num_path_constraints

    @property
    def num_constraints(self) -> int:
        return self.num_defects + self.num_path_rows

    def defect_row(self, interval: int, state: int) -> int:
        return interval * self.num_states + state

    def path_row(self, point: int, constraint: int) -> int:
        return self.num_defects + point * self.num_path_constraints + constraint

    def locate_row(self, row: int) -> ConstraintLocation:
        if not 0 <= row < self.num_constraints:
            raise IndexError(f"Constraint row {row} out of range [0, {self.num_constraints})")
        if row < self.num_defects:
            interval, state = divmod(row, self.num_states)
            return ConstraintLocation(ConstraintKind.DEFECT, interval, state)
        point, constraint = divmod(row - self.num_defects, self.num_path_constraints)
        return ConstraintLocation(ConstraintKind.PATH, point, constraint)


def build_layout(problem: ProblemProtocol, mesh: Mesh) -> VariableLayout:
    return VariableLayout(
        num_states=problem.num_states,
        num_controls=problem.num_controls,
        num_points=mesh.num_points,
        initial_time_bounds=problem.get_initial_time_bounds(),
        final_time_bounds=problem.get_final_time_bounds(),
    )


def build_constraint_layout(problem: ProblemProtocol, mesh: Mesh) -> ConstraintLayout:
    return ConstraintLayout(
        num_states=problem.num_states,
        num_path_constraints=problem.num_path_constraints,
        num_points=mesh.num_points,
    )
