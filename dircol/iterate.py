"""
Sampled trajectories used as initial guesses and as solver results.

Iterates are read from and written to a plain-text CSV file::

    num_states=<number-of-state-variables>
    num_controls=<number-of-control-variables>
    time,<state-var-0-name>,...,<control-var-0-name>,...
    <#>,<#>,...,<#>,...
"""

from __future__ import annotations

import enum
import io
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from .dc_types import FloatArray, NumericArrayLike
from .exceptions import DataIntegrityError, InvalidConfigurationError, IterateFormatError
from .input_validation import (
    validate_array_shape,
    validate_name_characters,
    validate_positive_integer,
    validate_unique_names,
)
from .utils.constants import CSV_FLOAT_FORMAT, MINIMUM_MESH_POINTS, TIME_COLUMN_NAME


logger = logging.getLogger(__name__)


def _as_matrix(values: Any, num_rows: int, num_columns: int, name: str) -> FloatArray:
    matrix = np.array(values if values is not None else [], dtype=np.float64)
    if matrix.size == 0 and (num_rows == 0 or num_columns == 0):
        return np.zeros((num_rows, num_columns), dtype=np.float64)
    if matrix.ndim == 1 and num_rows == 1:
        matrix = matrix.reshape(1, -1)
    validate_array_shape(matrix, (num_rows, num_columns), name, "iterate construction")
    return matrix


class Iterate:
    """
    Time grid with state and control trajectories.

    Rows of ``states``/``controls`` are variables, columns are time points.

    Args:
        time: Non-decreasing time points, shape ``(N,)``
        states: State values, shape ``(K, N)``
        controls: Control values, shape ``(M, N)``
        state_names: ``K`` unique state names
        control_names: ``M`` unique control names

    Raises:
        DataIntegrityError: If shapes, names or time ordering are inconsistent
    """

    def __init__(
        self,
        time: NumericArrayLike,
        states: Any = None,
        controls: Any = None,
        state_names: list[str] | None = None,
        control_names: list[str] | None = None,
    ) -> None:
        self.time: FloatArray = np.array(time, dtype=np.float64).reshape(-1)
        self.state_names: list[str] = list(state_names or [])
        self.control_names: list[str] = list(control_names or [])

        num_points = self.time.size
        self.states: FloatArray = _as_matrix(
            states, len(self.state_names), num_points, "states"
        )
        self.controls: FloatArray = _as_matrix(
            controls, len(self.control_names), num_points, "controls"
        )

        for name in self.state_names + self.control_names:
            validate_name_characters(str(name), "Variable name", DataIntegrityError)
        validate_unique_names(self.state_names + self.control_names, "variable")
        if TIME_COLUMN_NAME in self.state_names + self.control_names:
            raise DataIntegrityError(f"'{TIME_COLUMN_NAME}' cannot be used as a variable name")
        if num_points > 1 and np.any(np.diff(self.time) < 0):
            raise DataIntegrityError("Iterate time must be non-decreasing")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def num_points(self) -> int:
        return int(self.time.size)

    @property
    def num_states(self) -> int:
        return len(self.state_names)

    @property
    def num_controls(self) -> int:
        return len(self.control_names)

    def __getitem__(self, name: str) -> FloatArray:
        """Trajectory of the state or control called ``name``."""
        if name in self.state_names:
            return self.states[self.state_names.index(name)]
        if name in self.control_names:
            return self.controls[self.control_names.index(name)]
        if name == TIME_COLUMN_NAME:
            return self.time
        raise KeyError(f"Variable '{name}' not found. Available: {self.state_names + self.control_names}")

    def copy(self) -> Iterate:
        return Iterate(
            self.time.copy(),
            self.states.copy(),
            self.controls.copy(),
            list(self.state_names),
            list(self.control_names),
        )

    def to_dataframe(self) -> pd.DataFrame:
        """Columns ``time``, states, controls; one row per time point."""
        data = np.vstack([self.time.reshape(1, -1), self.states, self.controls]).T
        columns = [TIME_COLUMN_NAME, *self.state_names, *self.control_names]
        return pd.DataFrame(data.reshape(self.num_points, len(columns)), columns=columns)

    # ------------------------------------------------------------------
    # Interpolation
    # ------------------------------------------------------------------

    def interpolate(self, num_points: int) -> Iterate:
        """
        Linearly resample onto ``num_points`` evenly spaced times.

        The new grid spans the same [first, last] time range. If ``num_points``
        equals the current number of time points, an independent copy is
        returned without resampling.

        Raises:
            InvalidConfigurationError: If ``num_points`` < 2
            DataIntegrityError: If this iterate has fewer than 2 time points
        """
        validate_positive_integer(num_points, "number of interpolation points", MINIMUM_MESH_POINTS)
        if num_points == self.num_points:
            return self.copy()
        new_time = np.linspace(self.time[0], self.time[-1], num_points) if self.num_points else None
        if new_time is None:
            raise DataIntegrityError("Cannot interpolate an empty iterate")
        return self.resample(new_time)

    def resample(self, new_time: NumericArrayLike) -> Iterate:
        """
        Linearly interpolate every row onto ``new_time``.

        ``new_time`` must lie within the original time span; extrapolation is
        not defined.
        """
        target = np.array(new_time, dtype=np.float64).reshape(-1)
        if self.num_points < 2:
            raise DataIntegrityError(
                f"Interpolation requires at least 2 time points, iterate has {self.num_points}"
            )
        span = self.time[-1] - self.time[0]
        slack = 1e-12 * max(1.0, abs(span))
        if target.size and (target[0] < self.time[0] - slack or target[-1] > self.time[-1] + slack):
            raise InvalidConfigurationError(
                f"Resampling range [{target[0]}, {target[-1]}] exceeds iterate time span "
                f"[{self.time[0]}, {self.time[-1]}]"
            )

        def _interp_rows(matrix: FloatArray) -> FloatArray:
            resampled = np.empty((matrix.shape[0], target.size), dtype=np.float64)
            for row in range(matrix.shape[0]):
                resampled[row] = np.interp(target, self.time, matrix[row])
            return resampled

        logger.debug("Resampling iterate from %d to %d points", self.num_points, target.size)
        return Iterate(
            target,
            _interp_rows(self.states),
            _interp_rows(self.controls),
            list(self.state_names),
            list(self.control_names),
        )

    # ------------------------------------------------------------------
    # CSV I/O
    # ------------------------------------------------------------------

    def write(self, filepath: str | os.PathLike[str]) -> None:
        """Write the trajectories to ``filepath`` in the CSV trajectory format.

        The file is written to a temporary sibling and moved into place, so
        readers never observe a partially written file.
        """
        path = Path(filepath)
        directory = path.parent if str(path.parent) else Path(".")
        file_descriptor, temporary_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(file_descriptor, "w", newline="") as stream:
                stream.write(f"num_states={self.num_states}\n")
                stream.write(f"num_controls={self.num_controls}\n")
                self.to_dataframe().to_csv(
                    stream, index=False, float_format=CSV_FLOAT_FORMAT, na_rep="nan"
                )
            os.replace(temporary_name, path)
        except BaseException:
            if os.path.exists(temporary_name):
                os.remove(temporary_name)
            raise
        logger.debug("Wrote iterate with %d points to %s", self.num_points, path)

    @classmethod
    def read(cls, filepath: str | os.PathLike[str]) -> Iterate:
        """Read an iterate written by :meth:`write`.

        Raises:
            IterateFormatError: Missing/malformed preamble or header, column
                counts that disagree with the declared counts, or non-numeric
                values. The error names the offending line.
        """
        with open(filepath, newline="") as stream:
            lines = stream.read().splitlines()

        num_states = _parse_count_line(lines, 0, "num_states")
        num_controls = _parse_count_line(lines, 1, "num_controls")
        expected_columns = 1 + num_states + num_controls

        if len(lines) < 3 or not lines[2].strip():
            raise IterateFormatError("missing column header", line=3)
        header = lines[2].split(",")
        if header[0] != TIME_COLUMN_NAME:
            raise IterateFormatError(
                f"first column must be '{TIME_COLUMN_NAME}', got '{header[0]}'", line=3
            )
        if len(header) != expected_columns:
            raise IterateFormatError(
                f"header has {len(header)} columns but num_states={num_states} and "
                f"num_controls={num_controls} require {expected_columns}",
                line=3,
            )

        data_lines = [line for line in lines[3:]]
        while data_lines and not data_lines[-1].strip():
            data_lines.pop()
        for line_number, line in enumerate(data_lines, start=4):
            num_fields = len(line.split(","))
            if num_fields != expected_columns:
                raise IterateFormatError(
                    f"expected {expected_columns} values, found {num_fields}", line=line_number
                )

        text = "\n".join([lines[2], *data_lines]) + "\n"
        try:
            frame = pd.read_csv(
                io.StringIO(text), dtype=np.float64, float_precision="round_trip"
            )
        except ValueError as e:
            raise IterateFormatError(
                f"non-numeric value ({e})", line=_find_non_numeric_line(data_lines)
            ) from e

        values = frame.to_numpy(dtype=np.float64).T
        state_names = header[1 : 1 + num_states]
        control_names = header[1 + num_states :]
        try:
            iterate = cls(
                values[0],
                values[1 : 1 + num_states],
                values[1 + num_states :],
                state_names,
                control_names,
            )
        except DataIntegrityError as e:
            raise IterateFormatError(f"inconsistent iterate data: {e.message}") from e
        logger.debug("Read iterate with %d points from %s", iterate.num_points, filepath)
        return iterate

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Iterate):
            return NotImplemented
        return (
            list(self.state_names) == list(other.state_names)
            and list(self.control_names) == list(other.control_names)
            and np.array_equal(self.time, other.time, equal_nan=True)
            and np.array_equal(self.states, other.states, equal_nan=True)
            and np.array_equal(self.controls, other.controls, equal_nan=True)
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(num_points={self.num_points}, states={self.state_names}, "
            f"controls={self.control_names})"
        )


def _parse_count_line(lines: list[str], index: int, key: str) -> int:
    line_number = index + 1
    if len(lines) <= index:
        raise IterateFormatError(f"missing '{key}=<count>' line", line=line_number)
    prefix = f"{key}="
    line = lines[index].strip()
    if not line.startswith(prefix):
        raise IterateFormatError(f"expected '{key}=<count>', got '{line}'", line=line_number)
    try:
        count = int(line[len(prefix) :])
    except ValueError as e:
        raise IterateFormatError(
            f"'{key}' must be a non-negative integer, got '{line[len(prefix):]}'", line=line_number
        ) from e
    if count < 0:
        raise IterateFormatError(f"'{key}' must be non-negative, got {count}", line=line_number)
    return count


def _find_non_numeric_line(data_lines: list[str]) -> int | None:
    for line_number, line in enumerate(data_lines, start=4):
        for field in line.split(","):
            try:
                float(field)
            except ValueError:
                return line_number
    return None


class SolutionStatus(enum.Enum):
    """Outcome reported by the NLP solver."""

    CONVERGED = "converged"
    ITERATION_LIMIT = "iteration-limit"
    INFEASIBLE = "infeasible"
    ERROR = "error"


class Solution(Iterate):
    """
    Iterate produced by a solve, annotated with the solver outcome.

    Non-convergence is reported through ``status`` rather than raised: the
    trajectories hold whatever iterate the solver ended on. Solutions are
    immutable (name tuples, read-only arrays); ``copy()`` and
    ``interpolate()`` return plain, writable :class:`Iterate` objects.
    """

    def __init__(
        self,
        time: NumericArrayLike,
        states: Any,
        controls: Any,
        state_names: list[str],
        control_names: list[str],
        status: SolutionStatus,
        objective: float,
        message: str = "",
        num_iterations: int | None = None,
    ) -> None:
        super().__init__(time, states, controls, state_names, control_names)
        self.status = SolutionStatus(status)
        self.objective = float(objective)
        self.message = message
        self.num_iterations = num_iterations

        self.state_names = tuple(self.state_names)
        self.control_names = tuple(self.control_names)
        for array in (self.time, self.states, self.controls):
            array.flags.writeable = False
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError(f"Solution is immutable; cannot set '{name}'")
        super().__setattr__(name, value)

    @property
    def success(self) -> bool:
        return self.status is SolutionStatus.CONVERGED

    @property
    def final_time(self) -> float:
        return float(self.time[-1]) if self.num_points else float("nan")

    def __repr__(self) -> str:
        return (
            f"Solution(status={self.status.value}, objective={self.objective:.6e}, "
            f"num_points={self.num_points})"
        )
