from __future__ import annotations

import logging
from dataclasses import dataclass

import casadi as ca
import numpy as np

from ..dc_types import IntArray
from ..exceptions import DataIntegrityError
from .layout import ConstraintLayout, VariableLayout


logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SparsityPattern:
    """
    Structural nonzeros of a matrix as (row, column) triplets.

    Triplets are unique and ordered column-major (by column, then row), the
    compressed-column order CasADi and ``scipy.sparse.csc_matrix`` use, so
    value arrays align position-for-position with ``rows``/``cols``.
    """

    num_rows: int
    num_cols: int
    rows: IntArray
    cols: IntArray

    @classmethod
    def from_triplets(
        cls, num_rows: int, num_cols: int, rows: IntArray, cols: IntArray
    ) -> SparsityPattern:
        rows = np.asarray(rows, dtype=np.int64).reshape(-1)
        cols = np.asarray(cols, dtype=np.int64).reshape(-1)
        if rows.size != cols.size:
            raise DataIntegrityError(
                f"Sparsity triplets have {rows.size} rows but {cols.size} columns"
            )
        if rows.size and (
            rows.min() < 0 or rows.max() >= num_rows or cols.min() < 0 or cols.max() >= num_cols
        ):
            raise DataIntegrityError(
                f"Sparsity triplets exceed matrix dimensions ({num_rows}, {num_cols})"
            )
        keys = np.unique(cols * max(num_rows, 1) + rows)
        unique_cols, unique_rows = np.divmod(keys, max(num_rows, 1))
        unique_rows.flags.writeable = False
        unique_cols.flags.writeable = False
        return cls(num_rows, num_cols, unique_rows, unique_cols)

    @property
    def nnz(self) -> int:
        return int(self.rows.size)

    @property
    def shape(self) -> tuple[int, int]:
        return (self.num_rows, self.num_cols)

    def to_casadi(self) -> ca.Sparsity:
        return ca.Sparsity.triplet(
            self.num_rows, self.num_cols, self.rows.tolist(), self.cols.tolist()
        )

    def contains(self, rows: IntArray, cols: IntArray) -> bool:
        """True if every (row, col) pair is a structural nonzero of this pattern."""
        rows = np.asarray(rows, dtype=np.int64).reshape(-1)
        cols = np.asarray(cols, dtype=np.int64).reshape(-1)
        if rows.size == 0:
            return True
        if np.any(rows >= self.num_rows) or np.any(cols >= self.num_cols):
            return False
        stride = max(self.num_rows, 1)
        own = self.cols * stride + self.rows
        return bool(np.all(np.isin(cols * stride + rows, own)))

    def __repr__(self) -> str:
        return f"SparsityPattern(shape={self.shape}, nnz={self.nnz})"


def _time_columns(layout: VariableLayout) -> IntArray:
    return np.asarray(layout.time_indices, dtype=np.int64)


def compute_jacobian_sparsity(
    layout: VariableLayout, constraint_layout: ConstraintLayout
) -> SparsityPattern:
    """
    Constraint Jacobian structure.

    Defect rows of interval ``k`` depend on every variable of mesh points
    ``k`` and ``k + 1``; path rows at point ``k`` on the variables of point
    ``k``. All rows depend on the free time variables.
    """
    time_columns = _time_columns(layout)
    row_blocks: list[IntArray] = []
    col_blocks: list[IntArray] = []

    def _add_dense_block(rows: IntArray, cols: IntArray) -> None:
        grid_rows, grid_cols = np.meshgrid(rows, cols, indexing="ij")
        row_blocks.append(grid_rows.reshape(-1))
        col_blocks.append(grid_cols.reshape(-1))

    if constraint_layout.num_states:
        for interval in range(constraint_layout.num_intervals):
            rows = np.arange(
                constraint_layout.defect_row(interval, 0),
                constraint_layout.defect_row(interval, 0) + constraint_layout.num_states,
                dtype=np.int64,
            )
            cols = np.concatenate(
                [
                    time_columns,
                    layout.point_indices(interval),
                    layout.point_indices(interval + 1),
                ]
            )
            _add_dense_block(rows, cols)

    if constraint_layout.num_path_constraints:
        for point in range(constraint_layout.num_points):
            first = constraint_layout.path_row(point, 0)
            rows = np.arange(first, first + constraint_layout.num_path_constraints, dtype=np.int64)
            cols = np.concatenate([time_columns, layout.point_indices(point)])
            _add_dense_block(rows, cols)

    pattern = SparsityPattern.from_triplets(
        constraint_layout.num_constraints,
        layout.num_variables,
        np.concatenate(row_blocks) if row_blocks else np.array([], dtype=np.int64),
        np.concatenate(col_blocks) if col_blocks else np.array([], dtype=np.int64),
    )
    logger.debug("Jacobian sparsity: %s", pattern)
    return pattern


def compute_hessian_sparsity(layout: VariableLayout) -> SparsityPattern:
    """
    Lower triangle of the Lagrangian Hessian structure.

    Union over intervals of the dense block coupling the time variables with
    the variables of mesh points ``k`` and ``k + 1``.
    """
    time_columns = _time_columns(layout)
    row_blocks: list[IntArray] = []
    col_blocks: list[IntArray] = []

    for interval in range(layout.num_points - 1):
        block = np.concatenate(
            [time_columns, layout.point_indices(interval), layout.point_indices(interval + 1)]
        )
        grid_rows, grid_cols = np.meshgrid(block, block, indexing="ij")
        lower = grid_rows >= grid_cols
        row_blocks.append(grid_rows[lower])
        col_blocks.append(grid_cols[lower])

    pattern = SparsityPattern.from_triplets(
        layout.num_variables,
        layout.num_variables,
        np.concatenate(row_blocks) if row_blocks else np.array([], dtype=np.int64),
        np.concatenate(col_blocks) if col_blocks else np.array([], dtype=np.int64),
    )
    logger.debug("Hessian sparsity: %s", pattern)
    return pattern
