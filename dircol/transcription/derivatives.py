from __future__ import annotations

import logging
from types import TracebackType
from typing import cast

import casadi as ca
import numpy as np
from scipy import sparse

from ..dc_types import FloatArray
from ..exceptions import DataIntegrityError, EvaluationError, PreconditionViolationError
from ..utils.casadi_utils import casadi_to_numpy
from .builder import TranscriptionBuilder
from .layout import ConstraintKind
from .sparsity import SparsityPattern


logger = logging.getLogger(__name__)


class DerivativeContext:
    """
    Scoped symbols for one derivative build.

    Owns the symbolic decision vector, constraint multipliers and objective
    weight while active; everything is released on exit so no symbolic state
    outlives the build.

    Examples:
        >>> with DerivativeContext(num_variables=4, num_constraints=2) as context:
        ...     expressions = builder.trace(context.decision_vector)
    """

    def __init__(self, num_variables: int, num_constraints: int) -> None:
        self.num_variables = num_variables
        self.num_constraints = num_constraints
        self._decision_vector: ca.SX | None = None
        self._multipliers: ca.SX | None = None
        self._objective_weight: ca.SX | None = None

    def __enter__(self) -> DerivativeContext:
        if self.active:
            raise PreconditionViolationError("DerivativeContext is not re-entrant")
        self._decision_vector = ca.SX.sym("w", self.num_variables)
        self._multipliers = ca.SX.sym("lam", self.num_constraints)
        self._objective_weight = ca.SX.sym("sigma")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self._decision_vector = None
        self._multipliers = None
        self._objective_weight = None

    @property
    def active(self) -> bool:
        return self._decision_vector is not None

    def _require_active(self, symbol: ca.SX | None) -> ca.SX:
        if symbol is None:
            raise PreconditionViolationError("DerivativeContext symbols used outside 'with' block")
        return symbol

    @property
    def decision_vector(self) -> ca.SX:
        return self._require_active(self._decision_vector)

    @property
    def multipliers(self) -> ca.SX:
        return self._require_active(self._multipliers)

    @property
    def objective_weight(self) -> ca.SX:
        return self._require_active(self._objective_weight)


def _check_within_pattern(structure: ca.Sparsity, pattern: SparsityPattern, what: str) -> None:
    rows = np.asarray(structure.row(), dtype=np.int64)
    cols = np.asarray(structure.get_col(), dtype=np.int64)
    if not pattern.contains(rows, cols):
        raise DataIntegrityError(
            f"{what} has structural nonzeros outside the declared sparsity pattern "
            f"({structure.nnz()} derived vs {pattern.nnz} declared)",
            "Derivative structure",
        )


class DerivativeProvider:
    """
    Compiled objective, gradient, constraint, Jacobian and Hessian evaluators.

    Jacobian and Hessian values are returned in the order of the declared
    pattern triplets. The Hessian is the lower triangle of
    ``objective_weight * f(x) + multipliers' g(x)``.
    """

    def __init__(
        self,
        builder: TranscriptionBuilder,
        jacobian_pattern: SparsityPattern,
        hessian_pattern: SparsityPattern | None = None,
    ) -> None:
        self.builder = builder
        self.layout = builder.layout
        self.constraint_layout = builder.constraint_layout
        self.jacobian_pattern = jacobian_pattern
        self.hessian_pattern = hessian_pattern

        num_variables = self.layout.num_variables
        num_constraints = self.constraint_layout.num_constraints
        if jacobian_pattern.shape != (num_constraints, num_variables):
            raise DataIntegrityError(
                f"Jacobian pattern shape {jacobian_pattern.shape} != "
                f"({num_constraints}, {num_variables})"
            )

        with DerivativeContext(num_variables, num_constraints) as context:
            w = context.decision_vector
            expressions = builder.trace(w)
            objective = expressions.objective
            constraints = expressions.constraints
            if constraints.shape[0] != num_constraints:
                raise DataIntegrityError(
                    f"Traced {constraints.shape[0]} constraints, layout expects {num_constraints}"
                )

            gradient = ca.gradient(objective, w)
            jacobian = ca.jacobian(constraints, w)
            _check_within_pattern(jacobian.sparsity(), jacobian_pattern, "Constraint Jacobian")

            self.objective_function = ca.Function("objective", [w], [objective])
            self.objective_and_gradient_function = ca.Function(
                "objective_and_gradient", [w], [objective, gradient]
            )
            self.constraint_function = ca.Function("constraints", [w], [constraints])
            self.jacobian_function = ca.Function("jacobian", [w], [jacobian])

            self.hessian_function: ca.Function | None = None
            if hessian_pattern is not None:
                lagrangian = context.objective_weight * objective + ca.dot(
                    context.multipliers, constraints
                )
                hessian, _ = ca.hessian(lagrangian, w)
                lower_hessian = ca.tril(hessian)
                _check_within_pattern(lower_hessian.sparsity(), hessian_pattern, "Hessian")
                self.hessian_function = ca.Function(
                    "hessian_of_lagrangian",
                    [w, context.multipliers, context.objective_weight],
                    [lower_hessian],
                )

        self._jacobian_values = np.zeros(jacobian_pattern.nnz, dtype=np.float64)
        self._hessian_values = np.zeros(
            hessian_pattern.nnz if hessian_pattern is not None else 0, dtype=np.float64
        )
        logger.debug(
            "Derivative functions built: %d variables, %d constraints, jacobian nnz=%d, "
            "hessian nnz=%s",
            num_variables,
            num_constraints,
            jacobian_pattern.nnz,
            hessian_pattern.nnz if hessian_pattern is not None else "n/a",
        )

    @property
    def has_hessian(self) -> bool:
        return self.hessian_function is not None

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def compute_objective(self, x: FloatArray) -> float:
        value = float(self._call(self.objective_function, "objective", x))
        if not np.isfinite(value):
            raise EvaluationError(f"Objective evaluated to {value}", "Objective evaluation")
        return value

    def compute_objective_and_gradient(self, x: FloatArray) -> tuple[float, FloatArray]:
        objective, gradient = self._call(
            self.objective_and_gradient_function, "objective gradient", x
        )
        value = float(objective)
        gradient_values = casadi_to_numpy(gradient)
        if not np.isfinite(value):
            raise EvaluationError(f"Objective evaluated to {value}", "Objective evaluation")
        self._check_variables_finite(gradient_values, x, "Objective gradient")
        return value, gradient_values

    def compute_constraints(self, x: FloatArray) -> FloatArray:
        values = casadi_to_numpy(self._call(self.constraint_function, "constraints", x))
        self._check_rows_finite(values, np.arange(values.size), x, "Constraint")
        return values

    def compute_jacobian(self, x: FloatArray) -> FloatArray:
        """Jacobian values aligned with ``jacobian_pattern`` triplets."""
        matrix = self._call(self.jacobian_function, "Jacobian", x)
        self._gather(matrix, self.jacobian_pattern, self._jacobian_values)
        self._check_rows_finite(
            self._jacobian_values, self.jacobian_pattern.rows, x, "Jacobian entry of constraint"
        )
        return self._jacobian_values.copy()

    def compute_jacobian_matrix(self, x: FloatArray) -> sparse.csc_matrix:
        pattern = self.jacobian_pattern
        return sparse.csc_matrix(
            (self.compute_jacobian(x), (pattern.rows, pattern.cols)), shape=pattern.shape
        )

    def compute_hessian(
        self, x: FloatArray, multipliers: FloatArray, objective_weight: float = 1.0
    ) -> FloatArray:
        """Lower-triangular Hessian values aligned with ``hessian_pattern`` triplets."""
        if self.hessian_function is None or self.hessian_pattern is None:
            raise PreconditionViolationError("Hessian evaluation was not requested at build time")
        multipliers = np.asarray(multipliers, dtype=np.float64).reshape(-1)
        if multipliers.size != self.constraint_layout.num_constraints:
            raise DataIntegrityError(
                f"Got {multipliers.size} multipliers, expected "
                f"{self.constraint_layout.num_constraints}"
            )
        matrix = self._call(
            self.hessian_function, "Hessian", x, multipliers, float(objective_weight)
        )
        self._gather(matrix, self.hessian_pattern, self._hessian_values)
        self._check_variables_finite(
            self._hessian_values, x, "Hessian entry", positions=self.hessian_pattern.rows
        )
        return self._hessian_values.copy()

    def compute_hessian_matrix(
        self, x: FloatArray, multipliers: FloatArray, objective_weight: float = 1.0
    ) -> sparse.csc_matrix:
        """Full symmetric Hessian assembled from the lower triangle."""
        values = self.compute_hessian(x, multipliers, objective_weight)
        pattern = cast(SparsityPattern, self.hessian_pattern)
        lower = sparse.csc_matrix((values, (pattern.rows, pattern.cols)), shape=pattern.shape)
        diagonal = sparse.diags(lower.diagonal())
        return sparse.csc_matrix(lower + lower.T - diagonal)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _call(self, function: ca.Function, what: str, x: FloatArray, *extra: object) -> object:
        x = np.asarray(x, dtype=np.float64).reshape(-1)
        if x.size != self.layout.num_variables:
            raise DataIntegrityError(
                f"Decision vector has {x.size} entries, expected {self.layout.num_variables}"
            )
        try:
            return function(x, *extra)
        except RuntimeError as e:
            raise EvaluationError(f"{what} evaluation failed: {e}", "Derivative evaluation") from e

    @staticmethod
    def _gather(matrix: ca.DM, pattern: SparsityPattern, buffer: FloatArray) -> None:
        if pattern.nnz == 0:
            return
        csc = ca.DM(matrix).sparse()
        buffer[:] = np.asarray(csc[pattern.rows, pattern.cols], dtype=np.float64).reshape(-1)

    def _check_rows_finite(
        self, values: FloatArray, rows: np.ndarray, x: FloatArray, what: str
    ) -> None:
        bad = np.flatnonzero(~np.isfinite(values))
        if bad.size == 0:
            return
        row = int(rows[bad[0]])
        location = self.constraint_layout.locate_row(row)
        fractions = self.builder.mesh.fractions
        point = location.point
        if location.kind is ConstraintKind.DEFECT:
            description = f"defect of state {location.index} on interval {point}"
        else:
            description = f"path constraint {location.index} at mesh point {point}"
        time = self._physical_time(x, float(fractions[point]))
        raise EvaluationError(
            f"{what} row {row} is {values[bad[0]]} ({description})",
            f"mesh point {point}, time {time:.6g}",
            mesh_point=point,
            time=time,
        )

    def _check_variables_finite(
        self,
        values: FloatArray,
        x: FloatArray,
        what: str,
        positions: np.ndarray | None = None,
    ) -> None:
        bad = np.flatnonzero(~np.isfinite(values))
        if bad.size == 0:
            return
        position = int(bad[0] if positions is None else positions[bad[0]])
        location = self.layout.locate(position)
        if location.point is None:
            raise EvaluationError(
                f"{what} for {location.kind.value} is {values[bad[0]]}", "Derivative evaluation"
            )
        time = self._physical_time(x, float(self.builder.mesh.fractions[location.point]))
        raise EvaluationError(
            f"{what} for {location.kind.value} {location.index} is {values[bad[0]]}",
            f"mesh point {location.point}, time {time:.6g}",
            mesh_point=location.point,
            time=time,
        )

    def _physical_time(self, x: FloatArray, fraction: float) -> float:
        initial_time, final_time = self.layout.time_values(np.asarray(x, dtype=np.float64))
        return float(initial_time + (final_time - initial_time) * fraction)
