from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from scipy import sparse

from ..dc_types import FloatArray, IntArray, ProblemProtocol
from ..exceptions import DataIntegrityError, InvalidConfigurationError
from ..iterate import Iterate, Solution, SolutionStatus
from ..problem.bounds import Bounds
from .derivatives import DerivativeProvider
from .layout import VariableKind
from .mesh import Mesh


logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class NLPBounds:
    variable_lower: FloatArray
    variable_upper: FloatArray
    constraint_lower: FloatArray
    constraint_upper: FloatArray


class NLPAdapter:
    """
    Presents a transcribed optimal control problem as a generic NLP.

    ``minimize f(x)  subject to  lbx <= x <= ubx,  lbg <= g(x) <= ubg``

    The callback surface follows the usual interior-point solver contract
    (objective, gradient, constraints, sparse Jacobian and lower-triangular
    Lagrangian Hessian with separately queried structures), so any NLP solver
    that accepts callbacks can drive it.
    """

    def __init__(
        self, problem: ProblemProtocol, mesh: Mesh, derivatives: DerivativeProvider
    ) -> None:
        self.problem = problem
        self.mesh = mesh
        self.derivatives = derivatives
        self.layout = derivatives.layout
        self.constraint_layout = derivatives.constraint_layout
        self._bounds = self._build_bounds()
        self._objective_cache: tuple[FloatArray, float, FloatArray] | None = None

    @property
    def num_variables(self) -> int:
        return self.layout.num_variables

    @property
    def num_constraints(self) -> int:
        return self.constraint_layout.num_constraints

    @property
    def has_hessian(self) -> bool:
        return self.derivatives.has_hessian

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    def get_bounds(self) -> NLPBounds:
        return self._bounds

    def _build_bounds(self) -> NLPBounds:
        problem = self.problem
        layout = self.layout
        num_points = layout.num_points
        variable_lower = np.full(layout.num_variables, -np.inf)
        variable_upper = np.full(layout.num_variables, np.inf)

        def _assign(position: int, bounds: Bounds) -> None:
            variable_lower[position] = bounds.lower
            variable_upper[position] = bounds.upper

        if layout.initial_time_index is not None:
            _assign(layout.initial_time_index, layout.initial_time_bounds)
        if layout.final_time_index is not None:
            _assign(layout.final_time_index, layout.final_time_bounds)

        for kind, path_bounds, initial_bounds, final_bounds in (
            (
                VariableKind.STATE,
                problem.get_state_bounds(),
                problem.get_initial_state_bounds(),
                problem.get_final_state_bounds(),
            ),
            (
                VariableKind.CONTROL,
                problem.get_control_bounds(),
                problem.get_initial_control_bounds(),
                problem.get_final_control_bounds(),
            ),
        ):
            for i, bounds in enumerate(path_bounds):
                what = f"{kind.value} {i}"
                for point in range(num_points):
                    _assign(layout.index(point, kind, i), bounds)
                _assign(
                    layout.index(0, kind, i),
                    bounds.intersect(initial_bounds[i], f"{what} initial bounds"),
                )
                _assign(
                    layout.index(num_points - 1, kind, i),
                    bounds.intersect(final_bounds[i], f"{what} final bounds"),
                )

        constraint_lower = np.zeros(self.num_constraints)
        constraint_upper = np.zeros(self.num_constraints)
        for j, bounds in enumerate(problem.get_path_constraint_bounds()):
            for point in range(num_points):
                row = self.constraint_layout.path_row(point, j)
                constraint_lower[row] = bounds.lower
                constraint_upper[row] = bounds.upper

        for array in (variable_lower, variable_upper, constraint_lower, constraint_upper):
            array.flags.writeable = False
        return NLPBounds(variable_lower, variable_upper, constraint_lower, constraint_upper)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def eval_objective(self, x: FloatArray) -> float:
        return self._objective_and_gradient(x)[0]

    def eval_objective_gradient(self, x: FloatArray) -> FloatArray:
        return self._objective_and_gradient(x)[1].copy()

    def _objective_and_gradient(self, x: FloatArray) -> tuple[float, FloatArray]:
        x = np.asarray(x, dtype=np.float64).reshape(-1)
        cache = self._objective_cache
        if cache is not None and np.array_equal(cache[0], x):
            return cache[1], cache[2]
        objective, gradient = self.derivatives.compute_objective_and_gradient(x)
        self._objective_cache = (x.copy(), objective, gradient)
        return objective, gradient

    def eval_constraints(self, x: FloatArray) -> FloatArray:
        return self.derivatives.compute_constraints(x)

    def jacobian_structure(self) -> tuple[IntArray, IntArray]:
        pattern = self.derivatives.jacobian_pattern
        return pattern.rows, pattern.cols

    def eval_jacobian(self, x: FloatArray) -> FloatArray:
        return self.derivatives.compute_jacobian(x)

    def eval_jacobian_matrix(self, x: FloatArray) -> sparse.csc_matrix:
        return self.derivatives.compute_jacobian_matrix(x)

    def hessian_structure(self) -> tuple[IntArray, IntArray]:
        pattern = self.derivatives.hessian_pattern
        if pattern is None:
            raise InvalidConfigurationError(
                "Hessian structure requested but the transcription was built without "
                "exact Hessians (hessian_approximation='limited-memory')"
            )
        return pattern.rows, pattern.cols

    def eval_hessian_of_lagrangian(
        self, x: FloatArray, multipliers: FloatArray, objective_weight: float = 1.0
    ) -> FloatArray:
        return self.derivatives.compute_hessian(x, multipliers, objective_weight)

    def eval_hessian_matrix(
        self, x: FloatArray, multipliers: FloatArray, objective_weight: float = 1.0
    ) -> sparse.csc_matrix:
        return self.derivatives.compute_hessian_matrix(x, multipliers, objective_weight)

    def check_evaluations(self, x: FloatArray) -> None:
        """Evaluate every callback at ``x``; raises ``EvaluationError`` on the first failure."""
        self.eval_objective(x)
        self.eval_constraints(x)
        self.eval_jacobian(x)
        if self.has_hessian:
            self.eval_hessian_of_lagrangian(x, np.ones(self.num_constraints))

    # ------------------------------------------------------------------
    # Points and iterates
    # ------------------------------------------------------------------

    def initial_guess_from_bounds(self) -> FloatArray:
        """Midpoint of finite bounds, the finite side of half-open ones, else 0."""
        bounds = self._bounds
        return np.array(
            [
                Bounds(lower, upper).guess_value()
                for lower, upper in zip(bounds.variable_lower, bounds.variable_upper, strict=True)
            ],
            dtype=np.float64,
        )

    def random_point_within_bounds(self, rng: np.random.Generator | None = None) -> FloatArray:
        """
        Uniform sample within the variable bounds.

        Half-open ranges are sampled within one unit of their finite side;
        unbounded variables in [-1, 1].
        """
        rng = rng if rng is not None else np.random.default_rng()
        lower = np.array(self._bounds.variable_lower)
        upper = np.array(self._bounds.variable_upper)
        lower_finite = np.isfinite(lower)
        upper_finite = np.isfinite(upper)
        sample_lower = np.where(lower_finite, lower, np.where(upper_finite, upper - 1.0, -1.0))
        sample_upper = np.where(upper_finite, upper, np.where(lower_finite, lower + 1.0, 1.0))
        point = rng.uniform(sample_lower, sample_upper)

        # Keep the sampled time span forward.
        initial_index = self.layout.initial_time_index
        final_index = self.layout.final_time_index
        initial_time, final_time = self.layout.time_values(point)
        if final_time <= initial_time:
            if final_index is not None:
                point[final_index] = sample_upper[final_index]
            if initial_index is not None:
                point[initial_index] = sample_lower[initial_index]
        return point

    def iterate_to_decision_vector(self, iterate: Iterate) -> FloatArray:
        """Decision vector from an iterate already sampled on this mesh."""
        if iterate.num_points != self.layout.num_points:
            raise DataIntegrityError(
                f"Iterate has {iterate.num_points} points, mesh has {self.layout.num_points}"
            )
        return self.layout.pack(
            iterate.states, iterate.controls, float(iterate.time[0]), float(iterate.time[-1])
        )

    def decision_vector_to_iterate(self, x: FloatArray) -> Iterate:
        states, controls, initial_time, final_time = self.layout.unpack(x)
        time = initial_time + (final_time - initial_time) * self.mesh.fractions
        return Iterate(
            time,
            states,
            controls,
            self.problem.get_state_names(),
            self.problem.get_control_names(),
        )

    def finalize_solution(
        self,
        x: FloatArray,
        status: SolutionStatus,
        objective: float,
        message: str = "",
        num_iterations: int | None = None,
    ) -> Solution:
        """Solution object for the final primal point reported by the solver."""
        states, controls, initial_time, final_time = self.layout.unpack(x)
        time = initial_time + (final_time - initial_time) * self.mesh.fractions
        return Solution(
            time,
            states,
            controls,
            self.problem.get_state_names(),
            self.problem.get_control_names(),
            status=status,
            objective=objective,
            message=message,
            num_iterations=num_iterations,
        )
