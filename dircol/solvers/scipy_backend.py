from __future__ import annotations

import logging
import warnings
from typing import TYPE_CHECKING, Any

import numpy as np
from scipy.optimize import BFGS, Bounds, NonlinearConstraint, OptimizeResult, minimize

from ..dc_types import FloatArray
from ..iterate import SolutionStatus
from ..utils.constants import DEFAULT_SCIPY_OPTIONS
from .base import NLPResult, NLPSolverBackend, SolverOptions


if TYPE_CHECKING:
    from ..transcription.nlp_adapter import NLPAdapter


logger = logging.getLogger(__name__)

DEFAULT_CONSTRAINT_TOLERANCE = 1e-6


def map_trust_constr_status(result: OptimizeResult, constraint_tolerance: float) -> SolutionStatus:
    """0: iteration limit, 1/2: converged (infeasible if constraints violated), else error."""
    if result.status == 0:
        return SolutionStatus.ITERATION_LIMIT
    if result.status in (1, 2):
        if float(getattr(result, "constr_violation", 0.0)) > constraint_tolerance:
            return SolutionStatus.INFEASIBLE
        return SolutionStatus.CONVERGED
    return SolutionStatus.ERROR


class ScipyBackend(NLPSolverBackend):
    """
    ``scipy.optimize.minimize(method="trust-constr")`` driven through the adapter callbacks.

    Uses the sparse constraint Jacobian and, when the transcription provides
    it, the exact Lagrangian Hessian; otherwise BFGS updates.
    """

    name = "scipy"

    def build_options(self, options: SolverOptions) -> dict[str, Any]:
        solver_options: dict[str, Any] = dict(DEFAULT_SCIPY_OPTIONS)
        if options.verbosity > 0:
            solver_options["verbose"] = min(int(options.verbosity), 3)
        if options.max_iterations is not None:
            solver_options["maxiter"] = int(options.max_iterations)
        if options.convergence_tolerance is not None:
            solver_options["gtol"] = float(options.convergence_tolerance)
            solver_options["xtol"] = float(options.convergence_tolerance)
        solver_options.update(options.nlp_options)
        return solver_options

    def solve(self, adapter: NLPAdapter, x0: FloatArray, options: SolverOptions) -> NLPResult:
        bounds = adapter.get_bounds()
        use_exact_hessian = adapter.has_hessian and options.hessian_approximation == "exact"
        zero_multipliers = np.zeros(adapter.num_constraints)

        objective_hessian: Any
        constraint_hessian: Any
        if use_exact_hessian:

            def objective_hessian(x: FloatArray) -> Any:
                return adapter.eval_hessian_matrix(x, zero_multipliers, objective_weight=1.0)

            def constraint_hessian(x: FloatArray, multipliers: FloatArray) -> Any:
                return adapter.eval_hessian_matrix(x, multipliers, objective_weight=0.0)

        else:
            objective_hessian = BFGS()
            constraint_hessian = BFGS()

        constraints = []
        if adapter.num_constraints:
            constraints.append(
                NonlinearConstraint(
                    adapter.eval_constraints,
                    np.array(bounds.constraint_lower),
                    np.array(bounds.constraint_upper),
                    jac=adapter.eval_jacobian_matrix,
                    hess=constraint_hessian,
                )
            )

        solver_options = self.build_options(options)
        logger.debug(
            "Running scipy trust-constr: %d variables, %d constraints, exact hessian=%s",
            adapter.num_variables,
            adapter.num_constraints,
            use_exact_hessian,
        )
        with warnings.catch_warnings():
            # Fixed variables (equal bounds) trigger a benign UserWarning in trust-constr.
            warnings.simplefilter("ignore", UserWarning)
            result = minimize(
                adapter.eval_objective,
                np.asarray(x0, dtype=np.float64),
                jac=adapter.eval_objective_gradient,
                hess=objective_hessian,
                method="trust-constr",
                bounds=Bounds(np.array(bounds.variable_lower), np.array(bounds.variable_upper)),
                constraints=constraints,
                options=solver_options,
            )

        constraint_tolerance = (
            options.constraint_tolerance
            if options.constraint_tolerance is not None
            else DEFAULT_CONSTRAINT_TOLERANCE
        )
        status = map_trust_constr_status(result, constraint_tolerance)
        logger.debug("trust-constr finished with status %s: %s", result.status, result.message)
        return NLPResult(
            x=np.asarray(result.x, dtype=np.float64),
            objective=float(result.fun),
            status=status,
            message=str(result.message),
            num_iterations=int(getattr(result, "nit", 0)),
        )
