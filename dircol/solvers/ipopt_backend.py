from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import cyipopt
import numpy as np

from ..dc_types import FloatArray, IntArray
from ..exceptions import EvaluationError, InvalidConfigurationError
from ..iterate import SolutionStatus
from ..utils.constants import DEFAULT_IPOPT_OPTIONS
from .base import NLPResult, NLPSolverBackend, SolverOptions


if TYPE_CHECKING:
    from ..transcription.nlp_adapter import NLPAdapter


logger = logging.getLogger(__name__)


# IPOPT ApplicationReturnStatus codes as reported in cyipopt's ``info["status"]``
IPOPT_RETURN_STATUS: dict[int, str] = {
    0: "Solve_Succeeded",
    1: "Solved_To_Acceptable_Level",
    2: "Infeasible_Problem_Detected",
    3: "Search_Direction_Becomes_Too_Small",
    4: "Diverging_Iterates",
    5: "User_Requested_Stop",
    6: "Feasible_Point_Found",
    -1: "Maximum_Iterations_Exceeded",
    -2: "Restoration_Failed",
    -3: "Error_In_Step_Computation",
    -4: "Maximum_CpuTime_Exceeded",
    -5: "Maximum_WallTime_Exceeded",
    -10: "Not_Enough_Degrees_Of_Freedom",
    -11: "Invalid_Problem_Definition",
    -12: "Invalid_Option",
    -13: "Invalid_Number_Detected",
    -100: "Unrecoverable_Exception",
    -101: "NonIpopt_Exception_Thrown",
    -102: "Insufficient_Memory",
    -199: "Internal_Error",
}

IPOPT_STATUS_MAP: dict[str, SolutionStatus] = {
    "Solve_Succeeded": SolutionStatus.CONVERGED,
    "Solved_To_Acceptable_Level": SolutionStatus.CONVERGED,
    "Maximum_Iterations_Exceeded": SolutionStatus.ITERATION_LIMIT,
    "Maximum_CpuTime_Exceeded": SolutionStatus.ITERATION_LIMIT,
    "Maximum_WallTime_Exceeded": SolutionStatus.ITERATION_LIMIT,
    "Infeasible_Problem_Detected": SolutionStatus.INFEASIBLE,
}


def ipopt_return_status(code: int) -> str:
    return IPOPT_RETURN_STATUS.get(int(code), f"Unknown_Status_{int(code)}")


def map_ipopt_status(return_status: str) -> SolutionStatus:
    return IPOPT_STATUS_MAP.get(return_status, SolutionStatus.ERROR)


class _IpoptCallbacks:
    """
    cyipopt problem object forwarding to the adapter callbacks.

    The first ``EvaluationError`` raised by a callback is kept so the solve can
    be stopped at the next iteration and the error re-raised to the caller.
    """

    def __init__(self, adapter: NLPAdapter) -> None:
        self.adapter = adapter
        self.error: EvaluationError | None = None
        self.num_iterations = 0

    def _guarded(self, callback: Callable[..., Any], *args: Any) -> Any:
        try:
            return callback(*args)
        except EvaluationError as e:
            if self.error is None:
                self.error = e
            raise

    def objective(self, x: FloatArray) -> float:
        return self._guarded(self.adapter.eval_objective, x)

    def gradient(self, x: FloatArray) -> FloatArray:
        return self._guarded(self.adapter.eval_objective_gradient, x)

    def constraints(self, x: FloatArray) -> FloatArray:
        return self._guarded(self.adapter.eval_constraints, x)

    def jacobianstructure(self) -> tuple[IntArray, IntArray]:
        return self.adapter.jacobian_structure()

    def jacobian(self, x: FloatArray) -> FloatArray:
        return self._guarded(self.adapter.eval_jacobian, x)

    def intermediate(
        self,
        alg_mod: int,
        iter_count: int,
        obj_value: float,
        inf_pr: float,
        inf_du: float,
        mu: float,
        d_norm: float,
        regularization_size: float,
        alpha_du: float,
        alpha_pr: float,
        ls_trials: int,
    ) -> bool:
        self.num_iterations = int(iter_count)
        return self.error is None


class _IpoptCallbacksWithHessian(_IpoptCallbacks):
    def hessianstructure(self) -> tuple[IntArray, IntArray]:
        return self.adapter.hessian_structure()

    def hessian(self, x: FloatArray, lagrange: FloatArray, obj_factor: float) -> FloatArray:
        return self._guarded(self.adapter.eval_hessian_of_lagrangian, x, lagrange, obj_factor)


class IpoptBackend(NLPSolverBackend):
    """
    IPOPT through cyipopt, driven by the adapter callbacks.

    IPOPT receives the declared Jacobian and lower-triangular Hessian
    structures; without an exact Hessian it runs with limited-memory updates.
    """

    name = "ipopt"

    def build_options(self, options: SolverOptions) -> dict[str, object]:
        solver_options: dict[str, object] = dict(DEFAULT_IPOPT_OPTIONS)
        if options.verbosity > 0:
            solver_options["print_level"] = 5
        if options.max_iterations is not None:
            solver_options["max_iter"] = int(options.max_iterations)
        if options.convergence_tolerance is not None:
            solver_options["tol"] = float(options.convergence_tolerance)
        if options.constraint_tolerance is not None:
            solver_options["constr_viol_tol"] = float(options.constraint_tolerance)
        if options.hessian_approximation == "limited-memory":
            solver_options["hessian_approximation"] = "limited-memory"
        solver_options.update(options.nlp_options)
        return solver_options

    def solve(self, adapter: NLPAdapter, x0: FloatArray, options: SolverOptions) -> NLPResult:
        use_exact_hessian = adapter.has_hessian and options.hessian_approximation == "exact"
        callbacks = (_IpoptCallbacksWithHessian if use_exact_hessian else _IpoptCallbacks)(adapter)

        solver_options = self.build_options(options)
        if not use_exact_hessian:
            solver_options["hessian_approximation"] = "limited-memory"

        bounds = adapter.get_bounds()
        nlp = cyipopt.Problem(
            n=adapter.num_variables,
            m=adapter.num_constraints,
            problem_obj=callbacks,
            lb=np.array(bounds.variable_lower),
            ub=np.array(bounds.variable_upper),
            cl=np.array(bounds.constraint_lower),
            cu=np.array(bounds.constraint_upper),
        )
        for key, value in solver_options.items():
            try:
                nlp.add_option(key, value)
            except (TypeError, ValueError) as e:
                raise InvalidConfigurationError(
                    f"Failed to set IPOPT option '{key}'={value!r}: {e}", "Invalid solver options"
                ) from e

        logger.debug(
            "Running IPOPT: %d variables, %d constraints, exact hessian=%s",
            adapter.num_variables,
            adapter.num_constraints,
            use_exact_hessian,
        )
        try:
            x, info = nlp.solve(np.asarray(x0, dtype=np.float64).copy())
        except Exception:
            # cyipopt re-raises callback exceptions; surface the original error.
            if callbacks.error is not None:
                raise callbacks.error from None
            raise
        if callbacks.error is not None:
            raise callbacks.error

        return_status = ipopt_return_status(info["status"])
        if return_status == "Invalid_Option":
            raise InvalidConfigurationError(
                f"IPOPT rejected the options {sorted(solver_options)}", "Invalid solver options"
            )
        if return_status == "Invalid_Number_Detected":
            adapter.check_evaluations(x)
            adapter.check_evaluations(np.asarray(x0, dtype=np.float64))
            raise EvaluationError(
                "IPOPT encountered a NaN or Inf in a problem callback", "IPOPT Invalid_Number_Detected"
            )

        status = map_ipopt_status(return_status)
        logger.debug(
            "IPOPT finished: %s after %d iterations", return_status, callbacks.num_iterations
        )
        return NLPResult(
            x=np.asarray(x, dtype=np.float64),
            objective=float(info["obj_val"]),
            status=status,
            message=return_status,
            num_iterations=callbacks.num_iterations,
        )
