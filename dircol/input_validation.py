import logging
import math
from typing import TYPE_CHECKING, Any

import casadi as ca
import numpy as np

from .dc_types import DAEOutput, FloatArray, ProblemProtocol
from .exceptions import DataIntegrityError, EvaluationError, InvalidConfigurationError
from .utils.casadi_utils import as_symbolic_column, as_symbolic_scalar
from .utils.constants import (
    CSV_FORBIDDEN_NAME_CHARACTERS,
    MESH_TOLERANCE,
    MINIMUM_MESH_POINTS,
    ZERO_TOLERANCE,
)


if TYPE_CHECKING:
    from .iterate import Iterate
    from .problem.bounds import Bounds


logger = logging.getLogger(__name__)


# ============================================================================
# CORE VALIDATION PRIMITIVES
# ============================================================================


def validate_positive_integer(value: Any, name: str, min_value: int = 1) -> None:
    """Integer validation with a lower limit."""
    if isinstance(value, bool) or not isinstance(value, int | np.integer):
        raise InvalidConfigurationError(f"{name} must be integer, got {type(value)}")
    if value < min_value:
        raise InvalidConfigurationError(f"{name} must be >= {min_value}, got {value}")


def validate_positive_number(value: Any, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise InvalidConfigurationError(f"{name} must be numeric, got {type(value)}")
    if math.isnan(value) or math.isinf(value):
        raise InvalidConfigurationError(f"{name} cannot be NaN or infinite, got {value}")
    if value <= 0:
        raise InvalidConfigurationError(f"{name} must be positive, got {value}")


def validate_string_not_empty(value: Any, name: str) -> None:
    if not isinstance(value, str):
        raise InvalidConfigurationError(f"{name} must be string, got {type(value)}")
    if not value.strip():
        raise InvalidConfigurationError(f"{name} cannot be empty")


def validate_array_numerical_integrity(
    array: FloatArray, name: str, context: str = "validation"
) -> None:
    """NaN/Inf validation."""
    if np.any(np.isnan(array)) or np.any(np.isinf(array)):
        raise DataIntegrityError(
            f"{name} contains NaN or Inf values", f"Numerical corruption in {context}"
        )


def validate_array_shape(
    array: FloatArray, expected_shape: tuple[int, ...], name: str, context: str = "validation"
) -> None:
    if array.shape != expected_shape:
        raise DataIntegrityError(
            f"{name} has shape {array.shape}, expected {expected_shape}",
            f"Shape mismatch in {context}",
        )


def validate_name_characters(name: str, what: str, error_type: type[Exception]) -> None:
    """Reject names that the unquoted CSV header cannot hold."""
    forbidden = sorted({char for char in name if char in CSV_FORBIDDEN_NAME_CHARACTERS})
    if forbidden:
        raise error_type(f"{what} '{name}' contains forbidden characters {forbidden}")


def validate_unique_names(names: list[str], what: str) -> None:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise DataIntegrityError(f"Duplicate {what} name '{name}'")
        seen.add(name)


# ============================================================================
# BOUND VALIDATION
# ============================================================================


def validate_bounds_input(bounds_input: Any, context: str) -> None:
    """Validate a scalar / (lower, upper) / None bound specification."""
    if bounds_input is None:
        return

    if isinstance(bounds_input, bool):
        raise InvalidConfigurationError(f"Invalid bound type: {type(bounds_input)}", context)

    if isinstance(bounds_input, int | float | np.integer | np.floating):
        if math.isnan(bounds_input) or math.isinf(bounds_input):
            raise InvalidConfigurationError(
                f"Fixed bound cannot be NaN/infinite: {bounds_input}", context
            )
    elif isinstance(bounds_input, tuple | list):
        if len(bounds_input) != 2:
            raise InvalidConfigurationError(
                f"Bound pair must have 2 elements, got {len(bounds_input)}", context
            )

        lower, upper = bounds_input
        for i, val in enumerate([lower, upper]):
            if val is None:
                continue
            if isinstance(val, bool) or not isinstance(
                val, int | float | np.integer | np.floating
            ):
                raise InvalidConfigurationError(
                    f"Bound {i} must be numeric/None, got {type(val)}", context
                )
            if math.isnan(val):
                raise InvalidConfigurationError(f"Bound {i} cannot be NaN", context)

        if lower is not None and upper is not None and lower > upper:
            raise InvalidConfigurationError(
                f"Lower bound ({lower}) > upper bound ({upper})", context
            )
    else:
        raise InvalidConfigurationError(f"Invalid bound type: {type(bounds_input)}", context)


def validate_time_bounds(initial: "Bounds", final: "Bounds") -> None:
    """Initial and final time bounds must describe a forward time horizon."""
    if final.lower < initial.upper:
        raise InvalidConfigurationError(
            f"Final time lower bound ({final.lower}) precedes initial time upper bound "
            f"({initial.upper})",
            "Non-monotonic time bounds",
        )
    if final.upper <= initial.lower:
        raise InvalidConfigurationError(
            f"Final time upper bound ({final.upper}) does not exceed initial time lower bound "
            f"({initial.lower})",
            "Non-monotonic time bounds",
        )
    for bounds, which in [(initial, "initial"), (final, "final")]:
        if math.isinf(bounds.lower) and math.isinf(bounds.upper):
            raise InvalidConfigurationError(f"{which.capitalize()} time must be bounded")


# ============================================================================
# MESH VALIDATION
# ============================================================================


def validate_num_mesh_points(num_points: Any) -> None:
    validate_positive_integer(num_points, "number of mesh points", min_value=MINIMUM_MESH_POINTS)


def validate_mesh_fractions(fractions: FloatArray) -> None:
    """Complete validation of normalized mesh time fractions."""
    if fractions.ndim != 1:
        raise InvalidConfigurationError(
            f"Mesh fractions must be one-dimensional, got shape {fractions.shape}"
        )
    validate_num_mesh_points(len(fractions))

    if np.any(~np.isfinite(fractions)):
        raise InvalidConfigurationError("Mesh fractions must be finite")
    if not np.isclose(fractions[0], 0.0, rtol=0.0, atol=ZERO_TOLERANCE):
        raise InvalidConfigurationError(f"First mesh fraction must be 0.0, got {fractions[0]}")
    if not np.isclose(fractions[-1], 1.0, rtol=0.0, atol=ZERO_TOLERANCE):
        raise InvalidConfigurationError(f"Last mesh fraction must be 1.0, got {fractions[-1]}")

    if not np.all(np.diff(fractions) > MESH_TOLERANCE):
        raise InvalidConfigurationError(
            f"Mesh fractions must be strictly increasing with min spacing {MESH_TOLERANCE}"
        )


# ============================================================================
# PROBLEM VALIDATION
# ============================================================================


def validate_dae_output(output: Any, num_states: int, num_path: int) -> tuple[ca.SX, ca.SX]:
    """Split and shape-check a DAE callback result into (dynamics, path) columns."""
    if isinstance(output, DAEOutput):
        dynamics, path = output.dynamics, output.path
    elif isinstance(output, tuple) and len(output) == 2:
        dynamics, path = output
    else:
        raise InvalidConfigurationError(
            "DAE callback must return (dynamics, path), e.g. DAEOutput(dynamics, path)",
            f"got {type(output)}",
        )
    return (
        as_symbolic_column(dynamics, num_states, "dynamics"),
        as_symbolic_column(path, num_path, "path constraints"),
    )


def validate_problem_ready_for_solving(problem: ProblemProtocol) -> None:
    """MASTER validation run when a problem is attached to a solver."""
    num_states = problem.num_states
    num_controls = problem.num_controls
    num_path = problem.num_path_constraints

    if num_states == 0:
        raise InvalidConfigurationError(
            f"Problem '{problem.name}' must have at least one state variable"
        )

    validate_time_bounds(problem.get_initial_time_bounds(), problem.get_final_time_bounds())

    if not problem.has_dynamics():
        raise InvalidConfigurationError(
            f"Problem '{problem.name}' dynamics must be defined - call set_dynamics() "
            "or override calc_differential_algebraic_equations()"
        )
    if not (problem.has_endpoint_cost() or problem.has_integral_cost()):
        raise InvalidConfigurationError(
            f"Problem '{problem.name}' must have an endpoint cost or an integral cost"
        )

    counts = [
        (problem.get_state_bounds(), num_states, "state bounds"),
        (problem.get_initial_state_bounds(), num_states, "initial state bounds"),
        (problem.get_final_state_bounds(), num_states, "final state bounds"),
        (problem.get_control_bounds(), num_controls, "control bounds"),
        (problem.get_initial_control_bounds(), num_controls, "initial control bounds"),
        (problem.get_final_control_bounds(), num_controls, "final control bounds"),
        (problem.get_path_constraint_bounds(), num_path, "path constraint bounds"),
    ]
    for bounds_list, expected, what in counts:
        if len(bounds_list) != expected:
            raise InvalidConfigurationError(
                f"Problem '{problem.name}' has {len(bounds_list)} {what}, expected {expected}"
            )

    _probe_problem_callbacks(problem)


def _probe_problem_callbacks(problem: ProblemProtocol) -> None:
    # Symbolic probe catches dimension mismatches before any mesh is built.
    time = ca.SX.sym("t_probe")
    states = ca.SX.sym("x_probe", problem.num_states)
    controls = ca.SX.sym("u_probe", problem.num_controls)

    try:
        output = problem.calc_differential_algebraic_equations(time, states, controls)
    except Exception as e:
        raise EvaluationError(
            f"DAE callback of problem '{problem.name}' failed on symbolic inputs: {e}",
            "Problem probe",
        ) from e
    validate_dae_output(output, problem.num_states, problem.num_path_constraints)

    if problem.has_endpoint_cost():
        try:
            endpoint = problem.calc_endpoint_cost(time, states)
        except Exception as e:
            raise EvaluationError(
                f"Endpoint cost of problem '{problem.name}' failed on symbolic inputs: {e}",
                "Problem probe",
            ) from e
        as_symbolic_scalar(endpoint, "endpoint cost")

    if problem.has_integral_cost():
        try:
            integrand = problem.calc_integral_cost(time, states, controls)
        except Exception as e:
            raise EvaluationError(
                f"Integral cost of problem '{problem.name}' failed on symbolic inputs: {e}",
                "Problem probe",
            ) from e
        as_symbolic_scalar(integrand, "integral cost")

    logger.debug("Problem '%s' callbacks probed successfully", problem.name)


# ============================================================================
# ITERATE VALIDATION
# ============================================================================


def validate_iterate_matches_problem(iterate: "Iterate", problem: ProblemProtocol) -> None:
    """An initial guess must name the same variables, in the same order, as the problem."""
    if list(iterate.state_names) != list(problem.get_state_names()):
        raise InvalidConfigurationError(
            f"Guess state names {iterate.state_names} != problem state names "
            f"{problem.get_state_names()}",
            "Initial guess",
        )
    if list(iterate.control_names) != list(problem.get_control_names()):
        raise InvalidConfigurationError(
            f"Guess control names {iterate.control_names} != problem control names "
            f"{problem.get_control_names()}",
            "Initial guess",
        )
    if iterate.num_points < 2:
        raise InvalidConfigurationError(
            f"Guess must have at least 2 time points, got {iterate.num_points}", "Initial guess"
        )
    if iterate.time[-1] <= iterate.time[0]:
        raise InvalidConfigurationError(
            f"Guess must span a positive duration, got [{iterate.time[0]}, {iterate.time[-1]}]",
            "Initial guess",
        )
    validate_array_numerical_integrity(iterate.time, "guess time", "initial guess")
    validate_array_numerical_integrity(iterate.states, "guess states", "initial guess")
    validate_array_numerical_integrity(iterate.controls, "guess controls", "initial guess")
