from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..dc_types import BoundsInput, DAEOutput
from ..exceptions import InvalidConfigurationError
from ..input_validation import (
    validate_name_characters,
    validate_string_not_empty,
    validate_time_bounds,
)
from ..utils.constants import RESERVED_VARIABLE_NAMES
from .bounds import Bounds


logger = logging.getLogger(__name__)


DynamicsCallable = Callable[[Any, Any, Any], DAEOutput | tuple[Any, Any]]
EndpointCostCallable = Callable[[Any, Any], Any]
IntegralCostCallable = Callable[[Any, Any, Any], Any]


@dataclass(frozen=True)
class _VariableInfo:
    """Declared continuous variable (state or control) with its bound set."""

    name: str
    bounds: Bounds
    initial_bounds: Bounds
    final_bounds: Bounds


@dataclass(frozen=True)
class _PathConstraintInfo:
    name: str
    bounds: Bounds


@dataclass
class _ProblemDeclarations:
    """Ordered declarations of an optimal control problem."""

    states: list[_VariableInfo] = field(default_factory=list)
    controls: list[_VariableInfo] = field(default_factory=list)
    path_constraints: list[_PathConstraintInfo] = field(default_factory=list)
    names: set[str] = field(default_factory=set)
    initial_time_bounds: Bounds = field(default_factory=lambda: Bounds(0.0, 0.0))
    final_time_bounds: Bounds | None = None


class OptimalControlProblem:
    """
    Continuous-time optimal control problem.

    Declare variables in the constructor of a subclass (or on an instance),
    then either override the ``calc_*`` hooks or register plain callables with
    ``set_dynamics``/``set_endpoint_cost``/``set_integral_cost``. During
    transcription the hooks receive CasADi ``SX`` column vectors, so use
    ``casadi`` functions (``ca.sin``, ``ca.sqrt``, ...) for nonlinear terms.

    A problem becomes immutable once it is attached to a solver.

    Examples:
        >>> problem = OptimalControlProblem("Sliding mass")
        >>> problem.set_time(initial=0.0, final=(0.0, 10.0))
        >>> problem.add_state("x", bounds=(0, 1), initial=0, final=1)
        >>> problem.add_state("u", bounds=(-100, 100), initial=0, final=0)
        >>> problem.add_control("F", bounds=(-10, 10))
        >>> problem.set_dynamics(lambda t, x, u: DAEOutput([x[1], u[0] / 10.0]))
        >>> problem.set_endpoint_cost(lambda tf, xf: tf)
    """

    def __init__(self, name: str = "Optimal Control Problem") -> None:
        validate_string_not_empty(name, "Problem name")
        self.name = name
        self._declarations = _ProblemDeclarations()
        self._dynamics_function: DynamicsCallable | None = None
        self._endpoint_cost_function: EndpointCostCallable | None = None
        self._integral_cost_function: IntegralCostCallable | None = None
        self._locked = False

        logger.debug("Created optimal control problem '%s'", name)

    # ------------------------------------------------------------------
    # Declaration API
    # ------------------------------------------------------------------

    def set_time(self, initial: BoundsInput = 0.0, final: BoundsInput = None) -> None:
        """
        Set the initial and final time bounds.

        A fixed value makes that time a constant; a ``(lower, upper)`` range
        makes it a decision variable of the transcribed NLP.
        """
        self._check_mutable()
        initial_bounds = Bounds.from_input(initial, "initial time")
        if final is None:
            raise InvalidConfigurationError("Final time bounds must be specified", self.name)
        final_bounds = Bounds.from_input(final, "final time")
        validate_time_bounds(initial_bounds, final_bounds)

        self._declarations.initial_time_bounds = initial_bounds
        self._declarations.final_time_bounds = final_bounds
        logger.debug(
            "Problem '%s' time bounds: initial=%s, final=%s", self.name, initial_bounds, final_bounds
        )

    def add_state(
        self,
        name: str,
        bounds: BoundsInput = None,
        initial: BoundsInput = None,
        final: BoundsInput = None,
    ) -> int:
        """Declare a state variable and return its index."""
        info = self._make_variable_info(name, bounds, initial, final, "state")
        self._declarations.states.append(info)
        return len(self._declarations.states) - 1

    def add_control(
        self,
        name: str,
        bounds: BoundsInput = None,
        initial: BoundsInput = None,
        final: BoundsInput = None,
    ) -> int:
        """Declare a control variable and return its index."""
        info = self._make_variable_info(name, bounds, initial, final, "control")
        self._declarations.controls.append(info)
        return len(self._declarations.controls) - 1

    def add_path_constraint(self, name: str, bounds: BoundsInput = 0.0) -> int:
        """Declare a path constraint enforced at every mesh point (default: equals 0)."""
        self._check_mutable()
        self._register_name(name, "path constraint")
        info = _PathConstraintInfo(name, Bounds.from_input(bounds, f"path constraint '{name}'"))
        self._declarations.path_constraints.append(info)
        return len(self._declarations.path_constraints) - 1

    def set_dynamics(self, function: DynamicsCallable) -> None:
        """Register ``f(time, states, controls) -> (state_derivatives, path_values)``."""
        self._check_mutable()
        self._check_callable(function, "dynamics")
        self._dynamics_function = function

    def set_endpoint_cost(self, function: EndpointCostCallable) -> None:
        """Register ``cost(final_time, final_states) -> scalar``."""
        self._check_mutable()
        self._check_callable(function, "endpoint cost")
        self._endpoint_cost_function = function

    def set_integral_cost(self, function: IntegralCostCallable) -> None:
        """Register the integrand ``L(time, states, controls) -> scalar``."""
        self._check_mutable()
        self._check_callable(function, "integral cost")
        self._integral_cost_function = function

    # ------------------------------------------------------------------
    # Capability hooks
    # ------------------------------------------------------------------

    def calc_differential_algebraic_equations(
        self, time: Any, states: Any, controls: Any
    ) -> DAEOutput | tuple[Any, Any]:
        if self._dynamics_function is None:
            raise InvalidConfigurationError(f"Problem '{self.name}' has no dynamics")
        return self._dynamics_function(time, states, controls)

    def calc_endpoint_cost(self, final_time: Any, final_states: Any) -> Any:
        if self._endpoint_cost_function is None:
            return 0.0
        return self._endpoint_cost_function(final_time, final_states)

    def calc_integral_cost(self, time: Any, states: Any, controls: Any) -> Any:
        if self._integral_cost_function is None:
            return 0.0
        return self._integral_cost_function(time, states, controls)

    def has_dynamics(self) -> bool:
        return self._dynamics_function is not None or self._overrides(
            "calc_differential_algebraic_equations"
        )

    def has_endpoint_cost(self) -> bool:
        return self._endpoint_cost_function is not None or self._overrides("calc_endpoint_cost")

    def has_integral_cost(self) -> bool:
        return self._integral_cost_function is not None or self._overrides("calc_integral_cost")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def num_states(self) -> int:
        return len(self._declarations.states)

    @property
    def num_controls(self) -> int:
        return len(self._declarations.controls)

    @property
    def num_path_constraints(self) -> int:
        return len(self._declarations.path_constraints)

    @property
    def is_locked(self) -> bool:
        return self._locked

    def get_state_names(self) -> list[str]:
        return [info.name for info in self._declarations.states]

    def get_control_names(self) -> list[str]:
        return [info.name for info in self._declarations.controls]

    def get_path_constraint_names(self) -> list[str]:
        return [info.name for info in self._declarations.path_constraints]

    def get_initial_time_bounds(self) -> Bounds:
        return self._declarations.initial_time_bounds

    def get_final_time_bounds(self) -> Bounds:
        if self._declarations.final_time_bounds is None:
            raise InvalidConfigurationError(
                f"Problem '{self.name}' final time not set - call set_time()"
            )
        return self._declarations.final_time_bounds

    def get_state_bounds(self) -> list[Bounds]:
        return [info.bounds for info in self._declarations.states]

    def get_initial_state_bounds(self) -> list[Bounds]:
        return [info.initial_bounds for info in self._declarations.states]

    def get_final_state_bounds(self) -> list[Bounds]:
        return [info.final_bounds for info in self._declarations.states]

    def get_control_bounds(self) -> list[Bounds]:
        return [info.bounds for info in self._declarations.controls]

    def get_initial_control_bounds(self) -> list[Bounds]:
        return [info.initial_bounds for info in self._declarations.controls]

    def get_final_control_bounds(self) -> list[Bounds]:
        return [info.final_bounds for info in self._declarations.controls]

    def get_path_constraint_bounds(self) -> list[Bounds]:
        return [info.bounds for info in self._declarations.path_constraints]

    def describe(self) -> str:
        """Human-readable listing of the declared variables and their bounds."""
        final_time = self._declarations.final_time_bounds
        lines = [
            f"Optimal control problem '{self.name}'",
            f"  Initial time: {self._declarations.initial_time_bounds}",
            f"  Final time: {final_time if final_time is not None else 'not set'}",
            f"  States ({self.num_states}):",
        ]
        for info in self._declarations.states:
            lines.append(
                f"    {info.name}: bounds={info.bounds} initial={info.initial_bounds} "
                f"final={info.final_bounds}"
            )
        lines.append(f"  Controls ({self.num_controls}):")
        for info in self._declarations.controls:
            lines.append(
                f"    {info.name}: bounds={info.bounds} initial={info.initial_bounds} "
                f"final={info.final_bounds}"
            )
        lines.append(f"  Path constraints ({self.num_path_constraints}):")
        for constraint in self._declarations.path_constraints:
            lines.append(f"    {constraint.name}: bounds={constraint.bounds}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, states={self.num_states}, "
            f"controls={self.num_controls}, path_constraints={self.num_path_constraints})"
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock(self) -> None:
        """Freeze declarations; called when the problem is attached to a solver."""
        if not self._locked:
            logger.debug("Problem '%s' locked", self.name)
        self._locked = True

    def _check_mutable(self) -> None:
        if self._locked:
            raise InvalidConfigurationError(
                f"Problem '{self.name}' is attached to a solver and can no longer be modified"
            )

    def _overrides(self, method_name: str) -> bool:
        return getattr(type(self), method_name) is not getattr(OptimalControlProblem, method_name)

    def _register_name(self, name: str, what: str) -> None:
        validate_string_not_empty(name, f"{what} name")
        validate_name_characters(name, f"{what.capitalize()} name", InvalidConfigurationError)
        if name in RESERVED_VARIABLE_NAMES:
            raise InvalidConfigurationError(f"'{name}' is reserved and cannot name a {what}")
        if name in self._declarations.names:
            raise InvalidConfigurationError(
                f"{what.capitalize()} '{name}' already exists", "Variable naming conflict"
            )
        self._declarations.names.add(name)

    def _make_variable_info(
        self,
        name: str,
        bounds: BoundsInput,
        initial: BoundsInput,
        final: BoundsInput,
        what: str,
    ) -> _VariableInfo:
        self._check_mutable()
        # Parse all bounds before registering so a bad bound leaves no trace.
        info = _VariableInfo(
            name=name,
            bounds=Bounds.from_input(bounds, f"{what} '{name}' bounds"),
            initial_bounds=Bounds.from_input(initial, f"{what} '{name}' initial bounds"),
            final_bounds=Bounds.from_input(final, f"{what} '{name}' final bounds"),
        )
        info.bounds.intersect(info.initial_bounds, f"{what} '{name}' initial range")
        info.bounds.intersect(info.final_bounds, f"{what} '{name}' final range")
        self._register_name(name, what)
        logger.debug("Problem '%s': added %s '%s' %s", self.name, what, name, info.bounds)
        return info

    @staticmethod
    def _check_callable(function: Any, what: str) -> None:
        if not callable(function):
            raise InvalidConfigurationError(f"{what} must be callable, got {type(function)}")
