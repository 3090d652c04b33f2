from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TextIO

import numpy as np

from .dc_types import FloatArray, NumericArrayLike, ProblemProtocol
from .exceptions import (
    DataIntegrityError,
    DircolBaseError,
    InvalidConfigurationError,
    PreconditionViolationError,
    SolutionExtractionError,
)
from .input_validation import (
    validate_iterate_matches_problem,
    validate_num_mesh_points,
    validate_positive_integer,
    validate_positive_number,
    validate_problem_ready_for_solving,
)
from .iterate import Iterate, Solution
from .solvers import SolverOptions, get_backend
from .summary import print_constraint_values, print_solution_summary
from .transcription import (
    DerivativeProvider,
    Mesh,
    NLPAdapter,
    TranscriptionBuilder,
    TranscriptionScheme,
    build_constraint_layout,
    build_layout,
    build_mesh,
    compute_hessian_sparsity,
    compute_jacobian_sparsity,
)
from .utils.constants import (
    DEFAULT_HESSIAN_APPROXIMATION,
    DEFAULT_NUM_MESH_POINTS,
    DEFAULT_OPTIMIZATION_SOLVER,
    DEFAULT_TRANSCRIPTION_SCHEME,
)


logger = logging.getLogger(__name__)

_HESSIAN_APPROXIMATIONS = ("exact", "limited-memory")


class SolverState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    PROBLEM_ATTACHED = "problem-attached"
    SOLVED = "solved"


@dataclass(frozen=True)
class _Transcription:
    mesh: Mesh
    builder: TranscriptionBuilder
    derivatives: DerivativeProvider
    adapter: NLPAdapter


class DirectCollocationSolver:
    """
    Solve an optimal control problem by direct collocation.

    The problem is transcribed on a fixed mesh into a sparse NLP which is then
    handed to an NLP solver backend ("ipopt" through cyipopt, or "scipy").

    Args:
        problem: Problem to attach immediately (see :meth:`reset_problem`)
        transcription_scheme: "trapezoidal" or "hermite-simpson"
        optimization_solver: NLP backend name
        num_mesh_points: Number of uniformly spaced mesh points (>= 2)
        max_iterations: Iteration limit passed to the backend
        convergence_tolerance: Optimality tolerance passed to the backend
        constraint_tolerance: Constraint violation tolerance
        hessian_approximation: "exact" (derivatives of the Lagrangian) or "limited-memory"
        verbosity: 0 silences the backend; larger values enable its output
        nlp_options: Raw backend options, applied last
        show_summary: Print a solution summary after each solve

    Examples:
        >>> solver = DirectCollocationSolver(problem, num_mesh_points=50)
        >>> solution = solver.solve()
        >>> solution.success
        True
    """

    def __init__(
        self,
        problem: ProblemProtocol | None = None,
        transcription_scheme: str | TranscriptionScheme = DEFAULT_TRANSCRIPTION_SCHEME,
        optimization_solver: str = DEFAULT_OPTIMIZATION_SOLVER,
        num_mesh_points: int = DEFAULT_NUM_MESH_POINTS,
        max_iterations: int | None = None,
        convergence_tolerance: float | None = None,
        constraint_tolerance: float | None = None,
        hessian_approximation: str = DEFAULT_HESSIAN_APPROXIMATION,
        verbosity: int = 0,
        nlp_options: dict[str, object] | None = None,
        show_summary: bool = False,
    ) -> None:
        self._problem: ProblemProtocol | None = None
        self._state = SolverState.UNINITIALIZED
        self._transcription: _Transcription | None = None
        self._initial_guess: Iterate | None = None
        self._mesh_fractions: FloatArray | None = None

        self._transcription_scheme = TranscriptionScheme.from_name(transcription_scheme)
        get_backend(optimization_solver)
        self._optimization_solver = optimization_solver
        validate_num_mesh_points(num_mesh_points)
        self._num_mesh_points = num_mesh_points

        if max_iterations is not None:
            validate_positive_integer(max_iterations, "max_iterations")
        if convergence_tolerance is not None:
            validate_positive_number(convergence_tolerance, "convergence_tolerance")
        if constraint_tolerance is not None:
            validate_positive_number(constraint_tolerance, "constraint_tolerance")
        if hessian_approximation not in _HESSIAN_APPROXIMATIONS:
            raise InvalidConfigurationError(
                f"hessian_approximation must be one of {_HESSIAN_APPROXIMATIONS}, "
                f"got '{hessian_approximation}'"
            )
        self.options = SolverOptions(
            max_iterations=max_iterations,
            convergence_tolerance=convergence_tolerance,
            constraint_tolerance=constraint_tolerance,
            hessian_approximation=hessian_approximation,
            verbosity=int(verbosity),
            nlp_options=dict(nlp_options or {}),
        )
        self.show_summary = show_summary

        if problem is not None:
            self.reset_problem(problem)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def state(self) -> SolverState:
        return self._state

    @property
    def problem(self) -> ProblemProtocol | None:
        return self._problem

    @property
    def num_mesh_points(self) -> int:
        return self._num_mesh_points

    @num_mesh_points.setter
    def num_mesh_points(self, value: int) -> None:
        validate_num_mesh_points(value)
        self._num_mesh_points = value
        self._mesh_fractions = None
        self._invalidate_transcription()

    @property
    def mesh_fractions(self) -> FloatArray | None:
        """Custom normalized mesh, or ``None`` for a uniform mesh of ``num_mesh_points``."""
        return self._mesh_fractions

    @mesh_fractions.setter
    def mesh_fractions(self, fractions: NumericArrayLike | None) -> None:
        if fractions is None:
            self._mesh_fractions = None
        else:
            mesh = Mesh.from_fractions(fractions, self._transcription_scheme)
            self._mesh_fractions = mesh.fractions
            self._num_mesh_points = mesh.num_points
        self._invalidate_transcription()

    @property
    def transcription_scheme(self) -> TranscriptionScheme:
        return self._transcription_scheme

    @transcription_scheme.setter
    def transcription_scheme(self, scheme: str | TranscriptionScheme) -> None:
        self._transcription_scheme = TranscriptionScheme.from_name(scheme)
        self._invalidate_transcription()

    @property
    def optimization_solver(self) -> str:
        return self._optimization_solver

    @optimization_solver.setter
    def optimization_solver(self, name: str) -> None:
        get_backend(name)
        self._optimization_solver = name

    def _invalidate_transcription(self) -> None:
        if self._transcription is not None:
            logger.debug("Discarding cached transcription")
        self._transcription = None
        if self._state is SolverState.SOLVED:
            self._state = SolverState.PROBLEM_ATTACHED

    # ------------------------------------------------------------------
    # Problem lifecycle
    # ------------------------------------------------------------------

    def reset_problem(self, problem: ProblemProtocol | None = None) -> None:
        """
        Attach ``problem`` and clear cached state, or detach with no argument.

        An attached problem is validated and becomes immutable. Any stored
        initial guess and cached transcription are discarded in both cases.
        After detaching, the solver is uninitialized until a problem is
        attached again.

        Raises:
            InvalidConfigurationError: If the problem is incomplete or inconsistent
        """
        self._initial_guess = None
        self._transcription = None
        if problem is None:
            if self._problem is not None:
                logger.debug("Problem '%s' detached from solver", self._problem.name)
            self._problem = None
            self._state = SolverState.UNINITIALIZED
            return

        validate_problem_ready_for_solving(problem)
        lock = getattr(problem, "_lock", None)
        if callable(lock):
            lock()

        self._problem = problem
        self._state = SolverState.PROBLEM_ATTACHED
        logger.debug("Problem '%s' attached to solver", problem.name)

    def _require_problem(self, operation: str) -> ProblemProtocol:
        if self._state is SolverState.UNINITIALIZED or self._problem is None:
            raise PreconditionViolationError(
                f"{operation} requires a problem; call reset_problem(problem) first"
            )
        return self._problem

    def _get_transcription(self) -> _Transcription:
        problem = self._require_problem("Transcription")
        if self._transcription is not None:
            return self._transcription

        try:
            if self._mesh_fractions is not None:
                mesh = Mesh.from_fractions(self._mesh_fractions, self._transcription_scheme)
            else:
                mesh = build_mesh(self._num_mesh_points, self._transcription_scheme)
            layout = build_layout(problem, mesh)
            constraint_layout = build_constraint_layout(problem, mesh)
            builder = TranscriptionBuilder(problem, mesh, layout, constraint_layout)
            hessian_pattern = (
                compute_hessian_sparsity(layout)
                if self.options.hessian_approximation == "exact"
                else None
            )
            derivatives = DerivativeProvider(
                builder, compute_jacobian_sparsity(layout, constraint_layout), hessian_pattern
            )
            adapter = NLPAdapter(problem, mesh, derivatives)
        except DircolBaseError:
            raise
        except Exception as e:
            logger.error("Failed to transcribe problem '%s': %s", problem.name, str(e))
            raise DataIntegrityError(
                f"Failed to transcribe problem: {e}", "dircol problem construction error"
            ) from e

        self._transcription = _Transcription(mesh, builder, derivatives, adapter)
        logger.debug(
            "Transcribed '%s': %d variables, %d constraints",
            problem.name,
            adapter.num_variables,
            adapter.num_constraints,
        )
        return self._transcription

    # ------------------------------------------------------------------
    # Initial guesses
    # ------------------------------------------------------------------

    def set_initial_guess(self, guess: Iterate | None) -> None:
        """Store a guess used by subsequent solves; ``None`` falls back to bounds."""
        problem = self._require_problem("set_initial_guess()")
        if guess is not None:
            validate_iterate_matches_problem(guess, problem)
        self._initial_guess = guess

    def make_initial_guess_from_bounds(self) -> Iterate:
        adapter = self._get_transcription().adapter
        return adapter.decision_vector_to_iterate(adapter.initial_guess_from_bounds())

    def make_random_iterate_within_bounds(self, seed: int | None = None) -> Iterate:
        adapter = self._get_transcription().adapter
        point = adapter.random_point_within_bounds(np.random.default_rng(seed))
        return adapter.decision_vector_to_iterate(point)

    def _regrid(self, guess: Iterate, mesh: Mesh) -> Iterate:
        if mesh.is_uniform:
            return guess.interpolate(mesh.num_points)
        span = guess.time[-1] - guess.time[0]
        return guess.resample(guess.time[0] + span * mesh.fractions)

    def _decision_vector_from(self, guess: Iterate | None) -> FloatArray:
        problem = self._require_problem("Initial guess")
        transcription = self._get_transcription()
        adapter = transcription.adapter
        if guess is None:
            return adapter.initial_guess_from_bounds()
        validate_iterate_matches_problem(guess, problem)
        regridded = self._regrid(guess, transcription.mesh)
        return adapter.iterate_to_decision_vector(regridded)

    # ------------------------------------------------------------------
    # Solve
    # ------------------------------------------------------------------

    def solve(self, guess: Iterate | None = None) -> Solution:
        """
        Transcribe and solve the attached problem.

        Args:
            guess: Initial guess for this solve; defaults to the stored guess,
                then to a guess built from the bounds. Any number of time
                points >= 2 is accepted and re-gridded onto the mesh.

        Returns:
            Solution: Immutable result; check ``solution.status``

        Raises:
            PreconditionViolationError: If no problem is attached
            EvaluationError: If a problem callback fails during the solve
        """
        problem = self._require_problem("solve()")
        transcription = self._get_transcription()
        adapter = transcription.adapter
        x0 = self._decision_vector_from(guess if guess is not None else self._initial_guess)

        backend = get_backend(self._optimization_solver)
        logger.info(
            "Solving '%s' with %s: %s scheme, %d mesh points",
            problem.name,
            backend.name,
            transcription.mesh.scheme.value,
            transcription.mesh.num_points,
        )
        result = backend.solve(adapter, x0, self.options)

        try:
            solution = adapter.finalize_solution(
                result.x,
                result.status,
                result.objective,
                message=result.message,
                num_iterations=result.num_iterations,
            )
        except DataIntegrityError as e:
            raise SolutionExtractionError(
                f"Failed to extract solution: {e.message}", "dircol solution processing error"
            ) from e

        self._state = SolverState.SOLVED
        if solution.success:
            logger.info(
                "Solve of '%s' converged: objective=%.6e", problem.name, solution.objective
            )
        else:
            logger.warning(
                "Solve of '%s' did not converge: %s (%s)",
                problem.name,
                solution.status.value,
                solution.message,
            )
        if self.show_summary:
            print_solution_summary(solution)
        return solution

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def print_constraint_values(self, iterate: Iterate, stream: TextIO | None = None) -> None:
        """Print bounds and constraint violations of ``iterate`` re-gridded onto the mesh."""
        x = self._decision_vector_from(iterate)
        print_constraint_values(self._get_transcription().adapter, x, stream)

    def __repr__(self) -> str:
        problem_name = self._problem.name if self._problem is not None else None
        return (
            f"DirectCollocationSolver(problem={problem_name!r}, state={self._state.value}, "
            f"scheme={self._transcription_scheme.value}, num_mesh_points={self._num_mesh_points}, "
            f"optimization_solver={self._optimization_solver!r})"
        )
