from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import casadi as ca

from ..dc_types import ProblemProtocol
from ..exceptions import DataIntegrityError, DircolBaseError, EvaluationError
from ..input_validation import validate_dae_output
from ..utils.casadi_utils import as_symbolic_scalar
from .layout import ConstraintLayout, VariableLayout
from .mesh import Mesh, TranscriptionScheme


logger = logging.getLogger(__name__)

_T = TypeVar("_T")


@dataclass(frozen=True)
class TranscriptionExpressions:
    """Symbolic NLP functions of one trace, all functions of the traced decision vector."""

    objective: ca.SX
    defects: ca.SX
    path: ca.SX

    @property
    def constraints(self) -> ca.SX:
        return ca.vertcat(self.defects, self.path)


@dataclass(frozen=True)
class _EvaluationPoint:
    time: Any
    states: ca.SX
    controls: ca.SX
    dynamics: ca.SX
    path: ca.SX


class TranscriptionBuilder:
    """
    Evaluates the problem callbacks along the mesh and assembles the NLP.

    Each call to :meth:`trace` invokes the DAE callback exactly once per
    evaluation point (every mesh point, plus every interval midpoint for
    Hermite-Simpson); defects, path constraints and the integral cost share
    those results.
    """

    def __init__(
        self,
        problem: ProblemProtocol,
        mesh: Mesh,
        layout: VariableLayout,
        constraint_layout: ConstraintLayout,
    ) -> None:
        if layout.num_points != mesh.num_points or constraint_layout.num_points != mesh.num_points:
            raise DataIntegrityError(
                f"Layout built for {layout.num_points} points, mesh has {mesh.num_points}"
            )
        self.problem = problem
        self.mesh = mesh
        self.layout = layout
        self.constraint_layout = constraint_layout
        self.num_dae_evaluations = 0

    def trace(self, decision_vector: ca.SX) -> TranscriptionExpressions:
        if decision_vector.shape != (self.layout.num_variables, 1):
            raise DataIntegrityError(
                f"Decision vector has shape {decision_vector.shape}, "
                f"expected ({self.layout.num_variables}, 1)"
            )
        self.num_dae_evaluations = 0
        mesh = self.mesh
        initial_time, final_time = self.layout.time_values(decision_vector)
        duration = final_time - initial_time

        points = [
            self._evaluate_mesh_point(decision_vector, k, initial_time, duration)
            for k in range(mesh.num_points)
        ]

        defects = []
        stages = []
        for k in range(mesh.num_intervals):
            step = duration * float(mesh.interval_widths[k])
            start, end = points[k], points[k + 1]
            if mesh.scheme is TranscriptionScheme.TRAPEZOIDAL:
                defects.append(
                    end.states - start.states - step / 2.0 * (start.dynamics + end.dynamics)
                )
            else:
                stage = self._evaluate_stage(k, start, end, step, initial_time, duration)
                stages.append(stage)
                defects.append(
                    end.states
                    - start.states
                    - step / 6.0 * (start.dynamics + 4.0 * stage.dynamics + end.dynamics)
                )

        objective = self._assemble_objective(points, stages, final_time, duration)
        expressions = TranscriptionExpressions(
            objective=objective,
            defects=ca.vertcat(*defects) if defects else ca.SX(0, 1),
            path=ca.vertcat(*[point.path for point in points]),
        )
        logger.debug(
            "Traced %s transcription: %d DAE evaluations, %d constraints",
            mesh.scheme.value,
            self.num_dae_evaluations,
            expressions.constraints.shape[0],
        )
        return expressions

    # ------------------------------------------------------------------
    # Evaluation points
    # ------------------------------------------------------------------

    def _evaluate_mesh_point(
        self, decision_vector: ca.SX, point: int, initial_time: Any, duration: Any
    ) -> _EvaluationPoint:
        fraction = float(self.mesh.fractions[point])
        time = initial_time + duration * fraction
        states = decision_vector[self.layout.state_slice(point)]
        controls = decision_vector[self.layout.control_slice(point)]
        dynamics, path = self._call_dae(time, states, controls, point, fraction)
        return _EvaluationPoint(time, states, controls, dynamics, path)

    def _evaluate_stage(
        self,
        interval: int,
        start: _EvaluationPoint,
        end: _EvaluationPoint,
        step: Any,
        initial_time: Any,
        duration: Any,
    ) -> _EvaluationPoint:
        fraction = float(self.mesh.stage_fractions[interval])
        time = initial_time + duration * fraction
        states = 0.5 * (start.states + end.states) + step / 8.0 * (start.dynamics - end.dynamics)
        controls = 0.5 * (start.controls + end.controls)
        dynamics, path = self._call_dae(time, states, controls, interval, fraction, midpoint=True)
        return _EvaluationPoint(time, states, controls, dynamics, path)

    def _call_dae(
        self,
        time: Any,
        states: ca.SX,
        controls: ca.SX,
        point: int,
        fraction: float,
        midpoint: bool = False,
    ) -> tuple[ca.SX, ca.SX]:
        self.num_dae_evaluations += 1
        output = self._call_user(
            lambda: self.problem.calc_differential_algebraic_equations(time, states, controls),
            "DAE callback",
            point,
            fraction,
            midpoint,
        )
        return validate_dae_output(
            output, self.problem.num_states, self.problem.num_path_constraints
        )

    def _call_user(
        self,
        call: Callable[[], _T],
        what: str,
        point: int,
        fraction: float,
        midpoint: bool = False,
    ) -> _T:
        try:
            return call()
        except DircolBaseError:
            raise
        except Exception as e:
            where = f"midpoint of interval {point}" if midpoint else f"mesh point {point}"
            raise EvaluationError(
                f"{what} of problem '{self.problem.name}' raised {type(e).__name__}: {e}",
                f"{where}, normalized time {fraction:.6g}",
                mesh_point=point,
                time=fraction,
            ) from e

    # ------------------------------------------------------------------
    # Objective
    # ------------------------------------------------------------------

    def _assemble_objective(
        self,
        points: list[_EvaluationPoint],
        stages: list[_EvaluationPoint],
        final_time: Any,
        duration: Any,
    ) -> ca.SX:
        problem = self.problem
        objective = ca.SX(0.0)

        if problem.has_endpoint_cost():
            last = len(points) - 1
            endpoint = self._call_user(
                lambda: problem.calc_endpoint_cost(final_time, points[-1].states),
                "Endpoint cost",
                last,
                1.0,
            )
            objective = objective + as_symbolic_scalar(endpoint, "endpoint cost")

        if problem.has_integral_cost():
            mesh = self.mesh
            samples = [
                (weight, point, k, float(mesh.fractions[k]), False)
                for k, (weight, point) in enumerate(zip(mesh.point_weights, points, strict=True))
            ]
            samples += [
                (weight, stage, k, float(mesh.stage_fractions[k]), True)
                for k, (weight, stage) in enumerate(zip(mesh.stage_weights, stages, strict=True))
            ]
            integral = ca.SX(0.0)
            for weight, sample, index, fraction, midpoint in samples:
                integrand = self._call_user(
                    lambda sample=sample: problem.calc_integral_cost(
                        sample.time, sample.states, sample.controls
                    ),
                    "Integral cost",
                    index,
                    fraction,
                    midpoint,
                )
                integral = integral + float(weight) * as_symbolic_scalar(integrand, "integral cost")
            objective = objective + duration * integral

        return objective
