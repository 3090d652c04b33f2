# test_transcription.py
"""
Tests for the constraint builder: defects against exact solutions, objective
quadrature, DAE evaluation counts and callback failure reporting.
"""

import casadi as ca
import numpy as np
import pytest
from conftest import CountingDoubleIntegrator, accelerate_only_trajectory
from numpy.testing import assert_allclose

from dircol import DAEOutput, DataIntegrityError, EvaluationError, OptimalControlProblem
from dircol.transcription import (
    TranscriptionBuilder,
    build_constraint_layout,
    build_layout,
    build_mesh,
)


SCHEMES = ["trapezoidal", "hermite-simpson"]


def _builder(problem, num_points, scheme):
    mesh = build_mesh(num_points, scheme)
    return TranscriptionBuilder(
        problem, mesh, build_layout(problem, mesh), build_constraint_layout(problem, mesh)
    )


class TestDefects:
    @pytest.mark.parametrize("scheme", SCHEMES)
    def test_exact_trajectory_has_zero_defects(self, make_adapter, scheme):
        problem = CountingDoubleIntegrator()
        adapter = make_adapter(problem, 6, scheme)
        time = np.linspace(0.0, 1.0, 6)
        states, controls = accelerate_only_trajectory(time)
        x = adapter.layout.pack(states, controls, 0.0, 1.0)
        assert_allclose(adapter.eval_constraints(x), 0.0, atol=1e-12)

    @pytest.mark.parametrize("scheme", SCHEMES)
    def test_perturbed_state_breaks_adjacent_defects(self, make_adapter, scheme):
        adapter = make_adapter(CountingDoubleIntegrator(), 5, scheme)
        time = np.linspace(0.0, 1.0, 5)
        states, controls = accelerate_only_trajectory(time)
        states[0, 2] += 0.1
        constraints = adapter.eval_constraints(adapter.layout.pack(states, controls, 0.0, 1.0))
        layout = adapter.constraint_layout
        broken = np.flatnonzero(np.abs(constraints) > 1e-12)
        # x at point 2 enters intervals 1 and 2 only
        assert layout.defect_row(1, 0) in broken
        assert layout.defect_row(2, 0) in broken
        assert layout.defect_row(0, 0) not in broken
        assert layout.defect_row(3, 0) not in broken

    def test_trapezoidal_defect_formula(self, make_adapter):
        problem = OptimalControlProblem("Decay")
        problem.set_time(initial=0.0, final=2.0)
        problem.add_state("y")
        problem.set_dynamics(lambda t, x, u: DAEOutput(dynamics=[-x[0]]))
        problem.set_endpoint_cost(lambda tf, xf: xf[0])
        adapter = make_adapter(problem, 3, "trapezoidal")
        y = np.array([1.0, 0.5, 0.2])
        h = 1.0
        expected = [
            y[1] - y[0] - h / 2 * (-y[0] - y[1]),
            y[2] - y[1] - h / 2 * (-y[1] - y[2]),
        ]
        assert_allclose(adapter.eval_constraints(y), expected)

    def test_hermite_simpson_defect_formula(self, make_adapter):
        problem = OptimalControlProblem("Decay")
        problem.set_time(initial=0.0, final=1.0)
        problem.add_state("y")
        problem.set_dynamics(lambda t, x, u: DAEOutput(dynamics=[-x[0]]))
        problem.set_endpoint_cost(lambda tf, xf: xf[0])
        adapter = make_adapter(problem, 2, "hermite-simpson")
        y0, y1, h = 1.0, 0.4, 1.0
        f0, f1 = -y0, -y1
        y_mid = 0.5 * (y0 + y1) + h / 8 * (f0 - f1)
        expected = y1 - y0 - h / 6 * (f0 + 4 * (-y_mid) + f1)
        assert_allclose(adapter.eval_constraints(np.array([y0, y1])), [expected])

    def test_free_final_time_scales_step(self, make_adapter, sliding_mass):
        adapter = make_adapter(sliding_mass, 3, "trapezoidal")
        states = np.array([[0.0, 0.25, 1.0], [0.0, 1.0, 0.0]])
        controls = np.array([[1.0, 1.0, -1.0], [10.0, 10.0, -10.0]])
        final_time = 1.0
        x = adapter.layout.pack(states, controls, 0.0, final_time)
        constraints = adapter.eval_constraints(x)
        h = final_time / 2
        assert constraints[0] == pytest.approx(0.25 - 0.0 - h / 2 * (0.0 + 1.0))
        assert constraints[1] == pytest.approx(1.0 - 0.0 - h / 2 * (1.0 + 1.0))
        # F - m a = 0 at every point
        assert_allclose(constraints[4:], 0.0)


class TestObjective:
    @pytest.mark.parametrize("scheme", SCHEMES)
    def test_integral_cost_quadrature(self, make_adapter, scheme):
        adapter = make_adapter(CountingDoubleIntegrator(), 5, scheme)
        time = np.linspace(0.0, 1.0, 5)
        states, _ = accelerate_only_trajectory(time)
        controls = (2.0 * np.ones(5)).reshape(1, -1)
        # integral of a^2 = 4 over [0, 1]
        objective = adapter.eval_objective(adapter.layout.pack(states, controls, 0.0, 1.0))
        assert objective == pytest.approx(4.0)

    def test_simpson_integrates_cubic_exactly(self, make_adapter):
        problem = OptimalControlProblem("Cubic integrand")
        problem.set_time(initial=0.0, final=2.0)
        problem.add_state("x")
        problem.set_dynamics(lambda t, x, u: DAEOutput(dynamics=[1.0]))
        problem.set_integral_cost(lambda t, x, u: t**3)
        adapter = make_adapter(problem, 3, "hermite-simpson")
        assert adapter.eval_objective(np.array([0.0, 1.0, 2.0])) == pytest.approx(4.0)

    def test_endpoint_cost_is_final_time(self, make_adapter, sliding_mass):
        adapter = make_adapter(sliding_mass, 4)
        x = adapter.initial_guess_from_bounds()
        x[adapter.layout.final_time_index] = 3.5
        assert adapter.eval_objective(x) == pytest.approx(3.5)


class TestDAEEvaluations:
    @pytest.mark.parametrize("scheme, expected", [("trapezoidal", 7), ("hermite-simpson", 13)])
    def test_one_dae_call_per_evaluation_point(self, scheme, expected):
        problem = CountingDoubleIntegrator()
        builder = _builder(problem, 7, scheme)
        builder.trace(ca.SX.sym("w", builder.layout.num_variables))
        assert problem.dae_calls == expected
        assert builder.num_dae_evaluations == expected

    def test_counter_resets_per_trace(self):
        problem = CountingDoubleIntegrator()
        builder = _builder(problem, 4, "trapezoidal")
        w = ca.SX.sym("w", builder.layout.num_variables)
        builder.trace(w)
        builder.trace(w)
        assert builder.num_dae_evaluations == 4
        assert problem.dae_calls == 8

    def test_callback_exception_names_mesh_point(self):
        problem = CountingDoubleIntegrator(fail_on_call=3)
        builder = _builder(problem, 5, "trapezoidal")
        with pytest.raises(EvaluationError, match="model blew up") as excinfo:
            builder.trace(ca.SX.sym("w", builder.layout.num_variables))
        assert excinfo.value.mesh_point == 2
        assert excinfo.value.time == pytest.approx(0.5)
        assert isinstance(excinfo.value.__cause__, ValueError)

    def test_wrong_shape_decision_vector(self):
        builder = _builder(CountingDoubleIntegrator(), 3, "trapezoidal")
        with pytest.raises(DataIntegrityError, match="Decision vector"):
            builder.trace(ca.SX.sym("w", 2))


class TestNonFiniteValues:
    def test_nan_constraint_located(self, make_adapter):
        problem = OptimalControlProblem("Log dynamics")
        problem.set_time(initial=0.0, final=1.0)
        problem.add_state("x")
        problem.add_control("u")
        problem.set_dynamics(lambda t, x, u: DAEOutput(dynamics=[ca.log(x[0]) + u[0]]))
        problem.set_integral_cost(lambda t, x, u: u[0] ** 2)
        adapter = make_adapter(problem, 5)
        states = np.array([[1.0, 1.0, -1.0, 1.0, 1.0]])
        controls = np.zeros((1, 5))
        with pytest.raises(EvaluationError) as excinfo:
            adapter.eval_constraints(adapter.layout.pack(states, controls, 0.0, 1.0))
        assert excinfo.value.mesh_point == 1
        assert excinfo.value.time == pytest.approx(0.25)
