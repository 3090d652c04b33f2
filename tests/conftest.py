# conftest.py
"""
Shared problems and transcription helpers for the dircol test suite.
"""

import numpy as np
import pytest

from dircol import DAEOutput, OptimalControlProblem
from dircol.transcription import (
    DerivativeProvider,
    NLPAdapter,
    TranscriptionBuilder,
    build_constraint_layout,
    build_layout,
    build_mesh,
    compute_hessian_sparsity,
    compute_jacobian_sparsity,
)


MASS = 10.0
MAX_FORCE = 10.0


class SlidingMass(OptimalControlProblem):
    """Minimum-time point-to-point move of a mass; F = m a enforced as a path constraint."""

    def __init__(self):
        super().__init__("Sliding mass")
        self.set_time(initial=0.0, final=(0.0, 10.0))
        self.add_state("x", bounds=(0, 1), initial=0, final=1)
        self.add_state("u", bounds=(-100, 100), initial=0, final=0)
        self.add_control("a", bounds=(-100, 100))
        self.add_control("F", bounds=(-MAX_FORCE, MAX_FORCE))
        self.add_path_constraint("F=ma", bounds=0.0)

    def calc_differential_algebraic_equations(self, time, states, controls):
        return DAEOutput(
            dynamics=[states[1], controls[0]],
            path=[controls[1] - MASS * controls[0]],
        )

    def calc_endpoint_cost(self, final_time, final_states):
        return final_time


class CountingDoubleIntegrator(OptimalControlProblem):
    """x' = u, u' = a on [0, 1], minimize the integral of a^2; counts DAE calls."""

    def __init__(self, fail_on_call=None):
        super().__init__("Double integrator")
        self.set_time(initial=0.0, final=1.0)
        self.add_state("x")
        self.add_state("u")
        self.add_control("a")
        self.dae_calls = 0
        self.fail_on_call = fail_on_call

    def calc_differential_algebraic_equations(self, time, states, controls):
        self.dae_calls += 1
        if self.fail_on_call is not None and self.dae_calls == self.fail_on_call:
            raise ValueError("model blew up")
        return DAEOutput(dynamics=[states[1], controls[0]])

    def calc_integral_cost(self, time, states, controls):
        return controls[0] ** 2


def make_integrator_problem(name="Integrator"):
    """x' = u, x(0) = 0, x(1) = 1, minimize the integral of u^2: optimum u = 1."""
    problem = OptimalControlProblem(name)
    problem.set_time(initial=0.0, final=1.0)
    problem.add_state("x", initial=0.0, final=1.0)
    problem.add_control("u")
    problem.set_dynamics(lambda t, x, u: DAEOutput(dynamics=[u[0]]))
    problem.set_integral_cost(lambda t, x, u: u[0] ** 2)
    return problem


def accelerate_only_trajectory(time):
    """Exact solution of x' = u, u' = a with a = 1 from rest: x = t^2/2, u = t."""
    states = np.vstack([0.5 * time**2, time])
    controls = np.ones((1, time.size))
    return states, controls


@pytest.fixture
def sliding_mass():
    return SlidingMass()


@pytest.fixture
def integrator_problem():
    return make_integrator_problem()


@pytest.fixture
def make_adapter():
    """Build the full transcription stack for a problem without attaching it to a solver."""

    def _make(problem, num_points, scheme="trapezoidal", exact_hessian=True):
        mesh = build_mesh(num_points, scheme)
        layout = build_layout(problem, mesh)
        constraint_layout = build_constraint_layout(problem, mesh)
        builder = TranscriptionBuilder(problem, mesh, layout, constraint_layout)
        derivatives = DerivativeProvider(
            builder,
            compute_jacobian_sparsity(layout, constraint_layout),
            compute_hessian_sparsity(layout) if exact_hessian else None,
        )
        return NLPAdapter(problem, mesh, derivatives)

    return _make
