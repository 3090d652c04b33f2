# test_sliding_mass.py
"""
End-to-end minimum-time solve of the sliding mass with F = m a imposed as a
path constraint, compared with the bang-bang analytic solution.
"""

import numpy as np
import pytest
from conftest import MASS, MAX_FORCE, SlidingMass
from numpy.testing import assert_allclose

from dircol import DirectCollocationSolver, Iterate, SolutionStatus


def analytic_solution(time):
    """Accelerate at F = Fmax for half the horizon, then brake at -Fmax."""
    final_time = time[-1]
    first_half = time < 0.5 * final_time
    x = np.where(first_half, 0.5 * time**2, -0.5 * (time - 1) ** 2 + (time - 1) + 0.5)
    u = np.where(first_half, time, 2 - time)
    force = np.where(first_half, MAX_FORCE, -MAX_FORCE)
    states = np.vstack([x, u])
    controls = np.vstack([force / MASS, force])
    return states, controls


class TestSlidingMassMinimumTime:
    @pytest.fixture(scope="class")
    def solution(self):
        solver = DirectCollocationSolver(
            SlidingMass(), "trapezoidal", "ipopt", num_mesh_points=50
        )
        return solver.solve()

    def test_converged(self, solution):
        assert solution.status is SolutionStatus.CONVERGED
        assert solution.success
        assert solution.num_points == 50

    def test_minimum_time(self, solution):
        assert solution.final_time == pytest.approx(2.0, abs=1e-3)
        assert solution.objective == pytest.approx(solution.final_time)

    def test_matches_analytic_solution(self, solution):
        states, controls = analytic_solution(solution.time)
        assert_allclose(solution.states, states, rtol=0, atol=1e-3)
        assert_allclose(solution.controls, controls, rtol=0, atol=1e-3)

    def test_path_constraint_satisfied(self, solution):
        assert_allclose(solution["F"], MASS * solution["a"], atol=1e-6)

    def test_written_solution_reads_back(self, solution, tmp_path):
        path = tmp_path / "sliding_mass_solution.csv"
        solution.write(path)
        loaded = Iterate.read(path)
        assert loaded.state_names == ["x", "u"]
        assert loaded.control_names == ["a", "F"]
        assert_allclose(loaded.time, solution.time, rtol=0, atol=0)
        assert_allclose(loaded.states, solution.states, rtol=0, atol=0)

    def test_warm_start_from_solution(self, solution):
        solver = DirectCollocationSolver(SlidingMass(), num_mesh_points=30)
        warm = solver.solve(solution)
        assert warm.success
        assert warm.final_time == pytest.approx(2.0, abs=1e-2)


class TestHermiteSimpson:
    def test_minimum_time(self):
        solver = DirectCollocationSolver(
            SlidingMass(), "hermite-simpson", num_mesh_points=30
        )
        solution = solver.solve()
        assert solution.success
        assert solution.final_time == pytest.approx(2.0, abs=1e-2)
        states, _ = analytic_solution(solution.time)
        assert_allclose(solution.states, states, rtol=0, atol=1e-2)
