# test_mesh_and_layout.py
"""
Tests for the collocation mesh and the decision-variable / constraint layout.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from dircol import InvalidConfigurationError, OptimalControlProblem
from dircol.transcription import (
    ConstraintKind,
    Mesh,
    TranscriptionScheme,
    VariableKind,
    build_constraint_layout,
    build_layout,
    build_mesh,
)


class TestMesh:
    def test_uniform_mesh_fractions(self):
        mesh = build_mesh(5)
        assert mesh.num_points == 5
        assert mesh.num_intervals == 4
        assert mesh.scheme is TranscriptionScheme.TRAPEZOIDAL
        assert mesh.is_uniform
        assert_allclose(mesh.fractions, [0.0, 0.25, 0.5, 0.75, 1.0])

    @pytest.mark.parametrize("num_points", [0, 1, -3])
    def test_too_few_points_rejected(self, num_points):
        with pytest.raises(InvalidConfigurationError):
            build_mesh(num_points)

    def test_non_integer_point_count_rejected(self):
        with pytest.raises(InvalidConfigurationError):
            build_mesh(4.0)

    def test_unknown_scheme_rejected(self):
        with pytest.raises(InvalidConfigurationError, match="Unknown transcription scheme"):
            build_mesh(5, "euler")

    def test_scheme_names_are_normalized(self):
        assert TranscriptionScheme.from_name("Hermite_Simpson") is TranscriptionScheme.HERMITE_SIMPSON

    @pytest.mark.parametrize("scheme", ["trapezoidal", "hermite-simpson"])
    def test_quadrature_weights_sum_to_one(self, scheme):
        mesh = Mesh.from_fractions([0.0, 0.1, 0.35, 0.7, 1.0], scheme)
        total = mesh.point_weights.sum() + mesh.stage_weights.sum()
        assert total == pytest.approx(1.0, abs=1e-14)

    def test_hermite_simpson_stage_points(self):
        mesh = build_mesh(3, "hermite-simpson")
        assert_allclose(mesh.stage_fractions, [0.25, 0.75])
        assert mesh.num_evaluation_points == 5
        # Simpson: h/6 at each end, 4h/6 at the midpoint
        assert_allclose(mesh.point_weights, [0.5 / 6, 1.0 / 6, 0.5 / 6])
        assert_allclose(mesh.stage_weights, [2.0 / 6, 2.0 / 6])

    def test_trapezoidal_has_no_stage_points(self):
        mesh = build_mesh(4)
        assert mesh.stage_fractions.size == 0
        assert mesh.num_evaluation_points == 4

    def test_non_uniform_mesh(self):
        mesh = Mesh.from_fractions([0.0, 0.2, 1.0], "trapezoidal")
        assert not mesh.is_uniform
        assert_allclose(mesh.interval_widths, [0.2, 0.8])

    @pytest.mark.parametrize(
        "fractions",
        [
            [0.0, 0.6, 0.4, 1.0],  # not increasing
            [0.1, 0.5, 1.0],  # does not start at 0
            [0.0, 0.5, 0.9],  # does not end at 1
            [0.0, 0.5, 0.5, 1.0],  # repeated point
            [0.0, np.nan, 1.0],
        ],
    )
    def test_invalid_fractions_rejected(self, fractions):
        with pytest.raises(InvalidConfigurationError):
            Mesh.from_fractions(fractions, "trapezoidal")

    def test_end_fractions_are_exact(self):
        mesh = Mesh.from_fractions([1e-13, 0.5, 1.0 - 1e-13], "trapezoidal")
        assert mesh.fractions[0] == 0.0
        assert mesh.fractions[-1] == 1.0
        assert mesh.fractions[1] == 0.5

    def test_end_fraction_tolerance_is_absolute(self):
        with pytest.raises(InvalidConfigurationError):
            Mesh.from_fractions([0.0, 0.5, 1.0 + 1e-7], "trapezoidal")

    def test_mesh_fractions_are_read_only(self):
        mesh = build_mesh(3)
        with pytest.raises(ValueError):
            mesh.fractions[1] = 0.3


class TestVariableLayout:
    def test_free_final_time_comes_first(self, sliding_mass):
        layout = build_layout(sliding_mass, build_mesh(4))
        assert not layout.has_free_initial_time
        assert layout.has_free_final_time
        assert layout.num_time_variables == 1
        assert layout.final_time_index == 0
        assert layout.initial_time_index is None
        assert layout.num_variables == 1 + 4 * 4

    def test_states_then_controls_per_point(self, sliding_mass):
        layout = build_layout(sliding_mass, build_mesh(4))
        # point 0: x, u, a, F at 1..4; point 1 starts at 5
        assert layout.index(0, VariableKind.STATE, 0) == 1
        assert layout.index(0, VariableKind.STATE, 1) == 2
        assert layout.index(0, VariableKind.CONTROL, 0) == 3
        assert layout.index(0, VariableKind.CONTROL, 1) == 4
        assert layout.index(1, VariableKind.STATE, 0) == 5
        assert layout.index(3, VariableKind.CONTROL, 1) == 16

    def test_locate_inverts_index(self, sliding_mass):
        layout = build_layout(sliding_mass, build_mesh(4))
        for point in range(4):
            for kind, count in [(VariableKind.STATE, 2), (VariableKind.CONTROL, 2)]:
                for i in range(count):
                    location = layout.locate(layout.index(point, kind, i))
                    assert location == (kind, point, i)
        assert layout.locate(0).kind is VariableKind.FINAL_TIME

    def test_index_out_of_range(self, sliding_mass):
        layout = build_layout(sliding_mass, build_mesh(4))
        with pytest.raises(IndexError):
            layout.index(4, VariableKind.STATE, 0)
        with pytest.raises(IndexError):
            layout.index(0, VariableKind.CONTROL, 2)
        with pytest.raises(IndexError):
            layout.locate(17)

    def test_fixed_times_add_no_variables(self, integrator_problem):
        layout = build_layout(integrator_problem, build_mesh(3))
        assert layout.num_time_variables == 0
        assert layout.num_variables == 3 * 2
        assert layout.time_values(np.zeros(6)) == (0.0, 1.0)

    def test_both_times_free(self):
        problem = OptimalControlProblem("Free times")
        problem.set_time(initial=(0.0, 1.0), final=(2.0, 3.0))
        problem.add_state("x")
        layout = build_layout(problem, build_mesh(3))
        assert layout.initial_time_index == 0
        assert layout.final_time_index == 1
        assert layout.state_slice(0) == slice(2, 3)

    def test_pack_unpack(self, sliding_mass):
        layout = build_layout(sliding_mass, build_mesh(3))
        states = np.array([[0.0, 0.5, 1.0], [0.0, 1.0, 0.0]])
        controls = np.array([[1.0, 0.0, -1.0], [10.0, 0.0, -10.0]])
        x = layout.pack(states, controls, 0.0, 2.0)
        assert_allclose(x, [2.0, 0.0, 0.0, 1.0, 10.0, 0.5, 1.0, 0.0, 0.0, 1.0, 0.0, -1.0, -10.0])
        unpacked_states, unpacked_controls, initial_time, final_time = layout.unpack(x)
        assert_allclose(unpacked_states, states)
        assert_allclose(unpacked_controls, controls)
        assert (initial_time, final_time) == (0.0, 2.0)


class TestConstraintLayout:
    def test_defects_then_path_constraints(self, sliding_mass):
        constraint_layout = build_constraint_layout(sliding_mass, build_mesh(4))
        assert constraint_layout.num_defects == 3 * 2
        assert constraint_layout.num_path_rows == 4
        assert constraint_layout.num_constraints == 10
        assert constraint_layout.defect_row(1, 1) == 3
        assert constraint_layout.path_row(2, 0) == 8

    def test_locate_row(self, sliding_mass):
        constraint_layout = build_constraint_layout(sliding_mass, build_mesh(4))
        assert constraint_layout.locate_row(3) == (ConstraintKind.DEFECT, 1, 1)
        assert constraint_layout.locate_row(8) == (ConstraintKind.PATH, 2, 0)
        with pytest.raises(IndexError):
            constraint_layout.locate_row(10)
