# test_iterate.py
"""
Tests for trajectory iterates: validation, interpolation and the CSV format.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from dircol import (
    DataIntegrityError,
    InvalidConfigurationError,
    Iterate,
    IterateFormatError,
    Solution,
    SolutionStatus,
)


def _sample_iterate(num_points=5):
    time = np.linspace(0.0, 2.0, num_points)
    states = np.vstack([np.sin(time), time**3])
    controls = np.exp(-time).reshape(1, -1)
    return Iterate(time, states, controls, ["x", "v"], ["F"])


class TestIterateConstruction:
    def test_accessors(self):
        iterate = _sample_iterate()
        assert iterate.num_points == 5
        assert iterate.num_states == 2
        assert iterate.num_controls == 1
        assert_allclose(iterate["v"], iterate.states[1])
        assert_allclose(iterate["F"], iterate.controls[0])
        with pytest.raises(KeyError):
            iterate["y"]

    def test_column_count_mismatch(self):
        with pytest.raises(DataIntegrityError):
            Iterate([0.0, 1.0, 2.0], [[0.0, 1.0]], None, ["x"], [])

    def test_name_count_mismatch(self):
        with pytest.raises(DataIntegrityError):
            Iterate([0.0, 1.0], [[0.0, 1.0], [2.0, 3.0]], None, ["x"], [])

    def test_duplicate_names(self):
        with pytest.raises(DataIntegrityError, match="Duplicate"):
            Iterate([0.0, 1.0], [[0.0, 1.0]], [[0.0, 1.0]], ["x"], ["x"])

    def test_decreasing_time(self):
        with pytest.raises(DataIntegrityError, match="non-decreasing"):
            Iterate([0.0, 2.0, 1.0], [[0.0, 1.0, 2.0]], None, ["x"], [])

    @pytest.mark.parametrize("name", ["pos,x", "q\"1", "a\nb", "a\rb"])
    def test_names_must_fit_csv_header(self, name):
        with pytest.raises(DataIntegrityError, match="forbidden characters"):
            Iterate([0.0, 1.0], [[1.0, 2.0]], [[3.0, 4.0]], [name], ["F"])
        with pytest.raises(DataIntegrityError, match="forbidden characters"):
            Iterate([0.0, 1.0], [[1.0, 2.0]], [[3.0, 4.0]], ["x"], [name])

    def test_no_controls(self):
        iterate = Iterate([0.0, 1.0], [[0.0, 1.0]], None, ["x"], None)
        assert iterate.controls.shape == (0, 2)

    def test_to_dataframe(self):
        frame = _sample_iterate(3).to_dataframe()
        assert list(frame.columns) == ["time", "x", "v", "F"]
        assert frame.shape == (3, 4)


class TestIterateInterpolation:
    def test_same_count_returns_independent_copy(self):
        iterate = _sample_iterate()
        copy = iterate.interpolate(5)
        assert copy == iterate
        copy.states[0, 0] = 42.0
        assert iterate.states[0, 0] != 42.0

    def test_knot_values_preserved_through_refinement(self):
        iterate = _sample_iterate(5)
        refined = iterate.interpolate(9)
        assert refined.num_points == 9
        assert_allclose(refined.time[[0, -1]], [0.0, 2.0])
        restored = refined.interpolate(5)
        assert_allclose(restored.time, iterate.time, rtol=0, atol=1e-14)
        assert_allclose(restored.states, iterate.states, rtol=0, atol=1e-14)
        assert_allclose(restored.controls, iterate.controls, rtol=0, atol=1e-14)

    def test_linear_between_knots(self):
        iterate = Iterate([0.0, 1.0], [[0.0, 10.0]], [[4.0, 2.0]], ["x"], ["u"])
        refined = iterate.interpolate(5)
        assert_allclose(refined.time, [0.0, 0.25, 0.5, 0.75, 1.0])
        assert_allclose(refined["x"], [0.0, 2.5, 5.0, 7.5, 10.0])
        assert_allclose(refined["u"], [4.0, 3.5, 3.0, 2.5, 2.0])

    @pytest.mark.parametrize("num_points", [0, 1])
    def test_too_few_target_points(self, num_points):
        with pytest.raises(InvalidConfigurationError):
            _sample_iterate().interpolate(num_points)

    def test_single_point_source(self):
        iterate = Iterate([0.0], [[1.0]], None, ["x"], [])
        with pytest.raises(DataIntegrityError):
            iterate.interpolate(3)

    def test_resample_outside_span(self):
        with pytest.raises(InvalidConfigurationError):
            _sample_iterate().resample([0.0, 3.0])

    def test_resample_non_uniform(self):
        iterate = Iterate([0.0, 1.0], [[0.0, 1.0]], None, ["x"], [])
        resampled = iterate.resample([0.0, 0.1, 1.0])
        assert_allclose(resampled["x"], [0.0, 0.1, 1.0])


class TestIterateCSV:
    def test_write_format(self, tmp_path):
        path = tmp_path / "trajectory.csv"
        Iterate([0.0, 0.5], [[0.1, 0.2]], [[3.0, 4.0]], ["x"], ["u"]).write(path)
        lines = path.read_text().splitlines()
        assert lines[0] == "num_states=1"
        assert lines[1] == "num_controls=1"
        assert lines[2] == "time,x,u"
        assert lines[3] == "0,0.10000000000000001,3"
        assert len(lines) == 5

    def test_write_then_read_is_bit_exact(self, tmp_path):
        path = tmp_path / "trajectory.csv"
        original = _sample_iterate(7)
        original.write(path)
        loaded = Iterate.read(path)
        assert loaded.state_names == ["x", "v"]
        assert loaded.control_names == ["F"]
        assert_array_equal(loaded.time, original.time)
        assert_array_equal(loaded.states, original.states)
        assert_array_equal(loaded.controls, original.controls)

    def test_unusual_names_read_back(self, tmp_path):
        path = tmp_path / "trajectory.csv"
        original = Iterate(
            [0.0, 1.0], [[1.0, 2.0]], [[3.0, 4.0]], ["pos x;1"], ["F'(t)"]
        )
        original.write(path)
        assert Iterate.read(path) == original

    def test_write_leaves_no_temporary_files(self, tmp_path):
        _sample_iterate().write(tmp_path / "out.csv")
        assert [p.name for p in tmp_path.iterdir()] == ["out.csv"]

    def test_overwrite_existing_file(self, tmp_path):
        path = tmp_path / "out.csv"
        path.write_text("stale")
        _sample_iterate(3).write(path)
        assert Iterate.read(path).num_points == 3

    @pytest.mark.parametrize(
        "content, line",
        [
            ("num_state=1\nnum_controls=0\ntime,x\n0,1\n", 1),
            ("num_states=1\nnum_controls=x\ntime,x\n0,1\n", 2),
            ("num_states=1\nnum_controls=1\ntime,x\n0,1\n", 3),
            ("num_states=1\nnum_controls=0\nt,x\n0,1\n", 3),
            ("num_states=1\nnum_controls=0\ntime,x\n0,1\n1,2,3\n", 5),
            ("num_states=1\nnum_controls=1\ntime,x,u\n0,1,2\n1,abc,3\n", 5),
        ],
    )
    def test_malformed_files_report_line(self, tmp_path, content, line):
        path = tmp_path / "bad.csv"
        path.write_text(content)
        with pytest.raises(IterateFormatError) as excinfo:
            Iterate.read(path)
        assert excinfo.value.line == line
        assert f"line {line}" in str(excinfo.value)

    def test_missing_header(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("num_states=0\nnum_controls=0\n")
        with pytest.raises(IterateFormatError) as excinfo:
            Iterate.read(path)
        assert excinfo.value.line == 3


class TestSolution:
    def _solution(self):
        return Solution(
            [0.0, 1.0],
            [[0.0, 1.0]],
            [[1.0, 1.0]],
            ["x"],
            ["u"],
            status=SolutionStatus.CONVERGED,
            objective=1.0,
            message="Solve_Succeeded",
            num_iterations=3,
        )

    def test_success_flag(self):
        solution = self._solution()
        assert solution.success
        assert solution.final_time == 1.0

    def test_attributes_cannot_be_reassigned(self):
        solution = self._solution()
        with pytest.raises(AttributeError):
            solution.objective = 0.0
        with pytest.raises(AttributeError):
            solution.states = np.zeros((1, 2))

    def test_names_cannot_be_mutated(self):
        solution = self._solution()
        with pytest.raises(AttributeError):
            solution.state_names.append("ghost")
        with pytest.raises(TypeError):
            solution.control_names[0] = "renamed"
        assert list(solution.state_names) == ["x"]
        assert list(solution.control_names) == ["u"]

    def test_equal_to_iterate_with_same_data(self):
        solution = self._solution()
        assert solution.copy() == solution
        assert type(solution.copy().state_names) is list

    def test_arrays_are_read_only(self):
        solution = self._solution()
        with pytest.raises(ValueError):
            solution.states[0, 0] = 5.0

    def test_interpolate_returns_plain_iterate(self):
        refined = self._solution().interpolate(3)
        assert type(refined) is Iterate
        refined.states[0, 0] = 5.0
        assert type(self._solution().copy()) is Iterate

    def test_not_converged_is_not_success(self):
        solution = Solution(
            [0.0, 1.0], [[0.0, 1.0]], None, ["x"], [], SolutionStatus.ITERATION_LIMIT, 2.0
        )
        assert not solution.success
