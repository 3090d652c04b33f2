from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, TextIO

import numpy as np


if TYPE_CHECKING:
    from .dc_types import FloatArray, ProblemProtocol
    from .iterate import Solution
    from .transcription.nlp_adapter import NLPAdapter


logger = logging.getLogger(__name__)


def _violation(values: FloatArray, lower: FloatArray, upper: FloatArray) -> FloatArray:
    return np.maximum(np.maximum(lower - values, values - upper), 0.0)


def _print_bounded_rows(
    title: str,
    names: list[str],
    values: FloatArray,
    lower: FloatArray,
    upper: FloatArray,
    stream: TextIO,
) -> None:
    """One line per row: value range over the mesh, tightest bounds, worst violation."""
    print(f"┌─ {title}", file=stream)
    if not names:
        print("│  (none)", file=stream)
        print("│", file=stream)
        return
    print(
        f"│  {'name':<20} {'min':>13} {'max':>13} {'lower':>13} {'upper':>13} {'violation':>11}",
        file=stream,
    )
    for i, name in enumerate(names):
        violation = _violation(values[i], lower[i], upper[i])
        worst = int(np.argmax(violation)) if violation.size else 0
        marker = f"  <- point {worst}" if violation.size and violation[worst] > 0 else ""
        print(
            f"│  {name:<20} {np.min(values[i]):>13.6g} {np.max(values[i]):>13.6g} "
            f"{np.max(lower[i]):>13.6g} {np.min(upper[i]):>13.6g} "
            f"{(violation.max() if violation.size else 0.0):>11.3e}{marker}",
            file=stream,
        )
    print("│", file=stream)


def print_constraint_values(
    adapter: NLPAdapter, x: FloatArray, stream: TextIO | None = None
) -> None:
    """
    Print bounds and constraint values of the transcribed problem at ``x``.

    Lists the time variables, variable bounds per state/control over the mesh,
    the largest differential defect per state and path constraint values, each
    with its worst violation.

    Args:
        adapter: NLP adapter of the transcription
        x: Decision vector
        stream: Output stream (default: ``sys.stdout``)
    """
    stream = stream if stream is not None else sys.stdout
    problem: ProblemProtocol = adapter.problem
    layout = adapter.layout
    constraint_layout = adapter.constraint_layout
    bounds = adapter.get_bounds()
    x = np.asarray(x, dtype=np.float64).reshape(-1)

    print("\n" + "=" * 80, file=stream)
    print(f"CONSTRAINT VALUES: {problem.name}", file=stream)
    print(
        f"{adapter.mesh.scheme.value} mesh, {layout.num_points} points, "
        f"{adapter.num_variables} variables, {adapter.num_constraints} constraints",
        file=stream,
    )
    print("=" * 80, file=stream)

    print("┌─ TIME", file=stream)
    initial_time, final_time = layout.time_values(x)
    for label, value, time_bounds, free in (
        ("initial_time", initial_time, layout.initial_time_bounds, layout.has_free_initial_time),
        ("final_time", final_time, layout.final_time_bounds, layout.has_free_final_time),
    ):
        kind = "free" if free else "fixed"
        print(f"│  {label:<20} {float(value):>13.6g}  {time_bounds} ({kind})", file=stream)
    print("│", file=stream)

    num_points = layout.num_points
    states, controls, _, _ = layout.unpack(x)
    state_positions = np.array(
        [[layout.state_slice(k).start + i for k in range(num_points)] for i in range(layout.num_states)],
        dtype=np.int64,
    ).reshape(layout.num_states, num_points)
    control_positions = np.array(
        [
            [layout.control_slice(k).start + i for k in range(num_points)]
            for i in range(layout.num_controls)
        ],
        dtype=np.int64,
    ).reshape(layout.num_controls, num_points)

    _print_bounded_rows(
        "STATE BOUNDS",
        problem.get_state_names(),
        states,
        bounds.variable_lower[state_positions],
        bounds.variable_upper[state_positions],
        stream,
    )
    _print_bounded_rows(
        "CONTROL BOUNDS",
        problem.get_control_names(),
        controls,
        bounds.variable_lower[control_positions],
        bounds.variable_upper[control_positions],
        stream,
    )

    constraints = adapter.eval_constraints(x)
    num_defects = constraint_layout.num_defects
    print("┌─ DIFFERENTIAL DEFECTS", file=stream)
    if constraint_layout.num_intervals and constraint_layout.num_states:
        defects = constraints[:num_defects].reshape(
            constraint_layout.num_intervals, constraint_layout.num_states
        )
        for i, name in enumerate(problem.get_state_names()):
            magnitudes = np.abs(defects[:, i])
            worst = int(np.argmax(magnitudes))
            print(
                f"│  {name:<20} max |defect| {magnitudes[worst]:>11.3e} on interval {worst}",
                file=stream,
            )
    print("│", file=stream)

    path_shape = (constraint_layout.num_points, constraint_layout.num_path_constraints)
    path_values = constraints[num_defects:].reshape(path_shape).T
    _print_bounded_rows(
        "PATH CONSTRAINTS",
        problem.get_path_constraint_names(),
        path_values,
        bounds.constraint_lower[num_defects:].reshape(path_shape).T,
        bounds.constraint_upper[num_defects:].reshape(path_shape).T,
        stream,
    )
    print("=" * 80 + "\n", file=stream)


def print_solution_summary(solution: Solution, stream: TextIO | None = None) -> None:
    """Present solver outcome and trajectory ranges of a solution."""
    stream = stream if stream is not None else sys.stdout
    print("\n" + "=" * 80, file=stream)
    print("DIRCOL SOLUTION DATA", file=stream)
    print("=" * 80, file=stream)

    print("┌─ SOLUTION STATUS", file=stream)
    print(f"│  Status: {solution.status.value}", file=stream)
    print(f"│  Success: {solution.success}", file=stream)
    print(f"│  Message: {solution.message}", file=stream)
    print(f"│  Objective: {solution.objective:.12e}", file=stream)
    iterations = solution.num_iterations if solution.num_iterations is not None else "n/a"
    print(f"│  Iterations: {iterations}", file=stream)
    print("│", file=stream)

    print("┌─ TRAJECTORIES", file=stream)
    if solution.num_points:
        print(
            f"│  Time: [{solution.time[0]:.6g}, {solution.time[-1]:.6g}] "
            f"({solution.num_points} points)",
            file=stream,
        )
    for kind, names, values in (
        ("state", solution.state_names, solution.states),
        ("control", solution.control_names, solution.controls),
    ):
        for name, row in zip(names, values, strict=True):
            if row.size:
                print(
                    f"│  {kind:<8} {name:<20} [{np.min(row):.6g}, {np.max(row):.6g}]",
                    file=stream,
                )
    print("│", file=stream)
    print("=" * 80, file=stream)
    print("END SOLUTION DATA", file=stream)
    print("=" * 80 + "\n", file=stream)
