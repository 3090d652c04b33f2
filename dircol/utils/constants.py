from typing import TypeAlias


_Tolerance: TypeAlias = float

ZERO_TOLERANCE: _Tolerance = 1e-12
"""Tolerance for considering floating point values as zero."""

MESH_TOLERANCE: _Tolerance = 1e-9
"""Minimum spacing required between mesh points."""

MINIMUM_MESH_POINTS: int = 2
"""A mesh needs at least one interval."""

DEFAULT_NUM_MESH_POINTS: int = 20
"""Default number of mesh points used by the direct collocation solver."""

DEFAULT_TRANSCRIPTION_SCHEME: str = "trapezoidal"
"""Default collocation scheme."""

DEFAULT_OPTIMIZATION_SOLVER: str = "ipopt"
"""Default NLP backend."""

DEFAULT_HESSIAN_APPROXIMATION: str = "exact"
"""Exact Lagrangian Hessian from the AD backend, or 'limited-memory'."""

CSV_FLOAT_FORMAT: str = "%.17g"
"""17 significant digits round-trip any IEEE double."""

TIME_COLUMN_NAME: str = "time"
"""Name of the first column of the trajectory CSV format."""

RESERVED_VARIABLE_NAMES: frozenset[str] = frozenset({TIME_COLUMN_NAME})
"""Names that cannot be used for states, controls or path constraints."""

DEFAULT_IPOPT_OPTIONS: dict[str, object] = {
    "print_level": 0,
    "sb": "yes",
}
"""IPOPT options set through cyipopt unless overridden."""

DEFAULT_SCIPY_OPTIONS: dict[str, object] = {
    "maxiter": 3000,
    "verbose": 0,
}
"""Options passed to scipy.optimize.minimize(method='trust-constr')."""

CSV_FORBIDDEN_NAME_CHARACTERS: str = ',"\r\n'
"""Characters that cannot appear in variable names; the CSV header is unquoted."""
