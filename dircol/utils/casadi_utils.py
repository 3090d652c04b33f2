from collections.abc import Sequence
from typing import Any

import casadi as ca
import numpy as np

from dircol.exceptions import InvalidConfigurationError
from dircol.dc_types import FloatArray


def as_symbolic_column(output: Any, expected_length: int, what: str) -> ca.SX:
    """Convert a callback output into an ``expected_length`` x 1 CasADi SX column.

    Accepts CasADi SX/DM matrices (row or column), numpy arrays, scalars and
    sequences of scalar expressions.

    Args:
        output: Value returned by a user callback
        expected_length: Number of entries the callback must produce
        what: Description used in error messages (e.g. "dynamics")

    Returns:
        ca.SX: Column vector

    Raises:
        InvalidConfigurationError: The output is of an unsupported type or has
            the wrong number of entries
    """
    if output is None:
        if expected_length == 0:
            return ca.SX(0, 1)
        raise InvalidConfigurationError(
            f"{what} returned None, expected {expected_length} values", "Callback output"
        )

    if isinstance(output, ca.MX):
        raise InvalidConfigurationError(
            f"{what} returned an MX expression; build expressions from the SX inputs",
            "Callback output",
        )

    if isinstance(output, ca.SX | ca.DM):
        column = ca.SX(output)
    elif isinstance(output, np.ndarray) and output.dtype == object:
        return as_symbolic_column(list(output.reshape(-1)), expected_length, what)
    elif isinstance(output, np.ndarray):
        column = ca.SX(ca.DM(np.asarray(output, dtype=np.float64).reshape(-1, 1)))
    elif isinstance(output, int | float | np.floating | np.integer):
        column = ca.SX(float(output))
    elif isinstance(output, Sequence) and not isinstance(output, str):
        if len(output) == 0:
            column = ca.SX(0, 1)
        else:
            column = ca.vertcat(*[as_symbolic_scalar(entry, what) for entry in output])
    else:
        raise InvalidConfigurationError(
            f"Unsupported {what} output type: {type(output)}", "Callback output"
        )

    if column.is_empty() and expected_length == 0:
        return ca.SX(0, 1)
    if column.shape[1] != 1:
        if column.shape[0] == 1:
            column = column.T
        else:
            raise InvalidConfigurationError(
                f"{what} output must be a vector, got shape {column.shape}", "Callback output"
            )
    if column.shape[0] != expected_length:
        raise InvalidConfigurationError(
            f"{what} produced {column.shape[0]} values, expected {expected_length}",
            "Callback output dimension mismatch",
        )
    return column


def as_symbolic_scalar(value: Any, what: str) -> ca.SX:
    """Convert a scalar callback output (cost, vector entry) into a 1x1 SX."""
    if isinstance(value, ca.MX):
        raise InvalidConfigurationError(
            f"{what} returned an MX expression; build expressions from the SX inputs",
            "Callback output",
        )
    if isinstance(value, ca.SX | ca.DM):
        scalar = ca.SX(value)
    elif isinstance(value, int | float | np.floating | np.integer):
        scalar = ca.SX(float(value))
    elif isinstance(value, np.ndarray) and value.size == 1:
        scalar = ca.SX(float(value.reshape(-1)[0]))
    else:
        raise InvalidConfigurationError(
            f"Unsupported {what} value type: {type(value)}", "Callback output"
        )
    if scalar.numel() != 1:
        raise InvalidConfigurationError(
            f"{what} must be scalar, got shape {scalar.shape}", "Callback output"
        )
    return scalar


def casadi_to_numpy(value: ca.DM | float) -> FloatArray:
    """Flatten a numeric CasADi result into a 1-D float64 numpy array."""
    if isinstance(value, ca.DM):
        return np.asarray(value.full(), dtype=np.float64).reshape(-1, order="F")
    return np.atleast_1d(np.asarray(value, dtype=np.float64))
