# dircol/utils/__init__.py
"""
Utility functions shared by the transcription and the solver backends.
"""

from .casadi_utils import as_symbolic_column, as_symbolic_scalar, casadi_to_numpy


__all__ = [
    "as_symbolic_column",
    "as_symbolic_scalar",
    "casadi_to_numpy",
]
