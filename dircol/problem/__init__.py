"""
Problem definition package for optimal control problems.
"""

from ..dc_types import DAEOutput, ProblemProtocol
from .bounds import Bounds
from .core_problem import OptimalControlProblem


__all__ = [
    "Bounds",
    "DAEOutput",
    "OptimalControlProblem",
    "ProblemProtocol",
]
