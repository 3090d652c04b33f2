"""
dircol: direct collocation for continuous-time optimal control problems

Problems declared with :class:`OptimalControlProblem` are transcribed on a
fixed mesh (trapezoidal or Hermite-Simpson collocation) into a sparse
nonlinear program with exact derivatives, which is solved by IPOPT or SciPy.

Logging:
By default, dircol produces no output. To enable logging::

    import logging
    logging.basicConfig()
    logging.getLogger('dircol').setLevel(logging.INFO)  # Major operations
    logging.getLogger('dircol').setLevel(logging.DEBUG)  # Detailed debugging
"""

import logging

from dircol.exceptions import (
    DataIntegrityError,
    DircolBaseError,
    EvaluationError,
    InvalidConfigurationError,
    IterateFormatError,
    PreconditionViolationError,
    SolutionExtractionError,
)
from dircol.iterate import Iterate, Solution, SolutionStatus
from dircol.problem import Bounds, DAEOutput, OptimalControlProblem, ProblemProtocol
from dircol.solver import DirectCollocationSolver, SolverState
from dircol.transcription import Mesh, NLPAdapter, TranscriptionScheme, build_mesh


__all__ = [
    "Bounds",
    "DAEOutput",
    "DataIntegrityError",
    "DirectCollocationSolver",
    "DircolBaseError",
    "EvaluationError",
    "InvalidConfigurationError",
    "Iterate",
    "IterateFormatError",
    "Mesh",
    "NLPAdapter",
    "OptimalControlProblem",
    "PreconditionViolationError",
    "ProblemProtocol",
    "Solution",
    "SolutionExtractionError",
    "SolutionStatus",
    "SolverState",
    "TranscriptionScheme",
    "build_mesh",
]

__version__ = "0.1.0"


# Silent by default, user controls everything
logging.getLogger(__name__).addHandler(logging.NullHandler())
