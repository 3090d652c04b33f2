from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from ..dc_types import FloatArray
from ..iterate import SolutionStatus


if TYPE_CHECKING:
    from ..transcription.nlp_adapter import NLPAdapter


@dataclass
class SolverOptions:
    """Backend-independent solver settings; ``None`` keeps the backend default."""

    max_iterations: int | None = None
    convergence_tolerance: float | None = None
    constraint_tolerance: float | None = None
    hessian_approximation: str = "exact"
    verbosity: int = 0
    nlp_options: dict[str, object] = field(default_factory=dict)


@dataclass
class NLPResult:
    x: FloatArray
    objective: float
    status: SolutionStatus
    message: str = ""
    num_iterations: int | None = None


class NLPSolverBackend(abc.ABC):
    """Drives an :class:`NLPAdapter` from an initial point to an :class:`NLPResult`."""

    name: ClassVar[str]

    @abc.abstractmethod
    def solve(self, adapter: NLPAdapter, x0: FloatArray, options: SolverOptions) -> NLPResult:
        """
        Solve the NLP.

        Non-convergence is reported through ``NLPResult.status``.

        Raises:
            EvaluationError: If the problem callbacks fail or produce non-finite values
            InvalidConfigurationError: If the backend rejects the options
        """
