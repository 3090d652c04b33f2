"""
NLP solver backends for the transcribed problem.
"""

from ..exceptions import InvalidConfigurationError
from .base import NLPResult, NLPSolverBackend, SolverOptions
from .ipopt_backend import IpoptBackend
from .scipy_backend import ScipyBackend


_BACKENDS: dict[str, type[NLPSolverBackend]] = {
    IpoptBackend.name: IpoptBackend,
    ScipyBackend.name: ScipyBackend,
}


def available_backends() -> list[str]:
    return sorted(_BACKENDS)


def get_backend(name: str) -> NLPSolverBackend:
    """Instantiate the backend registered under ``name`` (case-insensitive)."""
    key = str(name).strip().lower()
    if key not in _BACKENDS:
        raise InvalidConfigurationError(
            f"Unknown optimization solver '{name}'. Available: {available_backends()}"
        )
    return _BACKENDS[key]()


__all__ = [
    "IpoptBackend",
    "NLPResult",
    "NLPSolverBackend",
    "ScipyBackend",
    "SolverOptions",
    "available_backends",
    "get_backend",
]
