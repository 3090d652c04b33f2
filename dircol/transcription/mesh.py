from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

import numpy as np

from ..dc_types import FloatArray, NumericArrayLike
from ..exceptions import InvalidConfigurationError
from ..input_validation import validate_mesh_fractions, validate_num_mesh_points
from ..utils.constants import ZERO_TOLERANCE


logger = logging.getLogger(__name__)


class TranscriptionScheme(enum.Enum):
    """Collocation rule used to turn the dynamics into algebraic defects."""

    TRAPEZOIDAL = "trapezoidal"
    HERMITE_SIMPSON = "hermite-simpson"

    @classmethod
    def from_name(cls, name: str | TranscriptionScheme) -> TranscriptionScheme:
        if isinstance(name, TranscriptionScheme):
            return name
        try:
            return cls(str(name).strip().lower().replace("_", "-"))
        except ValueError as e:
            valid = [scheme.value for scheme in cls]
            raise InvalidConfigurationError(
                f"Unknown transcription scheme '{name}'. Valid schemes: {valid}"
            ) from e

    @property
    def uses_midpoints(self) -> bool:
        return self is TranscriptionScheme.HERMITE_SIMPSON


@dataclass(frozen=True, eq=False)
class Mesh:
    """
    Normalized time grid on [0, 1] with its quadrature weights.

    Physical times follow from ``t = t0 + (tf - t0) * fraction``. For the
    Hermite-Simpson scheme every interval also carries a midpoint stage.
    Weights are normalized so that ``sum(point_weights) + sum(stage_weights) == 1``;
    multiply by the duration to integrate in physical time.
    """

    fractions: FloatArray
    scheme: TranscriptionScheme

    def __post_init__(self) -> None:
        fractions = np.array(self.fractions, dtype=np.float64)
        validate_mesh_fractions(fractions)
        fractions[0], fractions[-1] = 0.0, 1.0
        fractions.flags.writeable = False
        object.__setattr__(self, "fractions", fractions)
        object.__setattr__(self, "scheme", TranscriptionScheme.from_name(self.scheme))

    @classmethod
    def from_fractions(
        cls, fractions: NumericArrayLike, scheme: str | TranscriptionScheme
    ) -> Mesh:
        """Non-uniform mesh from explicit normalized fractions (first 0, last 1)."""
        return cls(np.asarray(fractions, dtype=np.float64), TranscriptionScheme.from_name(scheme))

    @property
    def num_points(self) -> int:
        return int(self.fractions.size)

    @property
    def num_intervals(self) -> int:
        return self.num_points - 1

    @property
    def interval_widths(self) -> FloatArray:
        return np.diff(self.fractions)

    @property
    def stage_fractions(self) -> FloatArray:
        """Interval midpoints (empty for the trapezoidal scheme)."""
        if not self.scheme.uses_midpoints:
            return np.array([], dtype=np.float64)
        return 0.5 * (self.fractions[:-1] + self.fractions[1:])

    @property
    def is_uniform(self) -> bool:
        widths = self.interval_widths
        return bool(np.allclose(widths, widths[0], rtol=0.0, atol=ZERO_TOLERANCE))

    @property
    def num_evaluation_points(self) -> int:
        """Points at which the dynamics are evaluated per trace."""
        return self.num_points + self.stage_fractions.size

    @property
    def point_weights(self) -> FloatArray:
        widths = self.interval_widths
        weights = np.zeros(self.num_points, dtype=np.float64)
        end_weight = 0.5 if self.scheme is TranscriptionScheme.TRAPEZOIDAL else 1.0 / 6.0
        weights[:-1] += end_weight * widths
        weights[1:] += end_weight * widths
        return weights

    @property
    def stage_weights(self) -> FloatArray:
        if not self.scheme.uses_midpoints:
            return np.array([], dtype=np.float64)
        return (4.0 / 6.0) * self.interval_widths

    def __repr__(self) -> str:
        return (
            f"Mesh(scheme={self.scheme.value}, num_points={self.num_points}, "
            f"uniform={self.is_uniform})"
        )


def build_mesh(
    num_points: int, scheme: str | TranscriptionScheme = TranscriptionScheme.TRAPEZOIDAL
) -> Mesh:
    """Uniform mesh of ``num_points`` points on [0, 1]."""
    validate_num_mesh_points(num_points)
    mesh = Mesh(np.linspace(0.0, 1.0, num_points), TranscriptionScheme.from_name(scheme))
    logger.debug("Built %s", mesh)
    return mesh
