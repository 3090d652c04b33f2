"""
Direct collocation transcription: mesh, variable layout, constraint assembly,
sparsity, derivatives and the generic NLP adapter.
"""

from .builder import TranscriptionBuilder, TranscriptionExpressions
from .derivatives import DerivativeContext, DerivativeProvider
from .layout import (
    ConstraintKind,
    ConstraintLayout,
    ConstraintLocation,
    VariableKind,
    VariableLayout,
    VariableLocation,
    build_constraint_layout,
    build_layout,
)
from .mesh import Mesh, TranscriptionScheme, build_mesh
from .nlp_adapter import NLPAdapter, NLPBounds
from .sparsity import SparsityPattern, compute_hessian_sparsity, compute_jacobian_sparsity


__all__ = [
    "ConstraintKind",
    "ConstraintLayout",
    "ConstraintLocation",
    "DerivativeContext",
    "DerivativeProvider",
    "Mesh",
    "NLPAdapter",
    "NLPBounds",
    "SparsityPattern",
    "TranscriptionBuilder",
    "TranscriptionExpressions",
    "TranscriptionScheme",
    "VariableKind",
    "VariableLayout",
    "VariableLocation",
    "build_constraint_layout",
    "build_layout",
    "build_mesh",
    "compute_hessian_sparsity",
    "compute_jacobian_sparsity",
]
