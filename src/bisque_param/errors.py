# src/bisque_param/errors.py
"""
Failure taxonomy for parameter construction and decomposition.

Every error is raised at the first violated precondition; nothing is retried.
"""

from __future__ import annotations

from typing import Iterable


class DeconvolutionError(ValueError):
    """Base class for all parameter/dispatch failures."""


class UnsupportedInputType(DeconvolutionError, TypeError):
    """An input is absent or its shape matches none of the adapter cases."""


class MissingAnnotationKey(DeconvolutionError):
    """A configured batch or cell-type key is not among the metadata columns."""

    def __init__(self, key: str, where: str, available: Iterable[str] = ()):
        self.key = key
        self.where = where
        cols = ", ".join(map(str, available)) or "<none>"
        super().__init__(f"Annotation key '{key}' not found in {where} metadata (columns: {cols}).")


class EmptyOverlap(DeconvolutionError):
    """No batch id is shared between bulk and single-cell metadata."""


class InsufficientIndependentData(DeconvolutionError):
    """No independent bulk samples exist and none were supplied."""


class DimensionMismatch(DeconvolutionError):
    """Feature/sample axes of reference, bulk and scale factors cannot be reconciled."""


__all__ = [
    "DeconvolutionError",
    "UnsupportedInputType",
    "MissingAnnotationKey",
    "EmptyOverlap",
    "InsufficientIndependentData",
    "DimensionMismatch",
]
