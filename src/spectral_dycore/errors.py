"""Exception types raised by the dynamical core."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid model configuration, detected before any time step is taken.

    Raised for invalid parameters (e.g. a semi-implicit coefficient outside
    {0, 0.5, 1}), a grid too coarse for the requested truncation, or a field
    handed to a SpectralTransform built for a different grid or truncation.
    """


class InstabilityError(FloatingPointError):
    """NaN or Inf detected in the prognostic variables during a run."""
