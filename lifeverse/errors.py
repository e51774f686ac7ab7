"""Error and warning types raised by lifeverse.

Only malformed configuration is an error. Insufficient training data,
numerically degenerate fits and cancelled batches are all represented as
ordinary return values.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised before any work starts when an input bundle is malformed."""


class SingularMatrixWarning(RuntimeWarning):
    """Matrix inversion hit a zero pivot and fell back to the identity."""
