"""
Exceptions raised by the GSPCR estimators.

Configuration problems are ``ValueError`` subclasses so callers that already
catch ``ValueError`` for bad input keep working.
"""


class GSPCRConfigurationError(ValueError):
    """Invalid configuration or input data, raised before any model is fitted."""


class NoValidSolutionError(ValueError):
    """Every (threshold, Q) cell of the solution surface is undefined."""


class CellFitError(RuntimeError):
    """A single (fold, threshold, Q) fit failed.

    Raised by the outcome fitters and fit measures; the cross-validation loop
    records the cell as undefined and moves on.
    """
