"""
Error Taxonomy

Exceptions raised by the model layer. All derive from ValueError so callers
that already guard against bad input keep working.
"""


class AnalysisError(ValueError):
    """Base class for all analysis errors."""
    pass


class InputValidationError(AnalysisError):
    """Invalid argument: bad train fraction, even or oversized k, malformed grid."""
    pass


class InsufficientDataError(AnalysisError):
    """A training partition is missing every sample of some class."""
    pass


class UndefinedMetricError(AnalysisError):
    """A metric has a zero denominator and therefore no value."""

    def __init__(self, metric: str, reason: str):
        self.metric = metric
        self.reason = reason
        super().__init__(f"{metric} is undefined: {reason}")
