"""
Engine exceptions.

Validation and lookup failures are fatal and surface to the caller before
any report is computed. An empty report for a single pattern is not an
error; only a batch without any report raises.
"""


class PatternsError(Exception):
    """Base class for consumption pattern errors"""


class PatternValidationError(PatternsError, ValueError):
    """Baseline or goal data that cannot be scored"""


class LookupNotFoundError(PatternsError, LookupError):
    """A mandatory taxonomy, group, pattern or goal lookup came back empty"""


class NoReportDataError(PatternsError):
    """No pattern of the evaluated batch had sales in the window"""
