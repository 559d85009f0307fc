"""Error taxonomy for composition handling, model fitting, and evaluation.

Structural errors (degenerate compositions, undefined log-ratios, shape
mismatches) are fatal to a single unit of work (one region or one model)
and are caught by batch drivers, which record a per-unit status and continue.
"""


class ShoalError(Exception):
    """Base class for all Shoal errors."""


class DegenerateCompositionError(ShoalError, ValueError):
    """A composition sums to zero and cannot be closed."""


class UndefinedLogRatioError(ShoalError, ValueError):
    """A log-ratio was requested where a numerator or the reference part is zero."""


class DimensionMismatchError(ShoalError, ValueError):
    """Declared and actual table shapes disagree."""


class EssentialZeroExclusionError(ShoalError):
    """A region contains essential zeros and is excluded from log-ratio analysis.

    This records an exclusion decision rather than a failure; batch code keeps
    instances in its exclusion table instead of letting them propagate.
    """

    def __init__(self, region_id: int, n_zeros: int, categories: list[str]) -> None:
        self.region_id = region_id
        self.n_zeros = n_zeros
        self.categories = categories
        super().__init__(
            f"region {region_id}: {n_zeros} essential zero(s) in {', '.join(categories)}"
        )


class InferenceTimeoutError(ShoalError, TimeoutError):
    """The inference engine exceeded its time budget for one unit of work."""


class NumericUnderflowWarning(RuntimeWarning):
    """A predictive density underflowed to zero and was clamped."""
