"""Shoal - fish catch composition analysis for Large Marine Ecosystems."""

__version__ = "2026.10.19"

from shoal.errors import DegenerateCompositionError as DegenerateCompositionError
from shoal.errors import DimensionMismatchError as DimensionMismatchError
from shoal.errors import EssentialZeroExclusionError as EssentialZeroExclusionError
from shoal.errors import InferenceTimeoutError as InferenceTimeoutError
from shoal.errors import NumericUnderflowWarning as NumericUnderflowWarning
from shoal.errors import UndefinedLogRatioError as UndefinedLogRatioError
from shoal.fetcher import SauFetcher as SauFetcher
