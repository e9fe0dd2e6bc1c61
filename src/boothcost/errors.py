"""Exception hierarchy shared by the estimator components."""
from __future__ import annotations

from typing import List, Optional

TRUNCATION_GUIDANCE = (
    "Response was cut off. The estimate was too complex; try a smaller booth size "
    "or fewer renders, then refine with the clarifying questions."
)


class EstimatorError(Exception):
    """Base class for every error raised by the estimator core."""


class NormalizationError(EstimatorError):
    """An image could not be prepared for the generator."""


class DecodeError(NormalizationError):
    """The image could not be read, decoded, or re-encoded."""


class NormalizationTimeoutError(DecodeError):
    """Decoding did not finish within the configured wait."""


class ExtractionError(EstimatorError):
    """A structured estimate could not be recovered from generator text."""


class NoJsonFoundError(ExtractionError):
    """The generator output contained no JSON object at all."""


class TruncatedResponseError(ExtractionError):
    """The JSON object started but never closed."""

    def __init__(self, message: str = TRUNCATION_GUIDANCE) -> None:
        super().__init__(message)


class MalformedJsonError(ExtractionError):
    """A balanced object was found but did not parse."""

    def __init__(self, message: str, raw: str) -> None:
        super().__init__(message)
        self.raw = raw


class SchemaError(EstimatorError):
    """A candidate or stored document violates the estimate schema."""

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class GeneratorTransportError(EstimatorError):
    """The generator call failed or returned an error payload."""


class EditError(EstimatorError, ValueError):
    """A manual edit referenced a tier, line, or category that does not exist."""


class InvalidTransitionError(EstimatorError, ValueError):
    """A status change is not allowed from the document's current status."""


class StoreError(EstimatorError):
    """The persisted collection could not be read."""


class EstimateNotFoundError(EstimatorError, KeyError):
    """No stored estimate has the requested id."""

    def __str__(self) -> str:
        return f"No estimate with id {self.args[0]}" if self.args else "Estimate not found"


__all__ = [
    "EstimatorError",
    "NormalizationError",
    "DecodeError",
    "NormalizationTimeoutError",
    "ExtractionError",
    "NoJsonFoundError",
    "TruncatedResponseError",
    "MalformedJsonError",
    "SchemaError",
    "GeneratorTransportError",
    "EditError",
    "InvalidTransitionError",
    "StoreError",
    "EstimateNotFoundError",
    "TRUNCATION_GUIDANCE",
]
