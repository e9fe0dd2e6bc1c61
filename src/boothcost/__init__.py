"""Tiered fabrication cost estimates for trade-show exhibits."""

from .config import EstimatorConfig
from .errors import EstimatorError
from .extraction import extract_json
from .images import ImageNormalizer, ImageSource
from .models import BoothRequest, EstimateDocument, Tier
from .pipeline import EstimatePipeline
from .pricing import apply_edit, recompute
from .refinement import RefinementWorkflow
from .store import EstimateStore, JsonFileBackend, MemoryBackend

__all__ = [
    "EstimatorConfig",
    "EstimatorError",
    "extract_json",
    "ImageNormalizer",
    "ImageSource",
    "BoothRequest",
    "EstimateDocument",
    "Tier",
    "EstimatePipeline",
    "apply_edit",
    "recompute",
    "RefinementWorkflow",
    "EstimateStore",
    "JsonFileBackend",
    "MemoryBackend",
]
