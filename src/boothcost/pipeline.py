"""End-to-end creation of a new estimate document."""
from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Tuple

from .config import EstimatorConfig
from .errors import EstimatorError, NormalizationError
from .extraction import extract_json
from .generator import Generator, generate_text
from .images import ImageNormalizer, ImageSource
from .models import BoothRequest, EstimateDocument, timestamp
from .prompts import build_estimate_request
from .store import EstimateStore
from .validation import validate_generated

LOGGER = logging.getLogger(__name__)


def new_document_id() -> str:
    return uuid.uuid4().hex[:12]


def new_quote_number(prefix: str) -> str:
    return f"{prefix}-{random.randint(50000, 54999)}"


@dataclass
class PipelineResult:
    document: EstimateDocument
    image_failures: List[Tuple[ImageSource, NormalizationError]] = field(default_factory=list)


class EstimatePipeline:
    """Normalizes renders, calls the generator, validates, and stores a draft."""

    def __init__(
        self,
        generator: Generator,
        store: EstimateStore,
        config: EstimatorConfig | None = None,
        normalizer: ImageNormalizer | None = None,
    ) -> None:
        self.config = config or EstimatorConfig()
        self.generator = generator
        self.store = store
        self.normalizer = normalizer or ImageNormalizer(self.config.images)

    def create_estimate(
        self,
        request: BoothRequest,
        sources: Iterable[ImageSource] = (),
        now: datetime | None = None,
    ) -> PipelineResult:
        LOGGER.info(
            "Starting estimate for %s %s booth",
            request.location_type,
            request.booth_size_key,
        )
        batch = self.normalizer.normalize_many(sources)
        images = [image.to_payload() for image in batch.images]
        if batch.failures:
            LOGGER.warning(
                "Continuing with %d image(s); %d could not be used",
                len(images),
                len(batch.failures),
            )

        generator_request = build_estimate_request(
            request, images, self.config.generator.max_output_tokens
        )
        try:
            text = generate_text(self.generator, generator_request)
            generated = validate_generated(extract_json(text))
        except EstimatorError as exc:
            LOGGER.error("Estimate generation aborted: %s", exc)
            raise

        created = timestamp(now)
        document = EstimateDocument(
            id=new_document_id(),
            request=request,
            images=tuple(images),
            analysis=generated.analysis,
            clarifying_questions=generated.clarifying_questions,
            tiers=dict(generated.tiers),
            time_estimate=generated.time_estimate,
            status="draft",
            created_at=created,
            updated_at=created,
            quote_number=new_quote_number(self.config.quote_prefix),
        )
        document = self.store.put(document)
        LOGGER.info("Created estimate %s (%s)", document.id, document.quote_number)
        return PipelineResult(document=document, image_failures=list(batch.failures))


__all__ = ["EstimatePipeline", "PipelineResult", "new_document_id", "new_quote_number"]
