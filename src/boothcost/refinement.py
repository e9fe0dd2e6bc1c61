"""Re-estimation with clarifying answers, and manual status changes."""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, FrozenSet, Mapping, Optional

from .config import EstimatorConfig
from .errors import EstimateNotFoundError, EstimatorError, InvalidTransitionError
from .extraction import extract_json
from .generator import Generator, generate_text
from .models import STATUSES, EstimateDocument, timestamp
from .prompts import build_refinement_request
from .store import EstimateStore
from .validation import validate_generated

LOGGER = logging.getLogger(__name__)

REVISED = "revised"

# "revised" is only ever entered through a successful refinement.
MANUAL_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "draft": frozenset({"sent"}),
    "sent": frozenset({"accepted"}),
    "revised": frozenset({"sent"}),
    "accepted": frozenset(),
}


def transition_status(
    document: EstimateDocument,
    status: str,
    now: datetime | None = None,
) -> EstimateDocument:
    if status not in STATUSES:
        raise InvalidTransitionError(f"Unknown status: {status}")
    if status == document.status:
        return document
    if status not in MANUAL_TRANSITIONS.get(document.status, frozenset()):
        raise InvalidTransitionError(f"Cannot move estimate from {document.status} to {status}")
    return replace(document, status=status, updated_at=timestamp(now))


class RefinementWorkflow:
    """Replaces an estimate's generated content using clarifying answers.

    A refinement is a single generator call. Either every generated field is
    swapped in and the document is stored as ``revised``, or the error is
    raised and nothing is written.
    """

    def __init__(
        self,
        generator: Generator,
        store: EstimateStore,
        config: EstimatorConfig | None = None,
    ) -> None:
        self.generator = generator
        self.store = store
        self.config = config or EstimatorConfig()

    def request_refinement(
        self,
        document: EstimateDocument,
        answers: Optional[Mapping[str, str]] = None,
        now: datetime | None = None,
    ) -> EstimateDocument:
        LOGGER.info(
            "Refining estimate %s with %d answer(s)",
            document.id,
            len([value for value in (answers or {}).values() if value]),
        )
        request = build_refinement_request(
            document, answers, self.config.generator.max_output_tokens
        )
        try:
            text = generate_text(self.generator, request)
            generated = validate_generated(extract_json(text))
        except EstimatorError as exc:
            LOGGER.error("Refinement of %s failed; estimate left unchanged: %s", document.id, exc)
            raise

        revised = document.with_generated(generated, status=REVISED, now=now)
        revised = self.store.put(revised)
        LOGGER.info("Estimate %s revised", revised.id)
        return revised

    def refine_by_id(
        self,
        document_id: str,
        answers: Optional[Mapping[str, str]] = None,
        now: datetime | None = None,
    ) -> EstimateDocument:
        document = self.store.get(document_id)
        if document is None:
            raise EstimateNotFoundError(document_id)
        return self.request_refinement(document, answers, now=now)


__all__ = ["RefinementWorkflow", "transition_status", "MANUAL_TRANSITIONS"]
