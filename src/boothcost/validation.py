"""Boundary validation: generator and stored JSON into typed estimate models.

Both entry points check structure with a Draft 7 JSON schema first, then coerce
every value and recompute every tier so nothing loosely typed leaks past this
module.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Mapping, Tuple

from jsonschema import Draft7Validator

from .errors import SchemaError
from .models import (
    DEFAULT_SELECTED_TIER,
    LOGISTICS_KEYS,
    STATUSES,
    TIER_KEYS,
    TIER_LABELS,
    Analysis,
    BoothRequest,
    ClarifyingQuestion,
    EstimateDocument,
    FabricationItem,
    GeneratedEstimate,
    ImagePayload,
    Tier,
    TimeEstimate,
)
from .pricing import coerce_number, normalize_logistics, recompute

LOGGER = logging.getLogger(__name__)

_LOGISTICS_SCHEMA = {
    "type": "object",
    "required": list(LOGISTICS_KEYS),
}

_TIER_SCHEMA = {
    "type": "object",
    "required": ["logistics"],
    "properties": {
        "fabrication_items": {"type": "array", "items": {"type": "object"}},
        "logistics": _LOGISTICS_SCHEMA,
    },
}

_TIERS_SCHEMA = {
    "type": "object",
    "required": list(TIER_KEYS),
    "properties": {key: _TIER_SCHEMA for key in TIER_KEYS},
}

GENERATED_ESTIMATE_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Generated exhibit estimate",
    "type": "object",
    "required": ["estimates"],
    "properties": {
        "analysis": {"type": "object"},
        "clarifying_questions": {"type": "array", "items": {"type": "object"}},
        "estimates": _TIERS_SCHEMA,
        "time_estimate": {"type": "object"},
    },
}

STORED_DOCUMENT_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Stored exhibit estimate",
    "type": "object",
    "required": ["id", "request", "tiers", "status", "created_at", "updated_at"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "status": {"enum": list(STATUSES)},
        "created_at": {"type": "string"},
        "updated_at": {"type": "string"},
        "request": {
            "type": "object",
            "required": ["location_type", "booth_size_key"],
            "properties": {
                "location_type": {"type": "string"},
                "booth_size_key": {"type": "string"},
                "square_footage": {"type": ["number", "null"]},
            },
        },
        "images": {
            "type": "array",
            "items": {"type": "object", "required": ["payload"]},
        },
        "analysis": {"type": "object"},
        "clarifying_questions": {"type": "array", "items": {"type": "object"}},
        "tiers": _TIERS_SCHEMA,
        "time_estimate": {"type": "object"},
        "selected_tier": {"enum": list(TIER_KEYS)},
    },
}

_GENERATED_VALIDATOR = Draft7Validator(GENERATED_ESTIMATE_SCHEMA)
_STORED_VALIDATOR = Draft7Validator(STORED_DOCUMENT_SCHEMA)


def _check(validator: Draft7Validator, payload: object, what: str) -> None:
    errors = sorted(validator.iter_errors(payload), key=lambda err: list(err.absolute_path))
    if not errors:
        return
    messages = []
    for err in errors:
        location = "/".join(str(part) for part in err.absolute_path) or "<root>"
        messages.append(f"{location}: {err.message}")
    LOGGER.debug("%s failed schema validation: %s", what, "; ".join(messages))
    raise SchemaError(f"{what} failed schema validation: {messages[0]}", errors=messages)


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value)


def _strings(values: object) -> Tuple[str, ...]:
    if not isinstance(values, (list, tuple)):
        return ()
    return tuple(_text(value) for value in values if value is not None)


def _analysis(raw: object) -> Analysis:
    data = raw if isinstance(raw, Mapping) else {}
    return Analysis(
        detected_elements=_strings(data.get("detected_elements")),
        assumptions=_strings(data.get("assumptions")),
    )


def _questions(raw: object) -> Tuple[ClarifyingQuestion, ...]:
    questions: List[ClarifyingQuestion] = []
    for position, item in enumerate(raw or [], start=1):
        if not isinstance(item, Mapping):
            continue
        questions.append(
            ClarifyingQuestion(
                id=_text(item.get("id")) or f"q{position}",
                question=_text(item.get("question")),
                rationale=_text(item.get("rationale", item.get("why_it_matters"))),
                options=_strings(item.get("options")),
            )
        )
    return tuple(questions)


def _items(raw: Iterable) -> Tuple[FabricationItem, ...]:
    items: List[FabricationItem] = []
    for item in raw or []:
        if not isinstance(item, Mapping):
            continue
        quantity = item.get("quantity", item.get("qty"))
        items.append(
            FabricationItem(
                description=_text(item.get("description", item.get("item"))),
                quantity="1" if quantity is None else _text(quantity),
                unit_cost=coerce_number(item.get("unit_cost")),
                subtotal=coerce_number(item.get("subtotal")),
            )
        )
    return tuple(items)


def _tiers(raw: Mapping) -> dict:
    tiers = {}
    for key in TIER_KEYS:
        data = raw[key]
        tier = Tier(
            label=_text(data.get("label")) or TIER_LABELS[key],
            description=_text(data.get("description")),
            notes=_text(data.get("notes")),
            fabrication_items=_items(data.get("fabrication_items")),
            logistics=normalize_logistics(data.get("logistics")),
        )
        tiers[key] = recompute(tier)
    return tiers


def _time_estimate(raw: object) -> TimeEstimate:
    data = raw if isinstance(raw, Mapping) else {}
    return TimeEstimate(
        fabrication_weeks=_text(data.get("fabrication_weeks")),
        install_days=_text(data.get("install_days")),
        dismantle_days=_text(data.get("dismantle_days")),
    )


def validate_generated(candidate: object) -> GeneratedEstimate:
    """Validate an extracted generator object and convert it to typed models."""

    _check(_GENERATED_VALIDATOR, candidate, "Generated estimate")
    return GeneratedEstimate(
        analysis=_analysis(candidate.get("analysis")),
        clarifying_questions=_questions(candidate.get("clarifying_questions")),
        tiers=_tiers(candidate["estimates"]),
        time_estimate=_time_estimate(candidate.get("time_estimate")),
    )


def validate_stored(raw: object) -> EstimateDocument:
    """Validate one persisted record and convert it to an :class:`EstimateDocument`."""

    record_id = raw.get("id") if isinstance(raw, Mapping) else None
    _check(_STORED_VALIDATOR, raw, f"Stored estimate {record_id}")
    request = raw["request"]
    sqft = request.get("square_footage")
    images = tuple(
        ImagePayload(
            payload=_text(image.get("payload")),
            mime_type=_text(image.get("mime_type")) or "image/jpeg",
            display_name=_text(image.get("display_name")) or "render.jpg",
        )
        for image in raw.get("images") or []
    )
    return EstimateDocument(
        id=raw["id"],
        request=BoothRequest(
            location_type=request["location_type"],
            booth_size_key=request["booth_size_key"],
            square_footage=None if sqft is None else coerce_number(sqft),
        ),
        images=images,
        analysis=_analysis(raw.get("analysis")),
        clarifying_questions=_questions(raw.get("clarifying_questions")),
        tiers=_tiers(raw["tiers"]),
        time_estimate=_time_estimate(raw.get("time_estimate")),
        status=raw["status"],
        created_at=raw["created_at"],
        updated_at=raw["updated_at"],
        client_name=_text(raw.get("client_name")),
        project_name=_text(raw.get("project_name")),
        quote_number=_text(raw.get("quote_number")),
        selected_tier=raw.get("selected_tier") or DEFAULT_SELECTED_TIER,
    )


__all__ = [
    "GENERATED_ESTIMATE_SCHEMA",
    "STORED_DOCUMENT_SCHEMA",
    "validate_generated",
    "validate_stored",
]
