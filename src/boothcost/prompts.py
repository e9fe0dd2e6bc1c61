"""Prompt construction for new estimates and refinements."""
from __future__ import annotations

import json
from typing import List, Mapping, Optional, Sequence

from .generator import GeneratorRequest, ImageBlock, Message, TextBlock
from .models import LOGISTICS_KEYS, TIER_KEYS, TIER_LABELS, BoothRequest, EstimateDocument, ImagePayload

NOT_SPECIFIED = "Not specified"

INDOOR_PRICING = """Indoor:
- Flooring: $4.25/sqft (carpet/linoleum)
- Graphics: $15-18/sqft (vinyl wrap / SEG)
- Wall: $37.50/sqft (plywood or aluminum SEG frame)
- Custom Wall: $70/sqft (shelving unit or cutout)
- Hanging Sign: $37.50/sqft
- Reception Counter: $2,500 each
- LED Video Wall: $195/sqft (rental indoor tiles)
- Counter: $600/linear ft (2-6ft range)
- Logo Lighting: $1,850-$2,600 each
- Stanchion: $40 each (tradeshow: $75 each)"""

OUTDOOR_PRICING = """Outdoor:
- Flooring Snap Block/Carpet: $4.25/sqft
- Rental Platform Flooring: $17.50/sqft
- Astro Turf: $4/sqft
- Graphics: $15-18/sqft (vinyl wrap / SEG)
- Wall: $37.50/sqft (plywood / aluminum SEG)
- Custom Wall: $70/sqft (shelving/cutout)
- Built Signage: $37.50/sqft
- LED Video Wall: $250/sqft (outdoor rental tiles)
- High Boy Table: $135 each
- Printed Canopy: $9/sqft
- Truss Stock: $25/linear ft (12x12)
- Stanchion: $40-75 each
- Rental Counter: $450-600 each"""

LOGISTICS_BENCHMARKS = """- Warehouse outbound: $86-$96/hr, 8-20 hrs typical
- Packing/pallets/crating: $385-$485 per unit
- Transportation: local ($900-$1,800), regional ($5,000-$6,000), national ($10,000+)
- I&D labor: small ~$8,000-$15,000 | medium ~$15,000-$25,000 | large ~$25,000-$45,000+
- Labor travel: $3,500-$10,000+
- Warehouse inbound: $688-$1,152
- Sundries: $1.25/sqft
- Pre-show/PM: $2,500-$8,000
- Structural engineering (large outdoor): $3,750-$4,250"""

TIERING = """- AFFORDABLE: Standard materials, vinyl graphics, basic lighting, minimal custom. Max impact at lowest cost.
- MID-TIER: Quality custom fabrication, SEG graphics, custom counters, moderate LED, possible small display.
- HIGH-END: Premium custom builds, bespoke cabinetry, large LED video walls, interactive tech, full lighting."""

JSON_ONLY = "Respond ONLY with valid JSON. No backticks, no preamble."


def _response_template() -> str:
    tier = {
        "label": "string",
        "description": "string",
        "fabrication_items": [{"item": "string", "qty": "string", "unit_cost": 0, "subtotal": 0}],
        "fabrication_subtotal": 0,
        "logistics": {key: 0 for key in LOGISTICS_KEYS},
        "logistics_subtotal": 0,
        "grand_total": 0,
        "notes": "string",
    }
    template = {
        "analysis": {"detected_elements": ["string"], "assumptions": ["string"]},
        "clarifying_questions": [
            {"id": "q1", "question": "string", "why_it_matters": "string", "options": ["A", "B", "other"]}
        ],
        "estimates": {key: dict(tier, label=TIER_LABELS[key]) for key in TIER_KEYS},
        "time_estimate": {"fabrication_weeks": "string", "install_days": "string", "dismantle_days": "string"},
    }
    return json.dumps(template, indent=2)


def _size_text(request: BoothRequest) -> str:
    if request.square_footage:
        return f"{request.booth_size_key} (~{request.square_footage:g} sqft)"
    return request.booth_size_key


def build_system_prompt(request: BoothRequest) -> str:
    pricing = INDOOR_PRICING if request.location_type == "indoor" else OUTDOOR_PRICING
    return (
        "You are a senior fabrication estimator at an experiential fabrication company "
        "that builds trade show exhibits, branded activations, festival experiences, and "
        "immersive brand environments.\n\n"
        "BOOTH CONTEXT:\n"
        f"- Location: {request.location_type.upper()}\n"
        f"- Size: {_size_text(request)}\n\n"
        f"PRICING REFERENCE:\n{pricing}\n\n"
        f"LOGISTICS BENCHMARKS:\n{LOGISTICS_BENCHMARKS}\n\n"
        f"TIERING:\n{TIERING}\n\n"
        "TASK: Analyze the render (if provided), identify all elements, and produce three estimate tiers.\n\n"
        "Respond ONLY with valid JSON, no markdown, no backticks, no preamble. Keep all string "
        "values under 100 chars. Use this exact structure:\n"
        f"{_response_template()}"
    )


def _booth_line(request: BoothRequest) -> str:
    sqft = f"{request.square_footage:g} sqft" if request.square_footage else "size TBD"
    return f"Booth: {request.booth_size_key} | Location: {request.location_type.upper()} | {sqft}"


def _image_blocks(images: Sequence[ImagePayload]) -> List[ImageBlock]:
    return [ImageBlock(mime_type=image.mime_type or "image/jpeg", payload=image.payload) for image in images]


def build_estimate_request(
    request: BoothRequest,
    images: Sequence[ImagePayload],
    max_output_tokens: int,
) -> GeneratorRequest:
    if images:
        count = len(images)
        angle_note = (
            f"You have been provided {count} render angles of the same booth. Analyze all of "
            "them together to get a complete picture before estimating.\n"
            if count > 1
            else ""
        )
        subject = "these renders (multiple angles of the same booth)" if count > 1 else "this render"
        text = (
            f"Analyze {subject} and produce a full fabrication estimate.\n"
            f"{angle_note}"
            f"{_booth_line(request)}\n\n"
            "IMPORTANT: Respond ONLY with a single valid JSON object. No markdown, no backticks, "
            "no text before or after. Keep all string values under 100 chars."
        )
        content = [*_image_blocks(images), TextBlock(text)]
    else:
        content = (
            "Generate a general fabrication estimate.\n"
            f"{_booth_line(request)}\n\n"
            f"IMPORTANT: {JSON_ONLY}"
        )
    return GeneratorRequest(
        system_prompt=build_system_prompt(request),
        max_output_tokens=max_output_tokens,
        messages=[Message(role="user", content=content)],
    )


def render_answers(document: EstimateDocument, answers: Optional[Mapping[str, str]]) -> str:
    answers = answers or {}
    blocks = []
    for question in document.clarifying_questions:
        answer = (answers.get(question.id) or "").strip() or NOT_SPECIFIED
        blocks.append(f"Q: {question.question}\nA: {answer}")
    return "\n\n".join(blocks)


def build_refinement_request(
    document: EstimateDocument,
    answers: Optional[Mapping[str, str]],
    max_output_tokens: int,
) -> GeneratorRequest:
    context = render_answers(document, answers)
    instruction = f"Re-estimate with these clarifying answers:\n{context}\n\n"
    if document.images:
        content = [*_image_blocks(document.images), TextBlock(f"{instruction}{JSON_ONLY}")]
    else:
        content = f"{instruction}{_booth_line(document.request)}\n\n{JSON_ONLY}"
    return GeneratorRequest(
        system_prompt=build_system_prompt(document.request),
        max_output_tokens=max_output_tokens,
        messages=[Message(role="user", content=content)],
    )


__all__ = [
    "build_system_prompt",
    "build_estimate_request",
    "build_refinement_request",
    "render_answers",
    "NOT_SPECIFIED",
]
