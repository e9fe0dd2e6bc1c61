from __future__ import annotations

import io
import json
from typing import Callable, List, Optional

import pytest
from PIL import Image

from boothcost.config import EstimatorConfig
from boothcost.generator import GeneratorRequest, GeneratorResponse
from boothcost.models import LOGISTICS_KEYS, TIER_KEYS, TIER_LABELS, BoothRequest, EstimateDocument
from boothcost.store import EstimateStore, MemoryBackend
from boothcost.validation import validate_generated


def _tier_payload(key: str, scale: int) -> dict:
    logistics = {name: 0 for name in LOGISTICS_KEYS}
    logistics["transportation_to_show"] = 1500 * scale
    logistics["installation_dismantle_labor"] = 9000 * scale
    return {
        "label": TIER_LABELS[key],
        "description": f"{TIER_LABELS[key]} build",
        "fabrication_items": [
            {"item": "Flooring", "qty": "400 sqft", "unit_cost": 4.25, "subtotal": 1700 * scale},
            {"item": "Reception Counter", "qty": "1", "unit_cost": 2500, "subtotal": 2500 * scale},
        ],
        "fabrication_subtotal": 999999,
        "logistics": logistics,
        "logistics_subtotal": 1,
        "grand_total": 2,
        "notes": "generator totals are ignored",
    }


@pytest.fixture
def generated_payload() -> dict:
    return {
        "analysis": {
            "detected_elements": ["backwall", "counter"],
            "assumptions": ["standard union labor"],
        },
        "clarifying_questions": [
            {
                "id": "q1",
                "question": "Is the LED wall rented or purchased?",
                "why_it_matters": "Purchase adds capital cost",
                "options": ["Rented", "Purchased"],
            },
            {
                "id": "q2",
                "question": "Which show city?",
                "why_it_matters": "Freight distance",
                "options": [],
            },
        ],
        "estimates": {key: _tier_payload(key, scale) for scale, key in enumerate(TIER_KEYS, start=1)},
        "time_estimate": {
            "fabrication_weeks": "4-6",
            "install_days": "2",
            "dismantle_days": "1",
        },
    }


@pytest.fixture
def generated_text(generated_payload: dict) -> str:
    return "Here is the estimate:\n```json\n" + json.dumps(generated_payload) + "\n```"


class FakeGenerator:
    """Returns queued responses and records every request it receives."""

    def __init__(self, responses: Optional[List[object]] = None) -> None:
        self.responses: List[object] = list(responses or [])
        self.requests: List[GeneratorRequest] = []

    def generate(self, request: GeneratorRequest) -> GeneratorResponse:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, GeneratorResponse):
            return response
        return GeneratorResponse(text_blocks=[str(response)])


@pytest.fixture
def fake_generator_factory() -> Callable[..., FakeGenerator]:
    def _create(*responses: object) -> FakeGenerator:
        return FakeGenerator(list(responses))

    return _create


@pytest.fixture
def estimator_config() -> EstimatorConfig:
    return EstimatorConfig.from_dict({"images": {"decode_timeout_seconds": 2.0}})


@pytest.fixture
def memory_store() -> EstimateStore:
    return EstimateStore(MemoryBackend())


@pytest.fixture
def image_bytes_factory() -> Callable[..., bytes]:
    def _create(width: int, height: int, fmt: str = "PNG", mode: str = "RGB") -> bytes:
        color = (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30)
        image = Image.new(mode, (width, height), color)
        buffer = io.BytesIO()
        image.save(buffer, format=fmt)
        return buffer.getvalue()

    return _create


@pytest.fixture
def document_factory(generated_payload: dict) -> Callable[..., EstimateDocument]:
    generated = validate_generated(generated_payload)

    def _create(document_id: str = "est-1", updated_at: str = "2026-01-05T10:00:00.000000+0000", **fields) -> EstimateDocument:
        values = dict(
            id=document_id,
            request=BoothRequest.create("indoor", "20x20"),
            tiers=dict(generated.tiers),
            created_at="2026-01-05T10:00:00.000000+0000",
            updated_at=updated_at,
            analysis=generated.analysis,
            clarifying_questions=generated.clarifying_questions,
            time_estimate=generated.time_estimate,
        )
        values.update(fields)
        return EstimateDocument(**values)

    return _create
