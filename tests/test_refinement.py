from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from boothcost.errors import (
    EstimateNotFoundError,
    GeneratorTransportError,
    InvalidTransitionError,
    MalformedJsonError,
    NoJsonFoundError,
    SchemaError,
    TruncatedResponseError,
)
from boothcost.generator import GeneratorResponse, ImageBlock, TextBlock
from boothcost.models import ImagePayload
from boothcost.prompts import build_refinement_request, render_answers
from boothcost.refinement import RefinementWorkflow, transition_status

LATER = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)


def _revised_text(generated_payload: dict) -> str:
    payload = dict(generated_payload)
    estimates = json.loads(json.dumps(payload["estimates"]))
    estimates["affordable"]["fabrication_items"].append(
        {"item": "LED Video Wall", "qty": "32 sqft", "unit_cost": 195, "subtotal": 6240}
    )
    payload["estimates"] = estimates
    payload["clarifying_questions"] = []
    return json.dumps(payload)


def test_refinement_replaces_generated_content(
    fake_generator_factory, generated_payload, memory_store, estimator_config, document_factory
) -> None:
    images = (ImagePayload(payload="aGVsbG8=", display_name="front.jpg"),)
    original = memory_store.put(document_factory("est-9", images=images, status="sent", client_name="Acme"))
    generator = fake_generator_factory(_revised_text(generated_payload))

    workflow = RefinementWorkflow(generator, memory_store, estimator_config)
    revised = workflow.request_refinement(original, {"q1": "Rented"}, now=LATER)

    assert revised.status == "revised"
    assert revised.id == original.id
    assert revised.request == original.request
    assert revised.images == original.images
    assert revised.created_at == original.created_at
    assert revised.client_name == "Acme"
    assert revised.updated_at != original.updated_at
    assert revised.clarifying_questions == ()
    assert revised.tiers["affordable"].fabrication_subtotal == 4200 + 6240
    assert memory_store.get("est-9") == revised
    assert len(memory_store.list()) == 1


def test_refinement_request_carries_images_and_answers(
    fake_generator_factory, generated_text, memory_store, estimator_config, document_factory
) -> None:
    images = (ImagePayload(payload="aGVsbG8="), ImagePayload(payload="d29ybGQ="))
    document = memory_store.put(document_factory(images=images))
    generator = fake_generator_factory(generated_text)

    RefinementWorkflow(generator, memory_store, estimator_config).request_refinement(
        document, {"q2": "Las Vegas"}
    )

    content = generator.requests[0].messages[0].content
    assert [type(block) for block in content] == [ImageBlock, ImageBlock, TextBlock]
    assert "Q: Which show city?\nA: Las Vegas" in content[-1].text
    assert "Q: Is the LED wall rented or purchased?\nA: Not specified" in content[-1].text


@pytest.mark.parametrize(
    "response, error",
    [
        ('{"estimates": {"affordable": 1,}}', MalformedJsonError),
        ('{"estimates": {"affordable": {}}}', SchemaError),
        ('{"estimates": {"affordable": {', TruncatedResponseError),
        ("no estimate today", NoJsonFoundError),
        (GeneratorResponse(error="overloaded"), GeneratorTransportError),
        (RuntimeError("connection reset"), GeneratorTransportError),
    ],
)
def test_failed_refinement_leaves_store_unchanged(
    fake_generator_factory, memory_store, estimator_config, document_factory, response, error
) -> None:
    document = memory_store.put(document_factory())
    before = memory_store.backend.read(memory_store.key)
    generator = fake_generator_factory(response)

    with pytest.raises(error):
        RefinementWorkflow(generator, memory_store, estimator_config).request_refinement(document, {})

    assert memory_store.backend.read(memory_store.key) == before
    assert memory_store.get(document.id).status == "draft"


def test_refine_by_id_missing(fake_generator_factory, memory_store, estimator_config) -> None:
    workflow = RefinementWorkflow(fake_generator_factory(), memory_store, estimator_config)
    with pytest.raises(EstimateNotFoundError) as excinfo:
        workflow.refine_by_id("ghost")
    assert "ghost" in str(excinfo.value)


def test_render_answers_defaults_to_not_specified(document_factory) -> None:
    text = render_answers(document_factory(), {"q1": "  ", "zzz": "ignored"})
    assert text == (
        "Q: Is the LED wall rented or purchased?\nA: Not specified\n\n"
        "Q: Which show city?\nA: Not specified"
    )


def test_refinement_without_images_sends_text(document_factory) -> None:
    request = build_refinement_request(document_factory(), None, 4000)
    content = request.messages[0].content
    assert isinstance(content, str)
    assert content.startswith("Re-estimate with these clarifying answers:")
    assert request.max_output_tokens == 4000


@pytest.mark.parametrize(
    "start, target",
    [("draft", "sent"), ("sent", "accepted"), ("revised", "sent")],
)
def test_allowed_transitions(document_factory, start, target) -> None:
    moved = transition_status(document_factory(status=start), target, now=LATER)
    assert moved.status == target
    assert moved.updated_at == "2026-05-01T08:00:00.000000+0000"


@pytest.mark.parametrize(
    "start, target",
    [("draft", "accepted"), ("accepted", "sent"), ("draft", "revised"), ("sent", "archived")],
)
def test_rejected_transitions(document_factory, start, target) -> None:
    with pytest.raises(InvalidTransitionError):
        transition_status(document_factory(status=start), target)


def test_same_status_is_a_no_op(document_factory) -> None:
    document = document_factory(status="sent")
    assert transition_status(document, "sent") is document
