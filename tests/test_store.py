from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest

from boothcost.errors import StoreError
from boothcost.models import STORAGE_KEY, Tier
from boothcost import store as store_module
from boothcost.store import EstimateStore, JsonFileBackend, MemoryBackend
from boothcost.validation import validate_stored


def test_put_inserts_new_documents_first(memory_store: EstimateStore, document_factory) -> None:
    memory_store.put(document_factory("first"))
    memory_store.put(document_factory("second"))
    raw = json.loads(memory_store.backend.read(STORAGE_KEY))
    assert [record["id"] for record in raw] == ["second", "first"]


def test_put_replaces_existing_id_in_place(memory_store: EstimateStore, document_factory) -> None:
    memory_store.put(document_factory("a"))
    memory_store.put(document_factory("b"))
    memory_store.put(document_factory("a", client_name="Acme"))

    raw = json.loads(memory_store.backend.read(STORAGE_KEY))
    assert [record["id"] for record in raw] == ["b", "a"]
    assert memory_store.get("a").client_name == "Acme"


def test_put_recomputes_totals(memory_store: EstimateStore, document_factory) -> None:
    doc = document_factory()
    stale = dict(doc.tiers)
    stale["affordable"] = Tier(
        label="Affordable",
        fabrication_items=doc.tiers["affordable"].fabrication_items,
        logistics=doc.tiers["affordable"].logistics,
        grand_total=1.0,
    )
    stored = memory_store.put(replace(doc, tiers=stale))
    assert stored.tiers["affordable"].grand_total == 14700
    assert memory_store.get(doc.id).tiers["affordable"].grand_total == 14700


def test_list_orders_by_updated_at_descending(memory_store: EstimateStore, document_factory) -> None:
    memory_store.put(document_factory("old", updated_at="2026-01-01T00:00:00.000000+0000"))
    memory_store.put(document_factory("new", updated_at="2026-02-01T00:00:00.000000+0000"))
    memory_store.put(document_factory("mid", updated_at="2026-01-15T00:00:00.000000+0000"))
    assert [doc.id for doc in memory_store.list()] == ["new", "mid", "old"]


def test_get_missing_returns_none(memory_store: EstimateStore) -> None:
    assert memory_store.get("nope") is None
    assert memory_store.list() == []


def test_delete(memory_store: EstimateStore, document_factory) -> None:
    memory_store.put(document_factory("a"))
    memory_store.put(document_factory("b"))
    assert memory_store.delete("a") is True
    assert memory_store.delete("a") is False
    assert [doc.id for doc in memory_store.list()] == ["b"]


def test_invalid_record_is_skipped_and_preserved(document_factory, caplog) -> None:
    good = document_factory("good").to_dict()
    broken = document_factory("broken").to_dict()
    del broken["tiers"]["high_end"]
    backend = MemoryBackend({STORAGE_KEY: json.dumps([broken, good])})
    store = EstimateStore(backend)

    with caplog.at_level("WARNING"):
        assert [doc.id for doc in store.list()] == ["good"]
    assert "broken" in caplog.text
    assert store.get("broken") is None

    store.put(document_factory("fresh"))
    ids = [record["id"] for record in json.loads(backend.read(STORAGE_KEY))]
    assert ids == ["fresh", "broken", "good"]


def test_corrupt_collection_raises(document_factory) -> None:
    backend = MemoryBackend({STORAGE_KEY: "{not json"})
    store = EstimateStore(backend)
    with pytest.raises(StoreError):
        store.list()
    with pytest.raises(StoreError):
        store.put(document_factory())
    assert backend.read(STORAGE_KEY) == "{not json"


def test_collection_must_be_a_list() -> None:
    store = EstimateStore(MemoryBackend({STORAGE_KEY: json.dumps({"id": "x"})}))
    with pytest.raises(StoreError):
        store.list()


def test_file_backend_survives_restart(tmp_path: Path, document_factory) -> None:
    directory = tmp_path / "estimates"
    EstimateStore(JsonFileBackend(directory)).put(document_factory("persisted", client_name="Acme"))

    assert (directory / f"{STORAGE_KEY}.json").exists()
    assert not list(directory.glob("*.tmp"))

    reopened = EstimateStore(JsonFileBackend(directory))
    doc = reopened.get("persisted")
    assert doc is not None
    assert doc.client_name == "Acme"
    assert doc == document_factory("persisted", client_name="Acme")


def test_custom_key_is_isolated(tmp_path: Path, document_factory) -> None:
    backend = JsonFileBackend(tmp_path)
    EstimateStore(backend, key="other").put(document_factory("x"))
    assert EstimateStore(backend).list() == []


def test_oversized_numbers_in_stored_record_coerce_to_zero(document_factory) -> None:
    oversized = document_factory("oversized").to_dict()
    oversized["tiers"]["affordable"]["logistics"]["sundries"] = 10**400
    oversized["request"]["square_footage"] = 10**400
    good = document_factory("good").to_dict()
    store = EstimateStore(MemoryBackend({STORAGE_KEY: json.dumps([oversized, good])}))

    documents = {doc.id: doc for doc in store.list()}
    assert set(documents) == {"oversized", "good"}
    tier = documents["oversized"].tiers["affordable"]
    assert tier.logistics["sundries"] == 0
    assert tier.grand_total == documents["good"].tiers["affordable"].grand_total
    assert documents["oversized"].request.square_footage == 0


def test_record_that_fails_conversion_is_skipped(document_factory, caplog, monkeypatch) -> None:
    def converting(record):
        if record["id"] == "bad":
            raise OverflowError("int too large to convert to float")
        return validate_stored(record)

    monkeypatch.setattr(store_module, "validate_stored", converting)
    bad = document_factory("bad").to_dict()
    good = document_factory("good").to_dict()
    store = EstimateStore(MemoryBackend({STORAGE_KEY: json.dumps([bad, good])}))

    with caplog.at_level("WARNING"):
        assert [doc.id for doc in store.list()] == ["good"]
    assert "bad" in caplog.text
