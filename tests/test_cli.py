from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from boothcost.cli import main
from boothcost.store import EstimateStore, JsonFileBackend


@pytest.fixture
def store_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> Path:
    monkeypatch.chdir(tmp_path)
    directory = tmp_path / "estimates"
    monkeypatch.setenv("BOOTHCOST_STORE_DIR", str(directory))
    caplog.set_level(logging.INFO)
    return directory


@pytest.fixture
def seeded(store_dir: Path, document_factory) -> EstimateStore:
    store = EstimateStore(JsonFileBackend(store_dir))
    store.put(document_factory("est-1", client_name="Acme"))
    return store


def test_list_empty(store_dir: Path, caplog: pytest.LogCaptureFixture) -> None:
    assert main(["list"]) == 0
    assert "No estimates stored." in caplog.text


def test_list_and_show(seeded: EstimateStore, caplog: pytest.LogCaptureFixture, capsys) -> None:
    assert main(["list"]) == 0
    assert "est-1" in caplog.text
    assert "Acme" in caplog.text

    assert main(["show", "est-1", "--tier", "high_end"]) == 0
    assert "Top cost drivers (High-End):" in caplog.text

    assert main(["show", "est-1", "--json"]) == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed["id"] == "est-1"
    assert printed["selected_tier"] == "mid_tier"


def test_edit_commands_update_store(seeded: EstimateStore) -> None:
    assert main(["add-item", "est-1", "affordable", "--description", "Counter", "--quantity", "2", "--unit-cost", "600"]) == 0
    tier = seeded.get("est-1").tiers["affordable"]
    assert tier.fabrication_items[-1].subtotal == 1200
    assert tier.fabrication_subtotal == 4200 + 1200

    assert main(["update-item", "est-1", "affordable", "0", "--description", "Flooring", "--quantity", "100", "--unit-cost", "5"]) == 0
    assert seeded.get("est-1").tiers["affordable"].fabrication_items[0].subtotal == 500

    assert main(["delete-item", "est-1", "affordable", "2"]) == 0
    assert len(seeded.get("est-1").tiers["affordable"].fabrication_items) == 2

    assert main(["set-logistics", "est-1", "affordable", "sundries", "500"]) == 0
    tier = seeded.get("est-1").tiers["affordable"]
    assert tier.logistics_subtotal == 10500 + 500
    assert tier.grand_total == tier.fabrication_subtotal + tier.logistics_subtotal


def test_bad_edit_index_fails(seeded: EstimateStore, caplog: pytest.LogCaptureFixture) -> None:
    assert main(["delete-item", "est-1", "affordable", "9"]) == 1
    assert "does not exist" in caplog.text


def test_status_changes(seeded: EstimateStore) -> None:
    assert main(["status", "est-1", "accepted"]) == 1
    assert main(["status", "est-1", "sent"]) == 0
    assert main(["status", "est-1", "accepted"]) == 0
    assert seeded.get("est-1").status == "accepted"


def test_delete(seeded: EstimateStore) -> None:
    assert main(["delete", "est-1"]) == 0
    assert seeded.get("est-1") is None
    assert main(["delete", "est-1"]) == 1


def test_refine_unknown_id(store_dir: Path, caplog: pytest.LogCaptureFixture) -> None:
    assert main(["refine", "ghost", "--answer", "q1=Rented"]) == 1
    assert "No estimate with id ghost" in caplog.text


def test_new_without_api_key_stores_nothing(store_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    assert main(["new", "--location", "outdoor", "--booth-size", "30x30"]) == 1
    assert EstimateStore(JsonFileBackend(store_dir)).list() == []
