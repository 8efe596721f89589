from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from spend_categorizer.app import create_app
from spend_categorizer.models import Transaction
from spend_categorizer.storage.json_store import JsonTransactionRepository


@pytest.fixture
def client(tmp_path, monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    monkeypatch.delenv("AI_ENDPOINT_URL", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    repo = JsonTransactionRepository(data_path=str(tmp_path / "transactions.json"))
    repo.add(Transaction(id="t1", household_id="h1", description="NETFLIX 12.99"))
    repo.add(Transaction(id="t2", household_id="h1", description="Vetorial Sorriso 55"))

    with TestClient(create_app(data_dir=str(tmp_path))) as test_client:
        yield test_client


def test_categorize_endpoint(client: TestClient) -> None:
    response = client.post("/api/categorize", json={"householdId": "h1", "useAI": True})
    assert response.status_code == 200
    data = response.json()
    assert data["appliedByRules"] == 1
    assert data["sentToAI"] == 0
    assert data["appliedByAI"] == 0
    assert data["remainingUncategorized"] == 1
    assert data["errors"] == []


def test_categorize_requires_household(client: TestClient) -> None:
    response = client.post("/api/categorize", json={"householdId": ""})
    assert response.status_code == 400


def test_correction_then_cache_hit(client: TestClient) -> None:
    response = client.post("/api/corrections", json={
        "transactionId": "t2",
        "description": "Vetorial Sorriso 55",
        "newCategory": "health",
        "householdId": "h1",
    })
    assert response.status_code == 200
    data = response.json()
    assert data["cacheWritten"] is True
    assert data["ruleCreated"]["pattern"] == "VETORIAL"

    rules = client.get("/api/rules", params={"household_id": "h1"}).json()
    assert [rule["pattern"] for rule in rules] == ["VETORIAL"]


def test_correction_for_unknown_transaction(client: TestClient) -> None:
    response = client.post("/api/corrections", json={
        "transactionId": "nope",
        "description": "x",
        "newCategory": "food",
        "householdId": "h1",
    })
    assert response.status_code == 400


def test_rule_crud(client: TestClient) -> None:
    created = client.post("/api/rules", json={
        "householdId": "h1",
        "pattern": "VETOR",
        "category": "health",
    })
    assert created.status_code == 201
    rule_id = created.json()["id"]

    patched = client.patch(f"/api/rules/{rule_id}", json={"householdId": "h1", "priority": 120})
    assert patched.status_code == 200
    assert patched.json()["priority"] == 120

    other_household = client.patch(f"/api/rules/{rule_id}", json={"householdId": "h2", "priority": 1})
    assert other_household.status_code == 404

    outcome = client.post("/api/categorize", json={"householdId": "h1"}).json()
    assert outcome["appliedByRules"] == 2

    deleted = client.delete(f"/api/rules/{rule_id}", params={"household_id": "h1"})
    assert deleted.status_code == 204
    assert client.get("/api/rules", params={"household_id": "h1"}).json() == []


def test_built_in_rules_are_read_only(client: TestClient) -> None:
    response = client.delete("/api/rules/builtin:food:000", params={"household_id": "h1"})
    assert response.status_code == 403


def test_invalid_rule_rejected(client: TestClient) -> None:
    response = client.post("/api/rules", json={"householdId": "h1", "pattern": "X", "category": "groceries"})
    assert response.status_code == 400


def test_seed_endpoint(client: TestClient) -> None:
    response = client.post("/api/seed")
    assert response.status_code == 200
    data = response.json()
    assert data["categoriesProcessed"] == 8
    assert data["rulesInserted"] >= 800
    assert data["errors"] == []


def test_suggestions_endpoint(client: TestClient) -> None:
    response = client.get("/api/rules/suggestions", params={"household_id": "h1"})
    assert response.status_code == 200
    assert response.json() == []


def test_clear_cache(client: TestClient) -> None:
    client.post("/api/categorize", json={"householdId": "h1"})
    response = client.delete("/api/cache", params={"household_id": "h1"})
    assert response.status_code == 200
    assert response.json()["removed"] == 1


def test_clear_cache_requires_household(client: TestClient) -> None:
    client.post("/api/categorize", json={"householdId": "h1"})
    assert client.delete("/api/cache").status_code == 400
    assert client.delete("/api/cache", params={"household_id": ""}).status_code == 400

    response = client.delete("/api/cache", params={"household_id": "h1"})
    assert response.json()["removed"] == 1
