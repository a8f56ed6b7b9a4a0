"""
HTTP 接口测试
"""
import pytest
from fastapi.testclient import TestClient

from sanitization_service.main import app
from sanitization_service.services.policy_store import get_policy_store


@pytest.fixture
def client(seeded_store):
    """覆盖规则存储依赖，不触发应用生命周期（不会访问默认数据库）"""
    app.dependency_overrides[get_policy_store] = lambda: seeded_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["rulesCount"] == 4
    assert body["checks"]["database"]["status"] == "healthy"


def test_list_rules(client):
    response = client.get("/api/rules")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["total"] == 4
    assert len(body["data"]) == 4
    assert "timestamp" in body
    assert body["data"][0]["metadata"]["createdAt"].endswith("Z")


def test_list_rules_with_filters(client):
    response = client.get("/api/rules", params={"category": "financial"})
    assert [rule["id"] for rule in response.json()["data"]] == ["default-credit-card-rule"]

    response = client.get("/api/rules", params={"category": "bogus"})
    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "category"


def test_create_rule(client, make_rule):
    response = client.post("/api/rules", json=make_rule(id="new-rule"))

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["id"] == "new-rule"
    assert data["condition"] == {"type": "key_keyword", "keywords": ["phone"], "caseSensitive": False}

    assert client.get("/api/rules/new-rule").status_code == 200


def test_create_legacy_rule(client):
    response = client.post("/api/rules", json={
        "name": "旧规则",
        "description": "旧格式银行卡",
        "pattern": r"\d{16}",
        "severity": "HIGH",
        "maskValue": "****",
    })

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["condition"]["type"] == "regex"
    assert data["sensitivity"] == "high"
    assert "pattern" not in data


def test_create_invalid_rule(client, make_rule):
    response = client.post("/api/rules", json=make_rule(condition={"type": "regex", "pattern": "([a-z"}))

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["field"].startswith("condition")
    assert detail["error"]


def test_create_duplicate_rule(client, make_rule):
    response = client.post("/api/rules", json=make_rule(id="default-phone-rule"))

    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "id"


def test_get_update_delete_missing_rule(client, make_rule):
    assert client.get("/api/rules/missing").status_code == 404
    assert client.put("/api/rules/missing", json=make_rule()).status_code == 404
    assert client.delete("/api/rules/missing").status_code == 404


def test_update_rule(client, make_rule):
    original = client.get("/api/rules/default-phone-rule").json()["data"]

    response = client.put(
        "/api/rules/default-phone-rule",
        json=make_rule(id="default-phone-rule", name="手机号（新）"),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "手机号（新）"
    assert data["metadata"]["createdAt"] == original["metadata"]["createdAt"]


def test_delete_rule(client):
    assert client.delete("/api/rules/default-phone-rule").status_code == 200
    assert client.get("/api/rules/default-phone-rule").status_code == 404


def test_toggle_rule(client):
    response = client.post("/api/rules/default-phone-rule/toggle", json={"enabled": False})

    assert response.status_code == 200
    assert response.json()["data"]["enabled"] is False


def test_batch_operation(client):
    response = client.post("/api/rules/batch", json={
        "operation": "disable",
        "ruleIds": ["default-phone-rule", "missing"],
    })

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["successCount"] == 1
    assert data["failureCount"] == 1
    assert data["failedRules"] == ["missing"]


def test_batch_invalid_operation(client):
    response = client.post("/api/rules/batch", json={"operation": "archive", "ruleIds": ["x"]})

    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "operation"


def test_validate_rule(client, make_rule):
    response = client.post("/api/rules/validate", json={
        "rule": make_rule(condition={"type": "regex", "pattern": r"1[3-9]\d{9}"}),
        "testInput": "tel 13812345678",
    })

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["valid"] is True
    assert data["testOutput"] == "tel 138****5678"


def test_full_config_and_global_switch(client):
    body = client.get("/api/config").json()
    assert body["data"]["enabled"] is True
    assert len(body["data"]["rules"]) == 4

    response = client.post("/api/config/global-switch", json={"enabled": False})
    assert response.status_code == 200
    assert response.json()["data"]["enabled"] is False

    assert client.get("/api/config").json()["data"]["enabled"] is False


def test_global_switch_requires_boolean(client):
    response = client.post("/api/config/global-switch", json={"enabled": "yes"})

    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "enabled"


def test_global_configs(client):
    response = client.post("/api/config/global", json={"key": "custom", "value": {"a": 1}})
    assert response.status_code == 200

    configs = client.get("/api/config/global").json()["data"]
    assert configs["custom"]["value"] == {"a": 1}
    assert "global_settings" in configs


def test_reset(client):
    client.delete("/api/rules/default-phone-rule")

    response = client.post("/api/config/reset")

    assert response.status_code == 200
    assert client.get("/api/rules").json()["total"] == 4


def test_metrics(client):
    data = client.get("/api/metrics").json()["data"]

    assert data["totalRules"] == 4
    assert data["rulesByType"]["FIELD_NAME"] == 4
    assert data["rulesBySeverity"]["CRITICAL"] == 2


def test_export_and_import(client):
    document = client.get("/api/export/rules").json()
    assert document["totalRules"] == 4
    assert document["version"] == "1.0.0"

    response = client.post("/api/import/rules", json={
        "rules": document["rules"],
        "replaceExisting": True,
    })

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["successCount"] == 4
    assert data["failureCount"] == 0


def test_import_collects_malformed_entries(client, seeded_store, make_rule):
    response = client.post("/api/import/rules", json={
        "rules": [make_rule(id="imported-rule"), None, "not-a-rule"],
    })

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["success"] is False
    assert data["successCount"] == 1
    assert data["failureCount"] == 2
    assert len(data["errors"]) == 2
    assert seeded_store.get_rule("imported-rule") is not None


def test_sanitization_rules_pagination(client):
    body = client.get("/api/sanitization/rules", params={"limit": 2, "offset": 1}).json()

    assert body["success"] is True
    assert len(body["data"]["rules"]) == 2
    assert body["data"]["pagination"] == {"total": 4, "limit": 2, "offset": 1, "hasMore": True}


def test_sanitization_rules_defaults_to_all(client):
    data = client.get("/api/sanitization/rules").json()["data"]

    assert len(data["rules"]) == 4
    assert data["pagination"] == {"total": 4, "limit": 4, "offset": 0, "hasMore": False}


def test_sanitization_rules_filters(client):
    data = client.get("/api/sanitization/rules", params={"severity": "CRITICAL"}).json()["data"]

    assert data["pagination"]["total"] == 2
    assert all(rule["sensitivity"] == "critical" for rule in data["rules"])

    client.post("/api/rules/default-phone-rule/toggle", json={"enabled": False})
    data = client.get("/api/sanitization/rules", params={"enabled": "false"}).json()["data"]
    assert [rule["id"] for rule in data["rules"]] == ["default-phone-rule"]


def test_sanitization_rules_rejects_unknown_severity(client):
    response = client.get("/api/sanitization/rules", params={"severity": "extreme"})

    assert response.status_code == 400


def test_rules_json(client):
    rules = client.get("/rules.json").json()

    assert isinstance(rules, list)
    assert len(rules) == 4
    assert all("condition" in rule and "action" in rule for rule in rules)
