"""
规则存储测试
"""
from datetime import datetime, timezone

import pytest

from sanitization_service.services.dto import KeywordCondition, RegexCondition, Sensitivity
from sanitization_service.services.errors import RuleValidationError


def test_seed_defaults_only_once(store):
    assert store.seed_defaults() is True
    assert store.count_rules() == 4
    assert store.seed_defaults() is False
    assert store.count_rules() == 4


def test_default_rules_content(seeded_store):
    phone = seeded_store.get_rule("default-phone-rule")

    assert phone.priority == 10
    assert phone.sensitivity == Sensitivity.HIGH
    assert isinstance(phone.condition, KeywordCondition)
    assert "mobile" in phone.condition.keywords
    assert phone.action.params.prefix == 3
    assert phone.action.params.suffix == 4

    email = seeded_store.get_rule("default-email-rule")
    assert email.action.params.keep_domain is True


def test_create_and_get(store, make_rule):
    created = store.create_rule(make_rule())
    fetched = store.get_rule("test-rule")

    assert created.id == "test-rule"
    assert fetched == created
    assert fetched.metadata.author == "system"


def test_create_legacy_rule_is_normalized(store):
    created = store.create_rule({
        "name": "旧规则",
        "description": "旧格式",
        "pattern": r"\d{11}",
        "severity": "CRITICAL",
    })

    fetched = store.get_rule(created.id)
    assert isinstance(fetched.condition, RegexCondition)
    assert fetched.sensitivity == Sensitivity.CRITICAL


def test_create_duplicate_id(store, make_rule):
    store.create_rule(make_rule())

    with pytest.raises(RuleValidationError) as exc_info:
        store.create_rule(make_rule(name="另一条"))
    assert exc_info.value.field == "id"


def test_create_invalid_rule_is_not_stored(store, make_rule):
    with pytest.raises(RuleValidationError):
        store.create_rule(make_rule(condition={"type": "regex", "pattern": "("}))
    assert store.count_rules() == 0


def test_get_missing_rule(store):
    assert store.get_rule("missing") is None


def test_list_order_and_filters(seeded_store, make_rule):
    seeded_store.create_rule(make_rule(id="disabled-rule", enabled=False, priority=1))

    rules = seeded_store.list_rules()
    priorities = [rule.priority for rule in rules]
    assert priorities == sorted(priorities)
    assert rules[0].id == "disabled-rule"

    assert [r.id for r in seeded_store.list_rules({"enabled": False})] == ["disabled-rule"]
    assert [r.id for r in seeded_store.list_rules({"category": "financial"})] == ["default-credit-card-rule"]
    assert len(seeded_store.list_rules({"sensitivity": "critical"})) == 2


def test_list_same_priority_newest_first(store, make_rule):
    store.create_rule(make_rule(id="old", metadata={"createdAt": "2024-01-01T00:00:00Z"}))
    store.create_rule(make_rule(id="new", metadata={"createdAt": "2024-06-01T00:00:00Z"}))

    assert [rule.id for rule in store.list_rules()] == ["new", "old"]


def test_update_keeps_created_at(store, make_rule):
    store.create_rule(make_rule(metadata={"createdAt": "2024-01-01T00:00:00Z"}))

    updated = store.update_rule("test-rule", make_rule(id="ignored", name="新名字", priority=1))

    assert updated.id == "test-rule"
    assert updated.name == "新名字"
    assert updated.priority == 1
    assert updated.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert updated.updated_at >= updated.created_at
    assert store.get_rule("ignored") is None


def test_update_missing_rule(store, make_rule):
    assert store.update_rule("missing", make_rule()) is None


def test_update_invalid_rule(store, make_rule):
    store.create_rule(make_rule())

    with pytest.raises(RuleValidationError):
        store.update_rule("test-rule", make_rule(name=""))
    assert store.get_rule("test-rule").name == "测试规则"


def test_delete_rule(store, make_rule):
    store.create_rule(make_rule())

    assert store.delete_rule("test-rule") is True
    assert store.delete_rule("test-rule") is False
    assert store.get_rule("test-rule") is None


def test_toggle_rule(seeded_store):
    rule = seeded_store.toggle_rule("default-phone-rule", False)

    assert rule.enabled is False
    assert seeded_store.get_rule("default-phone-rule").enabled is False
    assert seeded_store.toggle_rule("missing", True) is None


def test_batch_partial_failure(seeded_store):
    """两个存在的ID和一个不存在的ID：成功2，失败1"""
    result = seeded_store.batch_operation(
        ["default-phone-rule", "missing-rule", "default-email-rule"], "disable"
    )

    assert result.success is False
    assert result.success_count == 2
    assert result.failure_count == 1
    assert result.failed_rules == ["missing-rule"]
    assert seeded_store.get_rule("default-phone-rule").enabled is False
    assert seeded_store.get_rule("default-email-rule").enabled is False
    assert seeded_store.get_rule("default-idcard-rule").enabled is True


def test_batch_delete(seeded_store):
    result = seeded_store.batch_operation(["default-phone-rule", "default-email-rule"], "delete")

    assert result.success is True
    assert result.success_count == 2
    assert seeded_store.count_rules() == 2


@pytest.mark.parametrize("rule_ids, operation, field", [
    (["default-phone-rule"], "archive", "operation"),
    ([], "enable", "ruleIds"),
])
def test_batch_invalid_request(seeded_store, rule_ids, operation, field):
    with pytest.raises(RuleValidationError) as exc_info:
        seeded_store.batch_operation(rule_ids, operation)
    assert exc_info.value.field == field


def test_global_switch(store):
    assert store.is_global_enabled() is True

    store.set_global_enabled(False)
    assert store.is_global_enabled() is False
    assert store.get_config("global_enabled").value == {"enabled": False}

    store.set_global_enabled(True)
    assert store.is_global_enabled() is True


@pytest.mark.parametrize("stored, expected", [
    ("false", False),
    ("False", False),
    ("0", False),
    ({"enabled": "false"}, False),
    ("true", True),
    ({"enabled": True}, True),
])
def test_global_switch_parses_stored_strings(store, stored, expected):
    store.set_config("global_enabled", stored)

    assert store.is_global_enabled() is expected


def test_set_config_keeps_description(store):
    store.set_config("custom", {"a": 1}, "自定义配置")
    entry = store.set_config("custom", {"a": 2})

    assert entry.value == {"a": 2}
    assert entry.description == "自定义配置"

    configs = store.get_all_configs()
    assert configs["custom"]["value"] == {"a": 2}
    assert configs["custom"]["description"] == "自定义配置"


def test_set_config_requires_key(store):
    with pytest.raises(RuleValidationError) as exc_info:
        store.set_config(" ", 1)
    assert exc_info.value.field == "key"


def test_full_config(seeded_store):
    config = seeded_store.get_full_config()

    assert config.enabled is True
    assert len(config.rules) == 4
    assert config.global_settings["markerFormat"] == "[MASKED]"
    assert config.timestamp > 0


def test_metrics(seeded_store):
    seeded_store.toggle_rule("default-email-rule", False)

    metrics = seeded_store.get_metrics()

    assert metrics.total_rules == 4
    assert metrics.enabled_rules == 3
    assert metrics.disabled_rules == 1
    assert metrics.rules_by_type == {"PATTERN": 0, "FIELD_NAME": 4}
    assert metrics.rules_by_severity == {"CRITICAL": 2, "HIGH": 1, "MEDIUM": 1, "LOW": 0}


def test_reset_to_defaults(seeded_store, make_rule):
    seeded_store.create_rule(make_rule(id="extra"))
    seeded_store.delete_rule("default-phone-rule")
    seeded_store.set_global_enabled(False)
    seeded_store.set_config("custom", "value")

    seeded_store.reset_to_defaults()

    ids = {rule.id for rule in seeded_store.list_rules()}
    assert ids == {
        "default-phone-rule",
        "default-email-rule",
        "default-idcard-rule",
        "default-credit-card-rule",
    }
    assert seeded_store.is_global_enabled() is True
    assert "custom" not in seeded_store.get_all_configs()
    assert "encryption_config" in seeded_store.get_all_configs()


def test_export_import_round_trip(seeded_store):
    document = seeded_store.export_rules()

    assert document.version == "1.0.0"
    assert document.total_rules == 4
    assert document.export_date.endswith("Z")

    payload = [rule.to_wire() for rule in document.rules]
    result = seeded_store.import_rules(payload, replace_existing=True)

    assert result.success is True
    assert result.success_count == 4
    assert result.errors is None
    assert {r.id for r in seeded_store.list_rules()} == {r.id for r in document.rules}


def test_import_collects_failures(store, make_rule):
    result = store.import_rules([
        make_rule(id="good"),
        make_rule(id="bad", condition={"type": "regex", "pattern": "("}),
        make_rule(id="good"),
    ])

    assert result.success is False
    assert result.success_count == 1
    assert result.failure_count == 2
    assert [error.rule for error in result.errors] == ["bad", "good"]
    assert store.count_rules() == 1
