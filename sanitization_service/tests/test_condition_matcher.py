"""
条件匹配测试
"""
from sanitization_service.services.condition_matcher import (
    MatchContext,
    applies_to_service,
    compile_pattern,
    matches,
    rule_matches,
)
from sanitization_service.services.dto import KeywordCondition, RegexCondition
from sanitization_service.services.normalizer import normalize


def test_keyword_match_is_case_insensitive_substring():
    condition = KeywordCondition(keywords=["phone"])

    assert matches(condition, MatchContext(field_name="userPhoneNumber"))
    assert matches(condition, MatchContext(field_name="PHONE"))
    assert not matches(condition, MatchContext(field_name="email"))


def test_keyword_match_case_sensitive():
    condition = KeywordCondition(keywords=["Phone"], case_sensitive=True)

    assert matches(condition, MatchContext(field_name="userPhone"))
    assert not matches(condition, MatchContext(field_name="userphone"))


def test_keyword_match_requires_field_name():
    condition = KeywordCondition(keywords=["phone"])

    assert not matches(condition, MatchContext(value="phone"))


def test_keyword_condition_ignores_value():
    condition = KeywordCondition(keywords=["phone"])

    assert not matches(condition, MatchContext(field_name="remark", value="my phone is 13812345678"))


def test_regex_match_anywhere_in_value():
    condition = RegexCondition(pattern=r"1[3-9]\d{9}")

    assert matches(condition, MatchContext(value="tel:13812345678;"))
    assert matches(condition, MatchContext(value=13812345678))
    assert not matches(condition, MatchContext(value="12345"))


def test_regex_match_ignores_field_name():
    condition = RegexCondition(pattern=r"1[3-9]\d{9}")

    assert not matches(condition, MatchContext(field_name="13812345678", value="abc"))
    assert not matches(condition, MatchContext(field_name="phone", value=None))


def test_compile_pattern_is_cached():
    assert compile_pattern(r"\d+") is compile_pattern(r"\d+")


def test_compile_pattern_returns_none_for_invalid_regex():
    assert compile_pattern("([a-z") is None


def test_service_scope(make_rule):
    included = normalize(make_rule(includeServices=["order-service"]))
    excluded = normalize(make_rule(excludeServices=["audit-service"]))

    assert applies_to_service(included, "order-service")
    assert not applies_to_service(included, "user-service")
    assert applies_to_service(included, None)

    assert not applies_to_service(excluded, "audit-service")
    assert applies_to_service(excluded, "user-service")


def test_rule_matches_combines_scope_and_condition(make_rule):
    rule = normalize(make_rule(includeServices=["order-service"]))

    assert rule_matches(rule, MatchContext(field_name="phone", service="order-service"))
    assert not rule_matches(rule, MatchContext(field_name="phone", service="user-service"))
    assert not rule_matches(rule, MatchContext(field_name="email", service="order-service"))
