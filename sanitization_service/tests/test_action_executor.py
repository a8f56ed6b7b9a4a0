"""
脱敏动作执行测试
"""
import base64
import hashlib

import pytest

from sanitization_service.services.action_executor import apply, mask_value
from sanitization_service.services.dto import (
    EncryptAction,
    EncryptParams,
    HashAction,
    HashParams,
    MaskAction,
    MaskParams,
    RemoveAction,
    ReplaceAction,
    ReplaceParams,
)
from sanitization_service.services.encryption_service import NONCE_SIZE, EncryptionService


def mask(prefix=0, suffix=0, mask_char="*", keep_domain=False):
    return MaskAction(params=MaskParams(prefix=prefix, suffix=suffix, mask_char=mask_char, keep_domain=keep_domain))


@pytest.mark.parametrize("value, action, expected", [
    ("13812345678", mask(3, 4), "138****5678"),
    ("ab", mask(3, 4), "**"),
    ("abcdefg", mask(3, 4), "abcdefg"),
    ("", mask(3, 4), ""),
    ("secret", mask(0, 0, "#"), "######"),
    ("alice@example.com", mask(2, 0, keep_domain=True), "al***@example.com"),
    ("alice", mask(2, 0, keep_domain=True), "al***"),
    ("a@b@c", mask(0, 0, keep_domain=True), "*@b@c"),
])
def test_mask(value, action, expected):
    assert apply(action, value) == expected


def test_mask_output_length_matches_input():
    params = MaskParams(prefix=2, suffix=2)
    for value in ["", "a", "abcd", "abcdefghij"]:
        assert len(mask_value(value, params)) == len(value)


def test_hash_uses_salt_prefix():
    action = HashAction(params=HashParams(type="sha256", salt="s"))
    assert apply(action, "abc") == hashlib.sha256(b"sabc").hexdigest()


def test_hash_md5():
    action = HashAction(params=HashParams(type="md5"))
    assert apply(action, "abc") == hashlib.md5(b"abc").hexdigest()


def test_encrypt_is_deterministic_and_reversible():
    action = EncryptAction(params=EncryptParams(key="rule-key"))

    first = apply(action, "13812345678")
    second = apply(action, "13812345678")

    assert first == second
    assert first != apply(action, "13912345678")
    assert EncryptionService("rule-key").decrypt(first) == "13812345678"


def test_encrypt_with_iv():
    action = EncryptAction(params=EncryptParams(key="rule-key", iv="fixed-iv"))

    encrypted = apply(action, "hello")
    assert EncryptionService("rule-key", "fixed-iv").decrypt(encrypted) == "hello"


def test_encrypt_with_iv_never_reuses_nonce():
    service = EncryptionService("rule-key", "fixed-iv")

    first = base64.urlsafe_b64decode(service.encrypt("alice123"))
    second = base64.urlsafe_b64decode(service.encrypt("bob45678"))

    assert first[:NONCE_SIZE] != second[:NONCE_SIZE]
    assert service.encrypt("alice123") == service.encrypt("alice123")


def test_replace_and_remove():
    assert apply(ReplaceAction(params=ReplaceParams(replacement="[MASKED]")), "anything") == "[MASKED]"
    assert apply(RemoveAction(), "anything") == ""


def test_non_string_values():
    assert apply(mask(3, 4), 13812345678) == "138****5678"
    assert apply(mask(3, 4), None) == ""


def test_unknown_action_returns_empty_string():
    assert apply(object(), "value") == ""
